#===========================================================================
# catalog_sync/mapping/mapping_store.py
# Source id -> target id cross references, kept as metadata on the source
# product/variation. Best effort only: callers re-validate before trusting.
#===========================================================================
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from catalog_sync.catalog.source import (
    CatalogSource,
    META_LAST_STOCK_SYNC_DATE,
    META_LAST_SYNC_DATE,
    META_SYNCED_PRODUCT_ID,
    META_SYNCED_VARIATION_ID,
)

logger = logging.getLogger("uvicorn.error")

SYNC_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _as_id(value) -> Optional[int]:
    try:
        v = int(value)
    except (TypeError, ValueError):
        return None
    return v if v > 0 else None


class MappingStore:
    def __init__(self, catalog: CatalogSource):
        self.catalog = catalog

    # ---- products ----

    def product_target(self, product_id: int) -> Optional[int]:
        return _as_id(self.catalog.get_meta(product_id, META_SYNCED_PRODUCT_ID))

    def remember_product(self, product_id: int, target_id: int) -> None:
        if self.product_target(product_id) != int(target_id):
            logger.info("[MAP] product %s -> target %s", product_id, target_id)
        self.catalog.set_meta(product_id, META_SYNCED_PRODUCT_ID, int(target_id))

    def forget_product(self, product_id: int) -> None:
        logger.info("[MAP] dropping stale product mapping for %s", product_id)
        self.catalog.delete_meta(product_id, META_SYNCED_PRODUCT_ID)

    # ---- variations ----

    def variation_target(self, variation_id: int) -> Optional[int]:
        return _as_id(self.catalog.get_meta(variation_id, META_SYNCED_VARIATION_ID))

    def remember_variation(self, variation_id: int, target_id: int) -> None:
        self.catalog.set_meta(variation_id, META_SYNCED_VARIATION_ID, int(target_id))

    # ---- sync timestamps ----

    def mark_synced(self, product_id: int, when: Optional[datetime] = None) -> str:
        stamp = (when or datetime.now()).strftime(SYNC_DATE_FORMAT)
        self.catalog.set_meta(product_id, META_LAST_SYNC_DATE, stamp)
        return stamp

    def mark_stock_synced(self, product_id: int, when: Optional[datetime] = None) -> str:
        stamp = (when or datetime.now()).strftime(SYNC_DATE_FORMAT)
        self.catalog.set_meta(product_id, META_LAST_STOCK_SYNC_DATE, stamp)
        return stamp

    def last_synced(self, product_id: int) -> Optional[str]:
        return self.catalog.get_meta(product_id, META_LAST_SYNC_DATE)

    def last_stock_synced(self, product_id: int) -> Optional[str]:
        return self.catalog.get_meta(product_id, META_LAST_STOCK_SYNC_DATE)

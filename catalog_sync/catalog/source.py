#===========================================================================
# catalog_sync/catalog/source.py
# Read access to the source store's catalog plus per-post metadata.
# The sync engine only depends on the CatalogSource protocol.
#===========================================================================
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

from catalog_sync.catalog.models import SourceProduct, SourceVariation

logger = logging.getLogger("uvicorn.error")

# Metadata keys written back by the sync engine
META_SYNCED_PRODUCT_ID = "_synced_product_id"
META_SYNCED_VARIATION_ID = "_synced_variation_id"
META_LAST_SYNC_DATE = "_last_sync_date"
META_LAST_STOCK_SYNC_DATE = "_last_stock_sync_date"


class CatalogSource(Protocol):
    def get_product(self, product_id: int) -> Optional[SourceProduct]: ...

    def get_variation(self, variation_id: int) -> Optional[SourceVariation]: ...

    def get_variations(self, product: SourceProduct) -> List[SourceVariation]: ...

    def attachment_url(self, attachment_id: int) -> Optional[str]: ...

    def get_meta(self, post_id: int, key: str, default: Any = None) -> Any: ...

    def set_meta(self, post_id: int, key: str, value: Any) -> None: ...

    def delete_meta(self, post_id: int, key: str) -> None: ...


class InMemoryCatalog:
    """Catalog held in dicts; products and variations share one id space like WP posts."""

    def __init__(
        self,
        products: Iterable[SourceProduct] = (),
        variations: Iterable[SourceVariation] = (),
        attachments: Optional[Dict[int, str]] = None,
    ):
        self._lock = threading.Lock()
        self.products: Dict[int, SourceProduct] = {p.id: p for p in products}
        self.variations: Dict[int, SourceVariation] = {v.id: v for v in variations}
        self.attachments: Dict[int, str] = {int(k): v for k, v in (attachments or {}).items()}

    def _post(self, post_id: int):
        post_id = int(post_id)
        return self.products.get(post_id) or self.variations.get(post_id)

    def get_product(self, product_id: int) -> Optional[SourceProduct]:
        return self.products.get(int(product_id))

    def get_variation(self, variation_id: int) -> Optional[SourceVariation]:
        return self.variations.get(int(variation_id))

    def get_variations(self, product: SourceProduct) -> List[SourceVariation]:
        out = []
        for vid in product.variation_ids:
            v = self.get_variation(vid)
            if v is not None:
                out.append(v)
        return out

    def attachment_url(self, attachment_id: int) -> Optional[str]:
        if not attachment_id:
            return None
        return self.attachments.get(int(attachment_id))

    def get_meta(self, post_id: int, key: str, default: Any = None) -> Any:
        post = self._post(post_id)
        if post is None:
            return default
        val = post.meta.get(key)
        return default if val in (None, "") else val

    def set_meta(self, post_id: int, key: str, value: Any) -> None:
        with self._lock:
            post = self._post(post_id)
            if post is None:
                logger.warning("[CATALOG] set_meta on unknown post %s (%s)", post_id, key)
                return
            post.meta[key] = value
        self._persist()

    def delete_meta(self, post_id: int, key: str) -> None:
        with self._lock:
            post = self._post(post_id)
            if post is None or key not in post.meta:
                return
            post.meta.pop(key, None)
        self._persist()

    def _persist(self) -> None:
        pass


class JsonCatalog(InMemoryCatalog):
    """
    Catalog loaded from a JSON export:
      {"products": [...], "variations": [...], "attachments": {"12": "https://..."}}
    Metadata changes are written back atomically.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        raw = self._load_raw(self.path)
        super().__init__(
            products=[SourceProduct(**p) for p in raw.get("products") or []],
            variations=[SourceVariation(**v) for v in raw.get("variations") or []],
            attachments=raw.get("attachments") or {},
        )

    @staticmethod
    def _load_raw(path: Path) -> Dict[str, Any]:
        if not path.exists():
            logger.warning("[CATALOG] %s not found; starting with an empty catalog", path)
            return {}
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except Exception as e:
            logger.error("[CATALOG] failed to read %s: %s", path, e)
            return {}

    def _persist(self) -> None:
        record = {
            "products": [p.model_dump() for p in self.products.values()],
            "variations": [v.model_dump() for v in self.variations.values()],
            "attachments": {str(k): v for k, v in self.attachments.items()},
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(record, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
        tmp.replace(self.path)

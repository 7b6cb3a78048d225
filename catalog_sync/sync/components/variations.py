# catalog_sync/sync/components/variations.py
# =======================================================
# Variation sync for variable products
#   GENERATE → WAIT_FOR_GENERATION → FETCH → MATCH_AND_UPDATE
# plus a stock-only pass for already synced products.
# =======================================================
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from catalog_sync.catalog.models import SourceProduct, SourceVariation, SyncStep
from catalog_sync.catalog.source import CatalogSource
from catalog_sync.mapping.mapping_store import MappingStore
from catalog_sync.sync.components.images import ImageSynchronizer
from catalog_sync.sync.components.matching import EntityResolver
from catalog_sync.sync.components.price import PriceConverter
from catalog_sync.sync.components.util import is_non_zero, normalize_sku
from catalog_sync.sync.context import SyncContext
from catalog_sync.woo.woocommerce import WooTarget

logger = logging.getLogger(__name__)

POLL_ATTEMPTS = 10
POLL_BASE_DELAY = 0.5
POLL_FACTOR = 1.5
POLL_MAX_DELAY = 5.0

ZERO_MATCH_COMPLETE = "complete"
ZERO_MATCH_ERROR = "error"

# per-variation metadata copied to the target as-is
META_WHITELIST = ("_purchase_price", "_minimum_quantity")
GALLERY_META_KEYS = ("rtwpvg_images", "_gallery_images")


def poll_delay(n: int) -> float:
    return min(POLL_BASE_DELAY * POLL_FACTOR ** n, POLL_MAX_DELAY)


def stock_payload(item) -> Dict[str, Any]:
    """stock_status always; manage_stock/stock_quantity only when stock is managed."""
    data: Dict[str, Any] = {"stock_status": item.stock_status}
    if item.manage_stock:
        data["manage_stock"] = True
        data["stock_quantity"] = item.stock_quantity
    return data


def _id_list(value) -> List[int]:
    if isinstance(value, str):
        value = [v for v in value.split(",") if v.strip()]
    out = []
    for v in value or []:
        try:
            out.append(int(v))
        except (TypeError, ValueError):
            continue
    return out


class VariationSynchronizer:
    def __init__(
        self,
        woo: WooTarget,
        catalog: CatalogSource,
        mappings: MappingStore,
        resolver: EntityResolver,
        images: ImageSynchronizer,
        ctx: SyncContext,
        convert_price: PriceConverter,
        zero_match_policy: str = ZERO_MATCH_COMPLETE,
    ):
        self.woo = woo
        self.catalog = catalog
        self.mappings = mappings
        self.resolver = resolver
        self.images = images
        self.ctx = ctx
        self.convert_price = convert_price
        self.zero_match_policy = zero_match_policy if zero_match_policy in (
            ZERO_MATCH_COMPLETE, ZERO_MATCH_ERROR) else ZERO_MATCH_COMPLETE

    # ---- phases ----

    async def _generate(self, target_product_id: int) -> bool:
        res = await self.woo.generate_variations(target_product_id)
        if not res.ok:
            self.ctx.logger.error("Variation generation failed", {
                "target_product_id": target_product_id, "error": res.message,
            })
        return res.ok

    async def _wait_for_generation(self, target_product_id: int) -> bool:
        for n in range(POLL_ATTEMPTS):
            res = await self.woo.get_variations(target_product_id)
            if res.ok and res.value:
                self.ctx.logger.info("Target variations ready", {
                    "target_product_id": target_product_id, "polls": n + 1, "count": len(res.value),
                })
                return True
            if n < POLL_ATTEMPTS - 1:
                await self.ctx.sleep(poll_delay(n))
        self.ctx.logger.error("Target variations were not generated in time", {
            "target_product_id": target_product_id, "polls": POLL_ATTEMPTS,
        })
        return False

    async def _fetch(self, target_product_id: int) -> List[dict]:
        res = await self.woo.get_variations(target_product_id)
        if not res.ok:
            self.ctx.logger.error("Could not fetch target variations", {
                "target_product_id": target_product_id, "error": res.message,
            })
            return []
        return [v for v in res.value if isinstance(v, dict) and v.get("id")]

    async def _prepare(self, target_product_id: int) -> Tuple[Optional[str], List[dict]]:
        if not await self._generate(target_product_id):
            return "Variation generation failed on target store", []
        if not await self._wait_for_generation(target_product_id):
            return "Variations were not generated on target store", []
        targets = await self._fetch(target_product_id)
        if not targets:
            return "Could not fetch target variations", []
        return None, targets

    # ---- payload ----

    async def _safe_sku(self, variation: SourceVariation, product: SourceProduct,
                        target_variation: dict) -> Optional[str]:
        """The variation SKU when it can be set on the target without a conflict, else None."""
        sku = (variation.sku or "").strip()
        wanted = normalize_sku(sku)
        if not wanted:
            return None
        if wanted == normalize_sku(product.sku):
            self.ctx.logger.warning("Variation SKU equals parent SKU, not sent", {
                "variation_id": variation.id, "sku": sku,
            })
            return None
        if normalize_sku(target_variation.get("sku")) == wanted:
            return sku

        res = await self.woo.find_products(sku=sku)
        if not res.ok:
            self.ctx.logger.warning("Could not check SKU on target store, not sent", {
                "variation_id": variation.id, "sku": sku, "error": res.message,
            })
            return None
        for hit in res.value:
            if (isinstance(hit, dict) and hit.get("id") != target_variation.get("id")
                    and normalize_sku(hit.get("sku")) == wanted):
                self.ctx.logger.warning("SKU already used by another target product, not sent", {
                    "variation_id": variation.id, "sku": sku, "claimed_by": hit.get("id"),
                })
                return None
        return sku

    def _meta(self, variation: SourceVariation) -> List[Dict[str, Any]]:
        get = self.catalog.get_meta
        ean = get(variation.id, "_alg_ean") or get(variation.id, "_ean") or ""
        meta = [{"key": "_alg_ean", "value": ean}]
        for key in META_WHITELIST:
            meta.append({"key": key, "value": get(variation.id, key, "")})
        return meta

    async def _images(self, variation: SourceVariation, target_product_id: int) -> Dict[str, Any]:
        main_url = self.catalog.attachment_url(variation.image_id) if variation.image_id else None
        gallery_ids = _id_list(self.catalog.get_meta(variation.id, "rtwpvg_images"))
        gallery_urls = [u for u in (self.catalog.attachment_url(i) for i in gallery_ids) if u]
        if not main_url and not gallery_urls:
            return {}
        return await self.images.prepare_variation_images(main_url, gallery_urls, target_product_id)

    async def build_payload(self, variation: SourceVariation, target_variation: dict,
                            product: SourceProduct, target_product_id: int,
                            skip_images: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "regular_price": self.convert_price(variation.regular_price),
            "sale_price": self.convert_price(variation.sale_price),
            "description": variation.description,
            "weight": variation.weight,
            "attributes": [
                {"id": a.get("id"), "name": a.get("slug") or a.get("name"), "option": a.get("option")}
                for a in target_variation.get("attributes") or []
            ],
            "meta_data": self._meta(variation),
        }
        data.update(stock_payload(variation))
        if not variation.manage_stock:
            data["manage_stock"] = False

        sku = await self._safe_sku(variation, product, target_variation)
        if sku:
            data["sku"] = sku

        if any(is_non_zero(v) for v in (variation.length, variation.width, variation.height)):
            data["dimensions"] = {
                "length": variation.length or "",
                "width": variation.width or "",
                "height": variation.height or "",
            }

        if not skip_images:
            images = await self._images(variation, target_product_id)
            if images.get("main"):
                data["image"] = {"id": images["main"]}
            if images.get("gallery"):
                for key in GALLERY_META_KEYS:
                    data["meta_data"].append({"key": key, "value": images["gallery"]})
        return data

    # ---- match & update ----

    async def _match_and_update(self, product: SourceProduct, target_product_id: int,
                                targets: List[dict], skip_images: bool) -> Tuple[int, int]:
        sources = self.catalog.get_variations(product)
        matched = updated = 0
        for tv in targets:
            match = self.resolver.match_variation(tv, sources, product)
            if match is None:
                self.ctx.logger.info("No source variation for target variation", {
                    "target_variation_id": tv.get("id"), "attributes": tv.get("attributes"),
                })
                continue
            matched += 1
            payload = await self.build_payload(match.source, tv, product, target_product_id, skip_images)
            res = await self.woo.update_variation(target_product_id, tv["id"], payload)
            if not res.ok:
                self.ctx.logger.error("Variation update failed", {
                    "variation_id": match.source.id, "target_variation_id": tv["id"], "error": res.message,
                })
                continue
            updated += 1
            self.mappings.remember_variation(match.source.id, tv["id"])
            self.ctx.logger.info("Variation synced", {
                "variation_id": match.source.id, "target_variation_id": tv["id"],
                "strategy": match.strategy, "score": match.score,
            })
        return matched, updated

    async def sync(self, product: SourceProduct, target_product_id: int, skip_images: bool = False) -> SyncStep:
        error, targets = await self._prepare(target_product_id)
        if error:
            return SyncStep(name="variations", status="error", message=error)

        matched, updated = await self._match_and_update(product, target_product_id, targets, skip_images)

        if matched == 0:
            self.ctx.logger.warning("No variations matched, regenerating once", {
                "product_id": product.id, "target_product_id": target_product_id,
            })
            error, targets = await self._prepare(target_product_id)
            if not error:
                matched, updated = await self._match_and_update(product, target_product_id, targets, skip_images)

        if matched == 0 and self.zero_match_policy == ZERO_MATCH_ERROR:
            return SyncStep(name="variations", status="error",
                            message="No target variation matched a source variation")

        return SyncStep(name="variations", status="completed", message=f"Synchronized {updated} variations")

    async def sync_stock(self, product: SourceProduct, target_product_id: int) -> SyncStep:
        targets = await self._fetch(target_product_id)
        if not targets:
            return SyncStep(name="variations", status="error",
                            message="Variations not found on target store")

        sources = self.catalog.get_variations(product)
        synced = 0
        for tv in targets:
            match = self.resolver.match_variation(tv, sources, product)
            if match is None:
                continue
            res = await self.woo.update_variation(target_product_id, tv["id"], stock_payload(match.source))
            if res.ok:
                synced += 1
                self.mappings.remember_variation(match.source.id, tv["id"])
            else:
                self.ctx.logger.error("Variation stock update failed", {
                    "variation_id": match.source.id, "target_variation_id": tv["id"], "error": res.message,
                })
        return SyncStep(name="variations", status="completed",
                        message=f"Synchronized stock for {synced} variations")

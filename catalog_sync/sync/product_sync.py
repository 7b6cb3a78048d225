# catalog_sync/sync/product_sync.py
# =======================================================
# Source → target product sync orchestrator
# - full sync: images → product → variations → prices → stock
# - stock-only sync for products already on the target
# Every run returns the ordered steps, also when it fails part way.
# =======================================================
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from catalog_sync.catalog.models import SourceProduct, SyncResult, SyncStep
from catalog_sync.catalog.source import CatalogSource
from catalog_sync.config import TargetConfig
from catalog_sync.mapping.mapping_store import MappingStore
from catalog_sync.result import ApiResult, HTTP, NOT_FOUND, TRANSPORT, VALIDATION
from catalog_sync.sync.components.attributes import AttributeResolver
from catalog_sync.sync.components.categories import TermResolver, category_resolver, tag_resolver
from catalog_sync.sync.components.images import ImageSynchronizer
from catalog_sync.sync.components.matching import EntityResolver
from catalog_sync.sync.components.price import PriceConverter, make_price_converter
from catalog_sync.sync.components.variations import VariationSynchronizer, stock_payload
from catalog_sync.sync.context import SyncContext
from catalog_sync.woo.http_client import RetryClient
from catalog_sync.woo.woocommerce import WooTarget

logger = logging.getLogger("uvicorn.error")

NEEDS_FULL_SYNC = "Product not found on target store. Run a full sync first."

YOAST_META_KEYS = (
    "_yoast_wpseo_title",
    "_yoast_wpseo_metadesc",
    "_yoast_wpseo_focuskw",
    "_yoast_wpseo_meta-robots-noindex",
    "_yoast_wpseo_meta-robots-nofollow",
    "_yoast_wpseo_canonical",
    "_yoast_wpseo_og_title",
    "_yoast_wpseo_og_description",
    "_yoast_wpseo_og_image",
    "_yoast_wpseo_twitter_title",
    "_yoast_wpseo_twitter_description",
    "_yoast_wpseo_twitter_image",
)

# error text fragments that point at the images part of a product payload
IMAGE_ERROR_HINTS = ("image", "media", "attachment", "upload")


class SyncError(Exception):
    def __init__(self, message: str, kind: str = HTTP):
        super().__init__(message)
        self.kind = kind


def looks_image_related(res: ApiResult) -> bool:
    if res.ok:
        return False
    text = f"{res.failure.message} {res.failure.body}".lower()
    return any(h in text for h in IMAGE_ERROR_HINTS)


class ProductSync:
    def __init__(
        self,
        woo: WooTarget,
        catalog: CatalogSource,
        ctx: SyncContext,
        *,
        convert_price: Optional[PriceConverter] = None,
        zero_match_policy: Optional[str] = None,
    ):
        self.woo = woo
        self.catalog = catalog
        self.ctx = ctx
        self.convert_price = convert_price or make_price_converter(woo.config.exchange_rate)

        self.mappings = MappingStore(catalog)
        self.resolver = EntityResolver(woo, catalog, self.mappings, ctx)
        self.images = ImageSynchronizer(woo, ctx)
        self.attributes = AttributeResolver(woo, ctx)
        self.categories: TermResolver = category_resolver(woo, ctx)
        self.tags: TermResolver = tag_resolver(woo, ctx)
        self.variations = VariationSynchronizer(
            woo, catalog, self.mappings, self.resolver, self.images, ctx,
            convert_price=self.convert_price,
            zero_match_policy=zero_match_policy or woo.config.zero_match_policy,
        )

    # ---- helpers ----

    def _load(self, product_id: int) -> SourceProduct:
        product = self.catalog.get_product(product_id)
        if product is None:
            raise SyncError("Product not found", VALIDATION)
        return product

    def image_urls(self, product: SourceProduct) -> List[str]:
        ids = [product.image_id] + list(product.gallery_image_ids)
        urls = [self.catalog.attachment_url(i) for i in ids if i]
        return [u for u in urls if u]

    def _meta_data(self, product: SourceProduct) -> List[Dict[str, Any]]:
        meta = []
        for key in YOAST_META_KEYS:
            value = self.catalog.get_meta(product.id, key)
            if value:
                meta.append({"key": key, "value": value})
        ean = self.catalog.get_meta(product.id, "_alg_ean") or self.catalog.get_meta(product.id, "_ean") or ""
        meta.append({"key": "_alg_ean", "value": ean})
        return meta

    async def build_payload(self, product: SourceProduct, existing_id: Optional[int],
                            images: Optional[List[int]]) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": product.name,
            "type": product.type,
            "sku": product.sku,
            "regular_price": self.convert_price(product.regular_price),
            "sale_price": self.convert_price(product.sale_price),
            "description": product.description,
            "short_description": product.short_description,
            "tags": await self.tags.resolve_all(product.tags),
            "categories": await self.categories.resolve_all(product.categories),
            "attributes": await self.attributes.prepare_product_attributes(product),
            "meta_data": self._meta_data(product),
        }
        if not existing_id:
            data["status"] = "draft"
        data.update(stock_payload(product))
        if images is not None:
            data["images"] = [{"id": mid, "position": i} for i, mid in enumerate(images)]
        return data

    async def _send(self, existing_id: Optional[int], payload: Dict[str, Any]) -> ApiResult:
        if existing_id:
            return await self.woo.update_product(existing_id, payload)
        return await self.woo.create_product(payload)

    @staticmethod
    def _fail_active(steps: List[SyncStep], message: str) -> None:
        if steps and steps[-1].status == "active":
            steps[-1] = SyncStep(name=steps[-1].name, status="error", message=message)

    # ---- full sync ----

    async def full_sync(self, product_id: int, skip_images: bool = False) -> ApiResult:
        steps: List[SyncStep] = []
        try:
            product = self._load(product_id)
            self.ctx.logger.info("Full sync started", {
                "product_id": product.id, "name": product.name, "sku": product.sku, "skip_images": skip_images,
            })

            match = await self.resolver.resolve(product)
            if not match.ok and not match.failure.is_not_found:
                # never create a product the target could not be checked for
                raise SyncError(match.message, match.failure.kind)
            existing_id = match.value if match.ok else None

            images: Optional[List[int]] = None
            if not skip_images:
                steps.append(SyncStep(name="images", status="active", message="Transferring images..."))
                urls = self.image_urls(product)
                images, failed = await self.images.sync_batch(urls, existing_id)
                message = f"{len(images)} image(s) synced"
                if failed > 0:
                    message += f", {failed} failed"
                steps[-1] = SyncStep(name="images", status="completed", message=message)

            steps.append(SyncStep(name="product", status="active", message="Sending product..."))
            payload = await self.build_payload(product, existing_id, images)
            res = await self._send(existing_id, payload)

            if not res.ok and images and looks_image_related(res):
                self.ctx.logger.warning("Product rejected because of images, retrying without images", {
                    "product_id": product.id, "error": res.message,
                })
                payload.pop("images", None)
                res = await self._send(existing_id, payload)
                if res.ok:
                    steps[0] = SyncStep(name="images", status="error",
                                        message="Images rejected by target store, product synced without images")

            if not res.ok:
                raise SyncError(res.message, res.failure.kind)
            if not isinstance(res.value, dict) or not res.value.get("id"):
                raise SyncError("Target store response has no product id", HTTP)

            target_id = int(res.value["id"])
            action = "updated" if existing_id else "created"
            self.mappings.remember_product(product.id, target_id)
            synced_at = self.mappings.mark_synced(product.id)
            steps[-1] = SyncStep(name="product", status="completed",
                                 message="Product updated" if existing_id else "Product created")

            if product.is_variable:
                steps.append(SyncStep(name="variations", status="active", message="Creating variations..."))
                steps[-1] = await self.variations.sync(product, target_id, skip_images=skip_images)

            steps.append(SyncStep(name="prices", status="completed", message="Prices converted"))
            steps.append(SyncStep(name="stock", status="completed", message="Product stock updated"))

            self.ctx.logger.success("Product synced", {
                "product_id": product.id, "target_id": target_id, "action": action,
            })
            result = SyncResult(success=True, action=action, target_id=target_id, steps=steps)
            return ApiResult.success(result, synced_at=synced_at)

        except SyncError as e:
            self._fail_active(steps, str(e))
            self.ctx.logger.error("Full sync failed", {"product_id": product_id, "error": str(e)})
            return ApiResult.fail(e.kind, str(e), steps=steps)
        except Exception as e:
            logger.error("[SYNC] unexpected error for product %s", product_id, exc_info=e)
            self._fail_active(steps, str(e))
            self.ctx.logger.error("Full sync failed", {"product_id": product_id, "exception": str(e)})
            return ApiResult.fail(TRANSPORT, f"Error: {e}", steps=steps)

    # ---- stock only ----

    async def stock_only_sync(self, product_id: int) -> ApiResult:
        steps: List[SyncStep] = []
        try:
            product = self._load(product_id)
            self.ctx.logger.info("Stock sync started", {
                "product_id": product.id, "name": product.name, "sku": product.sku,
            })

            match = await self.resolver.resolve(product)
            if not match.ok and not match.failure.is_not_found:
                raise SyncError(match.message, match.failure.kind)
            if not match.ok:
                raise SyncError(NEEDS_FULL_SYNC, NOT_FOUND)
            target_id = match.value

            res = await self.woo.update_product(target_id, stock_payload(product))
            if not res.ok:
                raise SyncError(res.message, res.failure.kind)

            if product.is_variable:
                steps.append(SyncStep(name="variations", status="active", message="Updating variation stock..."))
                steps[-1] = await self.variations.sync_stock(product, target_id)

            steps.append(SyncStep(name="stock", status="completed", message="Product stock synchronized"))
            synced_at = self.mappings.mark_stock_synced(product.id)

            self.ctx.logger.success("Product stock synced", {"product_id": product.id, "target_id": target_id})
            result = SyncResult(success=True, action="stock_updated", target_id=target_id, steps=steps)
            return ApiResult.success(result, synced_at=synced_at)

        except SyncError as e:
            self._fail_active(steps, str(e))
            self.ctx.logger.error("Stock sync failed", {"product_id": product_id, "error": str(e)})
            return ApiResult.fail(e.kind, str(e), steps=steps)
        except Exception as e:
            logger.error("[SYNC] unexpected stock sync error for product %s", product_id, exc_info=e)
            self._fail_active(steps, str(e))
            self.ctx.logger.error("Stock sync failed", {"product_id": product_id, "exception": str(e)})
            return ApiResult.fail(TRANSPORT, f"Error: {e}", steps=steps)


def build_product_sync(config: TargetConfig, catalog: CatalogSource, ctx: SyncContext,
                       http: Optional[RetryClient] = None) -> ProductSync:
    """Wire every component for one sync run."""
    http = http or RetryClient(ctx.logger, verify=config.verify_ssl, sleep=ctx.sleep)
    return ProductSync(WooTarget(config, http), catalog, ctx)

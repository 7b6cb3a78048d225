# catalog_sync/sync/components/matching.py
# =======================================================
# Source → target identity resolution
# - products: cached mapping → same id → SKU → variation SKUs → name
# - variations: SKU → recorded mapping → attribute overlap (>= 70%)
# =======================================================
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from catalog_sync.catalog.models import SourceProduct, SourceVariation
from catalog_sync.catalog.source import CatalogSource
from catalog_sync.mapping.mapping_store import MappingStore
from catalog_sync.result import ApiResult, HTTP, NOT_FOUND, RATE_LIMITED, TRANSPORT
from catalog_sync.sync.components.util import normalize_sku, normalize_value, remove_accents, slugify
from catalog_sync.sync.context import SyncContext
from catalog_sync.woo.woocommerce import WooTarget

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 70.0


def is_inconclusive(res: ApiResult) -> bool:
    """The target could not answer: transport error, rate limit or 5xx."""
    if res.ok or res.failure.kind == NOT_FOUND:
        return False
    if res.failure.kind in (TRANSPORT, RATE_LIMITED):
        return True
    return res.failure.kind == HTTP and (res.status or 0) >= 500


# ------------------------------------------------------------------------------
# Attribute helpers
# ------------------------------------------------------------------------------

def _value_key(value: Any) -> str:
    return remove_accents(normalize_value(value))


def _strip_prefix(key: str) -> str:
    key = (key or "").strip().lower()
    return key[len("attribute_"):] if key.startswith("attribute_") else key


def variation_attribute_map(variation: SourceVariation, product: Optional[SourceProduct] = None) -> Dict[str, str]:
    """
    {'pa_color': 'Red', 'size': 'M'} for a source variation.
    Stored values are often term slugs; when the parent lists the option
    by name the name is used instead.
    """
    options_by_key: Dict[str, List[str]] = {}
    for attr in (product.attributes if product else []):
        key = (attr.taxonomy or slugify(attr.name)).lower()
        options_by_key[key] = attr.options

    out: Dict[str, str] = {}
    for raw_key, value in (variation.attributes or {}).items():
        key = _strip_prefix(raw_key)
        resolved = value
        for opt in options_by_key.get(key, []):
            if slugify(opt) == slugify(value):
                resolved = opt
                break
        out[key] = resolved
    return out


def attribute_name_variants(target_attr: Dict[str, Any]) -> List[str]:
    """Keys a target attribute may be stored under on the source side."""
    bases = []
    slug = (target_attr.get("slug") or "").strip().lower()
    if slug:
        bases += [slug, remove_accents(slug)]
    name = target_attr.get("name") or ""
    if name:
        bases += [slugify(name), name.strip().lower()]

    variants: List[str] = []
    for b in bases:
        b = _strip_prefix(b)
        core = b[3:] if b.startswith("pa_") else b
        for cand in (f"pa_{core}", core):
            if cand and cand not in variants:
                variants.append(cand)
    return variants


def attribute_overlap(target_variation: Dict[str, Any], source_attrs: Dict[str, str]) -> float:
    """Percentage of the target variation's attributes matched by the source map."""
    attrs = target_variation.get("attributes") or []
    if not attrs:
        return 0.0
    matched = 0
    for ta in attrs:
        for key in attribute_name_variants(ta):
            if key in source_attrs:
                if _value_key(source_attrs[key]) == _value_key(ta.get("option")):
                    matched += 1
                break
    return matched * 100.0 / len(attrs)


@dataclass
class VariationMatch:
    source: SourceVariation
    strategy: str
    score: float = 100.0


# ------------------------------------------------------------------------------
# Resolver
# ------------------------------------------------------------------------------

class EntityResolver:
    def __init__(self, woo: WooTarget, catalog: CatalogSource, mappings: MappingStore, ctx: SyncContext):
        self.woo = woo
        self.catalog = catalog
        self.mappings = mappings
        self.ctx = ctx
        # first failed lookup of the current resolve() call
        self._unreachable: Optional[ApiResult] = None

    # ---- products ----

    def _note(self, res: ApiResult) -> None:
        """Remember a lookup that failed without a real answer, for resolve()."""
        if is_inconclusive(res) and self._unreachable is None:
            self._unreachable = res

    async def resolve(self, product: SourceProduct) -> ApiResult:
        """
        Target product id for ``product``. A not_found failure only when every
        lookup got an answer; otherwise the first transport/server failure.
        """
        self._unreachable = None
        strategies = (
            ("cached_mapping", self._by_cached_mapping),
            ("same_id", self._by_same_id),
            ("sku", self._by_sku),
            ("variation_sku", self._by_variation_sku),
            ("name", self._by_name),
        )
        for name, strategy in strategies:
            target_id = await strategy(product)
            if target_id:
                self.mappings.remember_product(product.id, target_id)
                self.ctx.logger.info("Product matched on target store", {
                    "product_id": product.id, "target_id": target_id, "strategy": name,
                })
                return ApiResult.success(int(target_id), strategy=name)

        if self._unreachable is not None:
            failure = self._unreachable.failure
            self.ctx.logger.error("Target store unreachable while resolving product", {
                "product_id": product.id, "error": str(failure),
            })
            return ApiResult.fail(failure.kind, failure.message, failure.status, failure.body)

        self.ctx.logger.info("Product not found on target store", {"product_id": product.id, "sku": product.sku})
        return ApiResult.not_found("Product not found on target store")

    async def _exists(self, target_id: int) -> Optional[bool]:
        """True/False when the target answered, None when it could not be reached."""
        res = await self.woo.get_product(target_id)
        if res.ok:
            return isinstance(res.value, dict) and res.value.get("status") != "trash"
        if res.failure.is_not_found:
            return False
        self._note(res)
        return None

    async def _by_cached_mapping(self, product: SourceProduct) -> Optional[int]:
        cached = self.mappings.product_target(product.id)
        if not cached:
            return None
        exists = await self._exists(cached)
        if exists:
            return cached
        if exists is False:
            self.ctx.logger.warning("Stale product mapping removed", {
                "product_id": product.id, "target_id": cached,
            })
            self.mappings.forget_product(product.id)
        return None

    async def _by_same_id(self, product: SourceProduct) -> Optional[int]:
        if self.mappings.product_target(product.id) == product.id:
            return None
        return product.id if await self._exists(product.id) else None

    @staticmethod
    def _product_id_of(hit: Dict[str, Any]) -> Optional[int]:
        if hit.get("type") == "variation" or hit.get("parent_id"):
            return hit.get("parent_id") or None
        return hit.get("id")

    async def _find_by_sku(self, sku: str) -> List[Dict[str, Any]]:
        wanted = normalize_sku(sku)
        for params in ({"sku": sku.strip()}, {"search": sku.strip()}):
            res = await self.woo.find_products(**params)
            if not res.ok:
                self._note(res)
                continue
            hits = [h for h in res.value if isinstance(h, dict) and normalize_sku(h.get("sku")) == wanted]
            if hits:
                return hits
        return []

    async def _by_sku(self, product: SourceProduct) -> Optional[int]:
        if not normalize_sku(product.sku):
            return None
        for hit in await self._find_by_sku(product.sku):
            pid = self._product_id_of(hit)
            if pid:
                return pid
        return None

    async def _by_variation_sku(self, product: SourceProduct) -> Optional[int]:
        if not product.is_variable:
            return None
        parent_sku = normalize_sku(product.sku)
        for variation in self.catalog.get_variations(product):
            v_sku = normalize_sku(variation.sku)
            if not v_sku or v_sku == parent_sku:
                continue
            for hit in await self._find_by_sku(variation.sku):
                if hit.get("parent_id"):
                    return int(hit["parent_id"])
        return None

    async def _by_name(self, product: SourceProduct) -> Optional[int]:
        name = (product.name or "").strip()
        if not name:
            return None
        res = await self.woo.find_products(search=name)
        if not res.ok:
            self._note(res)
            return None
        if not res.value:
            return None
        top = res.value[0]
        if isinstance(top, dict) and (top.get("name") or "").strip().casefold() == name.casefold():
            return self._product_id_of(top)
        return None

    # ---- variations ----

    def match_variation(
        self,
        target_variation: Dict[str, Any],
        sources: List[SourceVariation],
        product: SourceProduct,
    ) -> Optional[VariationMatch]:
        """Best source variation for one target variation, or None."""
        parent_sku = normalize_sku(product.sku)

        t_sku = normalize_sku(target_variation.get("sku"))
        if t_sku and t_sku != parent_sku:
            for s in sources:
                if normalize_sku(s.sku) == t_sku:
                    return VariationMatch(s, "sku")

        t_id = target_variation.get("id")
        for s in sources:
            if t_id and self.mappings.variation_target(s.id) == int(t_id):
                return VariationMatch(s, "mapping")

        best: Optional[SourceVariation] = None
        best_score = 0.0
        for s in sources:
            score = attribute_overlap(target_variation, variation_attribute_map(s, product))
            if score > best_score:
                best, best_score = s, score
        if best is not None and best_score >= MATCH_THRESHOLD:
            return VariationMatch(best, "attributes", best_score)
        return None

from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, List, Optional

from catalog_sync.cache.transients import DAY_IN_SECONDS
from catalog_sync.catalog.models import SourceAttribute, SourceProduct
from catalog_sync.sync.components.util import normalize_value, slugify
from catalog_sync.sync.context import SyncContext
from catalog_sync.woo.woocommerce import WooTarget

logger = logging.getLogger(__name__)


def snapshot_key(target_url: str) -> str:
    return "attr_" + hashlib.md5((target_url or "").encode("utf-8")).hexdigest()


def raw_attribute_name(attr: SourceAttribute) -> str:
    """'pa_boja' -> 'boja'; custom attributes keep their label."""
    name = attr.taxonomy or attr.name or ""
    return name[3:] if name.startswith("pa_") else name


class AttributeResolver:
    """
    Resolves source attributes to the target store's global attributes/terms.

    The target catalog (every attribute plus its terms) is fetched once and kept
    in the transient cache for a day, keyed by target URL.
    """

    def __init__(self, woo: WooTarget, ctx: SyncContext, name_map: Optional[Dict[str, str]] = None):
        self.woo = woo
        self.ctx = ctx
        self.name_map = name_map if name_map is not None else dict(woo.config.attribute_name_map)
        self._snapshot: Optional[Dict[str, Any]] = None

    # ---- snapshot ----

    async def _fetch_snapshot(self) -> Dict[str, Any]:
        attributes = await self.woo.get_attributes()
        terms: Dict[str, List[dict]] = {}
        for a in attributes:
            if a.get("id") is None:
                continue
            terms[str(a["id"])] = await self.woo.get_attribute_terms(a["id"])
        return {"attributes": attributes, "terms": terms}

    async def snapshot(self) -> Dict[str, Any]:
        if self._snapshot is not None:
            return self._snapshot

        key = snapshot_key(self.woo.config.base_url)
        cached = self.ctx.transients.get(key)
        if isinstance(cached, dict) and cached.get("attributes"):
            self._snapshot = cached
            return cached

        # Nothing usable cached (or an empty catalog was cached): fetch once.
        snap = await self._fetch_snapshot()
        if snap["attributes"]:
            self.ctx.transients.set(key, snap, DAY_IN_SECONDS)
            self.ctx.logger.info("Target attribute catalog cached", {
                "attributes": len(snap["attributes"]),
            })
        else:
            self.ctx.logger.warning("Target store returned no attributes")
        self._snapshot = snap
        return snap

    # ---- lookups ----

    def mapped_name(self, attr: SourceAttribute) -> str:
        raw = raw_attribute_name(attr)
        if raw in self.name_map:
            return self.name_map[raw]
        return raw[:1].upper() + raw[1:]

    async def find_target_attribute(self, attr: SourceAttribute) -> Optional[dict]:
        snap = await self.snapshot()
        wanted = self.mapped_name(attr).strip().lower()
        raw_slug = slugify(raw_attribute_name(attr))
        for a in snap["attributes"]:
            if (a.get("name") or "").strip().lower() == wanted:
                return a
        for a in snap["attributes"]:
            slug = (a.get("slug") or "").lower()
            if slug and slug in (f"pa_{raw_slug}", raw_slug):
                return a
        return None

    async def resolve_options(self, options: List[str], target_attribute_id: int) -> List[str]:
        """Swap each option for the target term's spelling when one matches."""
        snap = await self.snapshot()
        terms = snap["terms"].get(str(target_attribute_id)) or []
        by_norm = {normalize_value(t.get("name")): t.get("name") for t in terms if t.get("name")}
        out: List[str] = []
        for opt in options:
            if opt is None or str(opt).strip() == "":
                continue
            value = by_norm.get(normalize_value(opt), str(opt))
            if value not in out:
                out.append(value)
        return out

    # ---- payload ----

    async def prepare_product_attributes(self, product: SourceProduct) -> List[Dict[str, Any]]:
        prepared: List[Dict[str, Any]] = []
        for attr in product.attributes:
            if not attr.taxonomy:
                # local (per-product) attribute: sent by name, no global id
                options = [o for o in attr.options if str(o).strip()]
                if options:
                    prepared.append({
                        "name": attr.name,
                        "position": attr.position,
                        "visible": attr.visible,
                        "variation": attr.variation,
                        "options": list(dict.fromkeys(options)),
                    })
                continue

            target = await self.find_target_attribute(attr)
            if not target:
                self.ctx.logger.warning("Attribute not found on target store, skipped", {
                    "attribute": attr.taxonomy, "mapped_name": self.mapped_name(attr),
                })
                continue

            options = await self.resolve_options(attr.options, target["id"])
            if options:
                prepared.append({
                    "id": target["id"],
                    "name": target.get("name"),
                    "position": attr.position,
                    "visible": True,
                    "variation": attr.variation,
                    "options": options,
                })
        return prepared

# catalog_sync/sync/components/categories.py
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List

from catalog_sync.catalog.models import Term
from catalog_sync.result import ApiResult
from catalog_sync.sync.context import SyncContext
from catalog_sync.woo.woocommerce import WooTarget

logger = logging.getLogger(__name__)

Finder = Callable[..., Awaitable[ApiResult]]


def _ref(remote: dict) -> Dict[str, Any]:
    return {
        "id": remote.get("id"),
        "name": remote.get("name"),
        "slug": remote.get("slug"),
        "parent": remote.get("parent") or 0,
    }


class TermResolver:
    """
    Maps source taxonomy terms to target terms: slug lookup, then name search,
    then a bare {name, slug} reference the target store can create from.
    """

    def __init__(self, finder: Finder, ctx: SyncContext, taxonomy: str = "category"):
        self.finder = finder
        self.ctx = ctx
        self.taxonomy = taxonomy
        self._resolved: Dict[str, Dict[str, Any]] = {}

    async def _first(self, **params) -> Dict[str, Any] | None:
        res = await self.finder(**params)
        if res.ok and res.value and isinstance(res.value[0], dict):
            return _ref(res.value[0])
        return None

    async def resolve(self, term: Term) -> Dict[str, Any]:
        key = term.slug or term.name
        if key in self._resolved:
            return self._resolved[key]

        found = None
        if term.slug:
            found = await self._first(slug=term.slug)
        if found is None and term.name:
            found = await self._first(search=term.name)
        if found is None:
            self.ctx.logger.info("Term not found on target store, sent by name", {
                "taxonomy": self.taxonomy, "name": term.name, "slug": term.slug,
            })
            found = {"name": term.name, "slug": term.slug}

        self._resolved[key] = found
        return found

    async def resolve_all(self, terms: List[Term]) -> List[Dict[str, Any]]:
        return [await self.resolve(t) for t in terms]


def category_resolver(woo: WooTarget, ctx: SyncContext) -> TermResolver:
    return TermResolver(woo.find_categories, ctx, "category")


def tag_resolver(woo: WooTarget, ctx: SyncContext) -> TermResolver:
    return TermResolver(woo.find_tags, ctx, "tag")

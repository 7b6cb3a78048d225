#===========================================================================
# catalog_sync/service.py
# Long-lived collaborators (catalog, log store, transients) and one entry
# point per inbound action. A fresh SyncContext / HTTP client per run.
#===========================================================================
from __future__ import annotations

import asyncio
import logging
import uuid
from functools import lru_cache
from pathlib import Path
from typing import Any, Awaitable, Callable

from catalog_sync.cache.transients import TransientCache
from catalog_sync.catalog.source import CatalogSource, JsonCatalog
from catalog_sync.config import TargetConfig, settings
from catalog_sync.models import sync_claim
from catalog_sync.result import ApiResult, VALIDATION
from catalog_sync.sync.context import SyncContext
from catalog_sync.sync.product_sync import build_product_sync
from catalog_sync.sync_logger import LogStore, SyncLogger
from catalog_sync.woo.http_client import RetryClient
from catalog_sync.woo.woocommerce import WooTarget

logger = logging.getLogger("uvicorn.error")

ALREADY_RUNNING = "A sync for this product is already running"


class SyncService:
    def __init__(
        self,
        config: TargetConfig,
        catalog: CatalogSource,
        log_store: LogStore,
        transients: TransientCache,
        *,
        logging_enabled: bool = True,
        token_secret: str = "",
        claim_ttl_seconds: int = sync_claim.DEFAULT_TTL_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.catalog = catalog
        self.log_store = log_store
        self.transients = transients
        self.logging_enabled = logging_enabled
        self.token_secret = token_secret
        self.claim_ttl_seconds = claim_ttl_seconds
        self.sleep = sleep

    def context(self) -> SyncContext:
        return SyncContext(
            logger=SyncLogger(self.log_store, enabled=self.logging_enabled),
            transients=self.transients,
            sleep=self.sleep,
        )

    def _http(self, ctx: SyncContext) -> RetryClient:
        return RetryClient(ctx.logger, verify=self.config.verify_ssl, sleep=ctx.sleep)

    async def _claimed(self, product_id: int, run) -> ApiResult:
        owner = uuid.uuid4().hex
        if not await sync_claim.claim(product_id, owner, self.claim_ttl_seconds):
            return ApiResult.fail(VALIDATION, ALREADY_RUNNING, steps=[])
        try:
            return await run()
        finally:
            await sync_claim.release(product_id, owner)

    async def full_sync(self, product_id: int, skip_images: bool = False) -> ApiResult:
        async def run():
            ctx = self.context()
            async with self._http(ctx) as http:
                sync = build_product_sync(self.config, self.catalog, ctx, http)
                return await sync.full_sync(product_id, skip_images=skip_images)
        return await self._claimed(product_id, run)

    async def stock_sync(self, product_id: int) -> ApiResult:
        async def run():
            ctx = self.context()
            async with self._http(ctx) as http:
                sync = build_product_sync(self.config, self.catalog, ctx, http)
                return await sync.stock_only_sync(product_id)
        return await self._claimed(product_id, run)

    async def test_connection(self, test_type: str = "rest") -> ApiResult:
        ctx = self.context()
        async with self._http(ctx) as http:
            woo = WooTarget(self.config, http)
            if test_type == "basic":
                res = await woo.ping_media()
            else:
                res = await woo.ping_rest()
        if res.ok:
            ctx.logger.success("Connection test passed", {"test_type": test_type})
        else:
            ctx.logger.error("Connection test failed", {"test_type": test_type, "error": res.message})
        return res

    def clear_logs(self) -> None:
        self.log_store.clear()


@lru_cache(maxsize=1)
def get_service() -> SyncService:
    """FastAPI dependency: the process-wide service built from settings."""
    return SyncService(
        TargetConfig.from_settings(settings),
        JsonCatalog(Path(settings.CATALOG_PATH)),
        LogStore(Path(settings.LOG_STORE_PATH), max_entries=settings.MAX_LOG_ENTRIES),
        TransientCache(Path(settings.TRANSIENTS_PATH)),
        logging_enabled=settings.ENABLE_LOGGING,
        token_secret=settings.SYNC_TOKEN_SECRET,
        claim_ttl_seconds=settings.SYNC_CLAIM_TTL_SECONDS,
    )

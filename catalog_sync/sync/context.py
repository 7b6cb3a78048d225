# catalog_sync/sync/context.py
# Per-run collaborators shared by every component of one sync invocation.
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict

from catalog_sync.cache.transients import TransientCache
from catalog_sync.sync_logger import SyncLogger


@dataclass
class SyncContext:
    logger: SyncLogger
    transients: TransientCache = field(default_factory=TransientCache)
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    # filename -> target media id, shared by every image synchronizer of this run
    # (the product and all of its variations)
    image_ids: Dict[str, int] = field(default_factory=dict)

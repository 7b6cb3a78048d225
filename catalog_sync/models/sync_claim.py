# catalog_sync/models/sync_claim.py
# One row per product while a sync for it is running.
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import Integer, String, DateTime, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.db import Base, get_sessionmaker

logger = logging.getLogger("uvicorn.error")

DEFAULT_TTL_SECONDS = 600


class SyncClaim(Base):
    __tablename__ = "sync_claims"

    product_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner: Mapped[str] = mapped_column(String(64))
    claimed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


async def claim(product_id: int, owner: str, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> bool:
    """
    Take the sync claim for ``product_id``. Returns False while another live
    claim exists; claims older than ``ttl_seconds`` are taken over.
    """
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=ttl_seconds)
    Session = get_sessionmaker()
    async with Session() as session:
        await session.execute(
            delete(SyncClaim).where(SyncClaim.product_id == product_id, SyncClaim.claimed_at < cutoff)
        )
        session.add(SyncClaim(product_id=product_id, owner=owner, claimed_at=now))
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info("[CLAIM] product %s is already being synced", product_id)
            return False
    return True


async def release(product_id: int, owner: str) -> None:
    Session = get_sessionmaker()
    async with Session() as session:
        await session.execute(
            delete(SyncClaim).where(SyncClaim.product_id == product_id, SyncClaim.owner == owner)
        )
        await session.commit()


async def current_owner(product_id: int) -> str | None:
    Session = get_sessionmaker()
    async with Session() as session:
        row = (await session.execute(select(SyncClaim).where(SyncClaim.product_id == product_id))).scalar_one_or_none()
        return row.owner if row else None

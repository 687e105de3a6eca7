"""
Claim ledger: the durable store of who marked which gift as bought.

No authorisation happens here. The store's constraints (one row per
gift/visitor, one active row per gift) are the serialisation point that
the claim protocol relies on when two visitors race for the same gift.
"""
from collections.abc import Iterable
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from giftlist.core.errors import ClaimWriteConflict, StorageError
from giftlist.models.models import Claim

logger = logging.getLogger("giftlist.ledger")


async def get_active_claim(db: AsyncSession, gift_id: int) -> Claim | None:
    try:
        result = await db.execute(
            select(Claim)
            .where(Claim.gift_id == gift_id, Claim.bought.is_(True))
            .limit(1)
            .execution_options(populate_existing=True)
        )
    except SQLAlchemyError as exc:
        raise StorageError(f"get_active_claim gift_id={gift_id}: {exc}") from exc
    return result.scalar_one_or_none()


async def get_claim_for(db: AsyncSession, gift_id: int, visitor_id: str) -> Claim | None:
    try:
        result = await db.execute(
            select(Claim)
            .where(Claim.gift_id == gift_id, Claim.visitor_id == visitor_id)
            .execution_options(populate_existing=True)
        )
    except SQLAlchemyError as exc:
        raise StorageError(f"get_claim_for gift_id={gift_id}: {exc}") from exc
    return result.scalar_one_or_none()


async def get_active_claims(db: AsyncSession, gift_ids: Iterable[int] | None = None) -> dict[int, Claim]:
    stmt = select(Claim).where(Claim.bought.is_(True))
    if gift_ids is not None:
        ids = list(gift_ids)
        if not ids:
            return {}
        stmt = stmt.where(Claim.gift_id.in_(ids))
    try:
        result = await db.execute(stmt.execution_options(populate_existing=True))
    except SQLAlchemyError as exc:
        raise StorageError(f"get_active_claims: {exc}") from exc
    return {claim.gift_id: claim for claim in result.scalars()}


async def count_claims(db: AsyncSession, gift_id: int, *, active_only: bool = False) -> int:
    stmt = select(func.count(Claim.id)).where(Claim.gift_id == gift_id)
    if active_only:
        stmt = stmt.where(Claim.bought.is_(True))
    result = await db.execute(stmt)
    return int(result.scalar_one())


async def set_claimed(db: AsyncSession, gift_id: int, visitor_id: str) -> Claim:
    """
    Upsert the visitor's row with bought=True and commit.

    Raises ClaimWriteConflict when a constraint rejects the write: another
    visitor holds the active row, the same visitor raced itself, or the gift
    vanished underneath us.
    """
    try:
        claim = await get_claim_for(db, gift_id, visitor_id)
        if claim is not None:
            claim.bought = True
        else:
            claim = Claim(gift_id=gift_id, visitor_id=visitor_id, bought=True)
            db.add(claim)
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.info("Claim write rejected by constraint gift_id=%s visitor_id=%s", gift_id, visitor_id)
        raise ClaimWriteConflict(str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError(f"set_claimed gift_id={gift_id}: {exc}") from exc
    return claim


async def clear_claim(db: AsyncSession, gift_id: int, visitor_id: str | None = None) -> int:
    """
    Delete the active row for a gift and commit. With visitor_id, delete only
    if that visitor still holds it. Returns the number of rows removed.
    """
    stmt = delete(Claim).where(Claim.gift_id == gift_id, Claim.bought.is_(True))
    if visitor_id is not None:
        stmt = stmt.where(Claim.visitor_id == visitor_id)
    try:
        result = await db.execute(stmt.execution_options(synchronize_session="fetch"))
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError(f"clear_claim gift_id={gift_id}: {exc}") from exc
    return result.rowcount or 0

"""Gift catalog: admin-owned CRUD over gifts plus the public read model."""
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from giftlist.core.errors import NotFoundError, StorageError, ValidationError
from giftlist.models.models import Gift
from giftlist.schemas.gift import GiftCreate, GiftPublic
from giftlist.services import claim_ledger

logger = logging.getLogger("giftlist.catalog")

_UPDATABLE_FIELDS = {"title", "note", "url", "image_url", "image_focal_x", "image_focal_y"}


def _check_focal(name: str, value: Any) -> None:
    if value is not None and not 0 <= value <= 1:
        raise ValidationError(f"{name} must be between 0 and 1")


async def get_gift(db: AsyncSession, gift_id: int) -> Gift:
    try:
        result = await db.execute(
            select(Gift).where(Gift.id == gift_id).execution_options(populate_existing=True)
        )
    except SQLAlchemyError as exc:
        raise StorageError(f"get_gift gift_id={gift_id}: {exc}") from exc
    gift = result.scalar_one_or_none()
    if gift is None:
        raise NotFoundError()
    return gift


async def gift_exists(db: AsyncSession, gift_id: int) -> bool:
    try:
        result = await db.execute(select(Gift.id).where(Gift.id == gift_id))
    except SQLAlchemyError as exc:
        raise StorageError(f"gift_exists gift_id={gift_id}: {exc}") from exc
    return result.scalar_one_or_none() is not None


async def list_gifts(db: AsyncSession) -> list[Gift]:
    try:
        result = await db.execute(select(Gift).order_by(Gift.created_at.desc(), Gift.id.desc()))
    except SQLAlchemyError as exc:
        raise StorageError(f"list_gifts: {exc}") from exc
    return list(result.scalars())


async def create_gift(db: AsyncSession, payload: GiftCreate) -> Gift:
    # HTTP requests hit the GiftCreate validator first (422); this covers direct callers.
    title = (payload.title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    _check_focal("imageFocalX", payload.image_focal_x)
    _check_focal("imageFocalY", payload.image_focal_y)

    gift = Gift(
        title=title,
        note=payload.note,
        url=payload.url,
        image_url=payload.image_url,
        image_focal_x=payload.image_focal_x,
        image_focal_y=payload.image_focal_y,
    )
    db.add(gift)
    try:
        await db.commit()
        await db.refresh(gift)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError(f"create_gift: {exc}") from exc
    logger.info("Gift created id=%s", gift.id)
    return gift


async def update_gift(db: AsyncSession, gift_id: int, fields: dict[str, Any]) -> Gift:
    gift = await get_gift(db, gift_id)

    for key, value in fields.items():
        if key not in _UPDATABLE_FIELDS:
            continue
        if key == "title":
            value = (value or "").strip()
            if not value:
                raise ValidationError("Title is required")
        if key in {"image_focal_x", "image_focal_y"}:
            _check_focal(key, value)
        setattr(gift, key, value)

    try:
        await db.commit()
        await db.refresh(gift)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError(f"update_gift gift_id={gift_id}: {exc}") from exc
    logger.info("Gift updated id=%s fields=%s", gift.id, sorted(fields))
    return gift


async def delete_gift(db: AsyncSession, gift_id: int) -> Gift:
    """Delete a gift and, through the FK cascade, every claim on it."""
    gift = await get_gift(db, gift_id)
    try:
        await db.delete(gift)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError(f"delete_gift gift_id={gift_id}: {exc}") from exc
    logger.info("Gift deleted id=%s", gift_id)
    return gift


def serialize_gift(gift: Gift, bought_by: str | None, visitor_id: str | None, is_admin: bool) -> GiftPublic:
    bought = bought_by is not None
    return GiftPublic(
        id=gift.id,
        title=gift.title,
        note=gift.note,
        url=gift.url,
        image_url=gift.image_url,
        image_focal_x=gift.image_focal_x,
        image_focal_y=gift.image_focal_y,
        created_at=gift.created_at,
        bought=bought,
        bought_by=bought_by,
        can_toggle=not bought or is_admin or (visitor_id is not None and bought_by == visitor_id),
    )


async def list_gifts_for_viewer(
    db: AsyncSession,
    visitor_id: str | None,
    is_admin: bool,
) -> list[GiftPublic]:
    gifts = await list_gifts(db)
    active = await claim_ledger.get_active_claims(db, [g.id for g in gifts])
    return [
        serialize_gift(
            gift,
            active[gift.id].visitor_id if gift.id in active else None,
            visitor_id,
            is_admin,
        )
        for gift in gifts
    ]


async def get_gift_for_viewer(
    db: AsyncSession,
    gift_id: int,
    visitor_id: str | None,
    is_admin: bool,
) -> GiftPublic:
    gift = await get_gift(db, gift_id)
    claim = await claim_ledger.get_active_claim(db, gift_id)
    return serialize_gift(gift, claim.visitor_id if claim else None, visitor_id, is_admin)

"""
Advisory tracking of unique daily visitors.

Each (visitor id, client ip) pair is recorded once per UTC day. When the
day's count passes the configured threshold a warning is logged and an
audit event emitted. Nothing here may block or fail a claim request.
"""
from datetime import date, datetime, timezone
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from giftlist.core.audit import AuditAction, audit_log
from giftlist.core.config import settings
from giftlist.models.models import VisitorLog

logger = logging.getLogger("giftlist.abuse")


def _today() -> date:
    return datetime.now(timezone.utc).date()


async def count_unique_visitors(db: AsyncSession, day: date) -> int:
    result = await db.execute(
        select(func.count()).select_from(
            select(VisitorLog.visitor_id, VisitorLog.ip_address)
            .where(VisitorLog.visit_date == day)
            .distinct()
            .subquery()
        )
    )
    return int(result.scalar_one())


async def _insert_visit(db: AsyncSession, visitor_id: str, ip_address: str, day: date) -> bool:
    existing = await db.execute(
        select(VisitorLog.id)
        .where(
            VisitorLog.visitor_id == visitor_id,
            VisitorLog.ip_address == ip_address,
            VisitorLog.visit_date == day,
        )
        .limit(1)
    )
    if existing.scalar_one_or_none() is not None:
        return False
    db.add(VisitorLog(visitor_id=visitor_id, ip_address=ip_address, visit_date=day))
    try:
        await db.commit()
    except IntegrityError:
        # a concurrent request recorded the same visitor first
        await db.rollback()
        return False
    return True


async def record_visit(
    db: AsyncSession,
    visitor_id: str,
    ip_address: str | None,
    today: date | None = None,
) -> int | None:
    """Record a visit and return the day's unique count, or None if tracking failed."""
    if not settings.abuse_guard_enabled:
        return None
    day = today or _today()
    ip = (ip_address or "unknown")[:64]
    try:
        inserted = await _insert_visit(db, visitor_id, ip, day)
        count = await count_unique_visitors(db, day)
    except Exception:
        logger.exception("Visitor tracking failed visitor_id=%s", visitor_id)
        try:
            await db.rollback()
        except Exception:
            logger.debug("Rollback after visitor tracking failure also failed", exc_info=True)
        return None

    threshold = settings.abuse_daily_visitor_threshold
    if inserted and count > threshold:
        logger.warning(
            "Daily visitor limit exceeded: %d unique visitors on %s (threshold=%d)",
            count,
            day.isoformat(),
            threshold,
        )
        audit_log(
            AuditAction.VISITOR_LIMIT_EXCEEDED,
            details={"date": day.isoformat(), "unique_visitors": count, "threshold": threshold},
            success=False,
        )
    return count


async def record_visit_in_background(
    session_factory: async_sessionmaker[AsyncSession],
    visitor_id: str,
    ip_address: str | None,
) -> None:
    """Background-task entry point: owns its session, never raises."""
    try:
        async with session_factory() as session:
            await record_visit(session, visitor_id, ip_address)
    except Exception:
        logger.exception("Visitor tracking task failed visitor_id=%s", visitor_id)

"""One-time login links for admins."""
from datetime import datetime, timedelta, timezone
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from giftlist.core.config import settings
from giftlist.core.security import generate_otp_token
from giftlist.models.models import OtpToken

logger = logging.getLogger("giftlist.auth")


def is_admin_email(email: str) -> bool:
    return email.strip().lower() in settings.admin_email_list


async def issue_otp(db: AsyncSession, email: str, now: datetime | None = None) -> OtpToken:
    issued_at = now or datetime.now(timezone.utc)
    otp = OtpToken(
        email=email.strip().lower(),
        token=generate_otp_token(),
        expires_at=issued_at + timedelta(minutes=settings.otp_expire_minutes),
        used=False,
    )
    db.add(otp)
    await db.commit()
    await db.refresh(otp)
    logger.info("OTP issued email=%s expires_at=%s", otp.email, otp.expires_at)
    return otp


async def consume_otp(db: AsyncSession, token: str, now: datetime | None = None) -> str | None:
    """
    Mark a token used and return its email. A single conditional UPDATE makes
    two concurrent verifications of the same link yield one winner.
    """
    if not token:
        return None
    current = now or datetime.now(timezone.utc)
    result = await db.execute(
        update(OtpToken)
        .where(
            OtpToken.token == token,
            OtpToken.used.is_(False),
            OtpToken.expires_at > current,
        )
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if not result.rowcount:
        return None

    email_result = await db.execute(select(OtpToken.email).where(OtpToken.token == token))
    return email_result.scalar_one_or_none()

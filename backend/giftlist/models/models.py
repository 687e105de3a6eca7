from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from giftlist.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Gift(Base):
    __tablename__ = "gifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_focal_x: Mapped[float | None] = mapped_column(Float, nullable=True)
    image_focal_y: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    claims: Mapped[list["Claim"]] = relationship(
        back_populates="gift",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(
            "image_focal_x IS NULL OR (image_focal_x >= 0 AND image_focal_x <= 1)",
            name="ck_gifts_focal_x_range",
        ),
        CheckConstraint(
            "image_focal_y IS NULL OR (image_focal_y >= 0 AND image_focal_y <= 1)",
            name="ck_gifts_focal_y_range",
        ),
    )


class Claim(Base):
    """One visitor's "bought" toggle on one gift."""

    __tablename__ = "claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gift_id: Mapped[int] = mapped_column(ForeignKey("gifts.id", ondelete="CASCADE"), nullable=False, index=True)
    visitor_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    bought: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    gift: Mapped[Gift] = relationship(back_populates="claims")

    __table_args__ = (
        UniqueConstraint("gift_id", "visitor_id", name="uq_claims_gift_visitor"),
        # At most one active claim per gift, enforced by the store itself.
        Index(
            "ux_claims_active_gift",
            "gift_id",
            unique=True,
            sqlite_where=text("bought"),
            postgresql_where=text("bought"),
        ),
    )


class VisitorLog(Base):
    __tablename__ = "visitor_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    visitor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False, default="unknown")
    visit_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("visitor_id", "ip_address", "visit_date", name="uq_visitor_logs_daily"),
    )


class OtpToken(Base):
    __tablename__ = "otp_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

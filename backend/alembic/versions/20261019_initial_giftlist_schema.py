from alembic import op
import sqlalchemy as sa


revision = "20261019_initial_giftlist"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "gifts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("image_focal_x", sa.Float(), nullable=True),
        sa.Column("image_focal_y", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "image_focal_x IS NULL OR (image_focal_x >= 0 AND image_focal_x <= 1)",
            name="ck_gifts_focal_x_range",
        ),
        sa.CheckConstraint(
            "image_focal_y IS NULL OR (image_focal_y >= 0 AND image_focal_y <= 1)",
            name="ck_gifts_focal_y_range",
        ),
    )

    op.create_table(
        "claims",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("gift_id", sa.Integer(), sa.ForeignKey("gifts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("visitor_id", sa.String(length=36), nullable=False),
        sa.Column("bought", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("gift_id", "visitor_id", name="uq_claims_gift_visitor"),
    )
    op.create_index("ix_claims_gift_id", "claims", ["gift_id"])
    op.create_index("ix_claims_visitor_id", "claims", ["visitor_id"])
    op.create_index(
        "ux_claims_active_gift",
        "claims",
        ["gift_id"],
        unique=True,
        sqlite_where=sa.text("bought"),
        postgresql_where=sa.text("bought"),
    )

    op.create_table(
        "visitor_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("visitor_id", sa.String(length=36), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=False),
        sa.Column("visit_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("visitor_id", "ip_address", "visit_date", name="uq_visitor_logs_daily"),
    )
    op.create_index("ix_visitor_logs_visit_date", "visitor_logs", ["visit_date"])

    op.create_table(
        "otp_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_otp_tokens_email", "otp_tokens", ["email"])


def downgrade() -> None:
    op.drop_index("ix_otp_tokens_email", table_name="otp_tokens")
    op.drop_table("otp_tokens")
    op.drop_index("ix_visitor_logs_visit_date", table_name="visitor_logs")
    op.drop_table("visitor_logs")
    op.drop_index("ux_claims_active_gift", table_name="claims")
    op.drop_index("ix_claims_visitor_id", table_name="claims")
    op.drop_index("ix_claims_gift_id", table_name="claims")
    op.drop_table("claims")
    op.drop_table("gifts")

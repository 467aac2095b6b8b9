"""Create catalog counter tables, analytics_events and daily_analytics.

Revision ID: 3f9c1a7e2b40
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

revision = "3f9c1a7e2b40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(200), nullable=False, unique=True),
        sa.Column("parent_id", sa.String(36), sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("total_views", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime),
    )
    op.create_index("ix_categories_parent_active", "categories", ["parent_id", "is_active"])

    op.create_table(
        "products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("slug", sa.String(300), nullable=False, unique=True),
        sa.Column("category_id", sa.String(36), sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("discount", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_views", sa.Integer, nullable=False, server_default="0"),
        sa.Column("score", sa.Float, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime, index=True),
    )
    op.create_index("ix_products_active_score", "products", ["is_active", "score"])

    op.create_table(
        "hero_banners",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true(), index=True),
        sa.Column("impressions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("clicks", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime),
    )

    op.create_table(
        "tags",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("impressions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("clicks", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime),
    )

    op.create_table(
        "analytics_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_type", sa.String(50), nullable=False, index=True),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.String(200), nullable=True),
        sa.Column("entity_slug", sa.String(300), nullable=True),
        sa.Column("entity_name", sa.String(300), nullable=True),
        sa.Column("session_id", sa.String(100), nullable=True, index=True),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("ip", sa.String(64), nullable=True, index=True),
        sa.Column("actor_key", sa.String(100), nullable=False, server_default="unknown", index=True),
        sa.Column("metadata", sa.JSON),
        sa.Column("created_at", sa.DateTime, nullable=False, index=True),
    )
    op.create_index("ix_events_entity_ts", "analytics_events", ["entity_type", "entity_id", "created_at"])
    op.create_index("ix_events_type_ts", "analytics_events", ["event_type", "created_at"])

    op.create_table(
        "daily_analytics",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.String(200), nullable=False),
        sa.Column("entity_slug", sa.String(300), nullable=True),
        sa.Column("entity_name", sa.String(300), nullable=True),
        sa.Column("views", sa.Integer, nullable=False, server_default="0"),
        sa.Column("clicks", sa.Integer, nullable=False, server_default="0"),
        sa.Column("impressions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime),
        sa.UniqueConstraint("date", "entity_type", "entity_id", name="uq_daily_analytics_entity"),
    )
    op.create_index("ix_daily_entity_date", "daily_analytics", ["entity_type", "entity_id", "date"])


def downgrade() -> None:
    op.drop_table("daily_analytics")
    op.drop_table("analytics_events")
    op.drop_table("users")
    op.drop_table("tags")
    op.drop_table("hero_banners")
    op.drop_table("products")
    op.drop_table("categories")

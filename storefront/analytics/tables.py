"""Analytics database tables: the append-only event store and daily rollups."""
from __future__ import annotations

from sqlalchemy import Column, Date, DateTime, Index, Integer, JSON, String, UniqueConstraint

from storefront.db.tables import Base, _uuid, utcnow


class AnalyticsEventRow(Base):
    """One tracked interaction (product_view, banner_click, page_view, ...).

    Rows are never updated or deleted by the application.
    """
    __tablename__ = "analytics_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_type = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(String(200), nullable=True)
    entity_slug = Column(String(300), nullable=True)
    entity_name = Column(String(300), nullable=True)
    session_id = Column(String(100), nullable=True, index=True)
    user_id = Column(String(36), nullable=True)
    ip = Column(String(64), nullable=True, index=True)
    actor_key = Column(String(100), nullable=False, default="unknown", index=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index("ix_events_entity_ts", "entity_type", "entity_id", "created_at"),
        Index("ix_events_type_ts", "event_type", "created_at"),
    )


class DailyAnalyticsRow(Base):
    """Per-day counters for one entity, incremented as events are projected."""
    __tablename__ = "daily_analytics"

    id = Column(String(36), primary_key=True, default=_uuid)
    date = Column(Date, nullable=False)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(String(200), nullable=False)
    entity_slug = Column(String(300), nullable=True)
    entity_name = Column(String(300), nullable=True)
    views = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    impressions = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("date", "entity_type", "entity_id", name="uq_daily_analytics_entity"),
        Index("ix_daily_entity_date", "entity_type", "entity_id", "date"),
    )

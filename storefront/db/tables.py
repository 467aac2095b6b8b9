"""SQLAlchemy ORM models for the storefront catalog.

Only the columns the analytics subsystem reads or projects into live here;
catalog CRUD is owned elsewhere.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """Naive UTC timestamp — the storage convention for every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), nullable=False, unique=True)
    parent_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Counter projection
    total_views = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_categories_parent_active", "parent_id", "is_active"),
    )


class ProductRow(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(300), nullable=False)
    slug = Column(String(300), nullable=False, unique=True)
    category_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    discount = Column(Float, nullable=False, default=0.0)  # percent off

    # Counter projection
    total_views = Column(Integer, nullable=False, default=0)
    score = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        Index("ix_products_active_score", "is_active", "score"),
    )


class HeroBannerRow(Base):
    __tablename__ = "hero_banners"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Counter projection
    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)


class TagRow(Base):
    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False, unique=True)
    slug = Column(String(100), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Counter projection
    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(320), nullable=False, unique=True)
    created_at = Column(DateTime, default=utcnow)

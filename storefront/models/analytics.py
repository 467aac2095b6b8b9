"""Analytics data models — event taxonomy and wire schemas.

Wire JSON is camelCase; Python attributes stay snake_case. Every model accepts
either spelling on input.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from config.settings import settings


class EventType(str, Enum):
    PAGE_VIEW = "page_view"
    PRODUCT_VIEW = "product_view"
    PRODUCT_CLICK = "product_click"
    CATEGORY_VIEW = "category_view"
    CATEGORY_CLICK = "category_click"
    BANNER_IMPRESSION = "banner_impression"
    BANNER_CLICK = "banner_click"
    TAG_IMPRESSION = "tag_impression"
    TAG_CLICK = "tag_click"
    SEARCH = "search"
    ADD_TO_INQUIRY = "add_to_inquiry"
    CONTACT_SUBMIT = "contact_submit"


class EntityType(str, Enum):
    PRODUCT = "product"
    CATEGORY = "category"
    BANNER = "banner"
    TAG = "tag"
    PAGE = "page"


def _value(event_type: EventType | str) -> str:
    return event_type.value if isinstance(event_type, EventType) else event_type


# Event families are substring matches on the type name, so product_view and
# category_view both count as views.
def is_view(event_type: EventType | str) -> bool:
    return "view" in _value(event_type)


def is_click(event_type: EventType | str) -> bool:
    return "click" in _value(event_type)


def is_impression(event_type: EventType | str) -> bool:
    return "impression" in _value(event_type)


class DashboardPeriod(str, Enum):
    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"
    ALL = "all"


class TrendingPeriod(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Ingestion ---

class EventMetadata(CamelModel):
    """Contextual fields attached to an event. Unknown keys are kept as-is."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    search_query: Optional[str] = None
    page: Optional[str] = None
    page_query: Optional[str] = None
    previous_page: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    device: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None
    position: Optional[int] = None
    # UTM parameters
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None
    # Backlink attribution
    backlink_source: Optional[str] = None
    backlink_post: Optional[str] = None


class EventPayload(CamelModel):
    """Single event as posted by the client."""
    event_type: EventType
    entity_type: EntityType
    entity_id: Optional[str] = Field(None, max_length=200)
    entity_slug: Optional[str] = Field(None, max_length=300)
    entity_name: Optional[str] = Field(None, max_length=300)
    session_id: Optional[str] = Field(None, max_length=100)
    user_id: Optional[str] = Field(None, max_length=36)
    metadata: EventMetadata = Field(default_factory=EventMetadata)


class BatchPayload(CamelModel):
    events: list[EventPayload] = Field(..., min_length=1, max_length=settings.ANALYTICS_BATCH_MAX_EVENTS)


class TrackEventInput(EventPayload):
    """Server-side tracking request: the client payload plus derived actor data."""
    ip: Optional[str] = None
    skip_dedup: bool = False


class ViewPayload(CamelModel):
    """Optional body of the entity-scoped view endpoints."""
    user_id: Optional[str] = Field(None, max_length=36)
    session_id: Optional[str] = Field(None, max_length=100)


class TrackResponse(CamelModel):
    success: bool = True
    event_id: Optional[str] = None
    skipped: Optional[bool] = None


class BatchTrackResponse(CamelModel):
    success: bool = True
    count: int


class SuccessResponse(CamelModel):
    success: bool = True


# --- Dashboard ---

class Overview(CamelModel):
    total_views: int = 0
    total_clicks: int = 0
    unique_visitors: int = 0
    total_products: int = 0
    total_users: int = 0
    total_banner_clicks: int = 0
    total_tag_clicks: int = 0


class TopProduct(CamelModel):
    id: str
    name: str
    views: int
    unique_visitors: int
    percentage: int


class TopCategory(CamelModel):
    id: str
    name: str
    slug: str
    product_count: int
    views: int
    total_product_views: int


class BannerStat(CamelModel):
    id: str
    name: str
    impressions: int
    clicks: int
    ctr: int


class TagStat(CamelModel):
    id: str
    name: str
    slug: str
    clicks: int


class DailyTrend(CamelModel):
    date: str  # ISO date, UTC
    views: int
    clicks: int
    unique_visitors: int


class BreakdownSlice(CamelModel):
    name: str
    value: int


class DashboardData(CamelModel):
    period: DashboardPeriod
    overview: Overview
    top_products: list[TopProduct]
    top_categories: list[TopCategory]
    category_strategy: str  # "views" or "product_count"
    banner_stats: list[BannerStat]
    tag_stats: list[TagStat]
    daily_trends: list[DailyTrend]
    entity_breakdown: list[BreakdownSlice]


class DashboardResponse(CamelModel):
    success: bool = True
    data: DashboardData


# --- Per-entity stats ---

class RollupPoint(CamelModel):
    date: str
    views: int
    clicks: int
    impressions: int


class EntityStats(CamelModel):
    entity_type: EntityType
    entity_id: str
    days: int
    views: int = 0
    clicks: int = 0
    impressions: int = 0
    unique_visitors: int = 0
    daily: list[RollupPoint] = Field(default_factory=list)


class EntityStatsResponse(CamelModel):
    success: bool = True
    data: EntityStats


class ViewCounts(CamelModel):
    daily: int
    weekly: int
    monthly: int
    yearly: int


class ViewCountsResponse(CamelModel):
    success: bool = True
    data: ViewCounts


# --- Trending ---

class TrendingProduct(CamelModel):
    id: str
    name: str
    slug: str
    rank: int
    views: int = 0
    unique_visitors: int = 0
    score: float = 0
    total_views: int = 0


class TrendingMeta(CamelModel):
    total: int
    strategy: str  # "analytics", "score" or "latest"
    period: TrendingPeriod
    limit: int


class TrendingData(CamelModel):
    products: list[TrendingProduct]
    meta: TrendingMeta


class TrendingResponse(CamelModel):
    success: bool = True
    data: TrendingData


# --- Catalog ---

class Breadcrumb(CamelModel):
    id: str
    name: str
    slug: str


class BreadcrumbResponse(CamelModel):
    success: bool = True
    data: list[Breadcrumb]


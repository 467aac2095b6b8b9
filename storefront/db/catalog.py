"""Read helpers over the catalog tables used by tracking and dashboards."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.db.tables import CategoryRow, HeroBannerRow, ProductRow, TagRow, UserRow

MAX_CATEGORY_DEPTH = 10


async def get_active_product_by_slug(session: AsyncSession, slug: str) -> Optional[ProductRow]:
    stmt = select(ProductRow).where(ProductRow.slug == slug, ProductRow.is_active.is_(True))
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_active_category_by_slug(session: AsyncSession, slug: str) -> Optional[CategoryRow]:
    stmt = select(CategoryRow).where(CategoryRow.slug == slug, CategoryRow.is_active.is_(True))
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_banner(session: AsyncSession, banner_id: str) -> Optional[HeroBannerRow]:
    return await session.get(HeroBannerRow, banner_id)


async def category_breadcrumbs(session: AsyncSession, category_id: str) -> list[CategoryRow]:
    """Ancestry of a category, root first, ending with the category itself.

    The walk stops after ``MAX_CATEGORY_DEPTH`` levels or when a parent link
    points back at a category already visited.
    """
    chain: list[CategoryRow] = []
    seen: set[str] = set()
    current_id: Optional[str] = category_id
    while current_id and current_id not in seen and len(chain) < MAX_CATEGORY_DEPTH:
        category = await session.get(CategoryRow, current_id)
        if category is None:
            break
        seen.add(current_id)
        chain.append(category)
        current_id = category.parent_id
    chain.reverse()
    return chain


async def category_family_ids(session: AsyncSession, category_id: str) -> list[str]:
    """The category and its direct active children."""
    stmt = select(CategoryRow.id).where(
        or_(CategoryRow.id == category_id, CategoryRow.parent_id == category_id),
        CategoryRow.is_active.is_(True),
    )
    return list((await session.execute(stmt)).scalars().all())


async def active_category_summaries(session: AsyncSession) -> list[dict]:
    """Active categories with their active product count and summed product views."""
    p = ProductRow
    stmt = (
        select(
            CategoryRow.id,
            CategoryRow.name,
            CategoryRow.slug,
            func.count(p.id),
            func.coalesce(func.sum(p.total_views), 0),
        )
        .outerjoin(p, and_(p.category_id == CategoryRow.id, p.is_active.is_(True)))
        .where(CategoryRow.is_active.is_(True))
        .group_by(CategoryRow.id, CategoryRow.name, CategoryRow.slug)
    )
    rows = (await session.execute(stmt)).all()
    return [
        {"id": r[0], "name": r[1], "slug": r[2], "product_count": r[3], "total_product_views": r[4]}
        for r in rows
    ]


async def active_banners(session: AsyncSession) -> list[HeroBannerRow]:
    stmt = (
        select(HeroBannerRow)
        .where(HeroBannerRow.is_active.is_(True))
        .order_by(HeroBannerRow.impressions.desc(), HeroBannerRow.id.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def active_tags(session: AsyncSession) -> list[TagRow]:
    stmt = select(TagRow).where(TagRow.is_active.is_(True))
    return list((await session.execute(stmt)).scalars().all())


async def count_products(session: AsyncSession) -> int:
    return (await session.execute(select(func.count(ProductRow.id)))).scalar() or 0


async def count_users(session: AsyncSession) -> int:
    return (await session.execute(select(func.count(UserRow.id)))).scalar() or 0


async def products_by_ids(session: AsyncSession, ids: list[str]) -> dict[str, ProductRow]:
    if not ids:
        return {}
    stmt = select(ProductRow).where(ProductRow.id.in_(ids))
    return {p.id: p for p in (await session.execute(stmt)).scalars().all()}


async def ranked_products(
    session: AsyncSession,
    *,
    limit: int,
    category_ids: Optional[list[str]] = None,
    exclude_ids: Optional[list[str]] = None,
    by_score: bool = True,
) -> list[ProductRow]:
    """Active products by stored score (positive only), or newest first."""
    stmt = select(ProductRow).where(ProductRow.is_active.is_(True))
    if category_ids is not None:
        stmt = stmt.where(ProductRow.category_id.in_(category_ids))
    if exclude_ids:
        stmt = stmt.where(ProductRow.id.not_in(exclude_ids))
    if by_score:
        stmt = stmt.where(ProductRow.score > 0).order_by(ProductRow.score.desc(), ProductRow.created_at.desc())
    else:
        stmt = stmt.order_by(ProductRow.created_at.desc(), ProductRow.id.asc())
    return list((await session.execute(stmt.limit(limit))).scalars().all())

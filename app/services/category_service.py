"""
Category service: category CRUD and article/category reconciliation.

Reconciliation keeps the ``articles_categories`` junction equal to the
category set most recently supplied for an article:

    to_remove = current - requested
    to_add    = requested - current

Removals run first, then inserts.  Inserts ignore (article, category)
conflicts so two requests racing to add the same pair both succeed.
Running the same reconciliation twice is a no-op the second time.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import delete, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import Conflict, DatastoreFailure, NotFound, ValidationError
from app.models import Article, Category, articles_categories
from app.pagination import PageWindow
from app.schemas import CategoryCreate, CategoryUpdate
from app.services.bulk import partition_ids
from app.services.repository import EntityRepository, Page
from app.services.serializers import category_to_dict

logger = logging.getLogger(__name__)


def category_repository(db: AsyncSession) -> EntityRepository[Category]:
    return EntityRepository(
        db,
        Category,
        resource="Category",
        search_columns=("value", "label"),
        order_by=(Category.label.asc(), Category.id),
    )


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

@dataclass
class CategoryDelta:
    added: set[str] = field(default_factory=set)
    removed: set[str] = field(default_factory=set)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def plan_reconciliation(current: Iterable[str], requested: Iterable[str]) -> CategoryDelta:
    """Pure set arithmetic; order and duplicates in the inputs do not matter."""
    current, requested = set(current), set(requested)
    return CategoryDelta(added=requested - current, removed=current - requested)


def _insert_ignoring_conflicts(db: AsyncSession, rows: list[dict]):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(articles_categories).values(rows)
    elif dialect == "sqlite":
        stmt = sqlite_insert(articles_categories).values(rows)
    else:
        raise DatastoreFailure(f"articles_categories.insert ({dialect} unsupported)")
    return stmt.on_conflict_do_nothing(index_elements=["article_id", "category_id"])


async def current_category_ids(db: AsyncSession, article_id: str) -> set[str]:
    q = select(articles_categories.c.category_id).where(
        articles_categories.c.article_id == article_id
    )
    try:
        result = await db.execute(q)
    except SQLAlchemyError as exc:
        raise DatastoreFailure("articles_categories.select", exc) from exc
    return set(result.scalars().all())


async def ensure_categories_exist(db: AsyncSession, category_ids: Iterable[str]) -> None:
    """Reject malformed or unknown category ids before touching the junction."""
    category_ids = list(category_ids)
    if not category_ids:
        return
    valid, invalid = partition_ids(category_ids)
    known: set[str] = set()
    if valid:
        try:
            result = await db.execute(select(Category.id).where(Category.id.in_(valid)))
        except SQLAlchemyError as exc:
            raise DatastoreFailure("categories.select", exc) from exc
        known = set(result.scalars().all())
    unknown = [i for i in valid if i not in known]
    if invalid or unknown:
        raise ValidationError(
            "Unknown or malformed category ids",
            {"invalidIds": invalid, "unknownIds": unknown},
        )


async def reconcile_categories(
    db: AsyncSession, article_id: str, requested: Iterable[str] | None
) -> CategoryDelta:
    """
    Make the article's categories exactly *requested*.

    ``None`` means the caller did not supply categories: nothing changes.
    """
    if requested is None:
        return CategoryDelta()

    requested = set(requested)
    delta = plan_reconciliation(await current_category_ids(db, article_id), requested)
    if not delta.changed:
        return delta

    await ensure_categories_exist(db, delta.added)
    try:
        if delta.removed:
            await db.execute(
                delete(articles_categories).where(
                    articles_categories.c.article_id == article_id,
                    articles_categories.c.category_id.in_(sorted(delta.removed)),
                )
            )
        if delta.added:
            rows = [{"article_id": article_id, "category_id": cid} for cid in sorted(delta.added)]
            await db.execute(_insert_ignoring_conflicts(db, rows))
    except SQLAlchemyError as exc:
        logger.error("Category reconciliation failed for article %s: %s", article_id, exc)
        raise DatastoreFailure("articles_categories.reconcile", exc) from exc

    logger.info(
        "Reconciled categories for article %s: +%d -%d",
        article_id, len(delta.added), len(delta.removed),
    )
    return delta


# ---------------------------------------------------------------------------
# Category CRUD
# ---------------------------------------------------------------------------

async def _find_clash(
    db: AsyncSession, value: str | None, label: str | None, exclude_id: str | None = None
) -> Category | None:
    clauses = []
    if value is not None:
        clauses.append(Category.value == value)
    if label is not None:
        clauses.append(Category.label == label)
    if not clauses:
        return None
    q = select(Category).where(or_(*clauses))
    if exclude_id is not None:
        q = q.where(Category.id != exclude_id)
    try:
        result = await db.execute(q.limit(1))
    except SQLAlchemyError as exc:
        raise DatastoreFailure("categories.find_clash", exc) from exc
    return result.scalars().first()


async def create_category(db: AsyncSession, data: CategoryCreate) -> dict:
    existing = await _find_clash(db, data.value, data.label)
    if existing is not None:
        raise Conflict("A category with this value or label already exists", category_to_dict(existing))
    try:
        category = await category_repository(db).insert(data.model_dump())
    except IntegrityError as exc:
        raise Conflict("A category with this value or label already exists") from exc
    return category_to_dict(category)


async def update_category(db: AsyncSession, category_id: str, data: CategoryUpdate) -> dict:
    patch = data.model_dump(exclude_unset=True, exclude_none=True)
    if not patch:
        raise ValidationError("Nothing to update")
    repo = category_repository(db)
    await repo.find_by_id(category_id)
    existing = await _find_clash(db, patch.get("value"), patch.get("label"), exclude_id=category_id)
    if existing is not None:
        raise Conflict("A category with this value or label already exists", category_to_dict(existing))
    try:
        category = await repo.update_fields(category_id, patch)
    except IntegrityError as exc:
        raise Conflict("A category with this value or label already exists") from exc
    return category_to_dict(category)


async def delete_category(db: AsyncSession, category_id: str) -> dict:
    """Remove a category and its junction rows."""
    repo = category_repository(db)
    category = await repo.find_by_id(category_id)
    data = category_to_dict(category)
    try:
        await db.execute(
            delete(articles_categories).where(articles_categories.c.category_id == category_id)
        )
        await db.execute(delete(Category).where(Category.id == category_id))
    except SQLAlchemyError as exc:
        raise DatastoreFailure("categories.delete", exc) from exc
    logger.info("Deleted category %s (%s)", category_id, data["value"])
    return data


async def get_category(db: AsyncSession, category_id: str) -> dict:
    return category_to_dict(await category_repository(db).find_by_id(category_id))


async def list_categories(db: AsyncSession, window: PageWindow) -> Page:
    page = await category_repository(db).find_all(window)
    page.items = [category_to_dict(c) for c in page.items]
    return page


async def search_categories(db: AsyncSession, term: str, window: PageWindow) -> Page:
    if not term or not term.strip():
        raise ValidationError("Search term is required")
    page = await category_repository(db).search(term, window)
    page.items = [category_to_dict(c) for c in page.items]
    return page


async def categories_for_article(
    db: AsyncSession, article_id: str, window: PageWindow, privileged: bool = False
) -> Page:
    where = [Article.id == article_id]
    if not privileged:
        where.append(Article.deleted_at.is_(None))
    try:
        found = (await db.execute(select(Article.id).where(*where))).scalar_one_or_none()
    except SQLAlchemyError as exc:
        raise DatastoreFailure("articles.select", exc) from exc
    if found is None:
        raise NotFound("Article", article_id)

    member = Category.id.in_(
        select(articles_categories.c.category_id).where(
            articles_categories.c.article_id == article_id
        )
    )
    page = await category_repository(db).find_all(window, where=[member])
    page.items = [category_to_dict(c) for c in page.items]
    return page

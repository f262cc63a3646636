"""
Article service: business logic for the Article aggregate.

Design notes
------------
- Reads go through ``EntityRepository``: regular callers see the active
  projection, callers with ``Action.VIEW_DELETED`` see every row.
- Authorization runs before any mutation: owners manage their own
  articles, ``Action.MANAGE_ANY`` covers everyone else's, recovery and
  purging need their own actions.
- Bulk transitions are coordinated by ``bulk.run_bulk``; non-admins are
  scoped to the articles they own.
- Rows are re-read after every transition so the response reflects the
  committed state, with author and categories eagerly loaded.
"""
from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.errors import DatastoreFailure, Forbidden, ValidationError
from app.models import Article, Comment, articles_categories, utcnow
from app.pagination import PageWindow
from app.permissions import Action, Principal, require
from app.schemas import ArticleCreate, ArticleUpdate
from app.services import bulk
from app.services.category_service import ensure_categories_exist, reconcile_categories
from app.services.lifecycle import LifecycleManager
from app.services.repository import EntityRepository, Page
from app.services.serializers import article_to_dict

logger = logging.getLogger(__name__)


def article_repository(db: AsyncSession) -> EntityRepository[Article]:
    return EntityRepository(
        db,
        Article,
        resource="Article",
        load_options=(selectinload(Article.author), selectinload(Article.categories)),
        search_columns=("title", "content"),
        owner_column="user_id",
    )


def article_lifecycle(db: AsyncSession) -> LifecycleManager:
    return LifecycleManager(db, Article, resource="Article")


def _privileged(principal: Principal | None) -> bool:
    return principal is not None and principal.can(Action.VIEW_DELETED)


def _serialize_page(page: Page) -> Page:
    page.items = [article_to_dict(a) for a in page.items]
    return page


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def list_articles(db: AsyncSession, window: PageWindow, principal: Principal | None) -> Page:
    return _serialize_page(
        await article_repository(db).find_all(window, privileged=_privileged(principal))
    )


async def get_article(db: AsyncSession, article_id: str, principal: Principal | None) -> dict:
    article = await article_repository(db).find_by_id(article_id, privileged=_privileged(principal))
    return article_to_dict(article)


async def list_user_articles(
    db: AsyncSession, user_id: str, window: PageWindow, principal: Principal | None
) -> Page:
    return _serialize_page(
        await article_repository(db).find_by_owner(user_id, window, privileged=_privileged(principal))
    )


async def search_articles(db: AsyncSession, term: str, window: PageWindow) -> Page:
    if not term or not term.strip():
        raise ValidationError("Search term is required")
    return _serialize_page(await article_repository(db).search(term, window))


async def find_articles_by_ids(
    db: AsyncSession, ids: Sequence[str], window: PageWindow, principal: Principal | None
) -> tuple[Page, dict]:
    """Bulk lookup; ids that are missing (or hidden) are listed in ``notFoundIds``."""
    valid, invalid = bulk.require_valid_ids(ids)
    repo = article_repository(db)
    privileged = _privileged(principal)
    found = await repo.find_many(valid, PageWindow(page=1, limit=0), privileged=privileged)
    found_ids = {a.id for a in found.items}
    page = Page(items=window.slice(found.items), total=found.total, window=window)
    meta = {
        "totalRequested": len(valid) + len(invalid),
        "totalFound": len(found_ids),
        "invalidIds": invalid,
        "notFoundIds": [i for i in valid if i not in found_ids],
    }
    return _serialize_page(page), meta


# ---------------------------------------------------------------------------
# Create / update
# ---------------------------------------------------------------------------

async def create_article_with_categories(
    db: AsyncSession, data: ArticleCreate, principal: Principal
) -> dict:
    """
    Insert the article and its initial junction rows in one flush so
    both land in the request transaction together.
    """
    await ensure_categories_exist(db, data.categories)
    article = Article(title=data.title, content=data.content, user_id=principal.id)
    db.add(article)
    try:
        await db.flush()
        if data.categories:
            await db.execute(
                articles_categories.insert(),
                [{"article_id": article.id, "category_id": cid} for cid in data.categories],
            )
    except SQLAlchemyError as exc:
        logger.error("Creating article for user %s failed: %s", principal.id, exc)
        raise DatastoreFailure("articles.create_with_categories", exc) from exc

    logger.info("Created article %s with %d categories", article.id, len(data.categories))
    return article_to_dict(await article_repository(db).find_by_id(article.id))


async def update_article(
    db: AsyncSession, article_id: str, data: ArticleUpdate, principal: Principal
) -> dict:
    """
    Partially update an article.  ``categories`` replaces the article's
    category set when present and leaves it alone when omitted.
    """
    repo = article_repository(db)
    privileged = _privileged(principal)
    article = await repo.find_by_id(article_id, privileged=privileged)
    if not principal.may_manage(article.user_id):
        raise Forbidden("You can only edit your own articles")

    patch = data.model_dump(exclude_unset=True)
    categories = patch.pop("categories", None)
    patch = {key: value for key, value in patch.items() if value is not None}
    if not patch and categories is None:
        raise ValidationError("Nothing to update")

    await repo.update_fields(article_id, patch, privileged=privileged)
    delta = await reconcile_categories(db, article_id, categories)
    if delta.changed and not patch:
        # Junction writes do not touch the article row itself.
        await repo.update_fields(article_id, {"updated_at": utcnow()}, privileged=privileged)
    return article_to_dict(await repo.find_by_id(article_id, privileged=privileged))


# ---------------------------------------------------------------------------
# Lifecycle: single article
# ---------------------------------------------------------------------------

async def soft_delete_article(db: AsyncSession, article_id: str, principal: Principal) -> dict:
    repo = article_repository(db)
    article = await repo.find_by_id(article_id)
    if not principal.may_manage(article.user_id):
        raise Forbidden("You can only delete your own articles")
    await article_lifecycle(db).soft_delete(article_id)
    return article_to_dict(await repo.find_by_id(article_id, privileged=True))


async def recover_article(db: AsyncSession, article_id: str, principal: Principal) -> dict:
    require(principal, Action.RECOVER)
    await article_lifecycle(db).recover(article_id)
    return article_to_dict(await article_repository(db).find_by_id(article_id, privileged=True))


async def _purge(db: AsyncSession, ids: list[str]) -> list[str]:
    """Remove junction rows, comments, then the articles themselves."""
    if not ids:
        return []
    try:
        await db.execute(delete(articles_categories).where(articles_categories.c.article_id.in_(ids)))
        await db.execute(
            delete(Comment).where(Comment.article_id.in_(ids)).execution_options(
                synchronize_session=False
            )
        )
    except SQLAlchemyError as exc:
        raise DatastoreFailure("articles.purge", exc) from exc
    return await article_lifecycle(db).hard_delete_many(ids)


async def purge_article(db: AsyncSession, article_id: str, principal: Principal) -> dict:
    require(principal, Action.HARD_DELETE)
    article = await article_repository(db).find_by_id(article_id, privileged=True)
    data = article_to_dict(article)
    await _purge(db, [article_id])
    logger.info("Purged article %s", article_id)
    return data


# ---------------------------------------------------------------------------
# Lifecycle: bulk
# ---------------------------------------------------------------------------

async def _transitioned_page(
    db: AsyncSession, outcome: bulk.BulkOutcome, window: PageWindow
) -> Page:
    page = await article_repository(db).find_many(outcome.transitioned, window, privileged=True)
    page.extra_meta = outcome.meta()
    return _serialize_page(page)


async def soft_delete_articles(
    db: AsyncSession, ids: Sequence[str], principal: Principal, window: PageWindow
) -> Page:
    repo = article_repository(db)
    owned = None
    if not principal.can(Action.MANAGE_ANY):
        async def owned(valid: list[str]) -> list[str]:
            return await repo.owned_ids(principal.id, valid)

    outcome = await bulk.run_bulk(ids, article_lifecycle(db).soft_delete_many, owned=owned)
    return await _transitioned_page(db, outcome, window)


async def recover_articles(
    db: AsyncSession, ids: Sequence[str], principal: Principal, window: PageWindow
) -> Page:
    require(principal, Action.RECOVER)
    outcome = await bulk.run_bulk(ids, article_lifecycle(db).recover_many)
    return await _transitioned_page(db, outcome, window)


async def purge_articles(
    db: AsyncSession, ids: Sequence[str], principal: Principal, window: PageWindow
) -> Page:
    require(principal, Action.HARD_DELETE)
    repo = article_repository(db)
    snapshot: dict[str, dict] = {}

    async def transition(valid: list[str]) -> list[str]:
        rows = await repo.find_many(valid, PageWindow(page=1, limit=0), privileged=True)
        snapshot.update((a.id, article_to_dict(a)) for a in rows.items)
        return await _purge(db, list(snapshot))

    outcome = await bulk.run_bulk(ids, transition)
    done = set(outcome.transitioned)
    purged = [snapshot[i] for i in outcome.requested if i in done]
    page = Page(items=window.slice(purged), total=len(purged), window=window)
    page.extra_meta = outcome.meta()
    return page

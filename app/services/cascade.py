"""
Cascade orchestrator: user soft delete / recovery propagated to articles.

The cascade is a sequence of guarded steps, each of which is safe to run
again:

1. transition the user (abort with ``NotFound`` if it does not change);
2. collect every article id the user owns, deleted ones included;
3. transition those articles in one bulk call.

Articles deleted by the cascade get the user's own ``deleted_at`` stamp.
Recovery restores only the articles carrying that stamp, so an article
its author deleted earlier stays deleted.  Articles already in the
target state are skipped and simply not counted.

All steps share the request session, so they commit together; if a
cascade is ever left half-done (user deleted, some articles not),
``repair_user_cascade`` finishes it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import Forbidden, NotFound
from app.models import User
from app.pagination import PageWindow
from app.permissions import Action, Principal, require
from app.services import bulk
from app.services.article_service import article_lifecycle, article_repository
from app.services.lifecycle import LifecycleManager
from app.services.serializers import article_to_dict, user_to_dict
from app.services.user_service import user_repository

logger = logging.getLogger(__name__)

_ALL = PageWindow(page=1, limit=0)


def user_lifecycle(db: AsyncSession) -> LifecycleManager:
    return LifecycleManager(db, User, resource="User")


@dataclass
class CascadeResult:
    user: dict
    articles: list[dict] = field(default_factory=list)

    @property
    def total_transitioned(self) -> int:
        return len(self.articles)


async def _articles(db: AsyncSession, ids: list[str]) -> list[dict]:
    page = await article_repository(db).find_many(ids, _ALL, privileged=True)
    return [article_to_dict(a) for a in page.items]


# ---------------------------------------------------------------------------
# Single user
# ---------------------------------------------------------------------------

async def cascade_user_delete(db: AsyncSession, user_id: str) -> CascadeResult:
    stamp = await user_lifecycle(db).soft_delete(user_id)
    article_ids = await article_repository(db).ids_by_owner(user_id)
    changed = await article_lifecycle(db).soft_delete_many(article_ids, stamp=stamp)
    logger.info(
        "Cascade delete of user %s: %d/%d article(s) deleted", user_id, len(changed), len(article_ids)
    )
    user = await user_repository(db).find_by_id(user_id, privileged=True)
    return CascadeResult(user=user_to_dict(user), articles=await _articles(db, changed))


async def cascade_user_recover(db: AsyncSession, user_id: str) -> CascadeResult:
    user = await user_repository(db).find_by_id(user_id, privileged=True)
    stamp = user.deleted_at
    if stamp is None:
        raise NotFound("User", user_id)
    await user_lifecycle(db).recover(user_id)
    article_ids = await article_repository(db).ids_by_owner(user_id)
    changed = await article_lifecycle(db).recover_many(article_ids, deleted_at=stamp)
    logger.info(
        "Cascade recover of user %s: %d/%d article(s) recovered", user_id, len(changed), len(article_ids)
    )
    user = await user_repository(db).find_by_id(user_id, privileged=True)
    return CascadeResult(user=user_to_dict(user), articles=await _articles(db, changed))


async def repair_user_cascade(db: AsyncSession, user_id: str) -> CascadeResult:
    """
    Bring a user's articles in line with the user's own state.

    For a deleted user every still-active article is deleted with the
    user's stamp.  For an active user there is nothing to repair.
    """
    user = await user_repository(db).find_by_id(user_id, privileged=True)
    changed: list[str] = []
    if user.deleted_at is not None:
        article_ids = await article_repository(db).ids_by_owner(user_id)
        changed = await article_lifecycle(db).soft_delete_many(article_ids, stamp=user.deleted_at)
        logger.info("Repaired cascade for user %s: %d article(s) deleted", user_id, len(changed))
    return CascadeResult(user=user_to_dict(user), articles=await _articles(db, changed))


# ---------------------------------------------------------------------------
# Entry points with authorization
# ---------------------------------------------------------------------------

async def delete_user(db: AsyncSession, user_id: str, principal: Principal) -> CascadeResult:
    if not principal.may_manage(user_id):
        raise Forbidden("You can only delete your own account")
    return await cascade_user_delete(db, user_id)


async def recover_user(db: AsyncSession, user_id: str, principal: Principal) -> CascadeResult:
    require(principal, Action.RECOVER)
    return await cascade_user_recover(db, user_id)


async def repair_user(db: AsyncSession, user_id: str, principal: Principal) -> CascadeResult:
    require(principal, Action.REPAIR_CASCADE)
    return await repair_user_cascade(db, user_id)


async def _bulk_cascade(db: AsyncSession, ids: Sequence[str], step) -> tuple[list[CascadeResult], dict]:
    """
    Run *step* per user.  A user that does not transition is reported in
    ``notFoundIds`` and does not stop the others.
    """
    results: dict[str, CascadeResult] = {}

    async def transition(valid: list[str]) -> list[str]:
        for user_id in valid:
            try:
                results[user_id] = await step(db, user_id)
            except NotFound:
                continue
        return list(results)

    outcome = await bulk.run_bulk(ids, transition)
    meta = outcome.meta()
    meta["totalArticlesTransitioned"] = sum(r.total_transitioned for r in results.values())
    return list(results.values()), meta


async def delete_users(
    db: AsyncSession, ids: Sequence[str], principal: Principal
) -> tuple[list[CascadeResult], dict]:
    require(principal, Action.MANAGE_ANY)
    return await _bulk_cascade(db, ids, cascade_user_delete)


async def recover_users(
    db: AsyncSession, ids: Sequence[str], principal: Principal
) -> tuple[list[CascadeResult], dict]:
    require(principal, Action.RECOVER)
    return await _bulk_cascade(db, ids, cascade_user_recover)

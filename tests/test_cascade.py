"""
Cascade tests: user soft delete / recovery propagating to articles.

Scenario used throughout: a user owns a1, a2, a3 and a1 was deleted by
its author before the user was.
"""
import uuid

import pytest

from app.errors import Forbidden, NotFound, ValidationError
from app.permissions import Principal
from app.services import cascade
from app.services.article_service import article_lifecycle, article_repository
from app.services.user_service import user_repository


async def _owner_with_three_articles(db_session, seed):
    user = await seed.user()
    a1 = await seed.article(user, "a1")
    a2 = await seed.article(user, "a2")
    a3 = await seed.article(user, "a3")
    await article_lifecycle(db_session).soft_delete(a1.id)
    return user, a1, a2, a3


async def _deleted_at(db_session, article_id):
    return (await article_repository(db_session).find_by_id(article_id, privileged=True)).deleted_at


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cascade_delete_skips_already_deleted_articles(db_session, seed):
    user, a1, a2, a3 = await _owner_with_three_articles(db_session, seed)
    a1_stamp = await _deleted_at(db_session, a1.id)

    result = await cascade.cascade_user_delete(db_session, user.id)

    assert result.total_transitioned == 2
    assert {a["id"] for a in result.articles} == {a2.id, a3.id}
    assert result.user["deleted_at"] is not None
    assert await _deleted_at(db_session, a1.id) == a1_stamp


@pytest.mark.asyncio
async def test_cascade_stamps_articles_with_user_deletion_time(db_session, seed):
    user, _, a2, a3 = await _owner_with_three_articles(db_session, seed)
    await cascade.cascade_user_delete(db_session, user.id)

    user_stamp = (await user_repository(db_session).find_by_id(user.id, privileged=True)).deleted_at
    assert await _deleted_at(db_session, a2.id) == user_stamp
    assert await _deleted_at(db_session, a3.id) == user_stamp


@pytest.mark.asyncio
async def test_cascade_delete_twice_is_not_found(db_session, seed):
    user = await seed.user()
    await cascade.cascade_user_delete(db_session, user.id)
    with pytest.raises(NotFound):
        await cascade.cascade_user_delete(db_session, user.id)


@pytest.mark.asyncio
async def test_delete_user_requires_self_or_admin(db_session, seed, admin):
    user = await seed.user()
    other = await seed.user()
    with pytest.raises(Forbidden):
        await cascade.delete_user(db_session, user.id, Principal(id=other.id))
    result = await cascade.delete_user(db_session, user.id, admin)
    assert result.user["id"] == user.id


# ---------------------------------------------------------------------------
# Recover
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_recover_restores_only_cascade_deleted_articles(db_session, seed):
    user, a1, a2, a3 = await _owner_with_three_articles(db_session, seed)
    await cascade.cascade_user_delete(db_session, user.id)

    result = await cascade.cascade_user_recover(db_session, user.id)

    assert result.user["deleted_at"] is None
    assert {a["id"] for a in result.articles} == {a2.id, a3.id}
    assert await _deleted_at(db_session, a1.id) is not None
    assert await _deleted_at(db_session, a2.id) is None
    assert await _deleted_at(db_session, a3.id) is None


@pytest.mark.asyncio
async def test_recover_active_user_is_not_found(db_session, seed):
    user = await seed.user()
    with pytest.raises(NotFound):
        await cascade.cascade_user_recover(db_session, user.id)


@pytest.mark.asyncio
async def test_recover_user_requires_admin(db_session, seed):
    user = await seed.user()
    await cascade.cascade_user_delete(db_session, user.id)
    with pytest.raises(Forbidden):
        await cascade.recover_user(db_session, user.id, Principal(id=user.id))


# ---------------------------------------------------------------------------
# Repair
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_repair_finishes_a_partial_cascade(db_session, seed, admin):
    user = await seed.user()
    a1 = await seed.article(user, "a1")
    a2 = await seed.article(user, "a2")
    # The user transition went through but the article step never ran.
    await cascade.user_lifecycle(db_session).soft_delete(user.id)

    result = await cascade.repair_user(db_session, user.id, admin)
    assert {a["id"] for a in result.articles} == {a1.id, a2.id}

    again = await cascade.repair_user_cascade(db_session, user.id)
    assert again.total_transitioned == 0

    recovered = await cascade.cascade_user_recover(db_session, user.id)
    assert recovered.total_transitioned == 2


@pytest.mark.asyncio
async def test_repair_active_user_is_a_no_op(db_session, seed):
    user = await seed.user()
    await seed.article(user)
    result = await cascade.repair_user_cascade(db_session, user.id)
    assert result.total_transitioned == 0


# ---------------------------------------------------------------------------
# Bulk
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_bulk_delete_users_aggregates_outcomes(db_session, seed, admin):
    u1 = await seed.user()
    u2 = await seed.user()
    await seed.article(u1)
    await seed.article(u2)
    await seed.article(u2)
    missing = str(uuid.uuid4())

    results, meta = await cascade.delete_users(db_session, [u1.id, "bad", u2.id, missing], admin)

    assert {r.user["id"] for r in results} == {u1.id, u2.id}
    assert meta["totalRequested"] == 4
    assert meta["totalTransitioned"] == 2
    assert meta["invalidIds"] == ["bad"]
    assert meta["notFoundIds"] == [missing]
    assert meta["totalArticlesTransitioned"] == 3


@pytest.mark.asyncio
async def test_bulk_recover_users_skips_active(db_session, seed, admin):
    u1 = await seed.user()
    u2 = await seed.user()
    await cascade.cascade_user_delete(db_session, u1.id)

    results, meta = await cascade.recover_users(db_session, [u1.id, u2.id], admin)
    assert [r.user["id"] for r in results] == [u1.id]
    assert meta["notFoundIds"] == [u2.id]


@pytest.mark.asyncio
async def test_bulk_delete_users_rejects_all_invalid(db_session, admin):
    with pytest.raises(ValidationError):
        await cascade.delete_users(db_session, ["x", "y"], admin)

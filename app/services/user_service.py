"""
User service: reads and profile updates for the User aggregate.

Soft deletion and recovery of users always cascade to their articles and
therefore live in ``cascade``.  Email uniqueness is checked up front and
enforced again by the unique constraint; both paths surface as
``Conflict``.
"""
from __future__ import annotations

from typing import Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import Conflict, Forbidden, NotFound, ValidationError
from app.models import User
from app.pagination import PageWindow
from app.permissions import Action, Principal, Role
from app.schemas import UserCreate, UserUpdate
from app.security import hash_password
from app.services import bulk
from app.services.repository import EntityRepository, Page
from app.services.serializers import user_to_dict


def user_repository(db: AsyncSession) -> EntityRepository[User]:
    return EntityRepository(
        db,
        User,
        resource="User",
        search_columns=("name", "email"),
    )


def _privileged(principal: Principal | None) -> bool:
    return principal is not None and principal.can(Action.VIEW_DELETED)


def _serialize_page(page: Page) -> Page:
    page.items = [user_to_dict(u) for u in page.items]
    return page


async def _ensure_email_free(db: AsyncSession, email: str, exclude_id: str | None = None) -> None:
    # Deleted users still hold their address.
    existing = await user_repository(db).find_one_by(privileged=True, email=email)
    if existing is not None and existing.id != exclude_id:
        raise Conflict("A user with this email already exists")


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    """Register a regular user; roles are only granted through ``update_user``."""
    await _ensure_email_free(db, data.email)
    record = data.model_dump(exclude={"password"})
    record["password_hash"] = hash_password(data.password)
    record["role"] = Role.USER.value
    try:
        user = await user_repository(db).insert(record)
    except IntegrityError as exc:
        raise Conflict("A user with this email already exists") from exc
    return user_to_dict(user)


async def list_users(
    db: AsyncSession,
    window: PageWindow,
    principal: Principal | None,
    ids: Sequence[str] | None = None,
) -> Page:
    """
    Paginated users.  With *ids* only those users are listed and the ids
    that were not found end up in the page meta.
    """
    repo = user_repository(db)
    privileged = _privileged(principal)
    if not ids:
        return _serialize_page(await repo.find_all(window, privileged=privileged))

    valid, invalid = bulk.require_valid_ids(ids)
    page = await repo.find_many(valid, window, privileged=privileged)
    everything = await repo.find_many(valid, PageWindow(page=1, limit=0), privileged=privileged)
    found = {u.id for u in everything.items}
    page.extra_meta = {
        "totalRequested": len(valid) + len(invalid),
        "invalidIds": invalid,
        "notFoundIds": [i for i in valid if i not in found],
    }
    return _serialize_page(page)


async def get_user(db: AsyncSession, user_id: str, principal: Principal | None) -> dict:
    return user_to_dict(await user_repository(db).find_by_id(user_id, privileged=_privileged(principal)))


async def get_user_by_email(db: AsyncSession, email: str, principal: Principal | None) -> dict:
    user = await user_repository(db).find_one_by(
        privileged=_privileged(principal), email=email.strip().lower()
    )
    if user is None:
        raise NotFound("User", message="No user with this email")
    return user_to_dict(user)


async def search_users(db: AsyncSession, term: str, window: PageWindow) -> Page:
    if not term or not term.strip():
        raise ValidationError("Search term is required")
    return _serialize_page(await user_repository(db).search(term, window))


async def update_user(
    db: AsyncSession, user_id: str, data: UserUpdate, principal: Principal
) -> dict:
    """
    Update a profile.  Users edit themselves; ``MANAGE_ANY`` edits anyone.
    ``role`` is silently dropped for callers without ``CHANGE_ROLE``.
    """
    if not principal.may_manage(user_id):
        raise Forbidden("You can only update your own profile")

    patch = data.model_dump(exclude_unset=True, exclude_none=True)
    if not principal.can(Action.CHANGE_ROLE):
        patch.pop("role", None)
    if "password" in patch:
        patch["password_hash"] = hash_password(patch.pop("password"))
    if not patch:
        raise ValidationError("Nothing to update")
    if "email" in patch:
        await _ensure_email_free(db, patch["email"], exclude_id=user_id)

    try:
        user = await user_repository(db).update_fields(
            user_id, patch, privileged=_privileged(principal)
        )
    except IntegrityError as exc:
        raise Conflict("A user with this email already exists") from exc
    return user_to_dict(user)

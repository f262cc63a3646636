from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache
from app.config import settings
from app.database import get_db
from app.errors import NotFound, Unauthorized, ValidationError
from app.pagination import PageWindow, resolve
from app.permissions import Principal
from app.services.bulk import is_valid_id
from app.services.user_service import user_repository


class PaginationParams:
    """
    Reusable dependency that reads raw ``page`` / ``limit`` query values
    and resolves them into a ``PageWindow``.

    Values are taken as strings so that junk (``?page=abc``) falls back to
    the defaults instead of failing validation.  ``limit=0`` asks for
    every row.  Subclasses only change the default page size.
    """

    default_limit: int = settings.DEFAULT_PAGE_SIZE

    def __init__(
        self,
        page: str | None = Query(None, description="Page number (1-based)."),
        limit: str | None = Query(
            None, description="Items per page; 0 returns every row."
        ),
    ) -> None:
        self.window: PageWindow = resolve(page, limit, self.default_limit)


class ArticlePaginationParams(PaginationParams):
    default_limit = settings.DEFAULT_ARTICLE_PAGE_SIZE


async def get_principal(request: Request) -> Principal | None:
    """The caller set by ``PrincipalMiddleware``, or None when anonymous."""
    principal: Principal | None = getattr(request.state, "principal", None)
    if principal is not None and principal.session_id:
        if await cache.is_revoked(principal.session_id):
            return None
    return principal


async def require_principal(
    request: Request, db: AsyncSession = Depends(get_db)
) -> Principal:
    """
    The authenticated caller, backed by an active user row.

    Gateway headers outlive the account they were issued for, so a
    deleted or unknown principal is treated as unauthenticated.
    """
    principal = await get_principal(request)
    if principal is None:
        raise Unauthorized()
    try:
        await user_repository(db).find_by_id(principal.id)
    except NotFound:
        raise Unauthorized("Account is no longer active") from None
    return principal


def check_id(entity_id: str, what: str = "id") -> str:
    """Reject malformed path ids before any database call."""
    if not is_valid_id(entity_id):
        raise ValidationError(f"Invalid {what}: {entity_id!r}")
    return entity_id

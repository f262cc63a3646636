from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import (
    ArticlePaginationParams,
    PaginationParams,
    check_id,
    get_principal,
    require_principal,
)
from app.permissions import Action, Principal
from app.schemas import BulkIdsRequest, Envelope, UserCreate, UserUpdate, envelope
from app.services import article_service, cascade, comment_service, user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])


def _cascade_body(result: cascade.CascadeResult, key: str, message: str) -> dict:
    return envelope(
        {"user": result.user, key: result.articles},
        message,
        {"totalTransitioned": result.total_transitioned},
    )


@router.post("", status_code=201, response_model=Envelope)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    return envelope(await user_service.create_user(db, data), "User created")


@router.get("", response_model=Envelope)
async def list_users(
    ids: list[str] | None = Query(None, description="Restrict the listing to these user ids."),
    pagination: PaginationParams = Depends(),
    principal: Principal | None = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    page = await user_service.list_users(db, pagination.window, principal, ids=ids)
    return envelope(page.items, "Users retrieved", page.meta())


@router.get("/search", response_model=Envelope)
async def search_users(
    q: str = Query("", description="Matched against name and email."),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    page = await user_service.search_users(db, q, pagination.window)
    return envelope(page.items, "Users retrieved", page.meta())


@router.get("/by-email", response_model=Envelope)
async def get_user_by_email(
    email: str,
    principal: Principal | None = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return envelope(await user_service.get_user_by_email(db, email, principal))


@router.post("/bulk-delete", response_model=Envelope)
async def delete_users(
    body: BulkIdsRequest,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    results, meta = await cascade.delete_users(db, body.ids, principal)
    data = [{"user": r.user, "deletedArticles": r.articles} for r in results]
    return envelope(data, "Users deleted", meta)


@router.post("/bulk-recover", response_model=Envelope)
async def recover_users(
    body: BulkIdsRequest,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    results, meta = await cascade.recover_users(db, body.ids, principal)
    data = [{"user": r.user, "recoveredArticles": r.articles} for r in results]
    return envelope(data, "Users recovered", meta)


@router.get("/{user_id}", response_model=Envelope)
async def get_user(
    user_id: str,
    principal: Principal | None = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return envelope(await user_service.get_user(db, check_id(user_id), principal))


@router.get("/{user_id}/articles", response_model=Envelope)
async def list_user_articles(
    user_id: str,
    pagination: ArticlePaginationParams = Depends(),
    principal: Principal | None = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    page = await article_service.list_user_articles(
        db, check_id(user_id), pagination.window, principal
    )
    return envelope(page.items, "Articles retrieved", page.meta())


@router.get("/{user_id}/comments", response_model=Envelope)
async def list_user_comments(
    user_id: str,
    pagination: PaginationParams = Depends(),
    principal: Principal | None = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    privileged = principal is not None and principal.can(Action.VIEW_DELETED)
    page = await comment_service.list_user_comments(
        db, check_id(user_id), pagination.window, privileged=privileged
    )
    return envelope(page.items, "Comments retrieved", page.meta())


@router.patch("/{user_id}", response_model=Envelope)
async def update_user(
    user_id: str,
    data: UserUpdate,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.update_user(db, check_id(user_id), data, principal)
    return envelope(user, "User updated")


@router.delete("/{user_id}", response_model=Envelope)
async def delete_user(
    user_id: str,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    result = await cascade.delete_user(db, check_id(user_id), principal)
    return _cascade_body(result, "deletedArticles", "User and articles deleted")


@router.post("/{user_id}/recover", response_model=Envelope)
async def recover_user(
    user_id: str,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    result = await cascade.recover_user(db, check_id(user_id), principal)
    return _cascade_body(result, "recoveredArticles", "User and articles recovered")


@router.post("/{user_id}/repair-cascade", response_model=Envelope)
async def repair_user_cascade(
    user_id: str,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    result = await cascade.repair_user(db, check_id(user_id), principal)
    return _cascade_body(result, "deletedArticles", "Cascade repaired")

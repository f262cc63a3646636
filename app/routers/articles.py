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
from app.schemas import (
    ArticleCreate,
    ArticleUpdate,
    BulkIdsRequest,
    CommentCreate,
    Envelope,
    envelope,
)
from app.services import article_service, category_service, comment_service

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])


@router.get("", response_model=Envelope)
async def list_articles(
    pagination: ArticlePaginationParams = Depends(),
    principal: Principal | None = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    page = await article_service.list_articles(db, pagination.window, principal)
    return envelope(page.items, "Articles retrieved", page.meta())


@router.get("/search", response_model=Envelope)
async def search_articles(
    q: str = Query("", description="Matched against title and content."),
    pagination: ArticlePaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    page = await article_service.search_articles(db, q, pagination.window)
    return envelope(page.items, "Articles retrieved", page.meta())


@router.post("", status_code=201, response_model=Envelope)
async def create_article(
    data: ArticleCreate,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.create_article_with_categories(db, data, principal)
    return envelope(article, "Article created")


@router.post("/lookup", response_model=Envelope)
async def lookup_articles(
    body: BulkIdsRequest,
    pagination: ArticlePaginationParams = Depends(),
    principal: Principal | None = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    page, meta = await article_service.find_articles_by_ids(
        db, body.ids, pagination.window, principal
    )
    return envelope(page.items, "Articles retrieved", {**page.meta(), **meta})


@router.post("/bulk-delete", response_model=Envelope)
async def delete_articles(
    body: BulkIdsRequest,
    pagination: ArticlePaginationParams = Depends(),
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    page = await article_service.soft_delete_articles(db, body.ids, principal, pagination.window)
    return envelope(page.items, "Articles deleted", page.meta())


@router.post("/bulk-recover", response_model=Envelope)
async def recover_articles(
    body: BulkIdsRequest,
    pagination: ArticlePaginationParams = Depends(),
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    page = await article_service.recover_articles(db, body.ids, principal, pagination.window)
    return envelope(page.items, "Articles recovered", page.meta())


@router.post("/bulk-purge", response_model=Envelope)
async def purge_articles(
    body: BulkIdsRequest,
    pagination: ArticlePaginationParams = Depends(),
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    page = await article_service.purge_articles(db, body.ids, principal, pagination.window)
    return envelope(page.items, "Articles permanently deleted", page.meta())


@router.get("/{article_id}", response_model=Envelope)
async def get_article(
    article_id: str,
    principal: Principal | None = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    return envelope(await article_service.get_article(db, check_id(article_id), principal))


@router.patch("/{article_id}", response_model=Envelope)
async def update_article(
    article_id: str,
    data: ArticleUpdate,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.update_article(db, check_id(article_id), data, principal)
    return envelope(article, "Article updated")


@router.delete("/{article_id}", response_model=Envelope)
async def delete_article(
    article_id: str,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.soft_delete_article(db, check_id(article_id), principal)
    return envelope(article, "Article deleted")


@router.post("/{article_id}/recover", response_model=Envelope)
async def recover_article(
    article_id: str,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.recover_article(db, check_id(article_id), principal)
    return envelope(article, "Article recovered")


@router.delete("/{article_id}/purge", response_model=Envelope)
async def purge_article(
    article_id: str,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.purge_article(db, check_id(article_id), principal)
    return envelope(article, "Article permanently deleted")


@router.get("/{article_id}/categories", response_model=Envelope)
async def list_article_categories(
    article_id: str,
    pagination: PaginationParams = Depends(),
    principal: Principal | None = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    privileged = principal is not None and principal.can(Action.VIEW_DELETED)
    page = await category_service.categories_for_article(
        db, check_id(article_id), pagination.window, privileged=privileged
    )
    return envelope(page.items, "Categories retrieved", page.meta())


@router.get("/{article_id}/comments", response_model=Envelope)
async def list_comments(
    article_id: str,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    page = await comment_service.list_comments(db, check_id(article_id), pagination.window)
    return envelope(page.items, "Comments retrieved", page.meta())


@router.post("/{article_id}/comments", status_code=201, response_model=Envelope)
async def add_comment(
    article_id: str,
    data: CommentCreate,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    comment = await comment_service.add_comment(db, check_id(article_id), data, principal)
    return envelope(comment, "Comment created")

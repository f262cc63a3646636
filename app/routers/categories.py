from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import PaginationParams, check_id, require_principal
from app.permissions import Action, Principal, require
from app.schemas import CategoryCreate, CategoryUpdate, Envelope, envelope
from app.services import category_service

router = APIRouter(prefix="/api/v1/categories", tags=["categories"])


@router.get("", response_model=Envelope)
async def list_categories(
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    page = await category_service.list_categories(db, pagination.window)
    return envelope(page.items, "Categories retrieved", page.meta())


@router.get("/search", response_model=Envelope)
async def search_categories(
    q: str = Query("", description="Matched against value and label."),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    page = await category_service.search_categories(db, q, pagination.window)
    return envelope(page.items, "Categories retrieved", page.meta())


@router.get("/{category_id}", response_model=Envelope)
async def get_category(category_id: str, db: AsyncSession = Depends(get_db)):
    return envelope(await category_service.get_category(db, check_id(category_id)))


@router.post("", status_code=201, response_model=Envelope)
async def create_category(
    data: CategoryCreate,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    require(principal, Action.MANAGE_CATEGORIES)
    return envelope(await category_service.create_category(db, data), "Category created")


@router.patch("/{category_id}", response_model=Envelope)
async def update_category(
    category_id: str,
    data: CategoryUpdate,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    require(principal, Action.MANAGE_CATEGORIES)
    category = await category_service.update_category(db, check_id(category_id), data)
    return envelope(category, "Category updated")


@router.delete("/{category_id}", response_model=Envelope)
async def delete_category(
    category_id: str,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    require(principal, Action.MANAGE_CATEGORIES)
    category = await category_service.delete_category(db, check_id(category_id))
    return envelope(category, "Category deleted")

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import check_id, require_principal
from app.permissions import Principal
from app.schemas import CommentCreate, Envelope, envelope
from app.services import comment_service

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])


@router.get("/{comment_id}", response_model=Envelope)
async def get_comment(comment_id: str, db: AsyncSession = Depends(get_db)):
    comment = await comment_service.get_comment(db, check_id(comment_id))
    return envelope(comment, "Comment retrieved")


@router.patch("/{comment_id}", response_model=Envelope)
async def update_comment(
    comment_id: str,
    data: CommentCreate,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    comment = await comment_service.update_comment(db, check_id(comment_id), data, principal)
    return envelope(comment, "Comment updated")


@router.delete("/{comment_id}", response_model=Envelope)
async def delete_comment(
    comment_id: str,
    principal: Principal = Depends(require_principal),
    db: AsyncSession = Depends(get_db),
):
    comment = await comment_service.delete_comment(db, check_id(comment_id), principal)
    return envelope(comment, "Comment deleted")

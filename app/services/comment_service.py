"""
Comment service: comments on active articles.

Comments have no soft-delete state of their own: they disappear with
their article or author when those are purged, and their author (or a
caller with ``MANAGE_ANY``) can edit or remove them.
"""
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import DatastoreFailure, Forbidden
from app.models import Comment
from app.pagination import PageWindow
from app.permissions import Principal
from app.schemas import CommentCreate
from app.services.article_service import article_repository
from app.services.repository import EntityRepository, Page
from app.services.serializers import comment_to_dict
from app.services.user_service import user_repository


def comment_repository(db: AsyncSession) -> EntityRepository[Comment]:
    return EntityRepository(db, Comment, resource="Comment", owner_column="article_id")


async def list_comments(db: AsyncSession, article_id: str, window: PageWindow) -> Page:
    # Raises NotFound for missing or deleted articles.
    await article_repository(db).find_by_id(article_id)
    page = await comment_repository(db).find_by_owner(article_id, window)
    page.items = [comment_to_dict(c) for c in page.items]
    return page


async def get_comment(db: AsyncSession, comment_id: str) -> dict:
    return comment_to_dict(await comment_repository(db).find_by_id(comment_id))


async def list_user_comments(
    db: AsyncSession, user_id: str, window: PageWindow, privileged: bool = False
) -> Page:
    """Comments written by *user_id*; a hidden author is a ``NotFound``."""
    await user_repository(db).find_by_id(user_id, privileged=privileged)
    page = await comment_repository(db).find_all(window, where=[Comment.user_id == user_id])
    page.items = [comment_to_dict(c) for c in page.items]
    return page


async def add_comment(
    db: AsyncSession, article_id: str, data: CommentCreate, principal: Principal
) -> dict:
    await article_repository(db).find_by_id(article_id)
    comment = await comment_repository(db).insert(
        {"content": data.content, "article_id": article_id, "user_id": principal.id}
    )
    return comment_to_dict(comment)


async def update_comment(
    db: AsyncSession, comment_id: str, data: CommentCreate, principal: Principal
) -> dict:
    repo = comment_repository(db)
    comment = await repo.find_by_id(comment_id)
    if not principal.may_manage(comment.user_id):
        raise Forbidden("You can only edit your own comments")
    return comment_to_dict(await repo.update_fields(comment_id, {"content": data.content}))


async def delete_comment(db: AsyncSession, comment_id: str, principal: Principal) -> dict:
    comment = await comment_repository(db).find_by_id(comment_id)
    if not principal.may_manage(comment.user_id):
        raise Forbidden("You can only delete your own comments")
    data = comment_to_dict(comment)
    try:
        await db.execute(delete(Comment).where(Comment.id == comment_id))
    except SQLAlchemyError as exc:
        raise DatastoreFailure("comments.delete", exc) from exc
    return data

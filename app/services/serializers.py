"""Plain-dict serialisers shared by the services (ORM instance -> JSON-able dict)."""
from app.models import Article, Category, Comment, User


def _iso(value):
    return value.isoformat() if value else None


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "avatar": user.avatar,
        "bio": user.bio,
        "deleted_at": _iso(user.deleted_at),
        "created_at": _iso(user.created_at),
        "updated_at": _iso(user.updated_at),
    }


def author_to_dict(user: User | None) -> dict | None:
    """Public author card embedded in articles; no email for deleted users."""
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "avatar": user.avatar}


def category_to_dict(category: Category) -> dict:
    return {
        "id": category.id,
        "value": category.value,
        "label": category.label,
        "created_at": _iso(category.created_at),
        "updated_at": _iso(category.updated_at),
    }


def article_to_dict(article: Article) -> dict:
    return {
        "id": article.id,
        "title": article.title,
        "content": article.content,
        "user_id": article.user_id,
        "deleted_at": _iso(article.deleted_at),
        "created_at": _iso(article.created_at),
        "updated_at": _iso(article.updated_at),
        "author": author_to_dict(article.author),
        "categories": sorted(
            (category_to_dict(c) for c in article.categories), key=lambda c: c["label"]
        ),
    }


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "article_id": comment.article_id,
        "user_id": comment.user_id,
        "created_at": _iso(comment.created_at),
        "updated_at": _iso(comment.updated_at),
    }

import re
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, Field

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


# ---------------------------------------------------------------------------
# Per-field validators
# ---------------------------------------------------------------------------

def _check_name(value: str) -> str:
    value = value.strip()
    if len(value) < 3:
        raise ValueError("name must be at least 3 characters")
    return value


def _check_email(value: str) -> str:
    value = value.strip().lower()
    if not _EMAIL_RE.match(value):
        raise ValueError("email is not a valid address")
    return value


def _check_password(value: str) -> str:
    if len(value) < 6:
        raise ValueError("password must be at least 6 characters")
    return value


def _check_slug(value: str) -> str:
    value = value.strip().lower()
    if not _SLUG_RE.match(value):
        raise ValueError("value must be a lowercase slug (letters, digits, dashes)")
    return value


def _check_not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


def _dedupe_ids(value: list[str]) -> list[str]:
    """Drop blanks and duplicates, keep the caller's order."""
    seen: dict[str, None] = {}
    for item in value:
        item = item.strip()
        if item:
            seen.setdefault(item, None)
    return list(seen)


Name = Annotated[str, Field(max_length=150), AfterValidator(_check_name)]
Email = Annotated[str, Field(max_length=255), AfterValidator(_check_email)]
Password = Annotated[str, Field(max_length=128), AfterValidator(_check_password)]
CategoryValue = Annotated[str, Field(max_length=100), AfterValidator(_check_slug)]
Label = Annotated[str, Field(max_length=150), AfterValidator(_check_not_blank)]
Title = Annotated[str, Field(max_length=300), AfterValidator(_check_not_blank)]
Body = Annotated[str, AfterValidator(_check_not_blank)]
CategoryIds = Annotated[list[str], AfterValidator(_dedupe_ids)]


# --- User ---

class UserCreate(BaseModel):
    name: Name
    email: Email
    password: Password
    avatar: str | None = Field(None, max_length=500)
    bio: str | None = None


class UserUpdate(BaseModel):
    name: Name | None = None
    email: Email | None = None
    password: Password | None = None
    avatar: str | None = Field(None, max_length=500)
    bio: str | None = None
    # Only honoured for callers allowed to change roles.
    role: str | None = Field(None, pattern="^(user|admin)$")


# --- Category ---

class CategoryCreate(BaseModel):
    value: CategoryValue
    label: Label


class CategoryUpdate(BaseModel):
    value: CategoryValue | None = None
    label: Label | None = None


# --- Article ---

class ArticleCreate(BaseModel):
    title: Title
    content: Body
    categories: CategoryIds = []


class ArticleUpdate(BaseModel):
    title: Title | None = None
    content: Body | None = None
    # None (or absent) leaves the article's categories untouched.
    categories: CategoryIds | None = None


# --- Comment ---

class CommentCreate(BaseModel):
    content: Annotated[str, Field(max_length=5000), AfterValidator(_check_not_blank)]


# --- Bulk ---

class BulkIdsRequest(BaseModel):
    # Raw strings on purpose: malformed ids are reported, not rejected.
    ids: list[str] = Field(min_length=1)


# --- Envelope ---

class Envelope(BaseModel):
    success: bool = True
    data: Any = None
    message: str = ""
    meta: dict | None = None


def envelope(data: Any = None, message: str = "", meta: dict | None = None) -> dict:
    """Successful response in the uniform ``{success, data, message, meta}`` shape."""
    body = {"success": True, "data": data, "message": message}
    if meta is not None:
        body["meta"] = meta
    return body

"""
Entity repository: typed read/write access to one model.

Design notes
------------
- Two projections per soft-deletable model: the *active* projection
  (``deleted_at IS NULL``) for regular callers and the *all rows*
  projection for privileged callers.  Models without ``deleted_at``
  (categories, comments) only have one.
- List reads return a ``Page``: the rows for the requested window plus
  the total count, so callers can build pagination metadata.
- Every statement runs through ``_run`` which wraps SQLAlchemy errors in
  ``DatastoreFailure`` tagged with the operation.  ``IntegrityError`` is
  let through untouched so services can turn it into a ``Conflict``.
- Repositories flush but never commit; ``get_db`` owns the transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Generic, Iterable, Sequence, TypeVar

from sqlalchemy import Select, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import DatastoreFailure, NotFound
from app.pagination import PageWindow

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


@dataclass
class Page(Generic[ModelT]):
    items: list[ModelT]
    total: int
    window: PageWindow
    extra_meta: dict[str, Any] = field(default_factory=dict)

    @property
    def page(self) -> int:
        return self.window.page

    @property
    def pages(self) -> int:
        return self.window.pages_for(self.total)

    def meta(self) -> dict:
        return {**self.window.meta(self.total), **self.extra_meta}


class EntityRepository(Generic[ModelT]):
    """
    Read/write access for a single model class.

    *resource* is the human name used in ``NotFound`` messages,
    *load_options* are applied to every row-returning select (eager
    loading), *search_columns* are matched case-insensitively by
    ``search`` and *owner_column* names the foreign key used by
    ``find_by_owner``.
    """

    def __init__(
        self,
        db: AsyncSession,
        model: type[ModelT],
        *,
        resource: str,
        load_options: Sequence[Any] = (),
        search_columns: Sequence[str] = (),
        owner_column: str | None = None,
        order_by: Sequence[Any] | None = None,
    ) -> None:
        self.db = db
        self.model = model
        self.resource = resource
        self.load_options = tuple(load_options)
        self.search_columns = tuple(search_columns)
        self.owner_column = owner_column
        self.order_by = tuple(order_by) if order_by is not None else (
            model.created_at.desc(), model.id,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @property
    def soft_deletable(self) -> bool:
        return hasattr(self.model, "deleted_at")

    def _scope(self, privileged: bool) -> list:
        if self.soft_deletable and not privileged:
            return [self.model.deleted_at.is_(None)]
        return []

    async def _run(self, operation: str, statement):
        try:
            return await self.db.execute(statement)
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.error("%s.%s failed: %s", self.resource, operation, exc)
            raise DatastoreFailure(f"{self.resource}.{operation}", exc) from exc

    async def _flush(self, operation: str) -> None:
        try:
            await self.db.flush()
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.error("%s.%s flush failed: %s", self.resource, operation, exc)
            raise DatastoreFailure(f"{self.resource}.{operation}", exc) from exc

    def _rows_query(self, where: Iterable) -> Select:
        return (
            select(self.model)
            .where(*where)
            .options(*self.load_options)
            .order_by(*self.order_by)
            # Lifecycle updates bypass the identity map; always refresh.
            .execution_options(populate_existing=True)
        )

    async def _page(self, operation: str, where: list, window: PageWindow) -> Page[ModelT]:
        count_q = select(func.count()).select_from(self.model).where(*where)
        total: int = (await self._run(operation, count_q)).scalar_one()

        result = await self._run(operation, window.apply(self._rows_query(where)))
        items = list(result.scalars().unique().all())
        return Page(items=items, total=total, window=window)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_id(self, entity_id: str, privileged: bool = False) -> ModelT:
        where = [self.model.id == entity_id, *self._scope(privileged)]
        result = await self._run("find_by_id", self._rows_query(where))
        entity = result.scalars().unique().one_or_none()
        if entity is None:
            raise NotFound(self.resource, entity_id)
        return entity

    async def find_one_by(self, privileged: bool = False, **filters: Any) -> ModelT | None:
        where = [getattr(self.model, key) == value for key, value in filters.items()]
        result = await self._run("find_one_by", self._rows_query([*where, *self._scope(privileged)]))
        return result.scalars().unique().first()

    async def find_all(
        self, window: PageWindow, privileged: bool = False, where: Sequence[Any] = ()
    ) -> Page[ModelT]:
        return await self._page("find_all", [*where, *self._scope(privileged)], window)

    async def find_by_owner(
        self, owner_id: str, window: PageWindow, privileged: bool = False
    ) -> Page[ModelT]:
        owner = getattr(self.model, self.owner_column)
        return await self._page("find_by_owner", [owner == owner_id, *self._scope(privileged)], window)

    async def search(
        self, term: str, window: PageWindow, privileged: bool = False
    ) -> Page[ModelT]:
        # User input is matched literally; % and _ are not wildcards.
        literal = term.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{literal}%"
        match = or_(*(
            getattr(self.model, col).ilike(pattern, escape="\\") for col in self.search_columns
        ))
        return await self._page("search", [match, *self._scope(privileged)], window)

    async def find_many(
        self, ids: Sequence[str], window: PageWindow, privileged: bool = False
    ) -> Page[ModelT]:
        """Rows whose id is in *ids*; missing ids are simply absent."""
        if not ids:
            return Page(items=[], total=0, window=window)
        return await self._page(
            "find_many", [self.model.id.in_(list(ids)), *self._scope(privileged)], window
        )

    async def ids_by_owner(self, owner_id: str) -> list[str]:
        """Every owned id, deleted rows included."""
        owner = getattr(self.model, self.owner_column)
        result = await self._run("ids_by_owner", select(self.model.id).where(owner == owner_id))
        return list(result.scalars().all())

    async def owned_ids(self, owner_id: str, ids: Sequence[str], active_only: bool = True) -> list[str]:
        """The subset of *ids* that *owner_id* owns (active rows by default)."""
        if not ids:
            return []
        owner = getattr(self.model, self.owner_column)
        where = [self.model.id.in_(list(ids)), owner == owner_id]
        if active_only:
            where.extend(self._scope(privileged=False))
        result = await self._run("owned_ids", select(self.model.id).where(*where))
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, record: dict[str, Any]) -> ModelT:
        entity = self.model(**record)
        self.db.add(entity)
        await self._flush("insert")
        return entity

    async def update_fields(
        self, entity_id: str, patch: dict[str, Any], privileged: bool = False
    ) -> ModelT:
        """Apply *patch* to one row; an empty patch just returns the row."""
        entity = await self.find_by_id(entity_id, privileged=privileged)
        for key, value in patch.items():
            setattr(entity, key, value)
        if patch:
            await self._flush("update_fields")
        return entity

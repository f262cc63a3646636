"""
Soft-delete lifecycle manager.

    Active --soft_delete--> Deleted --recover--> Active
    Active | Deleted --hard_delete--> Purged (terminal)

Each transition is a single guarded UPDATE: soft delete only touches rows
where ``deleted_at IS NULL``, recovery only rows where it is set.  A row
already in the target state is therefore simply not returned, which the
single-row forms report as ``NotFound`` and the bulk forms leave out of
their result.  Neither ever changes a row that is already in the target
state.

Bulk soft deletes accept an explicit *stamp*.  The cascade stamps a
user's articles with the user's own ``deleted_at`` so a later recovery
can tell those apart from articles deleted independently.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import DatastoreFailure, NotFound
from app.models import utcnow

logger = logging.getLogger(__name__)


class LifecycleManager:
    def __init__(self, db: AsyncSession, model, resource: str) -> None:
        self.db = db
        self.model = model
        self.resource = resource

    async def _transition(self, operation: str, statement) -> list[str]:
        try:
            result = await self.db.execute(
                statement.returning(self.model.id).execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            logger.error("%s.%s failed: %s", self.resource, operation, exc)
            raise DatastoreFailure(f"{self.resource}.{operation}", exc) from exc
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Soft delete
    # ------------------------------------------------------------------

    async def soft_delete_many(
        self, ids: Sequence[str], stamp: datetime | None = None
    ) -> list[str]:
        """Soft delete every active row in *ids*; return the ids that changed."""
        if not ids:
            return []
        stamp = stamp or utcnow()
        stmt = (
            update(self.model)
            .where(self.model.id.in_(list(ids)), self.model.deleted_at.is_(None))
            .values(deleted_at=stamp, updated_at=stamp)
        )
        changed = await self._transition("soft_delete", stmt)
        logger.info("Soft deleted %d/%d %s row(s)", len(changed), len(ids), self.resource)
        return changed

    async def soft_delete(self, entity_id: str, stamp: datetime | None = None) -> datetime:
        """Soft delete one row and return the stamp written to ``deleted_at``."""
        stamp = stamp or utcnow()
        if not await self.soft_delete_many([entity_id], stamp):
            raise NotFound(self.resource, entity_id)
        return stamp

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    async def recover_many(
        self, ids: Sequence[str], deleted_at: datetime | None = None
    ) -> list[str]:
        """
        Recover every deleted row in *ids*; return the ids that changed.

        When *deleted_at* is given only rows carrying exactly that stamp
        are recovered.
        """
        if not ids:
            return []
        guard = (
            self.model.deleted_at == deleted_at
            if deleted_at is not None
            else self.model.deleted_at.is_not(None)
        )
        stmt = (
            update(self.model)
            .where(self.model.id.in_(list(ids)), guard)
            .values(deleted_at=None, updated_at=utcnow())
        )
        changed = await self._transition("recover", stmt)
        logger.info("Recovered %d/%d %s row(s)", len(changed), len(ids), self.resource)
        return changed

    async def recover(self, entity_id: str) -> None:
        if not await self.recover_many([entity_id]):
            raise NotFound(self.resource, entity_id)

    # ------------------------------------------------------------------
    # Hard delete
    # ------------------------------------------------------------------

    async def hard_delete_many(self, ids: Sequence[str]) -> list[str]:
        """Physically remove rows regardless of state; return the removed ids."""
        if not ids:
            return []
        changed = await self._transition(
            "hard_delete", delete(self.model).where(self.model.id.in_(list(ids)))
        )
        logger.info("Purged %d/%d %s row(s)", len(changed), len(ids), self.resource)
        return changed

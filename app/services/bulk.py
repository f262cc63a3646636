"""
Bulk operation coordinator.

A bulk request is a batch of independent per-id sub-operations, not a
transaction:

1. ``partition_ids`` splits the raw ids into well-formed and malformed
   ones.  If nothing is well-formed the request fails with
   ``ValidationError`` before the database is touched.
2. Ownership-scoped operations for non-privileged callers narrow the
   well-formed ids to the ones the caller owns; the rest are reported as
   ``notOwnedOrMissingIds``.
3. The lifecycle transition runs on what is left; its result drives
   ``notFoundIds`` and the counts, and only the *returned* rows are
   paginated.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence

from app.errors import ValidationError

logger = logging.getLogger(__name__)


def is_valid_id(value: str) -> bool:
    """Ids are canonical, lower-case UUID strings."""
    if not isinstance(value, str):
        return False
    try:
        return str(uuid.UUID(value)) == value
    except ValueError:
        return False


def partition_ids(ids: Sequence[str]) -> tuple[list[str], list[str]]:
    """
    Return ``(valid_ids, invalid_ids)``.

    Both lists keep the input order and every input id lands in exactly
    one of them; repeated ids are kept once.
    """
    valid: dict[str, None] = {}
    invalid: dict[str, None] = {}
    for raw in ids:
        if is_valid_id(raw):
            valid.setdefault(raw, None)
        else:
            invalid.setdefault(raw, None)
    return list(valid), list(invalid)


def require_valid_ids(ids: Sequence[str]) -> tuple[list[str], list[str]]:
    valid, invalid = partition_ids(ids)
    if not valid:
        raise ValidationError(
            "None of the supplied ids is a valid identifier",
            {"invalidIds": invalid},
        )
    return valid, invalid


@dataclass
class BulkOutcome:
    """What a bulk operation did, ready to be rendered as response meta."""

    requested: list[str]
    transitioned: list[str]
    invalid_ids: list[str] = field(default_factory=list)
    not_owned_or_missing_ids: list[str] | None = None

    @property
    def not_found_ids(self) -> list[str]:
        changed = set(self.transitioned)
        return [i for i in self.requested if i not in changed]

    def meta(self) -> dict:
        meta = {
            "totalRequested": len(self.requested) + len(self.invalid_ids),
            "totalTransitioned": len(self.transitioned),
            "invalidIds": list(self.invalid_ids),
            "notFoundIds": self.not_found_ids,
        }
        if self.not_owned_or_missing_ids is not None:
            meta["notOwnedOrMissingIds"] = list(self.not_owned_or_missing_ids)
        return meta


async def run_bulk(
    ids: Sequence[str],
    transition: Callable[[list[str]], Awaitable[list[str]]],
    *,
    owned: Callable[[list[str]], Awaitable[list[str]]] | None = None,
) -> BulkOutcome:
    """
    Coordinate one bulk lifecycle transition.

    *transition* receives the ids to act on and returns the ids that
    actually changed state.  *owned*, when given, receives the valid ids
    and returns the subset the caller may act on.
    """
    valid, invalid = require_valid_ids(ids)

    targets = valid
    not_owned: list[str] | None = None
    if owned is not None:
        allowed = set(await owned(valid))
        targets = [i for i in valid if i in allowed]
        not_owned = [i for i in valid if i not in allowed]

    transitioned = await transition(targets) if targets else []
    outcome = BulkOutcome(
        requested=valid,
        transitioned=transitioned,
        invalid_ids=invalid,
        not_owned_or_missing_ids=not_owned,
    )
    logger.info(
        "Bulk transition: %d requested, %d transitioned, %d invalid, %d not found",
        len(ids), len(transitioned), len(invalid), len(outcome.not_found_ids),
    )
    return outcome

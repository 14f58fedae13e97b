from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable

from record_import.persistence import DuplicateKeyError, Repositories, Repository
from record_import.schema import EntityKind, RowContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 1


@dataclass(frozen=True)
class GuardedField:
    """A field kept unique by suffixing. ``scopes`` are the kinds checked for collisions."""

    name: str
    scopes: tuple[EntityKind, ...]
    retry: RetryPolicy = field(default_factory=RetryPolicy)


def suffix_value(value: str, ctx: RowContext) -> str:
    return f"{value}-{ctx.millis}-{ctx.row_index}"


class DuplicateGuard:
    def __init__(self, repos: Repositories, clock: Callable[[], datetime]) -> None:
        self.repos = repos
        self.clock = clock

    def collides(self, guarded: GuardedField, value: Any) -> bool:
        return any(self.repos.for_kind(kind).exists(guarded.name, value) for kind in guarded.scopes)

    def make_unique(self, record: Any, guarded_fields: tuple[GuardedField, ...], ctx: RowContext) -> None:
        for guarded in guarded_fields:
            value = getattr(record, guarded.name)
            if value and self.collides(guarded, value):
                unique = suffix_value(value, ctx)
                logger.info("row %d: %s %r already exists, using %r", ctx.row_number, guarded.name, value, unique)
                setattr(record, guarded.name, unique)

    def create(
        self,
        repo: Repository,
        record: Any,
        guarded_fields: tuple[GuardedField, ...],
        ctx: RowContext,
    ) -> str:
        """Insert ``record``, re-suffixing guarded fields on a unique violation.

        Retries are bounded by each field's ``RetryPolicy``; once exhausted the
        ``DuplicateKeyError`` propagates to the caller.
        """
        attempts = 0
        while True:
            try:
                return repo.create(record)
            except DuplicateKeyError as exc:
                violated = [g for g in guarded_fields if f"{repo.table}.{g.name}" in str(exc)]
                if not violated or attempts >= min(g.retry.max_retries for g in violated):
                    raise
                attempts += 1
                retry_ctx = replace(ctx, now=self.clock())
                for guarded in violated:
                    unique = suffix_value(getattr(record, guarded.name), retry_ctx)
                    logger.info(
                        "row %d: unique violation on %s, retrying with %r", ctx.row_number, guarded.name, unique
                    )
                    setattr(record, guarded.name, unique)

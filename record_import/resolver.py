from __future__ import annotations

import logging

from record_import.persistence import Repositories, is_record_id
from record_import.schema import EntityKind

logger = logging.getLogger(__name__)

# Natural keys tried after a direct id lookup, in priority order.
NATURAL_KEYS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.CUSTOMERS: ("email", "id_number"),
    EntityKind.POLICIES: ("policy_number",),
    EntityKind.PAYMENTS: ("receipt_number",),
}

PREVIEW_CELLS = 10
PREVIEW_CHARS = 100


def record_preview(cells: list[str]) -> str:
    return " | ".join(cells[:PREVIEW_CELLS])[:PREVIEW_CHARS]


class ReferenceResolver:
    def __init__(self, repos: Repositories) -> None:
        self.repos = repos

    def resolve(self, identifier: str | None, kind: EntityKind) -> str | None:
        """Map a human-supplied identifier to an internal record id, or None."""
        if not identifier:
            return None
        if kind not in NATURAL_KEYS:
            raise ValueError(f"{kind.value} cannot be referenced")
        repo = self.repos.for_kind(kind)

        if is_record_id(identifier):
            record = repo.find_by_id(identifier)
            if record is not None:
                return record["id"]

        for field_name in NATURAL_KEYS[kind]:
            record = repo.find_by(field_name, identifier)
            if record is not None:
                logger.debug("resolved %s %r via %s", kind.value, identifier, field_name)
                return record["id"]
        return None

from __future__ import annotations


class RecordImportError(Exception):
    """Base exception for the record importer."""


class FatalInputError(RecordImportError):
    """The request cannot be imported at all; no row has been processed."""


class RowError(RecordImportError):
    """A failure confined to one CSV row. The batch continues."""

    def __init__(self, row_number: int, detail: str) -> None:
        self.row_number = row_number
        self.detail = detail
        super().__init__(f"Row {row_number}: {detail}")


class RowResolutionError(RowError):
    """A required foreign key was blank or could not be resolved."""


class RowPersistenceError(RowError):
    """The row could not be written to the store."""


class PartialAggregateInconsistency(RowPersistenceError):
    """The policy balance was updated but the payment insert failed afterwards."""

from __future__ import annotations

import tempfile
import unittest
from datetime import UTC, datetime
from pathlib import Path
from unittest import mock

from record_import.duplicate_guard import DuplicateGuard, GuardedField, RetryPolicy, suffix_value
from record_import.persistence import DuplicateKeyError, Repositories, init_db
from record_import.schema import CustomerRecord, EntityKind, RowContext

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
MILLIS = int(FIXED_NOW.timestamp() * 1000)
ID_NUMBER = GuardedField("id_number", (EntityKind.CUSTOMERS,))


def _customer(id_number: str) -> CustomerRecord:
    return CustomerRecord(
        first_name="Sam",
        last_name="Clark",
        address="Not provided",
        contact_number="000-0000",
        email="na@none.com",
        id_number=id_number,
    )


class DuplicateGuardTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        db = Path(self._tmp.name) / "records.db"
        init_db(db)
        self.repos = Repositories.for_db(db)
        self.guard = DuplicateGuard(self.repos, lambda: FIXED_NOW)
        self.ctx = RowContext(row_index=4, now=FIXED_NOW)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_suffix_format(self) -> None:
        self.assertEqual(suffix_value("ID-1", self.ctx), f"ID-1-{MILLIS}-4")

    def test_make_unique_leaves_fresh_values_alone(self) -> None:
        record = _customer("ID-1")
        self.guard.make_unique(record, (ID_NUMBER,), self.ctx)
        self.assertEqual(record.id_number, "ID-1")

    def test_make_unique_suffixes_collisions(self) -> None:
        self.repos.customers.create(_customer("ID-1"))
        record = _customer("ID-1")
        self.guard.make_unique(record, (ID_NUMBER,), self.ctx)
        self.assertEqual(record.id_number, f"ID-1-{MILLIS}-4")

    def test_create_retries_once_on_unique_violation(self) -> None:
        repo = mock.Mock(table="customers")
        repo.create.side_effect = [DuplicateKeyError("UNIQUE constraint failed: customers.id_number"), "new-id"]
        record = _customer("ID-1")
        self.assertEqual(self.guard.create(repo, record, (ID_NUMBER,), self.ctx), "new-id")
        self.assertEqual(repo.create.call_count, 2)
        self.assertEqual(record.id_number, f"ID-1-{MILLIS}-4")

    def test_second_violation_is_permanent(self) -> None:
        repo = mock.Mock(table="customers")
        repo.create.side_effect = DuplicateKeyError("UNIQUE constraint failed: customers.id_number")
        with self.assertRaises(DuplicateKeyError):
            self.guard.create(repo, _customer("ID-1"), (ID_NUMBER,), self.ctx)
        self.assertEqual(repo.create.call_count, 2)

    def test_retry_policy_is_per_field(self) -> None:
        repo = mock.Mock(table="customers")
        repo.create.side_effect = DuplicateKeyError("UNIQUE constraint failed: customers.id_number")
        no_retry = GuardedField("id_number", (EntityKind.CUSTOMERS,), RetryPolicy(max_retries=0))
        with self.assertRaises(DuplicateKeyError):
            self.guard.create(repo, _customer("ID-1"), (no_retry,), self.ctx)
        self.assertEqual(repo.create.call_count, 1)

    def test_violation_on_unguarded_column_is_not_retried(self) -> None:
        repo = mock.Mock(table="customers")
        repo.create.side_effect = DuplicateKeyError("UNIQUE constraint failed: customers.email")
        with self.assertRaises(DuplicateKeyError):
            self.guard.create(repo, _customer("ID-1"), (ID_NUMBER,), self.ctx)
        self.assertEqual(repo.create.call_count, 1)


if __name__ == "__main__":
    unittest.main()

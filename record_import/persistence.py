from __future__ import annotations

import json
import logging
import re
import sqlite3
import uuid
from dataclasses import dataclass, fields
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

from record_import.schema import (
    CustomerRecord,
    EntityKind,
    PaymentRecord,
    PolicyRecord,
    ReceiptRecord,
)

logger = logging.getLogger(__name__)

_RECORD_ID = re.compile(r"^[0-9a-f]{32}$")


class PersistenceError(Exception):
    """Raised when the store rejects a write."""


class DuplicateKeyError(PersistenceError):
    """Raised when a UNIQUE constraint is violated."""


def utc_now() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def new_record_id() -> str:
    return uuid.uuid4().hex


def is_record_id(value: str) -> bool:
    return bool(_RECORD_ID.match(value))


def get_conn(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path) -> None:
    with get_conn(db_path) as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS customers (
                id TEXT PRIMARY KEY,
                first_name TEXT NOT NULL,
                middle_name TEXT,
                last_name TEXT NOT NULL,
                address TEXT NOT NULL,
                contact_number TEXT NOT NULL,
                contact_number2 TEXT,
                email TEXT NOT NULL,
                sex TEXT,
                id_number TEXT NOT NULL,
                drivers_license_number TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE UNIQUE INDEX IF NOT EXISTS ux_customers_id_number ON customers(id_number);
            CREATE INDEX IF NOT EXISTS ix_customers_email ON customers(email);

            CREATE TABLE IF NOT EXISTS policies (
                id TEXT PRIMARY KEY,
                customer_id TEXT NOT NULL,
                co_customer_ids TEXT NOT NULL DEFAULT '[]',
                policy_number TEXT NOT NULL,
                policy_id_number TEXT NOT NULL,
                coverage_type TEXT NOT NULL,
                coverage_start_date TEXT,
                coverage_end_date TEXT,
                total_premium_due REAL NOT NULL,
                amount_paid REAL NOT NULL DEFAULT 0,
                outstanding_balance REAL NOT NULL,
                status TEXT NOT NULL,
                registration_number TEXT,
                engine_number TEXT,
                chassis_number TEXT,
                vehicle_type TEXT,
                notes TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (customer_id) REFERENCES customers(id)
            );
            CREATE INDEX IF NOT EXISTS ix_policies_policy_number ON policies(policy_number);

            CREATE TABLE IF NOT EXISTS payments (
                id TEXT PRIMARY KEY,
                policy_id TEXT NOT NULL,
                amount REAL NOT NULL,
                refund_amount REAL NOT NULL DEFAULT 0,
                payment_date TEXT NOT NULL,
                payment_method TEXT NOT NULL,
                receipt_number TEXT NOT NULL,
                received_by TEXT,
                arrears_override_used INTEGER NOT NULL DEFAULT 0,
                notes TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (policy_id) REFERENCES policies(id)
            );
            CREATE UNIQUE INDEX IF NOT EXISTS ux_payments_receipt_number ON payments(receipt_number);

            CREATE TABLE IF NOT EXISTS receipts (
                id TEXT PRIMARY KEY,
                receipt_number TEXT NOT NULL,
                payment_id TEXT NOT NULL,
                policy_id TEXT NOT NULL,
                customer_id TEXT NOT NULL,
                amount REAL NOT NULL,
                location TEXT,
                registration_number TEXT,
                payment_method TEXT,
                notes TEXT,
                policy_number_snapshot TEXT,
                policy_id_number_snapshot TEXT,
                customer_name_snapshot TEXT,
                customer_email_snapshot TEXT,
                customer_contact_snapshot TEXT,
                outstanding_balance_after REAL,
                generated_by_name TEXT,
                payment_date TEXT NOT NULL,
                generated_at TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (payment_id) REFERENCES payments(id),
                FOREIGN KEY (policy_id) REFERENCES policies(id),
                FOREIGN KEY (customer_id) REFERENCES customers(id)
            );
            CREATE UNIQUE INDEX IF NOT EXISTS ux_receipts_receipt_number ON receipts(receipt_number);

            CREATE TABLE IF NOT EXISTS import_runs (
                run_id TEXT PRIMARY KEY,
                collection_type TEXT NOT NULL,
                actor_id TEXT,
                created_at TEXT NOT NULL,
                total_rows INTEGER NOT NULL,
                imported INTEGER NOT NULL,
                error_count INTEGER NOT NULL,
                errors TEXT NOT NULL
            );
            """
        )


def _to_db(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, list):
        return json.dumps(value)
    return value


class Repository:
    """Single-table access for one entity kind. Every call commits on its own."""

    table: str = ""
    record_type: type = object
    lookup_fields: tuple[str, ...] = ()
    json_fields: tuple[str, ...] = ()

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    @property
    def columns(self) -> list[str]:
        return [f.name for f in fields(self.record_type)]

    def _row_to_dict(self, row: sqlite3.Row | None) -> dict[str, Any] | None:
        if row is None:
            return None
        data = dict(row)
        for name in self.json_fields:
            if data.get(name) is not None:
                data[name] = json.loads(data[name])
        return data

    def find_by_id(self, record_id: str) -> dict[str, Any] | None:
        with get_conn(self.db_path) as conn:
            row = conn.execute(f"SELECT * FROM {self.table} WHERE id = ?", (record_id,)).fetchone()
            return self._row_to_dict(row)

    def find_by(self, field_name: str, value: Any) -> dict[str, Any] | None:
        if field_name not in self.lookup_fields:
            raise ValueError(f"{self.table} cannot be looked up by {field_name}")
        with get_conn(self.db_path) as conn:
            row = conn.execute(
                f"SELECT * FROM {self.table} WHERE {field_name} = ? ORDER BY rowid LIMIT 1",
                (_to_db(value),),
            ).fetchone()
            return self._row_to_dict(row)

    def exists(self, field_name: str, value: Any) -> bool:
        return self.find_by(field_name, value) is not None

    def create(self, record: Any) -> str:
        record_id = new_record_id()
        now = utc_now()
        try:
            values = {name: _to_db(getattr(record, name)) for name in self.columns}
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"cannot store {self.table} record: {exc}") from exc
        names = ["id", *values.keys(), "created_at", "updated_at"]
        params = [record_id, *values.values(), now, now]
        placeholders = ", ".join("?" for _ in names)
        try:
            with get_conn(self.db_path) as conn:
                conn.execute(
                    f"INSERT INTO {self.table}({', '.join(names)}) VALUES ({placeholders})",
                    params,
                )
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc):
                raise DuplicateKeyError(str(exc)) from exc
            raise PersistenceError(str(exc)) from exc
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        return record_id

    def update(self, record_id: str, changes: dict[str, Any]) -> None:
        assignments = ", ".join(f"{name} = ?" for name in changes)
        params = [_to_db(v) for v in changes.values()]
        try:
            with get_conn(self.db_path) as conn:
                conn.execute(
                    f"UPDATE {self.table} SET {assignments}, updated_at = ? WHERE id = ?",
                    (*params, utc_now(), record_id),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    def drop_unique_index_on(self, column: str) -> list[str]:
        """Drop every explicit unique index covering exactly ``column``."""
        dropped: list[str] = []
        with get_conn(self.db_path) as conn:
            for index in conn.execute(f"PRAGMA index_list({self.table})").fetchall():
                if not index["unique"] or index["origin"] != "c":
                    continue
                cols = [r["name"] for r in conn.execute(f"PRAGMA index_info({index['name']})").fetchall()]
                if cols == [column]:
                    conn.execute(f"DROP INDEX IF EXISTS {index['name']}")
                    dropped.append(index["name"])
        for name in dropped:
            logger.info("dropped unique index %s on %s.%s", name, self.table, column)
        return dropped


class CustomerRepository(Repository):
    table = "customers"
    record_type = CustomerRecord
    lookup_fields = ("email", "id_number")


class PolicyRepository(Repository):
    table = "policies"
    record_type = PolicyRecord
    lookup_fields = ("policy_number", "policy_id_number")
    json_fields = ("co_customer_ids",)


class PaymentRepository(Repository):
    table = "payments"
    record_type = PaymentRecord
    lookup_fields = ("receipt_number",)


class ReceiptRepository(Repository):
    table = "receipts"
    record_type = ReceiptRecord
    lookup_fields = ("receipt_number",)


@dataclass
class Repositories:
    db_path: Path
    customers: CustomerRepository
    policies: PolicyRepository
    payments: PaymentRepository
    receipts: ReceiptRepository

    @classmethod
    def for_db(cls, db_path: Path) -> Repositories:
        return cls(
            db_path=db_path,
            customers=CustomerRepository(db_path),
            policies=PolicyRepository(db_path),
            payments=PaymentRepository(db_path),
            receipts=ReceiptRepository(db_path),
        )

    def for_kind(self, kind: EntityKind) -> Repository:
        return getattr(self, kind.value)


# ---------------------------------------------------------------------------
# Import run log
# ---------------------------------------------------------------------------

def save_import_run(
    db_path: Path,
    run_id: str,
    collection_type: str,
    total_rows: int,
    imported: int,
    errors: list[str],
    actor_id: str | None = None,
) -> None:
    with get_conn(db_path) as conn:
        conn.execute(
            """
            INSERT INTO import_runs(
                run_id, collection_type, actor_id, created_at, total_rows, imported, error_count, errors
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (run_id, collection_type, actor_id, utc_now(), total_rows, imported, len(errors), json.dumps(errors)),
        )


def list_import_runs(
    db_path: Path, collection_type: str | None = None, limit: int = 50
) -> list[dict[str, Any]]:
    with get_conn(db_path) as conn:
        if collection_type:
            rows = conn.execute(
                """
                SELECT run_id, collection_type, actor_id, created_at, total_rows, imported, error_count, errors
                FROM import_runs
                WHERE collection_type = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (collection_type, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                """
                SELECT run_id, collection_type, actor_id, created_at, total_rows, imported, error_count, errors
                FROM import_runs
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
    result = []
    for row in rows:
        data = dict(row)
        data["errors"] = json.loads(data["errors"])
        result.append(data)
    return result

"""Entity kinds, their field tables, and the typed records the importer persists.

Each kind declares one ``FieldSpec`` per importable column. The coercer reads
``type``, the defaulting step reads ``default`` / ``generate``, and ``text``
fields are trimmed with empty results stored as null. Foreign keys are
declared separately as ``Reference`` entries so the resolver knows which kind
to look up and whether a blank value is a row error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from record_import.coercion import FieldType


class EntityKind(str, Enum):
    CUSTOMERS = "customers"
    POLICIES = "policies"
    PAYMENTS = "payments"
    RECEIPTS = "receipts"

    @property
    def label(self) -> str:
        return KIND_LABELS[self]


@dataclass(frozen=True)
class RowContext:
    row_index: int
    now: datetime
    actor_id: str | None = None

    @property
    def row_number(self) -> int:
        # 1-based, counting the header line.
        return self.row_index + 2

    @property
    def millis(self) -> int:
        return int(self.now.timestamp() * 1000)


def stamped(prefix: str) -> Callable[[RowContext], str]:
    def _generate(ctx: RowContext) -> str:
        return f"{prefix}-{ctx.millis}-{ctx.row_index}"

    return _generate


def current_time(ctx: RowContext) -> datetime:
    return ctx.now


def empty_list(ctx: RowContext) -> list[str]:
    return []


@dataclass(frozen=True)
class FieldSpec:
    name: str
    type: FieldType = FieldType.STRING
    default: Any = None
    generate: Callable[[RowContext], Any] | None = None
    required: bool = False
    text: bool = False

    @property
    def alias(self) -> str:
        head, *rest = self.name.split("_")
        return head + "".join(part.capitalize() for part in rest)

    def default_for(self, ctx: RowContext) -> Any:
        if self.generate is not None:
            return self.generate(ctx)
        return self.default


@dataclass(frozen=True)
class Reference:
    field: str
    target: EntityKind
    required: bool = True
    many: bool = False


# ---------------------------------------------------------------------------
# Typed records
# ---------------------------------------------------------------------------

@dataclass
class CustomerRecord:
    first_name: str
    last_name: str
    address: str
    contact_number: str
    email: str
    id_number: str
    middle_name: str | None = None
    contact_number2: str | None = None
    sex: str | None = None
    drivers_license_number: str | None = None


@dataclass
class PolicyRecord:
    customer_id: str
    policy_number: str
    policy_id_number: str
    total_premium_due: float
    amount_paid: float
    outstanding_balance: float
    status: str
    coverage_type: str
    co_customer_ids: list[str] = field(default_factory=list)
    coverage_start_date: datetime | None = None
    coverage_end_date: datetime | None = None
    registration_number: str | None = None
    engine_number: str | None = None
    chassis_number: str | None = None
    vehicle_type: str | None = None
    notes: str | None = None


@dataclass
class PaymentRecord:
    policy_id: str
    amount: float
    refund_amount: float
    payment_date: datetime
    payment_method: str
    receipt_number: str
    arrears_override_used: bool
    received_by: str | None = None
    notes: str | None = None


@dataclass
class ReceiptRecord:
    receipt_number: str
    payment_id: str
    policy_id: str
    customer_id: str
    amount: float
    payment_date: datetime
    generated_at: datetime
    status: str
    location: str | None = None
    registration_number: str | None = None
    payment_method: str | None = None
    notes: str | None = None
    policy_number_snapshot: str | None = None
    policy_id_number_snapshot: str | None = None
    customer_name_snapshot: str | None = None
    customer_email_snapshot: str | None = None
    customer_contact_snapshot: str | None = None
    outstanding_balance_after: float | None = None
    generated_by_name: str | None = None


# ---------------------------------------------------------------------------
# Field tables
# ---------------------------------------------------------------------------

CUSTOMER_FIELDS = (
    FieldSpec("first_name", default="Unknown", required=True),
    FieldSpec("middle_name", text=True),
    FieldSpec("last_name", default="Customer", required=True),
    FieldSpec("address", default="Not provided", required=True),
    FieldSpec("contact_number", default="000-0000", required=True),
    FieldSpec("contact_number2", text=True),
    FieldSpec("email", default="na@none.com", required=True),
    FieldSpec("sex", text=True),
    FieldSpec("id_number", generate=stamped("TEMP"), required=True),
    FieldSpec("drivers_license_number", text=True),
)

POLICY_FIELDS = (
    FieldSpec("customer_id"),
    FieldSpec("co_customer_ids", generate=empty_list),
    FieldSpec("policy_number", generate=stamped("POL"), required=True),
    FieldSpec("policy_id_number", generate=stamped("PID"), required=True),
    FieldSpec("coverage_type", default="Third Party"),
    FieldSpec("coverage_start_date", FieldType.DATE),
    FieldSpec("coverage_end_date", FieldType.DATE),
    FieldSpec("total_premium_due", FieldType.NUMBER, default=0.0),
    FieldSpec("amount_paid", FieldType.NUMBER, default=0.0),
    # Derived from premium and amount paid when left blank.
    FieldSpec("outstanding_balance", FieldType.NUMBER),
    FieldSpec("status", default="Active"),
    FieldSpec("registration_number", text=True),
    FieldSpec("engine_number", text=True),
    FieldSpec("chassis_number", text=True),
    FieldSpec("vehicle_type", text=True),
    FieldSpec("notes", text=True),
)

PAYMENT_FIELDS = (
    FieldSpec("policy_id"),
    FieldSpec("amount", FieldType.NUMBER, default=0.0),
    FieldSpec("refund_amount", FieldType.NUMBER, default=0.0),
    FieldSpec("payment_date", FieldType.DATE, generate=current_time),
    FieldSpec("payment_method", default="Cash"),
    FieldSpec("receipt_number", generate=stamped("RCP"), required=True),
    FieldSpec("arrears_override_used", FieldType.BOOLEAN, default=False),
    FieldSpec("notes", text=True),
)

RECEIPT_FIELDS = (
    FieldSpec("receipt_number", generate=stamped("RCP"), required=True),
    FieldSpec("payment_id"),
    FieldSpec("policy_id"),
    FieldSpec("customer_id"),
    FieldSpec("amount", FieldType.NUMBER, default=0.0),
    FieldSpec("location", text=True),
    FieldSpec("registration_number", text=True),
    FieldSpec("payment_method", text=True),
    FieldSpec("notes", text=True),
    FieldSpec("policy_number_snapshot", text=True),
    FieldSpec("policy_id_number_snapshot", text=True),
    FieldSpec("customer_name_snapshot", text=True),
    FieldSpec("customer_email_snapshot", text=True),
    FieldSpec("customer_contact_snapshot", text=True),
    FieldSpec("outstanding_balance_after", FieldType.NUMBER),
    FieldSpec("generated_by_name", text=True),
    FieldSpec("payment_date", FieldType.DATE, generate=current_time),
    FieldSpec("generated_at", FieldType.DATE, generate=current_time),
    FieldSpec("status", default="active"),
)

FIELD_TABLES: dict[EntityKind, tuple[FieldSpec, ...]] = {
    EntityKind.CUSTOMERS: CUSTOMER_FIELDS,
    EntityKind.POLICIES: POLICY_FIELDS,
    EntityKind.PAYMENTS: PAYMENT_FIELDS,
    EntityKind.RECEIPTS: RECEIPT_FIELDS,
}

RECORD_TYPES: dict[EntityKind, type] = {
    EntityKind.CUSTOMERS: CustomerRecord,
    EntityKind.POLICIES: PolicyRecord,
    EntityKind.PAYMENTS: PaymentRecord,
    EntityKind.RECEIPTS: ReceiptRecord,
}


KIND_LABELS: dict[EntityKind, str] = {
    EntityKind.CUSTOMERS: "Customer",
    EntityKind.POLICIES: "Policy",
    EntityKind.PAYMENTS: "Payment",
    EntityKind.RECEIPTS: "Receipt",
}


def parse_kind(raw: str | None) -> EntityKind | None:
    try:
        return EntityKind(raw)
    except ValueError:
        return None

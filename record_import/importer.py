"""Row-by-row import of one CSV file into one entity kind.

A row moves through mapped -> coerced -> resolved -> defaulted -> guarded ->
persisted. Any failure stops the row with a ``RowError`` naming its display
row number; the run carries on with the next row. Rows are handled strictly in
order and every write commits before the next row starts, so a row can refer
to a record created earlier in the same file.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import uuid
from dataclasses import dataclass, fields
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Callable, Iterator

from record_import.aggregates import AggregateUpdater, outstanding_for
from record_import.coercion import blank_value, coerce_value
from record_import.csv_tokenizer import ParsedCsv, parse_csv
from record_import.duplicate_guard import DuplicateGuard, GuardedField
from record_import.errors import (
    FatalInputError,
    PartialAggregateInconsistency,
    RowError,
    RowPersistenceError,
    RowResolutionError,
)
from record_import.persistence import PersistenceError, Repositories, save_import_run
from record_import.progress import ImportSummary, ProgressSink
from record_import.resolver import ReferenceResolver, record_preview
from record_import.schema import (
    FIELD_TABLES,
    RECORD_TYPES,
    EntityKind,
    FieldSpec,
    Reference,
    RowContext,
    parse_kind,
)

logger = logging.getLogger(__name__)

# Receipt location inferred from the linked policy's policy_id_number prefix.
LOCATION_PREFIXES = {"VF": "Vieux Fort", "SF": "Soufriere"}

_MULTI_SEPARATOR = re.compile(r"[;|]")


def utc_clock() -> datetime:
    return datetime.now(UTC)


class RowStage(str, Enum):
    MAPPED = "mapped"
    COERCED = "coerced"
    RESOLVED = "resolved"
    DEFAULTED = "defaulted"
    GUARDED = "guarded"
    PERSISTED = "persisted"


class RowStatus(str, Enum):
    IMPORTED = "imported"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class RowOutcome:
    row_index: int
    status: RowStatus
    stage: RowStage
    record_id: str | None = None
    error: str | None = None

    @property
    def row_number(self) -> int:
        return self.row_index + 2


# ---------------------------------------------------------------------------
# Per-kind strategies
# ---------------------------------------------------------------------------

class EntityStrategy:
    kind: EntityKind
    references: tuple[Reference, ...] = ()
    guarded: tuple[GuardedField, ...] = ()

    def __init__(self, repos: Repositories) -> None:
        self.repos = repos
        self.repo = repos.for_kind(self.kind)

    @property
    def fields(self) -> tuple[FieldSpec, ...]:
        return FIELD_TABLES[self.kind]

    def finalize(self, values: dict[str, Any], ctx: RowContext) -> None:
        """Kind-specific adjustments once defaults are in place."""

    def build(self, values: dict[str, Any]) -> Any:
        record_type = RECORD_TYPES[self.kind]
        return record_type(**{f.name: values.get(f.name) for f in fields(record_type)})

    def persist(self, record: Any, ctx: RowContext, guard: DuplicateGuard) -> str:
        try:
            return guard.create(self.repo, record, self.guarded, ctx)
        except PersistenceError as exc:
            raise RowPersistenceError(ctx.row_number, f"Failed to create {self.kind.label.lower()}: {exc}") from exc


class CustomerStrategy(EntityStrategy):
    kind = EntityKind.CUSTOMERS
    guarded = (GuardedField("id_number", (EntityKind.CUSTOMERS,)),)


class PolicyStrategy(EntityStrategy):
    kind = EntityKind.POLICIES
    references = (
        Reference("customer_id", EntityKind.CUSTOMERS),
        Reference("co_customer_ids", EntityKind.CUSTOMERS, required=False, many=True),
    )

    def finalize(self, values: dict[str, Any], ctx: RowContext) -> None:
        supplied = values.get("outstanding_balance")
        if supplied is None:
            values["outstanding_balance"] = outstanding_for(values["total_premium_due"], values["amount_paid"])
        else:
            values["outstanding_balance"] = max(supplied, 0.0)


class PaymentStrategy(EntityStrategy):
    kind = EntityKind.PAYMENTS
    references = (Reference("policy_id", EntityKind.POLICIES),)
    guarded = (GuardedField("receipt_number", (EntityKind.PAYMENTS,)),)

    def __init__(self, repos: Repositories) -> None:
        super().__init__(repos)
        self.aggregates = AggregateUpdater(repos.policies)

    def finalize(self, values: dict[str, Any], ctx: RowContext) -> None:
        values["amount"] = max(values["amount"], 0.0)
        values["refund_amount"] = max(values["refund_amount"], 0.0)
        values["received_by"] = ctx.actor_id

    def persist(self, record: Any, ctx: RowContext, guard: DuplicateGuard) -> str:
        policy = self.repos.policies.find_by_id(record.policy_id)
        if policy is None:
            raise RowResolutionError(ctx.row_number, f'Policy with ID "{record.policy_id}" not found in database.')

        # The balance is updated first and is not rolled back if the insert fails.
        balance = self.aggregates.apply(policy, record.amount, record.refund_amount)
        try:
            return guard.create(self.repo, record, self.guarded, ctx)
        except PersistenceError as exc:
            detail = (
                f'Failed to create payment - {exc}. Policy: "{record.policy_id}", '
                f'Amount: ${record.amount:.2f}, Receipt: "{record.receipt_number}".'
            )
            if balance is not None:
                raise PartialAggregateInconsistency(
                    ctx.row_number, f"{detail} Policy balance was already updated."
                ) from exc
            raise RowPersistenceError(ctx.row_number, detail) from exc


class ReceiptStrategy(EntityStrategy):
    kind = EntityKind.RECEIPTS
    references = (
        Reference("payment_id", EntityKind.PAYMENTS),
        Reference("policy_id", EntityKind.POLICIES),
        Reference("customer_id", EntityKind.CUSTOMERS),
    )
    guarded = (GuardedField("receipt_number", (EntityKind.RECEIPTS, EntityKind.PAYMENTS)),)

    def persist(self, record: Any, ctx: RowContext, guard: DuplicateGuard) -> str:
        if not record.location:
            record.location = self.infer_location(record.policy_id)
        return super().persist(record, ctx, guard)

    def infer_location(self, policy_id: str) -> str | None:
        policy = self.repos.policies.find_by_id(policy_id)
        if policy is None:
            return None
        prefix = (policy.get("policy_id_number") or "").strip().upper()
        for code, location in LOCATION_PREFIXES.items():
            if prefix.startswith(code):
                return location
        return None


STRATEGIES: dict[EntityKind, type[EntityStrategy]] = {
    EntityKind.CUSTOMERS: CustomerStrategy,
    EntityKind.POLICIES: PolicyStrategy,
    EntityKind.PAYMENTS: PaymentStrategy,
    EntityKind.RECEIPTS: ReceiptStrategy,
}


# ---------------------------------------------------------------------------
# Row importer
# ---------------------------------------------------------------------------

class RowImporter:
    def __init__(
        self,
        kind: EntityKind,
        field_mappings: dict[str, str],
        headers: list[str],
        repos: Repositories,
        clock: Callable[[], datetime] = utc_clock,
        actor_id: str | None = None,
    ) -> None:
        self.kind = kind
        self.repos = repos
        self.clock = clock
        self.actor_id = actor_id
        self.strategy = STRATEGIES[kind](repos)
        self.resolver = ReferenceResolver(repos)
        self.guard = DuplicateGuard(repos, clock)
        self.column_for = self._column_indexes(field_mappings, headers)

    def _column_indexes(self, field_mappings: dict[str, str], headers: list[str]) -> dict[str, int | None]:
        header_index = {header: idx for idx, header in enumerate(headers)}
        known = {name for spec in self.strategy.fields for name in (spec.name, spec.alias)}
        unknown = sorted(set(field_mappings) - known)
        if unknown:
            logger.warning("ignoring mappings for unknown %s fields: %s", self.kind.value, ", ".join(unknown))

        columns: dict[str, int | None] = {}
        for spec in self.strategy.fields:
            header = field_mappings.get(spec.name, field_mappings.get(spec.alias))
            columns[spec.name] = header_index.get(header) if header is not None else None
        return columns

    def import_row(self, row_index: int, cells: list[str]) -> RowOutcome:
        ctx = RowContext(row_index=row_index, now=self.clock(), actor_id=self.actor_id)
        if all(not cell.strip() for cell in cells):
            return RowOutcome(row_index, RowStatus.SKIPPED, RowStage.MAPPED)

        stage = RowStage.MAPPED
        try:
            raw = self._map(cells)
            values = self._coerce(raw)
            stage = RowStage.COERCED
            self._resolve(values, ctx, cells)
            stage = RowStage.RESOLVED
            self._apply_defaults(values, ctx)
            stage = RowStage.DEFAULTED
            record = self.strategy.build(values)
            self.guard.make_unique(record, self.strategy.guarded, ctx)
            stage = RowStage.GUARDED
            record_id = self.strategy.persist(record, ctx, self.guard)
        except RowError as exc:
            return RowOutcome(row_index, RowStatus.ERROR, stage, error=str(exc))
        except (PersistenceError, sqlite3.Error) as exc:
            error = RowPersistenceError(ctx.row_number, str(exc) or "Unknown error")
            return RowOutcome(row_index, RowStatus.ERROR, stage, error=str(error))
        except Exception as exc:
            logger.exception("row %d: unexpected failure at stage %s", ctx.row_number, stage.value)
            error = RowPersistenceError(ctx.row_number, str(exc) or type(exc).__name__)
            return RowOutcome(row_index, RowStatus.ERROR, stage, error=str(error))
        return RowOutcome(row_index, RowStatus.IMPORTED, RowStage.PERSISTED, record_id=record_id)

    def _map(self, cells: list[str]) -> dict[str, str | None]:
        raw: dict[str, str | None] = {}
        for name, idx in self.column_for.items():
            raw[name] = cells[idx] if idx is not None and idx < len(cells) else None
        return raw

    def _coerce(self, raw: dict[str, str | None]) -> dict[str, Any]:
        return {spec.name: coerce_value(raw[spec.name], spec.type, spec.name) for spec in self.strategy.fields}

    def _resolve(self, values: dict[str, Any], ctx: RowContext, cells: list[str]) -> None:
        preview = record_preview(cells)
        for ref in self.strategy.references:
            value = values.get(ref.field)
            label = ref.target.label
            if value is None or value == "":
                if ref.required:
                    raise RowResolutionError(
                        ctx.row_number, f"{label} ID is blank/required. Record preview: {preview}..."
                    )
                continue

            identifiers = [p.strip() for p in _MULTI_SEPARATOR.split(value) if p.strip()] if ref.many else [value]
            resolved: list[str] = []
            for identifier in identifiers:
                record_id = self.resolver.resolve(identifier, ref.target)
                if record_id is None:
                    raise RowResolutionError(
                        ctx.row_number, f'{label} not found: "{identifier}". Record preview: {preview}...'
                    )
                resolved.append(record_id)
            values[ref.field] = resolved if ref.many else resolved[0]

    def _apply_defaults(self, values: dict[str, Any], ctx: RowContext) -> None:
        for spec in self.strategy.fields:
            value = values.get(spec.name)
            if spec.text and isinstance(value, str):
                value = value.strip() or None
            if value is None or value == blank_value(spec.name):
                value = spec.default_for(ctx)
            if spec.required and (value is None or value == ""):
                raise RowError(ctx.row_number, f"{spec.name} is required")
            values[spec.name] = value
        self.strategy.finalize(values, ctx)


# ---------------------------------------------------------------------------
# Import runs
# ---------------------------------------------------------------------------

@dataclass
class ImportRequest:
    kind: EntityKind
    parsed: ParsedCsv
    field_mappings: dict[str, str]


def prepare_import(csv_text: Any, collection_type: Any, field_mappings: Any) -> ImportRequest:
    """Validate a request up front; raises FatalInputError before any row runs."""
    if not isinstance(csv_text, str) or not csv_text.strip():
        raise FatalInputError("CSV content is required")
    kind = parse_kind(collection_type)
    if kind is None:
        raise FatalInputError("Invalid collection type")
    if not field_mappings or not isinstance(field_mappings, dict):
        raise FatalInputError("Field mappings are required")
    parsed = parse_csv(csv_text)
    if parsed.is_empty:
        raise FatalInputError("CSV file is empty or invalid")
    return ImportRequest(kind=kind, parsed=parsed, field_mappings=field_mappings)


def new_run_id() -> str:
    return f"{datetime.now(UTC).strftime('import-%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"


class ImportRun:
    """One pass over every row of a file, reporting outcomes to a progress sink."""

    def __init__(
        self,
        request: ImportRequest,
        repos: Repositories,
        sink: ProgressSink | None = None,
        clock: Callable[[], datetime] = utc_clock,
        actor_id: str | None = None,
        run_id: str | None = None,
    ) -> None:
        self.request = request
        self.repos = repos
        self.sink = sink or ProgressSink()
        self.actor_id = actor_id
        self.run_id = run_id or new_run_id()
        self.importer = RowImporter(
            request.kind, request.field_mappings, request.parsed.headers, repos, clock=clock, actor_id=actor_id
        )
        self.summary = ImportSummary(total=len(request.parsed.rows))

    @property
    def _log_extra(self) -> dict[str, str]:
        return {"run_id": self.run_id, "kind": self.request.kind.value}

    def outcomes(self) -> Iterator[RowOutcome]:
        # Legacy data carries duplicate policy numbers; a strict index would reject them.
        self.repos.policies.drop_unique_index_on("policy_number")
        logger.info("import started: %d rows", self.summary.total, extra=self._log_extra)

        for row_index, cells in enumerate(self.request.parsed.rows):
            outcome = self.importer.import_row(row_index, cells)
            if outcome.status is RowStatus.IMPORTED:
                self.summary.imported += 1
            elif outcome.status is RowStatus.SKIPPED:
                self.summary.skipped += 1
            else:
                self.summary.errors.append(outcome.error)
                logger.warning("%s", outcome.error, extra=self._log_extra)
                self.sink.error(outcome.error, outcome.row_number)
            self.sink.progress(
                current=row_index + 1,
                total=self.summary.total,
                imported=self.summary.imported,
                errors=len(self.summary.errors),
            )
            yield outcome

        save_import_run(
            self.repos.db_path,
            self.run_id,
            self.request.kind.value,
            self.summary.total,
            self.summary.imported,
            self.summary.errors,
            actor_id=self.actor_id,
        )
        logger.info(
            "import finished: imported=%d errors=%d skipped=%d",
            self.summary.imported,
            len(self.summary.errors),
            self.summary.skipped,
            extra=self._log_extra,
        )
        self.sink.complete(self.summary)

    def execute(self) -> ImportSummary:
        for _ in self.outcomes():
            pass
        return self.summary

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from record_import.aggregates import AggregateUpdater, apply_payment
from record_import.persistence import PolicyRepository, init_db
from record_import.schema import PolicyRecord


class ApplyPaymentTests(unittest.TestCase):
    def test_payment_reduces_outstanding(self) -> None:
        balance = apply_payment(500.0, 0.0, 200.0, 0.0)
        self.assertEqual(balance.amount_paid, 200.0)
        self.assertEqual(balance.outstanding_balance, 300.0)

    def test_refund_is_added_to_applied_amount(self) -> None:
        balance = apply_payment(500.0, 100.0, 50.0, 25.0)
        self.assertEqual(balance.amount_paid, 175.0)
        self.assertEqual(balance.outstanding_balance, 325.0)

    def test_overpayment_allowed_and_outstanding_floored(self) -> None:
        balance = apply_payment(500.0, 400.0, 300.0, 0.0)
        self.assertEqual(balance.amount_paid, 700.0)
        self.assertEqual(balance.outstanding_balance, 0.0)


class AggregateUpdaterTests(unittest.TestCase):
    def test_apply_persists_balance(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            db = Path(tmp) / "records.db"
            init_db(db)
            policies = PolicyRepository(db)
            policy_id = policies.create(
                PolicyRecord(
                    customer_id="c" * 32,
                    policy_number="POL-1",
                    policy_id_number="PID-1",
                    total_premium_due=500.0,
                    amount_paid=0.0,
                    outstanding_balance=500.0,
                    status="Active",
                    coverage_type="Third Party",
                )
            )
            updater = AggregateUpdater(policies)
            updater.apply(policies.find_by_id(policy_id), 200.0, 0.0)
            stored = policies.find_by_id(policy_id)
            self.assertEqual(stored["amount_paid"], 200.0)
            self.assertEqual(stored["outstanding_balance"], 300.0)

    def test_nothing_applied_leaves_policy_untouched(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            db = Path(tmp) / "records.db"
            init_db(db)
            policies = PolicyRepository(db)
            result = AggregateUpdater(policies).apply({"id": "x" * 32, "total_premium_due": 10}, 0.0, 0.0)
            self.assertIsNone(result)


if __name__ == "__main__":
    unittest.main()

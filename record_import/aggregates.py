from __future__ import annotations

import logging
from dataclasses import dataclass

from record_import.persistence import PolicyRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicyBalance:
    amount_paid: float
    outstanding_balance: float


def outstanding_for(total_premium_due: float, amount_paid: float) -> float:
    return max(total_premium_due - amount_paid, 0.0)


def apply_payment(
    total_premium_due: float, amount_paid: float, amount: float, refund_amount: float
) -> PolicyBalance:
    # Refunds count toward the applied amount; overpayment is allowed.
    applied = amount + refund_amount
    new_amount_paid = max(amount_paid + applied, 0.0)
    return PolicyBalance(
        amount_paid=new_amount_paid,
        outstanding_balance=outstanding_for(total_premium_due, new_amount_paid),
    )


class AggregateUpdater:
    def __init__(self, policies: PolicyRepository) -> None:
        self.policies = policies

    def apply(self, policy: dict, amount: float, refund_amount: float) -> PolicyBalance | None:
        """Fold a payment into the policy's paid/outstanding fields and persist them.

        Returns None without touching the store when nothing is being applied.
        """
        if amount <= 0 and refund_amount <= 0:
            return None
        balance = apply_payment(
            float(policy.get("total_premium_due") or 0),
            float(policy.get("amount_paid") or 0),
            amount,
            refund_amount,
        )
        self.policies.update(
            policy["id"],
            {"amount_paid": balance.amount_paid, "outstanding_balance": balance.outstanding_balance},
        )
        logger.debug(
            "policy %s: amount_paid=%.2f outstanding=%.2f",
            policy["id"],
            balance.amount_paid,
            balance.outstanding_balance,
        )
        return balance

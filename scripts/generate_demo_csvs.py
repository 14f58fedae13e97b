#!/usr/bin/env python3
"""Generate synthetic import files for the record importer.

Creates:
- data/demo_import/customers.csv
- data/demo_import/policies.csv
- data/demo_import/payments.csv
- data/demo_import/receipts.csv
- data/demo_import/mappings.json

The files deliberately include the awkward cases seen in legacy exports:
duplicate ID numbers, duplicate policy numbers, quoted names with commas,
month/day/year dates, currency-formatted amounts, and payment rows whose
policy column is blank or points at a policy that does not exist.
"""

from __future__ import annotations

import argparse
import csv
import json
import random
from datetime import date, timedelta
from pathlib import Path
from typing import Iterable

FIRST_NAMES = [
    "John", "Maya", "Chris", "Taylor", "Avery",
    "Jordan", "Morgan", "Alex", "Riley", "Sam",
]
LAST_NAMES = [
    "Smith", "Johnson", "Davis", "Brown", "Garcia",
    "Wilson", "Moore", "Anderson", "Thomas", "Clark",
]
COVERAGE_TYPES = ["Third Party", "Fully Comprehensive"]
PAYMENT_METHODS = ["Cash", "Card", "Cheque", ""]
OFFICE_PREFIXES = ["", "VF", "SF"]

MAPPINGS = {
    "customers": {
        "firstName": "First Name",
        "lastName": "Last Name",
        "address": "Address",
        "contactNumber": "Phone",
        "email": "Email",
        "idNumber": "ID No.",
    },
    "policies": {
        "customerId": "Customer ID No.",
        "policyNumber": "Policy No.",
        "policyIdNumber": "Policy ID",
        "coverageType": "Coverage",
        "coverageStartDate": "Start",
        "coverageEndDate": "End",
        "totalPremiumDue": "Premium",
        "outstandingBalance": "Outstanding",
    },
    "payments": {
        "policyId": "Policy No.",
        "amount": "Amount",
        "refundAmount": "Refund",
        "paymentDate": "Date",
        "paymentMethod": "Method",
        "receiptNumber": "Receipt No.",
    },
    "receipts": {
        "receiptNumber": "Receipt No.",
        "paymentId": "Payment Receipt",
        "policyId": "Policy No.",
        "customerId": "Customer ID No.",
        "amount": "Amount",
        "paymentDate": "Date",
    },
}


def mdy(d: date) -> str:
    return f"{d.month}/{d.day}/{d.year}"


def money(value: float) -> str:
    return f"${value:,.2f}"


def write_csv(path: Path, rows: Iterable[dict], fieldnames: list[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)


def generate(args: argparse.Namespace) -> None:
    rng = random.Random(args.seed)
    today = date.today()
    out = args.out_dir

    customers: list[dict] = []
    for i in range(1, args.customers + 1):
        first, last = rng.choice(FIRST_NAMES), rng.choice(LAST_NAMES)
        id_number = f"{i:06d}"
        if i % 17 == 0:
            id_number = customers[-1]["ID No."]
        customers.append({
            "First Name": first,
            "Last Name": f"{last}, Jr." if i % 11 == 0 else last,
            "Address": f"{rng.randint(1, 200)} Bridge Street" if i % 5 else "",
            "Phone": f"758-{rng.randint(200, 999)}-{rng.randint(1000, 9999)}",
            "Email": f"{first.lower()}.{last.lower()}{i}@example.com" if i % 4 else "",
            "ID No.": id_number,
        })

    policies: list[dict] = []
    for i in range(1, args.policies + 1):
        holder = rng.choice(customers)
        start = today - timedelta(days=rng.randint(0, 330))
        premium = round(rng.uniform(300.0, 4000.0), 2)
        number = f"POL-{i:05d}"
        if i % 13 == 0:
            number = policies[-1]["Policy No."]
        policies.append({
            "Customer ID No.": holder["ID No."],
            "Policy No.": number,
            "Policy ID": f"{rng.choice(OFFICE_PREFIXES)}{i:05d}",
            "Coverage": rng.choice(COVERAGE_TYPES),
            "Start": mdy(start),
            "End": mdy(start + timedelta(days=365)),
            "Premium": money(premium),
            "Outstanding": "" if i % 3 else money(premium),
        })

    payments: list[dict] = []
    for i in range(1, args.payments + 1):
        policy = rng.choice(policies)
        policy_ref = policy["Policy No."]
        if i % 19 == 0:
            policy_ref = ""
        elif i % 23 == 0:
            policy_ref = "POL-MISSING"
        payments.append({
            "Policy No.": policy_ref,
            "Amount": money(round(rng.uniform(25.0, 800.0), 2)),
            "Refund": "" if i % 9 else money(round(rng.uniform(5.0, 50.0), 2)),
            "Date": mdy(today - timedelta(days=rng.randint(0, 120))),
            "Method": rng.choice(PAYMENT_METHODS),
            "Receipt No.": f"R{i:06d}" if i % 7 else "",
        })

    receipts: list[dict] = []
    for payment in payments:
        if not payment["Policy No."] or payment["Policy No."] == "POL-MISSING" or not payment["Receipt No."]:
            continue
        policy = next(p for p in policies if p["Policy No."] == payment["Policy No."])
        receipts.append({
            "Receipt No.": payment["Receipt No."],
            "Payment Receipt": payment["Receipt No."],
            "Policy No.": payment["Policy No."],
            "Customer ID No.": policy["Customer ID No."],
            "Amount": payment["Amount"],
            "Date": payment["Date"],
        })

    write_csv(out / "customers.csv", customers, list(customers[0].keys()))
    write_csv(out / "policies.csv", policies, list(policies[0].keys()))
    write_csv(out / "payments.csv", payments, list(payments[0].keys()))
    write_csv(out / "receipts.csv", receipts, list(MAPPINGS["receipts"].values()))
    (out / "mappings.json").write_text(json.dumps(MAPPINGS, indent=2), encoding="utf-8")

    print(
        f"wrote {len(customers)} customers, {len(policies)} policies, "
        f"{len(payments)} payments, {len(receipts)} receipts to {out}"
    )


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Generate demo CSV files for the record importer.")
    p.add_argument("--out-dir", type=Path, default=Path("data/demo_import"))
    p.add_argument("--customers", type=int, default=60)
    p.add_argument("--policies", type=int, default=80)
    p.add_argument("--payments", type=int, default=150)
    p.add_argument("--seed", type=int, default=7)
    return p.parse_args()


if __name__ == "__main__":
    generate(parse_args())

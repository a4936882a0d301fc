# Overview: Pure transaction status calculator; no database access, no side effects.

"""
Transaction Status Calculator

WHY: Two calculators used to coexist (a 5-state one that knew about overdue
debts and a 3-state one that did not). They are unified here behind a single
state machine; the overdue state is switched on with enable_overdue_state
(config key ENABLE_OVERDUE_STATE) because both shapes exist in stored data.

RULES (first match wins):
1. payment / refund             -> completed
2. remaining <= 0               -> completed
3. paid > 0 and remaining > 0   -> partial
4. paid == 0 and remaining > 0  -> overdue if past due and 5-state, else pending
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..errors import ValidationFailure
from ..models.transactions import (
    IMMEDIATE_METHODS,
    METHOD_CASH,
    METHOD_CREDIT,
    METHOD_MIXED,
    PAYMENT_METHODS,
    SETTLED_KINDS,
    STATUS_COMPLETED,
    STATUS_OVERDUE,
    STATUS_PARTIAL,
    STATUS_PENDING,
    TRANSACTION_KINDS,
    KIND_CREDIT,
)
from ..time_utils import is_past
from .money import normalize


@dataclass(frozen=True)
class StatusResult:
    status: str
    paid_amount: int
    remaining_amount: int
    percent_paid: float


def percent_paid(paid_amount, total_amount) -> float:
    """Percentage of total that is paid, 0-100 with two decimals. 0 when total is 0."""
    total = normalize(total_amount)
    if total <= 0:
        return 0.0
    paid = normalize(paid_amount)
    percent = round(paid / total * 100, 2)
    return min(100.0, max(0.0, percent))


def calculate_status(
    kind: str,
    payment_method: Optional[str],
    total_amount,
    paid_amount,
    remaining_amount,
    due_date: Optional[datetime] = None,
    *,
    enable_overdue_state: bool = False,
    now: Optional[datetime] = None,
) -> StatusResult:
    """
    Derive status, normalized amounts and percent paid for one transaction.

    payment_method does not influence the result; it is accepted so that
    callers pass a transaction's full shape and the rules can grow without a
    signature change.
    """
    if kind not in TRANSACTION_KINDS:
        raise ValidationFailure(f"Invalid transaction kind: {kind}. Must be one of {list(TRANSACTION_KINDS)}")

    total = normalize(total_amount)
    paid = normalize(paid_amount)
    remaining = normalize(remaining_amount)

    if kind in SETTLED_KINDS:
        status = STATUS_COMPLETED
    elif remaining <= 0:
        status = STATUS_COMPLETED
    elif paid > 0:
        status = STATUS_PARTIAL
    elif enable_overdue_state and is_past(due_date, now):
        status = STATUS_OVERDUE
    else:
        status = STATUS_PENDING

    return StatusResult(
        status=status,
        paid_amount=paid,
        remaining_amount=remaining,
        percent_paid=percent_paid(paid, total),
    )


def initial_amounts(
    kind: str,
    payment_method: Optional[str],
    total_amount,
    cash_amount=None,
) -> tuple[int, int, str]:
    """
    Paid/remaining split a new transaction starts from, before any credit offset.

    Returns (paid_amount, remaining_amount, payment_method).
    """
    if kind not in TRANSACTION_KINDS:
        raise ValidationFailure(f"Invalid transaction kind: {kind}. Must be one of {list(TRANSACTION_KINDS)}")
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationFailure(f"Invalid payment method: {payment_method}. Must be one of {list(PAYMENT_METHODS)}")

    total = normalize(total_amount)

    if kind == KIND_CREDIT:
        # Credit issuance always starts fully unpaid
        return 0, total, METHOD_CREDIT

    if kind in SETTLED_KINDS:
        # Paid is booked later as the part that actually clears debt
        method = payment_method if payment_method in IMMEDIATE_METHODS else METHOD_CASH
        return 0, total, method

    if payment_method == METHOD_CREDIT:
        return 0, total, METHOD_CREDIT

    if payment_method == METHOD_MIXED:
        cash = min(normalize(cash_amount), total)
        return cash, max(0, total - cash), METHOD_MIXED

    return total, 0, payment_method or METHOD_CASH

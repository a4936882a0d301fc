# Overview: Service-layer operations for customer balances; guarded floor-at-zero read-modify-write primitives.

"""
Customer Balance Ledger

WHY: outstanding_balance and credit_balance are the numbers a shopkeeper acts
on, so they are only ever changed here, one locked read-modify-write per call.

DESIGN PRINCIPLES:
- amount must be > 0 (ValidationFailure); customer must exist (NotFoundFailure)
- Decrements floor at zero instead of raising on overdraft. The clamp is never
  silent: it is logged as balance drift and reported in BalanceChange.clamped,
  and reconciliation restores the true figure later.
- Every primitive runs inside run_atomically and joins the caller's unit when
  one is open, so allocation + audit writes commit or roll back together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..models.audit import AUDIT_CREDIT_USED
from ..time_utils import utcnow
from .audit_service import AuditTrail
from .money import require_positive
from .persistence import CustomerDirectory, SessionStore

logger = logging.getLogger(__name__)


OUTSTANDING = "outstanding_balance"
CREDIT = "credit_balance"


@dataclass(frozen=True)
class BalanceChange:
    customer_id: int
    field: str
    before: int
    after: int
    requested: int
    # Portion of a decrement that could not be applied because of the zero floor
    clamped: int = 0

    @property
    def applied(self) -> int:
        return abs(self.after - self.before)


class CustomerBalanceLedger:
    def __init__(self, store: SessionStore, customers: CustomerDirectory, audit: AuditTrail):
        self.store = store
        self.customers = customers
        self.audit = audit

    # =========================================================================
    # OUTSTANDING DEBT
    # =========================================================================

    def increase_outstanding(self, customer_id: int, amount) -> BalanceChange:
        return self._increase(customer_id, OUTSTANDING, amount)

    def decrease_outstanding(self, customer_id: int, amount) -> BalanceChange:
        return self._decrease(customer_id, OUTSTANDING, amount)

    # =========================================================================
    # CREDIT
    # =========================================================================

    def increase_credit(self, customer_id: int, amount) -> BalanceChange:
        return self._increase(customer_id, CREDIT, amount)

    def decrease_credit(
        self,
        customer_id: int,
        amount,
        *,
        source_transaction_id: Optional[int] = None,
        metadata: Optional[dict] = None,
        record_usage: bool = True,
    ) -> BalanceChange:
        """
        Spend customer credit. Writes the credit_used audit record for the
        amount actually taken, in the same unit of work.

        record_usage=False is for balance repairs, which move the stored figure
        back to the audit-derived one and must not add to the trail they replay.
        """
        value = require_positive(amount)

        def _op():
            change = self._decrease(customer_id, CREDIT, value)
            if record_usage and change.applied > 0:
                self.audit.record_event(
                    customer_id,
                    AUDIT_CREDIT_USED,
                    change.applied,
                    source_transaction_id=source_transaction_id,
                    metadata=metadata or {"reason": "credit_applied_to_purchase"},
                )
            return change

        return self.store.run_atomically(_op)

    # =========================================================================
    # LIFETIME SPEND
    # =========================================================================

    def update_total_spent(self, customer_id: int, amount) -> BalanceChange:
        """Add a sale amount to total_spent (monotonic) and stamp last_purchase_at."""
        value = require_positive(amount)

        def _op():
            customer = self.customers.require(customer_id, for_update=True)
            before = customer.total_spent or 0
            customer.total_spent = before + value
            customer.last_purchase_at = utcnow()
            self.store.write(customer)
            return BalanceChange(customer_id, "total_spent", before, customer.total_spent, value)

        return self.store.run_atomically(_op)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _increase(self, customer_id: int, field: str, amount) -> BalanceChange:
        value = require_positive(amount)

        def _op():
            customer = self.customers.require(customer_id, for_update=True)
            before = getattr(customer, field) or 0
            setattr(customer, field, before + value)
            self.store.write(customer)
            return BalanceChange(customer_id, field, before, before + value, value)

        return self.store.run_atomically(_op)

    def _decrease(self, customer_id: int, field: str, amount) -> BalanceChange:
        value = require_positive(amount)

        def _op():
            customer = self.customers.require(customer_id, for_update=True)
            before = getattr(customer, field) or 0
            after = max(0, before - value)
            clamped = value - (before - after)
            if clamped:
                logger.warning(
                    "Balance drift: customer %s %s=%s cannot absorb a decrement of %s; "
                    "floored at 0 (%s unapplied)",
                    customer_id, field, before, value, clamped,
                )
            setattr(customer, field, after)
            self.store.write(customer)
            return BalanceChange(customer_id, field, before, after, value, clamped)

        return self.store.run_atomically(_op)

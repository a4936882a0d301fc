# Overview: Service-layer operations for payment allocation; splits payments between debt and credit.

"""
Payment Allocation Engine

WHY: A customer payment either clears debt, becomes prepaid credit, or both
(overpayment). Existing credit in turn offsets new sales. Both decisions move
real money between two balances and must leave an audit trail that can be
replayed later.

DESIGN PRINCIPLES:
- Ledger updates and their audit records run in ONE unit of work.
- Nothing is retried automatically; a retried allocation could double-apply money.
- The engine never creates new debt for an uncovered sale remainder. That is
  the caller's decision (credit coverage and new debt stay separate steps).
- All amounts are integer minor units.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import NotFoundFailure, ValidationFailure
from ..models import Transaction
from ..models.audit import (
    AUDIT_CREDIT_APPLIED_TO_SALE,
    AUDIT_OVER_PAYMENT,
    AUDIT_PARTIAL_PAYMENT,
    AUDIT_PAYMENT_ALLOCATION,
)
from ..models.transactions import DEBT_KINDS
from .audit_service import AuditTrail
from .balance_service import CustomerBalanceLedger
from .money import MONEY_TOLERANCE, normalize, require_non_negative, require_positive
from .persistence import CustomerDirectory, SessionStore
from .status_service import calculate_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationResult:
    debt_reduced: int
    credit_created: int

    def to_dict(self) -> dict:
        return {"debt_reduced": self.debt_reduced, "credit_created": self.credit_created}


@dataclass(frozen=True)
class CreditApplication:
    credit_used: int
    remaining_amount: int

    def to_dict(self) -> dict:
        return {"credit_used": self.credit_used, "remaining_amount": self.remaining_amount}


@dataclass(frozen=True)
class MixedPaymentCheck:
    is_valid: bool
    error: Optional[str] = None


# =============================================================================
# MIXED PAYMENT VALIDATION (no mutation)
# =============================================================================

def validate_mixed_payment(total_amount, cash_amount, credit_amount=0) -> MixedPaymentCheck:
    """
    Check a cash + on-credit split before a mixed sale is created.

    A split where cash covers the whole total is a plain cash sale, not a
    mixed one, and is rejected.
    """
    total = normalize(total_amount)
    cash = normalize(cash_amount)
    credit = normalize(credit_amount)

    if cash < 0 or credit < 0:
        return MixedPaymentCheck(False, "Payment amounts cannot be negative")

    if abs(cash + credit - total) > MONEY_TOLERANCE:
        return MixedPaymentCheck(False, "Payment amounts must equal total amount")

    if cash >= total:
        return MixedPaymentCheck(False, "For mixed payments, cash amount must be less than total")

    return MixedPaymentCheck(True)


def require_valid_mixed_payment(total_amount, cash_amount, credit_amount=0) -> None:
    check = validate_mixed_payment(total_amount, cash_amount, credit_amount)
    if not check.is_valid:
        raise ValidationFailure(check.error)


# =============================================================================
# ENGINE
# =============================================================================

class PaymentAllocationEngine:
    def __init__(
        self,
        store: SessionStore,
        customers: CustomerDirectory,
        ledger: CustomerBalanceLedger,
        audit: AuditTrail,
        *,
        enable_overdue_state: bool = False,
    ):
        self.store = store
        self.customers = customers
        self.ledger = ledger
        self.audit = audit
        self.enable_overdue_state = enable_overdue_state

    def allocate_payment(
        self,
        customer_id: int,
        payment_amount,
        applied_to_debt: bool = True,
        *,
        source_transaction_id: Optional[int] = None,
    ) -> AllocationResult:
        """
        Split a payment between debt reduction and new credit.

        - applied_to_debt=False: the whole amount becomes credit (forward deposit)
        - no outstanding debt: the whole amount becomes credit
        - otherwise min(payment, debt) clears debt and any excess becomes credit

        Audit records: one for the applied portion (payment_allocation when the
        debt is fully cleared, partial_payment otherwise) and one over_payment
        record when there is an excess.
        """
        amount = require_positive(payment_amount, "payment_amount")

        def _op():
            customer = self.customers.require(customer_id, for_update=True)
            debt = customer.outstanding_balance or 0

            applied = min(amount, debt) if applied_to_debt else 0
            excess = amount - applied

            if applied > 0:
                self.ledger.decrease_outstanding(customer_id, applied)
                kind = AUDIT_PAYMENT_ALLOCATION if applied >= debt else AUDIT_PARTIAL_PAYMENT
                self.audit.record_event(
                    customer_id,
                    kind,
                    applied,
                    source_transaction_id=source_transaction_id,
                    metadata={
                        "payment_amount": amount,
                        "outstanding_before": debt,
                        "outstanding_after": debt - applied,
                    },
                )

            if excess > 0:
                self.ledger.increase_credit(customer_id, excess)
                reason = "excess_payment" if applied_to_debt else "forward_deposit"
                self.audit.record_event(
                    customer_id,
                    AUDIT_OVER_PAYMENT,
                    excess,
                    source_transaction_id=source_transaction_id,
                    metadata={"reason": reason, "payment_amount": amount},
                )

            return AllocationResult(debt_reduced=applied, credit_created=excess)

        result = self.store.run_atomically(_op)
        logger.info(
            "Allocated payment of %s for customer %s: debt_reduced=%s credit_created=%s",
            amount, customer_id, result.debt_reduced, result.credit_created,
        )
        return result

    def apply_credit_to_sale(self, customer_id: int, sale_amount, sale_transaction_id: int) -> CreditApplication:
        """
        Offset a sale with the customer's available credit.

        Spends min(credit, sale_amount): the ledger writes credit_used, then a
        credit_applied_to_sale record links the spend to the sale, and the
        sale's paid/remaining/status are updated in place (the sale is created
        before the offset is known). The uncovered remainder is returned, not
        booked as debt.
        """
        amount = require_non_negative(sale_amount, "sale_amount")

        def _op():
            customer = self.customers.require(customer_id, for_update=True)
            sale = self.store.read_one(Transaction, for_update=True, id=sale_transaction_id)
            if sale is None:
                raise NotFoundFailure("Transaction", sale_transaction_id)
            if sale.customer_id != customer_id:
                raise ValidationFailure(
                    f"Transaction {sale_transaction_id} does not belong to customer {customer_id}"
                )
            if sale.kind not in DEBT_KINDS:
                raise ValidationFailure(f"Credit cannot be applied to a {sale.kind} transaction")

            used = min(customer.credit_balance or 0, amount)
            if used <= 0:
                return CreditApplication(credit_used=0, remaining_amount=amount)

            self.ledger.decrease_credit(
                customer_id,
                used,
                source_transaction_id=sale_transaction_id,
                metadata={"reason": "credit_applied_to_sale"},
            )
            self.audit.record_event(
                customer_id,
                AUDIT_CREDIT_APPLIED_TO_SALE,
                used,
                source_transaction_id=sale_transaction_id,
                metadata={"original_sale_amount": amount, "credit_used": used},
            )

            new_paid = (sale.paid_amount or 0) + used
            new_remaining = max(0, (sale.remaining_amount or 0) - used)
            result = calculate_status(
                sale.kind,
                sale.payment_method,
                sale.total_amount,
                new_paid,
                new_remaining,
                sale.due_date,
                enable_overdue_state=self.enable_overdue_state,
            )
            sale.paid_amount = result.paid_amount
            sale.remaining_amount = result.remaining_amount
            sale.status = result.status
            self.store.write(sale)

            return CreditApplication(credit_used=used, remaining_amount=amount - used)

        return self.store.run_atomically(_op)

# Overview: Service-layer operations for transactions; creates, reads and soft-deletes sales, credits, payments and refunds.

"""
Transaction Creation Flow

WHY: A transaction row, the balance moves it causes and their audit records
are one business event. create_transaction() runs all of them in ONE unit of
work, so a half-recorded sale can never be committed.

FLOW BY KIND:
- sale (cash/bank/card): fully paid; the cash is recorded as a
  payment_allocation against the sale.
- sale (credit): customer credit offsets it first; the rest becomes debt.
- sale (mixed): credit first, then the cash portion; cash that is no longer
  needed is returned as change_due; the rest becomes debt.
- credit: the whole amount becomes debt.
- payment: split between debt and credit by the allocation engine; its
  paid_amount is the debt it cleared, matching its paid-counting records.
- refund: reduces outstanding debt by up to the refund amount; paid_amount
  is the reduction.

Every sale adds to the customer's total_spent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from ..errors import NotFoundFailure, ValidationFailure
from ..models import Transaction
from ..models.audit import AUDIT_PAYMENT_ALLOCATION
from ..models.transactions import (
    IMMEDIATE_METHODS,
    KIND_CREDIT,
    KIND_PAYMENT,
    KIND_REFUND,
    KIND_SALE,
    METHOD_CREDIT,
    METHOD_MIXED,
    STATUS_CANCELLED,
    TRANSACTION_KINDS,
)
from ..time_utils import parse_iso_datetime, to_naive_utc, utcnow
from .audit_service import AuditTrail
from .balance_service import CustomerBalanceLedger
from .money import normalize, require_positive
from .payment_service import AllocationResult, PaymentAllocationEngine, require_valid_mixed_payment
from .persistence import CustomerDirectory, SessionStore
from .status_service import calculate_status, initial_amounts

logger = logging.getLogger(__name__)


@dataclass
class TransactionOutcome:
    """What create_transaction did, beyond the stored row."""
    transaction: Transaction
    credit_used: int = 0
    new_debt: int = 0
    change_due: int = 0
    allocation: Optional[AllocationResult] = None

    def to_dict(self) -> dict:
        return {
            "transaction": self.transaction.to_dict(),
            "credit_used": self.credit_used,
            "new_debt": self.new_debt,
            "change_due": self.change_due,
            "allocation": self.allocation.to_dict() if self.allocation else None,
        }


def _coerce_due_date(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            raise ValidationFailure("due_date must be an ISO-8601 datetime")
    raise ValidationFailure("due_date must be a datetime")


def _coerce_exchange_rate(value) -> Decimal:
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationFailure("exchange_rate must be numeric")
    if not rate.is_finite() or rate <= 0:
        raise ValidationFailure("exchange_rate must be greater than zero")
    return rate


class TransactionService:
    def __init__(
        self,
        store: SessionStore,
        customers: CustomerDirectory,
        ledger: CustomerBalanceLedger,
        audit: AuditTrail,
        engine: PaymentAllocationEngine,
        *,
        enable_overdue_state: bool = False,
    ):
        self.store = store
        self.customers = customers
        self.ledger = ledger
        self.audit = audit
        self.engine = engine
        self.enable_overdue_state = enable_overdue_state

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_transaction(
        self,
        customer_id: int,
        kind: str,
        total_amount,
        payment_method: Optional[str] = None,
        *,
        cash_amount=None,
        applied_to_debt: bool = True,
        due_date=None,
        description: Optional[str] = None,
        currency: str = "NGN",
        exchange_rate=1,
        linked_transaction_id: Optional[int] = None,
    ) -> TransactionOutcome:
        # Input checks happen before the unit opens; nothing is written on rejection
        if kind not in TRANSACTION_KINDS:
            raise ValidationFailure(f"Invalid transaction kind: {kind}. Must be one of {list(TRANSACTION_KINDS)}")
        total = require_positive(total_amount, "total_amount")
        paid, remaining, method = initial_amounts(kind, payment_method, total, cash_amount)

        cash = None
        if kind == KIND_SALE and method == METHOD_MIXED:
            if cash_amount is None:
                raise ValidationFailure("cash_amount is required for mixed payments")
            cash = normalize(cash_amount)
            require_valid_mixed_payment(total, cash, total - cash)

        currency_code = (currency or "").strip().upper()
        if len(currency_code) != 3 or not currency_code.isalpha():
            raise ValidationFailure("currency must be a 3-letter code")
        rate = _coerce_exchange_rate(exchange_rate)
        due = _coerce_due_date(due_date)

        def _op():
            self.customers.require(customer_id, for_update=True)
            if linked_transaction_id is not None:
                linked = self.store.read_one(Transaction, id=linked_transaction_id)
                if linked is None:
                    raise NotFoundFailure("Transaction", linked_transaction_id)
                if linked.customer_id != customer_id:
                    raise ValidationFailure(
                        f"Linked transaction {linked_transaction_id} belongs to another customer"
                    )

            # Credit and mixed sales start unpaid; the offsets below fill them in
            starts_unpaid = kind == KIND_SALE and method in (METHOD_CREDIT, METHOD_MIXED)
            transaction = Transaction(
                customer_id=customer_id,
                kind=kind,
                payment_method=method,
                total_amount=total,
                paid_amount=0 if starts_unpaid else paid,
                remaining_amount=total if starts_unpaid else remaining,
                applied_to_debt=bool(applied_to_debt),
                linked_transaction_id=linked_transaction_id,
                due_date=due,
                description=(description or "").strip() or None,
                currency=currency_code,
                exchange_rate=rate,
            )
            transaction.status = self._status_for(transaction).status
            self.store.write(transaction)

            outcome = TransactionOutcome(transaction=transaction)
            if kind == KIND_SALE:
                self._settle_sale(transaction, outcome, cash)
            elif kind == KIND_CREDIT:
                self.ledger.increase_outstanding(customer_id, total)
                outcome.new_debt = total
            elif kind == KIND_PAYMENT:
                outcome.allocation = self.engine.allocate_payment(
                    customer_id,
                    total,
                    applied_to_debt,
                    source_transaction_id=transaction.id,
                )
                self._book_settled(transaction, outcome.allocation.debt_reduced)
            elif kind == KIND_REFUND:
                self._book_settled(transaction, self._apply_refund(transaction))

            return outcome

        outcome = self.store.run_atomically(_op)
        logger.info(
            "Created %s transaction %s for customer %s: total=%s method=%s status=%s",
            kind, outcome.transaction.id, customer_id, total,
            outcome.transaction.payment_method, outcome.transaction.status,
        )
        return outcome

    def _settle_sale(self, sale: Transaction, outcome: TransactionOutcome, cash: Optional[int]) -> None:
        customer_id = sale.customer_id
        total = sale.total_amount

        if sale.payment_method in IMMEDIATE_METHODS:
            self._record_cash(sale, total)
        else:
            application = self.engine.apply_credit_to_sale(customer_id, total, sale.id)
            outcome.credit_used = application.credit_used
            uncovered = application.remaining_amount

            if sale.payment_method == METHOD_MIXED:
                cash_applied = min(cash, uncovered)
                outcome.change_due = cash - cash_applied
                if cash_applied > 0:
                    self._record_cash(sale, cash_applied, tendered=cash)
                uncovered -= cash_applied

            if uncovered > 0:
                self.ledger.increase_outstanding(customer_id, uncovered)
                outcome.new_debt = uncovered

        self.ledger.update_total_spent(customer_id, total)

    def _record_cash(self, sale: Transaction, amount: int, tendered: Optional[int] = None) -> None:
        """Book cash taken at the counter as paid on the sale."""
        self.audit.record_event(
            sale.customer_id,
            AUDIT_PAYMENT_ALLOCATION,
            amount,
            source_transaction_id=sale.id,
            metadata={
                "reason": "cash_at_sale",
                "payment_method": sale.payment_method,
                "tendered": tendered if tendered is not None else amount,
            },
        )
        if sale.payment_method in IMMEDIATE_METHODS:
            return
        sale.paid_amount = min(sale.total_amount, (sale.paid_amount or 0) + amount)
        sale.remaining_amount = max(0, sale.total_amount - sale.paid_amount)
        sale.status = self._status_for(sale).status
        self.store.write(sale)

    def _apply_refund(self, refund: Transaction) -> int:
        customer = self.customers.require(refund.customer_id, for_update=True)
        debt = customer.outstanding_balance or 0
        reduction = min(refund.total_amount, debt)
        if reduction <= 0:
            logger.info("Refund %s: customer %s has no outstanding debt to reduce", refund.id, customer.id)
            return 0
        self.ledger.decrease_outstanding(customer.id, reduction)
        self.audit.record_event(
            customer.id,
            AUDIT_PAYMENT_ALLOCATION,
            reduction,
            source_transaction_id=refund.id,
            metadata={
                "reason": "refund",
                "refund_amount": refund.total_amount,
                "outstanding_before": debt,
                "outstanding_after": debt - reduction,
            },
        )
        return reduction

    def _book_settled(self, transaction: Transaction, cleared: int) -> None:
        """Paid on a payment/refund is the debt it cleared; the rest went to credit or nowhere."""
        if cleared <= 0:
            return
        transaction.paid_amount = min(transaction.total_amount, cleared)
        transaction.remaining_amount = transaction.total_amount - transaction.paid_amount
        transaction.status = self._status_for(transaction).status
        self.store.write(transaction)

    def _status_for(self, transaction: Transaction):
        return calculate_status(
            transaction.kind,
            transaction.payment_method,
            transaction.total_amount,
            transaction.paid_amount,
            transaction.remaining_amount,
            transaction.due_date,
            enable_overdue_state=self.enable_overdue_state,
        )

    # =========================================================================
    # READ / DELETE
    # =========================================================================

    def get_transaction(self, transaction_id: int) -> Transaction:
        transaction = self.store.read_one(Transaction, id=transaction_id)
        if transaction is None:
            raise NotFoundFailure("Transaction", transaction_id)
        return transaction

    def list_customer_transactions(self, customer_id: int, *, include_deleted: bool = False) -> list[Transaction]:
        self.customers.require(customer_id)
        filters = {"customer_id": customer_id}
        if not include_deleted:
            filters["is_deleted"] = False
        return self.store.read_many(
            Transaction,
            order_by=(Transaction.created_at.desc(), Transaction.id.desc()),
            **filters,
        )

    def delete_transaction(self, transaction_id: int) -> Transaction:
        """
        Soft delete. Balances are not reversed here; run
        repair_customer_balances afterwards to bring them back in line.
        """

        def _op():
            transaction = self.store.read_one(Transaction, for_update=True, id=transaction_id)
            if transaction is None:
                raise NotFoundFailure("Transaction", transaction_id)
            if transaction.is_deleted:
                return transaction
            transaction.is_deleted = True
            transaction.status = STATUS_CANCELLED
            transaction.updated_at = utcnow()
            return self.store.write(transaction)

        transaction = self.store.run_atomically(_op)
        logger.info("Soft-deleted transaction %s", transaction_id)
        return transaction

# Overview: Service-layer operations for reconciliation; recomputes stored amounts from the audit trail and repairs drift.

"""
Audit Reconciliation

WHY: Older app versions wrote balances and audit records in separate steps
and used float money, so stored paid/remaining amounts and customer totals
can disagree with what actually happened. The audit trail is the record of
what happened; this service replays it, reports drift as data, and corrects
stored values when asked.

RULES:
- Paid-counting kinds (payment_allocation, credit_applied_to_sale,
  partial_payment) recorded against a transaction make up its paid amount,
  capped at total_amount.
- Every kind replays the same way. For a payment or refund the paid amount
  is the part that cleared debt; the status calculator still reports it
  completed.
- Drift within MONEY_TOLERANCE is noise and is left alone.
- reconcile() is idempotent: without new audit activity a second call
  performs zero writes.
- reconcile_customer() runs one unit of work per transaction and keeps going
  past any failure, recording it in the batch result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..errors import NotFoundFailure
from ..models import AuditRecord, Transaction
from ..models.audit import (
    AUDIT_CREDIT_USED,
    AUDIT_OVER_PAYMENT,
    AUDIT_STATUS_CHANGE,
    PAID_COUNTING_KINDS,
)
from ..models.transactions import DEBT_KINDS, SETTLED_KINDS
from .audit_service import AuditTrail
from .balance_service import CREDIT, OUTSTANDING, CustomerBalanceLedger
from .money import MONEY_TOLERANCE, within_tolerance
from .persistence import CustomerDirectory, SessionStore
from .status_service import calculate_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionAuditSummary:
    transaction_id: int
    audit_total: int
    calculated_paid_amount: int
    calculated_remaining_amount: int

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "audit_total": self.audit_total,
            "calculated_paid_amount": self.calculated_paid_amount,
            "calculated_remaining_amount": self.calculated_remaining_amount,
        }


@dataclass
class IntegrityReport:
    transaction_id: int
    is_consistent: bool
    issues: list[str] = field(default_factory=list)
    audit_total: int = 0
    stored_paid_amount: int = 0
    difference: int = 0

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "is_consistent": self.is_consistent,
            "issues": list(self.issues),
            "audit_total": self.audit_total,
            "stored_paid_amount": self.stored_paid_amount,
            "difference": self.difference,
        }


@dataclass(frozen=True)
class ReconcileResult:
    transaction_id: int
    updated: bool
    old_paid_amount: int
    new_paid_amount: int
    old_remaining_amount: int
    new_remaining_amount: int
    old_status: str
    new_status: str

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "updated": self.updated,
            "old_paid_amount": self.old_paid_amount,
            "new_paid_amount": self.new_paid_amount,
            "old_remaining_amount": self.old_remaining_amount,
            "new_remaining_amount": self.new_remaining_amount,
            "old_status": self.old_status,
            "new_status": self.new_status,
        }


@dataclass
class BatchReconcileResult:
    customer_id: int
    processed: int = 0
    updated: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "processed": self.processed,
            "updated": self.updated,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class CustomerBalanceReport:
    customer_id: int
    stored_outstanding: int
    expected_outstanding: int
    stored_credit: int
    expected_credit: int

    @property
    def outstanding_drift(self) -> int:
        return self.expected_outstanding - self.stored_outstanding

    @property
    def credit_drift(self) -> int:
        return self.expected_credit - self.stored_credit

    @property
    def is_consistent(self) -> bool:
        return abs(self.outstanding_drift) <= MONEY_TOLERANCE and abs(self.credit_drift) <= MONEY_TOLERANCE

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "stored_outstanding": self.stored_outstanding,
            "expected_outstanding": self.expected_outstanding,
            "outstanding_drift": self.outstanding_drift,
            "stored_credit": self.stored_credit,
            "expected_credit": self.expected_credit,
            "credit_drift": self.credit_drift,
            "is_consistent": self.is_consistent,
        }


class ReconciliationService:
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

    # =========================================================================
    # PER-TRANSACTION
    # =========================================================================

    def transaction_audit_summary(self, transaction_id: int) -> TransactionAuditSummary:
        transaction = self._require_transaction(transaction_id)
        return self._summarize(transaction)

    def verify_integrity(self, transaction_id: int) -> IntegrityReport:
        """Report drift as data. Never raises for inconsistent rows."""
        transaction = self._require_transaction(transaction_id)
        summary = self._summarize(transaction)
        expected_paid = summary.calculated_paid_amount

        total = transaction.total_amount or 0
        stored_paid = transaction.paid_amount or 0
        stored_remaining = transaction.remaining_amount or 0
        difference = abs(stored_paid - expected_paid)

        issues = []
        if difference > MONEY_TOLERANCE:
            issues.append(
                f"Audit-derived paid amount ({expected_paid}) doesn't match stored paid amount ({stored_paid})"
            )
        if stored_paid - total > MONEY_TOLERANCE:
            issues.append(f"Paid amount ({stored_paid}) exceeds total amount ({total})")
        if stored_remaining < 0:
            issues.append(f"Remaining amount is negative ({stored_remaining})")
        if not within_tolerance(stored_paid + stored_remaining, total):
            issues.append(
                f"Stored amounts don't sum to total amount ({stored_paid + stored_remaining} vs {total})"
            )

        return IntegrityReport(
            transaction_id=transaction.id,
            is_consistent=not issues,
            issues=issues,
            audit_total=summary.audit_total,
            stored_paid_amount=stored_paid,
            difference=difference,
        )

    def reconcile(self, transaction_id: int) -> ReconcileResult:
        """
        Overwrite paid/remaining/status with audit-derived values when they
        drift beyond tolerance, and append a status_change record describing
        the correction.
        """

        def _op():
            transaction = self.store.read_one(Transaction, for_update=True, id=transaction_id)
            if transaction is None:
                raise NotFoundFailure("Transaction", transaction_id)

            summary = self._summarize(transaction)
            new_paid = summary.calculated_paid_amount
            new_remaining = summary.calculated_remaining_amount

            old_paid = transaction.paid_amount or 0
            old_remaining = transaction.remaining_amount or 0
            old_status = transaction.status

            if transaction.is_deleted:
                new_status = old_status
            else:
                new_status = calculate_status(
                    transaction.kind,
                    transaction.payment_method,
                    transaction.total_amount,
                    new_paid,
                    new_remaining,
                    transaction.due_date,
                    enable_overdue_state=self.enable_overdue_state,
                ).status

            needs_update = (
                not within_tolerance(old_paid, new_paid)
                or not within_tolerance(old_remaining, new_remaining)
                or old_status != new_status
            )

            if needs_update:
                transaction.paid_amount = new_paid
                transaction.remaining_amount = new_remaining
                transaction.status = new_status
                self.store.write(transaction)
                self.audit.record_event(
                    transaction.customer_id,
                    AUDIT_STATUS_CHANGE,
                    0,
                    source_transaction_id=transaction.id,
                    metadata={
                        "action": "audit_reconciliation",
                        "old_paid_amount": old_paid,
                        "new_paid_amount": new_paid,
                        "old_remaining_amount": old_remaining,
                        "new_remaining_amount": new_remaining,
                        "old_status": old_status,
                        "new_status": new_status,
                    },
                )

            return ReconcileResult(
                transaction_id=transaction.id,
                updated=needs_update,
                old_paid_amount=old_paid,
                new_paid_amount=new_paid if needs_update else old_paid,
                old_remaining_amount=old_remaining,
                new_remaining_amount=new_remaining if needs_update else old_remaining,
                old_status=old_status,
                new_status=new_status,
            )

        result = self.store.run_atomically(_op)
        if result.updated:
            logger.info(
                "Reconciled transaction %s: paid %s -> %s, remaining %s -> %s, status %s -> %s",
                result.transaction_id,
                result.old_paid_amount, result.new_paid_amount,
                result.old_remaining_amount, result.new_remaining_amount,
                result.old_status, result.new_status,
            )
        return result

    # =========================================================================
    # PER-CUSTOMER
    # =========================================================================

    def reconcile_customer(self, customer_id: int) -> BatchReconcileResult:
        self.customers.require(customer_id)
        transactions = self.store.read_many(
            Transaction,
            customer_id=customer_id,
            is_deleted=False,
            order_by=(Transaction.created_at.asc(), Transaction.id.asc()),
        )
        transaction_ids = [t.id for t in transactions]

        batch = BatchReconcileResult(customer_id=customer_id)
        for transaction_id in transaction_ids:
            try:
                result = self.reconcile(transaction_id)
            except Exception as exc:
                logger.exception("Failed to reconcile transaction %s", transaction_id)
                batch.errors.append(f"Failed to reconcile transaction {transaction_id}: {exc}")
                continue
            batch.processed += 1
            if result.updated:
                batch.updated += 1
        return batch

    def customer_balance_report(self, customer_id: int) -> CustomerBalanceReport:
        """
        Replay the audit trail into the balances a customer should have.

        expected_outstanding = open remainder of live sales/credits minus debt
        reductions recorded against live payments/refunds, floored at 0.
        expected_credit = over_payment minus credit_used, floored at 0.
        Records whose source transaction was soft-deleted are ignored.
        """
        customer = self.customers.require(customer_id)
        transactions = {
            t.id: t for t in self.store.read_many(Transaction, customer_id=customer_id)
        }
        records = self.store.read_many(AuditRecord, customer_id=customer_id)

        def is_live(record: AuditRecord) -> bool:
            if record.source_transaction_id is None:
                return True
            source = transactions.get(record.source_transaction_id)
            return source is not None and not source.is_deleted

        open_debt = 0
        for transaction in transactions.values():
            if transaction.is_deleted or transaction.kind not in DEBT_KINDS:
                continue
            open_debt += self._summarize(transaction, records).calculated_remaining_amount

        reductions = 0
        earned = 0
        used = 0
        for record in records:
            if not is_live(record):
                continue
            if record.kind in PAID_COUNTING_KINDS:
                source = transactions.get(record.source_transaction_id)
                if source is not None and source.kind in SETTLED_KINDS:
                    reductions += record.amount
            elif record.kind == AUDIT_OVER_PAYMENT:
                earned += record.amount
            elif record.kind == AUDIT_CREDIT_USED:
                used += record.amount

        return CustomerBalanceReport(
            customer_id=customer.id,
            stored_outstanding=customer.outstanding_balance or 0,
            expected_outstanding=max(0, open_debt - reductions),
            stored_credit=customer.credit_balance or 0,
            expected_credit=max(0, earned - used),
        )

    def repair_customer_balances(self, customer_id: int) -> CustomerBalanceReport:
        """
        Move stored balances to the audit-derived values through the ledger,
        in one unit of work. Returns the report the repair acted on.
        """

        def _op():
            report = self.customer_balance_report(customer_id)
            if report.is_consistent:
                return report

            if abs(report.outstanding_drift) > MONEY_TOLERANCE:
                self._move_balance(customer_id, OUTSTANDING, report.outstanding_drift)
            if abs(report.credit_drift) > MONEY_TOLERANCE:
                self._move_balance(customer_id, CREDIT, report.credit_drift)

            self.audit.record_event(
                customer_id,
                AUDIT_STATUS_CHANGE,
                0,
                metadata={"action": "balance_repair", **report.to_dict()},
            )
            return report

        report = self.store.run_atomically(_op)
        if not report.is_consistent:
            logger.info(
                "Repaired balances for customer %s: outstanding drift %s, credit drift %s",
                customer_id, report.outstanding_drift, report.credit_drift,
            )
        return report

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _require_transaction(self, transaction_id: int) -> Transaction:
        transaction = self.store.read_one(Transaction, id=transaction_id)
        if transaction is None:
            raise NotFoundFailure("Transaction", transaction_id)
        return transaction

    def _summarize(
        self,
        transaction: Transaction,
        records: Optional[list[AuditRecord]] = None,
    ) -> TransactionAuditSummary:
        if records is None:
            records = self.audit.transaction_history(transaction.id)
        audit_total = sum(
            r.amount for r in records
            if r.source_transaction_id == transaction.id and r.kind in PAID_COUNTING_KINDS
        )
        total = transaction.total_amount or 0
        paid = min(audit_total, total)
        return TransactionAuditSummary(
            transaction_id=transaction.id,
            audit_total=audit_total,
            calculated_paid_amount=paid,
            calculated_remaining_amount=max(0, total - paid),
        )

    def _move_balance(self, customer_id: int, field_name: str, delta: int) -> None:
        if field_name == OUTSTANDING:
            if delta > 0:
                self.ledger.increase_outstanding(customer_id, delta)
            else:
                self.ledger.decrease_outstanding(customer_id, -delta)
        else:
            if delta > 0:
                self.ledger.increase_credit(customer_id, delta)
            else:
                self.ledger.decrease_credit(customer_id, -delta, record_usage=False)

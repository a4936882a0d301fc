# Overview: Service-layer operations for the audit trail; append, read and age-based purge.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select

from ..errors import ValidationFailure
from ..models import AuditRecord, Transaction
from ..models.audit import AUDIT_CREDIT_USED, AUDIT_KINDS, AUDIT_OVER_PAYMENT, AUDIT_STATUS_CHANGE
from ..time_utils import utcnow
from .money import require_non_negative
from .persistence import CustomerDirectory, SessionStore

"""
Audit Trail Invariants (authoritative)

- Append-only: records are never updated.
- Records are written inside the same unit of work as the balance mutation
  they document; record_event joins the caller's unit, so a failed audit
  write rolls the balance write back with it.
- The only delete path is purge_older_than (maintenance job), and it only
  removes rows no replay reads: status_change notes and records of
  soft-deleted transactions.
"""

logger = logging.getLogger(__name__)


@dataclass
class CustomerAuditSummary:
    customer_id: int
    total_entries: int = 0
    total_amount: int = 0
    by_kind: dict = field(default_factory=dict)
    earliest: Optional[datetime] = None
    latest: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "total_entries": self.total_entries,
            "total_amount": self.total_amount,
            "by_kind": self.by_kind,
            "date_range": (
                {"earliest": self.earliest.isoformat(), "latest": self.latest.isoformat()}
                if self.earliest is not None else None
            ),
        }


@dataclass(frozen=True)
class CreditSummary:
    current_balance: int
    total_earned: int
    total_used: int


class AuditTrail:
    def __init__(self, store: SessionStore, customers: CustomerDirectory):
        self.store = store
        self.customers = customers

    def record_event(
        self,
        customer_id: int,
        kind: str,
        amount,
        source_transaction_id: Optional[int] = None,
        metadata: Optional[dict] = None,
    ) -> AuditRecord:
        """
        Append one audit record.

        Must be called from inside the unit of work that performs the balance
        mutation being documented; called on its own it opens a unit of its own.
        """
        if kind not in AUDIT_KINDS:
            raise ValidationFailure(f"Invalid audit kind: {kind}. Must be one of {list(AUDIT_KINDS)}")
        value = require_non_negative(amount)
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationFailure("metadata must be a JSON object")

        def _op():
            self.customers.require(customer_id)
            record = AuditRecord(
                customer_id=customer_id,
                source_transaction_id=source_transaction_id,
                kind=kind,
                amount=value,
                event_metadata=metadata,
                created_at=utcnow(),
            )
            return self.store.write(record)

        return self.store.run_atomically(_op)

    # =========================================================================
    # READS
    # =========================================================================

    def customer_history(
        self,
        customer_id: int,
        *,
        kinds: Optional[list[str]] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[AuditRecord]:
        """Newest first. date_from / date_to are inclusive."""
        criteria = []
        if kinds:
            unknown = [k for k in kinds if k not in AUDIT_KINDS]
            if unknown:
                raise ValidationFailure(f"Invalid audit kind(s): {', '.join(unknown)}")
            criteria.append(AuditRecord.kind.in_(kinds))
        if date_from is not None:
            criteria.append(AuditRecord.created_at >= date_from)
        if date_to is not None:
            criteria.append(AuditRecord.created_at <= date_to)

        return self.store.read_many(
            AuditRecord,
            *criteria,
            customer_id=customer_id,
            order_by=(AuditRecord.created_at.desc(), AuditRecord.id.desc()),
            limit=limit,
            offset=offset,
        )

    def transaction_history(self, transaction_id: int) -> list[AuditRecord]:
        return self.store.read_many(
            AuditRecord,
            source_transaction_id=transaction_id,
            order_by=(AuditRecord.created_at.asc(), AuditRecord.id.asc()),
        )

    def customer_summary(self, customer_id: int) -> CustomerAuditSummary:
        summary = CustomerAuditSummary(customer_id=customer_id)
        for record in self.customer_history(customer_id):
            bucket = summary.by_kind.setdefault(record.kind, {"count": 0, "amount": 0})
            bucket["count"] += 1
            bucket["amount"] += record.amount
            summary.total_entries += 1
            summary.total_amount += record.amount
            if summary.earliest is None or record.created_at < summary.earliest:
                summary.earliest = record.created_at
            if summary.latest is None or record.created_at > summary.latest:
                summary.latest = record.created_at
        return summary

    def credit_summary(self, customer_id: int) -> CreditSummary:
        customer = self.customers.require(customer_id)
        earned = 0
        used = 0
        for record in self.customer_history(customer_id, kinds=[AUDIT_OVER_PAYMENT, AUDIT_CREDIT_USED]):
            if record.kind == AUDIT_OVER_PAYMENT:
                earned += record.amount
            else:
                used += record.amount
        return CreditSummary(current_balance=customer.credit_balance, total_earned=earned, total_used=used)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def purge_older_than(self, retention_days: int) -> int:
        """
        Delete audit records older than retention_days that reconciliation
        no longer reads.

        Only status_change records and records sourced at soft-deleted
        transactions are eligible. Paid-counting, over_payment and credit_used
        records of live transactions are kept at any age: reconcile and the
        balance replay rebuild stored amounts from them.
        """
        if retention_days <= 0:
            raise ValidationFailure("retention_days must be greater than zero")
        cutoff = utcnow() - timedelta(days=retention_days)
        deleted_sources = select(Transaction.id).where(Transaction.is_deleted.is_(True))

        def _op():
            return self.store.delete_where(
                AuditRecord,
                AuditRecord.created_at < cutoff,
                or_(
                    AuditRecord.kind == AUDIT_STATUS_CHANGE,
                    AuditRecord.source_transaction_id.in_(deleted_sources),
                ),
            )

        deleted = self.store.run_atomically(_op)
        logger.info("Purged %s replay-free audit records older than %s days", deleted, retention_days)
        return deleted

from __future__ import annotations

from ..extensions import db
from debtbook.time_utils import to_utc_z, utcnow


AUDIT_PAYMENT_ALLOCATION = "payment_allocation"
AUDIT_OVER_PAYMENT = "over_payment"
AUDIT_CREDIT_APPLIED_TO_SALE = "credit_applied_to_sale"
AUDIT_PARTIAL_PAYMENT = "partial_payment"
AUDIT_CREDIT_USED = "credit_used"
AUDIT_STATUS_CHANGE = "status_change"

AUDIT_KINDS = (
    AUDIT_PAYMENT_ALLOCATION,
    AUDIT_OVER_PAYMENT,
    AUDIT_CREDIT_APPLIED_TO_SALE,
    AUDIT_PARTIAL_PAYMENT,
    AUDIT_CREDIT_USED,
    AUDIT_STATUS_CHANGE,
)

# Kinds replayed into a transaction's paid_amount during reconciliation
PAID_COUNTING_KINDS = (
    AUDIT_PAYMENT_ALLOCATION,
    AUDIT_CREDIT_APPLIED_TO_SALE,
    AUDIT_PARTIAL_PAYMENT,
)


class AuditRecord(db.Model):
    """
    Append-only record of one balance-affecting sub-event.

    IMMUTABLE: rows are never updated. The only delete path is the age-based
    maintenance purge. amount is always >= 0; direction is implied by kind.
    """
    __tablename__ = "audit_records"
    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="ck_audit_records_amount_non_negative"),
        db.Index("ix_audit_records_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    source_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)

    kind = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False, default=0)

    # "metadata" is reserved on declarative classes
    event_metadata = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "source_transaction_id": self.source_transaction_id,
            "kind": self.kind,
            "amount": self.amount,
            "metadata": self.event_metadata,
            "created_at": to_utc_z(self.created_at),
        }

from __future__ import annotations

from ..extensions import db
from debtbook.time_utils import to_utc_z, utcnow


# =============================================================================
# TRANSACTION KINDS / PAYMENT METHODS / STATUSES
# =============================================================================

KIND_SALE = "sale"
KIND_PAYMENT = "payment"
KIND_CREDIT = "credit"
KIND_REFUND = "refund"

TRANSACTION_KINDS = (KIND_SALE, KIND_PAYMENT, KIND_CREDIT, KIND_REFUND)

# Kinds that carry money into the shop; always reported completed
SETTLED_KINDS = (KIND_PAYMENT, KIND_REFUND)
# Kinds that can leave the customer owing money
DEBT_KINDS = (KIND_SALE, KIND_CREDIT)

METHOD_CASH = "cash"
METHOD_BANK = "bank"
METHOD_CARD = "card"
METHOD_CREDIT = "credit"
METHOD_MIXED = "mixed"

PAYMENT_METHODS = (METHOD_CASH, METHOD_BANK, METHOD_CARD, METHOD_CREDIT, METHOD_MIXED)
IMMEDIATE_METHODS = (METHOD_CASH, METHOD_BANK, METHOD_CARD)

STATUS_PENDING = "pending"
STATUS_PARTIAL = "partial"
STATUS_COMPLETED = "completed"
STATUS_OVERDUE = "overdue"
STATUS_CANCELLED = "cancelled"

TRANSACTION_STATUSES = (
    STATUS_PENDING,
    STATUS_PARTIAL,
    STATUS_COMPLETED,
    STATUS_OVERDUE,
    STATUS_CANCELLED,
)


class Transaction(db.Model):
    """
    A sale, credit issuance, payment or refund for one customer.

    INVARIANTS:
    - paid_amount + remaining_amount == total_amount (within one minor unit)
    - remaining_amount >= 0
    - status is derived by the status calculator, never set by callers

    Rows are soft-deleted (is_deleted) and never purged while audit records
    reference them. Only the allocation engine (creation, credit offset) and
    reconciliation write amounts after insert.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_customer_deleted", "customer_id", "is_deleted"),
        db.Index("ix_transactions_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, index=True)  # sale, payment, credit, refund
    payment_method = db.Column(db.String(16), nullable=False, default=METHOD_CASH)

    # Amounts in minor units
    total_amount = db.Column(db.Integer, nullable=False)
    paid_amount = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    # Payment-only: True reduces debt, False becomes a forward deposit (credit)
    applied_to_debt = db.Column(db.Boolean, nullable=False, default=True)
    linked_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)

    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    description = db.Column(db.String(255), nullable=True)

    # Stored multiplier only; all arithmetic stays in the transaction currency
    currency = db.Column(db.String(3), nullable=False, default="NGN")
    exchange_rate = db.Column(db.Numeric(18, 6), nullable=False, default=1)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("transactions", lazy=True))
    linked_transaction = db.relationship("Transaction", remote_side=[id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Transaction id={self.id} kind={self.kind} total={self.total_amount} "
            f"paid={self.paid_amount} remaining={self.remaining_amount} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "kind": self.kind,
            "payment_method": self.payment_method,
            "total_amount": self.total_amount,
            "paid_amount": self.paid_amount,
            "remaining_amount": self.remaining_amount,
            "status": self.status,
            "applied_to_debt": self.applied_to_debt,
            "linked_transaction_id": self.linked_transaction_id,
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "description": self.description,
            "currency": self.currency,
            "exchange_rate": str(self.exchange_rate) if self.exchange_rate is not None else None,
            "is_deleted": self.is_deleted,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }

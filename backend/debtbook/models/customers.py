from __future__ import annotations

from ..extensions import db
from debtbook.time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Customer with running debt and credit totals.

    WHY: The shop needs to know, at a glance, how much a customer owes
    (outstanding_balance) and how much prepaid money they can spend
    (credit_balance). Both are denormalized aggregates maintained only by
    CustomerBalanceLedger; reconciliation converges them back to the audit
    trail when they drift.

    All amounts are integer minor units (kobo/cents).
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("outstanding_balance >= 0", name="ck_customers_outstanding_non_negative"),
        db.CheckConstraint("credit_balance >= 0", name="ck_customers_credit_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=True, index=True)

    # Denormalized aggregates (ledger-owned)
    outstanding_balance = db.Column(db.Integer, nullable=False, default=0)
    credit_balance = db.Column(db.Integer, nullable=False, default=0)
    total_spent = db.Column(db.Integer, nullable=False, default=0)
    last_purchase_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "outstanding_balance": self.outstanding_balance,
            "credit_balance": self.credit_balance,
            "total_spent": self.total_spent,
            "last_purchase_at": to_utc_z(self.last_purchase_at) if self.last_purchase_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }

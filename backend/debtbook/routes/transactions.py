# Overview: Flask API routes for transactions; parses input and returns JSON responses.

# backend/debtbook/routes/transactions.py
"""
Transaction API Routes

WHY: Record sales, credit issuances, payments and refunds over REST, and
expose the per-transaction audit and reconciliation views.

Request body for POST /api/transactions:
{
    "customer_id": 1,
    "kind": "sale",                 (sale | credit | payment | refund)
    "total_amount": 10000,          (minor units)
    "payment_method": "mixed",      (cash | bank | card | credit | mixed)
    "cash_amount": 6000,            (mixed sales only)
    "applied_to_debt": true,        (payments only; false = forward deposit)
    "due_date": "2026-01-31",
    "description": "Rice, 2 bags",
    "currency": "NGN",
    "exchange_rate": "1",
    "linked_transaction_id": null
}
"""

from flask import Blueprint, current_app, request

from ..errors import LedgerError, http_status_for
from ..extensions import db
from ..models import Transaction
from ..services import build_services
from ..services.payment_service import validate_mixed_payment
from ..validation import ModelValidationPolicy, enforce_rules_transaction, validate_payload

TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id",
        "kind",
        "total_amount",
        "payment_method",
        "applied_to_debt",
        "due_date",
        "description",
        "currency",
        "exchange_rate",
        "linked_transaction_id",
    },
    required_on_create={"customer_id", "kind", "total_amount"},
    extra_fields={"cash_amount"},
)

MIXED_CHECK_POLICY = ModelValidationPolicy(
    writable_fields=set(),
    required_on_create={"total_amount", "cash_amount"},
    extra_fields={"total_amount", "cash_amount", "credit_amount"},
)

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _services():
    return build_services(db.session, current_app.config)


def _error(exc: LedgerError, message: str):
    status = http_status_for(exc)
    if status >= 500:
        current_app.logger.exception(message)
        return {"error": "Internal server error"}, status
    return {"error": str(exc)}, status


# =============================================================================
# CREATE / READ / DELETE
# =============================================================================

@transactions_bp.post("")
def create_transaction_route():
    """
    Returns:
        201: transaction created, with credit_used / new_debt / change_due
        400: invalid input
        404: unknown customer or linked transaction
        500: storage failure (nothing was committed)
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Transaction, payload=payload, policy=TRANSACTION_POLICY)
        enforce_rules_transaction(patch)

        outcome = _services().transactions.create_transaction(
            patch.pop("customer_id"),
            patch.pop("kind"),
            patch.pop("total_amount"),
            patch.pop("payment_method", None),
            cash_amount=patch.get("cash_amount"),
            applied_to_debt=patch.get("applied_to_debt", True),
            due_date=patch.get("due_date"),
            description=patch.get("description"),
            currency=patch.get("currency") or "NGN",
            exchange_rate=patch.get("exchange_rate") or 1,
            linked_transaction_id=patch.get("linked_transaction_id"),
        )
    except LedgerError as e:
        return _error(e, "Failed to create transaction")
    return outcome.to_dict(), 201


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        transaction = _services().transactions.get_transaction(transaction_id)
    except LedgerError as e:
        return _error(e, "Failed to load transaction")
    return {"transaction": transaction.to_dict()}


@transactions_bp.delete("/<int:transaction_id>")
def delete_transaction_route(transaction_id: int):
    """Soft delete; balances are left for repair-balances to correct."""
    try:
        transaction = _services().transactions.delete_transaction(transaction_id)
    except LedgerError as e:
        return _error(e, "Failed to delete transaction")
    return {"transaction": transaction.to_dict()}


# =============================================================================
# AUDIT / RECONCILIATION
# =============================================================================

@transactions_bp.get("/<int:transaction_id>/audit")
def transaction_audit_route(transaction_id: int):
    try:
        services = _services()
        summary = services.reconciliation.transaction_audit_summary(transaction_id)
        records = services.audit.transaction_history(transaction_id)
    except LedgerError as e:
        return _error(e, "Failed to load transaction audit")
    return {"summary": summary.to_dict(), "records": [r.to_dict() for r in records]}


@transactions_bp.get("/<int:transaction_id>/integrity")
def transaction_integrity_route(transaction_id: int):
    try:
        report = _services().reconciliation.verify_integrity(transaction_id)
    except LedgerError as e:
        return _error(e, "Failed to verify transaction integrity")
    return report.to_dict()


@transactions_bp.post("/<int:transaction_id>/reconcile")
def reconcile_transaction_route(transaction_id: int):
    try:
        result = _services().reconciliation.reconcile(transaction_id)
    except LedgerError as e:
        return _error(e, "Failed to reconcile transaction")
    return result.to_dict()


@transactions_bp.post("/mixed-payment/validate")
def validate_mixed_payment_route():
    """Pre-checks a cash + on-credit split. Always 200 for well-formed input."""
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Transaction, payload=payload, policy=MIXED_CHECK_POLICY)
        total = patch["total_amount"]
        cash = patch["cash_amount"]
        credit = patch.get("credit_amount")
        check = validate_mixed_payment(total, cash, total - cash if credit is None else credit)
    except LedgerError as e:
        return _error(e, "Failed to validate mixed payment")
    return {"is_valid": check.is_valid, "error": check.error}

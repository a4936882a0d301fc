# Overview: Flask API routes for customers; balances, audit history, credit summary and reconciliation.

# backend/debtbook/routes/customers.py
"""
Customer API Routes

DESIGN:
- Customer create/list/read
- Read-only audit views (history, summary, credit summary)
- Balance report plus explicit reconcile / repair actions

Amounts in requests and responses are integer minor units.
"""

from flask import Blueprint, current_app, request

from ..errors import LedgerError, ValidationFailure, http_status_for
from ..extensions import db
from ..models import Customer
from ..services import build_services
from ..time_utils import parse_iso_datetime
from ..validation import ModelValidationPolicy, validate_payload

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone"},
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _services():
    return build_services(db.session, current_app.config)


def _error(exc: LedgerError, message: str):
    status = http_status_for(exc)
    if status >= 500:
        current_app.logger.exception(message)
        return {"error": "Internal server error"}, status
    return {"error": str(exc)}, status


def _query_datetime(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationFailure(f"{name} must be an ISO-8601 datetime")


# =============================================================================
# CUSTOMERS
# =============================================================================

@customers_bp.get("")
def list_customers_route():
    """
    Query params:
    - with_debt: "true" to only return customers with outstanding debt
    """
    with_debt = request.args.get("with_debt", "false").lower() == "true"
    customers = _services().customers.list_customers(with_debt_only=with_debt)
    return {"customers": [c.to_dict() for c in customers]}


@customers_bp.post("")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY)
        customer = _services().customers.create(patch["name"], patch.get("phone"))
    except LedgerError as e:
        return _error(e, "Failed to create customer")
    return {"customer": customer.to_dict()}, 201


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        customer = _services().customers.require(customer_id)
    except LedgerError as e:
        return _error(e, "Failed to load customer")
    return {"customer": customer.to_dict()}


@customers_bp.get("/<int:customer_id>/transactions")
def list_customer_transactions_route(customer_id: int):
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    try:
        transactions = _services().transactions.list_customer_transactions(
            customer_id, include_deleted=include_deleted
        )
    except LedgerError as e:
        return _error(e, "Failed to list customer transactions")
    return {"transactions": [t.to_dict() for t in transactions]}


# =============================================================================
# AUDIT VIEWS
# =============================================================================

@customers_bp.get("/<int:customer_id>/audit")
def customer_audit_route(customer_id: int):
    """
    Query params:
    - kind: audit kind filter, repeatable
    - from / to: ISO-8601 bounds (inclusive)
    - limit / offset: pagination
    """
    try:
        services = _services()
        services.customers.require(customer_id)
        records = services.audit.customer_history(
            customer_id,
            kinds=request.args.getlist("kind") or None,
            date_from=_query_datetime("from"),
            date_to=_query_datetime("to"),
            limit=request.args.get("limit", type=int),
            offset=request.args.get("offset", 0, type=int),
        )
    except LedgerError as e:
        return _error(e, "Failed to load audit history")
    return {"records": [r.to_dict() for r in records]}


@customers_bp.get("/<int:customer_id>/audit/summary")
def customer_audit_summary_route(customer_id: int):
    try:
        services = _services()
        services.customers.require(customer_id)
        summary = services.audit.customer_summary(customer_id)
    except LedgerError as e:
        return _error(e, "Failed to load audit summary")
    return summary.to_dict()


@customers_bp.get("/<int:customer_id>/credit")
def customer_credit_route(customer_id: int):
    try:
        summary = _services().audit.credit_summary(customer_id)
    except LedgerError as e:
        return _error(e, "Failed to load credit summary")
    return {
        "customer_id": customer_id,
        "current_balance": summary.current_balance,
        "total_earned": summary.total_earned,
        "total_used": summary.total_used,
    }


# =============================================================================
# RECONCILIATION
# =============================================================================

@customers_bp.get("/<int:customer_id>/balance-report")
def customer_balance_report_route(customer_id: int):
    try:
        report = _services().reconciliation.customer_balance_report(customer_id)
    except LedgerError as e:
        return _error(e, "Failed to build balance report")
    return report.to_dict()


@customers_bp.post("/<int:customer_id>/reconcile")
def reconcile_customer_route(customer_id: int):
    try:
        result = _services().reconciliation.reconcile_customer(customer_id)
    except LedgerError as e:
        return _error(e, "Failed to reconcile customer")
    return result.to_dict()


@customers_bp.post("/<int:customer_id>/repair-balances")
def repair_customer_balances_route(customer_id: int):
    try:
        report = _services().reconciliation.repair_customer_balances(customer_id)
    except LedgerError as e:
        return _error(e, "Failed to repair customer balances")
    return {"repaired": not report.is_consistent, "report": report.to_dict()}

# Overview: Flask CLI command groups for customer bootstrap, reconciliation, and maintenance.

# backend/debtbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Customers:
# - python -m flask customers list [--with-debt]
#   List customers with their outstanding and credit balances.
# - python -m flask customers create --name "Ada Obi" [--phone "0803..."]
#   Create a customer.
#
# Reconciliation (audit trail is the source of truth):
# - python -m flask reconcile verify 42
#   Report drift between transaction 42 and its audit records (read-only).
# - python -m flask reconcile transaction 42
#   Rewrite transaction 42's paid/remaining/status from the audit trail.
# - python -m flask reconcile customer 7 [--repair-balances]
#   Reconcile every live transaction of customer 7, optionally repair balances.
# - python -m flask reconcile all [--repair-balances]
#   Same as above for every customer.
#
# Maintenance:
# - python -m flask maintenance purge-audit --retention-days 365
#   Delete old status_change notes and records of soft-deleted transactions.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .services import build_services
from .services.money import to_major_units


def _services():
    return build_services(db.session, current_app.config)


def _print_batch(batch) -> None:
    click.echo(
        f"PASS Customer {batch.customer_id}: processed {batch.processed}, updated {batch.updated}, "
        f"errors {len(batch.errors)}"
    )
    for error in batch.errors:
        click.echo(f"FAIL {error}")


def _print_repair(report) -> None:
    if report.is_consistent:
        click.echo(f"PASS Customer {report.customer_id}: balances consistent")
        return
    click.echo(
        f"PASS Customer {report.customer_id}: repaired outstanding "
        f"{report.stored_outstanding} -> {report.expected_outstanding}, credit "
        f"{report.stored_credit} -> {report.expected_credit}"
    )


# =============================================================================
# CUSTOMER COMMANDS
# =============================================================================

@click.group('customers')
def customers_group():
    """Customer inspection and bootstrap commands."""


@customers_group.command('list')
@click.option('--with-debt', is_flag=True, help='Only customers with outstanding debt')
@with_appcontext
def list_customers_cli(with_debt):
    """List customers with balances in major units."""
    customers = _services().customers.list_customers(with_debt_only=with_debt)
    multiplier = current_app.config["MINOR_UNITS_PER_MAJOR"]

    if not customers:
        click.echo("No customers found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Phone':<16} {'Outstanding':>12} {'Credit':>12}")
    click.echo("=" * 80)
    for c in customers:
        click.echo(
            f"{c.id:<5} {c.name:<30} {c.phone or '-':<16} "
            f"{to_major_units(c.outstanding_balance, multiplier):>12} {to_major_units(c.credit_balance, multiplier):>12}"
        )
    click.echo("=" * 80 + "\n")


@customers_group.command('create')
@click.option('--name', required=True, help='Customer name')
@click.option('--phone', default=None, help='Phone number')
@with_appcontext
def create_customer_cli(name, phone):
    """Create a customer."""
    try:
        customer = _services().customers.create(name, phone)
    except LedgerError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created customer: {customer.name} (ID: {customer.id})")


# =============================================================================
# RECONCILIATION COMMANDS
# =============================================================================

@click.group('reconcile')
def reconcile_group():
    """Audit-trail reconciliation commands."""


@reconcile_group.command('verify')
@click.argument('transaction_id', type=int)
@with_appcontext
def verify_transaction_cli(transaction_id):
    """Report drift for one transaction without changing anything."""
    try:
        report = _services().reconciliation.verify_integrity(transaction_id)
    except LedgerError as e:
        click.echo(f"FAIL {e}")
        return

    if report.is_consistent:
        click.echo(f"PASS Transaction {transaction_id} is consistent with its audit trail")
        return
    click.echo(f"WARN  Transaction {transaction_id} has {len(report.issues)} issue(s):")
    for issue in report.issues:
        click.echo(f"  - {issue}")


@reconcile_group.command('transaction')
@click.argument('transaction_id', type=int)
@with_appcontext
def reconcile_transaction_cli(transaction_id):
    """Rewrite one transaction's amounts and status from its audit trail."""
    try:
        result = _services().reconciliation.reconcile(transaction_id)
    except LedgerError as e:
        click.echo(f"FAIL {e}")
        return

    if not result.updated:
        click.echo(f"PASS Transaction {transaction_id} already reconciled")
        return
    click.echo(
        f"PASS Transaction {transaction_id}: paid {result.old_paid_amount} -> {result.new_paid_amount}, "
        f"remaining {result.old_remaining_amount} -> {result.new_remaining_amount}, "
        f"status {result.old_status} -> {result.new_status}"
    )


@reconcile_group.command('customer')
@click.argument('customer_id', type=int)
@click.option('--repair-balances', is_flag=True, help='Also move stored balances to the audit-derived values')
@with_appcontext
def reconcile_customer_cli(customer_id, repair_balances):
    """Reconcile every live transaction of one customer."""
    services = _services()
    try:
        batch = services.reconciliation.reconcile_customer(customer_id)
        _print_batch(batch)
        if repair_balances:
            _print_repair(services.reconciliation.repair_customer_balances(customer_id))
    except LedgerError as e:
        click.echo(f"FAIL {e}")


@reconcile_group.command('all')
@click.option('--repair-balances', is_flag=True, help='Also move stored balances to the audit-derived values')
@with_appcontext
def reconcile_all_cli(repair_balances):
    """Reconcile every customer, one transaction at a time."""
    services = _services()
    customers = services.customers.list_customers()
    if not customers:
        click.echo("No customers found.")
        return

    customer_ids = [c.id for c in customers]
    totals = {"processed": 0, "updated": 0, "errors": 0}
    for customer_id in customer_ids:
        try:
            batch = services.reconciliation.reconcile_customer(customer_id)
            if repair_balances:
                _print_repair(services.reconciliation.repair_customer_balances(customer_id))
        except LedgerError as e:
            current_app.logger.exception("Reconciliation failed for customer %s", customer_id)
            click.echo(f"FAIL Customer {customer_id}: {e}")
            totals["errors"] += 1
            continue
        _print_batch(batch)
        totals["processed"] += batch.processed
        totals["updated"] += batch.updated
        totals["errors"] += len(batch.errors)

    click.echo("\n" + "=" * 60)
    click.echo(
        f"DONE {len(customer_ids)} customers: processed {totals['processed']}, "
        f"updated {totals['updated']}, errors {totals['errors']}"
    )
    click.echo("=" * 60)


# =============================================================================
# MAINTENANCE COMMANDS
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('purge-audit')
@click.option('--retention-days', type=int, default=None, help='Defaults to AUDIT_RETENTION_DAYS')
@with_appcontext
def purge_audit_cli(retention_days):
    """
    Delete audit records older than the retention window that no replay reads.

    Records of live transactions are kept at any age.
    """
    if retention_days is None:
        retention_days = current_app.config["AUDIT_RETENTION_DAYS"]
    try:
        deleted = _services().audit.purge_older_than(retention_days)
    except LedgerError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"Deleted {deleted} audit records older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(customers_group)
    app.cli.add_command(reconcile_group)
    app.cli.add_command(maintenance_group)

# Overview: Wires the ledger services around one session; callers get every collaborator from build_services().

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from .audit_service import AuditTrail
from .balance_service import CustomerBalanceLedger
from .payment_service import PaymentAllocationEngine
from .persistence import CustomerDirectory, SessionStore
from .reconciliation_service import ReconciliationService
from .transaction_service import TransactionService


@dataclass(frozen=True)
class LedgerServices:
    store: SessionStore
    customers: CustomerDirectory
    audit: AuditTrail
    ledger: CustomerBalanceLedger
    engine: PaymentAllocationEngine
    reconciliation: ReconciliationService
    transactions: TransactionService


def build_services(session, config: Optional[Mapping] = None) -> LedgerServices:
    """
    Build the service graph over one SQLAlchemy session.

    config is any mapping with the Config keys (Flask's app.config works);
    only ENABLE_OVERDUE_STATE is read here.
    """
    config = config or {}
    overdue = bool(config.get("ENABLE_OVERDUE_STATE", False))

    store = SessionStore(session)
    customers = CustomerDirectory(store)
    audit = AuditTrail(store, customers)
    ledger = CustomerBalanceLedger(store, customers, audit)
    engine = PaymentAllocationEngine(store, customers, ledger, audit, enable_overdue_state=overdue)
    reconciliation = ReconciliationService(store, customers, ledger, audit, enable_overdue_state=overdue)
    transactions = TransactionService(store, customers, ledger, audit, engine, enable_overdue_state=overdue)

    return LedgerServices(
        store=store,
        customers=customers,
        audit=audit,
        ledger=ledger,
        engine=engine,
        reconciliation=reconciliation,
        transactions=transactions,
    )


__all__ = ["LedgerServices", "build_services"]

# Overview: Exception hierarchy shared by the ledger services and routes.

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every failure raised by the debt/credit services."""


class ValidationFailure(LedgerError, ValueError):
    """Bad input rejected before any write (400-level, caller-recoverable)."""


class NotFoundFailure(LedgerError, LookupError):
    """Unknown customer or transaction id (404-level, rejected before any write)."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class PersistenceFailure(LedgerError):
    """
    The atomic write itself failed.

    The unit of work has already been rolled back when this is raised, so no
    partial state was committed. The driver exception is chained as __cause__.
    """


def http_status_for(exc: LedgerError) -> int:
    """Status code the HTTP layer answers with for a service failure."""
    if isinstance(exc, ValidationFailure):
        return 400
    if isinstance(exc, NotFoundFailure):
        return 404
    return 500

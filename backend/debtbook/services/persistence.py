# Overview: Persistence collaborator; wraps one SQLAlchemy session behind read/write/atomic-unit operations.

"""
Persistence Collaborator

WHY: Services receive their storage explicitly (constructor injection) instead
of reaching for a global session, so every balance mutation can be composed
into one unit of work and tests can hand in any session.

UNIT OF WORK:
- run_atomically(fn) commits once, when the outermost unit finishes.
- Nested run_atomically calls join the enclosing unit; they never commit.
- Any exception rolls the whole unit back and propagates. Driver errors are
  re-raised as PersistenceFailure with the driver error chained.
- Nothing here retries. Replaying a money operation after an ambiguous
  failure can apply real money twice; retries belong to the caller.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFoundFailure, PersistenceFailure, ValidationFailure
from ..models import Customer

logger = logging.getLogger(__name__)

T = TypeVar("T")


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


class SessionStore:
    """read_one / read_many / write / run_atomically over a SQLAlchemy session."""

    def __init__(self, session):
        self.session = session
        self._depth = 0

    @property
    def in_unit_of_work(self) -> bool:
        return self._depth > 0

    def read_one(self, model, *criteria, for_update: bool = False, **filters):
        query = self.session.query(model).filter_by(**filters)
        if criteria:
            query = query.filter(*criteria)
        if for_update:
            query = lock_for_update(query)
        return query.first()

    def read_many(self, model, *criteria, order_by=None, limit: Optional[int] = None, offset: int = 0, **filters) -> list:
        query = self.session.query(model).filter_by(**filters)
        if criteria:
            query = query.filter(*criteria)
        if order_by is not None:
            if isinstance(order_by, (list, tuple)):
                query = query.order_by(*order_by)
            else:
                query = query.order_by(order_by)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def write(self, instance):
        """Stage an insert/update and flush so generated ids are available."""
        self.session.add(instance)
        self.session.flush()
        return instance

    def delete_where(self, model, *criteria) -> int:
        """Bulk delete; reserved for age-based maintenance purges."""
        deleted = self.session.query(model).filter(*criteria).delete(synchronize_session=False)
        self.session.flush()
        return deleted

    def run_atomically(self, fn: Callable[[], T]) -> T:
        if self._depth:
            self._depth += 1
            try:
                return fn()
            finally:
                self._depth -= 1

        self._depth = 1
        try:
            result = fn()
            self.session.commit()
            return result
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Unit of work rolled back: %s", exc)
            raise PersistenceFailure(f"Atomic write failed: {exc}") from exc
        except Exception:
            self.session.rollback()
            raise
        finally:
            self._depth = 0


class CustomerDirectory:
    """Customer lookup collaborator (find_by_id) plus the create/list helpers the API needs."""

    def __init__(self, store: SessionStore):
        self.store = store

    def find_by_id(self, customer_id, *, for_update: bool = False) -> Optional[Customer]:
        if customer_id is None:
            return None
        return self.store.read_one(Customer, for_update=for_update, id=customer_id)

    def require(self, customer_id, *, for_update: bool = False) -> Customer:
        customer = self.find_by_id(customer_id, for_update=for_update)
        if customer is None:
            raise NotFoundFailure("Customer", customer_id)
        return customer

    def list_customers(self, *, with_debt_only: bool = False) -> list[Customer]:
        criteria = []
        if with_debt_only:
            criteria.append(Customer.outstanding_balance > 0)
        return self.store.read_many(Customer, *criteria, order_by=Customer.id)

    def create(self, name: str, phone: Optional[str] = None) -> Customer:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationFailure("name cannot be blank")

        def _op():
            return self.store.write(Customer(name=clean_name, phone=(phone or "").strip() or None))

        return self.store.run_atomically(_op)

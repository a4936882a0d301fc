"""
Pytest fixtures for debtbook backend tests.

Provides test database setup, wired services, customer factories and test client.
"""

import pytest

from debtbook import create_app
from debtbook.extensions import db
from debtbook.models import AuditRecord, Customer
from debtbook.services import build_services


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ENABLE_OVERDUE_STATE': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """Create CLI runner."""
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def services(db_session, app):
    """Ledger services wired over the test session."""
    return build_services(db_session, app.config)


@pytest.fixture(scope='function')
def make_customer(db_session):
    """Factory: insert a customer with the given balances (minor units)."""
    def _make(name="Ada Obi", outstanding=0, credit=0, phone=None):
        customer = Customer(
            name=name,
            phone=phone,
            outstanding_balance=outstanding,
            credit_balance=credit,
        )
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture(scope='function')
def customer(make_customer):
    return make_customer()


@pytest.fixture(scope='function')
def audit_kinds(db_session):
    """Audit kinds for a customer, oldest first."""
    def _kinds(customer_id):
        records = (
            db_session.query(AuditRecord)
            .filter_by(customer_id=customer_id)
            .order_by(AuditRecord.id.asc())
            .all()
        )
        return [r.kind for r in records]

    return _kinds


@pytest.fixture(scope='function')
def reload(db_session):
    """Re-read a row from the database, dropping cached state."""
    def _reload(model, row_id):
        db_session.expire_all()
        return db_session.get(model, row_id)

    return _reload

# Overview: Pytest coverage for the customer balance ledger primitives.

import logging

import pytest

from debtbook.errors import NotFoundFailure, ValidationFailure
from debtbook.models import Customer


class TestOutstanding:
    def test_increase(self, services, make_customer, reload):
        customer = make_customer(outstanding=200)
        change = services.ledger.increase_outstanding(customer.id, 300)
        assert (change.before, change.after, change.clamped) == (200, 500, 0)
        assert reload(Customer, customer.id).outstanding_balance == 500

    def test_decrease(self, services, make_customer, reload):
        customer = make_customer(outstanding=500)
        services.ledger.decrease_outstanding(customer.id, 200)
        assert reload(Customer, customer.id).outstanding_balance == 300

    def test_decrease_floors_at_zero_and_reports_clamp(self, services, make_customer, reload, caplog):
        customer = make_customer(outstanding=100)
        with caplog.at_level(logging.WARNING, logger="debtbook.services.balance_service"):
            change = services.ledger.decrease_outstanding(customer.id, 250)

        assert change.after == 0
        assert change.applied == 100
        assert change.clamped == 150
        assert reload(Customer, customer.id).outstanding_balance == 0
        assert "Balance drift" in caplog.text

    @pytest.mark.parametrize("amount", [0, -5])
    def test_rejects_non_positive_amount(self, services, customer, amount):
        with pytest.raises(ValidationFailure):
            services.ledger.increase_outstanding(customer.id, amount)

    def test_unknown_customer(self, services, db_session):
        with pytest.raises(NotFoundFailure):
            services.ledger.decrease_outstanding(9999, 10)


class TestCredit:
    def test_increase_credit_writes_no_audit(self, services, customer, audit_kinds, reload):
        services.ledger.increase_credit(customer.id, 400)
        assert reload(Customer, customer.id).credit_balance == 400
        assert audit_kinds(customer.id) == []

    def test_decrease_credit_records_usage(self, services, make_customer, audit_kinds, reload):
        customer = make_customer(credit=400)
        services.ledger.decrease_credit(customer.id, 150)
        assert reload(Customer, customer.id).credit_balance == 250
        assert audit_kinds(customer.id) == ["credit_used"]

    def test_decrease_credit_records_only_what_was_taken(self, services, make_customer):
        customer = make_customer(credit=100)
        services.ledger.decrease_credit(customer.id, 300)
        record = services.audit.customer_history(customer.id)[0]
        assert record.amount == 100

    def test_decrease_credit_without_usage_record(self, services, make_customer, audit_kinds):
        customer = make_customer(credit=100)
        services.ledger.decrease_credit(customer.id, 50, record_usage=False)
        assert audit_kinds(customer.id) == []


class TestTotalSpent:
    def test_accumulates_and_stamps_purchase(self, services, customer, reload):
        services.ledger.update_total_spent(customer.id, 700)
        services.ledger.update_total_spent(customer.id, 300)
        stored = reload(Customer, customer.id)
        assert stored.total_spent == 1000
        assert stored.last_purchase_at is not None

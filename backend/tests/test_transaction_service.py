# Overview: Pytest coverage for transaction creation, reads and soft delete.

import pytest

from debtbook.errors import NotFoundFailure, ValidationFailure
from debtbook.models import Customer, Transaction


class TestSales:
    def test_cash_sale(self, services, customer, audit_kinds, reload):
        outcome = services.transactions.create_transaction(customer.id, "sale", 2500, "cash")

        sale = reload(Transaction, outcome.transaction.id)
        assert (sale.paid_amount, sale.remaining_amount, sale.status) == (2500, 0, "completed")
        stored = reload(Customer, customer.id)
        assert stored.outstanding_balance == 0
        assert stored.total_spent == 2500
        assert audit_kinds(customer.id) == ["payment_allocation"]

    def test_credit_sale_without_credit_becomes_debt(self, services, customer, reload):
        outcome = services.transactions.create_transaction(customer.id, "sale", 1000, "credit")

        assert outcome.new_debt == 1000
        sale = reload(Transaction, outcome.transaction.id)
        assert (sale.paid_amount, sale.remaining_amount, sale.status) == (0, 1000, "pending")
        assert reload(Customer, customer.id).outstanding_balance == 1000

    def test_credit_sale_uses_available_credit_first(self, services, make_customer, audit_kinds, reload):
        customer = make_customer(credit=300)
        outcome = services.transactions.create_transaction(customer.id, "sale", 1000, "credit")

        assert (outcome.credit_used, outcome.new_debt) == (300, 700)
        sale = reload(Transaction, outcome.transaction.id)
        assert (sale.paid_amount, sale.remaining_amount, sale.status) == (300, 700, "partial")
        stored = reload(Customer, customer.id)
        assert (stored.outstanding_balance, stored.credit_balance) == (700, 0)
        assert audit_kinds(customer.id) == ["credit_used", "credit_applied_to_sale"]

    def test_mixed_sale_cash_and_debt(self, services, customer, reload):
        outcome = services.transactions.create_transaction(
            customer.id, "sale", 1000, "mixed", cash_amount=600
        )

        assert (outcome.credit_used, outcome.change_due, outcome.new_debt) == (0, 0, 400)
        sale = reload(Transaction, outcome.transaction.id)
        assert (sale.paid_amount, sale.remaining_amount, sale.status) == (600, 400, "partial")
        assert reload(Customer, customer.id).outstanding_balance == 400

    def test_mixed_sale_applies_credit_before_cash(self, services, make_customer, reload):
        customer = make_customer(credit=700)
        outcome = services.transactions.create_transaction(
            customer.id, "sale", 1000, "mixed", cash_amount=600
        )

        # 700 credit leaves 300 for cash; 300 of the 600 tendered goes back
        assert (outcome.credit_used, outcome.change_due, outcome.new_debt) == (700, 300, 0)
        sale = reload(Transaction, outcome.transaction.id)
        assert (sale.paid_amount, sale.remaining_amount, sale.status) == (1000, 0, "completed")
        assert reload(Customer, customer.id).outstanding_balance == 0

    def test_mixed_sale_requires_cash_below_total(self, services, customer, reload):
        with pytest.raises(ValidationFailure):
            services.transactions.create_transaction(customer.id, "sale", 1000, "mixed", cash_amount=1000)
        assert services.transactions.list_customer_transactions(customer.id) == []

    def test_mixed_sale_requires_cash_amount(self, services, customer):
        with pytest.raises(ValidationFailure, match="cash_amount"):
            services.transactions.create_transaction(customer.id, "sale", 1000, "mixed")


class TestCreditPaymentRefund:
    def test_credit_issuance(self, services, customer, reload):
        outcome = services.transactions.create_transaction(customer.id, "credit", 5000)
        assert outcome.transaction.payment_method == "credit"
        assert reload(Customer, customer.id).outstanding_balance == 5000
        assert reload(Customer, customer.id).total_spent == 0

    def test_payment_allocates_against_debt(self, services, make_customer, reload):
        customer = make_customer(outstanding=1000)
        outcome = services.transactions.create_transaction(customer.id, "payment", 1500, "bank")

        assert outcome.allocation.to_dict() == {"debt_reduced": 1000, "credit_created": 500}
        payment = reload(Transaction, outcome.transaction.id)
        assert (payment.paid_amount, payment.remaining_amount, payment.status) == (1000, 500, "completed")
        records = services.audit.transaction_history(payment.id)
        assert [r.kind for r in records] == ["payment_allocation", "over_payment"]

    def test_forward_deposit(self, services, make_customer, reload):
        customer = make_customer(outstanding=1000)
        outcome = services.transactions.create_transaction(customer.id, "payment", 200, applied_to_debt=False)
        stored = reload(Customer, customer.id)
        assert (stored.outstanding_balance, stored.credit_balance) == (1000, 200)
        deposit = reload(Transaction, outcome.transaction.id)
        assert (deposit.paid_amount, deposit.remaining_amount, deposit.status) == (0, 200, "completed")

    def test_refund_reduces_debt(self, services, make_customer, reload):
        customer = make_customer(outstanding=300)
        outcome = services.transactions.create_transaction(customer.id, "refund", 500)

        assert reload(Customer, customer.id).outstanding_balance == 0
        records = services.audit.transaction_history(outcome.transaction.id)
        assert [(r.kind, r.amount) for r in records] == [("payment_allocation", 300)]
        refund = reload(Transaction, outcome.transaction.id)
        assert (refund.paid_amount, refund.remaining_amount) == (300, 200)

    def test_refund_without_debt_changes_nothing(self, services, customer, reload, audit_kinds):
        services.transactions.create_transaction(customer.id, "refund", 500)
        assert reload(Customer, customer.id).outstanding_balance == 0
        assert audit_kinds(customer.id) == []


class TestValidation:
    def test_unknown_customer(self, services, db_session):
        with pytest.raises(NotFoundFailure):
            services.transactions.create_transaction(777, "sale", 100, "cash")

    def test_invalid_kind(self, services, customer):
        with pytest.raises(ValidationFailure):
            services.transactions.create_transaction(customer.id, "gift", 100)

    def test_non_positive_total(self, services, customer):
        with pytest.raises(ValidationFailure):
            services.transactions.create_transaction(customer.id, "sale", 0, "cash")

    def test_bad_currency(self, services, customer):
        with pytest.raises(ValidationFailure):
            services.transactions.create_transaction(customer.id, "sale", 100, "cash", currency="naira")

    def test_linked_transaction_must_exist(self, services, customer):
        with pytest.raises(NotFoundFailure):
            services.transactions.create_transaction(
                customer.id, "refund", 100, linked_transaction_id=4242
            )

    def test_due_date_string_is_parsed(self, services, customer, reload):
        outcome = services.transactions.create_transaction(
            customer.id, "credit", 100, due_date="2026-01-31T00:00:00Z"
        )
        assert reload(Transaction, outcome.transaction.id).due_date.year == 2026


class TestReadAndDelete:
    def test_get_missing(self, services, db_session):
        with pytest.raises(NotFoundFailure):
            services.transactions.get_transaction(31337)

    def test_soft_delete(self, services, customer, reload):
        outcome = services.transactions.create_transaction(customer.id, "credit", 900)
        services.transactions.delete_transaction(outcome.transaction.id)

        deleted = reload(Transaction, outcome.transaction.id)
        assert deleted.is_deleted
        assert deleted.status == "cancelled"
        # balances are left for repair
        assert reload(Customer, customer.id).outstanding_balance == 900

        assert services.transactions.list_customer_transactions(customer.id) == []
        everything = services.transactions.list_customer_transactions(customer.id, include_deleted=True)
        assert [t.id for t in everything] == [outcome.transaction.id]

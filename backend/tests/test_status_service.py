# Overview: Pytest coverage for the transaction status calculator.

from datetime import datetime, timedelta

import pytest

from debtbook.errors import ValidationFailure
from debtbook.services.status_service import calculate_status, initial_amounts, percent_paid

NOW = datetime(2026, 3, 1, 12, 0, 0)


class TestThreeStateCalculator:
    def test_partial_sale(self):
        result = calculate_status("sale", "credit", 1000, 500, 500)
        assert result.status == "partial"
        assert result.percent_paid == 50.0

    def test_settled_kinds_are_completed(self):
        assert calculate_status("payment", "cash", 1000, 1000, 0).status == "completed"
        assert calculate_status("refund", "cash", 1000, 0, 1000).status == "completed"

    def test_nothing_remaining_is_completed(self):
        assert calculate_status("sale", "credit", 1000, 1000, 0).status == "completed"

    def test_unpaid_is_pending(self):
        assert calculate_status("credit", "credit", 1000, 0, 1000).status == "pending"

    def test_past_due_stays_pending_without_overdue_state(self):
        result = calculate_status(
            "sale", "credit", 1000, 0, 1000, NOW - timedelta(days=1), now=NOW
        )
        assert result.status == "pending"

    def test_amounts_are_normalized(self):
        result = calculate_status("sale", "mixed", 1000.4, 499.5, 500.4)
        assert (result.paid_amount, result.remaining_amount) == (500, 500)

    def test_invalid_kind(self):
        with pytest.raises(ValidationFailure, match="Invalid transaction kind"):
            calculate_status("gift", "cash", 1000, 0, 1000)


class TestFiveStateCalculator:
    def test_unpaid_past_due_is_overdue(self):
        result = calculate_status(
            "sale", "credit", 1000, 0, 1000, NOW - timedelta(days=1),
            enable_overdue_state=True, now=NOW,
        )
        assert result.status == "overdue"

    def test_unpaid_not_yet_due_is_pending(self):
        result = calculate_status(
            "sale", "credit", 1000, 0, 1000, NOW + timedelta(days=1),
            enable_overdue_state=True, now=NOW,
        )
        assert result.status == "pending"

    def test_partial_wins_over_overdue(self):
        result = calculate_status(
            "sale", "credit", 1000, 200, 800, NOW - timedelta(days=30),
            enable_overdue_state=True, now=NOW,
        )
        assert result.status == "partial"

    def test_missing_due_date_is_never_overdue(self):
        result = calculate_status("credit", "credit", 1000, 0, 1000, None, enable_overdue_state=True, now=NOW)
        assert result.status == "pending"


class TestPercentPaid:
    def test_zero_total(self):
        assert percent_paid(100, 0) == 0.0

    def test_clamped_to_hundred(self):
        assert percent_paid(1500, 1000) == 100.0

    def test_two_decimals(self):
        assert percent_paid(1, 3) == 33.33


class TestInitialAmounts:
    def test_cash_sale_is_fully_paid(self):
        assert initial_amounts("sale", "cash", 1000) == (1000, 0, "cash")

    def test_credit_sale_starts_unpaid(self):
        assert initial_amounts("sale", "credit", 1000) == (0, 1000, "credit")

    def test_mixed_sale_splits_on_cash(self):
        assert initial_amounts("sale", "mixed", 1000, cash_amount=600) == (600, 400, "mixed")

    def test_credit_kind_ignores_method(self):
        assert initial_amounts("credit", "cash", 1000) == (0, 1000, "credit")

    def test_payment_defaults_to_cash_and_starts_unpaid(self):
        assert initial_amounts("payment", None, 1000) == (0, 1000, "cash")

    def test_invalid_method(self):
        with pytest.raises(ValidationFailure, match="Invalid payment method"):
            initial_amounts("sale", "barter", 1000)

# Overview: Pytest coverage for money normalization helpers.

from decimal import Decimal

import pytest

from debtbook.errors import ValidationFailure
from debtbook.services.money import (
    normalize,
    require_non_negative,
    require_positive,
    to_major_units,
    to_minor_units,
    within_tolerance,
)


class TestNormalize:
    def test_rounds_half_away_from_zero(self):
        assert normalize(10.5) == 11
        assert normalize(-10.5) == -11
        assert normalize("2.5") == 3

    def test_float_noise_is_absorbed(self):
        assert normalize(999.9999999) == 1000
        assert normalize(0.1 + 0.2) == 0

    def test_none_is_zero(self):
        assert normalize(None) == 0

    def test_integers_pass_through(self):
        assert normalize(1500) == 1500

    @pytest.mark.parametrize("value", [True, "abc", float("nan"), float("inf")])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(ValidationFailure):
            normalize(value)


class TestUnitConversion:
    def test_major_to_minor(self):
        assert to_minor_units("12.34") == 1234
        assert to_minor_units(10.1) == 1010
        assert to_minor_units("0.005") == 1

    def test_minor_to_major(self):
        assert to_major_units(1234) == Decimal("12.34")

    def test_custom_multiplier(self):
        assert to_minor_units("1.5", multiplier=1000) == 1500

    def test_rejects_bad_multiplier(self):
        with pytest.raises(ValidationFailure):
            to_minor_units(1, multiplier=0)


class TestGuards:
    def test_within_tolerance(self):
        assert within_tolerance(1000, 1001)
        assert not within_tolerance(1000, 1002)

    def test_require_positive(self):
        assert require_positive(5) == 5
        with pytest.raises(ValidationFailure, match="amount must be greater than zero"):
            require_positive(0)
        with pytest.raises(ValidationFailure):
            require_positive(-3)

    def test_require_non_negative(self):
        assert require_non_negative(0) == 0
        with pytest.raises(ValidationFailure, match="sale_amount cannot be negative"):
            require_non_negative(-1, "sale_amount")

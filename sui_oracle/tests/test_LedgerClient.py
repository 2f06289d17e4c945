"""Unit tests for fixed-point price scaling."""

import math

import pytest

from sui_oracle.src.LedgerClient import ChainError, FatalChainError, scale_price


class TestScalePrice:
    """Test conversion of float prices to on-chain integers."""

    @pytest.mark.parametrize(
        "price, decimals, expected",
        [
            (65000.0, 6, 65_000_000_000),
            (1.23456789, 6, 1_234_567),
            (0.1, 6, 100_000),
            (2.675, 2, 267),
            (0.0000009, 6, 0),
            (123.0, 0, 123),
        ],
    )
    def test_truncates(self, price: float, decimals: int, expected: int) -> None:
        """Digits beyond the decimals are dropped, never rounded up."""
        assert scale_price(price, decimals) == expected

    def test_same_float_same_integer(self) -> None:
        assert scale_price(0.1 + 0.2) == scale_price(0.30000000000000004)

    @pytest.mark.parametrize("price", [-1.0, math.nan, math.inf])
    def test_invalid(self, price: float) -> None:
        with pytest.raises(ValueError):
            scale_price(price)


class TestChainErrorKinds:
    def test_kind_is_class_attribute(self) -> None:
        error = FatalChainError("Invalid user signature")
        assert isinstance(error, ChainError)
        assert error.kind == "fatal"

"""
Order settlement calculator tests.

Covers the worked checkout scenarios, split tenders, discount clamping and
the rounding rule.
"""

from decimal import Decimal

import pytest

from retailpos.money import round2
from retailpos.services.settlement_service import (
    CartLineItem,
    DiscountKind,
    PaymentMethod,
    SettlementError,
    SplitPayment,
    check_stock,
    compute_change,
    compute_discount_amount,
    compute_totals,
    parse_discount_kind,
    parse_payment_method,
    validate_single_payment,
    validate_split_payment,
)


def line(price, qty, stock=100, id_=1):
    return CartLineItem(
        id=id_,
        name=f"Item {id_}",
        sku=f"SKU-{id_}",
        unit_price=Decimal(str(price)),
        quantity=qty,
        available_stock=stock,
    )


@pytest.fixture
def cart():
    return [line(8500, 2, id_=1), line(3200, 1, id_=2)]


# =============================================================================
# CHECKOUT SCENARIOS
# =============================================================================


class TestCheckoutScenario:
    def test_totals_with_discount(self, cart):
        totals = compute_totals(cart, Decimal("1000"))
        assert totals.subtotal == Decimal("20200.00")
        assert totals.discount == Decimal("1000.00")
        assert totals.total == Decimal("19200.00")

    def test_cash_tender_with_change(self, cart):
        totals = compute_totals(cart, Decimal("1000"))
        result = validate_single_payment(Decimal("20000"), totals.total, PaymentMethod.CASH)
        assert result.valid is True
        assert result.error is None
        assert compute_change(Decimal("20000"), totals.total) == Decimal("800.00")

    def test_cash_short(self, cart):
        totals = compute_totals(cart, Decimal("1000"))
        result = validate_single_payment(Decimal("19000"), totals.total, PaymentMethod.CASH)
        assert result.valid is False
        assert result.error is SettlementError.INSUFFICIENT_PAYMENT
        assert result.to_dict()["error"] == "INSUFFICIENT_PAYMENT"

    @pytest.mark.parametrize("method", ["CARD", "BANK_TRANSFER", "MOBILE_MONEY"])
    def test_non_cash_not_checked_against_total(self, cart, method):
        result = validate_single_payment(Decimal("0"), Decimal("19200.00"), method)
        assert result.valid is True

    def test_exact_cash_is_valid(self):
        assert validate_single_payment("19200.00", "19200.00", "cash").valid is True

    @pytest.mark.parametrize("method", ["CHEQUE", "", None, 3, "IOU"])
    def test_unknown_method_fails_closed(self, method):
        result = validate_single_payment(Decimal("19200.00"), Decimal("19200.00"), method)
        assert result.valid is False
        assert result.error is SettlementError.INSUFFICIENT_PAYMENT


class TestTotals:
    def test_total_never_negative(self, cart):
        totals = compute_totals(cart, Decimal("999999"))
        assert totals.total == Decimal("0.00")

    def test_idempotent(self, cart):
        assert compute_totals(cart, Decimal("12.34")) == compute_totals(cart, Decimal("12.34"))

    def test_empty_cart(self):
        totals = compute_totals([])
        assert totals.subtotal == Decimal("0.00")
        assert totals.total == Decimal("0.00")

    def test_fractional_prices_round_per_line(self):
        totals = compute_totals([line("0.335", 3), line("0.10", 1, id_=2)])
        # 1.005 -> 1.01, plus 0.10
        assert totals.subtotal == Decimal("1.11")

    def test_to_dict_is_strings(self, cart):
        assert compute_totals(cart).to_dict() == {
            "subtotal": "20200.00",
            "discount": "0.00",
            "total": "20200.00",
        }


class TestDiscounts:
    @pytest.mark.parametrize("value", [0, 1, 12.5, 33.33, 50, 99.99, 100])
    def test_percentage_never_exceeds_subtotal(self, value):
        subtotal = Decimal("20200.00")
        amount = compute_discount_amount(subtotal, value, DiscountKind.PERCENTAGE)
        assert Decimal("0") <= amount <= subtotal

    def test_percentage(self):
        assert compute_discount_amount("200.00", 10, "PERCENTAGE") == Decimal("20.00")

    def test_percentage_over_100_clamped(self):
        assert compute_discount_amount("200.00", 150, "PERCENTAGE") == Decimal("200.00")

    def test_fixed_clamped_to_subtotal(self):
        assert compute_discount_amount("50.00", "80", DiscountKind.FIXED) == Decimal("50.00")

    def test_negative_clamped_to_zero(self):
        assert compute_discount_amount("50.00", "-5", DiscountKind.FIXED) == Decimal("0.00")

    def test_unknown_kind_raises(self):
        with pytest.raises(ValueError):
            compute_discount_amount("50.00", 5, "BOGO")

    def test_kind_aliases(self):
        assert parse_discount_kind("percentage") is DiscountKind.PERCENTAGE
        assert parse_discount_kind("AMOUNT") is DiscountKind.FIXED
        assert parse_discount_kind(None) is None


# =============================================================================
# SPLIT TENDER
# =============================================================================


class TestSplitPayment:
    def test_exact_three_way_split(self):
        entries = [
            SplitPayment(Decimal("200000"), PaymentMethod.CASH),
            SplitPayment(Decimal("200000"), PaymentMethod.BANK_TRANSFER),
            SplitPayment(Decimal("56697.86"), PaymentMethod.MOBILE_MONEY),
        ]
        assert validate_split_payment(entries, Decimal("456697.86")).valid is True

    def test_underpaid(self):
        result = validate_split_payment([SplitPayment(Decimal("100"), PaymentMethod.CASH)], Decimal("200"))
        assert result.valid is False
        assert result.error is SettlementError.SPLIT_UNDERPAID

    @pytest.mark.parametrize("bad", ["0", "-1", "0.00"])
    def test_non_positive_entry(self, bad):
        entries = [
            SplitPayment(Decimal("500"), PaymentMethod.CARD),
            SplitPayment(Decimal(bad), PaymentMethod.CASH),
        ]
        result = validate_split_payment(entries, Decimal("200"))
        assert result.error is SettlementError.SPLIT_INVALID_AMOUNT

    def test_invalid_amount_reported_before_underpayment(self):
        entries = [SplitPayment(Decimal("-5"), PaymentMethod.CASH)]
        assert validate_split_payment(entries, Decimal("200")).error is SettlementError.SPLIT_INVALID_AMOUNT

    def test_overpayment_allowed(self):
        entries = [
            SplitPayment(Decimal("150"), PaymentMethod.CASH),
            SplitPayment(Decimal("100"), PaymentMethod.CARD),
        ]
        assert validate_split_payment(entries, Decimal("200")).valid is True
        assert compute_change(Decimal("250"), Decimal("200")) == Decimal("50.00")

    def test_sum_rounded_once(self):
        # Three thirds of a cent sum to 0.009 -> 0.01 at the end
        entries = [SplitPayment(Decimal("0.003"), PaymentMethod.CASH) for _ in range(3)]
        assert validate_split_payment(entries, Decimal("0.01")).valid is True


# =============================================================================
# ROUNDING, PARSING, STOCK
# =============================================================================


class TestRounding:
    def test_round2_half_up(self):
        assert round2(10.005) == Decimal("10.01")

    def test_change_rounds_to_cents(self):
        assert compute_change(100, 99.999) == Decimal("0.00")

    def test_change_never_negative(self):
        assert compute_change(10, 20) == Decimal("0.00")


class TestParsing:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("cash", PaymentMethod.CASH),
            ("CARD", PaymentMethod.CARD),
            ("bank", PaymentMethod.BANK_TRANSFER),
            ("transfer", PaymentMethod.BANK_TRANSFER),
            ("mobile", PaymentMethod.MOBILE_MONEY),
            ("mobile-money", PaymentMethod.MOBILE_MONEY),
            ("cheque", None),
            (None, None),
        ],
    )
    def test_payment_method_aliases(self, raw, expected):
        assert parse_payment_method(raw) is expected


class TestStock:
    def test_shortages_listed(self):
        shortages = check_stock([line(10, 5, stock=3, id_=1), line(10, 1, stock=1, id_=2)])
        assert shortages == [{
            "product_id": 1,
            "sku": "SKU-1",
            "name": "Item 1",
            "requested_quantity": 5,
            "available_stock": 3,
        }]

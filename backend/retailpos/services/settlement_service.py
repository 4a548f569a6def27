# Overview: Pure checkout arithmetic; order totals, discounts, tender validation and change.

"""
Order Settlement Calculator

WHY: Checkout has to agree to the cent on what the customer owes and
whether what they handed over covers it. Keeping the arithmetic pure and
separate from persistence lets every route (quote, checkout) share it.

DESIGN PRINCIPLES:
- No I/O, no hidden state: identical inputs always give identical outputs
- Amounts are Decimal and rounded to cents after every arithmetic step
  (see retailpos.money for the rounding rule)
- Business failures are returned as a closed set of codes, never raised
- Totals are derived from line items and recomputed on every cart change

INVARIANTS:
- subtotal == sum(unit_price * quantity)
- total == max(0, subtotal - discount)
- split tenders: every amount > 0 and sum(amount) >= total
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from retailpos.money import ZERO, round2, to_decimal


# =============================================================================
# TYPES
# =============================================================================

class DiscountKind(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_MONEY = "MOBILE_MONEY"


class SettlementError(str, Enum):
    INSUFFICIENT_PAYMENT = "INSUFFICIENT_PAYMENT"
    SPLIT_UNDERPAID = "SPLIT_UNDERPAID"
    SPLIT_INVALID_AMOUNT = "SPLIT_INVALID_AMOUNT"


SETTLEMENT_MESSAGES = {
    SettlementError.INSUFFICIENT_PAYMENT: "Cash tendered is less than the order total",
    SettlementError.SPLIT_UNDERPAID: "Split payments do not cover the order total",
    SettlementError.SPLIT_INVALID_AMOUNT: "Every split payment amount must be greater than zero",
}

# Short names used by the POS frontend
_PAYMENT_METHOD_ALIASES = {
    "CASH": PaymentMethod.CASH,
    "CARD": PaymentMethod.CARD,
    "BANK": PaymentMethod.BANK_TRANSFER,
    "TRANSFER": PaymentMethod.BANK_TRANSFER,
    "BANK_TRANSFER": PaymentMethod.BANK_TRANSFER,
    "MOBILE": PaymentMethod.MOBILE_MONEY,
    "MOBILE_MONEY": PaymentMethod.MOBILE_MONEY,
}


def parse_payment_method(raw) -> PaymentMethod | None:
    if isinstance(raw, PaymentMethod):
        return raw
    if not isinstance(raw, str):
        return None
    return _PAYMENT_METHOD_ALIASES.get(raw.strip().upper().replace("-", "_"))


def parse_discount_kind(raw) -> DiscountKind | None:
    if isinstance(raw, DiscountKind):
        return raw
    if not isinstance(raw, str):
        return None
    value = raw.strip().upper()
    # Coupon forms call fixed discounts "AMOUNT"
    if value == "AMOUNT":
        return DiscountKind.FIXED
    try:
        return DiscountKind(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class CartLineItem:
    """Transient cart line; owned by the checkout request, not persisted."""
    id: int
    name: str
    sku: str
    unit_price: Decimal
    quantity: int
    available_stock: int

    @property
    def line_total(self) -> Decimal:
        return round2(to_decimal(self.unit_price) * self.quantity)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "total": str(self.total),
        }


@dataclass(frozen=True)
class SplitPayment:
    amount: Decimal
    method: PaymentMethod


@dataclass(frozen=True)
class PaymentValidation:
    """Discriminated result: valid, or one named settlement failure."""
    valid: bool
    error: SettlementError | None = None

    @classmethod
    def ok(cls) -> "PaymentValidation":
        return cls(valid=True)

    @classmethod
    def fail(cls, error: SettlementError) -> "PaymentValidation":
        return cls(valid=False, error=error)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "error": self.error.value if self.error else None,
            "message": SETTLEMENT_MESSAGES[self.error] if self.error else None,
        }


# =============================================================================
# TOTALS
# =============================================================================

def compute_totals(items, discount=ZERO) -> OrderTotals:
    """
    Compute subtotal/discount/total for a cart.

    The discount is supplied pre-computed (compute_discount_amount, or a
    coupon/manual entry upstream); no lookup happens here.
    """
    subtotal = ZERO
    for item in items:
        subtotal = round2(subtotal + item.line_total)

    discount_amount = round2(discount)
    total = round2(max(ZERO, subtotal - discount_amount))

    return OrderTotals(subtotal=subtotal, discount=discount_amount, total=total)


def compute_discount_amount(subtotal, value, kind) -> Decimal:
    """
    Turn a discount definition into a currency amount.

    PERCENTAGE: subtotal * value / 100
    FIXED:      value
    Either way the result is clamped to [0, subtotal] so totals never go negative.
    """
    subtotal_amount = round2(subtotal)
    discount_value = to_decimal(value)
    kind = parse_discount_kind(kind)

    if kind is DiscountKind.PERCENTAGE:
        amount = round2(subtotal_amount * discount_value / Decimal(100))
    elif kind is DiscountKind.FIXED:
        amount = round2(discount_value)
    else:
        raise ValueError(f"Unknown discount kind: {kind!r}")

    return round2(max(ZERO, min(amount, subtotal_amount)))


# =============================================================================
# TENDER
# =============================================================================

def validate_single_payment(amount_paid, total, method) -> PaymentValidation:
    """
    Validate a single-instrument tender.

    Only cash is checked against the total: card, transfer and mobile money
    are settled by the external gateway, which is authoritative for them.
    An unrecognized method is treated as unpaid.
    """
    parsed = parse_payment_method(method)
    if parsed is None:
        return PaymentValidation.fail(SettlementError.INSUFFICIENT_PAYMENT)
    if parsed is PaymentMethod.CASH and round2(amount_paid) < round2(total):
        return PaymentValidation.fail(SettlementError.INSUFFICIENT_PAYMENT)
    return PaymentValidation.ok()


def compute_change(amount_paid, total) -> Decimal:
    return round2(max(ZERO, to_decimal(amount_paid) - to_decimal(total)))


def validate_split_payment(entries, total) -> PaymentValidation:
    """
    Validate a tender split across several instruments.

    The sum is rounded once at the end, not per entry. Overpayment is
    allowed; the excess is reported as one aggregate change figure.
    """
    tendered = Decimal(0)
    for entry in entries:
        amount = to_decimal(entry.amount)
        if amount <= 0:
            return PaymentValidation.fail(SettlementError.SPLIT_INVALID_AMOUNT)
        tendered += amount

    if round2(tendered) < round2(total):
        return PaymentValidation.fail(SettlementError.SPLIT_UNDERPAID)
    return PaymentValidation.ok()


def split_tendered_total(entries) -> Decimal:
    return round2(sum((to_decimal(entry.amount) for entry in entries), Decimal(0)))


# =============================================================================
# STOCK
# =============================================================================

def check_stock(items) -> list[dict]:
    """Lines asking for more units than are on hand."""
    shortages = []
    for item in items:
        if item.quantity > item.available_stock:
            shortages.append({
                "product_id": item.id,
                "sku": item.sku,
                "name": item.name,
                "requested_quantity": item.quantity,
                "available_stock": item.available_stock,
            })
    return shortages

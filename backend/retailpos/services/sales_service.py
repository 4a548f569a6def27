# Overview: Checkout orchestration: builds carts from the catalog, settles them and records sales.

"""
Sales Service

WHY: The settlement calculator is pure; this module is the one place that
feeds it real catalog data and persists what it accepts. A sale is either
written completely (sale, lines, payments, stock decrement) or not at all.

FLOW (checkout):
1. Parse lines, discount and tender from the request payload
2. Lock the referenced products and build CartLineItems from them
3. check_stock -> compute_discount_amount -> compute_totals
4. Validate the tender (single or split)
5. Persist and decrement stock in one transaction (run_with_retry)
"""

from __future__ import annotations

import secrets
from decimal import Decimal

from ..extensions import db
from ..models import Product, Sale, SaleLine, SalePayment, User
from ..validation import ValidationError, clean_str, parse_amount, parse_int
from .access_service import MANAGEMENT_ROLES, parse_role
from .concurrency import lock_for_update, run_with_retry
from .settlement_service import (
    SETTLEMENT_MESSAGES,
    CartLineItem,
    PaymentMethod,
    SplitPayment,
    check_stock,
    compute_change,
    compute_discount_amount,
    compute_totals,
    parse_discount_kind,
    parse_payment_method,
    split_tendered_total,
    validate_single_payment,
    validate_split_payment,
)
from retailpos.money import ZERO, round2, to_decimal
from retailpos.time_utils import parse_iso_datetime, utcnow


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None, status_code: int = 400, code: str | None = None):
        super().__init__(message)
        self.details = details or {}
        self.status_code = status_code
        self.code = code


def is_manager(user: User) -> bool:
    return parse_role(user.role) in MANAGEMENT_ROLES


def generate_transaction_number() -> str:
    return f"TXN-{utcnow():%Y%m%d}-{secrets.token_hex(3).upper()}"


# =============================================================================
# PAYLOAD PARSING
# =============================================================================

def _parse_lines(payload: dict, allow_price_override: bool) -> list[dict]:
    raw_lines = payload.get("items")
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("items must be a non-empty list")

    lines = []
    seen = set()
    for index, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")

        product_id = parse_int(raw.get("product_id"), f"items[{index}].product_id", minimum=1)
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once in items")
        seen.add(product_id)

        line = {
            "product_id": product_id,
            "quantity": parse_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1),
            "unit_price": None,
        }
        if raw.get("unit_price") is not None:
            if not allow_price_override:
                raise SaleError("Only managers can override prices", status_code=403)
            line["unit_price"] = parse_amount(raw["unit_price"], f"items[{index}].unit_price")
        lines.append(line)
    return lines


def _parse_discount(payload: dict):
    """Returns (kind, value) or None when no discount was sent."""
    discount = payload.get("discount")
    if discount in (None, {}):
        return None
    if not isinstance(discount, dict):
        raise ValidationError("discount must be an object with value and kind")

    kind = parse_discount_kind(discount.get("kind"))
    if kind is None:
        raise ValidationError("discount.kind must be PERCENTAGE or FIXED")
    value = parse_amount(discount.get("value"), "discount.value")
    return kind, value


def _parse_split_payments(raw_entries) -> list[SplitPayment]:
    if not isinstance(raw_entries, list) or not raw_entries:
        raise ValidationError("split_payments must be a non-empty list")

    entries = []
    for index, raw in enumerate(raw_entries):
        if not isinstance(raw, dict):
            raise ValidationError(f"split_payments[{index}] must be an object")
        method = parse_payment_method(raw.get("method"))
        if method is None:
            raise ValidationError(f"split_payments[{index}].method is not a supported payment method")
        try:
            amount = to_decimal(raw.get("amount"))
        except ValueError:
            raise ValidationError(f"split_payments[{index}].amount must be a number")
        # Non-positive amounts are reported by the settlement check, not here
        entries.append(SplitPayment(amount=amount, method=method))
    return entries


# =============================================================================
# CART
# =============================================================================

def build_cart(lines: list[dict], lock: bool = False) -> list[CartLineItem]:
    """
    Turn parsed request lines into CartLineItems priced from the catalog.

    Raises:
        SaleError: unknown or archived product (404 / 409)
    """
    product_ids = [line["product_id"] for line in lines]
    query = db.session.query(Product).filter(Product.id.in_(product_ids))
    if lock:
        query = lock_for_update(query)
    products = {p.id: p for p in query.all()}

    missing = [pid for pid in product_ids if pid not in products]
    if missing:
        raise SaleError("Product not found", details={"product_ids": missing}, status_code=404)

    archived = [pid for pid in product_ids if products[pid].is_archived]
    if archived:
        raise SaleError("Product is archived", details={"product_ids": archived}, status_code=409)

    items = []
    for line in lines:
        product = products[line["product_id"]]
        items.append(CartLineItem(
            id=product.id,
            name=product.name,
            sku=product.sku,
            unit_price=line["unit_price"] if line["unit_price"] is not None else round2(product.price),
            quantity=line["quantity"],
            available_stock=product.stock,
        ))
    return items


def _price_cart(items: list[CartLineItem], discount) -> tuple:
    subtotal = compute_totals(items).subtotal
    discount_amount = ZERO
    if discount is not None:
        kind, value = discount
        discount_amount = compute_discount_amount(subtotal, value, kind)
    return compute_totals(items, discount_amount), discount_amount


def _line_dict(item: CartLineItem) -> dict:
    return {
        "product_id": item.id,
        "sku": item.sku,
        "name": item.name,
        "quantity": item.quantity,
        "unit_price": str(round2(item.unit_price)),
        "line_total": str(item.line_total),
    }


def quote(payload: dict, actor: User) -> dict:
    """Price a cart without writing anything. Stock shortages are reported, not raised."""
    lines = _parse_lines(payload, allow_price_override=is_manager(actor))
    discount = _parse_discount(payload)
    items = build_cart(lines)
    totals, _ = _price_cart(items, discount)

    return {
        "items": [_line_dict(item) for item in items],
        "totals": totals.to_dict(),
        "stock_issues": check_stock(items),
    }


# =============================================================================
# CHECKOUT
# =============================================================================

def _settlement_failure(validation) -> SaleError:
    return SaleError(
        SETTLEMENT_MESSAGES[validation.error],
        details={"code": validation.error.value},
        status_code=400,
        code=validation.error.value,
    )


def checkout(payload: dict, cashier: User) -> Sale:
    """
    Settle a cart and record the sale.

    Raises:
        ValidationError: malformed payload
        SaleError: unknown/archived product, insufficient stock (409),
            settlement failure (400, code = SettlementError value)
    """
    lines = _parse_lines(payload, allow_price_override=is_manager(cashier))
    discount = _parse_discount(payload)

    single = payload.get("payment")
    split = payload.get("split_payments")
    if single and split:
        raise ValidationError("Send either payment or split_payments, not both")
    if not single and not split:
        raise ValidationError("payment or split_payments is required")

    split_entries = _parse_split_payments(split) if split else None
    if single:
        if not isinstance(single, dict):
            raise ValidationError("payment must be an object with method and amount_paid")
        method = parse_payment_method(single.get("method"))
        if method is None:
            raise ValidationError("payment.method is not a supported payment method")

    customer = {
        "customer_name": clean_str(payload.get("customer_name"), "customer_name"),
        "customer_email": clean_str(payload.get("customer_email"), "customer_email"),
        "customer_phone": clean_str(payload.get("customer_phone"), "customer_phone", max_length=32),
        "notes": clean_str(payload.get("notes"), "notes", max_length=5000),
    }

    def _op():
        items = build_cart(lines, lock=True)

        shortages = check_stock(items)
        if shortages:
            raise SaleError("Insufficient stock", details={"items": shortages}, status_code=409)

        totals, _ = _price_cart(items, discount)

        if split_entries is not None:
            validation = validate_split_payment(split_entries, totals.total)
            if not validation.valid:
                raise _settlement_failure(validation)
            amount_paid = split_tendered_total(split_entries)
            payment_method = "SPLIT"
            payment_rows = [(entry.method.value, round2(entry.amount), None) for entry in split_entries]
        else:
            if single.get("amount_paid") is None:
                if method is PaymentMethod.CASH:
                    raise ValidationError("payment.amount_paid is required for cash")
                amount_paid = totals.total
            else:
                amount_paid = parse_amount(single["amount_paid"], "payment.amount_paid")

            validation = validate_single_payment(amount_paid, totals.total, method)
            if not validation.valid:
                raise _settlement_failure(validation)
            payment_method = method.value
            payment_rows = [(method.value, amount_paid, clean_str(single.get("reference_number"), "reference_number", max_length=64))]

        sale = Sale(
            transaction_number=generate_transaction_number(),
            cashier_user_id=cashier.id,
            subtotal=totals.subtotal,
            discount_amount=totals.discount,
            total_amount=totals.total,
            amount_paid=amount_paid,
            change_amount=compute_change(amount_paid, totals.total),
            payment_method=payment_method,
            payment_status="PAID",
            discount_kind=discount[0].value if discount else None,
            discount_value=discount[1] if discount else None,
            created_at=utcnow(),
            **customer,
        )
        db.session.add(sale)
        db.session.flush()

        products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_([i.id for i in items]))}
        for item in items:
            db.session.add(SaleLine(
                sale_id=sale.id,
                product_id=item.id,
                sku=item.sku,
                name=item.name,
                quantity=item.quantity,
                unit_price=round2(item.unit_price),
                line_total=item.line_total,
            ))
            product = products[item.id]
            product.stock = product.stock - item.quantity
            product.updated_at = utcnow()

        for method_value, amount, reference in payment_rows:
            db.session.add(SalePayment(
                sale_id=sale.id,
                method=method_value,
                amount=amount,
                reference_number=reference,
            ))

        db.session.commit()
        return sale

    try:
        return run_with_retry(_op, label="Checkout")
    except (SaleError, ValidationError):
        db.session.rollback()
        raise


# =============================================================================
# QUERIES
# =============================================================================

def _filtered_sales_query(
    actor: User,
    cashier_user_id: int | None = None,
    payment_method: str | None = None,
    start: str | None = None,
    end: str | None = None,
):
    query = db.session.query(Sale)

    # Staff only ever see their own sales
    if not is_manager(actor):
        query = query.filter(Sale.cashier_user_id == actor.id)
    elif cashier_user_id is not None:
        query = query.filter(Sale.cashier_user_id == cashier_user_id)

    if payment_method:
        if payment_method.strip().upper() == "SPLIT":
            query = query.filter(Sale.payment_method == "SPLIT")
        else:
            method = parse_payment_method(payment_method)
            if method is None:
                raise ValidationError("Unknown payment_method filter")
            query = query.filter(Sale.payment_method == method.value)

    try:
        start_dt = parse_iso_datetime(start)
        end_dt = parse_iso_datetime(end)
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 dates")
    if start_dt:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.created_at <= end_dt)
    return query


def list_sales(actor: User, page: int | None = None, per_page: int | None = None, **filters) -> dict:
    query = _filtered_sales_query(actor, **filters).order_by(Sale.created_at.desc(), Sale.id.desc())

    per_page = min(per_page or 20, 100)
    page = max(page or 1, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    sales = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [s.to_dict() for s in sales],
        "count": len(sales),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_sale(sale_id: int, actor: User) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale or (not is_manager(actor) and sale.cashier_user_id != actor.id):
        raise SaleError("Sale not found", status_code=404)
    return sale


def sales_stats(actor: User, start: str | None = None, end: str | None = None) -> dict:
    """Count, revenue and average order value, overall and per payment method."""
    sales = _filtered_sales_query(actor, start=start, end=end).all()

    revenue = ZERO
    discounts = ZERO
    by_method: dict[str, dict] = {}
    for sale in sales:
        revenue = round2(revenue + sale.total_amount)
        discounts = round2(discounts + sale.discount_amount)
        bucket = by_method.setdefault(sale.payment_method, {"count": 0, "revenue": ZERO})
        bucket["count"] += 1
        bucket["revenue"] = round2(bucket["revenue"] + sale.total_amount)

    count = len(sales)
    average = round2(revenue / Decimal(count)) if count else ZERO

    return {
        "count": count,
        "revenue": str(revenue),
        "discounts": str(discounts),
        "average_order_value": str(average),
        "by_payment_method": {
            method: {"count": bucket["count"], "revenue": str(bucket["revenue"])}
            for method, bucket in sorted(by_method.items())
        },
    }

# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/retailpos/routes/sales.py
"""
Checkout and sales history routes.

SECURITY:
- Any approved role may quote and sell
- Price overrides on cart lines: ADMIN or MANAGER only
- STAFF only ever see their own sales; stats are ADMIN/MANAGER

Settlement failures answer 400 with the settlement error code;
insufficient stock answers 409 with the short lines, and so does a sale
that keeps losing a stock race to another register.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import cached_response, rate_limited, require_access, require_auth
from ..services import sales_service
from ..services.sales_service import SaleError
from ..validation import ConflictError, ValidationError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_error(e: SaleError):
    body = {"error": str(e)}
    if e.code:
        body["code"] = e.code
    if e.details:
        body["details"] = e.details
    return jsonify(body), e.status_code


@sales_bp.post("/quote")
@rate_limited("API")
@require_auth
@require_access()
def quote_route():
    """Price a cart without recording anything."""
    payload = request.get_json(silent=True) or {}

    try:
        return jsonify(sales_service.quote(payload, g.current_user)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SaleError as e:
        return _sale_error(e)


@sales_bp.post("")
@rate_limited("API")
@require_auth
@require_access()
@cached_response("sales")
def create_sale_route():
    """
    Check out a cart.

    Body:
    {
        "items": [{"product_id": 1, "quantity": 2, "unit_price": "optional override"}],
        "discount": {"kind": "PERCENTAGE" | "FIXED", "value": "10"},
        "payment": {"method": "CASH", "amount_paid": "100.00"}
          or
        "split_payments": [{"method": "CARD", "amount": "50.00"}, ...],
        "customer_name": "...", "customer_email": "...", "customer_phone": "...",
        "notes": "..."
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        sale = sales_service.checkout(payload, g.current_user)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SaleError as e:
        return _sale_error(e)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Sale %s recorded by user %s", sale.transaction_number, g.current_user.id)
    return jsonify({"sale": sale.to_dict(include_lines=True)}), 201


@sales_bp.get("")
@rate_limited("DATA")
@require_auth
@require_access()
@cached_response("sales", per_user=True)
def list_sales_route():
    """
    List sales, newest first.

    Query params: page, per_page, payment_method, cashier_user_id
    (managers only), start, end (ISO-8601)
    """
    try:
        result = sales_service.list_sales(
            g.current_user,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
            cashier_user_id=request.args.get("cashier_user_id", type=int),
            payment_method=request.args.get("payment_method"),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result)


@sales_bp.get("/stats")
@rate_limited("DATA")
@require_auth
@require_access("ADMIN", "MANAGER")
@cached_response("sales")
def sales_stats_route():
    try:
        stats = sales_service.sales_stats(
            g.current_user,
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(stats)


@sales_bp.get("/<int:sale_id>")
@rate_limited("DATA")
@require_auth
@require_access()
@cached_response("sales", per_user=True)
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id, g.current_user)
    except SaleError as e:
        return _sale_error(e)
    return jsonify({"sale": sale.to_dict(include_lines=True)})

# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/retailpos/routes/products.py
"""
Product catalog routes.

SECURITY: All routes require an approved, active user.
- Read operations: any role
- Write operations and stock adjustments: ADMIN or MANAGER

Reads are served through the response cache (products / categories
presets); writes invalidate it.
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import cached_response, rate_limited, require_access, require_auth
from ..services import products_service
from ..services.products_service import ProductError
from ..validation import ConflictError, ValidationError, parse_bool

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _handle(fn, success_status: int = 200):
    try:
        return fn(), success_status
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ProductError as e:
        return {"error": str(e)}, e.status_code


@products_bp.get("")
@rate_limited("DATA")
@require_auth
@require_access()
@cached_response("products")
def list_products_route():
    """
    List products.

    Query params:
    - search: matches name, SKU or barcode
    - category_id: int
    - low_stock: true to only return products at or below min_stock
    - include_archived: true to include archived products
    - page / per_page: pagination (per_page default 20, max 100)
    """
    try:
        low_stock = parse_bool(request.args.get("low_stock", "false"), "low_stock")
        include_archived = parse_bool(request.args.get("include_archived", "false"), "include_archived")
    except ValidationError as e:
        return {"error": str(e)}, 400

    return products_service.list_products(
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        low_stock=low_stock,
        include_archived=include_archived,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/<int:product_id>")
@rate_limited("DATA")
@require_auth
@require_access()
@cached_response("products")
def get_product_route(product_id: int):
    return _handle(lambda: products_service.get_product(product_id).to_dict())


@products_bp.post("")
@rate_limited("API")
@require_auth
@require_access("ADMIN", "MANAGER")
@cached_response("products")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    return _handle(lambda: products_service.create_product(payload).to_dict(), 201)


@products_bp.put("/<int:product_id>")
@rate_limited("API")
@require_auth
@require_access("ADMIN", "MANAGER")
@cached_response("products")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    return _handle(lambda: products_service.update_product(product_id, payload).to_dict())


@products_bp.delete("/<int:product_id>")
@rate_limited("API")
@require_auth
@require_access("ADMIN", "MANAGER")
@cached_response("products")
def archive_product_route(product_id: int):
    """Archive (soft-delete) a product."""
    return _handle(lambda: products_service.archive_product(product_id).to_dict())


@products_bp.post("/<int:product_id>/stock")
@rate_limited("API")
@require_auth
@require_access("ADMIN", "MANAGER")
@cached_response("products")
def adjust_stock_route(product_id: int):
    """
    Adjust on-hand stock.

    Body: {"quantity_delta": int (signed, non-zero), "reason": str}
    """
    payload = request.get_json(silent=True) or {}

    def _op():
        adjustment = products_service.adjust_stock(
            product_id,
            payload.get("quantity_delta"),
            payload.get("reason"),
            actor_user_id=g.current_user.id,
        )
        return {
            "adjustment": adjustment.to_dict(),
            "product": adjustment.product.to_dict(),
        }

    return _handle(_op, 201)


@products_bp.get("/categories")
@rate_limited("DATA")
@require_auth
@require_access()
@cached_response("categories")
def list_categories_route():
    categories = products_service.list_categories()
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}


@products_bp.post("/categories")
@rate_limited("API")
@require_auth
@require_access("ADMIN", "MANAGER")
@cached_response("categories")
def create_category_route():
    payload = request.get_json(silent=True) or {}
    return _handle(lambda: products_service.create_category(payload).to_dict(), 201)

# Overview: Catalog operations for products, categories and manual stock adjustments.

from __future__ import annotations

from ..extensions import db
from ..models import Category, Product, StockAdjustment
from ..validation import (
    ConflictError,
    ValidationError,
    clean_str,
    parse_amount,
    parse_bool,
    parse_int,
    require_fields,
)
from .concurrency import lock_for_update, run_with_retry
from retailpos.time_utils import utcnow


class ProductError(Exception):
    """Raised for catalog lookups and stock rules."""
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "description", "barcode", "category_id",
    "price", "cost", "min_stock",
}


def _apply_product_patch(product: Product, payload: dict) -> None:
    for key, value in payload.items():
        if key not in PRODUCT_MUTABLE_FIELDS:
            continue

        if key == "sku":
            product.sku = clean_str(value, "sku", max_length=64, required=True)
        elif key == "name":
            product.name = clean_str(value, "name", required=True)
        elif key == "description":
            product.description = clean_str(value, "description", max_length=5000)
        elif key == "barcode":
            product.barcode = clean_str(value, "barcode", max_length=64)
        elif key == "category_id":
            if value is None:
                product.category_id = None
            else:
                category_id = parse_int(value, "category_id", minimum=1)
                if not db.session.get(Category, category_id):
                    raise ValidationError("Category not found")
                product.category_id = category_id
        elif key == "price":
            product.price = parse_amount(value, "price")
        elif key == "cost":
            product.cost = parse_amount(value, "cost") if value is not None else None
        elif key == "min_stock":
            product.min_stock = parse_int(value, "min_stock", minimum=0)


def _ensure_unique(product: Product) -> None:
    clash = db.session.query(Product).filter(Product.sku == product.sku, Product.id != product.id).first()
    if clash:
        raise ConflictError("SKU already exists")
    if product.barcode:
        clash = db.session.query(Product).filter(
            Product.barcode == product.barcode, Product.id != product.id
        ).first()
        if clash:
            raise ConflictError("Barcode already exists")


def list_products(
    search: str | None = None,
    category_id: int | None = None,
    low_stock: bool = False,
    include_archived: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with filters and optional pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    query = db.session.query(Product)

    if not include_archived:
        query = query.filter(Product.is_archived.is_(False))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if low_stock:
        query = query.filter(Product.stock <= Product.min_stock)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Product.name.ilike(like),
            Product.sku.ilike(like),
            Product.barcode.ilike(like),
        ))

    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductError("Product not found", status_code=404)
    return product


def create_product(payload: dict) -> Product:
    """
    Create a product from a client payload.

    Raises:
        ValidationError: missing/invalid fields
        ConflictError: duplicate SKU or barcode
    """
    require_fields(payload, "sku", "name", "price")

    product = Product(stock=0, min_stock=0, is_archived=False)
    _apply_product_patch(product, payload)

    if "stock" in payload:
        product.stock = parse_int(payload["stock"], "stock", minimum=0)

    _ensure_unique(product)
    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, payload: dict) -> Product:
    """
    Patch product fields. Stock is not writable here; use adjust_stock.
    """
    if "stock" in payload:
        raise ValidationError("stock cannot be updated directly; use a stock adjustment")

    def _op():
        product = get_product(product_id)
        _apply_product_patch(product, payload)
        _ensure_unique(product)
        product.updated_at = utcnow()
        db.session.commit()
        return product

    return run_with_retry(_op, label=f"Product {product_id} update")


def archive_product(product_id: int) -> Product:
    """Soft-delete: archived products disappear from the POS grid but keep their sales history."""
    product = get_product(product_id)
    product.is_archived = True
    product.updated_at = utcnow()
    db.session.commit()
    return product


def adjust_stock(product_id: int, quantity_delta, reason: str, actor_user_id: int) -> StockAdjustment:
    """
    Apply a signed correction to on-hand stock and record it.

    Raises:
        ValidationError: zero delta or missing reason
        ProductError: unknown product, or the result would go negative
    """
    delta = parse_int(quantity_delta, "quantity_delta")
    if delta == 0:
        raise ValidationError("quantity_delta must not be zero")
    reason = clean_str(reason, "reason", required=True)

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise ProductError("Product not found", status_code=404)

        previous = product.stock
        new_stock = previous + delta
        if new_stock < 0:
            raise ProductError(
                f"Adjustment would make stock negative (on hand {previous}, delta {delta})",
                status_code=409,
            )

        product.stock = new_stock
        product.updated_at = utcnow()

        adjustment = StockAdjustment(
            product_id=product.id,
            quantity_delta=delta,
            previous_stock=previous,
            new_stock=new_stock,
            reason=reason,
            created_by_user_id=actor_user_id,
        )
        db.session.add(adjustment)
        db.session.commit()
        return adjustment

    return run_with_retry(_op, label=f"Stock adjustment on product {product_id}")


def list_categories(include_inactive: bool = False) -> list[Category]:
    query = db.session.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    return query.order_by(Category.name.asc()).all()


def create_category(payload: dict) -> Category:
    name = clean_str(payload.get("name"), "name", max_length=120, required=True)
    if db.session.query(Category).filter(db.func.lower(Category.name) == name.lower()).first():
        raise ConflictError("Category already exists")

    category = Category(
        name=name,
        description=clean_str(payload.get("description"), "description", max_length=5000),
        is_active=parse_bool(payload.get("is_active", True), "is_active"),
    )
    db.session.add(category)
    db.session.commit()
    return category

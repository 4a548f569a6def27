from __future__ import annotations

from ..extensions import db
from retailpos.money import format_money
from retailpos.time_utils import to_utc_z


class Sale(db.Model):
    """
    Settled sales transaction.

    WHY: A sale is written once, after the settlement calculator has
    accepted the tender. Amounts are stored as computed; they are never
    edited afterwards.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_cashier_created", "cashier_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "TXN-20250101-1A2B3C")
    transaction_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    cashier_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False)
    change_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # CASH, CARD, BANK_TRANSFER, MOBILE_MONEY or SPLIT
    payment_method = db.Column(db.String(16), nullable=False, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="PAID")

    discount_kind = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Numeric(12, 2), nullable=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    cashier = db.relationship("User", backref=db.backref("sales", lazy=True))

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "cashier_user_id": self.cashier_user_id,
            "cashier_name": self.cashier.full_name if self.cashier else None,
            "subtotal": format_money(self.subtotal),
            "discount": format_money(self.discount_amount),
            "total": format_money(self.total_amount),
            "amount_paid": format_money(self.amount_paid),
            "change": format_money(self.change_amount),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "discount_kind": self.discount_kind,
            "discount_value": format_money(self.discount_value) if self.discount_value is not None else None,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class SaleLine(db.Model):
    """Individual line items on a sale, with price captured at sale time."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # Snapshot of the product at sale time
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True, order_by="SaleLine.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": format_money(self.unit_price),
            "line_total": format_money(self.line_total),
        }


class SalePayment(db.Model):
    """
    Tender breakdown for a sale: one row for a single payment, one row per
    instrument for a split payment.
    """
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    method = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reference_number = db.Column(db.String(64), nullable=True)  # Card auth code, transfer ref

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True, order_by="SalePayment.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount": format_money(self.amount),
            "reference_number": self.reference_number,
        }

from __future__ import annotations

from ..extensions import db
from ..money import format_cents
from ..time_utils import to_utc_z, utcnow


TRANSACTION_STATUSES = ("pending", "completed", "cancelled")


class Transaction(db.Model):
    """
    Sale transaction header.

    Amounts are stored in cents; final_amount_cents is always
    total_amount_cents - discount_amount_cents at the moment either changes.
    Status changes across the completed/cancelled boundary move stock
    (see transaction_service.TRANSITION_EFFECTS).
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint("final_amount_cents >= 0", name="ck_transactions_final_non_negative"),
        db.Index("ix_transactions_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_amount_cents = db.Column(db.BigInteger, nullable=False)
    discount_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    final_amount_cents = db.Column(db.BigInteger, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    payment_method = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    customer = db.relationship("Customer")
    user = db.relationship("User")

    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        order_by="TransactionItem.id",
    )

    def to_dict(self, include_items: bool = False, include_details: bool = False) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "total_amount": format_cents(self.total_amount_cents),
            "discount_amount": format_cents(self.discount_amount_cents),
            "final_amount": format_cents(self.final_amount_cents),
            "status": self.status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict(include_product=include_details) for item in self.items]
        if include_details:
            data["customer"] = self.customer.to_dict() if self.customer is not None else None
            data["user"] = {
                "id": self.user.id,
                "username": self.user.username,
                "email": self.user.email,
                "role": self.user.role,
            }
        return data


class TransactionItem(db.Model):
    """Line item; written once together with its transaction."""
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.BigInteger, nullable=False)
    total_price_cents = db.Column(db.BigInteger, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self, include_product: bool = False) -> dict:
        data = {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": format_cents(self.unit_price_cents),
            "total_price": format_cents(self.total_price_cents),
            "created_at": to_utc_z(self.created_at),
        }
        if include_product:
            data["product"] = {
                "id": self.product.id,
                "name": self.product.name,
                "description": self.product.description,
                "price": format_cents(self.product.price_cents),
                "sku": self.product.sku,
            }
        return data

from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from ..money import format_cents
from ..time_utils import to_utc_z, utcnow


MOVEMENT_TYPES = ("in", "out", "adjustment")


class Product(db.Model):
    """
    Product master data plus the on-hand counter.

    STOCK OWNERSHIP:
    stock_quantity is the single source of truth for what is on hand. After
    creation it is written only by stock_ledger_service, in the same atomic
    unit as the InventoryMovement that explains the change. version_id turns
    a lost update on the counter into a StaleDataError that gets retried.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_stock", "stock_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(128), nullable=True, index=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.BigInteger, nullable=False, default=0)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    # Quantity seeded at creation; the ledger explains everything after it
    opening_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __init__(self, **kwargs):
        kwargs.setdefault("opening_stock", kwargs.get("stock_quantity") or 0)
        super().__init__(**kwargs)

    @validates("stock_quantity")
    def _validate_stock_quantity(self, key, value):
        if value is not None and value < 0:
            raise ValueError("stock_quantity cannot be negative")
        return value

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price": format_cents(self.price_cents),
            "stock_quantity": self.stock_quantity,
            "opening_stock": self.opening_stock,
            "min_stock_level": self.min_stock_level,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only stock ledger entry.

    quantity is the signed delta actually applied to Product.stock_quantity:
    positive for 'in', negative for 'out', caller-signed for 'adjustment'.
    reference_type/reference_id describe the cause and are not foreign keys.
    Rows are never updated or deleted.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint("quantity <> 0", name="ck_inventory_movements_quantity_non_zero"),
        db.Index("ix_inventory_movements_product_created", "product_id", "created_at"),
        db.Index("ix_inventory_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(64), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    product = db.relationship("Product")

    def __repr__(self) -> str:
        return (
            f"<InventoryMovement id={self.id} product_id={self.product_id} "
            f"type={self.movement_type} quantity={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }

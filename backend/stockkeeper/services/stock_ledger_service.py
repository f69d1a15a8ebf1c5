# Overview: Service-layer operations for the stock ledger; the only code path that changes Product.stock_quantity.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import InsufficientStockError, InvalidInputError, NotFoundError
from ..extensions import db
from ..models import InventoryMovement, Product, MOVEMENT_TYPES
from ..time_utils import coerce_datetime
from ..validation import (
    MAX_QUANTITY,
    MAX_STOCK_QUANTITY,
    optional_int,
    optional_text,
    page_bounds,
    require_int,
)
from .concurrency import atomic, lock_for_update, run_with_retry
"""
Stock ledger invariants (authoritative)

- stock_quantity >= 0 after every committed unit of work.
- Every change to stock_quantity is paired with exactly one InventoryMovement
  row written in the same atomic unit, and every movement row corresponds to
  exactly one applied change. Seeding a product's opening quantity at
  creation is the only exception.
- InventoryMovement.quantity stores the signed delta that was applied:
    in          -> +quantity (quantity must be positive)
    out         -> -abs(quantity)
    adjustment  -> quantity as given by the caller (either sign)
  so SUM(quantity) over a product's movements equals stock_quantity minus
  its opening quantity.
- The ledger is append-only: rows are never updated or deleted.
- Check-then-act happens on a locked product row (FOR UPDATE, or the SQLite
  write lock taken by atomic()); the version_id column catches anything else.
"""


MOVEMENT_ORDER_COLUMNS = {
    "created_at": InventoryMovement.created_at,
    "quantity": InventoryMovement.quantity,
}


def _get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("product", product_id)
    return product


def lock_products(product_ids) -> dict[int, Product]:
    """
    Lock every existing product in ascending id order.

    Multi-item operations call this first so two sales touching the same
    products always acquire row locks in the same order. Missing ids are
    simply absent from the result; callers report them in their own order.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    query = lock_for_update(
        db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)
    )
    return {product.id: product for product in query.all()}


def _validate_quantity(quantity) -> int:
    quantity = require_int(quantity, "quantity")
    if quantity == 0:
        raise InvalidInputError("quantity must be non-zero", field="quantity")
    if abs(quantity) > MAX_QUANTITY:
        raise InvalidInputError(f"quantity cannot exceed {MAX_QUANTITY}", field="quantity")
    return quantity


def _validate_reference(reference_type, reference_id, notes) -> None:
    optional_text(reference_type, "reference_type", max_length=64)
    optional_int(reference_id, "reference_id")
    optional_text(notes, "notes")


def compute_delta(movement_type: str, quantity: int) -> int:
    """Signed change a movement applies to stock_quantity."""
    if movement_type not in MOVEMENT_TYPES:
        raise InvalidInputError(
            f"movement_type must be one of {', '.join(MOVEMENT_TYPES)}",
            field="movement_type",
        )
    quantity = _validate_quantity(quantity)

    if movement_type == "in":
        if quantity < 0:
            raise InvalidInputError("quantity must be positive for 'in' movements", field="quantity")
        return quantity
    if movement_type == "out":
        return -abs(quantity)
    return quantity


def apply_movement(
    *,
    product: Product,
    movement_type: str,
    quantity: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
) -> InventoryMovement:
    """Core movement logic without locking, retry, or commit.

    The caller owns the atomic unit and must hold the lock on `product`.
    Raises InsufficientStockError without touching anything when the
    resulting stock would be negative.
    """
    delta = compute_delta(movement_type, quantity)

    current = product.stock_quantity
    new_stock = current + delta
    if new_stock < 0:
        raise InsufficientStockError(
            product_id=product.id,
            current_stock=current,
            requested_delta=delta,
            product_name=product.name,
        )
    if new_stock > MAX_STOCK_QUANTITY:
        raise InvalidInputError(
            f"stock_quantity cannot exceed {MAX_STOCK_QUANTITY}",
            field="quantity",
            details={"product_id": product.id, "current_stock": current, "requested_delta": delta},
        )

    movement = InventoryMovement(
        product_id=product.id,
        movement_type=movement_type,
        quantity=delta,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
    )
    db.session.add(movement)
    product.stock_quantity = new_stock
    db.session.flush()
    return movement


def record_movement(
    product_id: int,
    movement_type: str,
    quantity: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
) -> InventoryMovement:
    """
    Record one stock movement and apply it to the product, atomically.

    Fails with NotFoundError for an unknown product, InvalidInputError for a
    bad type, quantity or reference field, and InsufficientStockError when stock would go
    negative. On failure nothing is written.
    """
    # Validate before opening the write transaction
    compute_delta(movement_type, quantity)
    require_int(product_id, "product_id")
    _validate_reference(reference_type, reference_id, notes)

    def _op():
        with atomic():
            product = _get_product(product_id, lock=True)
            movement = apply_movement(
                product=product,
                movement_type=movement_type,
                quantity=quantity,
                reference_type=reference_type,
                reference_id=reference_id,
                notes=notes,
            )
            stock_after = product.stock_quantity
        current_app.logger.info(
            "Recorded %s movement id=%s product_id=%s delta=%s stock=%s",
            movement.movement_type, movement.id, product_id, movement.quantity, stock_after,
        )
        return movement

    return run_with_retry(_op)


def adjust_inventory(product_id: int, quantity: int, notes: str | None = None) -> InventoryMovement:
    """Manual stock correction; quantity is signed."""
    return record_movement(
        product_id,
        "adjustment",
        quantity,
        reference_type="manual",
        reference_id=None,
        notes=notes,
    )


def get_stock_level(product_id: int) -> int:
    return _get_product(product_id).stock_quantity


def ledger_balance(product_id: int) -> int:
    """Sum of all deltas recorded for a product."""
    _get_product(product_id)
    total = db.session.query(
        func.coalesce(func.sum(InventoryMovement.quantity), 0)
    ).filter(InventoryMovement.product_id == product_id).scalar()
    return int(total or 0)


def stock_consistency(product_id: int) -> dict:
    """stock_quantity must equal opening_stock plus the ledger balance."""
    product = _get_product(product_id)
    balance = ledger_balance(product_id)
    expected = product.opening_stock + balance
    return {
        "product_id": product.id,
        "stock_quantity": product.stock_quantity,
        "opening_stock": product.opening_stock,
        "ledger_balance": balance,
        "consistent": expected == product.stock_quantity,
    }


def _page_bounds(limit, offset) -> tuple[int, int]:
    return page_bounds(
        limit,
        offset,
        default_limit=current_app.config.get("MOVEMENT_PAGE_LIMIT_DEFAULT", 100),
        max_limit=current_app.config.get("MOVEMENT_PAGE_LIMIT_MAX", 1000),
    )


def _filter_movements(
    query,
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    start_date=None,
    end_date=None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    limit: int | None = None,
    offset: int = 0,
    order_by: str = "created_at",
    order_direction: str = "desc",
):
    if movement_type is not None and movement_type not in MOVEMENT_TYPES:
        raise InvalidInputError(
            f"movement_type must be one of {', '.join(MOVEMENT_TYPES)}",
            field="movement_type",
        )
    if order_by not in MOVEMENT_ORDER_COLUMNS:
        raise InvalidInputError("order_by must be created_at or quantity", field="order_by")
    if order_direction not in ("asc", "desc"):
        raise InvalidInputError("order_direction must be asc or desc", field="order_direction")

    optional_int(product_id, "product_id")
    optional_int(reference_id, "reference_id")
    start_dt = coerce_datetime(start_date, "start_date")
    end_dt = coerce_datetime(end_date, "end_date")
    limit, offset = _page_bounds(limit, offset)

    if product_id is not None:
        query = query.filter(InventoryMovement.product_id == product_id)
    if movement_type is not None:
        query = query.filter(InventoryMovement.movement_type == movement_type)
    # Date range is inclusive on both ends
    if start_dt is not None:
        query = query.filter(InventoryMovement.created_at >= start_dt)
    if end_dt is not None:
        query = query.filter(InventoryMovement.created_at <= end_dt)
    if reference_type is not None:
        query = query.filter(InventoryMovement.reference_type == reference_type)
    if reference_id is not None:
        query = query.filter(InventoryMovement.reference_id == reference_id)

    column = MOVEMENT_ORDER_COLUMNS[order_by]
    if order_direction == "desc":
        query = query.order_by(column.desc(), InventoryMovement.id.desc())
    else:
        query = query.order_by(column.asc(), InventoryMovement.id.asc())

    return query.limit(limit).offset(offset)


def list_movements(**filters) -> list[InventoryMovement]:
    """
    List ledger entries.

    Filters: product_id, movement_type, start_date, end_date (inclusive),
    reference_type, reference_id. Paging: limit (default 100), offset.
    Ordering: order_by created_at|quantity, order_direction desc|asc, with
    id as the tie-breaker so repeated reads return the same sequence.
    """
    query = db.session.query(InventoryMovement)
    return _filter_movements(query, **filters).all()


def list_movements_by_product(product_id: int) -> list[InventoryMovement]:
    """Every movement of one product, newest first."""
    _get_product(product_id)
    return (
        db.session.query(InventoryMovement)
        .filter(InventoryMovement.product_id == product_id)
        .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
        .all()
    )


def list_movements_with_product(**filters) -> list[dict]:
    """Same as list_movements, each row carrying the product name."""
    query = db.session.query(InventoryMovement, Product.name).join(
        Product, InventoryMovement.product_id == Product.id
    )
    rows = _filter_movements(query, **filters).all()

    result = []
    for movement, product_name in rows:
        data = movement.to_dict()
        data["product_name"] = product_name
        result.append(data)
    return result

"""
Sale transaction service - creation and status lifecycle

WHY: A sale and the stock it consumes are one unit of work. Creating a sale,
or moving it across the completed/cancelled boundary, writes the
transaction rows, the ledger entries and the stock counters together or not
at all.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import InsufficientStockError, InvalidInputError, NotFoundError
from ..extensions import db
from ..models import Customer, Product, Transaction, TransactionItem, User, TRANSACTION_STATUSES
from ..money import MAX_AMOUNT_CENTS, to_cents
from ..time_utils import coerce_datetime, utcnow
from ..validation import MAX_QUANTITY, optional_int, optional_text, page_bounds, require_int
from .concurrency import atomic, lock_for_update, run_with_retry
from .stock_ledger_service import apply_movement, lock_products


@dataclass(frozen=True)
class TransitionEffect:
    movement_type: str
    reference_type: str
    note_template: str


# Exhaustive: any (from, to) pair not listed moves no stock.
# pending -> completed deliberately does NOT consume stock; only sales created
# through create_sale_transaction, or re-completed after a cancellation, do.
TRANSITION_EFFECTS = {
    ("completed", "cancelled"): TransitionEffect(
        movement_type="in",
        reference_type="transaction_cancellation",
        note_template="Stock restored from cancelled transaction {id}",
    ),
    ("cancelled", "completed"): TransitionEffect(
        movement_type="out",
        reference_type="transaction_completion",
        note_template="Stock reduced for completed transaction {id}",
    ),
}

UPDATABLE_FIELDS = frozenset(
    {"customer_id", "total_amount", "discount_amount", "status", "payment_method", "notes"}
)


@dataclass(frozen=True)
class SaleItem:
    product_id: int
    quantity: int
    unit_price_cents: int

    @property
    def total_price_cents(self) -> int:
        return self.quantity * self.unit_price_cents


def plan_transition(from_status: str, to_status: str) -> TransitionEffect | None:
    """Inventory effect of a status change, or None when stock is untouched."""
    if from_status == to_status:
        return None
    return TRANSITION_EFFECTS.get((from_status, to_status))


def _normalize_items(items) -> list[SaleItem]:
    if not items:
        raise InvalidInputError("items must contain at least one item", field="items")

    normalized = []
    for index, raw in enumerate(items):
        if isinstance(raw, SaleItem):
            item = raw
        elif isinstance(raw, dict):
            for key in ("product_id", "quantity", "unit_price"):
                if key not in raw:
                    raise InvalidInputError(f"items[{index}].{key} is required", field=f"items[{index}].{key}")
            item = SaleItem(
                product_id=require_int(raw["product_id"], f"items[{index}].product_id"),
                quantity=require_int(raw["quantity"], f"items[{index}].quantity"),
                unit_price_cents=to_cents(raw["unit_price"], f"items[{index}].unit_price"),
            )
        else:
            raise InvalidInputError(f"items[{index}] must be an object", field=f"items[{index}]")

        if item.quantity <= 0:
            raise InvalidInputError(f"items[{index}].quantity must be positive", field=f"items[{index}].quantity")
        if item.quantity > MAX_QUANTITY:
            raise InvalidInputError(
                f"items[{index}].quantity cannot exceed {MAX_QUANTITY}", field=f"items[{index}].quantity"
            )
        if item.unit_price_cents <= 0:
            raise InvalidInputError(f"items[{index}].unit_price must be positive", field=f"items[{index}].unit_price")
        if item.total_price_cents > MAX_AMOUNT_CENTS:
            raise InvalidInputError(
                f"items[{index}] line total is out of range", field=f"items[{index}].quantity"
            )
        normalized.append(item)
    return normalized


def _ensure_user(user_id: int) -> None:
    if db.session.get(User, user_id) is None:
        raise NotFoundError("user", user_id)


def _ensure_customer(customer_id: int | None) -> None:
    if customer_id is not None and db.session.get(Customer, customer_id) is None:
        raise NotFoundError("customer", customer_id)


def _ensure_available(product: Product, quantity: int, transaction_id: int) -> None:
    if product.stock_quantity < quantity:
        raise InsufficientStockError(
            product_id=product.id,
            current_stock=product.stock_quantity,
            requested_delta=-quantity,
            product_name=product.name,
            transaction_id=transaction_id,
        )


def _final_amount_cents(total_cents: int, discount_cents: int) -> int:
    final = total_cents - discount_cents
    if final < 0:
        raise InvalidInputError(
            "discount_amount cannot exceed total_amount",
            field="discount_amount",
            details={"total_amount_cents": total_cents, "discount_amount_cents": discount_cents},
        )
    return final


def create_sale_transaction(
    *,
    user_id: int,
    items,
    total_amount,
    discount_amount=0,
    customer_id: int | None = None,
    payment_method: str | None = None,
    notes: str | None = None,
) -> Transaction:
    """
    Create a completed sale and consume its stock.

    total_amount is taken from the caller as-is (not summed from items).
    Items are processed in the given order; the first unknown product or
    short item aborts everything, leaving no transaction, item or movement
    rows and no stock change.
    """
    user_id = require_int(user_id, "user_id")
    if customer_id is not None:
        customer_id = require_int(customer_id, "customer_id")
    sale_items = _normalize_items(items)

    total_cents = to_cents(total_amount, "total_amount")
    if total_cents <= 0:
        raise InvalidInputError("total_amount must be positive", field="total_amount")
    discount_cents = to_cents(discount_amount, "discount_amount")
    if discount_cents < 0:
        raise InvalidInputError("discount_amount cannot be negative", field="discount_amount")
    final_cents = _final_amount_cents(total_cents, discount_cents)
    payment_method = optional_text(payment_method, "payment_method", max_length=64)
    notes = optional_text(notes, "notes")

    def _op():
        with atomic():
            _ensure_user(user_id)
            _ensure_customer(customer_id)

            products = lock_products(item.product_id for item in sale_items)

            now = utcnow()
            transaction = Transaction(
                customer_id=customer_id,
                user_id=user_id,
                total_amount_cents=total_cents,
                discount_amount_cents=discount_cents,
                final_amount_cents=final_cents,
                status="completed",
                payment_method=payment_method,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            db.session.add(transaction)
            db.session.flush()

            for item in sale_items:
                product = products.get(item.product_id)
                if product is None:
                    raise NotFoundError("product", item.product_id)
                _ensure_available(product, item.quantity, transaction.id)

                db.session.add(TransactionItem(
                    transaction_id=transaction.id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price_cents=item.unit_price_cents,
                    total_price_cents=item.total_price_cents,
                ))
                apply_movement(
                    product=product,
                    movement_type="out",
                    quantity=item.quantity,
                    reference_type="transaction",
                    reference_id=transaction.id,
                    notes=f"Sale via transaction #{transaction.id}",
                )
            transaction_id = transaction.id

        current_app.logger.info(
            "Created sale transaction id=%s items=%d final_amount_cents=%d",
            transaction_id, len(sale_items), final_cents,
        )
        return transaction

    return run_with_retry(_op)


def _apply_transition(transaction: Transaction, from_status: str, to_status: str) -> int:
    """Drive the ledger for one status change. Returns the number of movements written."""
    effect = plan_transition(from_status, to_status)
    if effect is None:
        return 0

    items = (
        db.session.query(TransactionItem)
        .filter_by(transaction_id=transaction.id)
        .order_by(TransactionItem.id)
        .all()
    )
    products = lock_products(item.product_id for item in items)

    for item in items:
        product = products.get(item.product_id)
        if product is None:
            raise NotFoundError("product", item.product_id)
        if effect.movement_type == "out":
            _ensure_available(product, item.quantity, transaction.id)
        apply_movement(
            product=product,
            movement_type=effect.movement_type,
            quantity=item.quantity,
            reference_type=effect.reference_type,
            reference_id=transaction.id,
            notes=effect.note_template.format(id=transaction.id),
        )
    return len(items)


def _validate_patch(patch) -> dict:
    if not isinstance(patch, dict):
        raise InvalidInputError("patch must be an object")

    unknown = sorted(set(patch) - UPDATABLE_FIELDS)
    if unknown:
        raise InvalidInputError(f"Field not allowed: {', '.join(unknown)}", field=unknown[0])

    clean: dict = {}
    if "customer_id" in patch:
        value = patch["customer_id"]
        clean["customer_id"] = None if value is None else require_int(value, "customer_id")
    if "total_amount" in patch:
        cents = to_cents(patch["total_amount"], "total_amount")
        if cents <= 0:
            raise InvalidInputError("total_amount must be positive", field="total_amount")
        clean["total_amount_cents"] = cents
    if "discount_amount" in patch:
        cents = to_cents(patch["discount_amount"], "discount_amount")
        if cents < 0:
            raise InvalidInputError("discount_amount cannot be negative", field="discount_amount")
        clean["discount_amount_cents"] = cents
    if "status" in patch:
        if patch["status"] not in TRANSACTION_STATUSES:
            raise InvalidInputError(
                f"status must be one of {', '.join(TRANSACTION_STATUSES)}", field="status"
            )
        clean["status"] = patch["status"]
    if "payment_method" in patch:
        clean["payment_method"] = optional_text(patch["payment_method"], "payment_method", max_length=64)
    if "notes" in patch:
        clean["notes"] = optional_text(patch["notes"], "notes")
    return clean


def update_transaction(transaction_id: int, patch: dict) -> Transaction:
    """
    Apply a partial update, including status changes.

    A status change that crosses the completed/cancelled boundary moves
    stock first; if that fails the whole update is discarded. final_amount
    is recomputed whenever total_amount or discount_amount is in the patch.
    """
    clean = _validate_patch(patch)

    def _op():
        with atomic():
            transaction = lock_for_update(
                db.session.query(Transaction).filter_by(id=transaction_id)
            ).first()
            if transaction is None:
                raise NotFoundError("transaction", transaction_id)

            if clean.get("customer_id") is not None:
                _ensure_customer(clean["customer_id"])

            from_status = transaction.status
            to_status = clean.get("status", from_status)
            moved = _apply_transition(transaction, from_status, to_status)

            if "total_amount_cents" in clean or "discount_amount_cents" in clean:
                total_cents = clean.get("total_amount_cents", transaction.total_amount_cents)
                discount_cents = clean.get("discount_amount_cents", transaction.discount_amount_cents)
                transaction.final_amount_cents = _final_amount_cents(total_cents, discount_cents)

            for field, value in clean.items():
                setattr(transaction, field, value)
            transaction.updated_at = utcnow()

        if from_status != to_status:
            current_app.logger.info(
                "Transaction id=%s status %s -> %s, %d stock movements",
                transaction_id, from_status, to_status, moved,
            )
        return transaction

    return run_with_retry(_op)


def get_transaction(transaction_id: int) -> Transaction:
    transaction = db.session.get(Transaction, transaction_id)
    if transaction is None:
        raise NotFoundError("transaction", transaction_id)
    return transaction


def get_transaction_details(transaction_id: int) -> dict:
    """Transaction with its customer, operator and each item's product."""
    return get_transaction(transaction_id).to_dict(include_items=True, include_details=True)


def list_transactions(
    *,
    customer_id: int | None = None,
    user_id: int | None = None,
    status: str | None = None,
    start_date=None,
    end_date=None,
    limit: int | None = None,
    offset: int | None = 0,
) -> list[Transaction]:
    """
    Transactions newest first.

    Filters: customer_id, user_id, status, start_date/end_date (inclusive).
    Paging: limit (default 50), offset.
    """
    customer_id = optional_int(customer_id, "customer_id")
    user_id = optional_int(user_id, "user_id")
    if status is not None and status not in TRANSACTION_STATUSES:
        raise InvalidInputError(
            f"status must be one of {', '.join(TRANSACTION_STATUSES)}", field="status"
        )
    start_dt = coerce_datetime(start_date, "start_date")
    end_dt = coerce_datetime(end_date, "end_date")
    limit, offset = page_bounds(
        limit,
        offset,
        default_limit=current_app.config.get("TRANSACTION_PAGE_LIMIT_DEFAULT", 50),
        max_limit=current_app.config.get("TRANSACTION_PAGE_LIMIT_MAX", 1000),
    )

    query = db.session.query(Transaction)
    if customer_id is not None:
        query = query.filter(Transaction.customer_id == customer_id)
    if user_id is not None:
        query = query.filter(Transaction.user_id == user_id)
    if status is not None:
        query = query.filter(Transaction.status == status)
    if start_dt is not None:
        query = query.filter(Transaction.created_at >= start_dt)
    if end_dt is not None:
        query = query.filter(Transaction.created_at <= end_dt)
    return (
        query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )

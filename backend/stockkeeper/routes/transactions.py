# Overview: Flask API routes for sale transactions; parses input and returns JSON responses.

# backend/stockkeeper/routes/transactions.py
"""Sale transaction API routes"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import StockError
from ..services import transaction_service
from . import error_response
from ..validation import PayloadPolicy, coerce_int, coerce_optional_int, validate_payload


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

CREATE_POLICY = PayloadPolicy(
    writable_fields=frozenset({
        "customer_id",
        "user_id",
        "items",
        "total_amount",
        "discount_amount",
        "payment_method",
        "notes",
    }),
    required_on_create=frozenset({"user_id", "items", "total_amount"}),
)

UPDATE_POLICY = PayloadPolicy(writable_fields=transaction_service.UPDATABLE_FIELDS)


def _coerce_items(items):
    if not isinstance(items, list):
        return items
    coerced = []
    for index, item in enumerate(items):
        if isinstance(item, dict):
            item = dict(item)
            for key in ("product_id", "quantity"):
                if key in item:
                    item[key] = coerce_int(item[key], f"items[{index}].{key}")
        coerced.append(item)
    return coerced


@transactions_bp.post("")
def create_transaction_route():
    """
    Create a completed sale and consume stock for every item.

    Any failure leaves no rows behind.
    """
    try:
        data = validate_payload(payload=request.get_json(silent=True), policy=CREATE_POLICY, partial=False)
        transaction = transaction_service.create_sale_transaction(
            user_id=coerce_int(data["user_id"], "user_id"),
            customer_id=coerce_optional_int(data.get("customer_id"), "customer_id"),
            items=_coerce_items(data["items"]),
            total_amount=data["total_amount"],
            discount_amount=data.get("discount_amount", 0),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
        )
        return jsonify({"transaction": transaction.to_dict(include_items=True)}), 201

    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.patch("/<int:transaction_id>")
def update_transaction_route(transaction_id: int):
    """
    Partial update, including status changes.

    completed -> cancelled restores stock; cancelled -> completed consumes it
    again and fails with 409 if any item is short.
    """
    try:
        patch = validate_payload(payload=request.get_json(silent=True), policy=UPDATE_POLICY, partial=True)
        if "customer_id" in patch:
            patch["customer_id"] = coerce_optional_int(patch["customer_id"], "customer_id")
        transaction = transaction_service.update_transaction(transaction_id, patch)
        return jsonify({"transaction": transaction.to_dict(include_items=True)}), 200

    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        details = transaction_service.get_transaction_details(transaction_id)
        return jsonify({"transaction": details}), 200
    except StockError as e:
        return error_response(e)


@transactions_bp.get("")
def list_transactions_route():
    """
    List transactions newest first.

    Query filters: customer_id, user_id, status, start_date, end_date.
    Paging: limit (default 50), offset.
    """
    args = request.args
    try:
        rows = transaction_service.list_transactions(
            customer_id=coerce_optional_int(args.get("customer_id"), "customer_id"),
            user_id=coerce_optional_int(args.get("user_id"), "user_id"),
            status=args.get("status") or None,
            start_date=args.get("start_date") or None,
            end_date=args.get("end_date") or None,
            limit=coerce_optional_int(args.get("limit"), "limit"),
            offset=coerce_optional_int(args.get("offset"), "offset") or 0,
        )
        return jsonify({"transactions": [t.to_dict() for t in rows]}), 200

    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500

# backend/stockkeeper/routes/inventory.py
"""
Inventory movement routes.

Thin adapter over stock_ledger_service: parses JSON/query strings, calls the
service, and maps StockError kinds to HTTP status codes.

Time semantics:
- start_date/end_date accept ISO-8601 datetimes with Z/offsets; normalized to UTC-naive.
- Date range filters are inclusive on both ends.
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import StockError
from ..services import stock_ledger_service
from . import error_response
from ..validation import PayloadPolicy, coerce_int, coerce_optional_int, validate_payload


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

MOVEMENT_POLICY = PayloadPolicy(
    writable_fields=frozenset({"product_id", "movement_type", "quantity", "reference_type", "reference_id", "notes"}),
    required_on_create=frozenset({"product_id", "movement_type", "quantity"}),
)

ADJUST_POLICY = PayloadPolicy(
    writable_fields=frozenset({"product_id", "quantity", "notes"}),
    required_on_create=frozenset({"product_id", "quantity"}),
)


def _movement_filters_from_args(args) -> dict:
    filters = {
        "product_id": coerce_optional_int(args.get("product_id"), "product_id"),
        "movement_type": args.get("movement_type") or None,
        "start_date": args.get("start_date") or None,
        "end_date": args.get("end_date") or None,
        "reference_type": args.get("reference_type") or None,
        "reference_id": coerce_optional_int(args.get("reference_id"), "reference_id"),
        "limit": coerce_optional_int(args.get("limit"), "limit"),
        "offset": coerce_optional_int(args.get("offset"), "offset") or 0,
        "order_by": args.get("order_by") or "created_at",
        "order_direction": args.get("order_direction") or "desc",
    }
    return filters


@inventory_bp.post("/movements")
def create_movement_route():
    """Record an in/out/adjustment movement against a product."""
    try:
        data = validate_payload(payload=request.get_json(silent=True), policy=MOVEMENT_POLICY, partial=False)
        movement = stock_ledger_service.record_movement(
            coerce_int(data["product_id"], "product_id"),
            data["movement_type"],
            coerce_int(data["quantity"], "quantity"),
            reference_type=data.get("reference_type"),
            reference_id=coerce_optional_int(data.get("reference_id"), "reference_id"),
            notes=data.get("notes"),
        )
        return jsonify({
            "movement": movement.to_dict(),
            "stock_quantity": stock_ledger_service.get_stock_level(movement.product_id),
        }), 201

    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record inventory movement")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/adjust")
def adjust_inventory_route():
    """Manual stock correction (signed quantity)."""
    try:
        data = validate_payload(payload=request.get_json(silent=True), policy=ADJUST_POLICY, partial=False)
        movement = stock_ledger_service.adjust_inventory(
            coerce_int(data["product_id"], "product_id"),
            coerce_int(data["quantity"], "quantity"),
            notes=data.get("notes"),
        )
        return jsonify({
            "movement": movement.to_dict(),
            "stock_quantity": stock_ledger_service.get_stock_level(movement.product_id),
        }), 201

    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/movements")
def list_movements_route():
    """List movements with product names; filters and paging come from the query string."""
    try:
        filters = _movement_filters_from_args(request.args)
        rows = stock_ledger_service.list_movements_with_product(**filters)
        return jsonify({"movements": rows}), 200

    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list inventory movements")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>/movements")
def product_movements_route(product_id: int):
    try:
        rows = stock_ledger_service.list_movements_by_product(product_id)
        return jsonify({"movements": [r.to_dict() for r in rows]}), 200

    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list product movements")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>/stock")
def product_stock_route(product_id: int):
    """Current stock next to the ledger balance, for reconciliation."""
    try:
        return jsonify(stock_ledger_service.stock_consistency(product_id)), 200

    except StockError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product stock")
        return jsonify({"error": "Internal server error"}), 500

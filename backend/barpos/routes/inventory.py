# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

"""
Inventory routes.

Reads (stock levels, low-stock alerts, movement audit) are open to any
signed-in operator. Manual movements are posted by ADMIN or INVENTORY
staff; reserve/commit/release only ever happen as a side effect of orders
and deliveries.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import DomainError, ValidationError
from ..models.auth import ROLE_ADMIN, ROLE_INVENTORY
from ..services import inventory_service
from ..validation import coerce_int, parse_date_field


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _optional_int(args, key: str):
    value = args.get(key)
    if value is None or value == "":
        return None
    return coerce_int(value, key)


@inventory_bp.get("/stock")
@require_auth
def list_stock_route():
    """Query params: location_id, event_id."""
    try:
        records = inventory_service.list_stock(
            location_id=_optional_int(request.args, "location_id"),
            event_id=_optional_int(request.args, "event_id"),
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"records": [r.to_dict() for r in records]}), 200


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    """Records at or below their threshold at the event's active locations."""
    try:
        event_id = _optional_int(request.args, "event_id")
        if event_id is None:
            raise ValidationError("event_id is required")
        records = inventory_service.list_low_stock(event_id)
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"records": [r.to_dict() for r in records]}), 200


@inventory_bp.post("/movements")
@require_auth
@require_role(ROLE_ADMIN, ROLE_INVENTORY)
def post_movement_route():
    """
    Post a manual movement.

    Body:
    {
      "movement_type": "INBOUND" | "TRANSFER" | "ADJUSTMENT" | "WASTE",
      "product_id": 4,
      "quantity": 24,                 # signed for ADJUSTMENT, positive otherwise
      "location_id": 2,               # INBOUND / ADJUSTMENT / WASTE
      "from_location_id": 1,          # TRANSFER
      "to_location_id": 2,            # TRANSFER
      "reason": "...",
      "notes": "..."
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        movement_type = data.get("movement_type")
        result = inventory_service.record_manual_movement(
            movement_type=movement_type,
            product_id=coerce_int(data.get("product_id"), "product_id"),
            quantity=coerce_int(data.get("quantity"), "quantity"),
            user_id=g.current_user.id,
            location_id=_optional_int(data, "location_id"),
            from_location_id=_optional_int(data, "from_location_id"),
            to_location_id=_optional_int(data, "to_location_id"),
            reason=data.get("reason"),
            notes=data.get("notes"),
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "%s of product %s (qty %s) by user %s",
        movement_type, data.get("product_id"), data.get("quantity"), g.current_user.id,
    )
    return jsonify(result), 201


@inventory_bp.get("/movements")
@require_auth
def list_movements_route():
    """Query params: product_id, movement_type, location_id, order_id, date, limit."""
    try:
        movements = inventory_service.list_movements(
            product_id=_optional_int(request.args, "product_id"),
            movement_type=request.args.get("movement_type"),
            location_id=_optional_int(request.args, "location_id"),
            order_id=_optional_int(request.args, "order_id"),
            day=parse_date_field(request.args.get("date")),
            limit=coerce_int(request.args.get("limit", "100"), "limit"),
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200

# Overview: Flask API routes for deliveries; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import DomainError
from ..models.auth import ROLE_ADMIN, ROLE_BARTENDER, ROLE_SUPERVISOR
from ..services import delivery_service
from ..validation import coerce_int, parse_date_field


deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/api/deliveries")


@deliveries_bp.post("")
@require_auth
@require_role(ROLE_BARTENDER, ROLE_ADMIN, ROLE_SUPERVISOR)
def record_delivery_route():
    """
    Record a (partial) delivery against a scanned order.

    Body:
    {
      "order_token": "<uuid from the QR>",
      "location_id": 3,
      "items": [{"line_id": 10, "quantity": 1}],
      "notes": "..."
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        result = delivery_service.record_delivery(
            order_token=data.get("order_token"),
            location_id=coerce_int(data.get("location_id"), "location_id"),
            user_id=g.current_user.id,
            items=data.get("items"),
            notes=data.get("notes"),
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record delivery")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "Delivery %s recorded for order %s at location %s (%s)",
        result.delivery.id, result.order.code, result.delivery.location_id,
        result.order.fulfillment_status,
    )
    return jsonify(result.to_dict()), 201


@deliveries_bp.get("")
@require_auth
@require_role(ROLE_BARTENDER, ROLE_ADMIN, ROLE_SUPERVISOR)
def list_deliveries_route():
    """
    Delivery history, most recent first.

    Query params: location_id, user_id, order_id, date (YYYY-MM-DD), limit.
    """
    try:
        args = request.args
        deliveries = delivery_service.list_deliveries(
            location_id=coerce_int(args["location_id"], "location_id") if args.get("location_id") else None,
            user_id=coerce_int(args["user_id"], "user_id") if args.get("user_id") else None,
            order_id=coerce_int(args["order_id"], "order_id") if args.get("order_id") else None,
            day=parse_date_field(args.get("date")),
            limit=coerce_int(args.get("limit", "100"), "limit"),
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"deliveries": [delivery.to_dict() for delivery in deliveries]}), 200

# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order API routes.

Cashiers create orders at a register; the order's QR token is the customer's
claim ticket. The /api/qr/<token> lookup is public so a customer can check
what is still pending without an account.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import DomainError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_SUPERVISOR
from ..services import order_service
from ..validation import coerce_int


orders_bp = Blueprint("orders", __name__, url_prefix="/api")


def _order_response(order) -> dict:
    data = order.to_dict(include_lines=True)
    data["url"] = order_service.order_url(order.access_token)
    return data


@orders_bp.post("/orders")
@require_auth
@require_role(ROLE_CASHIER, ROLE_ADMIN)
def create_order_route():
    """
    Create an order.

    Body:
    {
      "event_id": 1,
      "register_id": 2,
      "payment_method": "CASH" | "TRANSFER" | "BALANCE",
      "balance_token": "<uuid>",            # BALANCE only
      "lines": [{"product_id": 5, "quantity": 2, "selected_options": {"Mixer": "COLA"}}]
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        order = order_service.create_order(
            event_id=coerce_int(data.get("event_id"), "event_id"),
            register_id=coerce_int(data.get("register_id"), "register_id"),
            user_id=g.current_user.id,
            payment_method=data.get("payment_method"),
            lines=data.get("lines"),
            balance_token=data.get("balance_token"),
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "Order %s created (%s, %s, total=%d)",
        order.code, order.payment_method, order.payment_status, order.total_cents,
    )
    return jsonify({"order": _order_response(order)}), 201


@orders_bp.get("/orders")
@require_auth
def list_orders_route():
    """
    List orders, newest first.

    Query params: event_id, fulfillment_status, payment_status, page, limit.
    Cashiers only see orders they created.
    """
    try:
        event_id = request.args.get("event_id")
        page = coerce_int(request.args.get("page", "1"), "page")
        limit = coerce_int(request.args.get("limit", "50"), "limit")

        created_by = None
        if g.current_user.role == ROLE_CASHIER:
            created_by = g.current_user.id

        orders, total = order_service.list_orders(
            event_id=coerce_int(event_id, "event_id") if event_id else None,
            fulfillment_status=request.args.get("fulfillment_status"),
            payment_status=request.args.get("payment_status"),
            created_by_user_id=created_by,
            page=page,
            limit=limit,
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({
        "orders": [order.to_dict(include_lines=False) for order in orders],
        "total": total,
        "page": max(page, 1),
        "limit": limit,
    }), 200


@orders_bp.get("/orders/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code

    if g.current_user.role == ROLE_CASHIER and order.created_by_user_id != g.current_user.id:
        return jsonify({"error": "Order not found", "details": {"order_id": order_id}}), 404

    data = _order_response(order)
    data["deliveries"] = [delivery.to_dict() for delivery in order.deliveries]
    return jsonify({"order": data}), 200


@orders_bp.post("/orders/<int:order_id>/cancel")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SUPERVISOR)
def cancel_order_route(order_id: int):
    """Cancel an order and release its outstanding reservations."""
    data = request.get_json(silent=True) or {}

    try:
        order = order_service.cancel_order(order_id, user_id=g.current_user.id, reason=data.get("reason"))
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Order %s cancelled by user %s", order.code, g.current_user.id)
    return jsonify({"order": _order_response(order)}), 200


@orders_bp.get("/qr/<token>")
def order_by_token_route(token: str):
    """Public order status behind the customer's QR code."""
    try:
        order = order_service.get_order_by_token(token)
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"order": order_service.order_public_view(order)}), 200

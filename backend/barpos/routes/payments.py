# Overview: Flask API routes for payments; parses input and returns JSON responses.

"""
Payment approval routes.

CASH and BALANCE orders settle when they are created. Bank transfers are
checked by hand, so a supervisor approves or rejects each TRANSFER order
here before the bar may hand anything over.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import DomainError, ValidationError
from ..models.auth import ROLE_ADMIN, ROLE_SUPERVISOR
from ..services import payment_service
from ..validation import coerce_int


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/<int:order_id>/approve")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SUPERVISOR)
def approve_payment_route(order_id: int):
    """
    Approve or reject a pending transfer.

    Body: {"approved": true|false, "notes": "..."}
    """
    data = request.get_json(silent=True) or {}

    try:
        approved = data.get("approved")
        if not isinstance(approved, bool):
            raise ValidationError("approved must be a boolean", details={"approved": approved})

        order = payment_service.approve_transfer_payment(
            order_id,
            approved,
            user_id=g.current_user.id,
            notes=data.get("notes"),
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process transfer approval")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "Transfer for order %s %s by user %s",
        order.code, "approved" if approved else "rejected", g.current_user.id,
    )
    return jsonify({"order": order.to_dict(include_lines=False)}), 200


@payments_bp.get("/pending")
@require_auth
@require_role(ROLE_ADMIN, ROLE_SUPERVISOR)
def pending_transfers_route():
    """Transfers waiting for approval, oldest first."""
    try:
        event_id = request.args.get("event_id")
        orders = payment_service.list_pending_transfers(
            event_id=coerce_int(event_id, "event_id") if event_id else None,
            limit=coerce_int(request.args.get("limit", "100"), "limit"),
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"orders": [order.to_dict(include_lines=True) for order in orders]}), 200

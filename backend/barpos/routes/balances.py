# Overview: Flask API routes for prepaid balance accounts; parses input and returns JSON responses.

"""
Prepaid balance (QR consumption card) routes.

Issuing, topping up and blocking cards is an ADMIN task. Validation is open
to any signed-in operator so a cashier can check a card before charging it.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import DomainError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..services import balance_service
from ..validation import coerce_int, parse_datetime_field


balances_bp = Blueprint("balances", __name__, url_prefix="/api/balances")


def _account_response(account, include_transactions: bool = False) -> dict:
    data = account.to_dict()
    data["url"] = balance_service.balance_url(account.access_token)
    if include_transactions:
        data["transactions"] = [t.to_dict() for t in balance_service.list_transactions(account.id)]
    return data


@balances_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_account_route():
    """
    Issue a new balance card.

    Body: {"event_id": 1, "initial_amount_cents": 5000, "holder_name": "...",
           "notes": "...", "expires_at": "2026-01-01T05:00:00Z"}
    """
    data = request.get_json(silent=True) or {}

    try:
        account = balance_service.create_account(
            event_id=coerce_int(data.get("event_id"), "event_id"),
            initial_amount_cents=coerce_int(data.get("initial_amount_cents"), "initial_amount_cents"),
            user_id=g.current_user.id,
            holder_name=data.get("holder_name"),
            notes=data.get("notes"),
            expires_at=parse_datetime_field(data.get("expires_at"), "expires_at"),
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create balance account")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "Balance account %s created with %d cents", account.code, account.initial_amount_cents,
    )
    return jsonify({"account": _account_response(account, include_transactions=True)}), 201


@balances_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_accounts_route():
    """Query params: event_id, status, page, limit."""
    try:
        event_id = request.args.get("event_id")
        page = coerce_int(request.args.get("page", "1"), "page")
        limit = coerce_int(request.args.get("limit", "50"), "limit")
        accounts, total = balance_service.list_accounts(
            event_id=coerce_int(event_id, "event_id") if event_id else None,
            status=request.args.get("status"),
            page=page,
            limit=limit,
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({
        "accounts": [_account_response(account) for account in accounts],
        "total": total,
        "page": max(page, 1),
        "limit": limit,
    }), 200


@balances_bp.post("/validate")
@require_auth
def validate_account_route():
    """
    Check a scanned card before charging it.

    Body: {"token": "<uuid>", "required_amount_cents": 1500}
    """
    data = request.get_json(silent=True) or {}
    required = data.get("required_amount_cents")

    try:
        token = data.get("token")
        if not token:
            raise ValidationError("token is required")
        account = balance_service.validate_account(
            token,
            coerce_int(required, "required_amount_cents") if required is not None else None,
        )
    except DomainError as e:
        return jsonify({"valid": False, **e.to_dict()}), e.status_code

    return jsonify({
        "valid": True,
        "account": {
            "code": account.code,
            "balance_cents": account.balance_cents,
            "status": account.status,
            "holder_name": account.holder_name,
            "expires_at": account.to_dict()["expires_at"],
        },
    }), 200


@balances_bp.get("/<token>")
@require_auth
@require_role(ROLE_ADMIN)
def get_account_route(token: str):
    try:
        account = balance_service.get_account_by_token(token)
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"account": _account_response(account, include_transactions=True)}), 200


@balances_bp.post("/<token>/load")
@require_auth
@require_role(ROLE_ADMIN)
def load_account_route(token: str):
    """Body: {"amount_cents": 2000, "description": "..."}"""
    data = request.get_json(silent=True) or {}

    try:
        account = balance_service.load_account(
            token,
            coerce_int(data.get("amount_cents"), "amount_cents"),
            user_id=g.current_user.id,
            description=data.get("description"),
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load balance account")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Balance account %s loaded, balance now %d", account.code, account.balance_cents)
    return jsonify({"account": _account_response(account)}), 200


@balances_bp.post("/<token>/block")
@require_auth
@require_role(ROLE_ADMIN)
def block_account_route(token: str):
    """Body: {"blocked": true|false}"""
    data = request.get_json(silent=True) or {}

    try:
        blocked = data.get("blocked", True)
        if not isinstance(blocked, bool):
            raise ValidationError("blocked must be a boolean", details={"blocked": blocked})
        account = balance_service.set_blocked(token, blocked, user_id=g.current_user.id)
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change balance account block state")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Balance account %s is now %s", account.code, account.status)
    return jsonify({"account": _account_response(account)}), 200

# Overview: Flask API routes for products and combos; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..errors import DomainError
from ..models import Product
from ..models.auth import ROLE_ADMIN, ROLE_INVENTORY
from ..services import catalog_service, recipe_service
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_product


products_bp = Blueprint("products", __name__, url_prefix="/api")

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "description", "category", "price_cents", "kind", "is_active"},
    required_on_create={"code", "name"},
)

COMBO_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "description", "category", "price_cents", "is_active"},
    required_on_create={"code", "name", "price_cents"},
)

_RECIPE_FIELDS = ("mandatory", "optional_groups")


def _active_only() -> bool:
    return request.args.get("active_only", "true").lower() != "false"


def _combo_response(combo, view) -> dict:
    data = combo.to_dict()
    data["recipe"] = view.to_dict() if view else None
    return data


@products_bp.get("/products")
@require_auth
def list_products_route():
    """Query params: kind (SIMPLE|BASE|COMPOSITE), active_only (default true)."""
    try:
        products = catalog_service.list_products(kind=request.args.get("kind"), active_only=_active_only())
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.post("/products")
@require_auth
@require_role(ROLE_ADMIN, ROLE_INVENTORY)
def create_product_route():
    """Create a SIMPLE (sellable) or BASE (component-only) product."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(**patch)
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 201


@products_bp.get("/products/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/products/<int:product_id>/recipe")
@require_auth
def get_recipe_route(product_id: int):
    """Resolved recipe; null for products that are not combos."""
    try:
        view = recipe_service.resolve_recipe(product_id)
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"product_id": product_id, "recipe": view.to_dict() if view else None}), 200


@products_bp.get("/combos")
@require_auth
def list_combos_route():
    combos = catalog_service.list_combos(active_only=_active_only())
    return jsonify({"combos": [_combo_response(combo, view) for combo, view in combos]}), 200


@products_bp.post("/combos")
@require_auth
@require_role(ROLE_ADMIN, ROLE_INVENTORY)
def create_combo_route():
    """
    Create a combo with its recipe.

    Body:
    {
      "code": "CUBA", "name": "Cuba Libre", "price_cents": 4500,
      "mandatory": [{"component_code": "RON", "quantity": 1}],
      "optional_groups": {"Mixer": [{"component_code": "COLA"}, {"component_code": "SPRITE"}]}
    }
    """
    payload = request.get_json(silent=True) or {}
    recipe = {k: payload.get(k) for k in _RECIPE_FIELDS}
    fields = {k: v for k, v in payload.items() if k not in _RECIPE_FIELDS}

    try:
        patch = validate_payload(model=Product, payload=fields, policy=COMBO_POLICY, partial=False)
        enforce_rules_product(patch)
        combo = catalog_service.create_combo(**patch, **recipe)
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create combo")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"combo": _combo_response(combo, recipe_service.recipe_for_product(combo))}), 201


@products_bp.put("/combos/<int:product_id>/recipe")
@require_auth
@require_role(ROLE_ADMIN, ROLE_INVENTORY)
def replace_recipe_route(product_id: int):
    """Body: {"mandatory": [...], "optional_groups": {...}}"""
    payload = request.get_json(silent=True) or {}

    try:
        combo = catalog_service.replace_recipe(
            product_id,
            mandatory=payload.get("mandatory"),
            optional_groups=payload.get("optional_groups"),
        )
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to replace combo recipe")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Recipe for combo %s replaced", combo.code)
    return jsonify({"combo": _combo_response(combo, recipe_service.recipe_for_product(combo))}), 200

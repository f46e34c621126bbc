# Overview: Catalog administration; products and combo recipes.

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Product, RecipeLine
from ..models.catalog import (
    PRODUCT_KIND_COMPOSITE,
    PRODUCT_KIND_SIMPLE,
    STOCKED_PRODUCT_KINDS,
    VALID_PRODUCT_KINDS,
)
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .recipe_service import RecipeView, recipe_for_product


def _normalize_code(code) -> str:
    if not isinstance(code, str) or not code.strip():
        raise ValidationError("code is required", details={"code": code})
    return code.strip().upper()


def _require_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required", details={"name": name})
    return name.strip()


def _require_price(price_cents) -> int:
    if isinstance(price_cents, bool) or not isinstance(price_cents, int) or price_cents < 0:
        raise ValidationError("price_cents must be a non-negative integer", details={"price_cents": price_cents})
    return price_cents


def _ensure_code_available(code: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.code == code)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("A product with that code already exists", details={"code": code})


def _resolve_component(spec: dict, *, field: str) -> Product:
    """Accepts {"component_id": int} or {"component_code": str}."""
    component = None
    if spec.get("component_id") is not None:
        component = db.session.get(Product, spec["component_id"])
    elif spec.get("component_code"):
        component = db.session.query(Product).filter_by(code=str(spec["component_code"]).strip().upper()).first()
    if not component:
        raise NotFoundError(
            "Component not found",
            details={"field": field, "component_id": spec.get("component_id"), "component_code": spec.get("component_code")},
        )
    if component.kind == PRODUCT_KIND_COMPOSITE:
        raise ValidationError(
            f"{component.name} is a combo and cannot be a component",
            details={"field": field, "component_id": component.id},
        )
    return component


def _require_line_quantity(spec: dict, *, field: str) -> int:
    quantity = spec.get("quantity", 1)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("quantity must be an integer >= 1", details={"field": field, "quantity": quantity})
    return quantity


def _build_recipe_lines(mandatory, optional_groups) -> list[RecipeLine]:
    """
    Validate a recipe definition and build (unsaved) RecipeLine rows.

    mandatory: [{"component_id"|"component_code", "quantity"}], at least one.
    optional_groups: {group_name: [same shape]}, every group non-empty.
    """
    if not isinstance(mandatory, (list, tuple)) or not mandatory:
        raise ValidationError("A combo needs at least one mandatory component", details={"mandatory": mandatory})
    optional_groups = optional_groups or {}
    if not isinstance(optional_groups, dict):
        raise ValidationError("optional_groups must be an object", details={"optional_groups": optional_groups})

    lines = []
    for index, spec in enumerate(mandatory):
        if not isinstance(spec, dict):
            raise ValidationError("Each component must be an object", details={"field": f"mandatory[{index}]"})
        field = f"mandatory[{index}]"
        component = _resolve_component(spec, field=field)
        lines.append(RecipeLine(
            component_id=component.id,
            quantity=_require_line_quantity(spec, field=field),
            is_optional=False,
            option_group=None,
        ))

    for group, specs in optional_groups.items():
        if not isinstance(group, str) or not group.strip():
            raise ValidationError("Option group names must be non-empty", details={"group": group})
        if not isinstance(specs, (list, tuple)) or not specs:
            raise ValidationError(f"Option group '{group}' has no components", details={"group": group})
        seen = set()
        for index, spec in enumerate(specs):
            if not isinstance(spec, dict):
                raise ValidationError("Each component must be an object", details={"field": f"{group}[{index}]"})
            field = f"{group}[{index}]"
            component = _resolve_component(spec, field=field)
            if component.id in seen:
                raise ValidationError(
                    f"{component.name} appears twice in group '{group}'",
                    details={"group": group, "component_id": component.id},
                )
            seen.add(component.id)
            lines.append(RecipeLine(
                component_id=component.id,
                quantity=_require_line_quantity(spec, field=field),
                is_optional=True,
                option_group=group.strip(),
            ))

    return lines


def create_product(
    *,
    code: str,
    name: str,
    price_cents: int = 0,
    kind: str = PRODUCT_KIND_SIMPLE,
    category: str | None = None,
    description: str | None = None,
    is_active: bool = True,
) -> Product:
    """Create a SIMPLE or BASE product. Combos go through create_combo."""
    def _op():
        if kind not in VALID_PRODUCT_KINDS:
            raise ValidationError(
                f"kind must be one of: {', '.join(VALID_PRODUCT_KINDS)}",
                details={"kind": kind},
            )
        if kind not in STOCKED_PRODUCT_KINDS:
            raise ValidationError("Use the combos endpoint to create COMPOSITE products", details={"kind": kind})
        normalized = _normalize_code(code)
        begin_write_transaction()
        _ensure_code_available(normalized)

        product = Product(
            code=normalized,
            name=_require_name(name),
            price_cents=_require_price(price_cents),
            kind=kind,
            category=category,
            description=description,
            is_active=is_active,
        )
        db.session.add(product)
        db.session.commit()
        return product

    return run_with_retry(_op)


def create_combo(
    *,
    code: str,
    name: str,
    price_cents: int,
    mandatory,
    optional_groups=None,
    category: str | None = None,
    description: str | None = None,
    is_active: bool = True,
) -> Product:
    """Create a COMPOSITE product together with its recipe."""
    def _op():
        normalized = _normalize_code(code)
        begin_write_transaction()
        _ensure_code_available(normalized)

        combo = Product(
            code=normalized,
            name=_require_name(name),
            price_cents=_require_price(price_cents),
            kind=PRODUCT_KIND_COMPOSITE,
            category=category,
            description=description,
            is_active=is_active,
        )
        combo.recipe_lines = _build_recipe_lines(mandatory, optional_groups)
        db.session.add(combo)
        db.session.commit()
        return combo

    return run_with_retry(_op)


def replace_recipe(product_id: int, *, mandatory, optional_groups=None) -> Product:
    """Swap a combo's whole recipe for a new definition."""
    def _op():
        begin_write_transaction()
        combo = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not combo or combo.kind != PRODUCT_KIND_COMPOSITE:
            raise NotFoundError("Combo not found", details={"product_id": product_id})

        new_lines = _build_recipe_lines(mandatory, optional_groups)
        combo.recipe_lines.clear()
        db.session.flush()
        combo.recipe_lines.extend(new_lines)
        db.session.commit()
        return combo

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def list_products(*, kind: str | None = None, active_only: bool = True) -> list[Product]:
    if kind and kind not in VALID_PRODUCT_KINDS:
        raise ValidationError(
            f"kind must be one of: {', '.join(VALID_PRODUCT_KINDS)}",
            details={"kind": kind},
        )
    query = db.session.query(Product)
    if kind:
        query = query.filter(Product.kind == kind)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name.asc()).all()


def list_combos(*, active_only: bool = False) -> list[tuple[Product, RecipeView | None]]:
    """Every combo with its recipe view (None when the recipe is missing)."""
    combos = list_products(kind=PRODUCT_KIND_COMPOSITE, active_only=active_only)
    return [(combo, recipe_for_product(combo)) for combo in combos]

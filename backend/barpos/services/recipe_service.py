# Overview: Combo recipe resolution; expands composite products into concrete components.

from __future__ import annotations

"""
Recipe semantics (authoritative)

- A COMPOSITE product is sold as one unit but consumes stock of its
  components. Its recipe is a flat list of RecipeLine rows.
- Mandatory lines (is_optional=False) are consumed on every sale.
- Optional lines are grouped by option_group. The caller picks exactly one
  component per group, by component code, when ordering.
- Components are never COMPOSITE, so expansion is a single level deep.
- Expansion of n units multiplies every component's per-unit quantity by n.
"""

from dataclasses import dataclass, field
from typing import Iterable

from ..extensions import db
from ..errors import NotFoundError, OptionSelectionError, ValidationError
from ..models import Product, RecipeLine
from ..models.catalog import PRODUCT_KIND_BASE, PRODUCT_KIND_COMPOSITE, PRODUCT_KIND_SIMPLE


@dataclass(frozen=True)
class RecipeComponent:
    component_id: int
    code: str
    name: str
    quantity: int

    def to_dict(self) -> dict:
        return {
            "component_id": self.component_id,
            "code": self.code,
            "name": self.name,
            "quantity": self.quantity,
        }


@dataclass
class RecipeView:
    """Mandatory components plus named choice groups of a composite product."""
    product_id: int
    mandatory: list[RecipeComponent] = field(default_factory=list)
    optional_groups: dict[str, list[RecipeComponent]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "mandatory": [c.to_dict() for c in self.mandatory],
            "optional_groups": {
                group: [c.to_dict() for c in components]
                for group, components in self.optional_groups.items()
            },
        }


@dataclass(frozen=True)
class ResolvedComponent:
    """A concrete (component, quantity) pair to reserve or commit."""
    component_id: int
    code: str
    name: str
    quantity: int
    option_group: str | None = None


def group_recipe_lines(rows: Iterable[RecipeLine], product_id: int | None = None) -> RecipeView:
    """
    Pure grouping pass from flat recipe rows to a RecipeView.

    Group order follows the first appearance of each group in `rows`.
    """
    rows = list(rows)
    if product_id is None and rows:
        product_id = rows[0].product_id
    view = RecipeView(product_id=product_id)
    for row in rows:
        component = RecipeComponent(
            component_id=row.component_id,
            code=row.component.code,
            name=row.component.name,
            quantity=row.quantity,
        )
        if row.is_optional:
            view.optional_groups.setdefault(row.option_group, []).append(component)
        else:
            view.mandatory.append(component)
    return view


def resolve_recipe(product_id: int) -> RecipeView | None:
    """
    Return the recipe of a COMPOSITE product.

    None for SIMPLE/BASE products and for a COMPOSITE with no recipe lines;
    the caller decides whether a missing recipe is an error.
    """
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return recipe_for_product(product)


def recipe_for_product(product: Product) -> RecipeView | None:
    if product.kind != PRODUCT_KIND_COMPOSITE:
        return None
    rows = (
        db.session.query(RecipeLine)
        .filter(RecipeLine.product_id == product.id)
        .order_by(RecipeLine.id.asc())
        .all()
    )
    if not rows:
        return None
    return group_recipe_lines(rows, product_id=product.id)


def validate_selection(view: RecipeView, selected_options: dict | None) -> list[ResolvedComponent]:
    """
    Check the caller's choice for every group and return the resolved lines.

    Every group must be present in selected_options and name one of that
    group's component codes exactly. Keys for groups the recipe does not have
    are ignored. Mandatory lines are always included.
    """
    selected_options = selected_options or {}
    if not isinstance(selected_options, dict):
        raise ValidationError("selected_options must be an object", details={"selected_options": selected_options})

    resolved = [
        ResolvedComponent(
            component_id=c.component_id,
            code=c.code,
            name=c.name,
            quantity=c.quantity,
        )
        for c in view.mandatory
    ]

    for group, components in view.optional_groups.items():
        options = [c.code for c in components]
        if group not in selected_options or selected_options[group] in (None, ""):
            raise OptionSelectionError(
                f"Select an option for '{group}'",
                group=group,
                code=None,
                options=options,
            )
        code = selected_options[group]
        match = next((c for c in components if c.code == code), None)
        if match is None:
            raise OptionSelectionError(
                f"'{code}' is not a valid option for '{group}'",
                group=group,
                code=code,
                options=options,
            )
        resolved.append(
            ResolvedComponent(
                component_id=match.component_id,
                code=match.code,
                name=match.name,
                quantity=match.quantity,
                option_group=group,
            )
        )

    return resolved


def expand_product(product: Product, quantity: int, selected_options: dict | None = None) -> list[ResolvedComponent]:
    """
    Concrete stock lines consumed by `quantity` units of `product`.

    SIMPLE -> the product itself. BASE -> not sellable. COMPOSITE -> its
    mandatory components plus the chosen option of each group, every one
    scaled by quantity. A component appearing on several lines is summed.
    """
    if product.kind == PRODUCT_KIND_SIMPLE:
        return [
            ResolvedComponent(
                component_id=product.id,
                code=product.code,
                name=product.name,
                quantity=quantity,
            )
        ]

    if product.kind == PRODUCT_KIND_BASE:
        raise ValidationError(
            f"{product.name} is a component and cannot be sold directly",
            details={"product_id": product.id, "kind": product.kind},
        )

    if product.kind == PRODUCT_KIND_COMPOSITE:
        view = recipe_for_product(product)
        if view is None:
            raise ValidationError(
                f"{product.name} has no recipe configured",
                details={"product_id": product.id},
            )
        per_unit = validate_selection(view, selected_options)

        totals: dict[int, ResolvedComponent] = {}
        for item in per_unit:
            scaled = item.quantity * quantity
            existing = totals.get(item.component_id)
            if existing:
                totals[item.component_id] = ResolvedComponent(
                    component_id=existing.component_id,
                    code=existing.code,
                    name=existing.name,
                    quantity=existing.quantity + scaled,
                    option_group=existing.option_group,
                )
            else:
                totals[item.component_id] = ResolvedComponent(
                    component_id=item.component_id,
                    code=item.code,
                    name=item.name,
                    quantity=scaled,
                    option_group=item.option_group,
                )
        return list(totals.values())

    raise ValidationError(f"Unknown product kind: {product.kind}", details={"kind": product.kind})

"""
Recipe resolution and combo expansion.

Verifies:
- Grouping of flat recipe rows into mandatory lines and choice groups
- Option selection (missing group, unknown code, extra keys ignored)
- Expansion scaling and summing of repeated components
- Non-composite products resolve to no recipe
"""

import pytest

from barpos.errors import NotFoundError, OptionSelectionError, ValidationError
from barpos.models.catalog import PRODUCT_KIND_BASE
from barpos.services import catalog_service, recipe_service


class TestResolveRecipe:

    def test_combo_recipe_groups_lines(self, cuba_libre, rum, cola, sprite):
        view = recipe_service.resolve_recipe(cuba_libre.id)

        assert view.product_id == cuba_libre.id
        assert [c.code for c in view.mandatory] == ["RON"]
        assert list(view.optional_groups) == ["Mixer"]
        assert [c.code for c in view.optional_groups["Mixer"]] == ["COLA", "SPRITE"]

    def test_simple_product_has_no_recipe(self, beer):
        assert recipe_service.resolve_recipe(beer.id) is None

    def test_unknown_product_raises_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            recipe_service.resolve_recipe(999_999)

    def test_to_dict_shape(self, cuba_libre):
        data = recipe_service.resolve_recipe(cuba_libre.id).to_dict()

        assert data["mandatory"][0]["code"] == "RON"
        assert data["mandatory"][0]["quantity"] == 1
        assert {c["code"] for c in data["optional_groups"]["Mixer"]} == {"COLA", "SPRITE"}


class TestValidateSelection:

    def test_valid_choice_resolves_mandatory_and_option(self, cuba_libre):
        view = recipe_service.resolve_recipe(cuba_libre.id)

        resolved = recipe_service.validate_selection(view, {"Mixer": "SPRITE"})

        assert [(r.code, r.option_group) for r in resolved] == [("RON", None), ("SPRITE", "Mixer")]

    def test_missing_group_names_the_group(self, cuba_libre):
        view = recipe_service.resolve_recipe(cuba_libre.id)

        with pytest.raises(OptionSelectionError) as exc:
            recipe_service.validate_selection(view, {})

        assert exc.value.group == "Mixer"
        assert exc.value.details["options"] == ["COLA", "SPRITE"]
        assert "Mixer" in exc.value.message

    def test_unknown_code_is_rejected(self, cuba_libre):
        view = recipe_service.resolve_recipe(cuba_libre.id)

        with pytest.raises(OptionSelectionError) as exc:
            recipe_service.validate_selection(view, {"Mixer": "FANTA"})

        assert exc.value.code == "FANTA"
        assert "not a valid option" in exc.value.message

    def test_codes_are_case_sensitive(self, cuba_libre):
        view = recipe_service.resolve_recipe(cuba_libre.id)

        with pytest.raises(OptionSelectionError):
            recipe_service.validate_selection(view, {"Mixer": "cola"})

    def test_extra_keys_are_ignored(self, cuba_libre):
        view = recipe_service.resolve_recipe(cuba_libre.id)

        resolved = recipe_service.validate_selection(view, {"Mixer": "COLA", "Ice": "YES"})

        assert {r.code for r in resolved} == {"RON", "COLA"}


class TestExpandProduct:

    def test_simple_expands_to_itself(self, beer):
        [component] = recipe_service.expand_product(beer, 3)

        assert component.component_id == beer.id
        assert component.quantity == 3

    def test_combo_scales_by_quantity(self, cuba_libre, rum, cola):
        components = recipe_service.expand_product(cuba_libre, 2, {"Mixer": "COLA"})

        assert {c.component_id: c.quantity for c in components} == {rum.id: 2, cola.id: 2}

    def test_base_product_cannot_be_expanded(self, rum):
        with pytest.raises(ValidationError):
            recipe_service.expand_product(rum, 1)

    def test_repeated_component_is_summed(self, db_session, rum, cola, sprite):
        # Double rum: RON is mandatory and also one of the choices
        combo = catalog_service.create_combo(
            code="DOUBLE",
            name="Double Rum",
            price_cents=6000,
            mandatory=[{"component_id": rum.id, "quantity": 1}],
            optional_groups={"Extra": [{"component_id": rum.id}, {"component_id": cola.id}]},
        )

        components = recipe_service.expand_product(combo, 3, {"Extra": "RON"})

        assert [(c.component_id, c.quantity) for c in components] == [(rum.id, 6)]

    def test_combo_without_options(self, make_product):
        gin = make_product("GIN", kind=PRODUCT_KIND_BASE)
        tonic = make_product("TONIC", kind=PRODUCT_KIND_BASE)
        combo = catalog_service.create_combo(
            code="GT",
            name="Gin Tonic",
            price_cents=5000,
            mandatory=[{"component_id": gin.id, "quantity": 2}, {"component_id": tonic.id}],
        )

        components = recipe_service.expand_product(combo, 1)

        assert {c.component_id: c.quantity for c in components} == {gin.id: 2, tonic.id: 1}

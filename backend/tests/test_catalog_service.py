"""
Catalog administration: products, combos and recipe replacement.
"""

import pytest

from barpos.errors import ConflictError, NotFoundError, ValidationError
from barpos.models.catalog import PRODUCT_KIND_COMPOSITE
from barpos.services import catalog_service, recipe_service


class TestProducts:

    def test_code_is_normalized(self, make_product):
        product = make_product("  lager ", "Lager", price_cents=1500)

        assert product.code == "LAGER"
        assert product.kind == "SIMPLE"

    def test_duplicate_code_conflicts(self, make_product):
        make_product("LAGER")

        with pytest.raises(ConflictError):
            make_product("lager")

    def test_composite_needs_combo_endpoint(self, make_product):
        with pytest.raises(ValidationError):
            make_product("COMBO", kind=PRODUCT_KIND_COMPOSITE)

    def test_negative_price_rejected(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_product(code="X", name="X", price_cents=-1)

    def test_list_products_filters_inactive(self, make_product):
        make_product("ON", "Active")
        make_product("OFF", "Inactive", is_active=False)

        codes = [p.code for p in catalog_service.list_products()]
        all_codes = [p.code for p in catalog_service.list_products(active_only=False)]

        assert codes == ["ON"]
        assert set(all_codes) == {"ON", "OFF"}


class TestCombos:

    def test_combo_requires_mandatory_component(self, db_session, cola):
        with pytest.raises(ValidationError):
            catalog_service.create_combo(
                code="EMPTY",
                name="Empty",
                price_cents=100,
                mandatory=[],
                optional_groups={"Mixer": [{"component_id": cola.id}]},
            )

    def test_combo_cannot_contain_combo(self, cuba_libre):
        with pytest.raises(ValidationError):
            catalog_service.create_combo(
                code="META",
                name="Combo of combos",
                price_cents=100,
                mandatory=[{"component_id": cuba_libre.id}],
            )

    def test_empty_group_rejected(self, db_session, rum):
        with pytest.raises(ValidationError):
            catalog_service.create_combo(
                code="BAD",
                name="Bad",
                price_cents=100,
                mandatory=[{"component_id": rum.id}],
                optional_groups={"Mixer": []},
            )

    def test_unknown_component_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.create_combo(
                code="BAD",
                name="Bad",
                price_cents=100,
                mandatory=[{"component_code": "NOPE"}],
            )

    def test_components_by_code(self, db_session, rum, cola):
        combo = catalog_service.create_combo(
            code="RONCOLA",
            name="Ron Cola",
            price_cents=3000,
            mandatory=[{"component_code": "ron"}, {"component_code": "COLA", "quantity": 2}],
        )

        view = recipe_service.resolve_recipe(combo.id)

        assert {c.code: c.quantity for c in view.mandatory} == {"RON": 1, "COLA": 2}

    def test_replace_recipe(self, cuba_libre, rum, cola):
        catalog_service.replace_recipe(
            cuba_libre.id,
            mandatory=[{"component_id": rum.id, "quantity": 2}, {"component_id": cola.id}],
        )

        view = recipe_service.resolve_recipe(cuba_libre.id)

        assert {c.code: c.quantity for c in view.mandatory} == {"RON": 2, "COLA": 1}
        assert view.optional_groups == {}

    def test_replace_recipe_on_simple_product(self, beer, rum):
        with pytest.raises(NotFoundError):
            catalog_service.replace_recipe(beer.id, mandatory=[{"component_id": rum.id}])

    def test_list_combos_includes_recipe(self, cuba_libre):
        [(combo, view)] = catalog_service.list_combos()

        assert combo.id == cuba_libre.id
        assert view.optional_groups["Mixer"]

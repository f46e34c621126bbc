"""
Order assembly tests.

Verifies:
- CASH / TRANSFER / BALANCE orders land in the right payment state
- combos reserve their components, simple products reserve themselves
- totals use the catalog price
- any failing line rolls back every reservation and the balance debit
- daily order codes and cancellation
"""

import re

import pytest

from barpos.errors import (
    InsufficientBalanceError,
    InsufficientStockError,
    NotFoundError,
    OptionSelectionError,
    OrderClosedError,
    ValidationError,
)
from barpos.extensions import db
from barpos.models import BalanceTransaction, Event, Order, StockMovement
from barpos.models.catalog import PRODUCT_KIND_BASE
from barpos.models.inventory import MOVEMENT_RELEASE, MOVEMENT_RESERVE
from barpos.services import balance_service, inventory_service, order_service


def _reserved(product, location):
    record = inventory_service.get_inventory_record(product.id, location.id)
    db.session.refresh(record)
    return record.reserved


def _create(event, register, user, lines, method="CASH", balance_token=None):
    return order_service.create_order(
        event_id=event.id,
        register_id=register.id,
        user_id=user.id,
        payment_method=method,
        lines=lines,
        balance_token=balance_token,
    )


class TestCreateOrder:

    def test_cash_order_is_paid_and_reserves(self, event, register, cashier, stocked_bar, beer):
        order = _create(event, register, cashier, [{"product_id": beer.id, "quantity": 2}])

        assert order.payment_status == "PAID"
        assert order.paid_at is not None
        assert order.fulfillment_status == "PENDING"
        assert order.total_cents == 4000
        assert order.stock_location_id == stocked_bar.id
        assert _reserved(beer, stocked_bar) == 2

    def test_transfer_order_waits_for_approval(self, event, register, cashier, stocked_bar, beer):
        order = _create(event, register, cashier, [{"product_id": beer.id, "quantity": 1}], method="TRANSFER")

        assert order.payment_status == "PENDING_APPROVAL"
        assert order.paid_at is None
        assert _reserved(beer, stocked_bar) == 1

    def test_combo_reserves_selected_components(
        self, event, register, cashier, stocked_bar, cuba_libre, rum, cola, sprite,
    ):
        order = _create(event, register, cashier, [
            {"product_id": cuba_libre.id, "quantity": 3, "selected_options": {"Mixer": "SPRITE"}},
        ])

        assert order.total_cents == 3 * 4500
        assert _reserved(rum, stocked_bar) == 3
        assert _reserved(sprite, stocked_bar) == 3
        assert _reserved(cola, stocked_bar) == 0
        [line] = order.lines
        assert line.selected_options == {"Mixer": "SPRITE"}
        assert line.unit_price_cents == 4500
        assert {c.component_id: c.quantity_per_unit for c in line.components} == {rum.id: 1, sprite.id: 1}

    def test_order_code_and_token(self, app, event, register, cashier, stocked_bar, beer):
        first = _create(event, register, cashier, [{"product_id": beer.id, "quantity": 1}])
        second = _create(event, register, cashier, [{"product_id": beer.id, "quantity": 1}])

        assert re.fullmatch(r"P-\d{8}-0001", first.code)
        assert second.code.endswith("-0002")
        assert first.access_token != second.access_token
        assert order_service.order_url(first.access_token) == f"http://testserver/qr/{first.access_token}"

    def test_shortage_on_second_line_rolls_back_first(self, event, register, cashier, stocked_bar, beer, cuba_libre, rum):
        with pytest.raises(InsufficientStockError) as exc:
            _create(event, register, cashier, [
                {"product_id": beer.id, "quantity": 2},
                {"product_id": cuba_libre.id, "quantity": 11, "selected_options": {"Mixer": "COLA"}},
            ])

        assert exc.value.details["product_name"] == "Ron"
        assert _reserved(beer, stocked_bar) == 0
        assert _reserved(rum, stocked_bar) == 0
        assert db.session.query(Order).count() == 0
        assert db.session.query(StockMovement).filter_by(movement_type=MOVEMENT_RESERVE).count() == 0

    def test_missing_option_rejected_before_any_write(self, event, register, cashier, stocked_bar, cuba_libre):
        with pytest.raises(OptionSelectionError):
            _create(event, register, cashier, [{"product_id": cuba_libre.id, "quantity": 1}])

        assert db.session.query(Order).count() == 0

    def test_base_product_not_sellable(self, event, register, cashier, stocked_bar, rum):
        with pytest.raises(ValidationError):
            _create(event, register, cashier, [{"product_id": rum.id, "quantity": 1}])

    def test_unknown_product(self, event, register, cashier, stocked_bar):
        with pytest.raises(NotFoundError):
            _create(event, register, cashier, [{"product_id": 999_999, "quantity": 1}])

    def test_empty_cart(self, event, register, cashier):
        with pytest.raises(ValidationError):
            _create(event, register, cashier, [])

    def test_inactive_event(self, db_session, event, register, cashier, stocked_bar, beer):
        db_session.get(Event, event.id).is_active = False
        db_session.commit()

        with pytest.raises(ValidationError):
            _create(event, register, cashier, [{"product_id": beer.id, "quantity": 1}])

    def test_register_falls_back_to_event_location(self, db_session, event, warehouse, register, cashier, beer, add_stock):
        register.location_id = None
        db_session.commit()
        add_stock(beer, warehouse, 5)

        order = _create(event, register, cashier, [{"product_id": beer.id, "quantity": 1}])

        assert order.stock_location_id == warehouse.id

    def test_unknown_payment_method(self, event, register, cashier, stocked_bar, beer):
        with pytest.raises(ValidationError):
            _create(event, register, cashier, [{"product_id": beer.id, "quantity": 1}], method="CARD")


class TestBalanceOrders:

    @pytest.fixture
    def account(self, event, admin):
        return balance_service.create_account(event_id=event.id, initial_amount_cents=5000, user_id=admin.id)

    def test_balance_order_debits_account(self, event, register, cashier, stocked_bar, beer, account):
        order = _create(
            event, register, cashier, [{"product_id": beer.id, "quantity": 2}],
            method="BALANCE", balance_token=account.access_token,
        )

        db.session.refresh(account)
        assert order.payment_status == "PAID"
        assert order.balance_account_id == account.id
        assert account.balance_cents == 1000
        charge = db.session.query(BalanceTransaction).filter_by(order_id=order.id).one()
        assert (charge.balance_before_cents, charge.balance_after_cents) == (5000, 1000)
        assert charge.description == f"Order {order.code}"

    def test_exact_balance_depletes_account(self, event, register, cashier, stocked_bar, make_product, add_stock, account):
        wine = make_product("WINE", price_cents=5000)
        add_stock(wine, stocked_bar, 1)

        _create(event, register, cashier, [{"product_id": wine.id, "quantity": 1}],
                method="BALANCE", balance_token=account.access_token)

        db.session.refresh(account)
        assert account.balance_cents == 0
        assert account.status == "DEPLETED"

    def test_insufficient_balance_reserves_nothing(self, event, register, cashier, stocked_bar, beer, account):
        with pytest.raises(InsufficientBalanceError):
            _create(event, register, cashier, [{"product_id": beer.id, "quantity": 3}],
                    method="BALANCE", balance_token=account.access_token)

        db.session.refresh(account)
        assert account.balance_cents == 5000
        assert _reserved(beer, stocked_bar) == 0

    def test_stock_failure_leaves_balance_untouched(
        self, event, register, cashier, stocked_bar, make_product, add_stock, account,
    ):
        water = make_product("WATER", price_cents=100)
        add_stock(water, stocked_bar, 1)

        with pytest.raises(InsufficientStockError):
            _create(event, register, cashier, [{"product_id": water.id, "quantity": 2}],
                    method="BALANCE", balance_token=account.access_token)

        db.session.refresh(account)
        assert account.balance_cents == 5000
        assert db.session.query(BalanceTransaction).filter_by(transaction_type="CHARGE").count() == 0

    def test_balance_requires_token(self, event, register, cashier, stocked_bar, beer):
        with pytest.raises(ValidationError):
            _create(event, register, cashier, [{"product_id": beer.id, "quantity": 1}], method="BALANCE")


class TestCancelOrder:

    def test_cancel_releases_reservations(self, event, register, cashier, supervisor, stocked_bar, cuba_libre, rum, cola):
        order = _create(event, register, cashier, [
            {"product_id": cuba_libre.id, "quantity": 2, "selected_options": {"Mixer": "COLA"}},
        ])

        cancelled = order_service.cancel_order(order.id, user_id=supervisor.id, reason="Customer left")

        assert cancelled.fulfillment_status == "CANCELLED"
        assert cancelled.cancelled_by_user_id == supervisor.id
        assert _reserved(rum, stocked_bar) == 0
        assert _reserved(cola, stocked_bar) == 0
        releases = db.session.query(StockMovement).filter_by(order_id=order.id, movement_type=MOVEMENT_RELEASE).all()
        assert len(releases) == 2

    def test_cannot_cancel_twice(self, event, register, cashier, supervisor, stocked_bar, beer):
        order = _create(event, register, cashier, [{"product_id": beer.id, "quantity": 1}])
        order_service.cancel_order(order.id, user_id=supervisor.id)

        with pytest.raises(OrderClosedError):
            order_service.cancel_order(order.id, user_id=supervisor.id)


class TestReadSide:

    def test_public_view_hides_token(self, event, register, cashier, stocked_bar, beer):
        order = _create(event, register, cashier, [{"product_id": beer.id, "quantity": 1}])

        view = order_service.order_public_view(order_service.get_order_by_token(order.access_token))

        assert "access_token" not in view
        assert view["url"].endswith(order.access_token)
        assert view["event_name"] == event.name
        assert view["deliveries"] == []
        assert view["lines"][0]["quantity_remaining"] == 1

    def test_list_orders_by_creator(self, event, register, cashier, admin, stocked_bar, beer):
        _create(event, register, cashier, [{"product_id": beer.id, "quantity": 1}])
        _create(event, register, admin, [{"product_id": beer.id, "quantity": 1}])

        mine, total = order_service.list_orders(created_by_user_id=cashier.id)
        everything, grand_total = order_service.list_orders(event_id=event.id)

        assert total == 1 and mine[0].created_by_user_id == cashier.id
        assert grand_total == 2

    def test_unknown_token(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.get_order_by_token("nope")

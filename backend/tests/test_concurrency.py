"""
Concurrent order creation against a file-backed SQLite database.

In-memory SQLite shares one connection, so these tests build their own app
to get real connection-level write locking between threads.
"""

import threading

import pytest

from barpos import create_app
from barpos.config import TestConfig
from barpos.errors import InsufficientBalanceError, InsufficientStockError
from barpos.extensions import db
from barpos.models import BalanceAccount, BalanceTransaction, Event, InventoryRecord, Order, Register, StockLocation
from barpos.models.events import LOCATION_KIND_BAR
from barpos.services import balance_service, catalog_service, inventory_service, order_service
from barpos.services.auth_service import create_user


THREADS = 8
UNITS = 5


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'barpos.db'}"

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()

        event = Event(name="Concurrency", is_active=True)
        db.session.add(event)
        db.session.flush()
        bar = StockLocation(event_id=event.id, name="Bar", kind=LOCATION_KIND_BAR)
        db.session.add(bar)
        db.session.flush()
        register = Register(event_id=event.id, name="R1", location_id=bar.id)
        db.session.add(register)
        db.session.commit()

        cashier = create_user("cashier", "cashier@barpos.test", "Password123!", "CASHIER")
        beer = catalog_service.create_product(code="BEER", name="Cerveza", price_cents=2000)
        inventory_service.receive_stock(beer.id, bar.id, UNITS)

        app.config["IDS"] = {
            "event_id": event.id,
            "register_id": register.id,
            "user_id": cashier.id,
            "product_id": beer.id,
            "location_id": bar.id,
        }

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def _race(app, place_order, expected_error):
    """
    Run place_order() in THREADS threads released together.

    Returns (kind, detail) per thread: ("ok", order code), ("refused", None)
    for expected_error, or ("error", repr) for anything else.
    """
    barrier = threading.Barrier(THREADS)
    outcomes = []
    lock = threading.Lock()

    def worker():
        with app.app_context():
            barrier.wait()
            try:
                result = ("ok", place_order().code)
            except expected_error:
                result = ("refused", None)
            except Exception as exc:
                result = ("error", repr(exc))
            finally:
                db.session.remove()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(THREADS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


def test_last_units_are_not_oversold(file_app):
    ids = file_app.config["IDS"]

    def place_order():
        return order_service.create_order(
            event_id=ids["event_id"],
            register_id=ids["register_id"],
            user_id=ids["user_id"],
            payment_method="CASH",
            lines=[{"product_id": ids["product_id"], "quantity": 1}],
        )

    outcomes = _race(file_app, place_order, InsufficientStockError)

    errors = [detail for kind, detail in outcomes if kind == "error"]
    codes = [detail for kind, detail in outcomes if kind == "ok"]
    assert errors == []
    assert len(codes) == UNITS
    assert len(set(codes)) == UNITS
    assert len(outcomes) - len(codes) == THREADS - UNITS

    with file_app.app_context():
        record = db.session.query(InventoryRecord).filter_by(
            product_id=ids["product_id"], location_id=ids["location_id"],
        ).one()
        assert record.reserved == UNITS
        assert record.quantity == UNITS
        assert db.session.query(Order).count() == UNITS


def test_one_balance_account_is_never_overdrawn(file_app):
    ids = file_app.config["IDS"]
    with file_app.app_context():
        wine = catalog_service.create_product(code="WINE", name="Vino", price_cents=4000)
        inventory_service.receive_stock(wine.id, ids["location_id"], THREADS)
        account = balance_service.create_account(
            event_id=ids["event_id"], initial_amount_cents=5000, user_id=ids["user_id"],
        )
        wine_id, token, account_id = wine.id, account.access_token, account.id

    def place_order():
        return order_service.create_order(
            event_id=ids["event_id"],
            register_id=ids["register_id"],
            user_id=ids["user_id"],
            payment_method="BALANCE",
            balance_token=token,
            lines=[{"product_id": wine_id, "quantity": 1}],
        )

    outcomes = _race(file_app, place_order, InsufficientBalanceError)

    assert [detail for kind, detail in outcomes if kind == "error"] == []
    assert [kind for kind, _ in outcomes].count("ok") == 1
    assert len(outcomes) == THREADS

    with file_app.app_context():
        account = db.session.get(BalanceAccount, account_id)
        assert account.balance_cents == 1000
        assert account.status == "ACTIVE"
        charges = db.session.query(BalanceTransaction).filter_by(
            account_id=account_id, transaction_type="CHARGE",
        ).count()
        assert charges == 1
        record = db.session.query(InventoryRecord).filter_by(product_id=wine_id).one()
        assert record.reserved == 1

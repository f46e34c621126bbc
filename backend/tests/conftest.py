"""
Pytest fixtures for BarPOS backend tests.

Provides test database setup, an event with a warehouse, a bar and a
register, staff users with session tokens, catalog factories and a test
client.
"""

import pytest
from barpos import create_app
from barpos.config import TestConfig
from barpos.extensions import db
from barpos.models import Event, Register, StockLocation
from barpos.models.auth import ROLE_ADMIN, ROLE_BARTENDER, ROLE_CASHIER, ROLE_SUPERVISOR
from barpos.models.catalog import PRODUCT_KIND_BASE, PRODUCT_KIND_SIMPLE
from barpos.models.events import LOCATION_KIND_BAR, LOCATION_KIND_WAREHOUSE
from barpos.services import catalog_service, inventory_service, session_service
from barpos.services.auth_service import create_user


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        app.config["INVENTORY_ENFORCEMENT"] = True

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# EVENT SETUP
# =============================================================================


@pytest.fixture(scope='function')
def event(db_session):
    event = Event(name="Fiesta de Prueba", is_active=True)
    db_session.add(event)
    db_session.commit()
    return event


@pytest.fixture(scope='function')
def warehouse(db_session, event):
    location = StockLocation(event_id=event.id, name="Warehouse", kind=LOCATION_KIND_WAREHOUSE)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def bar(db_session, event, warehouse):
    location = StockLocation(event_id=event.id, name="Main Bar", kind=LOCATION_KIND_BAR)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def register(db_session, event, bar):
    """Register selling from the main bar."""
    reg = Register(event_id=event.id, name="Register 1", location_id=bar.id)
    db_session.add(reg)
    db_session.commit()
    return reg


# =============================================================================
# USERS
# =============================================================================


def _make_user(username: str, role: str):
    return create_user(
        username=username,
        email=f"{username}@barpos.test",
        password=PASSWORD,
        role=role,
    )


@pytest.fixture(scope='function')
def admin(db_session):
    return _make_user("admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def supervisor(db_session):
    return _make_user("supervisor", ROLE_SUPERVISOR)


@pytest.fixture(scope='function')
def cashier(db_session):
    return _make_user("cashier", ROLE_CASHIER)


@pytest.fixture(scope='function')
def bartender(db_session):
    return _make_user("bartender", ROLE_BARTENDER)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def password():
    """Password every fixture user is created with."""
    return PASSWORD


@pytest.fixture(scope='function')
def bearer():
    """Factory: bearer(token) -> Authorization headers."""
    return auth_headers


@pytest.fixture(scope='function')
def login_headers(db_session):
    """Factory: login_headers(user) -> headers for a fresh session of that user."""
    return headers_for


@pytest.fixture(scope='function')
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture(scope='function')
def supervisor_headers(supervisor):
    return headers_for(supervisor)


@pytest.fixture(scope='function')
def cashier_headers(cashier):
    return headers_for(cashier)


@pytest.fixture(scope='function')
def bartender_headers(bartender):
    return headers_for(bartender)


# =============================================================================
# CATALOG / STOCK
# =============================================================================


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product("BEER", price_cents=2000, kind="SIMPLE")."""
    def _make(code, name=None, *, price_cents=0, kind=PRODUCT_KIND_SIMPLE, is_active=True):
        return catalog_service.create_product(
            code=code,
            name=name or code.title(),
            price_cents=price_cents,
            kind=kind,
            is_active=is_active,
        )
    return _make


@pytest.fixture(scope='function')
def add_stock(db_session):
    """Factory: add_stock(product, location, quantity) via an INBOUND movement."""
    def _add(product, location, quantity, threshold=None):
        return inventory_service.receive_stock(
            product.id,
            location.id,
            quantity,
            low_stock_threshold=threshold,
        )
    return _add


@pytest.fixture(scope='function')
def beer(make_product):
    return make_product("BEER", "Cerveza", price_cents=2000)


@pytest.fixture(scope='function')
def rum(make_product):
    return make_product("RON", "Ron", kind=PRODUCT_KIND_BASE)


@pytest.fixture(scope='function')
def cola(make_product):
    return make_product("COLA", "Coca-Cola", kind=PRODUCT_KIND_BASE)


@pytest.fixture(scope='function')
def sprite(make_product):
    return make_product("SPRITE", "Sprite", kind=PRODUCT_KIND_BASE)


@pytest.fixture(scope='function')
def cuba_libre(db_session, rum, cola, sprite):
    """Combo: 1 rum (mandatory) + one mixer chosen from {COLA, SPRITE}."""
    return catalog_service.create_combo(
        code="CUBA",
        name="Cuba Libre",
        price_cents=4500,
        mandatory=[{"component_id": rum.id, "quantity": 1}],
        optional_groups={
            "Mixer": [{"component_id": cola.id}, {"component_id": sprite.id}],
        },
    )


@pytest.fixture(scope='function')
def stocked_bar(bar, beer, rum, cola, sprite, add_stock):
    """Main bar with 10 of every stocked product."""
    for product in (beer, rum, cola, sprite):
        add_stock(product, bar, 10)
    return bar

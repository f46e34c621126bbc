# Overview: Order assembly; turns a cart into a persisted order with stock reserved and payment settled.

from __future__ import annotations

"""
Order creation is one atomic transaction:

1. validate event, register, payment method and every cart line
2. expand each line into concrete components (combos via their recipe)
3. reserve every component at the order's stock location
4. debit the balance account (BALANCE orders)
5. insert Order + OrderLines, each with the per-unit components it consumes

Any failure at any step rolls the whole transaction back: no partial
reservations, no orphan debit, no order.
"""

import uuid
from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, OrderClosedError, ValidationError
from ..models import Event, Order, OrderLine, OrderLineComponent, Product, Register, StockLocation
from ..models.catalog import PRODUCT_KIND_BASE, PRODUCT_KIND_COMPOSITE
from ..models.orders import (
    CLOSED_FULFILLMENT_STATUSES,
    FULFILLMENT_CANCELLED,
    FULFILLMENT_PENDING,
    IMMEDIATE_PAYMENT_METHODS,
    LINE_PENDING,
    PAYMENT_METHOD_BALANCE,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING_APPROVAL,
    VALID_FULFILLMENT_STATUSES,
    VALID_PAYMENT_METHODS,
    VALID_PAYMENT_STATUSES,
)
from ..time_utils import utcnow
from .balance_service import charge_account, ensure_chargeable, lock_account_for_charge
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .document_service import ORDER_SEQUENCE, next_daily_code
from .inventory_service import release_stock, reserve_stock
from .recipe_service import expand_product, resolve_recipe


@dataclass
class CartLine:
    product_id: int
    quantity: int
    selected_options: dict = field(default_factory=dict)


def _parse_cart(lines) -> list[CartLine]:
    if not isinstance(lines, (list, tuple)) or not lines:
        raise ValidationError("An order needs at least one line", details={"lines": lines})

    cart = []
    for index, raw in enumerate(lines):
        if isinstance(raw, CartLine):
            line = raw
        elif isinstance(raw, dict):
            line = CartLine(
                product_id=raw.get("product_id"),
                quantity=raw.get("quantity"),
                selected_options=raw.get("selected_options") or {},
            )
        else:
            raise ValidationError("Each line must be an object", details={"index": index})

        if isinstance(line.product_id, bool) or not isinstance(line.product_id, int):
            raise ValidationError("product_id must be an integer", details={"index": index, "product_id": line.product_id})
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise ValidationError(
                "quantity must be a positive integer",
                details={"index": index, "quantity": line.quantity},
            )
        if not isinstance(line.selected_options, dict):
            raise ValidationError(
                "selected_options must be an object",
                details={"index": index, "selected_options": line.selected_options},
            )
        cart.append(line)
    return cart


def generate_access_token() -> str:
    return str(uuid.uuid4())


def order_url(token: str) -> str:
    """Public link encoded in the customer's QR."""
    base = current_app.config["PUBLIC_BASE_URL"].rstrip("/")
    return f"{base}/qr/{token}"


def resolve_stock_location(event: Event, register: Register) -> StockLocation:
    """The register's own location, else the event's first active location."""
    if register.location_id:
        location = db.session.get(StockLocation, register.location_id)
        if location and location.is_active:
            return location

    location = (
        db.session.query(StockLocation)
        .filter(StockLocation.event_id == event.id, StockLocation.is_active.is_(True))
        .order_by(StockLocation.id.asc())
        .first()
    )
    if not location:
        raise ValidationError("No stock location available for this event", details={"event_id": event.id})
    return location


def _load_sellable_product(product_id: int, index: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", details={"index": index, "product_id": product_id})
    if not product.is_active:
        raise ValidationError(f"{product.name} is not available", details={"index": index, "product_id": product.id})
    if product.kind == PRODUCT_KIND_BASE:
        raise ValidationError(
            f"{product.name} is a component and cannot be sold directly",
            details={"index": index, "product_id": product.id, "kind": product.kind},
        )
    return product


def create_order(
    *,
    event_id: int,
    register_id: int,
    user_id: int,
    payment_method: str,
    lines,
    balance_token: str | None = None,
) -> Order:
    """
    Create an order, reserving stock for every line and settling payment.

    CASH and BALANCE orders are PAID on creation; TRANSFER orders wait in
    PENDING_APPROVAL for a supervisor.
    """
    def _op():
        if payment_method not in VALID_PAYMENT_METHODS:
            raise ValidationError(
                f"payment_method must be one of: {', '.join(VALID_PAYMENT_METHODS)}",
                details={"payment_method": payment_method},
            )
        if payment_method == PAYMENT_METHOD_BALANCE and not balance_token:
            raise ValidationError("balance_token is required for BALANCE payments", details={"balance_token": None})
        cart = _parse_cart(lines)

        begin_write_transaction()

        event = db.session.get(Event, event_id)
        if not event:
            raise NotFoundError("Event not found", details={"event_id": event_id})
        if not event.is_active:
            raise ValidationError("Event is not active", details={"event_id": event.id})

        register = db.session.get(Register, register_id)
        if not register or register.event_id != event.id:
            raise ValidationError(
                "Register does not belong to this event",
                details={"event_id": event.id, "register_id": register_id},
            )
        if not register.is_active:
            raise ValidationError("Register is not active", details={"register_id": register.id})

        location = resolve_stock_location(event, register)

        # Validate and expand everything before the first write
        prepared = []
        subtotal = 0
        for index, item in enumerate(cart):
            product = _load_sellable_product(item.product_id, index)
            per_unit = expand_product(product, 1, item.selected_options)
            options = {}
            if product.kind == PRODUCT_KIND_COMPOSITE:
                # Keep only the groups the recipe has
                view = resolve_recipe(product.id)
                options = {group: item.selected_options[group] for group in view.optional_groups}
            line_total = product.price_cents * item.quantity
            subtotal += line_total
            prepared.append((product, item, per_unit, options, line_total))
        total = subtotal

        account = None
        if payment_method == PAYMENT_METHOD_BALANCE:
            account = lock_account_for_charge(balance_token)
            ensure_chargeable(account, total)

        now = utcnow()
        code = next_daily_code(
            sequence_key=ORDER_SEQUENCE,
            prefix=current_app.config["ORDER_CODE_PREFIX"],
            now=now,
        )
        paid = payment_method in IMMEDIATE_PAYMENT_METHODS
        order = Order(
            code=code,
            access_token=generate_access_token(),
            event_id=event.id,
            register_id=register.id,
            stock_location_id=location.id,
            created_by_user_id=user_id,
            payment_method=payment_method,
            payment_status=PAYMENT_STATUS_PAID if paid else PAYMENT_STATUS_PENDING_APPROVAL,
            fulfillment_status=FULFILLMENT_PENDING,
            subtotal_cents=subtotal,
            total_cents=total,
            paid_at=now if paid else None,
            balance_account_id=account.id if account else None,
            created_at=now,
        )
        db.session.add(order)
        db.session.flush()

        for product, item, per_unit, options, line_total in prepared:
            line = OrderLine(
                order_id=order.id,
                product_id=product.id,
                quantity=item.quantity,
                quantity_delivered=0,
                status=LINE_PENDING,
                unit_price_cents=product.price_cents,
                line_total_cents=line_total,
                selected_options=options,
            )
            line.components = [
                OrderLineComponent(component_id=component.component_id, quantity_per_unit=component.quantity)
                for component in per_unit
            ]
            db.session.add(line)
            for component_id, quantity in line.component_quantities(item.quantity):
                reserve_stock(
                    component_id,
                    location.id,
                    quantity,
                    user_id=user_id,
                    order_id=order.id,
                    reason=f"Order {code}",
                )

        if account is not None and total > 0:
            charge_account(account, total, order=order, user_id=user_id)

        db.session.commit()
        return order

    return run_with_retry(_op)


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def get_order_by_token(token: str) -> Order:
    order = db.session.query(Order).filter_by(access_token=token).first() if token else None
    if not order:
        raise NotFoundError("Order not found", details={"token": token})
    return order


def list_orders(
    *,
    event_id: int | None = None,
    fulfillment_status: str | None = None,
    payment_status: str | None = None,
    created_by_user_id: int | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Order], int]:
    if fulfillment_status and fulfillment_status not in VALID_FULFILLMENT_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(VALID_FULFILLMENT_STATUSES)}",
            details={"status": fulfillment_status},
        )
    if payment_status and payment_status not in VALID_PAYMENT_STATUSES:
        raise ValidationError(
            f"payment_status must be one of: {', '.join(VALID_PAYMENT_STATUSES)}",
            details={"payment_status": payment_status},
        )

    query = db.session.query(Order)
    if event_id is not None:
        query = query.filter(Order.event_id == event_id)
    if fulfillment_status:
        query = query.filter(Order.fulfillment_status == fulfillment_status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if created_by_user_id is not None:
        query = query.filter(Order.created_by_user_id == created_by_user_id)

    total = query.count()
    page = max(1, page)
    limit = max(1, min(limit, 200))
    orders = (
        query.order_by(Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


def order_public_view(order: Order) -> dict:
    """Read-only view behind the customer's QR: lines plus delivery history."""
    data = order.to_dict(include_lines=True)
    data.pop("access_token", None)
    data["url"] = order_url(order.access_token)
    data["event_name"] = order.event.name if order.event else None
    data["deliveries"] = [delivery.to_dict() for delivery in order.deliveries]
    return data


def cancel_order(order_id: int, *, user_id: int, reason: str | None = None) -> Order:
    """
    Move an order to CANCELLED and release what is still reserved.

    Refused for DELIVERED and already CANCELLED orders. Payment state is
    left as it is.
    """
    def _op():
        begin_write_transaction()
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError("Order not found", details={"order_id": order_id})
        if order.fulfillment_status in CLOSED_FULFILLMENT_STATUSES:
            raise OrderClosedError(order_code=order.code, fulfillment_status=order.fulfillment_status)

        for line in order.lines:
            remaining = line.quantity_remaining
            if remaining <= 0:
                continue
            for component_id, quantity in line.component_quantities(remaining):
                release_stock(
                    component_id,
                    order.stock_location_id,
                    quantity,
                    user_id=user_id,
                    order_id=order.id,
                    reason=f"Order {order.code} cancelled",
                )

        order.fulfillment_status = FULFILLMENT_CANCELLED
        order.cancelled_at = utcnow()
        order.cancelled_by_user_id = user_id
        order.cancel_reason = reason
        db.session.commit()
        return order

    return run_with_retry(_op)

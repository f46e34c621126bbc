# Overview: Delivery state machine; records hand-offs at the bar and commits the delivered stock.

from __future__ import annotations

"""
Delivery semantics (authoritative)

- A delivery call names the order by its access token and lists
  (line_id, quantity) pairs. It is all-or-nothing: every precondition is
  checked for every pair before anything is written.
- Preconditions, in order: order exists; order not DELIVERED/CANCELLED;
  payment PAID; location exists; each quantity <= ordered - delivered.
- Delivered quantities only grow. Repeating a confirmed call is refused by
  the remaining-quantity check, so client retries cannot double-deliver.
- Stock is committed from the per-unit components frozen on each order
  line at sale time, never from the current recipe.
"""

from dataclasses import dataclass
from datetime import date

from flask import current_app

from ..extensions import db
from ..errors import (
    NotFoundError,
    OrderClosedError,
    OrderNotPaidError,
    OverDeliveryError,
    ValidationError,
)
from ..models import Delivery, DeliveryLine, Order, StockLocation
from ..models.orders import (
    CLOSED_FULFILLMENT_STATUSES,
    FULFILLMENT_DELIVERED,
    FULFILLMENT_PARTIAL,
    FULFILLMENT_PENDING,
    LINE_DELIVERED,
    LINE_PARTIAL,
    LINE_PENDING,
    PAYMENT_STATUS_PAID,
)
from ..time_utils import business_day_bounds, to_utc_z, utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .inventory_service import commit_stock


@dataclass
class DeliveryResult:
    delivery: Delivery
    order: Order

    def to_dict(self) -> dict:
        return {
            "delivery": self.delivery.to_dict(),
            "order": {
                "id": self.order.id,
                "code": self.order.code,
                "fulfillment_status": self.order.fulfillment_status,
                "delivered_at": to_utc_z(self.order.delivered_at) if self.order.delivered_at else None,
                "lines": [
                    {
                        "id": line.id,
                        "product_name": line.product.name if line.product else None,
                        "quantity": line.quantity,
                        "quantity_delivered": line.quantity_delivered,
                        "status": line.status,
                    }
                    for line in self.order.lines
                ],
            },
        }


def line_status(ordered: int, delivered: int) -> str:
    if delivered <= 0:
        return LINE_PENDING
    if delivered >= ordered:
        return LINE_DELIVERED
    return LINE_PARTIAL


def derive_fulfillment_status(lines) -> str:
    """
    DELIVERED iff every line is fully delivered, PARTIAL iff anything has
    been delivered, PENDING otherwise. CANCELLED is never derived.
    """
    lines = list(lines)
    if lines and all(line.quantity_delivered >= line.quantity for line in lines):
        return FULFILLMENT_DELIVERED
    if any(line.quantity_delivered > 0 for line in lines):
        return FULFILLMENT_PARTIAL
    return FULFILLMENT_PENDING


def _aggregate_items(items) -> dict[int, int]:
    """Sum quantities per line id, preserving first-seen order."""
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("At least one item is required", details={"items": items})

    requested: dict[int, int] = {}
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object", details={"index": index})
        line_id = item.get("line_id")
        quantity = item.get("quantity")
        if isinstance(line_id, bool) or not isinstance(line_id, int):
            raise ValidationError("line_id must be an integer", details={"index": index, "line_id": line_id})
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                "quantity must be a positive integer",
                details={"index": index, "quantity": quantity},
            )
        requested[line_id] = requested.get(line_id, 0) + quantity
    return requested


def record_delivery(
    *,
    order_token: str,
    location_id: int,
    user_id: int,
    items,
    notes: str | None = None,
) -> DeliveryResult:
    """Hand over some or all remaining quantities of an order's lines."""
    def _op():
        begin_write_transaction()

        order = (
            lock_for_update(db.session.query(Order).filter_by(access_token=order_token)).first()
            if order_token else None
        )
        if not order:
            raise NotFoundError("Order not found", details={"token": order_token})
        if order.fulfillment_status in CLOSED_FULFILLMENT_STATUSES:
            raise OrderClosedError(order_code=order.code, fulfillment_status=order.fulfillment_status)
        if order.payment_status != PAYMENT_STATUS_PAID:
            raise OrderNotPaidError(order_code=order.code, payment_status=order.payment_status)

        location = db.session.get(StockLocation, location_id)
        if not location:
            raise NotFoundError("Location not found", details={"location_id": location_id})

        requested = _aggregate_items(items)
        lines_by_id = {line.id: line for line in order.lines}

        for line_id, quantity in requested.items():
            line = lines_by_id.get(line_id)
            if line is None:
                raise ValidationError(
                    "Line does not belong to this order",
                    details={"line_id": line_id, "order_code": order.code},
                )
            if quantity > line.quantity_remaining:
                raise OverDeliveryError(
                    line_id=line.id,
                    product_name=line.product.name,
                    requested=quantity,
                    remaining=line.quantity_remaining,
                )

        now = utcnow()
        delivery = Delivery(
            order_id=order.id,
            location_id=location.id,
            user_id=user_id,
            notes=notes,
            created_at=now,
        )
        db.session.add(delivery)
        db.session.flush()

        for line_id, quantity in requested.items():
            line = lines_by_id[line_id]
            db.session.add(DeliveryLine(delivery_id=delivery.id, order_line_id=line.id, quantity=quantity))

            line.quantity_delivered += quantity
            line.status = line_status(line.quantity, line.quantity_delivered)

            for component_id, component_quantity in line.component_quantities(quantity):
                commit_stock(
                    component_id,
                    order.stock_location_id,
                    component_quantity,
                    user_id=user_id,
                    order_id=order.id,
                    delivery_id=delivery.id,
                    reason=f"Delivery for order {order.code}",
                )

        previous = order.fulfillment_status
        order.fulfillment_status = derive_fulfillment_status(order.lines)
        if order.fulfillment_status == FULFILLMENT_DELIVERED and previous != FULFILLMENT_DELIVERED:
            order.delivered_at = now

        db.session.commit()
        return DeliveryResult(delivery=delivery, order=order)

    return run_with_retry(_op)


def list_deliveries(
    *,
    location_id: int | None = None,
    user_id: int | None = None,
    order_id: int | None = None,
    day: date | None = None,
    limit: int = 100,
) -> list[Delivery]:
    """Most recent first. `day` is a business-local calendar date."""
    query = db.session.query(Delivery)
    if location_id is not None:
        query = query.filter(Delivery.location_id == location_id)
    if user_id is not None:
        query = query.filter(Delivery.user_id == user_id)
    if order_id is not None:
        query = query.filter(Delivery.order_id == order_id)
    if day is not None:
        start, end = business_day_bounds(current_app.config["BUSINESS_TIMEZONE"], day)
        query = query.filter(Delivery.created_at >= start, Delivery.created_at < end)

    limit = max(1, min(limit, 500))
    return query.order_by(Delivery.id.desc()).limit(limit).all()

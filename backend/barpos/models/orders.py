from __future__ import annotations

from ..extensions import db
from barpos.time_utils import to_utc_z


PAYMENT_METHOD_CASH = "CASH"
PAYMENT_METHOD_TRANSFER = "TRANSFER"
PAYMENT_METHOD_BALANCE = "BALANCE"

VALID_PAYMENT_METHODS = [
    PAYMENT_METHOD_CASH,
    PAYMENT_METHOD_TRANSFER,
    PAYMENT_METHOD_BALANCE,
]

# Methods settled at the counter; anything else waits for a supervisor.
IMMEDIATE_PAYMENT_METHODS = [PAYMENT_METHOD_CASH, PAYMENT_METHOD_BALANCE]

PAYMENT_STATUS_PENDING_APPROVAL = "PENDING_APPROVAL"
PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_REJECTED = "REJECTED"

VALID_PAYMENT_STATUSES = [
    PAYMENT_STATUS_PENDING_APPROVAL,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_REJECTED,
]

FULFILLMENT_PENDING = "PENDING"
FULFILLMENT_PARTIAL = "PARTIAL"
FULFILLMENT_DELIVERED = "DELIVERED"
FULFILLMENT_CANCELLED = "CANCELLED"

VALID_FULFILLMENT_STATUSES = [
    FULFILLMENT_PENDING,
    FULFILLMENT_PARTIAL,
    FULFILLMENT_DELIVERED,
    FULFILLMENT_CANCELLED,
]

# Terminal fulfillment states: no further deliveries are accepted.
CLOSED_FULFILLMENT_STATUSES = [FULFILLMENT_DELIVERED, FULFILLMENT_CANCELLED]

LINE_PENDING = "PENDING"
LINE_PARTIAL = "PARTIAL"
LINE_DELIVERED = "DELIVERED"


class Order(db.Model):
    """
    A customer purchase taken at a register.

    Two independent state machines live on the order:
    - payment_status: PENDING_APPROVAL -> PAID | REJECTED (terminal)
    - fulfillment_status: PENDING -> PARTIAL -> DELIVERED, or CANCELLED

    Stock for every line is reserved at stock_location_id when the order is
    created and committed from there as deliveries happen.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_event_created", "event_id", "created_at"),
        db.Index("ix_orders_payment_status", "payment_method", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human readable code, e.g. P-20261019-0042
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    # Unguessable token embedded in the customer's QR
    access_token = db.Column(db.String(64), nullable=False, unique=True, index=True)

    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False, index=True)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=False, index=True)
    stock_location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    payment_method = db.Column(db.String(16), nullable=False)
    payment_status = db.Column(db.String(24), nullable=False, default=PAYMENT_STATUS_PENDING_APPROVAL)
    fulfillment_status = db.Column(db.String(16), nullable=False, default=FULFILLMENT_PENDING, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Transfer review (set on approve and on reject)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)

    balance_account_id = db.Column(db.Integer, db.ForeignKey("balance_accounts.id"), nullable=True)

    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderLine.id",
    )
    deliveries = db.relationship(
        "Delivery",
        back_populates="order",
        lazy=True,
        order_by="Delivery.id",
    )
    event = db.relationship("Event")
    register = db.relationship("Register")
    balance_account = db.relationship("BalanceAccount")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PAYMENT_STATUS_PAID

    def __repr__(self) -> str:
        return (
            f"<Order id={self.id} code={self.code!r} payment={self.payment_status} "
            f"fulfillment={self.fulfillment_status}>"
        )

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "access_token": self.access_token,
            "event_id": self.event_id,
            "register_id": self.register_id,
            "stock_location_id": self.stock_location_id,
            "created_by_user_id": self.created_by_user_id,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "fulfillment_status": self.fulfillment_status,
            "subtotal_cents": self.subtotal_cents,
            "total_cents": self.total_cents,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "approval_notes": self.approval_notes,
            "balance_account_id": self.balance_account_id,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """
    One product on an order.

    selected_options maps each choice group of a combo to the component code
    the customer picked, e.g. {"Mixer": "COLA"}. components holds what one
    unit consumes, resolved when the order was placed.
    """
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
        db.CheckConstraint(
            "quantity_delivered >= 0 AND quantity_delivered <= quantity",
            name="ck_order_lines_delivered_bounds",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    quantity_delivered = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=LINE_PENDING)

    # Price snapshot at order time
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    selected_options = db.Column(db.JSON, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", back_populates="lines")
    product = db.relationship("Product")
    components = db.relationship(
        "OrderLineComponent",
        back_populates="line",
        order_by="OrderLineComponent.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def quantity_remaining(self) -> int:
        return self.quantity - self.quantity_delivered

    def component_quantities(self, units: int) -> list[tuple[int, int]]:
        """(component_id, quantity) pairs consumed by `units` of this line."""
        return [(c.component_id, c.quantity_per_unit * units) for c in self.components]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_code": self.product.code if self.product else None,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "quantity_delivered": self.quantity_delivered,
            "quantity_remaining": self.quantity_remaining,
            "status": self.status,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "selected_options": self.selected_options or {},
        }


class OrderLineComponent(db.Model):
    """
    Stock consumed by one unit of an order line, frozen at sale time.

    Deliveries commit and cancellations release from these rows, so a
    recipe edited after the sale never changes what the order owes.
    """
    __tablename__ = "order_line_components"
    __table_args__ = (
        db.CheckConstraint("quantity_per_unit > 0", name="ck_order_line_components_quantity_positive"),
        db.UniqueConstraint("order_line_id", "component_id", name="uq_order_line_components_line_component"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_line_id = db.Column(db.Integer, db.ForeignKey("order_lines.id"), nullable=False, index=True)
    component_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity_per_unit = db.Column(db.Integer, nullable=False)

    line = db.relationship("OrderLine", back_populates="components")
    component = db.relationship("Product")


class Delivery(db.Model):
    """Immutable record of items handed over at a bar."""
    __tablename__ = "deliveries"
    __table_args__ = (
        db.Index("ix_deliveries_location_created", "location_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="deliveries")
    lines = db.relationship(
        "DeliveryLine",
        back_populates="delivery",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="DeliveryLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "order_code": self.order.code if self.order else None,
            "location_id": self.location_id,
            "user_id": self.user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class DeliveryLine(db.Model):
    __tablename__ = "delivery_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_delivery_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=False, index=True)
    order_line_id = db.Column(db.Integer, db.ForeignKey("order_lines.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    delivery = db.relationship("Delivery", back_populates="lines")
    order_line = db.relationship("OrderLine")

    def to_dict(self) -> dict:
        product = self.order_line.product if self.order_line else None
        return {
            "id": self.id,
            "delivery_id": self.delivery_id,
            "order_line_id": self.order_line_id,
            "product_id": product.id if product else None,
            "product_name": product.name if product else None,
            "quantity": self.quantity,
        }

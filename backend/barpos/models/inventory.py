from __future__ import annotations

from ..extensions import db
from barpos.time_utils import to_utc_z


# Movement types. Every change to an InventoryRecord appends exactly one row.
MOVEMENT_INBOUND = "INBOUND"
MOVEMENT_RESERVE = "RESERVE"
MOVEMENT_COMMIT = "COMMIT"
MOVEMENT_RELEASE = "RELEASE"
MOVEMENT_TRANSFER = "TRANSFER"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_WASTE = "WASTE"

VALID_MOVEMENT_TYPES = [
    MOVEMENT_INBOUND,
    MOVEMENT_RESERVE,
    MOVEMENT_COMMIT,
    MOVEMENT_RELEASE,
    MOVEMENT_TRANSFER,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_WASTE,
]

# Movement types an operator may post directly (the rest are written by orders/deliveries)
MANUAL_MOVEMENT_TYPES = [
    MOVEMENT_INBOUND,
    MOVEMENT_TRANSFER,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_WASTE,
]


class InventoryRecord(db.Model):
    """
    Stock of one product at one location.

    quantity is what is physically on the shelf. reserved is the part of it
    promised to orders that have not been handed over yet, so
    available = quantity - reserved is what a new order may claim.

    Invariant (while enforcement is on): 0 <= reserved <= quantity.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_inventory_records_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_records_quantity_nonneg"),
        db.CheckConstraint("reserved >= 0", name="ck_inventory_records_reserved_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")
    location = db.relationship("StockLocation", backref=db.backref("inventory_records", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available(self) -> int:
        return self.quantity - self.reserved

    @property
    def is_low(self) -> bool:
        return self.available <= self.low_stock_threshold

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord product_id={self.product_id} location_id={self.location_id} "
            f"quantity={self.quantity} reserved={self.reserved}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_code": self.product.code if self.product else None,
            "product_name": self.product.name if self.product else None,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "reserved": self.reserved,
            "available": self.available,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low": self.is_low,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock audit trail.

    quantity_delta is signed from the point of view of on-hand quantity:
    INBOUND is positive, COMMIT and WASTE negative. RESERVE and RELEASE
    carry the amount reserved or released (on-hand is untouched).
    TRANSFER carries the moved amount with both locations set.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_type_created", "movement_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)

    from_location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=True, index=True)

    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_code": self.product.code if self.product else None,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "delivery_id": self.delivery_id,
            "reason": self.reason,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }

from __future__ import annotations

from ..extensions import db
from barpos.time_utils import to_utc_z


LOCATION_KIND_WAREHOUSE = "WAREHOUSE"
LOCATION_KIND_BAR = "BAR"

VALID_LOCATION_KINDS = [LOCATION_KIND_WAREHOUSE, LOCATION_KIND_BAR]


class Event(db.Model):
    """A night or festival the bar is operating. Orders and balances belong to one."""
    __tablename__ = "events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    starts_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ends_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Event id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "starts_at": to_utc_z(self.starts_at) if self.starts_at else None,
            "ends_at": to_utc_z(self.ends_at) if self.ends_at else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StockLocation(db.Model):
    """
    Physical place holding stock: a back-of-house warehouse or a bar.

    Bars double as delivery points: a Delivery names the bar that handed the
    drinks over.
    """
    __tablename__ = "stock_locations"
    __table_args__ = (
        db.Index("ix_stock_locations_event_active", "event_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    kind = db.Column(db.String(16), nullable=False, default=LOCATION_KIND_WAREHOUSE)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    event = db.relationship("Event", backref=db.backref("locations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "name": self.name,
            "kind": self.kind,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Register(db.Model):
    """Cash desk where orders are taken."""
    __tablename__ = "registers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    # Where this register's orders reserve stock; falls back to the event's
    # first active location when unset.
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    event = db.relationship("Event", backref=db.backref("registers", lazy=True))
    location = db.relationship("StockLocation")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "name": self.name,
            "location_id": self.location_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

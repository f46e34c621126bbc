# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

from __future__ import annotations

"""
BarPOS Inventory Invariants (authoritative)

Stock model:
- One InventoryRecord per (product, location) holds `quantity` (on the shelf)
  and `reserved` (promised to open orders). available = quantity - reserved.
- Only SIMPLE and BASE products hold records. COMPOSITE stock is derived
  from its components and is never stored.

Lifecycle of a sold unit:
- Order creation RESERVES (reserved += n). Nothing leaves the shelf yet.
- Delivery COMMITS (quantity -= n, reserved -= n).
- Cancellation RELEASES what was reserved and never delivered (reserved -= n).

Manual operations:
- INBOUND receives stock into a location (creates the record if needed).
- ADJUSTMENT / WASTE change quantity by a signed delta; quantity may never
  go below zero.
- TRANSFER moves quantity between two locations. Reservations at the source
  are not considered; it is a quantity-only move.

Audit:
- Every mutation appends exactly one StockMovement in the same transaction.
  Records are never written outside this module.

Enforcement switch:
- With INVENTORY_ENFORCEMENT off, reserve/commit/release neither check nor
  touch records but still append their movement. Manual operations are
  unaffected.

Transactions:
- Every mutation takes commit=. With commit=False the caller owns the
  transaction (order creation, delivery); with commit=True the operation
  opens its own write transaction, commits, and retries on lock conflicts.
"""

from datetime import date

from flask import current_app

from ..extensions import db
from ..errors import (
    InsufficientStockError,
    InventoryNotConfiguredError,
    NotFoundError,
    ValidationError,
)
from ..models import InventoryRecord, Product, StockLocation, StockMovement
from ..models.catalog import PRODUCT_KIND_COMPOSITE
from ..models.inventory import (
    MANUAL_MOVEMENT_TYPES,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_COMMIT,
    MOVEMENT_INBOUND,
    MOVEMENT_RELEASE,
    MOVEMENT_RESERVE,
    MOVEMENT_TRANSFER,
    MOVEMENT_WASTE,
    VALID_MOVEMENT_TYPES,
)
from ..time_utils import business_day_bounds, utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry


def enforcement_enabled() -> bool:
    return bool(current_app.config.get("INVENTORY_ENFORCEMENT", True))


def _run(op, commit: bool):
    if not commit:
        return op()

    def _op():
        begin_write_transaction()
        result = op()
        db.session.commit()
        return result

    return run_with_retry(_op)


def _require_positive_int(value, field: str = "quantity") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", details={field: value})
    return value


def _get_stocked_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    if product.kind == PRODUCT_KIND_COMPOSITE:
        raise ValidationError(
            f"{product.name} is a combo; its stock is tracked through its components",
            details={"product_id": product.id, "kind": product.kind},
        )
    return product


def _get_location(location_id: int) -> StockLocation:
    location = db.session.get(StockLocation, location_id)
    if not location:
        raise NotFoundError("Location not found", details={"location_id": location_id})
    return location


def _locked_record(product_id: int, location_id: int) -> InventoryRecord | None:
    return lock_for_update(
        db.session.query(InventoryRecord).filter_by(product_id=product_id, location_id=location_id)
    ).first()


def _require_record(product: Product, location_id: int) -> InventoryRecord:
    record = _locked_record(product.id, location_id)
    if not record:
        raise InventoryNotConfiguredError(
            product_id=product.id,
            product_name=product.name,
            location_id=location_id,
        )
    return record


def _append_movement(**fields) -> StockMovement:
    movement = StockMovement(created_at=utcnow(), **fields)
    db.session.add(movement)
    db.session.flush()
    return movement


# =============================================================================
# Order-driven operations (reserve / commit / release)
# =============================================================================

def reserve_stock(
    product_id: int,
    location_id: int,
    quantity: int,
    *,
    user_id: int | None = None,
    order_id: int | None = None,
    reason: str | None = None,
    commit: bool = False,
) -> StockMovement:
    """
    Hold `quantity` units against an open order.

    Raises InventoryNotConfiguredError when the pair has no record and
    InsufficientStockError when available < quantity.
    """
    def _op():
        _require_positive_int(quantity)
        product = _get_stocked_product(product_id)

        if enforcement_enabled():
            record = _require_record(product, location_id)
            if record.available < quantity:
                raise InsufficientStockError(
                    product_id=product.id,
                    product_name=product.name,
                    location_id=location_id,
                    available=record.available,
                    requested=quantity,
                )
            record.reserved += quantity

        return _append_movement(
            product_id=product.id,
            movement_type=MOVEMENT_RESERVE,
            quantity_delta=quantity,
            to_location_id=location_id,
            user_id=user_id,
            order_id=order_id,
            reason=reason or "Reserved for order",
        )

    return _run(_op, commit)


def commit_stock(
    product_id: int,
    location_id: int,
    quantity: int,
    *,
    user_id: int | None = None,
    order_id: int | None = None,
    delivery_id: int | None = None,
    reason: str | None = None,
    commit: bool = False,
) -> StockMovement:
    """Take `quantity` reserved units off the shelf at hand-off."""
    def _op():
        _require_positive_int(quantity)
        product = _get_stocked_product(product_id)

        if enforcement_enabled():
            record = _require_record(product, location_id)
            if record.quantity < quantity:
                raise InsufficientStockError(
                    product_id=product.id,
                    product_name=product.name,
                    location_id=location_id,
                    available=record.quantity,
                    requested=quantity,
                )
            record.quantity -= quantity
            record.reserved = max(record.reserved - quantity, 0)

        return _append_movement(
            product_id=product.id,
            movement_type=MOVEMENT_COMMIT,
            quantity_delta=-quantity,
            from_location_id=location_id,
            user_id=user_id,
            order_id=order_id,
            delivery_id=delivery_id,
            reason=reason or "Delivered",
        )

    return _run(_op, commit)


def release_stock(
    product_id: int,
    location_id: int,
    quantity: int,
    *,
    user_id: int | None = None,
    order_id: int | None = None,
    reason: str | None = None,
    commit: bool = False,
) -> StockMovement:
    """Return reserved-but-undelivered units to available stock."""
    def _op():
        _require_positive_int(quantity)
        product = _get_stocked_product(product_id)

        if enforcement_enabled():
            record = _require_record(product, location_id)
            record.reserved = max(record.reserved - quantity, 0)

        return _append_movement(
            product_id=product.id,
            movement_type=MOVEMENT_RELEASE,
            quantity_delta=quantity,
            to_location_id=location_id,
            user_id=user_id,
            order_id=order_id,
            reason=reason or "Released on cancellation",
        )

    return _run(_op, commit)


# =============================================================================
# Manual operations (inbound / adjust / transfer)
# =============================================================================

def receive_stock(
    product_id: int,
    location_id: int,
    quantity: int,
    *,
    user_id: int | None = None,
    low_stock_threshold: int | None = None,
    reason: str | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> InventoryRecord:
    """INBOUND: add stock to a location, creating its record on first receipt."""
    def _op():
        _require_positive_int(quantity)
        product = _get_stocked_product(product_id)
        _get_location(location_id)

        record = _locked_record(product.id, location_id)
        if not record:
            record = InventoryRecord(
                product_id=product.id,
                location_id=location_id,
                quantity=0,
                reserved=0,
                low_stock_threshold=(
                    low_stock_threshold
                    if low_stock_threshold is not None
                    else current_app.config["DEFAULT_LOW_STOCK_THRESHOLD"]
                ),
            )
            db.session.add(record)
        elif low_stock_threshold is not None:
            record.low_stock_threshold = low_stock_threshold
        record.quantity += quantity

        _append_movement(
            product_id=product.id,
            movement_type=MOVEMENT_INBOUND,
            quantity_delta=quantity,
            to_location_id=location_id,
            user_id=user_id,
            reason=reason or "Stock received",
            notes=notes,
        )
        return record

    return _run(_op, commit)


def adjust_stock(
    product_id: int,
    location_id: int,
    delta: int,
    reason: str,
    *,
    user_id: int | None = None,
    movement_type: str = MOVEMENT_ADJUSTMENT,
    notes: str | None = None,
    commit: bool = True,
) -> InventoryRecord:
    """
    Manual correction by a signed delta (ADJUSTMENT) or a loss (WASTE).

    Fails if the resulting quantity would be negative.
    """
    def _op():
        if movement_type not in (MOVEMENT_ADJUSTMENT, MOVEMENT_WASTE):
            raise ValidationError(
                "movement_type must be ADJUSTMENT or WASTE",
                details={"movement_type": movement_type},
            )
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValidationError("delta must be a non-zero integer", details={"delta": delta})
        if movement_type == MOVEMENT_WASTE and delta > 0:
            raise ValidationError("WASTE must decrease stock", details={"delta": delta})
        if not reason or not str(reason).strip():
            raise ValidationError("reason is required", details={"reason": reason})

        product = _get_stocked_product(product_id)
        record = _require_record(product, location_id)

        new_quantity = record.quantity + delta
        if new_quantity < 0:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                location_id=location_id,
                available=record.quantity,
                requested=-delta,
            )
        record.quantity = new_quantity

        _append_movement(
            product_id=product.id,
            movement_type=movement_type,
            quantity_delta=delta,
            from_location_id=location_id if delta < 0 else None,
            to_location_id=location_id if delta > 0 else None,
            user_id=user_id,
            reason=str(reason).strip(),
            notes=notes,
        )
        return record

    return _run(_op, commit)


def transfer_stock(
    product_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity: int,
    *,
    user_id: int | None = None,
    reason: str | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> tuple[InventoryRecord, InventoryRecord]:
    """
    Move on-hand quantity between two locations.

    The destination record is created with the default low-stock threshold
    when absent. Returns (source, destination).
    """
    def _op():
        _require_positive_int(quantity)
        if from_location_id == to_location_id:
            raise ValidationError(
                "Source and destination must differ",
                details={"from_location_id": from_location_id, "to_location_id": to_location_id},
            )
        product = _get_stocked_product(product_id)
        _get_location(from_location_id)
        _get_location(to_location_id)

        source = _locked_record(product.id, from_location_id)
        if not source or source.quantity < quantity:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                location_id=from_location_id,
                available=source.quantity if source else 0,
                requested=quantity,
            )

        destination = _locked_record(product.id, to_location_id)
        if not destination:
            destination = InventoryRecord(
                product_id=product.id,
                location_id=to_location_id,
                quantity=0,
                reserved=0,
                low_stock_threshold=current_app.config["DEFAULT_LOW_STOCK_THRESHOLD"],
            )
            db.session.add(destination)

        source.quantity -= quantity
        destination.quantity += quantity

        _append_movement(
            product_id=product.id,
            movement_type=MOVEMENT_TRANSFER,
            quantity_delta=quantity,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            user_id=user_id,
            reason=reason or "Transfer between locations",
            notes=notes,
        )
        return source, destination

    return _run(_op, commit)


def record_manual_movement(
    *,
    movement_type: str,
    product_id: int,
    quantity: int,
    user_id: int | None = None,
    location_id: int | None = None,
    from_location_id: int | None = None,
    to_location_id: int | None = None,
    reason: str | None = None,
    notes: str | None = None,
) -> dict:
    """
    Dispatch an operator-posted movement to the matching ledger operation.

    quantity is always positive here; ADJUSTMENT takes a signed quantity.
    """
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise ValidationError(
            f"movement_type must be one of: {', '.join(MANUAL_MOVEMENT_TYPES)}",
            details={"movement_type": movement_type},
        )

    if movement_type == MOVEMENT_INBOUND:
        record = receive_stock(
            product_id,
            to_location_id or location_id,
            quantity,
            user_id=user_id,
            reason=reason,
            notes=notes,
        )
        return {"records": [record.to_dict()]}

    if movement_type == MOVEMENT_TRANSFER:
        source, destination = transfer_stock(
            product_id,
            from_location_id,
            to_location_id,
            quantity,
            user_id=user_id,
            reason=reason,
            notes=notes,
        )
        return {"records": [source.to_dict(), destination.to_dict()]}

    if movement_type == MOVEMENT_WASTE:
        delta = -_require_positive_int(quantity)
    else:
        delta = quantity
    record = adjust_stock(
        product_id,
        location_id or from_location_id or to_location_id,
        delta,
        reason,
        user_id=user_id,
        movement_type=movement_type,
        notes=notes,
    )
    return {"records": [record.to_dict()]}


# =============================================================================
# Read side
# =============================================================================

def get_inventory_record(product_id: int, location_id: int) -> InventoryRecord | None:
    return db.session.query(InventoryRecord).filter_by(product_id=product_id, location_id=location_id).first()


def list_stock(*, location_id: int | None = None, event_id: int | None = None) -> list[InventoryRecord]:
    query = db.session.query(InventoryRecord).join(StockLocation, StockLocation.id == InventoryRecord.location_id)
    if location_id is not None:
        query = query.filter(InventoryRecord.location_id == location_id)
    if event_id is not None:
        query = query.filter(StockLocation.event_id == event_id, StockLocation.is_active.is_(True))
    return query.order_by(InventoryRecord.location_id.asc(), InventoryRecord.product_id.asc()).all()


def list_low_stock(event_id: int) -> list[InventoryRecord]:
    """Records at the event's active locations with available <= threshold."""
    return (
        db.session.query(InventoryRecord)
        .join(StockLocation, StockLocation.id == InventoryRecord.location_id)
        .filter(
            StockLocation.event_id == event_id,
            StockLocation.is_active.is_(True),
            (InventoryRecord.quantity - InventoryRecord.reserved) <= InventoryRecord.low_stock_threshold,
        )
        .order_by(InventoryRecord.location_id.asc(), InventoryRecord.product_id.asc())
        .all()
    )


def list_movements(
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    location_id: int | None = None,
    order_id: int | None = None,
    day: date | None = None,
    limit: int = 100,
) -> list[StockMovement]:
    """Most recent first. `day` is a business-local calendar date."""
    if movement_type and movement_type not in VALID_MOVEMENT_TYPES:
        raise ValidationError(
            f"movement_type must be one of: {', '.join(VALID_MOVEMENT_TYPES)}",
            details={"movement_type": movement_type},
        )

    query = db.session.query(StockMovement)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type:
        query = query.filter(StockMovement.movement_type == movement_type)
    if location_id is not None:
        query = query.filter(
            (StockMovement.from_location_id == location_id) | (StockMovement.to_location_id == location_id)
        )
    if order_id is not None:
        query = query.filter(StockMovement.order_id == order_id)
    if day is not None:
        start, end = business_day_bounds(current_app.config["BUSINESS_TIMEZONE"], day)
        query = query.filter(StockMovement.created_at >= start, StockMovement.created_at < end)

    limit = max(1, min(int(limit), 500))
    return query.order_by(StockMovement.id.desc()).limit(limit).all()

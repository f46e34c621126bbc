# Overview: Transfer payment review; the only transition out of PENDING_APPROVAL.

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError, NotTransferPaymentError, PaymentAlreadyProcessedError
from ..models import Order
from ..models.orders import (
    PAYMENT_METHOD_TRANSFER,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING_APPROVAL,
    PAYMENT_STATUS_REJECTED,
)
from ..time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry


def approve_transfer_payment(
    order_id: int,
    approved: bool,
    *,
    user_id: int,
    notes: str | None = None,
) -> Order:
    """
    Approve (-> PAID) or reject (-> REJECTED) a pending transfer.

    PAID and REJECTED are terminal: a second review of the same order fails
    with PaymentAlreadyProcessedError and changes nothing. Rejection does not
    touch reservations; cancel the order to release them.
    """
    def _op():
        begin_write_transaction()
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError("Order not found", details={"order_id": order_id})
        if order.payment_method != PAYMENT_METHOD_TRANSFER:
            raise NotTransferPaymentError(order_id=order.id, payment_method=order.payment_method)
        if order.payment_status != PAYMENT_STATUS_PENDING_APPROVAL:
            raise PaymentAlreadyProcessedError(order_id=order.id, payment_status=order.payment_status)

        now = utcnow()
        if approved:
            order.payment_status = PAYMENT_STATUS_PAID
            order.paid_at = now
        else:
            order.payment_status = PAYMENT_STATUS_REJECTED
        order.approved_by_user_id = user_id
        order.approved_at = now
        order.approval_notes = notes
        db.session.commit()
        return order

    return run_with_retry(_op)


def list_pending_transfers(*, event_id: int | None = None, limit: int = 100) -> list[Order]:
    """Transfers awaiting review, oldest first."""
    query = db.session.query(Order).filter(
        Order.payment_method == PAYMENT_METHOD_TRANSFER,
        Order.payment_status == PAYMENT_STATUS_PENDING_APPROVAL,
    )
    if event_id is not None:
        query = query.filter(Order.event_id == event_id)
    limit = max(1, min(limit, 500))
    return query.order_by(Order.id.asc()).limit(limit).all()

"""
Transfer payment approval state machine.
"""

import pytest

from barpos.errors import NotFoundError, NotTransferPaymentError, PaymentAlreadyProcessedError
from barpos.extensions import db
from barpos.services import order_service, payment_service


@pytest.fixture
def transfer_order(event, register, cashier, stocked_bar, beer):
    return order_service.create_order(
        event_id=event.id,
        register_id=register.id,
        user_id=cashier.id,
        payment_method="TRANSFER",
        lines=[{"product_id": beer.id, "quantity": 1}],
    )


class TestApproveTransfer:

    def test_approve_marks_paid(self, transfer_order, supervisor):
        order = payment_service.approve_transfer_payment(
            transfer_order.id, True, user_id=supervisor.id, notes="Seen in bank app",
        )

        assert order.payment_status == "PAID"
        assert order.paid_at is not None
        assert order.approved_by_user_id == supervisor.id
        assert order.approved_at is not None
        assert order.approval_notes == "Seen in bank app"

    def test_reject_marks_rejected(self, transfer_order, supervisor):
        order = payment_service.approve_transfer_payment(transfer_order.id, False, user_id=supervisor.id)

        assert order.payment_status == "REJECTED"
        assert order.paid_at is None
        assert order.approved_by_user_id == supervisor.id

    @pytest.mark.parametrize("first", [True, False])
    def test_second_review_is_refused(self, transfer_order, supervisor, admin, first):
        payment_service.approve_transfer_payment(transfer_order.id, first, user_id=supervisor.id)

        with pytest.raises(PaymentAlreadyProcessedError):
            payment_service.approve_transfer_payment(transfer_order.id, not first, user_id=admin.id)

        order = db.session.get(type(transfer_order), transfer_order.id)
        db.session.refresh(order)
        assert order.approved_by_user_id == supervisor.id

    def test_cash_orders_cannot_be_reviewed(self, event, register, cashier, supervisor, stocked_bar, beer):
        order = order_service.create_order(
            event_id=event.id,
            register_id=register.id,
            user_id=cashier.id,
            payment_method="CASH",
            lines=[{"product_id": beer.id, "quantity": 1}],
        )

        with pytest.raises(NotTransferPaymentError):
            payment_service.approve_transfer_payment(order.id, True, user_id=supervisor.id)

    def test_unknown_order(self, supervisor):
        with pytest.raises(NotFoundError):
            payment_service.approve_transfer_payment(999_999, True, user_id=supervisor.id)

    def test_rejection_keeps_reservation(self, transfer_order, supervisor, stocked_bar, beer):
        from barpos.services import inventory_service

        payment_service.approve_transfer_payment(transfer_order.id, False, user_id=supervisor.id)

        record = inventory_service.get_inventory_record(beer.id, stocked_bar.id)
        db.session.refresh(record)
        assert record.reserved == 1


class TestPendingTransfers:

    def test_lists_only_pending_oldest_first(self, event, register, cashier, supervisor, stocked_bar, beer):
        orders = [
            order_service.create_order(
                event_id=event.id,
                register_id=register.id,
                user_id=cashier.id,
                payment_method="TRANSFER",
                lines=[{"product_id": beer.id, "quantity": 1}],
            )
            for _ in range(3)
        ]
        payment_service.approve_transfer_payment(orders[1].id, True, user_id=supervisor.id)

        pending = payment_service.list_pending_transfers(event_id=event.id)

        assert [o.id for o in pending] == [orders[0].id, orders[2].id]

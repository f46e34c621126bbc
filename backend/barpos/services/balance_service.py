# Overview: Prepaid QR balance accounts; creation, validation, charges and top-ups.

from __future__ import annotations

import uuid
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import (
    BalanceAccountExpiredError,
    BalanceAccountUnavailableError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from ..models import BalanceAccount, BalanceTransaction, Event, Order
from ..models.balances import (
    ACCOUNT_STATUS_ACTIVE,
    ACCOUNT_STATUS_BLOCKED,
    ACCOUNT_STATUS_DEPLETED,
    ACCOUNT_STATUS_EXPIRED,
    TRANSACTION_CHARGE,
    TRANSACTION_LOAD,
    VALID_ACCOUNT_STATUSES,
)
from ..time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .document_service import BALANCE_SEQUENCE, next_daily_code


_UNAVAILABLE_MESSAGES = {
    ACCOUNT_STATUS_DEPLETED: "Balance account depleted (balance: 0.00)",
    ACCOUNT_STATUS_BLOCKED: "Balance account blocked",
    ACCOUNT_STATUS_EXPIRED: "Balance account expired",
}


def generate_access_token() -> str:
    return str(uuid.uuid4())


def balance_url(token: str) -> str:
    """Public link encoded in the balance card's QR."""
    base = current_app.config["PUBLIC_BASE_URL"].rstrip("/")
    return f"{base}/qr-consumo/{token}"


def _require_amount(value, field: str = "amount_cents") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer (cents)", details={field: value})
    return value


def _get_account_by_token(token: str, *, lock: bool = False) -> BalanceAccount:
    if not token:
        raise ValidationError("Balance token is required", details={"token": token})
    query = db.session.query(BalanceAccount).filter_by(access_token=token)
    if lock:
        query = lock_for_update(query)
    account = query.first()
    if not account:
        raise NotFoundError("Balance account not found", details={"token": token})
    return account


def _is_past_expiry(account: BalanceAccount, now: datetime | None = None) -> bool:
    return account.expires_at is not None and account.expires_at < (now or utcnow())


def ensure_chargeable(account: BalanceAccount, required_amount_cents: int | None = None) -> None:
    """
    Raise unless `account` may be charged `required_amount_cents`.

    Does not persist anything; see validate_account for lazy expiry.
    """
    if account.status != ACCOUNT_STATUS_ACTIVE:
        raise BalanceAccountUnavailableError(
            _UNAVAILABLE_MESSAGES.get(account.status, "Balance account unavailable"),
            account_code=account.code,
            status=account.status,
        )
    if _is_past_expiry(account):
        raise BalanceAccountExpiredError(account_code=account.code)
    if required_amount_cents is not None and required_amount_cents > account.balance_cents:
        raise InsufficientBalanceError(
            account_code=account.code,
            balance_cents=account.balance_cents,
            required_cents=required_amount_cents,
        )


def create_account(
    *,
    event_id: int,
    initial_amount_cents: int,
    user_id: int,
    holder_name: str | None = None,
    notes: str | None = None,
    expires_at: datetime | None = None,
) -> BalanceAccount:
    """Issue a new balance card with its initial LOAD transaction."""
    def _op():
        _require_amount(initial_amount_cents, "initial_amount_cents")
        begin_write_transaction()

        event = db.session.get(Event, event_id)
        if not event or not event.is_active:
            raise ValidationError("Event is not valid", details={"event_id": event_id})

        code = next_daily_code(
            sequence_key=BALANCE_SEQUENCE,
            prefix=current_app.config["BALANCE_CODE_PREFIX"],
        )
        account = BalanceAccount(
            code=code,
            access_token=generate_access_token(),
            event_id=event.id,
            initial_amount_cents=initial_amount_cents,
            balance_cents=initial_amount_cents,
            status=ACCOUNT_STATUS_ACTIVE,
            holder_name=holder_name,
            notes=notes,
            expires_at=expires_at,
            created_by_user_id=user_id,
        )
        db.session.add(account)
        db.session.flush()

        db.session.add(BalanceTransaction(
            account_id=account.id,
            transaction_type=TRANSACTION_LOAD,
            amount_cents=initial_amount_cents,
            balance_before_cents=0,
            balance_after_cents=initial_amount_cents,
            description="Initial load",
            user_id=user_id,
            created_at=utcnow(),
        ))
        db.session.commit()
        return account

    return run_with_retry(_op)


def validate_account(token: str, required_amount_cents: int | None = None) -> BalanceAccount:
    """
    Look up an account by token and check it can pay.

    An ACTIVE account past its expiry is marked EXPIRED (persisted) before
    BalanceAccountExpiredError is raised.
    """
    if required_amount_cents is not None:
        _require_amount(required_amount_cents, "required_amount_cents")

    account = _get_account_by_token(token)

    if account.status == ACCOUNT_STATUS_ACTIVE and _is_past_expiry(account):
        def _op():
            begin_write_transaction()
            locked = lock_for_update(db.session.query(BalanceAccount).filter_by(id=account.id)).first()
            if locked.status == ACCOUNT_STATUS_ACTIVE:
                locked.status = ACCOUNT_STATUS_EXPIRED
            db.session.commit()

        run_with_retry(_op)
        raise BalanceAccountExpiredError(account_code=account.code)

    ensure_chargeable(account, required_amount_cents)
    return account


def lock_account_for_charge(token: str) -> BalanceAccount:
    """Row-lock an account inside the caller's transaction."""
    return _get_account_by_token(token, lock=True)


def charge_account(
    account: BalanceAccount,
    amount_cents: int,
    *,
    order: Order,
    user_id: int | None = None,
) -> BalanceTransaction:
    """
    Debit a locked account inside the caller's transaction.

    The account becomes DEPLETED when its balance reaches zero.
    """
    _require_amount(amount_cents)
    ensure_chargeable(account, amount_cents)

    before = account.balance_cents
    after = before - amount_cents
    account.balance_cents = after
    if after <= 0:
        account.status = ACCOUNT_STATUS_DEPLETED

    transaction = BalanceTransaction(
        account_id=account.id,
        transaction_type=TRANSACTION_CHARGE,
        amount_cents=amount_cents,
        balance_before_cents=before,
        balance_after_cents=after,
        order_id=order.id,
        description=f"Order {order.code}",
        user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(transaction)
    db.session.flush()
    return transaction


def load_account(
    token: str,
    amount_cents: int,
    *,
    user_id: int,
    description: str | None = None,
) -> BalanceAccount:
    """Top up an account. A DEPLETED account becomes ACTIVE again."""
    def _op():
        _require_amount(amount_cents)
        begin_write_transaction()
        account = _get_account_by_token(token, lock=True)

        if account.status in (ACCOUNT_STATUS_BLOCKED, ACCOUNT_STATUS_EXPIRED):
            raise BalanceAccountUnavailableError(
                _UNAVAILABLE_MESSAGES[account.status],
                account_code=account.code,
                status=account.status,
            )
        if _is_past_expiry(account):
            account.status = ACCOUNT_STATUS_EXPIRED
            db.session.commit()
            raise BalanceAccountExpiredError(account_code=account.code)

        before = account.balance_cents
        account.balance_cents = before + amount_cents
        if account.status == ACCOUNT_STATUS_DEPLETED and account.balance_cents > 0:
            account.status = ACCOUNT_STATUS_ACTIVE

        db.session.add(BalanceTransaction(
            account_id=account.id,
            transaction_type=TRANSACTION_LOAD,
            amount_cents=amount_cents,
            balance_before_cents=before,
            balance_after_cents=account.balance_cents,
            description=description or "Top-up",
            user_id=user_id,
            created_at=utcnow(),
        ))
        db.session.commit()
        return account

    return run_with_retry(_op)


def set_blocked(token: str, blocked: bool, *, user_id: int) -> BalanceAccount:
    """
    Block or unblock an account.

    Unblocking restores ACTIVE, or DEPLETED when the balance is zero.
    EXPIRED accounts cannot be changed.
    """
    def _op():
        begin_write_transaction()
        account = _get_account_by_token(token, lock=True)

        if account.status == ACCOUNT_STATUS_EXPIRED:
            raise BalanceAccountUnavailableError(
                _UNAVAILABLE_MESSAGES[ACCOUNT_STATUS_EXPIRED],
                account_code=account.code,
                status=account.status,
            )

        if blocked:
            account.status = ACCOUNT_STATUS_BLOCKED
        elif account.status == ACCOUNT_STATUS_BLOCKED:
            account.status = ACCOUNT_STATUS_ACTIVE if account.balance_cents > 0 else ACCOUNT_STATUS_DEPLETED
        db.session.commit()
        return account

    return run_with_retry(_op)


def get_account_by_token(token: str) -> BalanceAccount:
    return _get_account_by_token(token)


def list_accounts(
    *,
    event_id: int | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[BalanceAccount], int]:
    if status and status not in VALID_ACCOUNT_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(VALID_ACCOUNT_STATUSES)}",
            details={"status": status},
        )

    query = db.session.query(BalanceAccount)
    if event_id is not None:
        query = query.filter(BalanceAccount.event_id == event_id)
    if status:
        query = query.filter(BalanceAccount.status == status)

    total = query.count()
    page = max(1, page)
    limit = max(1, min(limit, 200))
    accounts = (
        query.order_by(BalanceAccount.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return accounts, total


def list_transactions(account_id: int) -> list[BalanceTransaction]:
    return (
        db.session.query(BalanceTransaction)
        .filter_by(account_id=account_id)
        .order_by(BalanceTransaction.id.asc())
        .all()
    )

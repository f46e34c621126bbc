from __future__ import annotations

from ..extensions import db
from barpos.time_utils import to_utc_z


ACCOUNT_STATUS_ACTIVE = "ACTIVE"
ACCOUNT_STATUS_DEPLETED = "DEPLETED"
ACCOUNT_STATUS_BLOCKED = "BLOCKED"
ACCOUNT_STATUS_EXPIRED = "EXPIRED"

VALID_ACCOUNT_STATUSES = [
    ACCOUNT_STATUS_ACTIVE,
    ACCOUNT_STATUS_DEPLETED,
    ACCOUNT_STATUS_BLOCKED,
    ACCOUNT_STATUS_EXPIRED,
]

TRANSACTION_CHARGE = "CHARGE"
TRANSACTION_LOAD = "LOAD"

VALID_TRANSACTION_TYPES = [TRANSACTION_CHARGE, TRANSACTION_LOAD]


class BalanceAccount(db.Model):
    """
    Prepaid balance held behind a QR card.

    STATUS:
    - ACTIVE: may be charged
    - DEPLETED: balance reached zero (a top-up reactivates it)
    - BLOCKED: manually frozen by an admin
    - EXPIRED: past expires_at; set lazily the first time it is looked at

    balance_cents never goes negative: a charge larger than the balance is
    refused before anything is written.
    """
    __tablename__ = "balance_accounts"
    __table_args__ = (
        db.Index("ix_balance_accounts_event_status", "event_id", "status"),
        db.CheckConstraint("balance_cents >= 0", name="ck_balance_accounts_balance_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    access_token = db.Column(db.String(64), nullable=False, unique=True, index=True)

    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False, index=True)

    initial_amount_cents = db.Column(db.Integer, nullable=False)
    balance_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ACCOUNT_STATUS_ACTIVE)

    holder_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    transactions = db.relationship(
        "BalanceTransaction",
        back_populates="account",
        lazy=True,
        order_by="BalanceTransaction.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<BalanceAccount code={self.code!r} balance_cents={self.balance_cents} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "access_token": self.access_token,
            "event_id": self.event_id,
            "initial_amount_cents": self.initial_amount_cents,
            "balance_cents": self.balance_cents,
            "status": self.status,
            "holder_name": self.holder_name,
            "notes": self.notes,
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
            "created_by_user_id": self.created_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class BalanceTransaction(db.Model):
    """Append-only history of charges and loads against a BalanceAccount."""
    __tablename__ = "balance_transactions"
    __table_args__ = (
        db.Index("ix_balance_transactions_account_created", "account_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("balance_accounts.id"), nullable=False, index=True)
    transaction_type = db.Column(db.String(16), nullable=False)

    amount_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    description = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("BalanceAccount", back_populates="transactions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "transaction_type": self.transaction_type,
            "amount_cents": self.amount_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "order_id": self.order_id,
            "description": self.description,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }

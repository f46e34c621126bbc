# Overview: Daily document numbering for order and balance-account codes.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import business_date, utcnow


ORDER_SEQUENCE = "ORDER"
BALANCE_SEQUENCE = "BALANCE_ACCOUNT"


def next_daily_number(*, sequence_key: str, day: date) -> int:
    """
    Atomically allocate the next number for (sequence_key, day).

    Runs inside the caller's transaction and does not commit. The first
    allocation of a day inserts the counter row; a concurrent insert of the
    same row falls back to the increment path.
    """
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.sequence_key == sequence_key,
            DocumentSequence.business_date == day,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(sequence_key=sequence_key, business_date=day, next_number=2))
            return 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(sequence_key=sequence_key, business_date=day)
        .scalar()
    )
    return current - 1


def format_daily_code(prefix: str, day: date, number: int, pad: int = 4) -> str:
    return f"{prefix}-{day:%Y%m%d}-{number:0{pad}d}"


def next_daily_code(*, sequence_key: str, prefix: str, now=None) -> str:
    """
    Allocate the next daily code, e.g. P-20261019-0007.

    The date is the calendar day in BUSINESS_TIMEZONE, so numbering restarts
    at local midnight.
    """
    day = business_date(current_app.config["BUSINESS_TIMEZONE"], now or utcnow())
    number = next_daily_number(sequence_key=sequence_key, day=day)
    return format_daily_code(prefix, day, number)

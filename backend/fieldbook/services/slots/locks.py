# backend/fieldbook/services/slots/locks.py
"""
Day-scoped mutual exclusion for hold creation.

PostgreSQL: transaction-level advisory lock keyed by yyyymmdd.
Other stores: write to a per-day marker row, then lock it FOR UPDATE.
On SQLite the write takes the database write lock up front, which
serializes the rest of the transaction.

Hold creation also locks the quote row first (acquire_quote_lock), so two
holds for one quote on different days cannot both stay active. The order is
always quote, then day.

All locks are released by commit/rollback.
"""

import logging
from datetime import date

from sqlalchemy import text
from sqlalchemy.orm import Session

from ...models.generated import BookingDayLocks, InstantQuotes, utcnow

logger = logging.getLogger(__name__)


def day_lock_key(local_date: date) -> int:
    """2030-06-03 -> 20300603"""
    return int(local_date.strftime("%Y%m%d"))


def acquire_day_lock(db: Session, day_key: int) -> None:
    """Block until this transaction owns the lock for day_key."""
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": day_key})
        return

    updated = (
        db.query(BookingDayLocks)
        .filter(BookingDayLocks.day_key == day_key)
        .update({BookingDayLocks.locked_at: utcnow()}, synchronize_session=False)
    )
    if not updated:
        db.add(BookingDayLocks(day_key=day_key))
        db.flush()

    db.query(BookingDayLocks).filter(BookingDayLocks.day_key == day_key).with_for_update().one()
    logger.debug(f"Day lock acquired: {day_key}")


def acquire_quote_lock(db: Session, quote_id: str) -> None:
    """Row lock on the quote (SELECT ... FOR UPDATE; a no-op read on SQLite)."""
    db.query(InstantQuotes).filter(InstantQuotes.id == quote_id).with_for_update().one()

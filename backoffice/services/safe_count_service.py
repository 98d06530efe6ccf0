from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.models import MovementDirection, MovementType, SafeCount, SafeCountSession
from backoffice.services.authorization_service import Authorization, require_authorized
from backoffice.services.denominations import NOTE_DENOMINATIONS, count_bagged_lines, count_lines, money
from backoffice.services.money_movement_service import record_movement

logger = logging.getLogger(__name__)

COUNT_SESSIONS = [
    SafeCountSession.MORNING,
    SafeCountSession.CHANGEOVER,
    SafeCountSession.NIGHT,
    SafeCountSession.CHANGE_RECEIVE,
]
# A session can only be counted once the one before it has been saved.
PREREQUISITE = {
    SafeCountSession.CHANGEOVER: SafeCountSession.MORNING,
    SafeCountSession.NIGHT: SafeCountSession.CHANGEOVER,
}


@dataclass
class SafeCountRequest:
    session: str
    bags_by_code: dict[str, int]
    loose_by_code: dict[str, int]
    authorization: Authorization


@dataclass
class TransferFloatsRequest:
    loose_by_code: dict[str, int]
    authorization: Authorization


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_session(raw: str) -> SafeCountSession:
    clean = (raw or '').strip()
    for session in COUNT_SESSIONS:
        if session.value == clean:
            return session
    raise ValueError(f'Unknown safe count session: {raw}')


def _rows_for_date(db: Session, on_date: date) -> dict[SafeCountSession, SafeCount]:
    rows = db.execute(select(SafeCount).where(SafeCount.count_date == on_date)).scalars().all()
    return {row.session: row for row in rows}


def _actual(rows: dict[SafeCountSession, SafeCount], session: SafeCountSession) -> Decimal:
    row = rows.get(session)
    return money(row.actual_amount) if row is not None else Decimal('0.00')


def expected_for_session(db: Session, *, session: SafeCountSession, on_date: date) -> Decimal | None:
    """Expected safe balance for a count session.

    Each session carries forward the previous count (yesterday's night count
    for the morning), plus change received today, minus floats transferred
    out today.  Change receipts have no expectation.
    """
    if session == SafeCountSession.CHANGE_RECEIVE:
        return None

    today_rows = _rows_for_date(db, on_date)
    adjustments = _actual(today_rows, SafeCountSession.CHANGE_RECEIVE) - _actual(
        today_rows, SafeCountSession.TRANSFER_FLOATS
    )
    if session == SafeCountSession.MORNING:
        previous = _actual(_rows_for_date(db, on_date - timedelta(days=1)), SafeCountSession.NIGHT)
    else:
        previous = _actual(today_rows, PREREQUISITE[session])
    return money(previous + adjustments)


def get_safe_count_day(db: Session, *, on_date: date, today: date | None = None) -> dict:
    today = today or _now().date()
    rows = _rows_for_date(db, on_date)
    read_only = on_date != today

    sessions = []
    for session in COUNT_SESSIONS:
        row = rows.get(session)
        prerequisite = PREREQUISITE.get(session)
        available = not read_only and row is None and (prerequisite is None or prerequisite in rows)
        sessions.append(
            {
                'session': session.value,
                'saved': row is not None,
                'available': available,
                'expected_amount': row.expected_amount if row is not None else None,
                'actual_amount': row.actual_amount if row is not None else None,
                'variance': row.variance if row is not None else None,
                'values': row.values if row is not None else [],
                'cashier': row.cashier if row is not None else None,
                'manager': row.manager if row is not None else None,
            }
        )

    transfer = rows.get(SafeCountSession.TRANSFER_FLOATS)
    return {
        'date': on_date,
        'read_only': read_only,
        'sessions': sessions,
        'transfer_floats': {
            'total': transfer.actual_amount,
            'values': transfer.values,
            'cashier': transfer.cashier,
            'manager': transfer.manager,
        }
        if transfer is not None
        else None,
    }


def save_safe_count(db: Session, *, request: SafeCountRequest, now: datetime | None = None) -> SafeCount:
    now = now or _now()
    on_date = now.date()
    session = parse_session(request.session)
    outcome = require_authorized(db, request.authorization)

    rows = _rows_for_date(db, on_date)
    if session in rows:
        raise ValueError(f'{session.value} session has already been saved.')
    prerequisite = PREREQUISITE.get(session)
    if prerequisite is not None and prerequisite not in rows:
        raise ValueError(f'{session.value} session can not be counted before {prerequisite.value}.')

    lines, actual = count_bagged_lines(request.bags_by_code, request.loose_by_code)
    expected = expected_for_session(db, session=session, on_date=on_date)
    variance = money(actual - expected) if expected is not None else None

    row = SafeCount(
        count_date=on_date,
        session=session,
        expected_amount=expected,
        actual_amount=actual,
        variance=variance,
        values=lines,
        cashier=outcome.cashier.employee_id,
        manager=outcome.witness.employee_id,
        created_at=now,
    )
    db.add(row)
    db.flush()

    record_movement(
        db,
        movement_type=MovementType.SAFE_COUNT,
        direction=MovementDirection.IN,
        amount=actual,
        expected_amount=expected,
        variance=variance,
        user_id=outcome.cashier.employee_id,
        cashier_id=outcome.cashier.employee_id,
        witness_id=outcome.witness.employee_id,
        session=session.value,
        note=f"Safe Count completed for session '{session.value}' by {outcome.cashier.name}",
        idempotency_key=f'safe_count:{on_date.isoformat()}:{session.value}',
        now=now,
    )
    logger.info('Safe count %s/%s saved: actual=%s expected=%s', on_date.isoformat(), session.value, actual, expected)
    return row


def save_transfer_floats(db: Session, *, request: TransferFloatsRequest, now: datetime | None = None) -> SafeCount:
    now = now or _now()
    on_date = now.date()
    if not any(qty > 0 for qty in request.loose_by_code.values()):
        raise ValueError('Please enter at least one denomination to transfer.')
    outcome = require_authorized(db, request.authorization)

    existing = db.get(SafeCount, (on_date, SafeCountSession.TRANSFER_FLOATS))
    if existing is not None:
        raise ValueError(f'Transfer floats have already been saved for {on_date.isoformat()}.')

    lines, total = count_lines(request.loose_by_code, NOTE_DENOMINATIONS)
    row = SafeCount(
        count_date=on_date,
        session=SafeCountSession.TRANSFER_FLOATS,
        expected_amount=None,
        actual_amount=total,
        variance=None,
        values=lines,
        cashier=outcome.cashier.employee_id,
        manager=outcome.witness.employee_id,
        created_at=now,
    )
    db.add(row)
    db.flush()
    logger.info('Transfer floats for %s saved: total=%s', on_date.isoformat(), total)
    return row

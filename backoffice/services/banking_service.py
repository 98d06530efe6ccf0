from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.exceptions import VarianceReasonRequired
from backoffice.models import (
    MovementDirection,
    MovementType,
    SafeCount,
    SafeCountSession,
    SafeDropEntry,
    SafeFloat,
)
from backoffice.services.authorization_service import Authorization, require_authorized
from backoffice.services.denominations import NOTE_DENOMINATIONS, count_lines, lines_total, money
from backoffice.services.employee_service import employee_name_map
from backoffice.services.money_movement_service import record_movement

logger = logging.getLogger(__name__)

BANKING_SESSION = 'end-of-day'


@dataclass
class SafeDropRequest:
    loose_by_code: dict[str, int]
    authorization: Authorization
    deposit_bag_number: str
    banking_slip_number: str
    variance_reason: str = ''


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def safe_drop_entry_id(moment: datetime) -> str:
    iso = moment.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')
    return iso.replace(':', '-')


def latest_undropped_safe_float(db: Session, *, lock: bool = False) -> SafeFloat | None:
    query = (
        select(SafeFloat)
        .where(SafeFloat.is_dropped.is_(False))
        .order_by(SafeFloat.timestamp.desc(), SafeFloat.id.desc())
        .limit(1)
    )
    if lock:
        query = query.with_for_update()
    return db.execute(query).scalars().first()


def transfer_floats_total(db: Session, *, on_date: date) -> Decimal | None:
    row = db.execute(
        select(SafeCount.actual_amount).where(
            SafeCount.count_date == on_date,
            SafeCount.session == SafeCountSession.TRANSFER_FLOATS,
        )
    ).scalar_one_or_none()
    return money(row) if row is not None else None


def _expected_breakdown(db: Session, *, safe_float: SafeFloat | None, on_date: date) -> dict:
    denominations_total = Decimal('0.00')
    transfer_float = Decimal('0.00')
    if safe_float is not None:
        denominations_total = lines_total(safe_float.denominations or [])
        transfer_float = money(safe_float.transfer_float or 0)

    from_safe_counts = transfer_floats_total(db, on_date=on_date)
    if from_safe_counts is None:
        # TODO: decide whether banking should wait for the day's transfer floats instead of assuming 0.
        logger.warning('safeCounts/%s has no TransferFloats entry; using 0', on_date.isoformat())
        from_safe_counts = Decimal('0.00')

    expected = money(denominations_total + transfer_float + from_safe_counts)
    logger.info(
        'Expected banking breakdown: denominations=%s transfer_float=%s transfer_floats_from_safe_counts=%s expected=%s',
        denominations_total,
        transfer_float,
        from_safe_counts,
        expected,
    )
    return {
        'safe_float_id': safe_float.id if safe_float is not None else None,
        'denominations_total': denominations_total,
        'transfer_float': transfer_float,
        'transfer_floats_from_safe_counts': from_safe_counts,
        'expected_amount': expected,
    }


def get_expected_banking(db: Session, *, on_date: date | None = None) -> dict:
    on_date = on_date or _now().date()
    return _expected_breakdown(db, safe_float=latest_undropped_safe_float(db), on_date=on_date)


def submit_safe_drop(db: Session, *, request: SafeDropRequest, now: datetime | None = None) -> SafeDropEntry:
    """Bank the notes held in the safe against the outstanding safe float.

    The read of the latest undropped safe float, the entry, the ledger row and
    the dropped flag all land in the caller's transaction.
    """
    now = now or _now()
    on_date = now.date()

    lines, actual = count_lines(request.loose_by_code, NOTE_DENOMINATIONS)
    outcome = require_authorized(db, request.authorization)

    bag_number = (request.deposit_bag_number or '').strip()
    slip_number = (request.banking_slip_number or '').strip()
    if not bag_number or not slip_number:
        raise ValueError('Deposit bag number and banking slip number are required')

    safe_float = latest_undropped_safe_float(db, lock=True)
    breakdown = _expected_breakdown(db, safe_float=safe_float, on_date=on_date)
    expected = breakdown['expected_amount']
    variance = money(actual - expected)
    reason = (request.variance_reason or '').strip()
    if variance != 0 and not reason:
        raise VarianceReasonRequired(variance)

    entry_id = safe_drop_entry_id(now)
    if db.get(SafeDropEntry, (on_date, entry_id)) is not None:
        raise ValueError('A safe drop was already recorded at this moment; please retry')

    entry = SafeDropEntry(
        drop_date=on_date,
        entry_id=entry_id,
        safe_float_id=safe_float.id if safe_float is not None else None,
        expected_amount=expected,
        actual_amount=actual,
        variance=variance,
        variance_reason=reason if variance != 0 else '',
        witness=request.authorization.clean_witness_id,
        shift_runner=request.authorization.clean_cashier_id,
        deposit_bag_number=bag_number,
        banking_slip_number=slip_number,
        values=lines,
        timestamp=now,
    )
    db.add(entry)
    db.flush()

    idempotency_key = f'banking:{safe_float.id}' if safe_float is not None else f'banking:{on_date.isoformat()}:{entry_id}'
    record_movement(
        db,
        movement_type=MovementType.BANKING,
        direction=MovementDirection.IN,
        amount=actual,
        expected_amount=expected,
        variance=variance,
        user_id=outcome.cashier.employee_id,
        cashier_id=outcome.cashier.employee_id,
        witness_id=outcome.witness.employee_id,
        session=BANKING_SESSION,
        note=reason if variance != 0 else '',
        idempotency_key=idempotency_key,
        now=now,
    )

    if safe_float is not None:
        safe_float.is_dropped = True
        safe_float.dropped_at = now
        db.flush()

    logger.info(
        'Safe drop %s/%s recorded: actual=%s expected=%s variance=%s',
        on_date.isoformat(),
        entry_id,
        actual,
        expected,
        variance,
    )
    return entry


def list_safe_drops(db: Session, *, on_date: date) -> list[dict]:
    names = employee_name_map(db)
    rows = db.execute(
        select(SafeDropEntry)
        .where(SafeDropEntry.drop_date == on_date)
        .order_by(SafeDropEntry.timestamp.desc())
    ).scalars().all()
    return [
        {
            'entry_id': row.entry_id,
            'timestamp': row.timestamp,
            'expected_amount': row.expected_amount,
            'actual_amount': row.actual_amount,
            'variance': row.variance,
            'variance_reason': row.variance_reason,
            'shift_runner': row.shift_runner,
            'shift_runner_name': names.get(row.shift_runner, row.shift_runner),
            'witness': row.witness,
            'witness_name': names.get(row.witness, row.witness),
            'deposit_bag_number': row.deposit_bag_number,
            'banking_slip_number': row.banking_slip_number,
            'values': row.values,
        }
        for row in rows
    ]

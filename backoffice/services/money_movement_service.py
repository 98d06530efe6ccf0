from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.models import MoneyMovement, MovementDirection, MovementType
from backoffice.services.denominations import money
from backoffice.services.employee_service import employee_name_map

logger = logging.getLogger(__name__)

MOVEMENT_ID_FORMAT = '%Y-%m-%d_%H-%M-%S'
NO_SESSION = '—'

MOVEMENT_TYPE_LABELS = [
    ('float_open', 'Open Cashier'),
    ('cashier_close', 'Close Cashier'),
    ('safe_count', 'Safe Count'),
    ('banking', 'Banking'),
]


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _free_movement_id(db: Session, occurred_at: datetime) -> str:
    base = occurred_at.strftime(MOVEMENT_ID_FORMAT)
    candidate = base
    suffix = 1
    while db.get(MoneyMovement, candidate) is not None:
        suffix += 1
        candidate = f'{base}-{suffix}'
    return candidate


def record_movement(
    db: Session,
    *,
    movement_type: MovementType,
    direction: MovementDirection,
    amount: Decimal,
    user_id: str,
    cashier_id: str,
    witness_id: str,
    idempotency_key: str,
    expected_amount: Decimal | None = None,
    variance: Decimal | None = None,
    session: str = NO_SESSION,
    note: str | None = None,
    now: datetime | None = None,
) -> MoneyMovement:
    """Append one entry to the money movement ledger.

    Entries are never updated.  A logical operation is identified by its
    idempotency key and can only be recorded once.
    """
    existing = db.execute(
        select(MoneyMovement.id).where(MoneyMovement.idempotency_key == idempotency_key)
    ).scalar_one_or_none()
    if existing is not None:
        raise ValueError('This operation has already been recorded in the money movement ledger')

    occurred_at = now or _now()
    movement = MoneyMovement(
        id=_free_movement_id(db, occurred_at),
        timestamp=occurred_at,
        type=movement_type,
        amount=money(amount),
        expected_amount=money(expected_amount) if expected_amount is not None else None,
        variance=money(variance) if variance is not None else None,
        direction=direction,
        user_id=user_id,
        session=session,
        note=note,
        authorised_cashier_id=cashier_id,
        authorised_witness_id=witness_id,
        idempotency_key=idempotency_key,
    )
    db.add(movement)
    db.flush()
    logger.info(
        'Money movement %s recorded: type=%s direction=%s amount=%s',
        movement.id,
        movement_type.value,
        direction.value,
        movement.amount,
    )
    return movement


def parse_movement_type(raw: str | None) -> MovementType | None:
    clean = (raw or '').strip()
    if clean in ('', 'all'):
        return None
    try:
        return MovementType(clean)
    except ValueError as exc:
        raise ValueError(f'Unknown movement type: {clean}') from exc


def list_movements(
    db: Session,
    *,
    date_from: date,
    date_to: date,
    movement_type: MovementType | None = None,
) -> dict:
    if date_from > date_to:
        raise ValueError('Start date must be on or before end date')

    start = datetime.combine(date_from, time.min, tzinfo=timezone.utc)
    end = datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
    query = (
        select(MoneyMovement)
        .where(MoneyMovement.timestamp >= start, MoneyMovement.timestamp < end)
        .order_by(MoneyMovement.timestamp.desc(), MoneyMovement.id.desc())
    )
    if movement_type is not None:
        query = query.where(MoneyMovement.type == movement_type)

    names = employee_name_map(db)
    rows = []
    total_in = Decimal('0.00')
    total_out = Decimal('0.00')
    for movement in db.execute(query).scalars().all():
        if movement.direction == MovementDirection.IN:
            total_in += movement.amount
        else:
            total_out += movement.amount
        rows.append(
            {
                'id': movement.id,
                'timestamp': movement.timestamp,
                'type': movement.type.value,
                'amount': movement.amount,
                'expected_amount': movement.expected_amount,
                'variance': movement.variance,
                'direction': movement.direction.value,
                'user_id': movement.user_id,
                'user_name': names.get(movement.user_id, movement.user_id),
                'witness_id': movement.authorised_witness_id,
                'witness_name': names.get(movement.authorised_witness_id, movement.authorised_witness_id or NO_SESSION),
                'session': movement.session,
                'note': movement.note,
            }
        )

    return {
        'date_from': date_from,
        'date_to': date_to,
        'type': movement_type.value if movement_type else 'all',
        'movements': rows,
        'total_in': money(total_in),
        'total_out': money(total_out),
        'net': money(total_in - total_out),
    }

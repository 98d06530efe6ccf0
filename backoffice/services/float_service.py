from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.exceptions import VarianceReasonRequired
from backoffice.models import (
    Float,
    FloatClosure,
    FloatType,
    MovementDirection,
    MovementType,
    SafeFloat,
)
from backoffice.services.authorization_service import Authorization, require_authorized
from backoffice.services.denominations import count_lines, lines_total, money, safe_note_lines
from backoffice.services.employee_service import find_employee
from backoffice.services.money_movement_service import record_movement

logger = logging.getLogger(__name__)

FLOAT_ID_RE = re.compile(r'^float([A-Z])_', re.IGNORECASE)
CLOSE_VARIANCE_TOLERANCE = Decimal('1.00')
CLOSE_RECOUNT_ATTEMPTS = 2


class VarianceDecision(str, Enum):
    AUTHORIZE = 'AUTHORIZE'
    RECOUNT = 'RECOUNT'
    REASON_REQUIRED = 'REASON_REQUIRED'


@dataclass
class FloatOpenRequest:
    float_type: str
    cashier_id: str
    quantities_by_code: dict[str, int]
    authorization: Authorization


@dataclass
class FloatCloseRequest:
    cashier_id: str
    quantities_by_code: dict[str, int]
    authorization: Authorization
    attempt: int = 1
    reason: str = ''


@dataclass
class CloseCheck:
    float_id: str
    expected_amount: Decimal
    counted: Decimal
    variance: Decimal
    decision: VarianceDecision
    lines: list[dict] = field(default_factory=list)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def float_doc_id(float_type: FloatType, on_date: date) -> str:
    return f'float{float_type.value}_{on_date.isoformat()}'


def daily_doc_id(employee_id: str, on_date: date) -> str:
    return f'{employee_id}_{on_date.isoformat()}'


def float_type_from_id(float_id: str) -> FloatType | None:
    match = FLOAT_ID_RE.match(float_id)
    if not match:
        return None
    return FloatType(match.group(1).upper())


def parse_float_type(raw: str) -> FloatType:
    clean = (raw or '').strip().upper()
    if not clean:
        raise ValueError('Please select both float type and cashier.')
    try:
        return FloatType(clean)
    except ValueError as exc:
        raise ValueError(f'Unknown float type: {raw}') from exc


def latest_retained_amount(db: Session, float_type: FloatType) -> Decimal:
    """Cash left in the drawer by the most recent closure of this float type."""
    closure = db.execute(
        select(FloatClosure)
        .where(FloatClosure.float_type == float_type)
        .order_by(FloatClosure.closed_at.desc())
        .limit(1)
    ).scalars().first()
    if closure is None:
        return Decimal('0.00')
    return money(closure.retained_amount or 0)


def get_assigned_float(db: Session, cashier_id: str) -> Float | None:
    clean = (cashier_id or '').strip()
    if not clean:
        return None
    return db.execute(
        select(Float)
        .where(Float.employee_id == clean, Float.is_open.is_(True), Float.closed.is_(False))
        .order_by(Float.opened_at.desc())
    ).scalars().first()


def _guard_float_slot(db: Session, *, float_type: FloatType, float_id: str, on_date: date) -> None:
    existing = db.get(Float, float_id, with_for_update=True)
    if existing is None:
        return
    if existing.is_open:
        raise ValueError(f'Float {float_type.value} is already assigned and still open.')
    raise ValueError(f'Float {float_type.value} has already been closed for {on_date.isoformat()}.')


def _guard_closed_today(db: Session, *, cashier_id: str, cashier_name: str, on_date: date) -> None:
    # Closure and safe float ids are per cashier per day, so a second close would collide.
    closure_id = daily_doc_id(cashier_id, on_date)
    if db.get(FloatClosure, closure_id) is not None or db.get(SafeFloat, closure_id) is not None:
        raise ValueError(f'Cashier {cashier_name} has already closed a float on {on_date.isoformat()}.')


def prepare_float_open(
    db: Session,
    *,
    float_type: str,
    cashier_id: str,
    now: datetime | None = None,
) -> dict:
    """Check a float can be opened and report the amount it should start with."""
    on_date = (now or _now()).date()
    parsed_type = parse_float_type(float_type)
    clean_cashier = (cashier_id or '').strip()
    if not clean_cashier:
        raise ValueError('Please select both float type and cashier.')
    cashier = find_employee(db, clean_cashier)
    if cashier is None:
        raise LookupError('Selected cashier not found.')

    float_id = float_doc_id(parsed_type, on_date)
    _guard_float_slot(db, float_type=parsed_type, float_id=float_id, on_date=on_date)
    _guard_closed_today(db, cashier_id=cashier.employee_id, cashier_name=cashier.name, on_date=on_date)
    return {
        'float_id': float_id,
        'float_type': parsed_type.value,
        'cashier_id': cashier.employee_id,
        'cashier_name': cashier.name,
        'expected_float': latest_retained_amount(db, parsed_type),
    }


def open_float(db: Session, *, request: FloatOpenRequest, now: datetime | None = None) -> Float:
    now = now or _now()
    on_date = now.date()
    float_type = parse_float_type(request.float_type)
    selected_id = (request.cashier_id or '').strip()
    if not selected_id:
        raise ValueError('Please select both float type and cashier.')

    cashier = find_employee(db, selected_id)
    if cashier is None:
        raise LookupError('Selected cashier not found.')
    outcome = require_authorized(db, request.authorization, expected_cashier_id=cashier.employee_id)

    float_id = float_doc_id(float_type, on_date)
    _guard_float_slot(db, float_type=float_type, float_id=float_id, on_date=on_date)
    if get_assigned_float(db, cashier.employee_id) is not None:
        raise ValueError(f'Cashier {cashier.name} already has an open float.')
    _guard_closed_today(db, cashier_id=cashier.employee_id, cashier_name=cashier.name, on_date=on_date)

    lines, counted = count_lines(request.quantities_by_code)
    retained = latest_retained_amount(db, float_type)
    total = money(counted + retained)

    float_row = Float(
        id=float_id,
        float_type=float_type,
        float_date=on_date,
        employee_id=cashier.employee_id,
        is_open=True,
        closed=False,
        opened_at=now,
        entries=lines,
        initial_count=counted,
        retained_amount=retained,
        total=total,
        variance=money(counted - retained),
        authorised_cashier_id=request.authorization.clean_cashier_id,
        authorised_witness_id=request.authorization.clean_witness_id,
    )
    db.add(float_row)
    db.flush()

    record_movement(
        db,
        movement_type=MovementType.FLOAT_OPEN,
        direction=MovementDirection.IN,
        amount=total,
        user_id=cashier.employee_id,
        cashier_id=outcome.cashier.employee_id,
        witness_id=outcome.witness.employee_id,
        note=f'Float opened ({float_type.value}) for cashier {cashier.name}',
        idempotency_key=f'float_open:{float_id}',
        now=now,
    )
    logger.info('Float %s opened for %s: counted=%s retained=%s', float_id, cashier.employee_id, counted, retained)
    return float_row


def evaluate_close_variance(variance: Decimal, attempt: int) -> VarianceDecision:
    """Variance ladder for closing a drawer.

    Within one pound either way the close goes straight to authorization.
    Otherwise the first two attempts send the cashier back to recount, and
    from the third attempt on a written reason is required.
    """
    if attempt < 1:
        raise ValueError('Attempt number must start at 1')
    if abs(variance) <= CLOSE_VARIANCE_TOLERANCE:
        return VarianceDecision.AUTHORIZE
    if attempt <= CLOSE_RECOUNT_ATTEMPTS:
        return VarianceDecision.RECOUNT
    return VarianceDecision.REASON_REQUIRED


def check_close_count(
    db: Session,
    *,
    cashier_id: str,
    quantities_by_code: dict[str, int],
    attempt: int,
) -> CloseCheck:
    assigned = get_assigned_float(db, cashier_id)
    if assigned is None:
        raise ValueError('Please select a cashier with an assigned float')

    lines, counted = count_lines(quantities_by_code)
    expected = money(assigned.initial_count)
    variance = money(counted - expected)
    return CloseCheck(
        float_id=assigned.id,
        expected_amount=expected,
        counted=counted,
        variance=variance,
        decision=evaluate_close_variance(variance, attempt),
        lines=lines,
    )


def close_float(db: Session, *, request: FloatCloseRequest, now: datetime | None = None) -> FloatClosure:
    now = now or _now()
    on_date = now.date()
    cashier_id = (request.cashier_id or '').strip()
    check = check_close_count(
        db,
        cashier_id=cashier_id,
        quantities_by_code=request.quantities_by_code,
        attempt=request.attempt,
    )
    reason = (request.reason or '').strip()
    if check.decision == VarianceDecision.RECOUNT:
        raise ValueError('There is a Variance. Please recheck the denominations.')
    if check.decision == VarianceDecision.REASON_REQUIRED and not reason:
        raise VarianceReasonRequired(check.variance)

    outcome = require_authorized(db, request.authorization)
    auth_cashier_id = request.authorization.clean_cashier_id

    matching = db.execute(
        select(Float)
        .where(
            Float.employee_id == cashier_id,
            Float.authorised_cashier_id == auth_cashier_id,
            Float.closed.is_(False),
        )
        .order_by(Float.opened_at.desc())
        .with_for_update()
    ).scalars().first()
    if matching is None:
        raise PermissionError('Authorization failed: Invalid cashier ID')
    if not matching.is_open:
        raise ValueError('This float has already been closed.')
    float_type = float_type_from_id(matching.id)

    closure_id = daily_doc_id(cashier_id, on_date)
    cashier_name = outcome.cashier.name if outcome.cashier and outcome.cashier.employee_id == cashier_id else cashier_id
    _guard_closed_today(db, cashier_id=cashier_id, cashier_name=cashier_name, on_date=on_date)

    safe_lines = safe_note_lines(check.lines)
    safe_total = lines_total(safe_lines)
    retained = money(check.counted - safe_total)

    db.add(
        SafeFloat(
            id=closure_id,
            cashier_id=cashier_id,
            denominations=safe_lines,
            transfer_float=Decimal('0.00'),
            is_dropped=False,
            timestamp=now,
        )
    )

    matching.closed = True
    matching.is_open = False
    matching.closed_at = now

    closure = FloatClosure(
        id=closure_id,
        float_id=matching.id,
        cashier_id=cashier_id,
        float_type=float_type,
        closure_date=on_date,
        closed_at=now,
        expected_amount=check.expected_amount,
        total=check.counted,
        variance=check.variance,
        retained_amount=retained,
        entries=check.lines,
        reason=reason or None,
        authorised_cashier_id=auth_cashier_id,
        authorised_witness_id=request.authorization.clean_witness_id,
    )
    db.add(closure)
    db.flush()

    record_movement(
        db,
        movement_type=MovementType.CASHIER_CLOSE,
        direction=MovementDirection.OUT,
        amount=check.counted,
        expected_amount=check.expected_amount,
        variance=check.variance,
        user_id=cashier_id,
        cashier_id=outcome.cashier.employee_id,
        witness_id=outcome.witness.employee_id,
        note=reason or None,
        idempotency_key=f'cashier_close:{closure_id}',
        now=now,
    )
    logger.info(
        'Float %s closed by %s: counted=%s variance=%s safe=%s retained=%s',
        matching.id,
        cashier_id,
        check.counted,
        check.variance,
        safe_total,
        retained,
    )
    return closure

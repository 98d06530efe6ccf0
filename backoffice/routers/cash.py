from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from backoffice.auth import Principal, Role, require_role
from backoffice.db import get_db
from backoffice.dependencies import SERVICE_ERRORS, commit_or_conflict, get_client_ip, http_error
from backoffice.schemas import (
    FloatCloseCheckIn,
    FloatCloseIn,
    FloatOpenIn,
    FloatOpenPrepareIn,
    SafeCountIn,
    SafeDropIn,
    TransferFloatsIn,
)
from backoffice.security.csrf import verify_csrf
from backoffice.services.audit_service import log_audit
from backoffice.services.banking_service import (
    SafeDropRequest,
    get_expected_banking,
    list_safe_drops,
    submit_safe_drop,
)
from backoffice.services.denominations import DENOMINATIONS
from backoffice.services.employee_service import list_employees
from backoffice.services.float_service import (
    FloatCloseRequest,
    FloatOpenRequest,
    check_close_count,
    close_float,
    get_assigned_float,
    open_float,
    prepare_float_open,
)
from backoffice.services.money_movement_service import MOVEMENT_TYPE_LABELS, list_movements, parse_movement_type
from backoffice.services.safe_count_service import (
    SafeCountRequest,
    TransferFloatsRequest,
    get_safe_count_day,
    save_safe_count,
    save_transfer_floats,
)

router = APIRouter(prefix='/cash-management', tags=['cash-management'])
cash_office_access = require_role(Role.ADMIN, Role.MANAGER, Role.TEAMLEADER)


def _today() -> date:
    return datetime.now(tz=timezone.utc).date()


def _parse_day(raw: str, *, default: date | None = None) -> date:
    clean = (raw or '').strip()
    if not clean:
        if default is None:
            raise HTTPException(status_code=400, detail='Invalid date filter')
        return default
    try:
        return date.fromisoformat(clean)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail='Invalid date filter') from exc


@router.get('/denominations')
def denominations(_: Principal = Depends(cash_office_access)):
    return DENOMINATIONS


@router.get('/employees')
def employees(_: Principal = Depends(cash_office_access), db: Session = Depends(get_db)):
    return [
        {'employee_id': row['employee_id'], 'name': row['name'], 'role': row['role']}
        for row in list_employees(db)
        if row['active']
    ]


@router.post('/open-cashier/prepare')
def open_cashier_prepare(
    payload: FloatOpenPrepareIn,
    _: Principal = Depends(cash_office_access),
    db: Session = Depends(get_db),
    __: None = Depends(verify_csrf),
):
    try:
        return prepare_float_open(db, float_type=payload.float_type, cashier_id=payload.cashier_id)
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc


@router.post('/open-cashier')
def open_cashier_submit(
    payload: FloatOpenIn,
    request: Request,
    principal: Principal = Depends(cash_office_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        float_row = open_float(
            db,
            request=FloatOpenRequest(
                float_type=payload.float_type,
                cashier_id=payload.cashier_id,
                quantities_by_code=payload.quantities,
                authorization=payload.authorization.to_authorization(),
            ),
        )
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='FLOAT_OPENED',
        ip=get_client_ip(request),
        metadata={'float_id': float_row.id, 'employee_id': float_row.employee_id, 'total': str(float_row.total)},
    )
    commit_or_conflict(db)
    return {
        'float_id': float_row.id,
        'float_type': float_row.float_type.value,
        'employee_id': float_row.employee_id,
        'initial_count': float_row.initial_count,
        'retained_amount': float_row.retained_amount,
        'total': float_row.total,
        'variance': float_row.variance,
        'message': 'Float opened successfully!',
    }


@router.get('/close-cashier/assigned')
def close_cashier_assigned(
    cashier_id: str = '',
    _: Principal = Depends(cash_office_access),
    db: Session = Depends(get_db),
):
    assigned = get_assigned_float(db, cashier_id)
    if assigned is None:
        raise HTTPException(status_code=404, detail='No open float is assigned to this cashier')
    return {
        'float_id': assigned.id,
        'float_type': assigned.float_type.value,
        'expected_amount': assigned.initial_count,
        'opened_at': assigned.opened_at,
    }


@router.post('/close-cashier/check')
def close_cashier_check(
    payload: FloatCloseCheckIn,
    _: Principal = Depends(cash_office_access),
    db: Session = Depends(get_db),
    __: None = Depends(verify_csrf),
):
    try:
        check = check_close_count(
            db,
            cashier_id=payload.cashier_id,
            quantities_by_code=payload.quantities,
            attempt=payload.attempt,
        )
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc
    result = asdict(check)
    result['decision'] = check.decision.value
    return result


@router.post('/close-cashier')
def close_cashier_submit(
    payload: FloatCloseIn,
    request: Request,
    principal: Principal = Depends(cash_office_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        closure = close_float(
            db,
            request=FloatCloseRequest(
                cashier_id=payload.cashier_id,
                quantities_by_code=payload.quantities,
                authorization=payload.authorization.to_authorization(),
                attempt=payload.attempt,
                reason=payload.reason,
            ),
        )
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='FLOAT_CLOSED',
        ip=get_client_ip(request),
        metadata={'closure_id': closure.id, 'float_id': closure.float_id, 'variance': str(closure.variance)},
    )
    commit_or_conflict(db)
    return {
        'closure_id': closure.id,
        'float_id': closure.float_id,
        'expected_amount': closure.expected_amount,
        'total': closure.total,
        'variance': closure.variance,
        'retained_amount': closure.retained_amount,
        'message': 'Cashier closed successfully!',
    }


@router.get('/banking/expected')
def banking_expected(_: Principal = Depends(cash_office_access), db: Session = Depends(get_db)):
    return get_expected_banking(db)


@router.get('/banking/entries')
def banking_entries(
    day: str = '',
    _: Principal = Depends(cash_office_access),
    db: Session = Depends(get_db),
):
    return list_safe_drops(db, on_date=_parse_day(day, default=_today()))


@router.post('/banking')
def banking_submit(
    payload: SafeDropIn,
    request: Request,
    principal: Principal = Depends(cash_office_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        entry = submit_safe_drop(
            db,
            request=SafeDropRequest(
                loose_by_code=payload.quantities,
                authorization=payload.authorization.to_authorization(),
                deposit_bag_number=payload.deposit_bag_number,
                banking_slip_number=payload.banking_slip_number,
                variance_reason=payload.variance_reason,
            ),
        )
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='SAFE_DROP_SUBMITTED',
        ip=get_client_ip(request),
        metadata={'entry_id': entry.entry_id, 'safe_float_id': entry.safe_float_id, 'variance': str(entry.variance)},
    )
    commit_or_conflict(db)
    return {
        'entry_id': entry.entry_id,
        'expected_amount': entry.expected_amount,
        'actual_amount': entry.actual_amount,
        'variance': entry.variance,
        'message': 'Banking saved successfully!',
    }


@router.get('/safe-count')
def safe_count_day(
    day: str = '',
    _: Principal = Depends(cash_office_access),
    db: Session = Depends(get_db),
):
    return get_safe_count_day(db, on_date=_parse_day(day, default=_today()))


@router.post('/safe-count')
def safe_count_submit(
    payload: SafeCountIn,
    request: Request,
    principal: Principal = Depends(cash_office_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        row = save_safe_count(
            db,
            request=SafeCountRequest(
                session=payload.session,
                bags_by_code=payload.bags,
                loose_by_code=payload.loose,
                authorization=payload.authorization.to_authorization(),
            ),
        )
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='SAFE_COUNT_SAVED',
        ip=get_client_ip(request),
        metadata={'date': row.count_date.isoformat(), 'session': row.session.value, 'actual': str(row.actual_amount)},
    )
    commit_or_conflict(db)
    return {
        'date': row.count_date,
        'session': row.session.value,
        'expected_amount': row.expected_amount,
        'actual_amount': row.actual_amount,
        'variance': row.variance,
    }


@router.post('/transfer-floats')
def transfer_floats_submit(
    payload: TransferFloatsIn,
    request: Request,
    principal: Principal = Depends(cash_office_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        row = save_transfer_floats(
            db,
            request=TransferFloatsRequest(
                loose_by_code=payload.quantities,
                authorization=payload.authorization.to_authorization(),
            ),
        )
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='TRANSFER_FLOATS_SAVED',
        ip=get_client_ip(request),
        metadata={'date': row.count_date.isoformat(), 'total': str(row.actual_amount)},
    )
    commit_or_conflict(db)
    return {'date': row.count_date, 'total': row.actual_amount}


@router.get('/money-movement')
def money_movement(
    request: Request,
    _: Principal = Depends(cash_office_access),
    db: Session = Depends(get_db),
):
    today = _today()
    date_from = _parse_day(request.query_params.get('from', ''), default=today)
    date_to = _parse_day(request.query_params.get('to', ''), default=today)
    try:
        movement_type = parse_movement_type(request.query_params.get('type'))
        result = list_movements(db, date_from=date_from, date_to=date_to, movement_type=movement_type)
    except ValueError as exc:
        raise http_error(exc) from exc
    result['types'] = [{'value': value, 'label': label} for value, label in MOVEMENT_TYPE_LABELS]
    return result

from __future__ import annotations

from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from backoffice.auth import Principal, Role, require_role
from backoffice.db import get_db
from backoffice.dependencies import SERVICE_ERRORS, commit_or_conflict, get_client_ip, http_error
from backoffice.models import InventoryItem
from backoffice.schemas import InventoryItemIn, InventoryItemUpdateIn, StockCountIn, WasteLogIn
from backoffice.security.csrf import verify_csrf
from backoffice.services.audit_service import log_audit
from backoffice.services.stock_count_service import (
    add_inventory_item,
    deactivate_inventory_item,
    get_stock_count,
    list_inventory,
    list_stock_counts,
    submit_stock_count,
    update_inventory_item,
)
from backoffice.services.waste_log_service import list_waste_logs, record_waste, waste_report

router = APIRouter(prefix='/inventory', tags=['inventory'])
inventory_access = require_role(Role.ADMIN, Role.MANAGER, Role.TEAMLEADER)
admin_access = require_role(Role.ADMIN)


def _today() -> date:
    return datetime.now(tz=timezone.utc).date()


def _parse_day(raw: str) -> date | None:
    clean = (raw or '').strip()
    if not clean:
        return None
    try:
        return date.fromisoformat(clean)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail='Invalid date filter') from exc


def _item_dict(item: InventoryItem) -> dict:
    return {
        'item_id': item.id,
        'item_name': item.item_name,
        'unit': item.unit,
        'units_per_inner': item.units_per_inner,
        'inner_per_box': item.inner_per_box,
        'total_stock_on_hand': item.total_stock_on_hand,
        'unit_cost': item.unit_cost,
        'active': item.active,
        'last_updated': item.last_updated,
    }


@router.get('/items')
def items_list(
    include_inactive: bool = False,
    _: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
):
    return [_item_dict(item) for item in list_inventory(db, include_inactive=include_inactive)]


@router.post('/items', status_code=201)
def items_create(
    payload: InventoryItemIn,
    request: Request,
    principal: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        item = add_inventory_item(db, new_item=payload.to_new_item())
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='INVENTORY_ITEM_ADDED',
        ip=get_client_ip(request),
        metadata={'item_id': item.id, 'stock_on_hand': item.total_stock_on_hand},
    )
    commit_or_conflict(db)
    return {**_item_dict(item), 'message': 'Inventory added successfully!'}


@router.post('/items/{item_id}')
def items_update(
    item_id: str,
    payload: InventoryItemUpdateIn,
    request: Request,
    principal: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        item, changes = update_inventory_item(db, item_id=item_id, **payload.model_dump())
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    if changes:
        log_audit(
            db,
            actor_user_id=principal.id,
            action='INVENTORY_ITEM_UPDATED',
            ip=get_client_ip(request),
            metadata={'item_id': item.id, 'changes': changes},
        )
    commit_or_conflict(db)
    return {**_item_dict(item), 'changes': changes}


@router.post('/items/{item_id}/deactivate')
def items_deactivate(
    item_id: str,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        item = deactivate_inventory_item(db, item_id=item_id)
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='INVENTORY_ITEM_DEACTIVATED',
        ip=get_client_ip(request),
        metadata={'item_id': item.id},
    )
    commit_or_conflict(db)
    return _item_dict(item)


@router.get('/stock-counts')
def stock_counts_list(
    day: str = '',
    _: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
):
    return list_stock_counts(db, on_date=_parse_day(day))


@router.get('/stock-counts/{log_id}')
def stock_counts_detail(
    log_id: str,
    _: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
):
    try:
        return get_stock_count(db, log_id=log_id)
    except LookupError as exc:
        raise http_error(exc) from exc


@router.post('/stock-counts')
def stock_counts_submit(
    payload: StockCountIn,
    request: Request,
    principal: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        result = submit_stock_count(
            db,
            lines=payload.to_lines(),
            employee_id=principal.employee_id,
            apply=payload.apply,
        )
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    if result.log is None:
        return {
            'log_id': None,
            'matched': result.matched_item_ids,
            'with_variance': [],
            'message': 'No items with variance to save. Items marked as submitted.',
        }

    log_audit(
        db,
        actor_user_id=principal.id,
        action='STOCK_COUNT_SUBMITTED',
        ip=get_client_ip(request),
        metadata={'log_id': result.log.id, 'applied': payload.apply, 'total_variance': result.log.total_variance},
    )
    commit_or_conflict(db)
    return {
        'log_id': result.log.id,
        'matched': result.matched_item_ids,
        'with_variance': result.variance_item_ids,
        'total_variance': result.log.total_variance,
        'message': 'Items with variance submitted!' if payload.apply else 'Stock counts with variance saved!',
    }


@router.get('/waste')
def waste_list(
    day: str = '',
    _: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
):
    return list_waste_logs(db, on_date=_parse_day(day))


@router.post('/waste')
def waste_submit(
    payload: WasteLogIn,
    request: Request,
    principal: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        log = record_waste(db, lines=payload.to_lines(), employee_id=principal.employee_id)
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='WASTE_RECORDED',
        ip=get_client_ip(request),
        metadata={'log_id': log.id, 'total_waste': log.total_waste},
    )
    commit_or_conflict(db)
    return {'log_id': log.id, 'total_waste': log.total_waste, 'message': 'Waste recorded successfully!'}


@router.get('/waste-report')
def waste_report_view(
    request: Request,
    _: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
):
    today = _today()
    date_from = _parse_day(request.query_params.get('from', '')) or today
    date_to = _parse_day(request.query_params.get('to', '')) or today
    try:
        return waste_report(db, date_from=date_from, date_to=date_to)
    except ValueError as exc:
        raise http_error(exc) from exc

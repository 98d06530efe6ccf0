from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from backoffice.auth import Principal, Role, require_role
from backoffice.db import get_db
from backoffice.dependencies import SERVICE_ERRORS, commit_or_conflict, get_client_ip, http_error
from backoffice.models import Employee
from backoffice.schemas import NewUserIn, PhoneChangeIn, UserActiveIn, UserPasswordIn
from backoffice.security.csrf import verify_csrf
from backoffice.services.audit_service import list_audit_log, log_audit
from backoffice.services.employee_service import (
    add_user,
    change_phone,
    list_employees,
    set_user_active,
    set_user_password,
)

router = APIRouter(prefix='/users', tags=['users'])
admin_access = require_role(Role.ADMIN)


@router.get('')
def users_list(_: Principal = Depends(admin_access), db: Session = Depends(get_db)):
    return list_employees(db)


@router.get('/audit')
def users_audit(
    action: str = '',
    actor: str = '',
    limit: int = 50,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    try:
        return list_audit_log(db, action=action, actor_employee_id=actor, limit=limit)
    except ValueError as exc:
        raise http_error(exc) from exc


@router.post('', status_code=201)
def users_create(
    payload: NewUserIn,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        created = add_user(db, user=payload.to_new_user())
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    is_employee = isinstance(created, Employee)
    user_ref = created.employee_id if is_employee else created.customer_id
    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_CREATED',
        ip=get_client_ip(request),
        metadata={'user_ref': user_ref, 'role': payload.role},
    )
    commit_or_conflict(db)
    return {
        'kind': 'employee' if is_employee else 'customer',
        'id': user_ref,
        'name': created.name,
        'message': 'User added successfully!',
    }


@router.post('/phone')
def users_change_phone(
    payload: PhoneChangeIn,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        updated = change_phone(db, old_phone=payload.old_phone, new_phone=payload.new_phone)
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_PHONE_CHANGED',
        ip=get_client_ip(request),
        metadata={'name': updated.name},
    )
    commit_or_conflict(db)
    return {'name': updated.name, 'phone': updated.phone}


@router.post('/{employee_id}/status')
def users_set_status(
    employee_id: str,
    payload: UserActiveIn,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        updated = set_user_active(db, employee_id=employee_id, active=payload.active, actor_user_id=principal.id)
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_STATUS_CHANGED',
        ip=get_client_ip(request),
        metadata={'employee_id': updated.employee_id, 'active': updated.active},
    )
    commit_or_conflict(db)
    return {'employee_id': updated.employee_id, 'active': updated.active}


@router.post('/{employee_id}/password')
def users_set_password(
    employee_id: str,
    payload: UserPasswordIn,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        updated = set_user_password(db, employee_id=employee_id, password=payload.password)
    except SERVICE_ERRORS as exc:
        raise http_error(exc) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_PASSWORD_RESET',
        ip=get_client_ip(request),
        metadata={'employee_id': updated.employee_id},
    )
    commit_or_conflict(db)
    return {'employee_id': updated.employee_id}

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from backoffice.auth import Principal, get_current_principal
from backoffice.config import settings
from backoffice.db import get_db
from backoffice.dependencies import get_client_ip
from backoffice.schemas import LoginIn
from backoffice.security.csrf import verify_csrf
from backoffice.security.passwords import verify_and_rehash
from backoffice.security.sessions import create_web_session, revoke_web_session
from backoffice.services.audit_service import log_audit, log_auth_event
from backoffice.services.employee_service import find_login

router = APIRouter(tags=['auth'])

INVALID_LOGIN = 'Invalid username or password'


@router.get('/login')
def login_page(request: Request):
    return {'csrf_token': getattr(request.state, 'csrf_token', '')}


@router.post('/login')
def login_submit(
    payload: LoginIn,
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    username = payload.username.strip()
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    employee = find_login(db, username)
    failure_reason = None
    new_hash = None
    if not employee:
        failure_reason = 'UNKNOWN_USERNAME'
    elif not employee.active:
        failure_reason = 'INACTIVE_USER'
    else:
        verified, new_hash = verify_and_rehash(payload.password, employee.password_hash)
        if not verified:
            failure_reason = 'BAD_PASSWORD'

    if failure_reason:
        log_auth_event(
            db,
            attempted_username=username,
            success=False,
            failure_reason=failure_reason,
            user_id=employee.id if employee else None,
            ip=ip,
            user_agent=user_agent,
        )
        db.commit()
        raise HTTPException(status_code=401, detail=INVALID_LOGIN)

    if new_hash:
        employee.password_hash = new_hash
    token = create_web_session(db, employee.id, ip=ip, user_agent=user_agent)
    log_auth_event(
        db,
        attempted_username=username,
        success=True,
        failure_reason=None,
        user_id=employee.id,
        ip=ip,
        user_agent=user_agent,
    )
    log_audit(
        db,
        actor_user_id=employee.id,
        action='AUTH_LOGIN',
        ip=ip,
        metadata={'username': username},
    )
    db.commit()

    response = JSONResponse(
        {'employee_id': employee.employee_id, 'name': employee.name, 'role': employee.role.value}
    )
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.get('/me')
def me(principal: Principal = Depends(get_current_principal)):
    return {
        'employee_id': principal.employee_id,
        'name': principal.name,
        'role': principal.role.value,
    }


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db), _: None = Depends(verify_csrf)):
    principal = getattr(request.state, 'principal', None)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        actor_user_id=principal.id if principal else None,
        action='AUTH_LOGOUT',
        ip=get_client_ip(request),
        metadata={},
    )
    db.commit()

    response = JSONResponse({'ok': True})
    response.delete_cookie(settings.session_cookie_name)
    return response

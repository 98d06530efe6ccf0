from fastapi import HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.exceptions import VarianceReasonRequired


SERVICE_ERRORS = (ValueError, PermissionError, LookupError, IntegrityError)
CONFLICT_DETAIL = 'This record was saved by someone else; please reload'


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, VarianceReasonRequired):
        return HTTPException(
            status_code=422,
            detail={'code': 'variance_reason_required', 'message': str(exc), 'variance': str(exc.variance)},
        )
    if isinstance(exc, IntegrityError):
        return HTTPException(status_code=409, detail=CONFLICT_DETAIL)
    if isinstance(exc, PermissionError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, LookupError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def commit_or_conflict(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=CONFLICT_DETAIL) from exc

"""Two-party confirmation shared by every ledger-mutating cash workflow.

A cashier and a witness each enter their employee ID and tick a confirmation.
The witness must hold a manager or team leader role, and the two IDs must
belong to different people.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from backoffice.models import Employee
from backoffice.services.employee_service import find_employee, find_witness


class AuthorizationRejection(str, Enum):
    NOT_CONFIRMED = 'NOT_CONFIRMED'
    MISSING_IDS = 'MISSING_IDS'
    SAME_PERSON = 'SAME_PERSON'
    UNKNOWN_CASHIER = 'UNKNOWN_CASHIER'
    CASHIER_MISMATCH = 'CASHIER_MISMATCH'
    INVALID_WITNESS = 'INVALID_WITNESS'


REJECTION_MESSAGES = {
    AuthorizationRejection.NOT_CONFIRMED: 'Both cashier and witness must confirm.',
    AuthorizationRejection.MISSING_IDS: 'Please enter cashier and witness ID',
    AuthorizationRejection.SAME_PERSON: 'Cashier and witness must be different employees.',
    AuthorizationRejection.UNKNOWN_CASHIER: 'Invalid Employee ID for cashier.',
    AuthorizationRejection.CASHIER_MISMATCH: 'Cashier ID does not match the selected cashier.',
    AuthorizationRejection.INVALID_WITNESS: 'Invalid witness ID or not a manager/team leader.',
}


@dataclass(frozen=True)
class Authorization:
    cashier_id: str
    witness_id: str
    cashier_confirmed: bool
    witness_confirmed: bool

    @property
    def clean_cashier_id(self) -> str:
        return (self.cashier_id or '').strip()

    @property
    def clean_witness_id(self) -> str:
        return (self.witness_id or '').strip()


@dataclass(frozen=True)
class AuthorizationOutcome:
    approved: bool
    rejection: AuthorizationRejection | None = None
    cashier: Employee | None = None
    witness: Employee | None = None

    @property
    def message(self) -> str:
        if self.rejection is None:
            return 'Authorized'
        return REJECTION_MESSAGES[self.rejection]


def _rejected(rejection: AuthorizationRejection) -> AuthorizationOutcome:
    return AuthorizationOutcome(approved=False, rejection=rejection)


def authorize(
    db: Session,
    authorization: Authorization,
    *,
    expected_cashier_id: str | None = None,
) -> AuthorizationOutcome:
    if not authorization.cashier_confirmed or not authorization.witness_confirmed:
        return _rejected(AuthorizationRejection.NOT_CONFIRMED)

    cashier_id = authorization.clean_cashier_id
    witness_id = authorization.clean_witness_id
    if not cashier_id or not witness_id:
        return _rejected(AuthorizationRejection.MISSING_IDS)
    if cashier_id == witness_id:
        return _rejected(AuthorizationRejection.SAME_PERSON)
    if expected_cashier_id is not None and cashier_id != expected_cashier_id.strip():
        return _rejected(AuthorizationRejection.CASHIER_MISMATCH)

    cashier = find_employee(db, cashier_id)
    if cashier is None:
        return _rejected(AuthorizationRejection.UNKNOWN_CASHIER)

    witness = find_witness(db, witness_id)
    if witness is None:
        return _rejected(AuthorizationRejection.INVALID_WITNESS)

    return AuthorizationOutcome(approved=True, cashier=cashier, witness=witness)


def require_authorized(
    db: Session,
    authorization: Authorization,
    *,
    expected_cashier_id: str | None = None,
) -> AuthorizationOutcome:
    outcome = authorize(db, authorization, expected_cashier_id=expected_cashier_id)
    if not outcome.approved:
        raise PermissionError(outcome.message)
    return outcome

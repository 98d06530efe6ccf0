from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backoffice.models import Customer, Employee, EmployeeRole
from backoffice.security.passwords import check_password_policy, hash_password

logger = logging.getLogger(__name__)

WITNESS_ROLES = {EmployeeRole.MANAGER, EmployeeRole.TEAMLEADER}
CUSTOMER_ROLE = 'customer'

NAME_RE = re.compile(r'^[A-Za-z\s]+$')
PHONE_RE = re.compile(r'^\d{10}$')
EMAIL_RE = re.compile(r'^[^\s@]+@(gmail\.com|yahoo\.com|outlook\.com)$')
ACCOUNT_NUMBER_RE = re.compile(r'^\d{8}$')
DOCUMENT_NUMBER_RE = re.compile(r'^\d{5}$')
EMPLOYEE_ID_RE = re.compile(r'^[0-9]{5}$')
CUSTOMER_ID_RE = re.compile(r'^[0-9]{9}$')
LATEST_BIRTH_YEAR = 2001


@dataclass
class NewUser:
    name: str
    phone: str
    role: str
    dob: date | None
    employee_id: str = ''
    customer_id: str = ''
    email: str = ''
    address: str = ''
    member_since: date | None = None
    bank_details: dict[str, str] = field(default_factory=dict)
    document_number: str = ''
    share_code: str = ''
    country_code: str = '+44'


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def find_employee(db: Session, employee_id: str) -> Employee | None:
    clean = (employee_id or '').strip()
    if not clean:
        return None
    return db.execute(
        select(Employee).where(Employee.employee_id == clean, Employee.active.is_(True))
    ).scalar_one_or_none()


def find_witness(db: Session, employee_id: str) -> Employee | None:
    clean = (employee_id or '').strip()
    if not clean:
        return None
    return db.execute(
        select(Employee).where(
            Employee.employee_id == clean,
            Employee.role.in_(WITNESS_ROLES),
            Employee.active.is_(True),
        )
    ).scalar_one_or_none()


def employee_name_map(db: Session) -> dict[str, str]:
    rows = db.execute(select(Employee.employee_id, Employee.name)).all()
    return {row.employee_id: row.name or row.employee_id for row in rows}


def list_employees(db: Session) -> list[dict]:
    rows = db.execute(select(Employee).order_by(Employee.name.asc())).scalars().all()
    return [
        {
            'id': row.id,
            'employee_id': row.employee_id,
            'name': row.name,
            'phone': row.phone,
            'email': row.email,
            'role': row.role.value,
            'active': row.active,
            'has_login': row.password_hash is not None,
        }
        for row in rows
    ]


def format_share_code(raw: str) -> str:
    digits = re.sub(r'[^\d]', '', raw or '')[:6]
    return '/'.join(digits[i : i + 2] for i in range(0, len(digits), 2))


def validate_new_user(user: NewUser) -> None:
    if not user.name:
        raise ValueError('Full Name is required.')
    if not NAME_RE.match(user.name):
        raise ValueError('Full Name should only contain alphabets and spaces.')
    if not PHONE_RE.match(user.phone or ''):
        raise ValueError('Phone number must be exactly 10 digits.')
    if user.email and not EMAIL_RE.match(user.email):
        raise ValueError('Please enter a valid email.')
    if not user.dob:
        raise ValueError('Date of Birth is required.')
    if user.dob.year > LATEST_BIRTH_YEAR:
        raise ValueError(f'Date of Birth should be {LATEST_BIRTH_YEAR} or earlier.')

    bank = user.bank_details or {}
    if not NAME_RE.match(bank.get('bank_name', '')):
        raise ValueError('Bank name should only contain alphabets.')
    if not NAME_RE.match(bank.get('branch_name', '')):
        raise ValueError('Branch name should only contain alphabets.')
    if not ACCOUNT_NUMBER_RE.match(bank.get('account_number', '')):
        raise ValueError('Bank account number must be exactly 8 digits.')
    if not DOCUMENT_NUMBER_RE.match(user.document_number or ''):
        raise ValueError('Document number must be exactly 5 digits.')
    if user.share_code and len(re.sub(r'[^\d]', '', user.share_code)) != 6:
        raise ValueError('Share code must be exactly 6 digits.')

    if user.role == CUSTOMER_ROLE:
        if not CUSTOMER_ID_RE.match(user.customer_id or ''):
            raise ValueError('Customer ID must be 9 digits.')
    else:
        try:
            EmployeeRole(user.role)
        except ValueError as exc:
            raise ValueError(f'Unknown role: {user.role}') from exc
        if not EMPLOYEE_ID_RE.match(user.employee_id or ''):
            raise ValueError('Employee ID must be 5 digits.')


def _phone_taken(db: Session, phone: str) -> bool:
    employee = db.execute(select(Employee.id).where(Employee.phone == phone)).scalar_one_or_none()
    customer = db.execute(select(Customer.id).where(Customer.phone == phone)).scalar_one_or_none()
    return employee is not None or customer is not None


def _check_duplicates(db: Session, user: NewUser) -> None:
    if _phone_taken(db, user.phone):
        raise ValueError('A user with this phone number already exists.')
    if user.email:
        taken = db.execute(select(Employee.id).where(Employee.email == user.email)).scalar_one_or_none()
        if taken is not None:
            raise ValueError('A user with this email already exists.')
    if user.role == CUSTOMER_ROLE:
        taken = db.execute(select(Customer.id).where(Customer.customer_id == user.customer_id)).scalar_one_or_none()
        if taken is not None:
            raise ValueError('A customer with this Customer ID already exists.')
    else:
        taken = db.execute(select(Employee.id).where(Employee.employee_id == user.employee_id)).scalar_one_or_none()
        if taken is not None:
            raise ValueError('An employee with this Employee ID already exists.')


def add_user(db: Session, *, user: NewUser) -> Employee | Customer:
    user.name = user.name.strip()
    user.phone = user.phone.strip()
    user.email = (user.email or '').strip().lower()
    validate_new_user(user)
    _check_duplicates(db, user)

    share_code = format_share_code(user.share_code) if user.share_code else None
    if user.role == CUSTOMER_ROLE:
        record: Employee | Customer = Customer(
            customer_id=user.customer_id,
            name=user.name,
            phone=user.phone,
            country_code=user.country_code,
            email=user.email or None,
            dob=user.dob,
            address=user.address or None,
            member_since=user.member_since,
            bank_details=dict(user.bank_details),
            document_number=user.document_number,
            share_code=share_code,
        )
    else:
        record = Employee(
            employee_id=user.employee_id,
            name=user.name,
            phone=user.phone,
            country_code=user.country_code,
            email=user.email or None,
            role=EmployeeRole(user.role),
            dob=user.dob,
            address=user.address or None,
            member_since=user.member_since,
            bank_details=dict(user.bank_details),
            document_number=user.document_number,
            share_code=share_code,
            active=True,
        )
    db.add(record)
    db.flush()
    logger.info('Added %s %s', user.role, user.name)
    return record


def change_phone(db: Session, *, old_phone: str, new_phone: str) -> Employee | Customer:
    old_clean = old_phone.strip()
    new_clean = new_phone.strip()
    if not PHONE_RE.match(new_clean):
        raise ValueError('Phone number must be exactly 10 digits.')
    if old_clean == new_clean:
        raise ValueError('New phone number is the same as the current one.')

    record: Employee | Customer | None = db.execute(
        select(Employee).where(Employee.phone == old_clean)
    ).scalar_one_or_none()
    if record is None:
        record = db.execute(select(Customer).where(Customer.phone == old_clean)).scalar_one_or_none()
    if record is None:
        raise LookupError('No user found with that phone number')
    if _phone_taken(db, new_clean):
        raise ValueError('A user with this phone number already exists.')

    record.phone = new_clean
    if isinstance(record, Employee):
        record.updated_at = _now()
    db.flush()
    return record


def _get_employee(db: Session, employee_id: str) -> Employee:
    employee = db.execute(
        select(Employee).where(Employee.employee_id == employee_id.strip())
    ).scalar_one_or_none()
    if not employee:
        raise LookupError('Employee not found')
    return employee


def set_user_active(db: Session, *, employee_id: str, active: bool, actor_user_id: int) -> Employee:
    employee = _get_employee(db, employee_id)
    if employee.id == actor_user_id and not active:
        raise ValueError('You cannot deactivate your own account')
    employee.active = active
    employee.updated_at = _now()
    db.flush()
    return employee


def set_user_password(db: Session, *, employee_id: str, password: str) -> Employee:
    check_password_policy(password)
    employee = _get_employee(db, employee_id)
    if not employee.email:
        raise ValueError('An email address is required to sign in')
    employee.password_hash = hash_password(password)
    employee.updated_at = _now()
    db.flush()
    return employee


def find_login(db: Session, username: str) -> Employee | None:
    clean = username.strip().lower()
    if not clean:
        return None
    return db.execute(
        select(Employee).where(or_(Employee.email == clean, Employee.employee_id == clean))
    ).scalar_one_or_none()

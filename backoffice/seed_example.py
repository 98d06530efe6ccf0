from sqlalchemy import select

from backoffice.db import SessionLocal, engine
from backoffice.models import Base, Employee, EmployeeRole
from backoffice.security.passwords import hash_password

DEMO_EMPLOYEES = [
    ('10001', 'Alex Admin', '7700900001', 'alex.admin@gmail.com', EmployeeRole.ADMIN, 'adminpass'),
    ('10002', 'Morgan Manager', '7700900002', 'morgan.manager@gmail.com', EmployeeRole.MANAGER, 'managerpass'),
    ('10003', 'Taylor Lead', '7700900003', 'taylor.lead@gmail.com', EmployeeRole.TEAMLEADER, 'leadpass1'),
    ('10004', 'Casey Cashier', '7700900004', None, EmployeeRole.TEAMMEMBER, None),
    ('10005', 'Jordan Cashier', '7700900005', None, EmployeeRole.TEAMMEMBER, None),
]


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        for employee_id, name, phone, email, role, password in DEMO_EMPLOYEES:
            existing = db.execute(select(Employee).where(Employee.employee_id == employee_id)).scalar_one_or_none()
            if existing:
                continue
            db.add(
                Employee(
                    employee_id=employee_id,
                    name=name,
                    phone=phone,
                    email=email,
                    role=role,
                    password_hash=hash_password(password) if password else None,
                    active=True,
                )
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')

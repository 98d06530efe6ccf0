from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice.models import Base, Employee, EmployeeRole, InventoryItem
from backoffice.services.authorization_service import Authorization
from backoffice.services.stock_count_service import NewInventoryItem, add_inventory_item

ADMIN_ID = '10001'
MANAGER_ID = '20001'
LEAD_ID = '20002'
CASHIER_ID = '30001'
SECOND_CASHIER_ID = '30002'

STAFF = [
    (ADMIN_ID, 'Alex Admin', '7700900001', EmployeeRole.ADMIN),
    (MANAGER_ID, 'Morgan Manager', '7700900002', EmployeeRole.MANAGER),
    (LEAD_ID, 'Taylor Lead', '7700900003', EmployeeRole.TEAMLEADER),
    (CASHIER_ID, 'Casey Cashier', '7700900004', EmployeeRole.TEAMMEMBER),
    (SECOND_CASHIER_ID, 'Jordan Cashier', '7700900005', EmployeeRole.TEAMMEMBER),
]


def at(day: int, hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime(2026, 3, day, hour, minute, second, tzinfo=timezone.utc)


def make_engine():
    engine = create_engine(
        'sqlite+pysqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


def make_session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def make_session() -> Session:
    return make_session_factory(make_engine())()


def seed_staff(db: Session) -> dict[str, Employee]:
    staff = {}
    for employee_id, name, phone, role in STAFF:
        employee = Employee(employee_id=employee_id, name=name, phone=phone, role=role, active=True)
        db.add(employee)
        staff[employee_id] = employee
    db.flush()
    return staff


def approved(cashier_id: str = CASHIER_ID, witness_id: str = MANAGER_ID) -> Authorization:
    return Authorization(
        cashier_id=cashier_id,
        witness_id=witness_id,
        cashier_confirmed=True,
        witness_confirmed=True,
    )


def seed_inventory(db: Session) -> dict[str, InventoryItem]:
    items = {}
    for new_item in (
        NewInventoryItem('item1', 'Vada Pav Buns', units_per_inner=6, inner_per_box=4, boxes=2, unit_cost=Decimal('0.25')),
        NewInventoryItem('item2', 'Chai Cups', units_per_inner=50, inner_per_box=10, inners=3),
        NewInventoryItem('item10', 'Green Chutney', unit='tub', units=12),
    ):
        item = add_inventory_item(db, new_item=new_item, now=at(1, 8))
        items[item.id] = item
    return items

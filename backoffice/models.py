from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')


class Base(DeclarativeBase):
    pass


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class EmployeeRole(str, Enum):
    ADMIN = 'admin'
    MANAGER = 'manager'
    TEAMLEADER = 'teamleader'
    TEAMMEMBER = 'teammember'


class FloatType(str, Enum):
    A = 'A'
    B = 'B'
    C = 'C'
    D = 'D'


class MovementType(str, Enum):
    FLOAT_OPEN = 'float_open'
    CASHIER_CLOSE = 'cashier_close'
    SAFE_COUNT = 'safe_count'
    BANKING = 'banking'


class MovementDirection(str, Enum):
    IN = 'in'
    OUT = 'out'


class SafeCountSession(str, Enum):
    MORNING = 'morning'
    CHANGEOVER = 'changeover'
    NIGHT = 'night'
    CHANGE_RECEIVE = 'change_receive'
    TRANSFER_FLOATS = 'TransferFloats'


class StockLineStatus(str, Enum):
    COMPLETED = 'completed'
    RECORDED_WITH_VARIANCE = 'recorded_with_variance'


class StockCountStatus(str, Enum):
    ADJUSTED = 'adjusted'
    RECORDED = 'recorded'


class TimeOfDay(str, Enum):
    MORNING = 'morning'
    AFTERNOON = 'afternoon'
    NIGHT = 'night'


FLOAT_TYPE_ENUM = SQLEnum(FloatType, name='float_type', values_callable=_values)
TIME_OF_DAY_ENUM = SQLEnum(TimeOfDay, name='time_of_day', values_callable=_values)


class Employee(Base):
    __tablename__ = 'users_01'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    employee_id: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    country_code: Mapped[str] = mapped_column(String(8), nullable=False, default='+44')
    email: Mapped[str | None] = mapped_column(String(255), unique=True)
    role: Mapped[EmployeeRole] = mapped_column(
        SQLEnum(EmployeeRole, name='employee_role', values_callable=_values), nullable=False
    )
    dob: Mapped[date | None] = mapped_column(Date)
    address: Mapped[str | None] = mapped_column(Text)
    member_since: Mapped[date | None] = mapped_column(Date)
    bank_details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    document_number: Mapped[str | None] = mapped_column(String(16))
    share_code: Mapped[str | None] = mapped_column(String(16))
    password_hash: Mapped[str | None] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Customer(Base):
    __tablename__ = 'customers'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    country_code: Mapped[str] = mapped_column(String(8), nullable=False, default='+44')
    email: Mapped[str | None] = mapped_column(String(255))
    dob: Mapped[date | None] = mapped_column(Date)
    address: Mapped[str | None] = mapped_column(Text)
    member_since: Mapped[date | None] = mapped_column(Date)
    bank_details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    document_number: Mapped[str | None] = mapped_column(String(16))
    share_code: Mapped[str | None] = mapped_column(String(16))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Float(Base):
    __tablename__ = 'floats'
    __table_args__ = (
        CheckConstraint('initial_count >= 0', name='floats_initial_count_non_negative_ck'),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    float_type: Mapped[FloatType] = mapped_column(FLOAT_TYPE_ENUM, nullable=False)
    float_date: Mapped[date] = mapped_column(Date, nullable=False)
    employee_id: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    entries: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    initial_count: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    retained_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'))
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    variance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'))
    authorised_cashier_id: Mapped[str] = mapped_column(String(16), nullable=False)
    authorised_witness_id: Mapped[str] = mapped_column(String(16), nullable=False)


class FloatClosure(Base):
    __tablename__ = 'floatClosures'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    float_id: Mapped[str] = mapped_column(String(64), ForeignKey('floats.id'), nullable=False)
    cashier_id: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    float_type: Mapped[FloatType | None] = mapped_column(FLOAT_TYPE_ENUM, index=True)
    closure_date: Mapped[date] = mapped_column(Date, nullable=False)
    closed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expected_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    variance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    retained_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    entries: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    reason: Mapped[str | None] = mapped_column(Text)
    authorised_cashier_id: Mapped[str] = mapped_column(String(16), nullable=False)
    authorised_witness_id: Mapped[str] = mapped_column(String(16), nullable=False)


class SafeFloat(Base):
    __tablename__ = 'SafeFloats'

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    cashier_id: Mapped[str] = mapped_column(String(16), nullable=False)
    denominations: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    transfer_float: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0.00'))
    is_dropped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    dropped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SafeDropEntry(Base):
    __tablename__ = 'SafeDrop'

    drop_date: Mapped[date] = mapped_column(Date, primary_key=True)
    entry_id: Mapped[str] = mapped_column(String(40), primary_key=True)
    safe_float_id: Mapped[str | None] = mapped_column(String(64), ForeignKey('SafeFloats.id'))
    expected_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    actual_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    variance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    variance_reason: Mapped[str] = mapped_column(Text, nullable=False, default='')
    witness: Mapped[str] = mapped_column(String(16), nullable=False)
    shift_runner: Mapped[str] = mapped_column(String(16), nullable=False)
    deposit_bag_number: Mapped[str] = mapped_column(String(64), nullable=False)
    banking_slip_number: Mapped[str] = mapped_column(String(64), nullable=False)
    values: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SafeCount(Base):
    __tablename__ = 'safeCounts'

    count_date: Mapped[date] = mapped_column(Date, primary_key=True)
    session: Mapped[SafeCountSession] = mapped_column(
        SQLEnum(SafeCountSession, name='safe_count_session', values_callable=_values), primary_key=True
    )
    expected_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    actual_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    variance: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    values: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    cashier: Mapped[str] = mapped_column(String(16), nullable=False)
    manager: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class InventoryItem(Base):
    __tablename__ = 'inventory'

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    unit: Mapped[str] = mapped_column(String(16), nullable=False, default='EA')
    units_per_inner: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    inner_per_box: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_stock_on_hand: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryLog(Base):
    __tablename__ = 'inventoryLog'

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    log_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[StockCountStatus] = mapped_column(
        SQLEnum(StockCountStatus, name='stock_count_status', values_callable=_values), nullable=False
    )
    total_variance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    employee_id: Mapped[str] = mapped_column(String(16), nullable=False)


class InventoryLogItem(Base):
    __tablename__ = 'inventoryLogItems'

    log_id: Mapped[str] = mapped_column(
        String(40), ForeignKey('inventoryLog.id', ondelete='CASCADE'), primary_key=True
    )
    item_id: Mapped[str] = mapped_column(String(32), ForeignKey('inventory.id'), primary_key=True)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str] = mapped_column(String(16), nullable=False)
    boxes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inner_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    units_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_counted: Mapped[int] = mapped_column(Integer, nullable=False)
    variance: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    new_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    needs_recount: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[StockLineStatus] = mapped_column(
        SQLEnum(StockLineStatus, name='stock_line_status', values_callable=_values), nullable=False
    )
    time_of_day: Mapped[TimeOfDay] = mapped_column(TIME_OF_DAY_ENUM, nullable=False)


class WasteLog(Base):
    __tablename__ = 'wasteLogs'

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    log_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_waste: Mapped[int] = mapped_column(Integer, nullable=False)
    time_of_day: Mapped[TimeOfDay] = mapped_column(TIME_OF_DAY_ENUM, nullable=False)
    employee_id: Mapped[str] = mapped_column(String(16), nullable=False)


class WasteItem(Base):
    __tablename__ = 'wasteItems'
    __table_args__ = (
        CheckConstraint('total_waste > 0', name='waste_items_total_waste_positive_ck'),
    )

    log_id: Mapped[str] = mapped_column(
        String(40), ForeignKey('wasteLogs.id', ondelete='CASCADE'), primary_key=True
    )
    item_id: Mapped[str] = mapped_column(String(32), ForeignKey('inventory.id'), primary_key=True)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    boxes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inner_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    units_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_waste: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    time_of_day: Mapped[TimeOfDay] = mapped_column(TIME_OF_DAY_ENUM, nullable=False)


class MoneyMovement(Base):
    __tablename__ = 'moneyMovement'
    __table_args__ = (
        UniqueConstraint('idempotency_key', name='money_movement_idempotency_key_key'),
    )

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    type: Mapped[MovementType] = mapped_column(
        SQLEnum(MovementType, name='movement_type', values_callable=_values), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    expected_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    variance: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    direction: Mapped[MovementDirection] = mapped_column(
        SQLEnum(MovementDirection, name='movement_direction', values_callable=_values), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(16), nullable=False)
    session: Mapped[str] = mapped_column(String(32), nullable=False, default='—')
    note: Mapped[str | None] = mapped_column(Text)
    authorised_cashier_id: Mapped[str] = mapped_column(String(16), nullable=False)
    authorised_witness_id: Mapped[str] = mapped_column(String(16), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False)


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    attempted_username: Mapped[str] = mapped_column(String(255), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users_01.id'))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    actor_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users_01.id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users_01.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

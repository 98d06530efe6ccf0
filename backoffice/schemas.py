from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from backoffice.services.authorization_service import Authorization
from backoffice.services.employee_service import NewUser
from backoffice.services.stock_count_service import NewInventoryItem, StockCountLine
from backoffice.services.waste_log_service import WasteLine


class AuthorizationIn(BaseModel):
    cashier_id: str = ''
    witness_id: str = ''
    cashier_confirmed: bool = False
    witness_confirmed: bool = False

    def to_authorization(self) -> Authorization:
        return Authorization(
            cashier_id=self.cashier_id,
            witness_id=self.witness_id,
            cashier_confirmed=self.cashier_confirmed,
            witness_confirmed=self.witness_confirmed,
        )


class LoginIn(BaseModel):
    username: str
    password: str


class FloatOpenPrepareIn(BaseModel):
    float_type: str = ''
    cashier_id: str = ''


class FloatOpenIn(FloatOpenPrepareIn):
    quantities: dict[str, int] = Field(default_factory=dict)
    authorization: AuthorizationIn


class FloatCloseCheckIn(BaseModel):
    cashier_id: str = ''
    quantities: dict[str, int] = Field(default_factory=dict)
    attempt: int = Field(default=1, ge=1)


class FloatCloseIn(FloatCloseCheckIn):
    authorization: AuthorizationIn
    reason: str = ''


class SafeDropIn(BaseModel):
    quantities: dict[str, int] = Field(default_factory=dict)
    authorization: AuthorizationIn
    deposit_bag_number: str = ''
    banking_slip_number: str = ''
    variance_reason: str = ''


class SafeCountIn(BaseModel):
    session: str
    bags: dict[str, int] = Field(default_factory=dict)
    loose: dict[str, int] = Field(default_factory=dict)
    authorization: AuthorizationIn


class TransferFloatsIn(BaseModel):
    quantities: dict[str, int] = Field(default_factory=dict)
    authorization: AuthorizationIn


class BankDetailsIn(BaseModel):
    bank_name: str = ''
    branch_name: str = ''
    account_number: str = ''


class NewUserIn(BaseModel):
    name: str = ''
    phone: str = ''
    role: str
    dob: date | None = None
    employee_id: str = ''
    customer_id: str = ''
    email: str = ''
    address: str = ''
    member_since: date | None = None
    bank_details: BankDetailsIn = Field(default_factory=BankDetailsIn)
    document_number: str = ''
    share_code: str = ''
    country_code: str = '+44'

    def to_new_user(self) -> NewUser:
        return NewUser(
            name=self.name,
            phone=self.phone,
            role=self.role,
            dob=self.dob,
            employee_id=self.employee_id,
            customer_id=self.customer_id,
            email=self.email,
            address=self.address,
            member_since=self.member_since,
            bank_details=self.bank_details.model_dump(),
            document_number=self.document_number,
            share_code=self.share_code,
            country_code=self.country_code,
        )


class PhoneChangeIn(BaseModel):
    old_phone: str
    new_phone: str


class UserActiveIn(BaseModel):
    active: bool


class UserPasswordIn(BaseModel):
    password: str


class InventoryItemIn(BaseModel):
    item_id: str
    item_name: str
    unit: str = 'EA'
    units_per_inner: int = Field(default=1, ge=0)
    inner_per_box: int = Field(default=1, ge=0)
    boxes: int = Field(default=0, ge=0)
    inners: int = Field(default=0, ge=0)
    units: int = Field(default=0, ge=0)
    unit_cost: Decimal | None = Field(default=None, ge=0)

    def to_new_item(self) -> NewInventoryItem:
        return NewInventoryItem(**self.model_dump())


class InventoryItemUpdateIn(BaseModel):
    item_name: str | None = None
    units_per_inner: int | None = Field(default=None, ge=0)
    inner_per_box: int | None = Field(default=None, ge=0)
    total_stock_on_hand: int | None = Field(default=None, ge=0)
    unit_cost: Decimal | None = Field(default=None, ge=0)


class StockCountLineIn(BaseModel):
    item_id: str
    boxes: int = 0
    inners: int = 0
    units: int = 0


class StockCountIn(BaseModel):
    lines: list[StockCountLineIn] = Field(default_factory=list)
    apply: bool = False

    def to_lines(self) -> list[StockCountLine]:
        return [StockCountLine(**line.model_dump()) for line in self.lines]


class WasteLineIn(BaseModel):
    item_id: str
    reason_code: str
    boxes: int = 0
    inners: int = 0
    units: int = 0


class WasteLogIn(BaseModel):
    lines: list[WasteLineIn] = Field(default_factory=list)

    def to_lines(self) -> list[WasteLine]:
        return [WasteLine(**line.model_dump()) for line in self.lines]

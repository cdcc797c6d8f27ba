# salevest/schemas.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# -------- Sale --------

class ConsigneeIn(BaseModel):
    address: str
    total_token_amount: int = Field(gt=0)


class ConsigneeBatchIn(BaseModel):
    addresses: List[str]
    amounts: List[int]


class ConsigneeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    total_token_amount: int
    sold_token_amount: int


class PurchaseIn(BaseModel):
    buyer: str
    amount: int = Field(gt=0)


class PurchaseBatchIn(BaseModel):
    buyers: List[str]
    amounts: List[int]


class AdminPurchaseIn(PurchaseIn):
    consignee: str


class AdminPurchaseBatchIn(PurchaseBatchIn):
    consignee: str


class PurchaseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    consignee_address: str
    buyer_address: str
    token_amount: int
    schedule_id: Optional[int] = None


# -------- Vesting --------

class VestingParametersIn(BaseModel):
    cliff_seconds: int = Field(ge=0)
    start_time: int = Field(ge=0)
    duration_seconds: int = Field(ge=0)
    tge_time: int = Field(ge=0)
    tge_basis_points: int = Field(ge=0)


class VestingParametersOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cliff_seconds: int
    start_time: int
    duration_seconds: int
    tge_time: int
    tge_basis_points: int


class ScheduleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    beneficiary: str
    total_amount: int
    tge_amount: int
    released: int
    tge_claimed: bool
    cliff_seconds: int
    start_time: int
    duration_seconds: int
    tge_time: int
    tge_basis_points: int
    vested: int
    claimable: int
    cliff_passed: bool


class ClaimOut(BaseModel):
    schedule_id: int
    beneficiary: str
    amount: int


class TokenOut(BaseModel):
    token_address: str
    decimals: int
    custody_balance: int
    outstanding_obligations: int


class RoleMembersOut(BaseModel):
    scope: str
    role: str
    members: List[str]


# -------- Events --------

class EventOut(BaseModel):
    id: int
    scope: str
    name: str
    payload: Dict[str, Any]

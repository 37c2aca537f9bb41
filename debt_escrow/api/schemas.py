"""
Pydantic schemas for API requests and responses
"""

from typing import Any, Dict, Optional
from pydantic import AwareDatetime, BaseModel, Field

from ..debts import Debt
from ..event_log import DebtEvent


class CreateDebtRequest(BaseModel):
    apr: str = Field(..., description="Annual rate as a decimal fraction, e.g. '0.05'")
    fee: str = Field("0", description="Origination fee as a decimal string")


class AmountRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")


class ScheduleRequest(BaseModel):
    schedule: str = Field(..., description="hourly, daily, weekly, fortnightly, monthly, ...")


class ExpirationRequest(BaseModel):
    expires_at: Optional[AwareDatetime] = Field(
        None, description="ISO timestamp with offset; null clears the deadline"
    )


class DisputeRequest(BaseModel):
    reason: str = ""


class ParticipantRequest(BaseModel):
    address: str = Field(..., min_length=1, description="Caller address presented in X-Caller-Address")
    identity: Optional[str] = Field(None, description="Canonical identity; defaults to the address")
    authorized: bool = True


class DebtModel(BaseModel):
    id: int
    payee: str
    payer: Optional[str]
    status: str
    apr: str
    fee: str
    created_at: str
    accrual_schedule: str
    next_accrual: Optional[str]
    payment_schedule: str
    next_payment: Optional[str]
    principal: str
    interest: str
    locked_interest: str
    accrued_interest: str
    interest_paid: str
    owed: bool
    expires_at: Optional[str]
    disputed: bool
    missed_payments: int

    @classmethod
    def from_debt(cls, debt: Debt) -> 'DebtModel':
        data = debt.to_dict()
        return cls(**{name: data[name] for name in cls.model_fields})


class EventModel(BaseModel):
    sequence: int
    event_type: str
    debt_id: int
    identity: Optional[str]
    amount: Optional[str]
    created_at: str
    current_hash: str
    metadata: Dict[str, Any]

    @classmethod
    def from_event(cls, event: DebtEvent) -> 'EventModel':
        data = event.to_dict()
        return cls(**{name: data[name] for name in cls.model_fields})

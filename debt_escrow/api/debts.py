"""
Debt endpoints
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, status

from .dependencies import EscrowSystem, get_escrow_system, get_caller
from .schemas import (
    CreateDebtRequest, AmountRequest, ScheduleRequest, ExpirationRequest,
    DisputeRequest, DebtModel
)


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=DebtModel)
def create_debt(
    request: CreateDebtRequest,
    caller: str = Depends(get_caller),
    system: EscrowSystem = Depends(get_escrow_system)
):
    """Create a debt with the caller as payee"""
    debt = system.ledger.create_debt(caller, apr=request.apr, fee=request.fee)
    return DebtModel.from_debt(debt)


@router.get("", response_model=List[DebtModel])
def list_debts(
    payee: Optional[str] = None,
    system: EscrowSystem = Depends(get_escrow_system)
):
    """List debts, optionally for one payee"""
    return [DebtModel.from_debt(debt) for debt in system.ledger.list_debts(payee)]


@router.get("/{debt_id}", response_model=DebtModel)
def get_debt(debt_id: int, system: EscrowSystem = Depends(get_escrow_system)):
    """Get debt details"""
    return DebtModel.from_debt(system.ledger.get_debt(debt_id))


@router.get("/{debt_id}/claimable")
def get_claimable(debt_id: int, system: EscrowSystem = Depends(get_escrow_system)):
    """Interest the payee could withdraw now, and whether a payment is overdue"""
    return {
        "debt_id": debt_id,
        "claimable": str(system.ledger.claimable_interest(debt_id)),
        "overdue": system.ledger.is_payment_overdue(debt_id)
    }


@router.put("/{debt_id}/accrual-schedule", response_model=DebtModel)
def set_accrual_schedule(
    debt_id: int,
    request: ScheduleRequest,
    caller: str = Depends(get_caller),
    system: EscrowSystem = Depends(get_escrow_system)
):
    debt = system.ledger.set_accrual_schedule(debt_id, caller, request.schedule)
    return DebtModel.from_debt(debt)


@router.put("/{debt_id}/payment-schedule", response_model=DebtModel)
def set_payment_schedule(
    debt_id: int,
    request: ScheduleRequest,
    caller: str = Depends(get_caller),
    system: EscrowSystem = Depends(get_escrow_system)
):
    debt = system.ledger.set_payment_schedule(debt_id, caller, request.schedule)
    return DebtModel.from_debt(debt)


@router.put("/{debt_id}/expiration", response_model=DebtModel)
def set_expiration(
    debt_id: int,
    request: ExpirationRequest,
    caller: str = Depends(get_caller),
    system: EscrowSystem = Depends(get_escrow_system)
):
    debt = system.ledger.set_expiration(debt_id, caller, request.expires_at)
    return DebtModel.from_debt(debt)


@router.post("/{debt_id}/principal", response_model=DebtModel)
def lock_principal(
    debt_id: int,
    request: AmountRequest,
    caller: str = Depends(get_caller),
    system: EscrowSystem = Depends(get_escrow_system)
):
    """Escrow principal; the first caller becomes the payer"""
    return DebtModel.from_debt(system.ledger.lock_principal(debt_id, caller, request.amount))


@router.post("/{debt_id}/interest", response_model=DebtModel)
def lock_interest(
    debt_id: int,
    request: AmountRequest,
    caller: str = Depends(get_caller),
    system: EscrowSystem = Depends(get_escrow_system)
):
    """Escrow interest; completing it releases the principal"""
    return DebtModel.from_debt(system.ledger.lock_interest(debt_id, caller, request.amount))


@router.post("/{debt_id}/payments", response_model=DebtModel)
def pay_interest(
    debt_id: int,
    request: AmountRequest,
    caller: str = Depends(get_caller),
    system: EscrowSystem = Depends(get_escrow_system)
):
    """Withdraw accrued interest to the payee"""
    return DebtModel.from_debt(system.ledger.pay_interest(debt_id, caller, request.amount))


@router.post("/{debt_id}/missed-payments", response_model=DebtModel)
def flag_missed_payment(
    debt_id: int,
    caller: str = Depends(get_caller),
    system: EscrowSystem = Depends(get_escrow_system)
):
    return DebtModel.from_debt(system.ledger.flag_missed_payment(debt_id, caller))


@router.post("/{debt_id}/disputes", response_model=DebtModel)
def raise_dispute(
    debt_id: int,
    request: DisputeRequest,
    caller: str = Depends(get_caller),
    system: EscrowSystem = Depends(get_escrow_system)
):
    return DebtModel.from_debt(system.ledger.raise_dispute(debt_id, caller, request.reason))


@router.post("/{debt_id}/disputes/resolve", response_model=DebtModel)
def resolve_dispute(
    debt_id: int,
    caller: str = Depends(get_caller),
    system: EscrowSystem = Depends(get_escrow_system)
):
    return DebtModel.from_debt(system.ledger.resolve_dispute(debt_id, caller))


@router.post("/{debt_id}/settle", response_model=DebtModel)
def settle_debt(
    debt_id: int,
    caller: str = Depends(get_caller),
    system: EscrowSystem = Depends(get_escrow_system)
):
    return DebtModel.from_debt(system.ledger.settle_debt(debt_id, caller))


@router.delete("/{debt_id}", response_model=DebtModel)
def delete_debt(
    debt_id: int,
    caller: str = Depends(get_caller),
    system: EscrowSystem = Depends(get_escrow_system)
):
    """Retire a debt; needs mutual consent once a payer is bound"""
    return DebtModel.from_debt(system.ledger.delete_debt(debt_id, caller))

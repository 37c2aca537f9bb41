"""
Admin endpoints (participant registration, deposits, consent)
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict
from fastapi import APIRouter, Depends, HTTPException, status

from .dependencies import EscrowSystem, require_admin
from .schemas import ParticipantRequest, AmountRequest


router = APIRouter()


def _registry(system: EscrowSystem):
    register = getattr(system.identity_gateway, "register", None)
    if register is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Participants are managed by the remote identity service"
        )
    return system.identity_gateway


@router.post("/participants", status_code=status.HTTP_201_CREATED)
def register_participant(
    request: ParticipantRequest,
    system: EscrowSystem = Depends(require_admin)
) -> Dict[str, Any]:
    """Register a caller address with the local participant registry"""
    identity = _registry(system).register(request.address, request.identity, request.authorized)
    return {"address": request.address, "identity": identity, "authorized": request.authorized}


@router.delete("/participants/{identity}")
def revoke_participant(identity: str, system: EscrowSystem = Depends(require_admin)) -> Dict[str, Any]:
    _registry(system).revoke(identity)
    return {"identity": identity, "authorized": False}


@router.post("/balances/{identity}/deposits")
def deposit(
    identity: str,
    request: AmountRequest,
    system: EscrowSystem = Depends(require_admin)
) -> Dict[str, Any]:
    """Credit a participant balance from outside the ledger"""
    try:
        balance = system.transfer_ledger.deposit(identity, Decimal(request.amount))
    except (InvalidOperation, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return {"identity": identity, "balance": str(balance)}


@router.get("/balances/{identity}")
def get_balance(identity: str, system: EscrowSystem = Depends(require_admin)) -> Dict[str, Any]:
    return {"identity": identity, "balance": str(system.transfer_ledger.balance_of(identity))}


@router.get("/escrow")
def get_escrow(system: EscrowSystem = Depends(require_admin)) -> Dict[str, Any]:
    return {"escrow_balance": str(system.transfer_ledger.escrow_balance)}


@router.post("/consents/{debt_id}")
def confirm_consent(debt_id: int, system: EscrowSystem = Depends(require_admin)) -> Dict[str, Any]:
    """Record that both parties consented to a deletion or dispute resolution"""
    system.ledger.get_debt(debt_id)
    system.consent_service.confirm(debt_id)
    return {"debt_id": debt_id, "confirmed": True}


@router.delete("/consents/{debt_id}")
def revoke_consent(debt_id: int, system: EscrowSystem = Depends(require_admin)) -> Dict[str, Any]:
    system.consent_service.revoke(debt_id)
    return {"debt_id": debt_id, "confirmed": False}

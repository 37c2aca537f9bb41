"""
Event log endpoints
"""

from typing import List, Optional
from fastapi import APIRouter, Depends

from .dependencies import EscrowSystem, get_escrow_system
from .schemas import EventModel


router = APIRouter()


@router.get("", response_model=List[EventModel])
def list_events(
    debt_id: Optional[int] = None,
    limit: Optional[int] = None,
    system: EscrowSystem = Depends(get_escrow_system)
):
    """Events in sequence order, optionally for a single debt"""
    if debt_id is not None:
        events = system.event_log.get_events_for_debt(debt_id)
        if limit:
            events = events[-limit:]
    else:
        events = system.event_log.get_all_events(limit=limit)
    return [EventModel.from_event(event) for event in events]


@router.get("/verify")
def verify_event_log(system: EscrowSystem = Depends(get_escrow_system)):
    """Recompute the hash chain"""
    return system.event_log.verify_integrity()

"""
Event Log Module

Append-only, hash-chained record of every state change on a debt, with
publish/subscribe fan-out to observers.

Entries are written inside the caller's storage transaction, so a rejected
operation leaves no trace in the chain. Subscribers are only notified after
the ledger commits.
"""

import hashlib
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .storage import StorageInterface


class DebtEventType(Enum):
    """Types of ledger events"""
    DEBT_CREATED = "debt_created"
    LOCK_PRINCIPAL = "lock_principal"
    LOCK_INTEREST = "lock_interest"
    RELEASE_PRINCIPAL = "release_principal"
    INTEREST_PAID = "interest_paid"
    MISSED_PAYMENT = "missed_payment"
    REARRANGEMENT = "rearrangement"
    DISPUTE_RAISED = "dispute_raised"
    DISPUTE_RESOLVED = "dispute_resolved"
    DEBT_DELETED = "debt_deleted"
    DEBT_SETTLED = "debt_settled"


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass
class DebtEvent:
    """
    Immutable ledger event with hash chaining for tamper detection
    """
    id: str
    sequence: int
    created_at: datetime
    event_type: DebtEventType
    debt_id: int
    identity: Optional[str]
    amount: Optional[Decimal]
    previous_hash: str
    current_hash: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.metadata = _jsonable(self.metadata or {})

    def calculate_hash(self) -> str:
        """
        SHA-256 over every field except current_hash
        """
        hash_data = {
            'id': self.id,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'debt_id': self.debt_id,
            'identity': self.identity,
            'amount': str(self.amount) if self.amount is not None else None,
            'previous_hash': self.previous_hash,
            'metadata': self.metadata
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'debt_id': self.debt_id,
            'identity': self.identity,
            'amount': str(self.amount) if self.amount is not None else None,
            'previous_hash': self.previous_hash,
            'current_hash': self.current_hash,
            'metadata': self.metadata
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DebtEvent':
        return cls(
            id=data['id'],
            sequence=data['sequence'],
            created_at=datetime.fromisoformat(data['created_at']),
            event_type=DebtEventType(data['event_type']),
            debt_id=data['debt_id'],
            identity=data.get('identity'),
            amount=Decimal(data['amount']) if data.get('amount') is not None else None,
            previous_hash=data['previous_hash'],
            current_hash=data['current_hash'],
            metadata=data.get('metadata') or {}
        )


EventHandler = Callable[[DebtEvent], None]


class EventLog:
    """
    Hash-chained event log with subscriber dispatch
    """

    HEAD_ID = "head"

    def __init__(self, storage: StorageInterface, table_name: str = "debt_events"):
        self.storage = storage
        self.table_name = table_name
        self.head_table = f"{table_name}_head"
        self._lock = threading.RLock()
        self._handlers: Dict[DebtEventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []
        self.logger = logging.getLogger("debt_escrow.events")

    def _head(self) -> Dict[str, Any]:
        # Read from storage every time so a rolled-back append is forgotten
        return self.storage.load(self.head_table, self.HEAD_ID) or {'sequence': 0, 'hash': ""}

    def append(
        self,
        event_type: DebtEventType,
        debt_id: int,
        identity: Optional[str] = None,
        amount: Optional[Decimal] = None,
        metadata: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None
    ) -> DebtEvent:
        """
        Append an event to the chain.

        Args:
            event_type: Type of event
            debt_id: Debt the event belongs to
            identity: Identity that caused the event
            amount: Amount moved or locked, when relevant
            metadata: Additional event-specific data
            timestamp: Event time, defaults to now (UTC)

        Returns:
            The stored DebtEvent
        """
        with self._lock:
            head = self._head()
            event = DebtEvent(
                id=str(uuid.uuid4()),
                sequence=head['sequence'] + 1,
                created_at=timestamp or datetime.now(timezone.utc),
                event_type=event_type,
                debt_id=debt_id,
                identity=identity,
                amount=amount,
                previous_hash=head['hash'],
                metadata=metadata or {}
            )
            event.current_hash = event.calculate_hash()

            self.storage.save(self.table_name, f"{event.sequence:012d}", event.to_dict())
            self.storage.save(self.head_table, self.HEAD_ID, {
                'sequence': event.sequence,
                'hash': event.current_hash
            })
            return event

    # Subscription

    def subscribe(self, event_type: DebtEventType, handler: EventHandler) -> None:
        """Subscribe to a specific event type"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to every event type"""
        with self._lock:
            self._global_handlers.append(handler)

    def unsubscribe(self, event_type: DebtEventType, handler: EventHandler) -> None:
        with self._lock:
            try:
                self._handlers.get(event_type, []).remove(handler)
            except ValueError:
                self.logger.warning(
                    f"Handler {getattr(handler, '__name__', repr(handler))} was not subscribed to {event_type.value}"
                )

    def publish(self, event: DebtEvent) -> None:
        """Deliver a committed event to subscribers"""
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, [])) + list(self._global_handlers)

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                # Observers never break the ledger operation
                self.logger.error(
                    f"Error in event handler {getattr(handler, '__name__', repr(handler))} "
                    f"for {event.event_type.value}: {e}"
                )

    # Queries

    def get_all_events(self, limit: Optional[int] = None) -> List[DebtEvent]:
        """All events in sequence order; ``limit`` keeps the most recent N"""
        events = [DebtEvent.from_dict(data) for data in self.storage.load_all(self.table_name)]
        events.sort(key=lambda e: e.sequence)
        if limit:
            events = events[-limit:]
        return events

    def get_events_for_debt(self, debt_id: int) -> List[DebtEvent]:
        events = [
            DebtEvent.from_dict(data)
            for data in self.storage.find(self.table_name, {'debt_id': debt_id})
        ]
        events.sort(key=lambda e: e.sequence)
        return events

    def get_events_by_type(self, event_type: DebtEventType) -> List[DebtEvent]:
        events = [
            DebtEvent.from_dict(data)
            for data in self.storage.find(self.table_name, {'event_type': event_type.value})
        ]
        events.sort(key=lambda e: e.sequence)
        return events

    def count_events(self) -> int:
        return self.storage.count(self.table_name)

    def get_latest_hash(self) -> str:
        return self._head()['hash']

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify every hash and the continuity of the chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        events = self.get_all_events()
        result['total_events'] = len(events)

        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'sequence': event.sequence,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash or event.sequence != position + 1:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'sequence': event.sequence,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash

        return result

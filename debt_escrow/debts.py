"""
Debt Ledger Module

Owns every Debt record and enforces the lifecycle:

    CREATED --(payer locks principal)--> LOCKED
    LOCKED  --(required interest fully locked, principal released)--> LOCKED + owed
    owed    --(accrue / pay, repeatable)--> owed
    owed    --(settlement)--> REPAID
    any open state --(mutual-consent deletion)--> INACTIVE

Each mutation validates a working copy of the record, then saves it,
appends its events and makes its transfer requests inside a single
storage transaction. A failure anywhere leaves the stored record and the
event chain untouched.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from enum import Enum
import functools
import threading

from .errors import (
    DebtLedgerError, UnauthorizedError, InvalidStateError, ArithmeticBoundError,
    TimingViolationError, DebtNotFoundError
)
from .event_log import EventLog, DebtEvent, DebtEventType
from .gateways import IdentityGateway, TransferLedger, ConsentService, TransferError
from .logging_config import get_logger, log_action
from .payments import PaymentEngine
from .schedules import Schedule, parse_schedule, schedule_interval
from .storage import StorageInterface

logger = get_logger("debt_escrow.debts")

Amount = Union[Decimal, int, str]


class DebtStatus(Enum):
    """Debt lifecycle states"""
    CREATED = "created"      # No payer bound yet
    LOCKED = "locked"        # Payer bound and principal in escrow
    REPAID = "repaid"        # All interest paid out and settled
    INACTIVE = "inactive"    # Deleted by mutual consent


TERMINAL_STATUSES = frozenset({DebtStatus.REPAID, DebtStatus.INACTIVE})


@dataclass
class Debt:
    """One interest-bearing obligation between a payee and a payer"""
    id: int
    payee: str
    created_at: datetime
    apr: Decimal                        # e.g. 0.05 for 5%
    fee: Decimal                        # Origination fee
    status: DebtStatus = DebtStatus.CREATED
    payer: Optional[str] = None

    accrual_schedule: Schedule = Schedule.DAILY
    accrual_interval: timedelta = schedule_interval(Schedule.DAILY)
    next_accrual: Optional[datetime] = None
    payment_schedule: Schedule = Schedule.MONTHLY
    payment_interval: timedelta = schedule_interval(Schedule.MONTHLY)
    next_payment: Optional[datetime] = None

    principal: Decimal = Decimal('0')
    interest: Decimal = Decimal('0')          # Required interest, frozen once owed
    locked_interest: Decimal = Decimal('0')
    accrued_interest: Decimal = Decimal('0')  # Claimable by the payee
    interest_paid: Decimal = Decimal('0')
    owed: bool = False

    expires_at: Optional[datetime] = None     # None = no deadline
    disputed: bool = False
    missed_payments: int = 0
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def escrow_balance(self) -> Decimal:
        """Value the ledger holds in escrow for this debt"""
        held_principal = Decimal('0') if self.owed else self.principal
        return held_principal + self.locked_interest - self.interest_paid

    def to_dict(self) -> Dict[str, Any]:
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            'id': self.id,
            'payee': self.payee,
            'created_at': self.created_at.isoformat(),
            'apr': str(self.apr),
            'fee': str(self.fee),
            'status': self.status.value,
            'payer': self.payer,
            'accrual_schedule': self.accrual_schedule.value,
            'accrual_interval': int(self.accrual_interval.total_seconds()),
            'next_accrual': iso(self.next_accrual),
            'payment_schedule': self.payment_schedule.value,
            'payment_interval': int(self.payment_interval.total_seconds()),
            'next_payment': iso(self.next_payment),
            'principal': str(self.principal),
            'interest': str(self.interest),
            'locked_interest': str(self.locked_interest),
            'accrued_interest': str(self.accrued_interest),
            'interest_paid': str(self.interest_paid),
            'owed': self.owed,
            'expires_at': iso(self.expires_at),
            'disputed': self.disputed,
            'missed_payments': self.missed_payments,
            'updated_at': iso(self.updated_at)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Debt':
        def dt(value: Optional[str]) -> Optional[datetime]:
            return datetime.fromisoformat(value) if value else None

        return cls(
            id=data['id'],
            payee=data['payee'],
            created_at=datetime.fromisoformat(data['created_at']),
            apr=Decimal(data['apr']),
            fee=Decimal(data['fee']),
            status=DebtStatus(data['status']),
            payer=data.get('payer'),
            accrual_schedule=Schedule(data['accrual_schedule']),
            accrual_interval=timedelta(seconds=data['accrual_interval']),
            next_accrual=dt(data.get('next_accrual')),
            payment_schedule=Schedule(data['payment_schedule']),
            payment_interval=timedelta(seconds=data['payment_interval']),
            next_payment=dt(data.get('next_payment')),
            principal=Decimal(data['principal']),
            interest=Decimal(data['interest']),
            locked_interest=Decimal(data['locked_interest']),
            accrued_interest=Decimal(data['accrued_interest']),
            interest_paid=Decimal(data['interest_paid']),
            owed=data['owed'],
            expires_at=dt(data.get('expires_at')),
            disputed=data.get('disputed', False),
            missed_payments=data.get('missed_payments', 0),
            updated_at=dt(data.get('updated_at'))
        )


class DebtStore:
    """
    Debts keyed by (payee, debt_id), with an id -> payee index and the
    global id counter. Only DebtLedger writes through it.
    """

    COUNTER_ID = "debt_id"

    def __init__(self, storage: StorageInterface, table: str = "debts"):
        self.storage = storage
        self.table = table
        self.index_table = f"{table}_index"
        self.counter_table = f"{table}_counters"

    @staticmethod
    def _key(payee: str, debt_id: int) -> str:
        return f"{payee}/{debt_id}"

    def next_id(self) -> int:
        """Issue the next debt id; callers serialize and run inside a transaction"""
        counter = self.storage.load(self.counter_table, self.COUNTER_ID) or {'value': 0}
        value = counter['value'] + 1
        self.storage.save(self.counter_table, self.COUNTER_ID, {'value': value})
        return value

    def save(self, debt: Debt) -> None:
        self.storage.save(self.table, self._key(debt.payee, debt.id), debt.to_dict())
        self.storage.save(self.index_table, str(debt.id), {'debt_id': debt.id, 'payee': debt.payee})

    def get_for_payee(self, payee: str, debt_id: int) -> Optional[Debt]:
        data = self.storage.load(self.table, self._key(payee, debt_id))
        return Debt.from_dict(data) if data else None

    def exists(self, debt_id: int) -> bool:
        return self.storage.exists(self.index_table, str(debt_id))

    def get(self, debt_id: int) -> Optional[Debt]:
        entry = self.storage.load(self.index_table, str(debt_id))
        if not entry:
            return None
        return self.get_for_payee(entry['payee'], debt_id)

    def list_for_payee(self, payee: str) -> List[Debt]:
        debts = [Debt.from_dict(data) for data in self.storage.find(self.table, {'payee': payee})]
        return sorted(debts, key=lambda d: d.id)

    def list_all(self) -> List[Debt]:
        debts = [Debt.from_dict(data) for data in self.storage.load_all(self.table)]
        return sorted(debts, key=lambda d: d.id)


# (event type, identity, amount, metadata)
PendingEvent = Tuple[DebtEventType, Optional[str], Optional[Decimal], Dict[str, Any]]


def _ledger_operation(action: str):
    """Log rejected operations at WARNING and re-raise unchanged"""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except (DebtLedgerError, TransferError) as e:
                log_action(
                    logger, "warning", f"{action} rejected: {e}",
                    action=action,
                    extra={'error': getattr(e, 'code', type(e).__name__)}
                )
                raise
        return wrapper
    return decorator


class DebtLedger:
    """
    Manages debts from creation through settlement
    """

    def __init__(
        self,
        storage: StorageInterface,
        identity_gateway: IdentityGateway,
        transfer_ledger: TransferLedger,
        consent_service: ConsentService,
        event_log: Optional[EventLog] = None,
        payment_engine: Optional[PaymentEngine] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.storage = storage
        self.identity_gateway = identity_gateway
        self.transfer_ledger = transfer_ledger
        self.consent_service = consent_service
        self.event_log = event_log or EventLog(storage)
        self.payment_engine = payment_engine or PaymentEngine()
        self.store = DebtStore(storage)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._id_lock = threading.Lock()
        self._locks_guard = threading.Lock()
        self._debt_locks: Dict[int, threading.RLock] = {}

    # Helpers

    def _now(self) -> datetime:
        return self._clock()

    def _debt_lock(self, debt_id: int) -> threading.RLock:
        """Per-debt lock; only issued for debts that exist"""
        if not self.store.exists(debt_id):
            raise DebtNotFoundError(f"Debt {debt_id} not found")
        with self._locks_guard:
            lock = self._debt_locks.get(debt_id)
            if lock is None:
                lock = self._debt_locks[debt_id] = threading.RLock()
            return lock

    def _authenticate(self, caller: str) -> str:
        identity = self.identity_gateway.resolve_identity(caller)
        if not identity or not self.identity_gateway.is_authorized_participant(identity):
            raise UnauthorizedError(f"Caller {caller} is not an authorized participant")
        return identity

    def _load(self, debt_id: int) -> Debt:
        debt = self.store.get(debt_id)
        if debt is None:
            raise DebtNotFoundError(f"Debt {debt_id} not found")
        return debt

    def _to_decimal(self, value: Amount, name: str) -> Decimal:
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ArithmeticBoundError(f"{name} is not a number: {value!r}")
        if not amount.is_finite():
            raise ArithmeticBoundError(f"{name} must be finite")
        if amount != self.payment_engine.quantize(amount):
            raise ArithmeticBoundError(
                f"{name} has more than {self.payment_engine.precision} decimal places"
            )
        return amount

    def _positive(self, value: Amount, name: str = "Amount") -> Decimal:
        amount = self._to_decimal(value, name)
        if amount <= Decimal('0'):
            raise ArithmeticBoundError(f"{name} must be positive, got {amount}")
        return amount

    def _non_negative(self, value: Amount, name: str) -> Decimal:
        amount = self._to_decimal(value, name)
        if amount < Decimal('0'):
            raise ArithmeticBoundError(f"{name} cannot be negative, got {amount}")
        return amount

    @staticmethod
    def _require_open(debt: Debt) -> None:
        if debt.is_terminal:
            raise InvalidStateError(f"Debt {debt.id} is {debt.status.value}")

    @staticmethod
    def _require_payee(debt: Debt, identity: str) -> None:
        if identity != debt.payee:
            raise UnauthorizedError(f"Only the payee may do this on debt {debt.id}")

    @staticmethod
    def _require_party(debt: Debt, identity: str) -> None:
        if identity not in (debt.payee, debt.payer):
            raise UnauthorizedError(f"{identity} is not a party to debt {debt.id}")

    @staticmethod
    def _bind_payer(debt: Debt, identity: str) -> None:
        """Bind the caller as payer on first interaction, or require it is the payer"""
        if debt.payer is None:
            if identity == debt.payee:
                raise UnauthorizedError(f"Payee cannot act as payer on debt {debt.id}")
            debt.payer = identity
        elif identity != debt.payer:
            raise UnauthorizedError(f"Only the payer may lock funds on debt {debt.id}")

    @staticmethod
    def _require_unexpired(debt: Debt, now: datetime) -> None:
        if debt.expires_at is not None and now > debt.expires_at:
            raise InvalidStateError(f"Debt {debt.id} expired at {debt.expires_at.isoformat()}")

    @staticmethod
    def _require_not_owed(debt: Debt) -> None:
        if debt.owed:
            raise InvalidStateError(f"Principal of debt {debt.id} has already been released")

    def _commit(
        self,
        action: str,
        debt: Debt,
        identity: str,
        now: datetime,
        events: List[PendingEvent],
        transfer: Optional[Callable[[], None]] = None
    ) -> Debt:
        """Persist the working copy, its events and its transfer as one unit"""
        debt.updated_at = now
        with self.storage.atomic():
            self.store.save(debt)
            appended: List[DebtEvent] = [
                self.event_log.append(
                    event_type, debt.id, identity=who, amount=amount,
                    metadata=metadata, timestamp=now
                )
                for event_type, who, amount, metadata in events
            ]
            # Last, so a refused transfer rolls back the record and events
            if transfer is not None:
                transfer()

        for event in appended:
            self.event_log.publish(event)

        log_action(
            logger, "info", f"{action} committed on debt {debt.id}",
            user_id=identity, action=action, resource=f"debt:{debt.id}",
            extra={'status': debt.status.value, 'events': [e.event_type.value for e in appended]}
        )
        return replace(debt)

    # Creation and configuration

    @_ledger_operation("create_debt")
    def create_debt(self, caller: str, apr: Amount, fee: Amount = Decimal('0')) -> Debt:
        """
        Create a debt with the caller as payee

        Args:
            caller: Caller address; must resolve to an authorized participant
            apr: Annual rate as a fraction (0.05 for 5%)
            fee: Origination fee

        Returns:
            The created Debt (status CREATED, accrual DAILY, payment MONTHLY)
        """
        identity = self._authenticate(caller)
        apr = self._positive(apr, "APR")
        fee = self._non_negative(fee, "Fee")
        now = self._now()

        with self._id_lock:
            with self.storage.atomic():
                debt = Debt(
                    id=self.store.next_id(),
                    payee=identity,
                    created_at=now,
                    apr=apr,
                    fee=fee,
                    updated_at=now
                )
                self.store.save(debt)
                event = self.event_log.append(
                    DebtEventType.DEBT_CREATED, debt.id, identity=identity,
                    metadata={'apr': apr, 'fee': fee}, timestamp=now
                )

        self.event_log.publish(event)
        log_action(
            logger, "info", f"create_debt committed on debt {debt.id}",
            user_id=identity, action="create_debt", resource=f"debt:{debt.id}"
        )
        return debt

    def _set_schedule(self, debt_id: int, caller: str, schedule: Union[Schedule, str], kind: str) -> Debt:
        identity = self._authenticate(caller)
        schedule = parse_schedule(schedule)
        interval = schedule_interval(schedule)

        with self._debt_lock(debt_id):
            debt = self._load(debt_id)
            self._require_open(debt)
            self._require_payee(debt, identity)
            if debt.payer is not None:
                raise InvalidStateError(
                    f"Schedule of debt {debt.id} is frozen once a payer is bound"
                )

            if kind == "accrual":
                debt.accrual_schedule, debt.accrual_interval = schedule, interval
            else:
                debt.payment_schedule, debt.payment_interval = schedule, interval

            now = self._now()
            return self._commit(f"set_{kind}_schedule", debt, identity, now, [(
                DebtEventType.REARRANGEMENT, identity, None, {
                    'field': f"{kind}_schedule",
                    'schedule': schedule,
                    'interval_seconds': int(interval.total_seconds())
                }
            )])

    @_ledger_operation("set_accrual_schedule")
    def set_accrual_schedule(self, debt_id: int, caller: str, schedule: Union[Schedule, str]) -> Debt:
        """Change the accrual cadence; payee only, before a payer is bound"""
        return self._set_schedule(debt_id, caller, schedule, "accrual")

    @_ledger_operation("set_payment_schedule")
    def set_payment_schedule(self, debt_id: int, caller: str, schedule: Union[Schedule, str]) -> Debt:
        """Change the payment cadence; payee only, before a payer is bound"""
        return self._set_schedule(debt_id, caller, schedule, "payment")

    @_ledger_operation("set_expiration")
    def set_expiration(self, debt_id: int, caller: str, expires_at: Optional[datetime]) -> Debt:
        """
        Set the deadline after which nothing more can be locked; None removes it.
        Payee only, before a payer is bound.
        """
        identity = self._authenticate(caller)
        if expires_at is not None:
            if expires_at.tzinfo is None or expires_at.utcoffset() is None:
                raise TimingViolationError("Expiration must carry a timezone offset")
            expires_at = expires_at.astimezone(timezone.utc)

        with self._debt_lock(debt_id):
            debt = self._load(debt_id)
            self._require_open(debt)
            self._require_payee(debt, identity)
            if debt.payer is not None:
                raise InvalidStateError(
                    f"Expiration of debt {debt.id} is frozen once a payer is bound"
                )
            now = self._now()
            if expires_at is not None and expires_at <= now:
                raise TimingViolationError("Expiration must be in the future")

            debt.expires_at = expires_at
            return self._commit("set_expiration", debt, identity, now, [(
                DebtEventType.REARRANGEMENT, identity, None,
                {'field': 'expires_at', 'expires_at': expires_at}
            )])

    # Locking

    @_ledger_operation("lock_principal")
    def lock_principal(self, debt_id: int, caller: str, amount: Amount) -> Debt:
        """
        Escrow principal from the payer and resize the required interest.

        The first caller to lock becomes the payer.
        """
        identity = self._authenticate(caller)
        amount = self._positive(amount)

        with self._debt_lock(debt_id):
            debt = self._load(debt_id)
            self._require_open(debt)
            self._bind_payer(debt, identity)
            self._require_not_owed(debt)
            now = self._now()
            self._require_unexpired(debt, now)

            debt.principal += amount
            debt.interest = self.payment_engine.required_interest(debt.principal, debt.apr)
            if debt.interest <= Decimal('0'):
                raise ArithmeticBoundError(
                    f"Principal {debt.principal} bears no interest at APR {debt.apr} "
                    f"with {self.payment_engine.precision} decimal places"
                )
            debt.status = DebtStatus.LOCKED

            payer = debt.payer
            return self._commit(
                "lock_principal", debt, identity, now,
                [(DebtEventType.LOCK_PRINCIPAL, payer, amount, {
                    'principal': debt.principal,
                    'required_interest': debt.interest
                })],
                transfer=lambda: self.transfer_ledger.move_to_escrow(payer, amount)
            )

    @_ledger_operation("lock_interest")
    def lock_interest(self, debt_id: int, caller: str, amount: Amount) -> Debt:
        """
        Escrow interest from the payer.

        The lock that brings locked interest up to the required interest
        releases the principal to the payer and starts the payment phase.
        """
        identity = self._authenticate(caller)
        amount = self._positive(amount)

        with self._debt_lock(debt_id):
            debt = self._load(debt_id)
            self._require_open(debt)
            self._bind_payer(debt, identity)
            self._require_not_owed(debt)
            now = self._now()
            self._require_unexpired(debt, now)

            new_locked = debt.locked_interest + amount
            if new_locked > debt.interest:
                raise ArithmeticBoundError(
                    f"Locking {amount} would bring interest on debt {debt.id} to "
                    f"{new_locked}, above the required {debt.interest}"
                )
            debt.locked_interest = new_locked

            payer = debt.payer
            events: List[PendingEvent] = [(DebtEventType.LOCK_INTEREST, payer, amount, {
                'locked_interest': new_locked,
                'required_interest': debt.interest
            })]

            if new_locked < debt.interest:
                transfer = lambda: self.transfer_ledger.move_to_escrow(payer, amount)
            else:
                debt.owed = True
                debt.next_accrual = now + debt.accrual_interval
                debt.next_payment = now + debt.payment_interval
                events.append((DebtEventType.RELEASE_PRINCIPAL, payer, debt.principal, {
                    'next_accrual': debt.next_accrual,
                    'next_payment': debt.next_payment
                }))
                principal = debt.principal

                def transfer():
                    self.transfer_ledger.move_to_escrow(payer, amount)
                    try:
                        self.transfer_ledger.release_from_escrow(payer, principal)
                    except TransferError:
                        # Hand the instalment back so a refused release moves nothing
                        self.transfer_ledger.release_from_escrow(payer, amount)
                        raise

            return self._commit("lock_interest", debt, identity, now, events, transfer=transfer)

    # Payment phase

    @_ledger_operation("pay_interest")
    def pay_interest(self, debt_id: int, caller: str, amount: Amount) -> Debt:
        """
        Withdraw accrued interest to the payee inside the payment window
        """
        identity = self._authenticate(caller)
        amount = self._positive(amount)

        with self._debt_lock(debt_id):
            debt = self._load(debt_id)
            self._require_open(debt)
            self._require_payee(debt, identity)
            if not debt.owed:
                raise InvalidStateError(f"Debt {debt.id} is not in its payment phase")

            now = self._now()
            self.payment_engine.check_payment_window(debt, now)
            self.payment_engine.accrue(debt, now)
            if amount > debt.accrued_interest:
                raise ArithmeticBoundError(
                    f"Requested {amount} but only {debt.accrued_interest} has accrued on debt {debt.id}"
                )

            debt.accrued_interest -= amount
            debt.interest_paid += amount
            debt.next_payment = debt.next_payment + debt.payment_interval

            payee = debt.payee
            return self._commit(
                "pay_interest", debt, identity, now,
                [(DebtEventType.INTEREST_PAID, payee, amount, {
                    'accrued_interest': debt.accrued_interest,
                    'interest_paid': debt.interest_paid,
                    'next_payment': debt.next_payment
                })],
                transfer=lambda: self.transfer_ledger.release_from_escrow(payee, amount)
            )

    @_ledger_operation("flag_missed_payment")
    def flag_missed_payment(self, debt_id: int, caller: str) -> Debt:
        """
        Record that the payment window closed without a payment.

        Any participant may report it. The payment schedule moves on to the
        first window still open; no penalty is applied.
        """
        identity = self._authenticate(caller)

        with self._debt_lock(debt_id):
            debt = self._load(debt_id)
            self._require_open(debt)
            now = self._now()
            if not self.payment_engine.is_payment_overdue(debt, now):
                raise TimingViolationError(f"Debt {debt.id} has no overdue payment")

            self.payment_engine.accrue(debt, now)
            missed_due = debt.next_payment
            debt.next_payment, skipped = self.payment_engine.next_open_payment(debt, now)
            debt.missed_payments += skipped

            return self._commit("flag_missed_payment", debt, identity, now, [(
                DebtEventType.MISSED_PAYMENT, debt.payer, debt.accrued_interest, {
                    'missed_due': missed_due,
                    'windows_missed': skipped,
                    'next_payment': debt.next_payment,
                    'reported_by': identity
                }
            )])

    # Disputes, deletion and settlement

    @_ledger_operation("raise_dispute")
    def raise_dispute(self, debt_id: int, caller: str, reason: str = "") -> Debt:
        """Flag the debt as disputed; adjudication happens elsewhere"""
        identity = self._authenticate(caller)

        with self._debt_lock(debt_id):
            debt = self._load(debt_id)
            self._require_open(debt)
            self._require_party(debt, identity)
            if debt.disputed:
                raise InvalidStateError(f"Debt {debt.id} is already disputed")

            debt.disputed = True
            return self._commit("raise_dispute", debt, identity, self._now(), [(
                DebtEventType.DISPUTE_RAISED, identity, None, {'reason': reason}
            )])

    @_ledger_operation("resolve_dispute")
    def resolve_dispute(self, debt_id: int, caller: str) -> Debt:
        """Clear the dispute flag once both parties have consented"""
        identity = self._authenticate(caller)

        with self._debt_lock(debt_id):
            debt = self._load(debt_id)
            self._require_open(debt)
            self._require_party(debt, identity)
            if not debt.disputed:
                raise InvalidStateError(f"Debt {debt.id} is not disputed")
            if not self.consent_service.is_mutual_consent_confirmed(debt.id):
                raise UnauthorizedError(f"Mutual consent for debt {debt.id} is not confirmed")

            debt.disputed = False
            return self._commit("resolve_dispute", debt, identity, self._now(), [(
                DebtEventType.DISPUTE_RESOLVED, identity, None, {}
            )])

    @_ledger_operation("delete_debt")
    def delete_debt(self, debt_id: int, caller: str) -> Debt:
        """
        Retire a debt as INACTIVE.

        Needs mutual consent once a payer is bound, and nothing may remain
        in escrow for the debt.
        """
        identity = self._authenticate(caller)

        with self._debt_lock(debt_id):
            debt = self._load(debt_id)
            self._require_open(debt)
            self._require_party(debt, identity)
            if debt.payer is not None and not self.consent_service.is_mutual_consent_confirmed(debt.id):
                raise UnauthorizedError(f"Mutual consent for debt {debt.id} is not confirmed")
            if debt.escrow_balance != Decimal('0'):
                raise InvalidStateError(
                    f"Debt {debt.id} still holds {debt.escrow_balance} in escrow"
                )

            debt.status = DebtStatus.INACTIVE
            return self._commit("delete_debt", debt, identity, self._now(), [(
                DebtEventType.DEBT_DELETED, identity, None, {}
            )])

    @_ledger_operation("settle_debt")
    def settle_debt(self, debt_id: int, caller: str) -> Debt:
        """Mark a debt REPAID once every unit of interest has been paid out"""
        identity = self._authenticate(caller)

        with self._debt_lock(debt_id):
            debt = self._load(debt_id)
            self._require_open(debt)
            self._require_party(debt, identity)
            if not debt.owed:
                raise InvalidStateError(f"Debt {debt.id} is not in its payment phase")
            if debt.interest_paid != debt.interest:
                raise InvalidStateError(
                    f"Debt {debt.id} has {debt.interest - debt.interest_paid} interest outstanding"
                )

            debt.status = DebtStatus.REPAID
            return self._commit("settle_debt", debt, identity, self._now(), [(
                DebtEventType.DEBT_SETTLED, identity, debt.interest_paid, {}
            )])

    # Queries

    def get_debt(self, debt_id: int) -> Debt:
        return self._load(debt_id)

    def list_debts(self, payee: Optional[str] = None) -> List[Debt]:
        """Debts owned by a payee, or every debt when payee is None"""
        if payee is None:
            return self.store.list_all()
        return self.store.list_for_payee(payee)

    def claimable_interest(self, debt_id: int, now: Optional[datetime] = None) -> Decimal:
        """Accrued balance the payee could withdraw at ``now``"""
        return self.payment_engine.claimable(self._load(debt_id), now or self._now())

    def is_payment_overdue(self, debt_id: int, now: Optional[datetime] = None) -> bool:
        return self.payment_engine.is_payment_overdue(self._load(debt_id), now or self._now())

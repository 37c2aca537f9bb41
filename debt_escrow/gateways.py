"""
Collaborator Gateways Module

Narrow interfaces the ledger uses to reach identity resolution, value
transfer and mutual consent, plus in-process implementations used for
testing, and storage-backed ones used by the HTTP service.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, Optional, Set
import logging
import threading

from .storage import StorageInterface

logger = logging.getLogger("debt_escrow.gateways")


class TransferError(Exception):
    """Raised by a transfer ledger when a movement cannot be made in full"""
    code = "transfer_failed"


class IdentityGateway(ABC):
    """Resolves caller addresses to canonical identity handles"""

    @abstractmethod
    def resolve_identity(self, caller_address: str) -> Optional[str]:
        """Identity handle for an address, or None when unknown"""
        pass

    @abstractmethod
    def is_authorized_participant(self, identity: str) -> bool:
        """Whether the identity is a registered participant"""
        pass


class TransferLedger(ABC):
    """Moves value between participant balances and the ledger's escrow"""

    @abstractmethod
    def move_to_escrow(self, from_identity: str, amount: Decimal) -> None:
        """Move value into escrow; raises TransferError without moving anything on failure"""
        pass

    @abstractmethod
    def release_from_escrow(self, to_identity: str, amount: Decimal) -> None:
        """Release value from escrow; raises TransferError without moving anything on failure"""
        pass


class ConsentService(ABC):
    """Reports whether both parties attested to a change on a debt"""

    @abstractmethod
    def is_mutual_consent_confirmed(self, debt_id: int) -> bool:
        pass


class InMemoryIdentityRegistry(IdentityGateway):
    """Address book of registered participants"""

    def __init__(self):
        self._identities: Dict[str, str] = {}
        self._authorized: Set[str] = set()
        self._lock = threading.Lock()

    def register(self, address: str, identity: Optional[str] = None, authorized: bool = True) -> str:
        """Register an address; the identity defaults to the address itself"""
        identity = identity or address
        with self._lock:
            self._identities[address] = identity
            if authorized:
                self._authorized.add(identity)
            else:
                self._authorized.discard(identity)
        return identity

    def revoke(self, identity: str) -> None:
        with self._lock:
            self._authorized.discard(identity)

    def resolve_identity(self, caller_address: str) -> Optional[str]:
        with self._lock:
            return self._identities.get(caller_address)

    def is_authorized_participant(self, identity: str) -> bool:
        with self._lock:
            return identity in self._authorized


class InMemoryTransferLedger(TransferLedger):
    """
    Balance book with a single escrow account owned by the debt ledger
    """

    def __init__(self):
        self._balances: Dict[str, Decimal] = {}
        self.escrow_balance = Decimal('0')
        self._lock = threading.Lock()

    def deposit(self, identity: str, amount: Decimal) -> None:
        """Credit a participant balance from outside the system"""
        amount = Decimal(str(amount))
        if amount <= Decimal('0'):
            raise ValueError("Deposit amount must be positive")
        with self._lock:
            self._balances[identity] = self._balances.get(identity, Decimal('0')) + amount

    def balance_of(self, identity: str) -> Decimal:
        with self._lock:
            return self._balances.get(identity, Decimal('0'))

    def move_to_escrow(self, from_identity: str, amount: Decimal) -> None:
        with self._lock:
            balance = self._balances.get(from_identity, Decimal('0'))
            if amount <= Decimal('0'):
                raise TransferError(f"Transfer amount must be positive, got {amount}")
            if balance < amount:
                raise TransferError(
                    f"Insufficient balance for {from_identity}: {balance} < {amount}"
                )
            self._balances[from_identity] = balance - amount
            self.escrow_balance += amount
        logger.debug(f"Moved {amount} from {from_identity} into escrow")

    def release_from_escrow(self, to_identity: str, amount: Decimal) -> None:
        with self._lock:
            if amount <= Decimal('0'):
                raise TransferError(f"Transfer amount must be positive, got {amount}")
            if self.escrow_balance < amount:
                raise TransferError(
                    f"Insufficient escrow: {self.escrow_balance} < {amount}"
                )
            self.escrow_balance -= amount
            self._balances[to_identity] = self._balances.get(to_identity, Decimal('0')) + amount
        logger.debug(f"Released {amount} from escrow to {to_identity}")


class InMemoryConsentService(ConsentService):
    """Consent flags recorded per debt id"""

    def __init__(self):
        self._confirmed: Set[int] = set()
        self._lock = threading.Lock()

    def confirm(self, debt_id: int) -> None:
        with self._lock:
            self._confirmed.add(debt_id)

    def revoke(self, debt_id: int) -> None:
        with self._lock:
            self._confirmed.discard(debt_id)

    def is_mutual_consent_confirmed(self, debt_id: int) -> bool:
        with self._lock:
            return debt_id in self._confirmed


class StoredIdentityRegistry(IdentityGateway):
    """
    Participant address book kept in ledger storage, so registrations
    survive restarts alongside the debts
    """

    def __init__(self, storage: StorageInterface, table: str = "participants"):
        self.storage = storage
        self.table = table
        self.authorization_table = f"{table}_authorized"

    def register(self, address: str, identity: Optional[str] = None, authorized: bool = True) -> str:
        """Register an address; the identity defaults to the address itself"""
        identity = identity or address
        with self.storage.atomic():
            self.storage.save(self.table, address, {'address': address, 'identity': identity})
            self.storage.save(self.authorization_table, identity, {
                'identity': identity,
                'authorized': authorized
            })
        logger.info(f"Registered {address} as {identity} (authorized={authorized})")
        return identity

    def revoke(self, identity: str) -> None:
        self.storage.save(self.authorization_table, identity, {'identity': identity, 'authorized': False})
        logger.info(f"Revoked participant {identity}")

    def resolve_identity(self, caller_address: str) -> Optional[str]:
        record = self.storage.load(self.table, caller_address)
        return record['identity'] if record else None

    def is_authorized_participant(self, identity: str) -> bool:
        record = self.storage.load(self.authorization_table, identity)
        return bool(record and record['authorized'])


class StoredTransferLedger(TransferLedger):
    """
    Balance book kept in ledger storage.

    Movements join the caller's storage transaction, so a debt mutation
    that rolls back also rolls back its transfers.
    """

    ESCROW_ID = "escrow"

    def __init__(self, storage: StorageInterface, table: str = "balances"):
        self.storage = storage
        self.table = table
        self.escrow_table = f"{table}_escrow"

    def _balance(self, identity: str) -> Decimal:
        record = self.storage.load(self.table, identity)
        return Decimal(record['balance']) if record else Decimal('0')

    def _set_balance(self, identity: str, balance: Decimal) -> None:
        self.storage.save(self.table, identity, {'identity': identity, 'balance': str(balance)})

    def _set_escrow(self, balance: Decimal) -> None:
        self.storage.save(self.escrow_table, self.ESCROW_ID, {'balance': str(balance)})

    @property
    def escrow_balance(self) -> Decimal:
        record = self.storage.load(self.escrow_table, self.ESCROW_ID)
        return Decimal(record['balance']) if record else Decimal('0')

    def deposit(self, identity: str, amount: Decimal) -> Decimal:
        """Credit a participant balance from outside the system; returns the new balance"""
        amount = Decimal(str(amount))
        if not amount.is_finite() or amount <= Decimal('0'):
            raise ValueError("Deposit amount must be positive")
        with self.storage.atomic():
            balance = self._balance(identity) + amount
            self._set_balance(identity, balance)
        logger.info(f"Deposited {amount} for {identity}")
        return balance

    def balance_of(self, identity: str) -> Decimal:
        return self._balance(identity)

    def move_to_escrow(self, from_identity: str, amount: Decimal) -> None:
        if amount <= Decimal('0'):
            raise TransferError(f"Transfer amount must be positive, got {amount}")
        with self.storage.atomic():
            balance = self._balance(from_identity)
            if balance < amount:
                raise TransferError(
                    f"Insufficient balance for {from_identity}: {balance} < {amount}"
                )
            self._set_balance(from_identity, balance - amount)
            self._set_escrow(self.escrow_balance + amount)
        logger.debug(f"Moved {amount} from {from_identity} into escrow")

    def release_from_escrow(self, to_identity: str, amount: Decimal) -> None:
        if amount <= Decimal('0'):
            raise TransferError(f"Transfer amount must be positive, got {amount}")
        with self.storage.atomic():
            escrow = self.escrow_balance
            if escrow < amount:
                raise TransferError(f"Insufficient escrow: {escrow} < {amount}")
            self._set_escrow(escrow - amount)
            self._set_balance(to_identity, self._balance(to_identity) + amount)
        logger.debug(f"Released {amount} from escrow to {to_identity}")


class StoredConsentService(ConsentService):
    """Consent flags per debt id kept in ledger storage"""

    def __init__(self, storage: StorageInterface, table: str = "consents"):
        self.storage = storage
        self.table = table

    def confirm(self, debt_id: int) -> None:
        self.storage.save(self.table, str(debt_id), {'debt_id': debt_id, 'confirmed': True})

    def revoke(self, debt_id: int) -> None:
        self.storage.delete(self.table, str(debt_id))

    def is_mutual_consent_confirmed(self, debt_id: int) -> bool:
        record = self.storage.load(self.table, str(debt_id))
        return bool(record and record['confirmed'])

"""
System wiring and request dependencies
"""

import hmac
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from ..config import EscrowConfig, get_config
from ..debts import DebtLedger
from ..event_log import EventLog
from ..gateways import (
    IdentityGateway, StoredIdentityRegistry, StoredTransferLedger, StoredConsentService
)
from ..identity_client import IdentityServiceClient
from ..payments import PaymentEngine
from ..storage import StorageInterface, create_storage


class EscrowSystem:
    """Debt ledger with its storage and collaborators initialized"""

    def __init__(
        self,
        config: Optional[EscrowConfig] = None,
        storage: Optional[StorageInterface] = None,
        identity_gateway: Optional[IdentityGateway] = None,
        clock=None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)
        self.identity_gateway = identity_gateway or self._create_identity_gateway()
        self.transfer_ledger = StoredTransferLedger(self.storage)
        self.consent_service = StoredConsentService(self.storage)
        self.event_log = EventLog(self.storage)
        self.payment_engine = PaymentEngine(
            payment_window=timedelta(seconds=self.config.payment_window_seconds),
            precision=self.config.amount_precision
        )
        self.ledger = DebtLedger(
            self.storage,
            self.identity_gateway,
            self.transfer_ledger,
            self.consent_service,
            event_log=self.event_log,
            payment_engine=self.payment_engine,
            clock=clock
        )

    def _create_identity_gateway(self) -> IdentityGateway:
        """Remote identity service when configured, stored registry otherwise"""
        if not self.config.identity_service_url:
            return StoredIdentityRegistry(self.storage)

        return IdentityServiceClient(
            base_url=self.config.identity_service_url,
            timeout=self.config.identity_service_timeout,
            api_key=self.config.identity_service_api_key or None
        )


_escrow_system: Optional[EscrowSystem] = None


def get_escrow_system() -> EscrowSystem:
    """Dependency returning the process-wide system, built on first use"""
    global _escrow_system
    if _escrow_system is None:
        _escrow_system = EscrowSystem()
    return _escrow_system


def set_escrow_system(system: Optional[EscrowSystem]) -> None:
    """Replace the process-wide system (tests, embedding)"""
    global _escrow_system
    _escrow_system = system


def get_caller(x_caller_address: str = Header(..., description="Address of the calling participant")) -> str:
    return x_caller_address


def require_admin(
    x_admin_key: Optional[str] = Header(None, description="Admin API key"),
    system: EscrowSystem = Depends(get_escrow_system)
) -> EscrowSystem:
    """Gate admin endpoints on the configured admin key, when one is set"""
    expected = system.config.admin_api_key
    if expected and not (x_admin_key and hmac.compare_digest(x_admin_key, expected)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin key")
    return system

"""
Identity Service Client Module

REST client implementing IdentityGateway against a remote identity service.
Fails closed: when the service is unreachable or answers with an error,
the caller is treated as unknown and the ledger rejects it.
"""

import httpx
import logging
from typing import Optional
from urllib.parse import quote

from .gateways import IdentityGateway

logger = logging.getLogger("debt_escrow.identity")


class IdentityServiceClient(IdentityGateway):
    """
    Expects two endpoints:

        GET /identities/{address}    -> {"identity": "<handle>"} or 404
        GET /participants/{identity} -> {"authorized": true|false} or 404
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 2.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.Client(
            base_url=self.base_url, timeout=timeout, headers=headers, transport=transport
        )

    def _get_json(self, path: str) -> Optional[dict]:
        try:
            response = self._client.get(path)
        except httpx.HTTPError as e:
            logger.error(f"Identity service request {path} failed: {e}")
            return None

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.warning(f"Identity service returned {response.status_code} for {path}: {response.text}")
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning(f"Identity service returned invalid JSON for {path}")
            return None

    def resolve_identity(self, caller_address: str) -> Optional[str]:
        data = self._get_json(f"/identities/{quote(caller_address, safe='')}")
        if not data:
            return None
        identity = data.get("identity")
        return str(identity) if identity else None

    def is_authorized_participant(self, identity: str) -> bool:
        data = self._get_json(f"/participants/{quote(identity, safe='')}")
        return bool(data and data.get("authorized") is True)

    def health_check(self) -> bool:
        """Check if the identity service is healthy"""
        try:
            return self._client.get("/health").status_code == 200
        except httpx.HTTPError:
            return False

    def close(self):
        """Close the HTTP client"""
        self._client.close()

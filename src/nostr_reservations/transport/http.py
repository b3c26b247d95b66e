"""
Relay information documents (NIP-11) over HTTP.

A relay serves its metadata at the websocket URL's http(s) twin when asked
with ``Accept: application/nostr+json``.
"""

from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from nostr_reservations.errors import RelayError
from nostr_reservations.transport.relay import normalize_relay_url


class RelayLimitation(BaseModel):
    model_config = ConfigDict(extra="allow")

    max_message_length: Optional[int] = None
    max_subscriptions: Optional[int] = None
    max_content_length: Optional[int] = None
    min_pow_difficulty: Optional[int] = None
    auth_required: Optional[bool] = None
    payment_required: Optional[bool] = None


class RelayInformation(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    description: Optional[str] = None
    pubkey: Optional[str] = None
    contact: Optional[str] = None
    supported_nips: list[int] = []
    software: Optional[str] = None
    version: Optional[str] = None
    limitation: Optional[RelayLimitation] = None

    @property
    def min_pow_difficulty(self) -> int:
        if self.limitation and self.limitation.min_pow_difficulty:
            return self.limitation.min_pow_difficulty
        return 0

    def supports(self, nip: int) -> bool:
        return nip in self.supported_nips


def http_url(relay_url: str) -> str:
    url = normalize_relay_url(relay_url)
    return "https://" + url[len("wss://"):] if url.startswith("wss://") else "http://" + url[len("ws://"):]


class RelayInfoClient:
    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(
            headers={"User-Agent": "nostr-reservations/0.1.0", "Accept": "application/nostr+json"},
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def get(self, relay_url: str) -> RelayInformation:
        url = http_url(relay_url)
        try:
            resp = await self._client.get(url)
        except httpx.HTTPError as e:
            raise RelayError(f"Could not fetch relay information from {url}: {e}", relay_url)
        if resp.status_code >= 400:
            raise RelayError(f"HTTP {resp.status_code}: {resp.text[:200]}", relay_url)
        try:
            data: Any = resp.json()
            return RelayInformation.model_validate(data)
        except (ValueError, ValidationError) as e:
            raise RelayError(f"Invalid relay information document from {url}: {e}", relay_url)

    async def close(self) -> None:
        await self._client.aclose()

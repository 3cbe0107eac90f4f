"""
relay/services/record_store.py

Client for the external key-value record store that holds repeat-trigger state.
Records are scoped by an optional secret sent in the X-Secret header.
The store is outside the upstream trust domain: no upstream auth headers are attached.
"""

from typing import Any, Optional, Protocol

import structlog

from config import settings
from relay.constants import RECORD_STORE_PATH, RECORD_STORE_SECRET_HEADER
from relay.exceptions import MalformedResponseError
from relay.services.transport import Transport, prepare_headers

logger = structlog.get_logger(__name__)


class RecordStore(Protocol):
    """Get/set access to one JSON record per secret."""

    async def get(self, secret: Optional[str]) -> Any: ...

    async def set(self, secret: Optional[str], record: dict) -> None: ...


class HttpRecordStore:
    """RecordStore backed by the GET/POST /api/records service."""

    def __init__(self, transport: Transport, base_url: Optional[str] = None) -> None:
        self.transport = transport
        self.base_url = (base_url or settings.record_store_url).rstrip("/")
        self.url = f"{self.base_url}{RECORD_STORE_PATH}"

    def _headers(self, secret: Optional[str]) -> dict[str, str]:
        headers = {RECORD_STORE_SECRET_HEADER: secret} if secret else {}
        return prepare_headers(self.url, headers=headers, store_url=self.base_url)

    async def get(self, secret: Optional[str]) -> Any:
        """Return the stored record, or None when the body is not JSON."""
        try:
            record = await self.transport.request("GET", self.url, headers=self._headers(secret))
        except MalformedResponseError as exc:
            logger.warning("repeat_state_malformed", error=str(exc))
            return None
        logger.debug("record_store_read", found=bool(record))
        return record

    async def set(self, secret: Optional[str], record: dict) -> None:
        await self.transport.request(
            "POST", self.url, headers=self._headers(secret), json=record
        )
        logger.debug("record_store_written", keys=sorted(record))

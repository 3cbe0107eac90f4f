"""
relay/services/transport.py

HTTP transport used by every outbound call, plus the upstream header policy.
- HttpxTransport: executes one request and returns the parsed JSON body
- prepare_headers: attaches client identification and bearer auth to upstream calls only

Non-2xx responses raise httpx.HTTPStatusError and are not retried here.
A 2xx body that is not JSON raises MalformedResponseError.
"""

from typing import Any, Optional, Protocol
from urllib.parse import urlsplit

import httpx
import structlog

from config import settings
from relay.constants import (
    ACCOUNT_ID_HEADER,
    LINKUP_HOST_TEMPLATE,
    LOGIN_PATH,
    UPSTREAM_FIXED_HEADERS,
)
from relay.exceptions import MalformedResponseError

logger = structlog.get_logger(__name__)


class Transport(Protocol):
    """Executes a request and returns the parsed response body."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        json: Any = None,
    ) -> Any: ...


class HttpxTransport:
    """Transport backed by a shared httpx.AsyncClient."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        json: Any = None,
    ) -> Any:
        try:
            response = await self.client.request(
                method=method.upper(),
                url=url,
                headers=headers,
                json=json,
                timeout=settings.http_timeout_s,
            )
            logger.debug(
                "http_request_completed",
                method=method.upper(),
                url=url,
                status=response.status_code,
            )
            response.raise_for_status()
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as exc:
                logger.error("http_malformed_body", method=method.upper(), url=url)
                raise MalformedResponseError(f"Malformed JSON body from {url}") from exc
        except httpx.TimeoutException:
            logger.warning("http_timeout", method=method.upper(), url=url)
            raise
        except httpx.HTTPStatusError as exc:
            logger.error(
                "http_status_error",
                method=method.upper(),
                url=url,
                status=exc.response.status_code,
            )
            raise


def base_url_for_region(region: Optional[str]) -> str:
    """Return the upstream base URL; an empty region selects the global host."""
    suffix = f"-{region}" if region else ""
    return LINKUP_HOST_TEMPLATE.format(suffix=suffix)


def is_record_store_url(url: str, store_url: Optional[str] = None) -> bool:
    """Record-store calls live in a different trust domain, matched by hostname."""
    return urlsplit(url).hostname == urlsplit(store_url or settings.record_store_url).hostname


def prepare_headers(
    url: str,
    *,
    token: Optional[str] = None,
    account_id: Optional[str] = None,
    headers: Optional[dict[str, str]] = None,
    store_url: Optional[str] = None,
) -> dict[str, str]:
    """
    Build outbound headers for a request to url.

    Record-store requests get the caller's headers untouched. Upstream requests get
    the fixed client headers, the account-id once known, and the bearer token
    except on the login endpoint. store_url overrides the configured store host.
    """
    merged = dict(headers or {})
    if is_record_store_url(url, store_url):
        return merged

    merged.update(UPSTREAM_FIXED_HEADERS)
    merged["product"] = settings.linkup_product
    merged["version"] = settings.linkup_version
    if account_id:
        merged[ACCOUNT_ID_HEADER] = account_id
    if token and urlsplit(url).path != LOGIN_PATH:
        merged["authorization"] = f"Bearer {token}"
    return merged

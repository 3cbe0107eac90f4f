"""
relay/services/session.py

Session acquisition against the LibreLinkUp API.

The login is a finite state machine:
    LOGIN  --redirect-->  LOGIN (new region)
    LOGIN  --terms------>  TERMS (continue/{type})
    TERMS  --redirect-->  LOGIN (new region)
    TERMS  --terms------>  TERMS (next type)
    any    --ticket----->  DONE
    any    --other------>  FAILED
Redirects are bounded by the number of known regions and terms steps by
settings.linkup_max_terms_steps, so the loop always terminates.
"""

import hashlib
from enum import Enum
from typing import Any, Optional

import structlog

from config import settings
from relay.constants import (
    CONNECTIONS_PATH,
    LOGIN_PATH,
    MAX_LOGIN_REDIRECTS,
    TERMS_CONTINUE_PATH,
)
from relay.exceptions import AuthenticationError, ProtocolError
from relay.schemas import Credentials, SessionInfo
from relay.services.transport import Transport, base_url_for_region, prepare_headers

logger = structlog.get_logger(__name__)


class AuthState(str, Enum):
    LOGIN = "login"
    TERMS = "terms"
    DONE = "done"
    FAILED = "failed"


class AuthResponse(str, Enum):
    REDIRECT = "redirect"
    TERMS_PENDING = "terms_pending"
    SUCCESS = "success"
    UNKNOWN = "unknown"


def account_id_for(user_id: str) -> str:
    """Stable, non-reversible account identifier derived from the upstream user id."""
    return hashlib.sha256(user_id.encode("utf-8")).hexdigest()


def classify_auth_response(body: Any) -> AuthResponse:
    """Discriminate a login/continue response by its shape."""
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict):
        return AuthResponse.UNKNOWN
    if data.get("redirect") is True and data.get("region"):
        return AuthResponse.REDIRECT
    step = data.get("step")
    if isinstance(step, dict) and step.get("type"):
        return AuthResponse.TERMS_PENDING
    ticket = data.get("authTicket")
    if isinstance(ticket, dict) and ticket.get("token"):
        return AuthResponse.SUCCESS
    return AuthResponse.UNKNOWN


def _ticket_token(data: dict) -> Optional[str]:
    ticket = data.get("authTicket")
    if isinstance(ticket, dict):
        return ticket.get("token")
    return None


def _failure_message(body: Any) -> str:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return f"Authentication failed: {error['message']}"
        if "status" in body:
            return f"Authentication failed: unexpected response (status={body['status']})"
    return "Authentication failed: unexpected response"


async def authenticate(
    transport: Transport,
    credentials: Credentials,
    pending_terms_type: Optional[str] = None,
) -> SessionInfo:
    """
    Run the login state machine and return the session to persist.

    Starts in TERMS when pending_terms_type is given (resuming a login that stopped
    at a terms step), otherwise in LOGIN. Raises AuthenticationError on an
    unrecognized response and ProtocolError when a loop guard trips.
    """
    region = credentials.region or settings.linkup_default_region
    state = AuthState.TERMS if pending_terms_type else AuthState.LOGIN
    terms_type = pending_terms_type
    provisional_token = credentials.token
    account_id = credentials.account_id
    redirects = 0
    terms_steps = 0
    session: Optional[SessionInfo] = None
    body: Any = None

    while state not in (AuthState.DONE, AuthState.FAILED):
        if state is AuthState.LOGIN:
            url = f"{base_url_for_region(region)}{LOGIN_PATH}"
            body = await transport.request(
                "POST",
                url,
                headers=prepare_headers(url),
                json={"email": credentials.email, "password": credentials.password},
            )
        else:
            url = base_url_for_region(region) + TERMS_CONTINUE_PATH.format(
                terms_type=terms_type
            )
            body = await transport.request(
                "POST",
                url,
                headers=prepare_headers(
                    url, token=provisional_token, account_id=account_id
                ),
            )

        kind = classify_auth_response(body)
        data = body["data"] if kind is not AuthResponse.UNKNOWN else {}

        if kind is AuthResponse.REDIRECT:
            redirects += 1
            if redirects > MAX_LOGIN_REDIRECTS:
                raise ProtocolError(
                    f"Login redirected more than {MAX_LOGIN_REDIRECTS} times"
                )
            logger.info("session_redirected", from_region=region, to_region=data["region"])
            region = data["region"]
            state = AuthState.LOGIN

        elif kind is AuthResponse.TERMS_PENDING:
            terms_steps += 1
            if terms_steps > settings.linkup_max_terms_steps:
                raise ProtocolError(
                    f"Terms continuation did not resolve after "
                    f"{settings.linkup_max_terms_steps} steps"
                )
            terms_type = data["step"]["type"]
            provisional_token = _ticket_token(data) or provisional_token
            logger.info("session_terms_pending", region=region, terms_type=terms_type)
            state = AuthState.TERMS

        elif kind is AuthResponse.SUCCESS:
            user = data.get("user")
            user_id = user.get("id") if isinstance(user, dict) else None
            session = SessionInfo(
                token=data["authTicket"]["token"],
                region=region,
                account_id=account_id_for(str(user_id)) if user_id else None,
            )
            state = AuthState.DONE

        else:
            state = AuthState.FAILED

    if session is None:
        logger.error("session_failed", region=region)
        raise AuthenticationError(_failure_message(body))

    logger.info(
        "session_established",
        region=session.region,
        has_account_id=session.account_id is not None,
    )
    return session


async def check_session(transport: Transport, credentials: Credentials) -> SessionInfo:
    """Authenticate and prove the token with one authenticated connections request."""
    session = await authenticate(transport, credentials)
    url = f"{base_url_for_region(session.region)}{CONNECTIONS_PATH}"
    await transport.request(
        "GET",
        url,
        headers=prepare_headers(url, token=session.token, account_id=session.account_id),
    )
    return session

"""
relay/services/poller.py

Caller-facing poll operations.
Each poll is a strictly sequential chain: session, connections fetch, then
(for measurements) at most one record-store read and one write.
No state is kept in-process; the returned session must be persisted by the caller.
"""

from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog

from config import settings
from relay.schemas import (
    Connection,
    ConnectionsPollResult,
    Credentials,
    MeasurementPollRequest,
    MeasurementPollResult,
    SessionInfo,
)
from relay.services.connections import (
    connection_thresholds,
    fetch_connections,
    find_connection,
    summarize_connection,
)
from relay.services.dedup import evaluate_repeat
from relay.services.enrichment import enrich_measurement
from relay.services.record_store import RecordStore
from relay.services.session import authenticate
from relay.services.transport import Transport

logger = structlog.get_logger(__name__)


def _reused_session(credentials: Credentials) -> Optional[SessionInfo]:
    if not credentials.token:
        return None
    return SessionInfo(
        token=credentials.token,
        region=credentials.region or settings.linkup_default_region,
        account_id=credentials.account_id,
    )


async def fetch_connections_with_session(
    transport: Transport,
    credentials: Credentials,
) -> tuple[SessionInfo, list[Connection]]:
    """
    Fetch connections, logging in only when needed.

    A persisted token is reused; if the upstream rejects it with 401 the session
    is re-established once and the fetch repeated.
    """
    session = _reused_session(credentials)
    if session is None:
        session = await authenticate(transport, credentials)
        return session, await fetch_connections(transport, session)

    try:
        return session, await fetch_connections(transport, session)
    except httpx.HTTPStatusError as exc:
        if exc.response.status_code != httpx.codes.UNAUTHORIZED:
            raise
        logger.info("session_expired", region=session.region)

    session = await authenticate(transport, credentials.model_copy(update={"token": None}))
    return session, await fetch_connections(transport, session)


async def poll_glucose_measurement(
    request: MeasurementPollRequest,
    *,
    transport: Transport,
    store: RecordStore,
    now: Optional[datetime] = None,
) -> MeasurementPollResult:
    """Run one glucose measurement poll for request.patient_id."""
    policy = request.policy
    policy.ensure_valid()

    session, connections = await fetch_connections_with_session(
        transport, request.credentials
    )
    connection = find_connection(connections, request.patient_id)
    measurement = enrich_measurement(
        connection.glucose_measurement, connection_thresholds(connection)
    )
    logger.info(
        "measurement_enriched",
        measurement_id=measurement.id,
        value_mg_dl=measurement.value_in_mg_per_dl,
        is_high=measurement.is_high,
        is_low=measurement.is_low,
    )

    measurements = await evaluate_repeat(
        measurement,
        store=store,
        policy=policy,
        now=now or datetime.now(timezone.utc),
        requested_range=request.range,
        secret=request.store_secret,
        sample=request.sample,
    )
    return MeasurementPollResult(session=session, measurements=measurements)


async def list_connections(
    transport: Transport,
    credentials: Credentials,
) -> ConnectionsPollResult:
    """Return every connection with enriched measurements and mmol/L targets."""
    session, connections = await fetch_connections_with_session(transport, credentials)
    return ConnectionsPollResult(
        session=session,
        connections=[summarize_connection(connection) for connection in connections],
    )

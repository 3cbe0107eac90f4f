"""
relay/services/connections.py

Connection lookup against the authenticated /llu/connections endpoint.
Connections are fetched fresh on every poll and never cached.
"""

from typing import Optional

import structlog
from pydantic import ValidationError

from relay.constants import CONNECTIONS_PATH
from relay.exceptions import ConnectionNotFoundError, ProtocolError
from relay.schemas import (
    Connection,
    ConnectionsResponse,
    ConnectionSummary,
    SessionInfo,
    Thresholds,
)
from relay.services.enrichment import enrich_measurement, mg_dl_to_mmol_l
from relay.services.transport import Transport, base_url_for_region, prepare_headers

logger = structlog.get_logger(__name__)


async def fetch_connections(transport: Transport, session: SessionInfo) -> list[Connection]:
    """GET the connections list for the session's account."""
    url = f"{base_url_for_region(session.region)}{CONNECTIONS_PATH}"
    body = await transport.request(
        "GET",
        url,
        headers=prepare_headers(url, token=session.token, account_id=session.account_id),
    )
    try:
        connections = ConnectionsResponse.model_validate(body).data
    except ValidationError as exc:
        raise ProtocolError(f"Malformed connections response: {exc}") from exc
    logger.info("connections_fetched", region=session.region, count=len(connections))
    return connections


def find_connection(connections: list[Connection], patient_id: str) -> Connection:
    for connection in connections:
        if connection.patient_id == patient_id:
            return connection
    raise ConnectionNotFoundError(patient_id)


async def get_connection(
    transport: Transport,
    session: SessionInfo,
    patient_id: str,
) -> Connection:
    return find_connection(await fetch_connections(transport, session), patient_id)


def connection_thresholds(connection: Connection) -> Thresholds:
    """Alarm rules when present, else the legacy patient-device pair."""
    if connection.alarm_rules is not None:
        return connection.alarm_rules
    if connection.patient_device is not None:
        return connection.patient_device.as_pair()
    raise ProtocolError(f"Connection {connection.patient_id} carries no alarm thresholds")


def _mmol_or_none(value: Optional[float]) -> Optional[float]:
    return mg_dl_to_mmol_l(value) if value is not None else None


def summarize_connection(connection: Connection) -> ConnectionSummary:
    """Enrich both measurements of a connection against its device thresholds."""
    thresholds = (
        connection.patient_device.as_pair()
        if connection.patient_device is not None
        else connection_thresholds(connection)
    )
    return ConnectionSummary(
        patient_id=connection.patient_id,
        first_name=connection.first_name,
        last_name=connection.last_name,
        full_name=connection.full_name,
        target_low=connection.target_low,
        target_low_mm=_mmol_or_none(connection.target_low),
        target_high=connection.target_high,
        target_high_mm=_mmol_or_none(connection.target_high),
        glucose_measurement=enrich_measurement(connection.glucose_measurement, thresholds),
        glucose_item=(
            enrich_measurement(connection.glucose_item, thresholds)
            if connection.glucose_item is not None
            else None
        ),
    )

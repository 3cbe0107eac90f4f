"""
relay/routers/triggers.py

Polling endpoints for automation triggers.
- POST /session: authenticate and verify the session
- POST /triggers/connections: list monitored patients
- POST /triggers/glucose-measurement: current measurement, filtered and deduplicated

Every response carries the session the caller must send back on the next poll.
"""

from contextlib import contextmanager
from typing import Iterator

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from relay.exceptions import ConfigurationError, ProtocolError
from relay.schemas import (
    ConnectionsPollResult,
    Credentials,
    MeasurementPollRequest,
    MeasurementPollResult,
    SessionInfo,
)
from relay.services.poller import list_connections, poll_glucose_measurement
from relay.services.record_store import HttpRecordStore, RecordStore
from relay.services.session import check_session
from relay.services.transport import HttpxTransport, Transport

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_transport(request: Request) -> Transport:
    return HttpxTransport(request.app.state.http_client)


def get_record_store(transport: Transport = Depends(get_transport)) -> RecordStore:
    return HttpRecordStore(transport)


@contextmanager
def _mapped_errors(operation: str) -> Iterator[None]:
    """Translate service errors into HTTP responses."""
    try:
        yield
    except ConfigurationError as exc:
        logger.warning("poll_configuration_error", operation=operation, error=str(exc))
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ProtocolError as exc:
        logger.error("poll_protocol_error", operation=operation, error=str(exc))
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except httpx.HTTPStatusError as exc:
        logger.error(
            "poll_upstream_error",
            operation=operation,
            status=exc.response.status_code,
        )
        raise HTTPException(
            status_code=502,
            detail=f"Upstream returned {exc.response.status_code} for {exc.request.url}",
        ) from exc
    except httpx.RequestError as exc:
        logger.error("poll_transport_error", operation=operation, error=str(exc))
        raise HTTPException(status_code=504, detail=str(exc)) from exc


@router.post("/session", response_model=SessionInfo)
async def create_session(
    credentials: Credentials,
    transport: Transport = Depends(get_transport),
) -> SessionInfo:
    with _mapped_errors("session"):
        return await check_session(transport, credentials)


@router.post("/triggers/connections", response_model=ConnectionsPollResult)
async def poll_connections(
    credentials: Credentials,
    transport: Transport = Depends(get_transport),
) -> ConnectionsPollResult:
    with _mapped_errors("connections"):
        return await list_connections(transport, credentials)


@router.post("/triggers/glucose-measurement", response_model=MeasurementPollResult)
async def poll_measurement(
    payload: MeasurementPollRequest,
    transport: Transport = Depends(get_transport),
    store: RecordStore = Depends(get_record_store),
) -> MeasurementPollResult:
    """
    Poll the current measurement of one patient.

    Flow:
    1. Reuse or establish the upstream session
    2. Look up the patient's connection and enrich its measurement
    3. Apply the range filter and the repeat policy
    """
    logger.info(
        "measurement_poll_received",
        patient_id=payload.patient_id,
        range=payload.range.value if payload.range else None,
        repeat_minutes=payload.repeat_minutes,
        sample=payload.sample,
    )
    with _mapped_errors("glucose_measurement"):
        result = await poll_glucose_measurement(payload, transport=transport, store=store)
    logger.info(
        "measurement_poll_complete",
        patient_id=payload.patient_id,
        emitted=len(result.measurements),
    )
    return result

"""
tests/fixtures.py

Shared test data and helper functions for constructing upstream payloads.
All tests must use these fixtures instead of hardcoding test values.
"""

from typing import Any, Optional

from relay.schemas import Connection, Credentials, RawMeasurement, ThresholdPair

TEST_PATIENT_ID: str = "patient-0001"
TEST_FACTORY_TIMESTAMP: str = "5/21/2022 1:38:50 PM"
TEST_TOKEN: str = "token-abc"
TEST_USER_ID: str = "user-1234"


def build_raw_payload(
    factory_timestamp: str = TEST_FACTORY_TIMESTAMP,
    value_mg_dl: float = 91,
    trend_arrow: Optional[int] = 3,
    color: Optional[int] = 1,
    units: int = 1,
    is_high: bool = False,
    is_low: bool = False,
) -> dict:
    """Build a raw upstream glucoseMeasurement payload."""
    return {
        "FactoryTimestamp": factory_timestamp,
        "Timestamp": "5/21/2022 3:38:50 PM",
        "type": 1,
        "ValueInMgPerDl": value_mg_dl,
        "ValueInMmolPerL": 5.05,
        "TrendArrow": trend_arrow,
        "TrendMessage": None,
        "MeasurementColor": color,
        "GlucoseUnits": units,
        "Value": value_mg_dl,
        "isHigh": is_high,
        "isLow": is_low,
    }


def build_raw_measurement(**kwargs: Any) -> RawMeasurement:
    return RawMeasurement.model_validate(build_raw_payload(**kwargs))


def build_thresholds(low: float = 70, high: float = 180) -> ThresholdPair:
    return ThresholdPair(low=low, high=high)


def build_connection_payload(
    patient_id: str = TEST_PATIENT_ID,
    value_mg_dl: float = 91,
    alarm_low: Optional[float] = 70,
    alarm_high: Optional[float] = 180,
    device_low: float = 65,
    device_high: float = 130,
    factory_timestamp: str = TEST_FACTORY_TIMESTAMP,
) -> dict:
    """Build one upstream connection entry; alarm_low=None omits alarmRules."""
    payload = {
        "id": "conn-1",
        "patientId": patient_id,
        "country": "DE",
        "status": 2,
        "firstName": "John",
        "lastName": "Doe",
        "targetLow": 70,
        "targetHigh": 130,
        "uom": 1,
        "glucoseMeasurement": build_raw_payload(
            factory_timestamp=factory_timestamp, value_mg_dl=value_mg_dl
        ),
        "glucoseItem": build_raw_payload(
            factory_timestamp=factory_timestamp, value_mg_dl=value_mg_dl
        ),
        "patientDevice": {"did": "device-1", "ll": device_low, "hl": device_high},
    }
    if alarm_low is not None and alarm_high is not None:
        payload["alarmRules"] = {
            "c": True,
            "h": {"on": True, "th": alarm_high, "thmm": 10.0},
            "l": {"on": True, "th": alarm_low, "thmm": 3.9},
        }
    return payload


def build_connections_body(*connections: dict) -> dict:
    return {"status": 0, "data": list(connections)}


def build_connection(**kwargs: Any) -> Connection:
    return Connection.model_validate(build_connection_payload(**kwargs))


def build_credentials(
    region: Optional[str] = None,
    token: Optional[str] = None,
    account_id: Optional[str] = None,
) -> Credentials:
    return Credentials(
        email="user@example.com",
        password="secret",
        region=region,
        token=token,
        account_id=account_id,
    )


# ── Upstream auth responses ─────────────────────────────────


def redirect_body(region: str) -> dict:
    return {"status": 0, "data": {"redirect": True, "region": region}}


def terms_body(terms_type: str = "tou", token: Optional[str] = "provisional") -> dict:
    data: dict = {"step": {"type": terms_type, "componentName": "AcceptDocument"}}
    if token:
        data["authTicket"] = {"token": token, "expires": 0, "duration": 3600000}
    return {"status": 4, "data": data}


def success_body(token: str = TEST_TOKEN, user_id: Optional[str] = TEST_USER_ID) -> dict:
    data: dict = {"authTicket": {"token": token, "expires": 0, "duration": 15552000000}}
    if user_id:
        data["user"] = {"id": user_id, "firstName": "John"}
    return {"status": 0, "data": data}


# ── Fakes ───────────────────────────────────────────────────


class ScriptedTransport:
    """Transport returning queued bodies (or raising queued exceptions) in order."""

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: list[dict] = []

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        json: Any = None,
    ) -> Any:
        self.calls.append({"method": method, "url": url, "headers": headers or {}, "json": json})
        if not self.responses:
            raise AssertionError(f"Unexpected request {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class InMemoryRecordStore:
    """RecordStore fake keeping one record per secret."""

    def __init__(self, records: Optional[dict] = None) -> None:
        self.records: dict = dict(records or {})
        self.reads = 0
        self.writes = 0

    async def get(self, secret: Optional[str]) -> Any:
        self.reads += 1
        return self.records.get(secret, {})

    async def set(self, secret: Optional[str], record: dict) -> None:
        self.writes += 1
        self.records[secret] = dict(record)

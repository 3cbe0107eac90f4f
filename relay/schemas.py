"""
relay/schemas.py

Pydantic data models for the relay layer.
- Credentials / SessionInfo: login inputs and the derived session the caller persists
- RawMeasurement / EnrichedMeasurement / GlucoseMeasurement: telemetry before and after enrichment
- ThresholdPair / AlarmRules: the two historical threshold shapes
- Connection: one monitored patient as returned by the upstream API
- RepeatPolicy / RepeatState: repeat-trigger configuration and its stored state
- MeasurementPollRequest / MeasurementPollResult: the caller-facing poll contract

Upstream payload keys are kept as aliases so emitted events carry the upstream field names.
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from relay.exceptions import ConfigurationError


class UpstreamModel(BaseModel):
    """Base for models that mirror upstream camelCase payloads."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ── Session ─────────────────────────────────────────────────


class Credentials(BaseModel):
    """Login inputs plus the session fields derived by a previous poll."""

    email: str
    password: str
    region: Optional[str] = None
    token: Optional[str] = None
    account_id: Optional[str] = None


class SessionInfo(BaseModel):
    """Result of a successful login; must be persisted by the caller."""

    token: str
    region: str
    account_id: Optional[str] = None

    def apply_to(self, credentials: Credentials) -> Credentials:
        """Return credentials updated with this session's derived fields."""
        return credentials.model_copy(
            update={
                "region": self.region,
                "token": self.token,
                "account_id": self.account_id,
            }
        )


# ── Thresholds ──────────────────────────────────────────────


class ThresholdPair(BaseModel):
    """Low/high alarm values in mg/dL."""

    kind: Literal["pair"] = "pair"
    low: float
    high: float

    def as_pair(self) -> "ThresholdPair":
        return self


class AlarmRule(UpstreamModel):
    threshold: float = Field(alias="th")
    threshold_mmol: Optional[float] = Field(default=None, alias="thmm")


class AlarmRules(UpstreamModel):
    """Upstream alarmRules block; only the high/low thresholds are used."""

    kind: Literal["alarm_rules"] = "alarm_rules"
    high: AlarmRule = Field(alias="h")
    low: AlarmRule = Field(alias="l")

    def as_pair(self) -> ThresholdPair:
        return ThresholdPair(low=self.low.threshold, high=self.high.threshold)


Thresholds = Union[ThresholdPair, AlarmRules]


class PatientDevice(UpstreamModel):
    """Upstream patientDevice block carrying the legacy ll/hl thresholds."""

    low_limit: float = Field(alias="ll")
    high_limit: float = Field(alias="hl")

    def as_pair(self) -> ThresholdPair:
        return ThresholdPair(low=self.low_limit, high=self.high_limit)


# ── Measurements ────────────────────────────────────────────


class MeasurementRange(str, Enum):
    """Condition a measurement must satisfy to be emitted."""

    IS_HIGH = "isHigh"
    IS_LOW = "isLow"
    IS_IN_RANGE = "isInRange"
    IS_NOT_IN_RANGE = "isNotInRange"


class RawMeasurement(UpstreamModel):
    """Telemetry record as reported by the upstream API."""

    factory_timestamp: str = Field(alias="FactoryTimestamp")
    timestamp: Optional[str] = Field(default=None, alias="Timestamp")
    measurement_type: int = Field(default=0, alias="type")
    value_in_mg_per_dl: float = Field(alias="ValueInMgPerDl")
    trend_arrow: Optional[int] = Field(default=None, alias="TrendArrow")
    trend_message: Optional[str] = Field(default=None, alias="TrendMessage")
    measurement_color: Optional[int] = Field(default=None, alias="MeasurementColor")
    glucose_units: int = Field(default=1, alias="GlucoseUnits")
    value: float = Field(alias="Value")
    # Reported flags are ignored; enrichment recomputes them
    is_high: bool = Field(default=False, alias="isHigh")
    is_low: bool = Field(default=False, alias="isLow")


class EnrichedMeasurement(UpstreamModel):
    """Labeled, uniquely identified measurement."""

    id: str
    factory_timestamp: str = Field(alias="FactoryTimestamp")
    measurement_type: int = Field(alias="type")
    value_in_mg_per_dl: float = Field(alias="ValueInMgPerDl")
    value_in_mmol_per_l: float = Field(alias="ValueInMmolPerL")
    trend_arrow: int = Field(alias="TrendArrow")
    trend_arrow_icon: str = Field(alias="TrendArrowIcon")
    trend_arrow_direction: str = Field(alias="TrendArrowDirection")
    trend_message: Optional[str] = Field(default=None, alias="TrendMessage")
    measurement_color: int = Field(alias="MeasurementColor")
    measurement_color_formatted: str = Field(alias="MeasurementColorFormatted")
    glucose_units: int = Field(alias="GlucoseUnits")
    glucose_units_formatted: str = Field(alias="GlucoseUnitsFormatted")
    value: float = Field(alias="Value")
    is_high: bool = Field(alias="isHigh")
    is_low: bool = Field(alias="isLow")
    is_in_range: bool = Field(alias="isInRange")

    @model_validator(mode="after")
    def _exactly_one_range_flag(self) -> "EnrichedMeasurement":
        if [self.is_high, self.is_low, self.is_in_range].count(True) != 1:
            raise ValueError("exactly one of isHigh, isLow, isInRange must be true")
        return self


class GlucoseMeasurement(EnrichedMeasurement):
    """Enriched measurement as emitted by the glucose measurement trigger."""

    is_repeat: Optional[bool] = Field(default=None, alias="isRepeat")
    repeat_count: Optional[int] = Field(default=None, alias="repeatCount")


# ── Connections ─────────────────────────────────────────────


class Connection(UpstreamModel):
    """One monitored patient with live telemetry and alarm thresholds."""

    patient_id: str = Field(alias="patientId")
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    target_low: Optional[float] = Field(default=None, alias="targetLow")
    target_high: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("targetHigh", "targetHight"),
        serialization_alias="targetHigh",
    )
    glucose_measurement: RawMeasurement = Field(alias="glucoseMeasurement")
    glucose_item: Optional[RawMeasurement] = Field(default=None, alias="glucoseItem")
    alarm_rules: Optional[AlarmRules] = Field(default=None, alias="alarmRules")
    patient_device: Optional[PatientDevice] = Field(default=None, alias="patientDevice")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ConnectionsResponse(UpstreamModel):
    status: int = 0
    data: list[Connection]


class ConnectionSummary(UpstreamModel):
    """Connection as emitted by the connection listing trigger."""

    patient_id: str = Field(alias="patientId")
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    full_name: str = Field(alias="fullName")
    target_low: Optional[float] = Field(default=None, alias="targetLow")
    target_low_mm: Optional[float] = Field(default=None, alias="targetLowMm")
    target_high: Optional[float] = Field(default=None, alias="targetHigh")
    target_high_mm: Optional[float] = Field(default=None, alias="targetHighMm")
    glucose_measurement: EnrichedMeasurement = Field(alias="glucoseMeasurement")
    glucose_item: Optional[EnrichedMeasurement] = Field(default=None, alias="glucoseItem")


# ── Repeat-trigger state ────────────────────────────────────


class RepeatPolicy(BaseModel):
    """Minimum-interval gate for re-emitting the same reading."""

    repeat_minutes: Optional[int] = Field(default=None, ge=0)
    repeat_only: bool = False

    @property
    def enabled(self) -> bool:
        return bool(self.repeat_minutes)

    def ensure_valid(self) -> None:
        """Raise ConfigurationError for a repeat-only policy without an interval."""
        if self.repeat_only and not self.enabled:
            raise ConfigurationError("repeatOnly requires repeatMinutes to be set")


class RepeatState(BaseModel):
    """Last trigger time and repeat counter kept in the record store."""

    trigger_timestamp: datetime
    repeat_count: int = 0


# ── Poll contract ───────────────────────────────────────────


class MeasurementPollRequest(BaseModel):
    """Inputs of one glucose measurement poll."""

    credentials: Credentials
    patient_id: str
    range: Optional[MeasurementRange] = None
    repeat_minutes: Optional[int] = Field(default=None, ge=0)
    repeat_only: bool = False
    sample: bool = False
    store_secret: Optional[str] = None

    @field_validator("range", mode="before")
    @classmethod
    def _blank_range_matches_all(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and value.strip().lower() in ("", "none")):
            return None
        return value

    @property
    def policy(self) -> RepeatPolicy:
        return RepeatPolicy(
            repeat_minutes=self.repeat_minutes,
            repeat_only=self.repeat_only,
        )


class MeasurementPollResult(BaseModel):
    """Session to persist plus zero or one emitted measurement."""

    session: SessionInfo
    measurements: list[GlucoseMeasurement]


class ConnectionsPollResult(BaseModel):
    session: SessionInfo
    connections: list[ConnectionSummary]

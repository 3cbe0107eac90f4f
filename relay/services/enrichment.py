"""
relay/services/enrichment.py

Unit conversion, code lookups and measurement enrichment.
Everything here is pure: no I/O and no clock reads.
"""

import hashlib
from datetime import datetime, timezone
from typing import Optional

from config import settings
from relay.constants import (
    GLUCOSE_UNITS_LABEL_MG_DL,
    GLUCOSE_UNITS_LABEL_MMOL_L,
    GLUCOSE_UNITS_MG_DL,
    MEASUREMENT_COLOR,
    TREND_ARROW_DIRECTION,
    TREND_ARROW_ICON,
    UPSTREAM_TIMESTAMP_FORMAT,
)
from relay.exceptions import MeasurementDataError
from relay.schemas import EnrichedMeasurement, RawMeasurement, Thresholds


def hash_text(value: str) -> str:
    """128-bit hex digest used for measurement identifiers."""
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def measurement_id(factory_timestamp: str) -> str:
    return hash_text(factory_timestamp)


def mg_dl_to_mmol_l(value: float, factor: Optional[float] = None) -> float:
    return value / (factor or settings.mmol_conversion_factor)


def mmol_l_to_mg_dl(value: float, factor: Optional[float] = None) -> float:
    return value * (factor or settings.mmol_conversion_factor)


def _lookup(table: dict[int, str], code: Optional[int], label: str) -> str:
    if code not in table:
        raise MeasurementDataError(f"Unknown {label} code: {code!r}")
    return table[code]


def trend_arrow_icon(code: Optional[int]) -> str:
    return _lookup(TREND_ARROW_ICON, code, "trend arrow")


def trend_arrow_direction(code: Optional[int]) -> str:
    return _lookup(TREND_ARROW_DIRECTION, code, "trend arrow")


def measurement_color_label(code: Optional[int]) -> str:
    return _lookup(MEASUREMENT_COLOR, code, "measurement color")


def glucose_units_label(code: int) -> str:
    return GLUCOSE_UNITS_LABEL_MG_DL if code == GLUCOSE_UNITS_MG_DL else GLUCOSE_UNITS_LABEL_MMOL_L


def format_utc(moment: datetime) -> str:
    """Render a datetime as YYYY-MM-DDTHH:MM:SS.mmmZ in UTC."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def normalize_factory_timestamp(value: str) -> str:
    """
    Interpret an upstream timestamp as UTC wall-clock and re-emit it canonically.

    Accepts the upstream "5/21/2022 1:38:50 PM" form and ISO-8601; a naive value
    is taken as UTC, an explicit offset is honoured.
    """
    text = value.strip()
    try:
        parsed = datetime.strptime(text, UPSTREAM_TIMESTAMP_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise MeasurementDataError(f"Unparseable FactoryTimestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return format_utc(parsed)


def classify_value(value_mg_dl: float, thresholds: Thresholds) -> tuple[bool, bool, bool]:
    """Return (is_high, is_low, is_in_range); boundary values are in range."""
    pair = thresholds.as_pair()
    is_high = value_mg_dl > pair.high
    is_low = value_mg_dl < pair.low
    return is_high, is_low, not (is_high or is_low)


def enrich_measurement(raw: RawMeasurement, thresholds: Thresholds) -> EnrichedMeasurement:
    """Derive labels, unit conversion and range flags for one raw measurement."""
    is_high, is_low, is_in_range = classify_value(raw.value_in_mg_per_dl, thresholds)
    return EnrichedMeasurement(
        id=measurement_id(raw.factory_timestamp),
        factory_timestamp=normalize_factory_timestamp(raw.factory_timestamp),
        measurement_type=raw.measurement_type,
        value_in_mg_per_dl=raw.value_in_mg_per_dl,
        value_in_mmol_per_l=mg_dl_to_mmol_l(raw.value_in_mg_per_dl),
        trend_arrow=raw.trend_arrow,
        trend_arrow_icon=trend_arrow_icon(raw.trend_arrow),
        trend_arrow_direction=trend_arrow_direction(raw.trend_arrow),
        trend_message=raw.trend_message,
        measurement_color=raw.measurement_color,
        measurement_color_formatted=measurement_color_label(raw.measurement_color),
        glucose_units=raw.glucose_units,
        glucose_units_formatted=glucose_units_label(raw.glucose_units),
        value=raw.value,
        is_high=is_high,
        is_low=is_low,
        is_in_range=is_in_range,
    )

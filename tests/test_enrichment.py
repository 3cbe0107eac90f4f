"""
tests/test_enrichment.py

Unit tests for relay/services/enrichment.py.
Covers unit conversion, code lookups, timestamp normalization and range flags.
"""

import hashlib

import pytest

from relay.exceptions import MeasurementDataError
from relay.schemas import AlarmRules
from relay.services.enrichment import (
    enrich_measurement,
    glucose_units_label,
    mg_dl_to_mmol_l,
    mmol_l_to_mg_dl,
    normalize_factory_timestamp,
)
from tests.fixtures import (
    TEST_FACTORY_TIMESTAMP,
    build_raw_measurement,
    build_thresholds,
)


def test_mg_dl_converts_to_mmol_l() -> None:
    """91 mg/dL is about 5.05 mmol/L with the default factor."""
    assert mg_dl_to_mmol_l(91) == pytest.approx(5.05, abs=0.01)


def test_mmol_conversion_round_trips() -> None:
    assert mmol_l_to_mg_dl(mg_dl_to_mmol_l(142)) == pytest.approx(142)


def test_conversion_factor_is_overridable() -> None:
    assert mg_dl_to_mmol_l(90, factor=18) == pytest.approx(5.0)


def test_upstream_timestamp_is_read_as_utc() -> None:
    assert normalize_factory_timestamp(TEST_FACTORY_TIMESTAMP) == "2022-05-21T13:38:50.000Z"


def test_iso_timestamp_is_accepted() -> None:
    assert normalize_factory_timestamp("2022-05-21T01:39:50") == "2022-05-21T01:39:50.000Z"
    assert normalize_factory_timestamp("2022-05-21T01:39:50.000Z") == "2022-05-21T01:39:50.000Z"


def test_garbage_timestamp_is_a_data_error() -> None:
    with pytest.raises(MeasurementDataError):
        normalize_factory_timestamp("not a date")


def test_enrichment_labels_measurement() -> None:
    """Lookups, units and identifier are derived from the raw record."""
    measurement = enrich_measurement(build_raw_measurement(), build_thresholds())

    assert measurement.id == hashlib.md5(TEST_FACTORY_TIMESTAMP.encode()).hexdigest()
    assert measurement.factory_timestamp == "2022-05-21T13:38:50.000Z"
    assert measurement.trend_arrow_icon == "→"
    assert measurement.trend_arrow_direction == "east"
    assert measurement.measurement_color_formatted == "green"
    assert measurement.glucose_units_formatted == "mg/dl"
    assert measurement.value_in_mmol_per_l == pytest.approx(5.05, abs=0.01)


def test_enriched_event_uses_upstream_field_names() -> None:
    payload = enrich_measurement(build_raw_measurement(), build_thresholds()).model_dump(
        by_alias=True
    )

    assert payload["FactoryTimestamp"] == "2022-05-21T13:38:50.000Z"
    assert payload["TrendArrowIcon"] == "→"
    assert payload["isInRange"] is True
    assert "Timestamp" not in payload


def test_identifier_depends_only_on_factory_timestamp() -> None:
    first = enrich_measurement(build_raw_measurement(value_mg_dl=60, trend_arrow=1), build_thresholds())
    second = enrich_measurement(build_raw_measurement(value_mg_dl=250, trend_arrow=5), build_thresholds())
    other = enrich_measurement(
        build_raw_measurement(factory_timestamp="5/21/2022 1:43:50 PM"), build_thresholds()
    )

    assert first.id == second.id
    assert first.id != other.id


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (69, "low"),
        (70, "in_range"),
        (71, "in_range"),
        (179, "in_range"),
        (180, "in_range"),
        (181, "high"),
    ],
)
def test_exactly_one_range_flag(value: float, expected: str) -> None:
    """Strict comparisons: threshold values themselves count as in range."""
    measurement = enrich_measurement(build_raw_measurement(value_mg_dl=value), build_thresholds(70, 180))
    flags = {
        "high": measurement.is_high,
        "low": measurement.is_low,
        "in_range": measurement.is_in_range,
    }

    assert list(flags.values()).count(True) == 1
    assert flags[expected] is True


def test_reported_flags_are_recomputed() -> None:
    raw = build_raw_measurement(value_mg_dl=100, is_high=True, is_low=True)
    measurement = enrich_measurement(raw, build_thresholds(70, 180))

    assert measurement.is_in_range is True
    assert measurement.is_high is False
    assert measurement.is_low is False


def test_alarm_rules_thresholds_are_supported() -> None:
    rules = AlarmRules.model_validate({"h": {"th": 130, "thmm": 7.2}, "l": {"th": 70, "thmm": 3.9}})
    measurement = enrich_measurement(build_raw_measurement(value_mg_dl=131), rules)

    assert measurement.is_high is True


@pytest.mark.parametrize("trend_arrow", [0, 6, None])
def test_unknown_trend_code_is_a_data_error(trend_arrow: int | None) -> None:
    with pytest.raises(MeasurementDataError):
        enrich_measurement(build_raw_measurement(trend_arrow=trend_arrow), build_thresholds())


def test_unknown_color_code_is_a_data_error() -> None:
    with pytest.raises(MeasurementDataError):
        enrich_measurement(build_raw_measurement(color=5), build_thresholds())


def test_non_mg_dl_units_are_labelled_mmol() -> None:
    assert glucose_units_label(1) == "mg/dl"
    assert glucose_units_label(0) == "mmol/l"

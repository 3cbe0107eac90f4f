"""
relay/services/range_filter.py

Predicate deciding whether an enriched measurement matches a requested range.
"""

from typing import Optional, Protocol

from relay.schemas import MeasurementRange


class RangeFlags(Protocol):
    is_high: bool
    is_low: bool
    is_in_range: bool


def matches_range(flags: RangeFlags, requested_range: Optional[MeasurementRange]) -> bool:
    """No requested range matches everything."""
    if requested_range is None:
        return True
    requested_range = MeasurementRange(requested_range)
    if requested_range is MeasurementRange.IS_HIGH:
        return flags.is_high
    if requested_range is MeasurementRange.IS_LOW:
        return flags.is_low
    if requested_range is MeasurementRange.IS_IN_RANGE:
        return flags.is_in_range
    return not flags.is_in_range

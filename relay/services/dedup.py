"""
relay/services/dedup.py

Repeat-trigger deduplication backed by the external record store.

For a configured repeat interval the store keeps, per secret, when the trigger last
fired and how many repeats have fired since. A reading is emitted once when no state
exists, then again only after the interval has elapsed, each time with a fresh id.
The store is read then conditionally written with no locking: two pollers sharing
a secret can both fire.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from relay.constants import STORE_REPEAT_COUNT_KEY, STORE_TIMESTAMP_KEY
from relay.schemas import (
    EnrichedMeasurement,
    GlucoseMeasurement,
    MeasurementRange,
    RepeatPolicy,
    RepeatState,
)
from relay.services.enrichment import format_utc, hash_text
from relay.services.range_filter import matches_range
from relay.services.record_store import RecordStore

logger = structlog.get_logger(__name__)


def parse_repeat_state(record: Any) -> Optional[RepeatState]:
    """Read stored state; anything malformed counts as no prior state."""
    if not isinstance(record, dict) or not record.get(STORE_TIMESTAMP_KEY):
        return None
    raw_timestamp = record[STORE_TIMESTAMP_KEY]
    raw_count = record.get(STORE_REPEAT_COUNT_KEY) or 0
    try:
        trigger_timestamp = datetime.fromisoformat(str(raw_timestamp).replace("Z", "+00:00"))
        repeat_count = int(raw_count)
    except (TypeError, ValueError):
        logger.warning("repeat_state_malformed", record=record)
        return None
    if trigger_timestamp.tzinfo is None:
        trigger_timestamp = trigger_timestamp.replace(tzinfo=timezone.utc)
    return RepeatState(trigger_timestamp=trigger_timestamp, repeat_count=repeat_count)


def dump_repeat_state(state: RepeatState) -> dict:
    return {
        STORE_TIMESTAMP_KEY: format_utc(state.trigger_timestamp),
        STORE_REPEAT_COUNT_KEY: state.repeat_count,
    }


def _as_emitted(
    measurement: EnrichedMeasurement,
    is_repeat: Optional[bool],
    repeat_count: Optional[int],
) -> GlucoseMeasurement:
    return GlucoseMeasurement(
        **measurement.model_dump(),
        is_repeat=is_repeat,
        repeat_count=repeat_count,
    )


async def evaluate_repeat(
    measurement: EnrichedMeasurement,
    *,
    store: RecordStore,
    policy: RepeatPolicy,
    now: datetime,
    requested_range: Optional[MeasurementRange] = None,
    secret: Optional[str] = None,
    sample: bool = False,
) -> list[GlucoseMeasurement]:
    """
    Decide whether measurement fires and update the store accordingly.

    Returns a list of zero or one measurements. now must be timezone-aware; secret
    defaults to the measurement id so repeats of one reading share state.
    Raises ConfigurationError for repeat_only without repeat_minutes before any I/O.
    """
    policy.ensure_valid()

    if sample:
        return [_as_emitted(measurement, None, None)]

    if not matches_range(measurement, requested_range):
        logger.info(
            "measurement_out_of_range",
            measurement_id=measurement.id,
            requested_range=requested_range,
        )
        return []

    if not policy.enabled:
        return [_as_emitted(measurement, False, None)]

    secret = secret or measurement.id
    prior = parse_repeat_state(await store.get(secret))

    if prior is None:
        await store.set(secret, dump_repeat_state(RepeatState(trigger_timestamp=now)))
        if policy.repeat_only:
            logger.info("repeat_first_fire_suppressed", measurement_id=measurement.id)
            return []
        logger.info("repeat_first_fire", measurement_id=measurement.id)
        return [_as_emitted(measurement, False, 0)]

    elapsed_minutes = (now - prior.trigger_timestamp).total_seconds() / 60
    if elapsed_minutes < policy.repeat_minutes:
        logger.info(
            "repeat_too_soon",
            measurement_id=measurement.id,
            elapsed_minutes=round(elapsed_minutes, 2),
            repeat_minutes=policy.repeat_minutes,
        )
        return []

    state = RepeatState(trigger_timestamp=now, repeat_count=prior.repeat_count + 1)
    repeat = _as_emitted(measurement, True, state.repeat_count).model_copy(
        update={"id": hash_text(f"{measurement.factory_timestamp}:{format_utc(now)}")}
    )
    await store.set(secret, dump_repeat_state(state))
    logger.info(
        "repeat_fired",
        measurement_id=repeat.id,
        repeat_count=state.repeat_count,
    )
    return [repeat]

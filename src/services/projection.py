"""
Service module for cycle projection.

This module derives the calculated calendar events (ovulation days, fertility
windows and predicted periods) from a subject's recorded periods and the cycle
statistics in the subject profile. Nothing here touches the store or the clock.

Typical usage:
    menses = store.query_events(subject_id, EventKind.MENSES, (start, end))
    for event in project_range(menses, 28, 5, start, end):
        print(event.kind, event.beginning, event.ending)
"""
from datetime import date, timedelta
from typing import Iterator, List, Optional, Sequence, Tuple

from aws_lambda_powertools import Logger

from src.models.event import CycleEvent, EventKind
from src.services.constants import (
    CALCULATED_FERTILITY_ID,
    CALCULATED_OVULATION_ID,
    FERTILITY_DAYS_AFTER_OVULATION,
    FERTILITY_DAYS_BEFORE_OVULATION,
    LUTEAL_PHASE_DAYS,
    MAX_OVULATION_OFFSET_DAYS,
    MAX_PROJECTED_CYCLES,
    PREDICTED_CYCLE_ID,
    PREDICTED_FERTILITY_ID,
    PREDICTED_OVULATION_ID,
)
from src.services.exceptions import ValidationError

logger = Logger()

def estimate_ovulation(
    menses_beginning: date,
    duration_period: int,
    later_menses_beginning: Optional[date] = None
) -> date:
    """
    Estimate the ovulation day of the cycle starting at ``menses_beginning``.

    When the following period is known, ovulation is placed one luteal phase
    before it. Otherwise it is half a cycle after the period start, never more
    than 14 days.

    Example:
        >>> estimate_ovulation(date(2024, 1, 1), 30)
        datetime.date(2024, 1, 15)
        >>> estimate_ovulation(date(2024, 1, 1), 30, date(2024, 1, 27))
        datetime.date(2024, 1, 13)
    """
    if later_menses_beginning is not None:
        return later_menses_beginning - timedelta(days=LUTEAL_PHASE_DAYS)
    offset = min(duration_period // 2, MAX_OVULATION_OFFSET_DAYS)
    return menses_beginning + timedelta(days=offset)

def fertility_window(ovulation: date, menses_ending: Optional[date] = None) -> Optional[Tuple[date, date]]:
    """
    Fertility window around an ovulation day.

    The window spans four days before to three days after ovulation. It never
    starts before the end of the period that opened the cycle: in that case it
    starts the day after.

    Returns:
        (start, end) tuple, or None when the period covers the whole window
    """
    start = ovulation - timedelta(days=FERTILITY_DAYS_BEFORE_OVULATION)
    end = ovulation + timedelta(days=FERTILITY_DAYS_AFTER_OVULATION)
    if menses_ending is not None and start < menses_ending:
        start = menses_ending + timedelta(days=1)
    if start > end:
        return None
    return start, end

def _ovulation_and_fertility(
    menses: CycleEvent,
    later_menses: Optional[CycleEvent],
    duration_period: int,
    ovulation_id: str,
    fertility_id: str
) -> Iterator[CycleEvent]:
    ovulation = estimate_ovulation(
        menses.beginning,
        duration_period,
        later_menses.beginning if later_menses is not None else None
    )
    yield CycleEvent(
        id=ovulation_id,
        subject_id=menses.subject_id,
        kind=EventKind.OVULATION_CALC,
        beginning=ovulation,
        ending=ovulation,
        calculated=True
    )

    window = fertility_window(ovulation, menses.ending)
    if window is not None:
        yield CycleEvent(
            id=fertility_id,
            subject_id=menses.subject_id,
            kind=EventKind.FERTILITY_CALC,
            beginning=window[0],
            ending=window[1],
            calculated=True
        )

def project_cycles(
    last_menses: CycleEvent,
    duration_period: int,
    duration_menstruation: int,
    range_end: date
) -> Iterator[CycleEvent]:
    """
    Predict the periods following ``last_menses`` up to ``range_end``.

    Each predicted period is followed by its ovulation and fertility events.
    At most MAX_PROJECTED_CYCLES periods are produced however far the range
    extends.
    """
    next_start = last_menses.beginning + timedelta(days=duration_period)
    counter = 0
    while next_start <= range_end and counter < MAX_PROJECTED_CYCLES:
        predicted = CycleEvent(
            id=PREDICTED_CYCLE_ID.format(counter),
            subject_id=last_menses.subject_id,
            kind=EventKind.MENSES_PROJECTED,
            beginning=next_start,
            ending=next_start + timedelta(days=max(duration_menstruation, 1) - 1),
            calculated=True
        )
        yield predicted
        yield from _ovulation_and_fertility(
            predicted,
            None,
            duration_period,
            PREDICTED_OVULATION_ID.format(counter),
            PREDICTED_FERTILITY_ID.format(counter)
        )
        next_start += timedelta(days=duration_period)
        counter += 1

def project_range(
    menses_history: Sequence[CycleEvent],
    duration_period: int,
    duration_menstruation: int,
    range_start: date,
    range_end: date
) -> Iterator[CycleEvent]:
    """
    Calculated events for a calendar window.

    Args:
        menses_history: Recorded periods, most recent first
        duration_period: Average days between period starts
        duration_menstruation: Average days of bleeding
        range_start: First day of the window
        range_end: Last day of the window

    Returns:
        Single-pass iterator of calculated events intersecting
        [range_start, range_end]: ovulation and fertility for every recorded
        period, then predicted periods with their own ovulation and fertility

    Raises:
        ValidationError: If a duration is not positive

    Example:
        >>> events = project_range(history, 30, 5, date(2024, 1, 1), date(2024, 3, 1))
        >>> predicted = [e for e in events if e.kind == EventKind.MENSES_PROJECTED]
    """
    if duration_period <= 0 or duration_menstruation <= 0:
        raise ValidationError("Cycle and menstruation durations must be positive")
    return _events_in_range(list(menses_history), duration_period, duration_menstruation, range_start, range_end)

def _events_in_range(
    history: List[CycleEvent],
    duration_period: int,
    duration_menstruation: int,
    range_start: date,
    range_end: date
) -> Iterator[CycleEvent]:
    if not history:
        return

    def calculated() -> Iterator[CycleEvent]:
        for index, menses in enumerate(history):
            later = history[index - 1] if index > 0 else None
            yield from _ovulation_and_fertility(
                menses,
                later,
                duration_period,
                CALCULATED_OVULATION_ID.format(menses.id),
                CALCULATED_FERTILITY_ID.format(menses.id)
            )
        yield from project_cycles(history[0], duration_period, duration_menstruation, range_end)

    emitted = 0
    for event in calculated():
        if event.overlaps(range_start, range_end):
            emitted += 1
            yield event

    logger.debug("Cycle projection finished", extra={
        "menses_count": len(history),
        "events_emitted": emitted,
        "range_start": range_start.isoformat(),
        "range_end": range_end.isoformat()
    })

"""
Service module for pregnancy dating.

This module computes ovulation date, due date and gestational week from a
reported last menstrual period (LMP), and checks the resulting interval
against the pregnancies already recorded for the subject.

Typical usage:
    result = calculate_due_date(date(2024, 1, 1), 28, intervals, today)
    print(result.due_date, result.gestational_week, result.has_overlap)
"""
from datetime import date, timedelta
from typing import Iterable, Optional, Union

from aws_lambda_powertools import Logger

from src.models.event import CycleEvent, EventKind
from src.models.pregnancy import PregnancyCalculation
from src.models.requests import PregnancyCalculationRequest, parse_request
from src.services.constants import (
    DAYS_PER_WEEK,
    GESTATION_DAYS_FROM_OVULATION,
    MAX_CYCLE_DURATION,
    MIN_CYCLE_DURATION,
)
from src.services.event_store import EventStore, SubjectRepository
from src.services.exceptions import ValidationError
from src.services.profile import load_profile
from src.utils.clock import Clock, SystemClock

logger = Logger()

def ovulation_from_lmp(last_menses_date: date, duration_period: int) -> date:
    """Ovulation is placed half a cycle after the LMP."""
    return last_menses_date + timedelta(days=duration_period // 2)

def due_date_from_ovulation(ovulation_date: date) -> date:
    """Due date counted from ovulation."""
    return ovulation_date + timedelta(days=GESTATION_DAYS_FROM_OVULATION)

def gestational_week(ovulation_date: date, today: date) -> int:
    """
    Current week of pregnancy, 1-indexed from ovulation.

    Values above 40 are returned as is; presenting an overdue pregnancy is up
    to the caller.

    Example:
        >>> gestational_week(date(2024, 1, 15), date(2024, 1, 21))
        1
        >>> gestational_week(date(2024, 1, 15), date(2024, 1, 22))
        2
    """
    return (today - ovulation_date).days // DAYS_PER_WEEK + 1

def has_overlapping_pregnancy(
    existing_intervals: Iterable[CycleEvent],
    ovulation_date: date,
    due_date: date
) -> bool:
    """
    Check a candidate pregnancy interval against recorded ones.

    Two independent checks run over the non-deleted PREGNANCY intervals: one
    ending on or after the candidate ovulation, or one beginning on or before
    the candidate due date. Either match counts as an overlap. The result is
    advisory; callers decide whether to go on with a save.

    Args:
        existing_intervals: Recorded events, other kinds and deleted ones are ignored
        ovulation_date: Candidate interval start
        due_date: Candidate interval end

    Returns:
        True if any recorded pregnancy matches either check
    """
    intervals = [
        e for e in existing_intervals
        if e.kind == EventKind.PREGNANCY and not e.deleted
    ]
    if any(e.last_day >= ovulation_date for e in intervals):
        return True
    if any(e.beginning <= due_date for e in intervals):
        return True
    return False

def calculate_due_date(
    last_menses_date: date,
    duration_period: int,
    existing_intervals: Iterable[CycleEvent],
    today: date
) -> PregnancyCalculation:
    """
    Date a pregnancy from its LMP.

    Args:
        last_menses_date: First day of the last period
        duration_period: Cycle length in days, 22 to 45
        existing_intervals: Pregnancy intervals already recorded for the subject
        today: Reference date for the gestational week

    Returns:
        PregnancyCalculation with ovulation date, due date, gestational week
        and the overlap flag

    Raises:
        ValidationError: If the cycle length is out of range or the LMP is in the future

    Example:
        >>> result = calculate_due_date(date(2024, 1, 1), 28, [], date(2024, 2, 1))
        >>> result.ovulation_date, result.due_date
        (datetime.date(2024, 1, 15), datetime.date(2024, 10, 6))
    """
    if not MIN_CYCLE_DURATION <= duration_period <= MAX_CYCLE_DURATION:
        raise ValidationError(
            f"Cycle duration must be between {MIN_CYCLE_DURATION} and {MAX_CYCLE_DURATION} days"
        )
    if last_menses_date > today:
        raise ValidationError("Last menses date cannot be in the future")

    ovulation_date = ovulation_from_lmp(last_menses_date, duration_period)
    due_date = due_date_from_ovulation(ovulation_date)

    return PregnancyCalculation(
        ovulation_date=ovulation_date,
        due_date=due_date,
        gestational_week=gestational_week(ovulation_date, today),
        has_overlap=has_overlapping_pregnancy(existing_intervals, ovulation_date, due_date)
    )

class PregnancyService:
    """Runs due-date calculations against a subject's recorded pregnancies."""

    def __init__(
        self,
        events: EventStore,
        subjects: SubjectRepository,
        clock: Optional[Clock] = None
    ):
        self.events = events
        self.subjects = subjects
        self.clock = clock or SystemClock()

    def calculate(
        self,
        subject_id: str,
        team_id: Optional[str],
        last_menses_date: Union[str, date],
        duration_period: Union[str, int]
    ) -> PregnancyCalculation:
        """
        Validate raw input and date the pregnancy.

        Input is checked before the store is read.

        Raises:
            ValidationError: On malformed input, out-of-range cycle length or future LMP
            NotFoundError: If the subject does not exist
            TeamAssociationError: If the subject has no matching team
        """
        request = parse_request(PregnancyCalculationRequest, {
            "last_menses_date": last_menses_date,
            "duration_period": duration_period,
        })
        today = self.clock.today()
        if request.last_menses_date > today:
            raise ValidationError("Last menses date cannot be in the future")

        load_profile(self.subjects, subject_id, team_id)
        intervals = self.events.query_events(subject_id, EventKind.PREGNANCY)
        result = calculate_due_date(request.last_menses_date, request.duration_period, intervals, today)

        logger.info("Due date calculated", extra={
            "subject_id": subject_id,
            "ovulation_date": result.ovulation_date.isoformat(),
            "due_date": result.due_date.isoformat(),
            "has_overlap": result.has_overlap
        })
        return result

"""
Pregnancy lifecycle management.

A subject has at most one active pregnancy. It is stored twice: as the two
pregnancy fields of the subject profile and as a non-deleted PREGNANCY event
spanning ovulation to due date. Every transition writes both in one store
transaction.

    Inactive --save--> Active --save--> Active (recalculated)
    Active --terminate--> Inactive (event closed and kept as history)
"""
from datetime import date
from typing import Optional, Union

from aws_lambda_powertools import Logger

from src.models.event import CycleEvent, EventKind
from src.models.pregnancy import PregnancyStatusView, SavedPregnancy
from src.models.requests import (
    PregnancySaveRequest,
    PregnancyTerminationRequest,
    parse_request,
)
from src.models.subject import Active, Inactive
from src.services.event_store import (
    EventStore,
    StoreTransaction,
    SubjectRepository,
    new_event_id,
)
from src.services.pregnancy import gestational_week
from src.services.profile import load_profile
from src.utils.clock import Clock, SystemClock

logger = Logger()

class PregnancyLifecycleManager:
    """State transitions for a subject's single active pregnancy."""

    def __init__(
        self,
        events: EventStore,
        subjects: SubjectRepository,
        clock: Optional[Clock] = None
    ):
        self.events = events
        self.subjects = subjects
        self.clock = clock or SystemClock()

    def _active_interval(self, subject_id: str) -> Optional[CycleEvent]:
        return self.events.latest_event(subject_id, EventKind.PREGNANCY)

    def save(
        self,
        subject_id: str,
        team_id: Optional[str],
        childbirthdate: Union[str, date],
        ovulation_date: Union[str, date]
    ) -> SavedPregnancy:
        """
        Start or recalculate the active pregnancy.

        Sets the profile fields and creates the PREGNANCY event, or updates the
        existing one in place, in a single transaction.

        Raises:
            ValidationError: If either date is missing or malformed
            NotFoundError: If the subject does not exist
            TeamAssociationError: If the subject has no matching team
            StoreError: If the transaction fails; nothing is written
        """
        request = parse_request(PregnancySaveRequest, {
            "childbirthdate": childbirthdate,
            "ovulation_date": ovulation_date,
        })
        load_profile(self.subjects, subject_id, team_id)

        existing = self._active_interval(subject_id)
        if existing is not None:
            interval = existing.model_copy(update={
                "beginning": request.ovulation_date,
                "ending": request.childbirthdate,
            })
        else:
            interval = CycleEvent(
                id=new_event_id(),
                subject_id=subject_id,
                kind=EventKind.PREGNANCY,
                beginning=request.ovulation_date,
                ending=request.childbirthdate
            )

        with self.events.transaction() as tx:
            tx.update_cycle_profile(
                subject_id,
                Active(ovulation_date=request.ovulation_date, due_date=request.childbirthdate)
            )
            tx.upsert_event(interval)

        logger.info("Pregnancy saved", extra={
            "subject_id": subject_id,
            "event_id": interval.id,
            "recalculated": existing is not None,
            "ovulation_date": request.ovulation_date.isoformat(),
            "childbirthdate": request.childbirthdate.isoformat()
        })
        return SavedPregnancy(
            ovulation_date=request.ovulation_date,
            childbirthdate=request.childbirthdate,
            gestational_week=gestational_week(request.ovulation_date, self.clock.today())
        )

    def stage_termination(self, tx: StoreTransaction, subject_id: str, ended_on: date) -> bool:
        """
        Stage the termination writes into an open transaction.

        Returns:
            True if an active PREGNANCY event was closed
        """
        interval = self._active_interval(subject_id)
        if interval is not None:
            tx.upsert_event(interval.model_copy(update={
                "ending": max(ended_on, interval.beginning),
                "deleted": True,
            }))
        tx.update_cycle_profile(subject_id, Inactive())
        return interval is not None

    def terminate(
        self,
        subject_id: str,
        team_id: Optional[str],
        pregnancy_ended_date: Union[str, date, None] = None
    ) -> bool:
        """
        End the active pregnancy.

        The PREGNANCY event gets the end date as its ending and is marked
        deleted; the profile fields are cleared. Safe to call when no
        pregnancy is active.

        Returns:
            True if an active PREGNANCY event was closed

        Raises:
            ValidationError: If the end date is malformed
            NotFoundError: If the subject does not exist
            TeamAssociationError: If the subject has no matching team
            StoreError: If the transaction fails; nothing is written
        """
        request = parse_request(PregnancyTerminationRequest, {
            "pregnancy_ended_date": pregnancy_ended_date,
        })
        ended_on = request.pregnancy_ended_date or self.clock.today()
        load_profile(self.subjects, subject_id, team_id)

        with self.events.transaction() as tx:
            closed = self.stage_termination(tx, subject_id, ended_on)

        logger.info("Pregnancy terminated", extra={
            "subject_id": subject_id,
            "ended_on": ended_on.isoformat(),
            "interval_closed": closed
        })
        return closed

    def get_status(self, subject_id: str, team_id: Optional[str]) -> PregnancyStatusView:
        """
        Current pregnancy state with the last recorded period.

        Raises:
            NotFoundError: If the subject does not exist
            TeamAssociationError: If the subject has no matching team
        """
        profile = load_profile(self.subjects, subject_id, team_id)
        last_menses = self.events.latest_event(subject_id, EventKind.MENSES)
        last_menses_date = last_menses.beginning if last_menses is not None else None

        status = profile.pregnancy_status
        if isinstance(status, Inactive):
            return PregnancyStatusView(
                active=False,
                duration_period=profile.duration_period,
                last_menses_date=last_menses_date
            )

        return PregnancyStatusView(
            active=True,
            childbirthdate=status.due_date,
            ovulation_date=status.ovulation_date,
            gestational_week=gestational_week(status.ovulation_date, self.clock.today()),
            duration_period=profile.duration_period,
            last_menses_date=last_menses_date
        )

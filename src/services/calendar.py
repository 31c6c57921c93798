"""
Calendar service.

This module assembles the calendar view of a subject for a date window,
merging stored events with the calculated ovulation, fertility and predicted
period events, and applies the calendar mutations (period start and end,
event create, update and delete, with the symptom, drug and mood details
selected on an event).

Typical usage:
    calendar = CalendarService(events, subjects, lifecycle)
    view = calendar.get_events_in_range(subject_id, team_id, "2024-01-01", "2024-03-01")
    for event in view.events:
        print(event.kind.label, event.beginning, event.calculated)
"""
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from aws_lambda_powertools import Logger
from pydantic import BaseModel

from src.models.event import CycleEvent, EventDetail, EventDetailType, EventKind
from src.models.requests import (
    DateRangeQuery,
    DetailSelection,
    DetailTypesQuery,
    EventUpdateRequest,
    EventWriteRequest,
    PeriodDateRequest,
    parse_request,
)
from src.models.subject import SubjectCycleProfile
from src.services.event_store import EventStore, StoreTransaction, SubjectRepository, new_event_id
from src.services.exceptions import NotFoundError, OpenPeriodError, ValidationError
from src.services.pregnancy_lifecycle import PregnancyLifecycleManager
from src.services.profile import load_profile, validate_prerequisites
from src.services.projection import project_range

logger = Logger()

DateInput = Union[str, date]

class CalendarRange(BaseModel):
    """Events of a calendar window together with the profile they were computed from."""
    events: List[CycleEvent]
    profile: SubjectCycleProfile

class LastMenses(BaseModel):
    """Most recent period start and open-period state."""
    last_menses_date: Optional[date] = None
    has_open_period: bool = False
    open_period_id: Optional[str] = None

def merge_events(persisted: Iterable[CycleEvent], calculated: Iterable[CycleEvent]) -> List[CycleEvent]:
    """
    Merge stored and calculated events into one list ordered by beginning.

    A calculated event is dropped when it shares an id with a stored event, and
    a predicted period is dropped when a recorded period already covers any of
    its days.

    Args:
        persisted: Events loaded from the store
        calculated: Output of ``project_range``, used as is

    Returns:
        Events sorted by beginning, stored events first on ties
    """
    persisted = list(persisted)
    seen_ids = {e.id for e in persisted}
    recorded_menses = [e for e in persisted if e.kind == EventKind.MENSES]

    merged = list(persisted)
    for event in calculated:
        if event.id in seen_ids:
            continue
        if event.kind == EventKind.MENSES_PROJECTED and any(
            m.overlaps(event.beginning, event.last_day) for m in recorded_menses
        ):
            continue
        seen_ids.add(event.id)
        merged.append(event)

    return sorted(merged, key=lambda e: (e.beginning, e.calculated))

class CalendarService:
    """Calendar queries and mutations for a subject."""

    def __init__(
        self,
        events: EventStore,
        subjects: SubjectRepository,
        lifecycle: PregnancyLifecycleManager
    ):
        self.events = events
        self.subjects = subjects
        self.lifecycle = lifecycle

    def get_events_in_range(
        self,
        subject_id: str,
        team_id: Optional[str],
        start: DateInput,
        end: DateInput
    ) -> CalendarRange:
        """
        Stored and calculated events intersecting [start, end].

        When no period was recorded inside the window, the most recent period
        seeds the projection so future months still show predictions.

        Raises:
            ValidationError: If the window is malformed
            ProfileIncompleteError: If the profile lacks cycle statistics
            NotFoundError: If the subject does not exist
            TeamAssociationError: If the subject has no matching team
        """
        query = parse_request(DateRangeQuery, {"start": start, "end": end})
        profile = load_profile(self.subjects, subject_id, team_id)
        validate_prerequisites(profile)

        persisted = self.events.query_events(subject_id, date_range=(query.start, query.end))
        persisted = self._with_details(subject_id, persisted)
        menses = [e for e in persisted if e.kind == EventKind.MENSES]
        if not menses:
            last_menses = self.events.latest_event(subject_id, EventKind.MENSES)
            if last_menses is not None:
                menses = [last_menses]

        calculated = project_range(
            menses,
            profile.duration_period,
            profile.duration_menstruation,
            query.start,
            query.end
        )
        events = merge_events(persisted, calculated)

        logger.debug("Calendar range assembled", extra={
            "subject_id": subject_id,
            "start": query.start.isoformat(),
            "end": query.end.isoformat(),
            "persisted": len(persisted),
            "total": len(events)
        })
        return CalendarRange(events=events, profile=profile)

    def get_last_menses(self, subject_id: str, team_id: Optional[str]) -> LastMenses:
        """Most recent period start and whether a period is still open."""
        load_profile(self.subjects, subject_id, team_id)
        last_menses = self.events.latest_event(subject_id, EventKind.MENSES)
        open_period = self.events.open_menses(subject_id)
        return LastMenses(
            last_menses_date=last_menses.beginning if last_menses is not None else None,
            has_open_period=open_period is not None,
            open_period_id=open_period.id if open_period is not None else None
        )

    def _reject_open_period(self, subject_id: str) -> None:
        open_period = self.events.open_menses(subject_id)
        if open_period is not None:
            raise OpenPeriodError(
                "A period is already open. Close it before starting a new one",
                open_period_id=open_period.id
            )

    def start_period(self, subject_id: str, team_id: Optional[str], day: DateInput) -> CycleEvent:
        """
        Record the start of a period.

        The ending is filled from the profile's menstruation duration when
        known, otherwise the period stays open. An active pregnancy is
        terminated on the same day, in the same transaction.

        Raises:
            OpenPeriodError: If another period is still open
        """
        request = parse_request(PeriodDateRequest, {"date": day})
        profile = load_profile(self.subjects, subject_id, team_id)
        self._reject_open_period(subject_id)

        ending = None
        if profile.duration_menstruation and profile.duration_menstruation > 0:
            ending = request.day + timedelta(days=profile.duration_menstruation - 1)

        with self.events.transaction() as tx:
            event = tx.upsert_event(CycleEvent(
                id=new_event_id(),
                subject_id=subject_id,
                kind=EventKind.MENSES,
                beginning=request.day,
                ending=ending
            ))
            pregnancy_closed = False
            if profile.pregnancy_status.active:
                pregnancy_closed = self.lifecycle.stage_termination(tx, subject_id, request.day)

        logger.info("Period started", extra={
            "subject_id": subject_id,
            "event_id": event.id,
            "beginning": request.day.isoformat(),
            "pregnancy_closed": pregnancy_closed
        })
        return event

    def end_period(self, subject_id: str, team_id: Optional[str], day: DateInput) -> CycleEvent:
        """
        Record the end of the open period, or correct the last one.

        Raises:
            NotFoundError: If no period was ever recorded
            ValidationError: If the end precedes the period start
        """
        request = parse_request(PeriodDateRequest, {"date": day})
        load_profile(self.subjects, subject_id, team_id)

        period = self.events.open_menses(subject_id) or self.events.latest_event(subject_id, EventKind.MENSES)
        if period is None:
            raise NotFoundError("No period found to close")
        if request.day < period.beginning:
            raise ValidationError("Period ending cannot be before its beginning")

        with self.events.transaction() as tx:
            event = tx.upsert_event(period.model_copy(update={"ending": request.day}))
            if period.is_open:
                tx.release_open_period(subject_id, period.id)

        logger.info("Period ended", extra={
            "subject_id": subject_id,
            "event_id": event.id,
            "ending": request.day.isoformat()
        })
        return event

    def get_detail_types(self, kind: Union[str, int, EventKind]) -> List[EventDetailType]:
        """
        Detail types selectable on a symptoms, drugs or moods event.

        Args:
            kind: Event kind name or typology id (23, 24 or 25)

        Raises:
            ValidationError: If the kind carries no details
        """
        query = parse_request(DetailTypesQuery, {"kind": kind})
        return self.events.get_detail_types(query.kind)

    def _detail_types(self, kind: EventKind, selections: Sequence[DetailSelection]) -> Dict[int, EventDetailType]:
        if not selections:
            return {}
        if not kind.has_details:
            raise ValidationError(f"{kind.value} events have no details")
        types = {t.id: t for t in self.events.get_detail_types(kind)}
        unknown = sorted({s.detail_type_id for s in selections if s.detail_type_id not in types})
        if unknown:
            raise ValidationError(
                f"Unknown {kind.value} detail types: {', '.join(str(i) for i in unknown)}",
                details=[{"field": "details", "message": f"unknown detail type {i}"} for i in unknown]
            )
        return types

    def _with_details(self, subject_id: str, events: List[CycleEvent]) -> List[CycleEvent]:
        if not any(e.kind.has_details for e in events):
            return events
        by_event: Dict[str, List[EventDetail]] = {}
        for detail in self.events.query_details(subject_id):
            by_event.setdefault(detail.event_id, []).append(detail)
        return [
            e.model_copy(update={
                "details": sorted(by_event.get(e.id, []), key=lambda d: d.detail_type_id)
            }) if e.kind.has_details else e
            for e in events
        ]

    @staticmethod
    def _stage_details(
        tx: StoreTransaction,
        event: CycleEvent,
        selections: Sequence[DetailSelection],
        types: Dict[int, EventDetailType]
    ) -> List[EventDetail]:
        """Stage one detail item per selection; deselected ones are written as deleted."""
        saved = []
        for selection in selections:
            detail = tx.upsert_detail(event.subject_id, EventDetail(
                event_id=event.id,
                detail_type_id=selection.detail_type_id,
                label=types[selection.detail_type_id].label,
                value=selection.value,
                deleted=not selection.selected
            ))
            if selection.selected:
                saved.append(detail)
        return saved

    def create_event(
        self,
        subject_id: str,
        team_id: Optional[str],
        payload: Dict[str, Any]
    ) -> CycleEvent:
        """
        Store a user-entered event together with its selected details.

        Raises:
            ValidationError: If the payload is malformed, names a calculated
                kind or an unknown detail type
            OpenPeriodError: If an open period is added while another is open
        """
        request = parse_request(EventWriteRequest, payload)
        load_profile(self.subjects, subject_id, team_id)
        if request.kind == EventKind.MENSES and request.ending is None:
            self._reject_open_period(subject_id)

        selections = [d for d in request.details if d.selected]
        types = self._detail_types(request.kind, selections)

        with self.events.transaction() as tx:
            event = tx.upsert_event(CycleEvent(
                id=new_event_id(),
                subject_id=subject_id,
                kind=request.kind,
                beginning=request.beginning,
                ending=request.ending,
                value=request.value
            ))
            details = self._stage_details(tx, event, selections, types)

        return event.model_copy(update={"details": details})

    def update_event(
        self,
        subject_id: str,
        team_id: Optional[str],
        event_id: str,
        payload: Dict[str, Any]
    ) -> CycleEvent:
        """
        Change dates, value or details of a stored event.

        Listed details are created, updated, or deleted when ``selected`` is
        false; details not listed are left alone.

        Raises:
            NotFoundError: If the event does not exist or is deleted
            ValidationError: If the result would end before it begins, or a
                detail does not fit the event kind
        """
        request = parse_request(EventUpdateRequest, payload)
        load_profile(self.subjects, subject_id, team_id)

        event = self.events.get_event(subject_id, event_id)
        if event.deleted:
            raise NotFoundError(f"Event {event_id} not found")

        changes = request.model_dump(exclude_none=True, exclude={"details"})
        beginning = changes.get("beginning", event.beginning)
        ending = changes.get("ending", event.ending)
        if ending is not None and ending < beginning:
            raise ValidationError("Event ending cannot be before its beginning")
        selections = request.details or []
        types = self._detail_types(event.kind, selections)

        with self.events.transaction() as tx:
            stored = tx.upsert_event(event.model_copy(update=changes))
            if event.is_open and not stored.is_open:
                tx.release_open_period(subject_id, event.id)
            details = self._stage_details(tx, stored, selections, types)

        if request.details is not None:
            stored = stored.model_copy(update={"details": details})
        return stored

    def delete_event(self, subject_id: str, team_id: Optional[str], event_id: str) -> None:
        """Soft-delete a stored event."""
        load_profile(self.subjects, subject_id, team_id)
        self.events.soft_delete_event(subject_id, event_id)
        logger.info("Event deleted", extra={"subject_id": subject_id, "event_id": event_id})

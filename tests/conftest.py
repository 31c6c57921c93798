"""
Pytest configuration and shared fixtures.
"""
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List, Tuple
from unittest.mock import Mock

import pytest

os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "1")
os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "cycle_engine_tests")

from src.models.event import CycleEvent, EventDetail, EventDetailType, EventKind
from src.models.subject import Active, PregnancyStatus, SubjectCycleProfile
from src.services.calendar import CalendarService
from src.services.event_store import EventStore, SubjectRepository
from src.services.exceptions import NotFoundError, OpenPeriodError, StoreError
from src.services.pregnancy import PregnancyService
from src.services.pregnancy_lifecycle import PregnancyLifecycleManager
from src.utils.clock import FixedClock
from tests.factories import SUBJECT_ID, TEAM_ID, TODAY

DETAIL_TYPES = [
    EventDetailType(id=1, kind=EventKind.SYMPTOMS, label="Crampi"),
    EventDetailType(id=2, kind=EventKind.SYMPTOMS, label="Cefalea"),
    EventDetailType(id=3, kind=EventKind.SYMPTOMS, label="Nausea", deleted=True),
    EventDetailType(id=10, kind=EventKind.DRUGS, label="Ibuprofene"),
    EventDetailType(id=20, kind=EventKind.MOODS, label="Tristezza"),
]

class FakeTable:
    """In-memory stand-in for the tracker table with commit failure injection."""

    def __init__(self):
        self.events: Dict[Tuple[str, str], CycleEvent] = {}
        self.profiles: Dict[str, SubjectCycleProfile] = {}
        self.details: Dict[Tuple[str, str, int], EventDetail] = {}
        self.detail_types: List[EventDetailType] = list(DETAIL_TYPES)
        self.open_periods: Dict[str, str] = {}
        self.fail_on_commit = False
        self.commits = 0

    def apply_status(self, subject_id: str, status: PregnancyStatus) -> None:
        if subject_id not in self.profiles:
            raise StoreError(f"Profile {subject_id} missing")
        if isinstance(status, Active):
            update = {"ovulation_date": status.ovulation_date, "childbirthdate": status.due_date}
        else:
            update = {"ovulation_date": None, "childbirthdate": None}
        self.profiles[subject_id] = self.profiles[subject_id].model_copy(update=update)

class FakeTransaction:
    """Stages writes and applies them together on commit."""

    def __init__(self, table: FakeTable):
        self.table = table
        self.staged: List[Tuple] = []

    def upsert_event(self, event: CycleEvent) -> CycleEvent:
        event = event.model_copy(update={"last_modified": datetime.now(timezone.utc)})
        self.staged.append(("event", event))
        if event.is_open and not event.deleted:
            self.staged.append(("claim", event.subject_id, event.id))
        return event

    def release_open_period(self, subject_id: str, event_id: str) -> None:
        self.staged.append(("release", subject_id, event_id))

    def upsert_detail(self, subject_id: str, detail: EventDetail) -> EventDetail:
        detail = detail.model_copy(update={"last_modified": datetime.now(timezone.utc)})
        self.staged.append(("detail", subject_id, detail))
        return detail

    def soft_delete_event(self, subject_id: str, event_id: str) -> None:
        self.staged.append(("delete", subject_id, event_id))

    def update_cycle_profile(self, subject_id: str, status: PregnancyStatus) -> None:
        self.staged.append(("profile", subject_id, status))

    def commit(self) -> None:
        if self.table.fail_on_commit:
            raise StoreError("transaction failed: injected failure")
        for op in self.staged:
            if op[0] == "claim" and self.table.open_periods.get(op[1], op[2]) != op[2]:
                raise OpenPeriodError("A period is already open. Close it before starting a new one")
        for op in self.staged:
            if op[0] == "event":
                self.table.events[(op[1].subject_id, op[1].id)] = op[1]
            elif op[0] == "claim":
                self.table.open_periods[op[1]] = op[2]
            elif op[0] == "release":
                if self.table.open_periods.get(op[1]) == op[2]:
                    del self.table.open_periods[op[1]]
            elif op[0] == "detail":
                detail = op[2]
                self.table.details[(op[1], detail.event_id, detail.detail_type_id)] = detail
            elif op[0] == "delete":
                event = self.table.events[(op[1], op[2])]
                self.table.events[(op[1], op[2])] = event.model_copy(update={"deleted": True})
            else:
                self.table.apply_status(op[1], op[2])
        self.table.commits += 1

class InMemoryEventStore(EventStore):
    """EventStore backed by a FakeTable."""

    def __init__(self, table: FakeTable):
        self.table = table

    @contextmanager
    def transaction(self):
        tx = FakeTransaction(self.table)
        yield tx
        tx.commit()

    def query_events(self, subject_id, kind=None, date_range=None, include_deleted=False):
        events = [e for (sid, _), e in self.table.events.items() if sid == subject_id]
        if kind is not None:
            events = [e for e in events if e.kind == kind]
        if not include_deleted:
            events = [e for e in events if not e.deleted]
        if date_range is not None:
            events = [e for e in events if e.overlaps(*date_range)]
        return sorted(events, key=lambda e: e.beginning, reverse=True)

    def get_event(self, subject_id, event_id):
        try:
            return self.table.events[(subject_id, event_id)]
        except KeyError:
            raise NotFoundError(f"Event {event_id} not found")

    def query_details(self, subject_id):
        return [
            d for (sid, _, _), d in self.table.details.items()
            if sid == subject_id and not d.deleted
        ]

    def get_detail_types(self, kind):
        return sorted(
            (t for t in self.table.detail_types if t.kind == kind and not t.deleted),
            key=lambda t: t.label
        )

class InMemorySubjectRepository(SubjectRepository):
    """SubjectRepository backed by a FakeTable."""

    def __init__(self, table: FakeTable):
        self.table = table

    def get_cycle_profile(self, subject_id):
        try:
            return self.table.profiles[subject_id]
        except KeyError:
            raise NotFoundError(f"Subject {subject_id} not found")

    def update_cycle_profile(self, subject_id, status):
        self.table.apply_status(subject_id, status)

@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen on TODAY."""
    return FixedClock(TODAY)

@pytest.fixture
def table() -> FakeTable:
    """Fake table holding one subject with a 28/5 day cycle."""
    table = FakeTable()
    table.profiles[SUBJECT_ID] = SubjectCycleProfile(
        subject_id=SUBJECT_ID,
        team_id=TEAM_ID,
        duration_period=28,
        duration_menstruation=5
    )
    return table

@pytest.fixture
def event_store(table) -> InMemoryEventStore:
    return InMemoryEventStore(table)

@pytest.fixture
def subjects(table) -> InMemorySubjectRepository:
    return InMemorySubjectRepository(table)

@pytest.fixture
def lifecycle(event_store, subjects, clock) -> PregnancyLifecycleManager:
    return PregnancyLifecycleManager(event_store, subjects, clock)

@pytest.fixture
def pregnancy_service(event_store, subjects, clock) -> PregnancyService:
    return PregnancyService(event_store, subjects, clock)

@pytest.fixture
def calendar(event_store, subjects, lifecycle) -> CalendarService:
    return CalendarService(event_store, subjects, lifecycle)

@pytest.fixture
def lambda_context() -> Mock:
    """Lambda context accepted by Logger.inject_lambda_context."""
    return Mock(
        function_name="cycle-engine-test",
        memory_limit_in_mb=128,
        invoked_function_arn="arn:aws:lambda:eu-west-1:123456789012:function:cycle-engine-test",
        aws_request_id="00000000-0000-0000-0000-000000000000"
    )

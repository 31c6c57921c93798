"""
Tests for cycle projection.
"""
import pytest
from datetime import date, timedelta

from src.models.event import EventKind
from src.services.constants import MAX_PROJECTED_CYCLES
from src.services.exceptions import ValidationError
from src.services.projection import (
    estimate_ovulation,
    fertility_window,
    project_cycles,
    project_range,
)
from tests.factories import make_menses

def _by_kind(events, kind):
    return [e for e in events if e.kind == kind]

def test_empty_history_yields_nothing():
    """No recorded period means no calculated events and no error."""
    assert list(project_range([], 28, 5, date(2024, 1, 1), date(2024, 12, 31))) == []

@pytest.mark.parametrize("duration_period", range(22, 46))
def test_single_period_ovulation_offset_is_capped(duration_period):
    """Half-cycle estimate, never more than 14 days after the period start."""
    menses = make_menses("m1", date(2024, 1, 1), date(2024, 1, 5))
    events = list(project_range([menses], duration_period, 5, date(2024, 1, 1), date(2024, 1, 20)))

    ovulation = next(e for e in events if e.id == "calculated-ovulation-m1")
    offset = (ovulation.beginning - menses.beginning).days
    assert offset == min(duration_period // 2, 14)
    assert offset <= 14
    assert ovulation.ending == ovulation.beginning

def test_ovulation_uses_following_period_when_known():
    """A recorded later period places ovulation 14 days before it."""
    later = make_menses("m2", date(2024, 2, 1), date(2024, 2, 5))
    earlier = make_menses("m1", date(2024, 1, 1), date(2024, 1, 5))

    events = list(project_range([later, earlier], 30, 5, date(2024, 1, 1), date(2024, 2, 28)))

    earlier_ovulation = next(e for e in events if e.id == "calculated-ovulation-m1")
    later_ovulation = next(e for e in events if e.id == "calculated-ovulation-m2")
    assert earlier_ovulation.beginning == date(2024, 1, 18)
    # The most recent period never has a later one
    assert later_ovulation.beginning == date(2024, 2, 15)

def test_fertility_window_is_seven_days_wide():
    """Unclipped window runs from four days before to three days after ovulation."""
    menses = make_menses("m1", date(2024, 1, 1), date(2024, 1, 5))
    events = list(project_range([menses], 28, 5, date(2024, 1, 1), date(2024, 3, 31)))

    windows = _by_kind(events, EventKind.FERTILITY_CALC)
    assert windows
    for window in windows:
        assert (window.ending - window.beginning).days == 7

    first = next(e for e in windows if e.id == "calculated-fertility-m1")
    assert first.beginning == date(2024, 1, 11)
    assert first.ending == date(2024, 1, 18)

def test_fertility_window_clipped_by_long_period():
    """The window starts the day after a period that overlaps it."""
    menses = make_menses("m1", date(2024, 1, 1), date(2024, 1, 12))
    events = list(project_range([menses], 28, 5, date(2024, 1, 1), date(2024, 1, 20)))

    window = next(e for e in events if e.id == "calculated-fertility-m1")
    assert window.beginning == date(2024, 1, 13)
    assert window.ending == date(2024, 1, 18)
    assert (window.ending - window.beginning).days < 7

def test_fertility_window_not_clipped_by_open_period():
    """An open period has no ending to clip against."""
    assert fertility_window(date(2024, 1, 15), None) == (date(2024, 1, 11), date(2024, 1, 18))

def test_fertility_window_dropped_when_period_covers_it():
    """A period lasting past the window leaves no fertile days."""
    assert fertility_window(date(2024, 1, 15), date(2024, 1, 20)) is None

def test_estimate_ovulation_short_cycle():
    """Short cycles keep the plain half-cycle offset."""
    assert estimate_ovulation(date(2024, 1, 1), 22) == date(2024, 1, 12)

def test_projection_scenario_thirty_day_cycle():
    """Projection from one recorded period over two months."""
    menses = make_menses("m1", date(2024, 1, 1), date(2024, 1, 5))
    events = list(project_range([menses], 30, 5, date(2024, 1, 1), date(2024, 3, 1)))

    projected = _by_kind(events, EventKind.MENSES_PROJECTED)
    assert projected[0].beginning == date(2024, 1, 31)
    assert projected[0].ending == date(2024, 2, 4)
    assert all(p.beginning <= date(2024, 3, 1) for p in projected)

    ids = {e.id for e in events}
    assert "predicted-ovulation-0" in ids
    assert "predicted-fertility-0" in ids
    predicted_ovulation = next(e for e in events if e.id == "predicted-ovulation-0")
    assert predicted_ovulation.beginning == date(2024, 2, 14)

    # One day shorter and only the first predicted period fits
    events = list(project_range([menses], 30, 5, date(2024, 1, 1), date(2024, 2, 29)))
    projected = _by_kind(events, EventKind.MENSES_PROJECTED)
    assert [p.beginning for p in projected] == [date(2024, 1, 31)]

def test_projection_stops_after_twelve_cycles():
    """However far the window extends, at most twelve periods are predicted."""
    menses = make_menses("m1", date(2024, 1, 1), date(2024, 1, 5))
    events = list(project_range([menses], 22, 5, date(2024, 1, 1), date(2030, 1, 1)))

    projected = _by_kind(events, EventKind.MENSES_PROJECTED)
    assert len(projected) == MAX_PROJECTED_CYCLES
    assert projected[-1].id == f"predicted-cycle-{MAX_PROJECTED_CYCLES - 1}"

def test_project_cycles_uses_menstruation_duration():
    """Predicted periods last the profile's menstruation duration."""
    menses = make_menses("m1", date(2024, 1, 1), date(2024, 1, 5))
    predicted = _by_kind(
        project_cycles(menses, 28, 4, date(2024, 3, 1)),
        EventKind.MENSES_PROJECTED
    )
    assert [(p.beginning, p.ending) for p in predicted] == [
        (date(2024, 1, 29), date(2024, 2, 1)),
        (date(2024, 2, 26), date(2024, 2, 29)),
    ]

def test_only_events_intersecting_window_are_returned():
    """Events are kept when any of their days falls inside the window."""
    menses = make_menses("m1", date(2024, 1, 1), date(2024, 1, 5))

    assert list(project_range([menses], 28, 5, date(2024, 1, 20), date(2024, 1, 25))) == []

    events = list(project_range([menses], 28, 5, date(2024, 1, 17), date(2024, 1, 20)))
    assert [e.id for e in events] == ["calculated-fertility-m1"]

def test_calculated_events_are_flagged():
    """Every projected event is transient and tagged as calculated."""
    menses = make_menses("m1", date(2024, 1, 1), date(2024, 1, 5))
    events = list(project_range([menses], 28, 5, date(2024, 1, 1), date(2024, 6, 30)))

    assert events
    assert all(e.calculated for e in events)
    assert all(e.kind.is_calculated for e in events)
    assert all(e.subject_id == menses.subject_id for e in events)

def test_projection_is_single_pass():
    """The result is an iterator that cannot be replayed."""
    menses = make_menses("m1", date(2024, 1, 1), date(2024, 1, 5))
    events = project_range([menses], 28, 5, date(2024, 1, 1), date(2024, 2, 28))

    assert iter(events) is events
    first = next(events)
    assert first.id == "calculated-ovulation-m1"
    rest = list(events)
    assert rest
    assert list(events) == []

def test_invalid_durations_rejected_eagerly():
    """Durations are checked when the projection is requested."""
    menses = make_menses("m1", date(2024, 1, 1), date(2024, 1, 5))
    with pytest.raises(ValidationError):
        project_range([menses], 0, 5, date(2024, 1, 1), date(2024, 2, 1))
    with pytest.raises(ValidationError):
        project_range([menses], 28, 0, date(2024, 1, 1), date(2024, 2, 1))

def test_open_period_still_projects():
    """An open period projects from its start like any other."""
    menses = make_menses("m1", date(2024, 1, 1))
    events = list(project_range([menses], 28, 5, date(2024, 1, 1), date(2024, 1, 31)))

    projected = _by_kind(events, EventKind.MENSES_PROJECTED)
    assert projected[0].beginning == date(2024, 1, 1) + timedelta(days=28)

import pytest

from derby_sim.errors import ConfigurationError, InvariantViolation
from derby_sim.schedule import (
    EventSchedule,
    EventScheduler,
    ScheduledEvent,
    build_default_schedule,
    build_schedule_from_gaps,
)


def test_default_schedule_has_four_races_inside_career() -> None:
    schedule = build_default_schedule()
    assert len(schedule) == 4
    assert [event.turn for event in schedule] == [4, 7, 10, 12]
    assert [event.category for event in schedule] == ["SPRINT", "MILE", "MEDIUM", "LONG"]
    assert all(event.turn <= schedule.max_turns for event in schedule)


def test_gaps_place_races_after_training_runs() -> None:
    races = [{"name": "Opener"}, {"name": "Closer", "category": "long", "distance": 2400}]
    schedule = build_schedule_from_gaps(races, gaps=[3, 2])
    assert [event.turn for event in schedule] == [4, 6]
    assert schedule[1].category == "LONG"
    assert schedule[0].event_id == "race-1"
    assert schedule.max_turns == 6


def test_gap_builder_rejects_mismatched_lengths() -> None:
    with pytest.raises(ConfigurationError):
        build_schedule_from_gaps([{"name": "Only"}], gaps=[2, 3])


def test_schedule_rejects_out_of_order_turns() -> None:
    events = [
        ScheduledEvent(turn=5, event_id="a", name="A"),
        ScheduledEvent(turn=5, event_id="b", name="B"),
    ]
    with pytest.raises(ConfigurationError):
        EventSchedule(events)


def test_schedule_rejects_event_past_career_end() -> None:
    with pytest.raises(ConfigurationError):
        EventSchedule([ScheduledEvent(turn=13, event_id="late", name="Late")], max_turns=12)


def test_schedule_rejects_tiny_field() -> None:
    with pytest.raises(ConfigurationError):
        EventSchedule([ScheduledEvent(turn=3, event_id="solo", name="Solo", field_size=1)])


def test_schedule_rejects_unknown_category() -> None:
    with pytest.raises(ConfigurationError):
        EventSchedule([ScheduledEvent(turn=3, event_id="odd", name="Odd", category="MARATHON")])


def test_scheduler_only_reports_pending_events() -> None:
    scheduler = EventScheduler(build_default_schedule())
    assert scheduler.is_event_due(3) is None
    assert scheduler.is_event_due(4) == "maiden-sprint"

    scheduler.mark_event_completed()

    assert scheduler.is_event_due(4) is None
    assert scheduler.is_event_due(7) == "mile-championship"
    assert scheduler.remaining_events() == 3


def test_scheduler_cannot_overrun() -> None:
    scheduler = EventScheduler(build_default_schedule(), completed=4)
    assert scheduler.all_events_completed()
    with pytest.raises(InvariantViolation):
        scheduler.mark_event_completed()


def test_scheduler_rejects_bad_completed_count() -> None:
    with pytest.raises(ConfigurationError):
        EventScheduler(build_default_schedule(), completed=5)


def test_next_event_counts_turns() -> None:
    scheduler = EventScheduler(build_default_schedule(), completed=1)
    upcoming = scheduler.next_event(5)
    assert upcoming is not None
    event, turns_until = upcoming
    assert event.event_id == "mile-championship"
    assert turns_until == 2


def test_upcoming_marks_completed_rows() -> None:
    scheduler = EventScheduler(build_default_schedule(), completed=2)
    rows = scheduler.upcoming(8)
    assert [row["completed"] for row in rows] == [True, True, False, False]
    assert rows[2]["turns_until"] == 2

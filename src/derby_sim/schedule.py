from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from .config import DEFAULT_FIELD_SIZE, MAX_TURNS, RACE_PHASES
from .errors import BAD_SCHEDULE, EVENT_OVERFLOW, ConfigurationError, InvariantViolation

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScheduledEvent:
    turn: int
    event_id: str
    name: str
    category: str = "SPRINT"
    surface: str = "DIRT"
    distance: int = 1200
    field_size: int = DEFAULT_FIELD_SIZE
    description: str = ""
    prize: int = 0

    def as_dict(self) -> dict[str, object]:
        return {
            "turn": self.turn,
            "event_id": self.event_id,
            "name": self.name,
            "category": self.category,
            "surface": self.surface,
            "distance": self.distance,
            "field_size": self.field_size,
            "description": self.description,
            "prize": self.prize,
        }


# turn, id, name, category, surface, distance, description, prize
DEFAULT_EVENTS: tuple[tuple[int, str, str, str, str, int, str, int], ...] = (
    (4, "maiden-sprint", "Maiden Sprint", "SPRINT", "DIRT", 1200, "A short dash for first-time runners.", 5000),
    (7, "mile-championship", "Mile Championship", "MILE", "DIRT", 1600, "Speed and stamina in equal measure.", 15000),
    (10, "dirt-stakes", "Dirt Stakes", "MEDIUM", "DIRT", 2000, "A grinding middle-distance test.", 30000),
    (12, "turf-cup-final", "Turf Cup Final", "LONG", "TURF", 2400, "The career finale on the grass.", 100000),
)


class EventSchedule:
    """Ordered, immutable turn -> event mapping fixed at career start."""

    def __init__(self, events: Iterable[ScheduledEvent], max_turns: int = MAX_TURNS) -> None:
        self.max_turns = max_turns
        self._events: tuple[ScheduledEvent, ...] = tuple(events)
        self._validate()
        self._by_turn = {event.turn: idx for idx, event in enumerate(self._events)}

    def _validate(self) -> None:
        previous = 1
        seen: set[str] = set()
        for event in self._events:
            # Turn 1 is never checked: the engine looks up the turn after advancing.
            if event.turn <= previous:
                raise ConfigurationError(
                    BAD_SCHEDULE,
                    f"Event '{event.event_id}' at turn {event.turn} must come after turn {previous}.",
                    {"event_id": event.event_id, "turn": event.turn},
                )
            if event.turn > self.max_turns:
                raise ConfigurationError(
                    BAD_SCHEDULE,
                    f"Event '{event.event_id}' at turn {event.turn} is past the career end ({self.max_turns}).",
                    {"event_id": event.event_id, "turn": event.turn, "max_turns": self.max_turns},
                )
            if event.event_id in seen:
                raise ConfigurationError(BAD_SCHEDULE, f"Duplicate event id '{event.event_id}'.")
            if event.category.upper() not in RACE_PHASES:
                raise ConfigurationError(BAD_SCHEDULE, f"Unknown race category '{event.category}'.")
            if event.field_size < 2:
                raise ConfigurationError(BAD_SCHEDULE, f"Event '{event.event_id}' needs at least 2 runners.")
            seen.add(event.event_id)
            previous = event.turn

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(self._events)

    def __getitem__(self, index: int) -> ScheduledEvent:
        return self._events[index]

    @property
    def events(self) -> tuple[ScheduledEvent, ...]:
        return self._events

    def index_at_turn(self, turn: int) -> int | None:
        return self._by_turn.get(turn)

    def as_list(self) -> list[dict[str, object]]:
        return [event.as_dict() for event in self._events]


def build_default_schedule(max_turns: int = MAX_TURNS) -> EventSchedule:
    events = [
        ScheduledEvent(
            turn=turn,
            event_id=event_id,
            name=name,
            category=category,
            surface=surface,
            distance=distance,
            description=description,
            prize=prize,
        )
        for turn, event_id, name, category, surface, distance, description, prize in DEFAULT_EVENTS
    ]
    return EventSchedule(events, max_turns=max_turns)


def build_schedule_from_gaps(
    races: Sequence[dict[str, object]],
    gaps: Sequence[int],
    start_turn: int = 1,
    max_turns: int | None = None,
) -> EventSchedule:
    """Place each race after a run of training turns.

    `gaps[i]` is how many training turns precede race `i`; a race lands on the
    turn reached once those trainings are done.
    """
    if len(gaps) != len(races):
        raise ConfigurationError(BAD_SCHEDULE, "Each race needs exactly one training gap.")
    turn = start_turn
    events: list[ScheduledEvent] = []
    for idx, (race, gap) in enumerate(zip(races, gaps)):
        if gap < 1:
            raise ConfigurationError(BAD_SCHEDULE, f"Race {idx + 1} needs at least one training turn before it.")
        turn += gap
        events.append(
            ScheduledEvent(
                turn=turn,
                event_id=str(race.get("event_id") or f"race-{idx + 1}"),
                name=str(race.get("name") or f"Race {idx + 1}"),
                category=str(race.get("category", "SPRINT")).upper(),
                surface=str(race.get("surface", "DIRT")).upper(),
                distance=int(race.get("distance", 1200)),  # type: ignore[arg-type]
                field_size=int(race.get("field_size", DEFAULT_FIELD_SIZE)),  # type: ignore[arg-type]
                description=str(race.get("description", "")),
                prize=int(race.get("prize", 0)),  # type: ignore[arg-type]
            )
        )
    return EventSchedule(events, max_turns=max_turns if max_turns is not None else turn)


class EventScheduler:
    def __init__(self, schedule: EventSchedule, completed: int = 0) -> None:
        self.schedule = schedule
        if not 0 <= completed <= len(schedule):
            raise ConfigurationError(
                BAD_SCHEDULE,
                f"Completed count {completed} outside [0, {len(schedule)}].",
            )
        self._completed = completed

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def total(self) -> int:
        return len(self.schedule)

    def is_event_due(self, turn: int) -> str | None:
        idx = self.schedule.index_at_turn(turn)
        if idx is None or idx < self._completed:
            return None
        return self.schedule[idx].event_id

    def remaining_events(self) -> int:
        return self.total - self._completed

    def all_events_completed(self) -> bool:
        return self._completed >= self.total

    def mark_event_completed(self) -> int:
        if self._completed >= self.total:
            raise InvariantViolation(
                EVENT_OVERFLOW,
                f"All {self.total} scheduled events are already completed.",
            )
        self._completed += 1
        logger.info("event %d/%d completed", self._completed, self.total)
        return self._completed

    def event(self, event_id: str) -> ScheduledEvent:
        for event in self.schedule:
            if event.event_id == event_id:
                return event
        raise ConfigurationError(BAD_SCHEDULE, f"No scheduled event '{event_id}'.")

    def next_event(self, turn: int) -> tuple[ScheduledEvent, int] | None:
        """Next event not yet run, with the number of turns until it."""
        for idx, event in enumerate(self.schedule):
            if idx < self._completed:
                continue
            return event, max(0, event.turn - turn)
        return None

    def upcoming(self, turn: int) -> list[dict[str, object]]:
        rows: list[dict[str, object]] = []
        for idx, event in enumerate(self.schedule):
            row = event.as_dict()
            row["completed"] = idx < self._completed
            row["turns_until"] = max(0, event.turn - turn)
            rows.append(row)
        return rows

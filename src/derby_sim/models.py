from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import ClassVar
from uuid import uuid4

from .config import (
    BOND_MAX,
    BOND_MIN,
    BREEDS,
    DEFAULT_BREED,
    ENERGY_MAX,
    ENERGY_MIN,
    GROWTH_GRADES,
    HEALTH_MAX,
    HEALTH_MIN,
    MAX_TURNS,
    SPECIALIZATIONS,
    STAT_MIN,
)
from .errors import BAD_BREED, BAD_SPECIALIZATION, OUT_OF_BOUNDS, TURN_OVERFLOW, ConfigurationError, InvariantViolation

STAT_NAMES = ("speed", "stamina", "power")


class Mood(IntEnum):
    BAD = 0
    TIRED = 1
    NORMAL = 2
    GOOD = 3
    GREAT = 4
    EXCELLENT = 5

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, value: str | int) -> "Mood":
        if isinstance(value, int):
            return cls(value)
        return cls[str(value).strip().upper()]


class Strategy(str, Enum):
    FRONT = "FRONT"
    MID = "MID"
    LATE = "LATE"

    @property
    def label(self) -> str:
        return {"FRONT": "Front Runner", "MID": "Stalker", "LATE": "Closer"}[self.value]


def mood_for(energy: int, health: int) -> Mood:
    if energy >= 90:
        mood = Mood.EXCELLENT if health >= 90 else Mood.GREAT
    elif energy >= 70:
        mood = Mood.GREAT
    elif energy >= 50:
        mood = Mood.GOOD
    elif energy >= 30:
        mood = Mood.NORMAL
    elif energy >= 15:
        mood = Mood.TIRED
    else:
        mood = Mood.BAD
    if health < 50 and mood > Mood.BAD:
        mood = Mood(mood - 1)
    return mood


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass(slots=True)
class Stats:
    speed: int = 20
    stamina: int = 20
    power: int = 20

    @property
    def total(self) -> int:
        return self.speed + self.stamina + self.power

    @property
    def average(self) -> float:
        return self.total / 3.0

    def get(self, stat: str) -> int:
        return int(getattr(self, stat))

    def as_dict(self) -> dict[str, int]:
        return {"speed": self.speed, "stamina": self.stamina, "power": self.power}


@dataclass(slots=True)
class Condition:
    energy: int = ENERGY_MAX
    health: int = HEALTH_MAX
    mood: Mood = Mood.EXCELLENT

    def as_dict(self) -> dict[str, object]:
        return {"energy": self.energy, "health": self.health, "mood": self.mood.label}


@dataclass(slots=True)
class Competitor:
    name: str
    breed: str = DEFAULT_BREED
    stats: Stats = field(default_factory=Stats)
    condition: Condition = field(default_factory=Condition)
    growth: dict[str, str] = field(default_factory=lambda: {s: "B" for s in STAT_NAMES})
    strategy: Strategy = Strategy.MID
    bond: int = 0
    consistency: float = 0.75
    is_player: bool = False
    color: str = "bay"
    competitor_id: str = field(default_factory=lambda: uuid4().hex)
    stat_caps: dict[str, int] = field(default_factory=dict)
    specialization: str | None = None

    CONSISTENCY_RANGE: ClassVar[tuple[float, float]] = (0.5, 1.0)

    def __post_init__(self) -> None:
        if not self.stat_caps:
            profile = BREEDS.get(self.breed)
            if profile is None:
                raise ConfigurationError(BAD_BREED, f"Unknown breed '{self.breed}'.", {"breed": self.breed})
            self.stat_caps = {s: int(profile["caps"][s]) for s in STAT_NAMES}
        for stat in STAT_NAMES:
            value = self.stats.get(stat)
            if not STAT_MIN <= value <= self.stat_caps[stat]:
                raise ConfigurationError(
                    OUT_OF_BOUNDS,
                    f"{self.name} {stat} {value} outside [{STAT_MIN}, {self.stat_caps[stat]}].",
                    {"stat": stat, "value": value, "cap": self.stat_caps[stat]},
                )
        for stat, grade in self.growth.items():
            if grade not in GROWTH_GRADES:
                raise ConfigurationError(BAD_BREED, f"Unknown growth grade '{grade}' for {stat}.")
        if self.specialization is not None and self.specialization not in SPECIALIZATIONS:
            raise ConfigurationError(
                BAD_SPECIALIZATION,
                f"Unknown specialization '{self.specialization}'.",
                {"specialization": self.specialization},
            )
        low, high = self.CONSISTENCY_RANGE
        self.consistency = max(low, min(high, float(self.consistency)))
        self.bond = _clamp(int(self.bond), BOND_MIN, BOND_MAX)
        self.condition.energy = _clamp(int(self.condition.energy), ENERGY_MIN, ENERGY_MAX)
        self.condition.health = _clamp(int(self.condition.health), HEALTH_MIN, HEALTH_MAX)
        self.refresh_mood()

    @property
    def average_stat(self) -> float:
        return self.stats.average

    def cap(self, stat: str) -> int:
        return self.stat_caps[stat]

    def growth_grade(self, stat: str) -> str:
        return self.growth.get(stat, "B")

    def change_stat(self, stat: str, delta: int) -> int:
        """Apply a clamped stat change and return the amount actually applied."""
        if stat not in STAT_NAMES:
            raise ConfigurationError(OUT_OF_BOUNDS, f"Unknown stat '{stat}'.")
        before = self.stats.get(stat)
        after = _clamp(before + int(delta), STAT_MIN, self.stat_caps[stat])
        setattr(self.stats, stat, after)
        return after - before

    def change_energy(self, delta: int) -> int:
        before = self.condition.energy
        self.condition.energy = _clamp(before + int(delta), ENERGY_MIN, ENERGY_MAX)
        self.refresh_mood()
        return self.condition.energy - before

    def change_health(self, delta: int) -> int:
        before = self.condition.health
        self.condition.health = _clamp(before + int(delta), HEALTH_MIN, HEALTH_MAX)
        self.refresh_mood()
        return self.condition.health - before

    def change_bond(self, delta: int) -> int:
        before = self.bond
        self.bond = _clamp(before + int(delta), BOND_MIN, BOND_MAX)
        return self.bond - before

    def refresh_mood(self) -> Mood:
        self.condition.mood = mood_for(self.condition.energy, self.condition.health)
        return self.condition.mood

    def apply_narrative_mood(self, mood: Mood) -> None:
        # Race aftermath is the only writer that bypasses mood_for.
        self.condition.mood = mood

    def check_invariants(self) -> None:
        for stat in STAT_NAMES:
            value = self.stats.get(stat)
            if not STAT_MIN <= value <= self.stat_caps[stat]:
                raise InvariantViolation(OUT_OF_BOUNDS, f"{self.name} {stat} out of bounds: {value}")
        if not ENERGY_MIN <= self.condition.energy <= ENERGY_MAX:
            raise InvariantViolation(OUT_OF_BOUNDS, f"{self.name} energy out of bounds: {self.condition.energy}")
        if not HEALTH_MIN <= self.condition.health <= HEALTH_MAX:
            raise InvariantViolation(OUT_OF_BOUNDS, f"{self.name} health out of bounds: {self.condition.health}")
        if not BOND_MIN <= self.bond <= BOND_MAX:
            raise InvariantViolation(OUT_OF_BOUNDS, f"{self.name} bond out of bounds: {self.bond}")

    def summary(self) -> dict[str, object]:
        return {
            "id": self.competitor_id,
            "name": self.name,
            "breed": self.breed,
            "specialization": self.specialization,
            "color": self.color,
            "stats": self.stats.as_dict(),
            "caps": dict(self.stat_caps),
            "condition": self.condition.as_dict(),
            "growth": dict(self.growth),
            "strategy": self.strategy.value,
            "bond": self.bond,
        }


@dataclass(slots=True)
class CareerRecord:
    turn: int = 1
    max_turns: int = MAX_TURNS
    races_run: int = 0
    races_won: int = 0
    training_sessions: int = 0

    @property
    def finished(self) -> bool:
        return self.turn > self.max_turns

    @property
    def turns_remaining(self) -> int:
        return max(0, self.max_turns - self.turn + 1)

    @property
    def win_rate(self) -> float:
        if self.races_run <= 0:
            return 0.0
        return self.races_won / self.races_run

    def advance_turn(self) -> int:
        if self.turn + 1 > self.max_turns + 1:
            raise InvariantViolation(
                TURN_OVERFLOW,
                f"Turn {self.turn + 1} exceeds career length {self.max_turns}.",
                {"turn": self.turn, "max_turns": self.max_turns},
            )
        self.turn += 1
        return self.turn

    def as_dict(self) -> dict[str, int]:
        return {
            "turn": self.turn,
            "max_turns": self.max_turns,
            "races_run": self.races_run,
            "races_won": self.races_won,
            "training_sessions": self.training_sessions,
        }

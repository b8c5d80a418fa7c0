from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from .config import (
    HORSE_COLORS,
    RIVAL_CONSISTENCY_RANGE,
    RIVAL_ENERGY_RANGE,
    RIVAL_GROWTH_POOL,
    ROSTER_POWER_OFFSETS,
    ROSTER_SIZE,
    STAT_MIN,
)
from .errors import BAD_SNAPSHOT, ConfigurationError, SnapshotError
from .models import STAT_NAMES, Competitor, Condition, Stats, Strategy
from .modifiers import ModifierTables
from .names import HorseNameGenerator
from .schedule import ScheduledEvent

if TYPE_CHECKING:
    from .engine import EventOutcome

logger = logging.getLogger(__name__)

TRAINING_PATTERNS: dict[str, tuple[str, ...]] = {
    "FRONT": ("speed", "power", "speed", "stamina", "rest"),
    "MID": ("speed", "stamina", "power", "rest"),
    "LATE": ("stamina", "stamina", "speed", "power", "rest"),
}
RIVAL_GAIN_RANGE: tuple[float, float] = (0.6, 1.0)
RIVAL_RACE_ENERGY_COST = 10
MIN_ROSTER_TOTAL = 50
MIN_RIVAL_STAT = 15


@dataclass(slots=True)
class Rival:
    competitor: Competitor
    training_pattern: str = "MID"
    races_run: int = 0
    wins: int = 0
    results: list[dict[str, object]] = field(default_factory=list)

    @property
    def rival_id(self) -> str:
        return self.competitor.competitor_id

    @property
    def readiness(self) -> float:
        return max(0.3, self.competitor.condition.energy / 100.0)

    @property
    def power_rating(self) -> float:
        return float(self.competitor.stats.total)


def _stat_tendency(stats: dict[str, int]) -> str | None:
    mean = sum(stats.values()) / 3.0
    best = max(STAT_NAMES, key=lambda s: stats[s])
    if mean <= 0 or (stats[best] - mean) / mean < 0.08:
        return None
    return best


def _pick_strategy(tendency: str | None, rng: random.Random) -> Strategy:
    roll = rng.random()
    if tendency in {"speed", "power"}:
        return Strategy.FRONT if roll < 0.7 else Strategy.MID
    if tendency == "stamina":
        return Strategy.LATE if roll < 0.7 else Strategy.MID
    return Strategy.MID


def _pick_specialization(tendency: str | None) -> str:
    if tendency in {"speed", "power"}:
        return "Sprinter"
    if tendency == "stamina":
        return "Stayer"
    return "Miler"


class RivalRoster:
    """Persistent rival stable that trains alongside the player."""

    def __init__(self, rivals: list[Rival], tables: ModifierTables | None = None) -> None:
        self.rivals = rivals
        self.tables = tables or ModifierTables.from_config()

    def __len__(self) -> int:
        return len(self.rivals)

    @classmethod
    def generate(
        cls,
        player_total: int,
        rng: random.Random,
        size: int = ROSTER_SIZE,
        names: HorseNameGenerator | None = None,
        tables: ModifierTables | None = None,
    ) -> "RivalRoster":
        tables = tables or ModifierTables.from_config()
        names = names or HorseNameGenerator(seed=rng.randrange(1 << 30))
        breeds = tables.breed_names()
        rivals: list[Rival] = []
        for idx in range(size):
            offset = ROSTER_POWER_OFFSETS[idx % len(ROSTER_POWER_OFFSETS)]
            total = max(MIN_ROSTER_TOTAL, player_total + offset + rng.randint(-5, 5))
            breed = rng.choice(breeds)
            caps = tables.caps_for(breed)
            raw = {
                stat: max(MIN_RIVAL_STAT, min(caps[stat], total // 3 + rng.randint(-5, 10)))
                for stat in STAT_NAMES
            }
            tendency = _stat_tendency(raw)
            strategy = _pick_strategy(tendency, rng)
            growth = {stat: rng.choice(RIVAL_GROWTH_POOL) for stat in STAT_NAMES}
            competitor = Competitor(
                name=names.next_name(),
                breed=breed,
                stats=Stats(**raw),
                condition=Condition(energy=rng.randint(*RIVAL_ENERGY_RANGE)),
                growth=growth,
                strategy=strategy,
                consistency=rng.uniform(*RIVAL_CONSISTENCY_RANGE),
                color=rng.choice(HORSE_COLORS),
                stat_caps=caps,
                specialization=_pick_specialization(tendency),
            )
            rivals.append(Rival(competitor=competitor, training_pattern=strategy.value))
        logger.debug("generated %d rivals around total %d", len(rivals), player_total)
        return cls(rivals, tables=tables)

    def get(self, rival_id: str) -> Rival | None:
        for rival in self.rivals:
            if rival.rival_id == rival_id:
                return rival
        return None

    def _choose_training(self, rival: Rival, turn: int, next_event: ScheduledEvent | None) -> str:
        horse = rival.competitor
        if horse.condition.energy < 30:
            return "rest"
        if next_event is not None and 0 <= next_event.turn - turn <= 1:
            if horse.condition.energy < 70:
                return "rest"
            return "stamina" if next_event.category in {"MEDIUM", "LONG"} else "speed"
        pattern = TRAINING_PATTERNS.get(rival.training_pattern, TRAINING_PATTERNS["MID"])
        return pattern[(turn + len(rival.results)) % len(pattern)]

    def progress(self, turn: int, next_event: ScheduledEvent | None, rng: random.Random) -> dict[str, str]:
        """Run one off-screen training turn for every rival."""
        choices: dict[str, str] = {}
        for rival in self.rivals:
            horse = rival.competitor
            kind = self.tables.training_kind(self._choose_training(rival, turn, next_event))
            if kind.cost > horse.condition.energy:
                kind = self.tables.training_kind("rest")
            horse.change_energy(kind.recover - kind.cost)
            if kind.trains_stat:
                stat = kind.stat or ""
                raw = (
                    kind.base_gain
                    * self.tables.growth_multiplier(horse.breed, horse.growth_grade(stat), stat, horse.specialization)
                    * rng.uniform(*RIVAL_GAIN_RANGE)
                )
                horse.change_stat(stat, max(STAT_MIN, int(round(raw))))
            choices[rival.rival_id] = kind.name
        return choices

    def select_field(self, count: int, rng: random.Random) -> list[Competitor]:
        if count <= 0:
            return []
        ranked = sorted(self.rivals, key=lambda r: r.power_rating * r.readiness, reverse=True)
        picked = ranked[: min(3, count)]
        rest = ranked[len(picked):]
        needed = min(count - len(picked), len(rest))
        if needed > 0:
            picked.extend(rng.sample(rest, needed))
        return [rival.competitor for rival in picked]

    def record_outcome(self, outcome: "EventOutcome") -> None:
        for placing in outcome.placings:
            if placing.is_player:
                continue
            rival = self.get(placing.participant_id)
            if rival is None:
                continue
            rival.races_run += 1
            if placing.rank == 1:
                rival.wins += 1
            rival.results.append({"event_id": outcome.event_id, "rank": placing.rank, "time": placing.time})
            rival.competitor.change_energy(-RIVAL_RACE_ENERGY_COST)

    def leaders(self, limit: int = 5) -> list[dict[str, object]]:
        ranked = sorted(self.rivals, key=lambda r: (r.wins, r.power_rating), reverse=True)
        return [
            {
                "name": r.competitor.name,
                "breed": r.competitor.breed,
                "specialization": r.competitor.specialization,
                "strategy": r.competitor.strategy.value,
                "total": r.competitor.stats.total,
                "races": r.races_run,
                "wins": r.wins,
            }
            for r in ranked[:limit]
        ]

    def to_dict(self) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for rival in self.rivals:
            horse = rival.competitor
            rows.append(
                {
                    "id": horse.competitor_id,
                    "name": horse.name,
                    "breed": horse.breed,
                    "specialization": horse.specialization,
                    "color": horse.color,
                    "stats": horse.stats.as_dict(),
                    "energy": horse.condition.energy,
                    "health": horse.condition.health,
                    "growth": dict(horse.growth),
                    "strategy": horse.strategy.value,
                    "consistency": round(horse.consistency, 4),
                    "training_pattern": rival.training_pattern,
                    "races_run": rival.races_run,
                    "wins": rival.wins,
                    "results": list(rival.results),
                }
            )
        return rows

    @classmethod
    def from_dict(cls, rows: list[Any], tables: ModifierTables | None = None) -> "RivalRoster":
        tables = tables or ModifierTables.from_config()
        rivals: list[Rival] = []
        for idx, raw in enumerate(rows):
            if not isinstance(raw, dict):
                continue
            try:
                rivals.append(_rival_from_row(raw, tables))
            except (TypeError, ValueError, KeyError, AttributeError, ConfigurationError) as exc:
                raise SnapshotError(
                    BAD_SNAPSHOT,
                    f"Rival entry {idx} is malformed.",
                    {"index": idx, "reason": str(exc)},
                ) from exc
        return cls(rivals, tables=tables)


def _rival_from_row(raw: dict[str, Any], tables: ModifierTables) -> Rival:
    breed = str(raw.get("breed", "Thoroughbred"))
    caps = tables.caps_for(breed)
    stats = raw.get("stats", {}) if isinstance(raw.get("stats"), dict) else {}
    specialization = raw.get("specialization")
    if specialization is not None:
        specialization = tables.specialization(str(specialization)).name
    competitor = Competitor(
        name=str(raw.get("name", "Unknown")),
        breed=breed,
        stats=Stats(**{s: max(STAT_MIN, min(caps[s], int(stats.get(s, 20)))) for s in STAT_NAMES}),
        condition=Condition(energy=int(raw.get("energy", 100)), health=int(raw.get("health", 100))),
        growth={s: str(v) for s, v in (raw.get("growth") or {}).items()} or {s: "B" for s in STAT_NAMES},
        strategy=Strategy(str(raw.get("strategy", "MID"))),
        consistency=float(raw.get("consistency", 0.85)),
        color=str(raw.get("color", "bay")),
        competitor_id=str(raw.get("id") or uuid4().hex),
        stat_caps=caps,
        specialization=specialization,
    )
    results = raw.get("results", [])
    return Rival(
        competitor=competitor,
        training_pattern=str(raw.get("training_pattern", competitor.strategy.value)),
        races_run=int(raw.get("races_run", 0)),
        wins=int(raw.get("wins", 0)),
        results=[r for r in results if isinstance(r, dict)] if isinstance(results, list) else [],
    )

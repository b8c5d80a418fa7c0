from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field

from .config import (
    BASE_TIME_PER_METER,
    DEFAULT_FIELD_SIZE,
    HORSE_COLORS,
    MIN_STAMINA_FACTOR,
    PHASE_NOISE,
    PLACEMENT_REWARDS,
    RIVAL_CONSISTENCY_RANGE,
    RIVAL_ENERGY_RANGE,
    RIVAL_GROWTH_POOL,
    RIVAL_LEVEL_RANGE,
    RIVAL_LEVEL_SPREAD,
    SECONDS_PER_LENGTH,
    STAT_MIN,
    TIME_SPREAD,
    UNPLACED_ENERGY_LOSS,
)
from .errors import BAD_FIELD, ConfigurationError
from .models import STAT_NAMES, CareerRecord, Competitor, Condition, Mood, Stats, Strategy
from .modifiers import ModifierTables, PhasePlan
from .names import HorseNameGenerator
from .schedule import ScheduledEvent

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FieldSpec:
    event: ScheduledEvent
    rivals: list[Competitor] | None = None
    size: int | None = None


@dataclass(frozen=True, slots=True)
class Placing:
    participant_id: str
    name: str
    rank: int
    time: float
    performance_score: float
    is_player: bool
    strategy: str
    breed: str
    margin_lengths: float = 0.0
    phase_scores: tuple[float, ...] = ()

    def as_dict(self) -> dict[str, object]:
        return {
            "participant_id": self.participant_id,
            "name": self.name,
            "rank": self.rank,
            "time": self.time,
            "performance_score": round(self.performance_score, 3),
            "is_player": self.is_player,
            "strategy": self.strategy,
            "breed": self.breed,
            "margin_lengths": self.margin_lengths,
            "phase_scores": [round(v, 3) for v in self.phase_scores],
        }


@dataclass(frozen=True, slots=True)
class EventOutcome:
    event_id: str
    name: str
    category: str
    surface: str
    distance: int
    phase_names: tuple[str, ...]
    placings: tuple[Placing, ...]

    @property
    def field_size(self) -> int:
        return len(self.placings)

    @property
    def winner(self) -> Placing:
        return self.placings[0]

    @property
    def player_placing(self) -> Placing | None:
        for placing in self.placings:
            if placing.is_player:
                return placing
        return None

    def as_dict(self) -> dict[str, object]:
        return {
            "event_id": self.event_id,
            "name": self.name,
            "category": self.category,
            "surface": self.surface,
            "distance": self.distance,
            "phases": list(self.phase_names),
            "placings": [p.as_dict() for p in self.placings],
        }


@dataclass(frozen=True, slots=True)
class AftermathResult:
    rank: int
    won: bool
    bond_delta: int = 0
    energy_delta: int = 0
    mood: Mood | None = None
    messages: tuple[str, ...] = field(default_factory=tuple)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def base_time_for(distance: int) -> float:
    return distance * BASE_TIME_PER_METER


def player_consistency(bond: int) -> float:
    return 0.5 + bond / 200.0


class RaceSimulator:
    """Phase-segmented race simulation.

    Randomness order per call: rival synthesis first (per synthesized rival:
    level offset, three stat jitters, strategy roll, consistency, energy,
    breed, three growth grades), then one `uniform` draw per entrant per
    phase, phases outermost and entrants in field order.
    """

    def __init__(self, tables: ModifierTables | None = None, field_size: int = DEFAULT_FIELD_SIZE) -> None:
        self.tables = tables or ModifierTables.from_config()
        self.field_size = field_size

    def _resolve_size(self, spec: FieldSpec) -> int:
        if spec.size is not None:
            return spec.size
        if spec.event.field_size:
            return spec.event.field_size
        return self.field_size

    def synthesize_rival(
        self,
        player: Competitor,
        rng: random.Random,
        names: HorseNameGenerator,
    ) -> Competitor:
        low, high = RIVAL_LEVEL_RANGE
        level = _clamp(player.average_stat + rng.randint(-RIVAL_LEVEL_SPREAD, RIVAL_LEVEL_SPREAD), low, high)
        raw = {stat: int(round(level)) + rng.randint(-5, 5) for stat in STAT_NAMES}
        best = max(STAT_NAMES, key=lambda s: raw[s])
        roll = rng.random()
        if best == "stamina":
            strategy = Strategy.LATE if roll < 0.7 else Strategy.MID
        elif raw[best] - level > 2:
            strategy = Strategy.FRONT if roll < 0.7 else Strategy.MID
        else:
            strategy = Strategy.MID
        consistency = rng.uniform(*RIVAL_CONSISTENCY_RANGE)
        energy = rng.randint(*RIVAL_ENERGY_RANGE)
        breed = rng.choice(self.tables.breed_names())
        growth = {stat: rng.choice(RIVAL_GROWTH_POOL) for stat in STAT_NAMES}
        caps = self.tables.caps_for(breed)
        name = names.next_name()
        return Competitor(
            name=name,
            breed=breed,
            stats=Stats(**{s: int(_clamp(raw[s], STAT_MIN, caps[s])) for s in STAT_NAMES}),
            condition=Condition(energy=energy),
            growth=growth,
            strategy=strategy,
            consistency=consistency,
            color=HORSE_COLORS[sum(ord(ch) for ch in name) % len(HORSE_COLORS)],
            stat_caps=caps,
        )

    def build_field(self, player: Competitor, spec: FieldSpec, rng: random.Random) -> list[Competitor]:
        size = self._resolve_size(spec)
        if size < 2:
            raise ConfigurationError(
                BAD_FIELD,
                f"A race needs at least 2 runners; field size is {size}.",
                {"event_id": spec.event.event_id, "size": size},
            )
        entrants = [player]
        provided = list(spec.rivals or [])[: size - 1]
        entrants.extend(provided)
        missing = size - len(entrants)
        if missing > 0:
            names = HorseNameGenerator(seed=f"field:{spec.event.event_id}:{player.name}")
            names.reserve([c.name for c in entrants])
            for _ in range(missing):
                entrants.append(self.synthesize_rival(player, rng, names))
        return entrants

    def condition_factor(self, competitor: Competitor, surface: str, distance: int | None = None) -> float:
        stamina_factor = max(MIN_STAMINA_FACTOR, competitor.condition.energy / 100.0)
        return (
            self.tables.form_multiplier(competitor.condition.mood)
            * stamina_factor
            * self.tables.surface_preference(competitor.breed, surface)
            * (1.0 if distance is None else self.tables.distance_fit(competitor.specialization, distance))
        )

    def phase_performance(
        self,
        competitor: Competitor,
        phase: PhasePlan,
        strategy: str,
        consistency: float,
        condition: float,
        rng: random.Random,
    ) -> float:
        weighted = sum(competitor.stats.get(stat) * weight for stat, weight in phase.weights.items())
        noise = rng.uniform(-PHASE_NOISE, PHASE_NOISE) * (1.5 - consistency)
        fit = self.tables.strategy_fit(strategy, phase.stage)
        return weighted * (1.0 + noise) * fit * condition

    def simulate_event(
        self,
        player: Competitor,
        spec: FieldSpec,
        player_strategy: Strategy | str,
        rng: random.Random,
    ) -> EventOutcome:
        event = spec.event
        entrants = self.build_field(player, spec, rng)
        plan = self.tables.phase_plan(event.category)
        if not isinstance(player_strategy, Strategy):
            player_strategy = Strategy(str(player_strategy).strip().upper())

        strategies = [player_strategy.value if c is player else c.strategy.value for c in entrants]
        consistencies = [player_consistency(c.bond) if c is player else c.consistency for c in entrants]
        conditions = [self.condition_factor(c, event.surface, event.distance) for c in entrants]

        phase_scores: list[list[float]] = [[] for _ in entrants]
        for phase in plan:
            for idx, competitor in enumerate(entrants):
                perf = self.phase_performance(
                    competitor, phase, strategies[idx], consistencies[idx], conditions[idx], rng
                )
                phase_scores[idx].append(perf)

        totals = [sum(score * phase.share for score, phase in zip(scores, plan)) for scores in phase_scores]
        # sorted() is stable, so equal scores keep field order (player first).
        order = sorted(range(len(entrants)), key=lambda i: -totals[i])

        base_time = base_time_for(event.distance)
        winner_time: float | None = None
        placings: list[Placing] = []
        for rank, idx in enumerate(order, start=1):
            competitor = entrants[idx]
            time = round(base_time * (1.0 - TIME_SPREAD * _clamp(totals[idx] / 100.0, 0.0, 1.0)), 2)
            if winner_time is None:
                winner_time = time
            placings.append(
                Placing(
                    participant_id=competitor.competitor_id,
                    name=competitor.name,
                    rank=rank,
                    time=time,
                    performance_score=totals[idx],
                    is_player=competitor is player,
                    strategy=strategies[idx],
                    breed=competitor.breed,
                    margin_lengths=round((time - winner_time) / SECONDS_PER_LENGTH, 1),
                    phase_scores=tuple(phase_scores[idx]),
                )
            )

        outcome = EventOutcome(
            event_id=event.event_id,
            name=event.name,
            category=event.category,
            surface=event.surface,
            distance=event.distance,
            phase_names=tuple(phase.name for phase in plan),
            placings=tuple(placings),
        )
        mine = outcome.player_placing
        logger.info(
            "%s: %s won in %.2fs; player finished %s of %d",
            event.name,
            outcome.winner.name,
            outcome.winner.time,
            mine.rank if mine is not None else "-",
            outcome.field_size,
        )
        return outcome


def race_aftermath(player: Competitor, career: CareerRecord, placing: Placing) -> AftermathResult:
    """Apply the post-race bond, mood and record changes for the player."""
    career.races_run += 1
    won = placing.rank == 1
    if won:
        career.races_won += 1
    messages: list[str] = []
    bond_delta = 0
    energy_delta = 0
    mood: Mood | None = None
    for max_rank, bond_gain, narrative_mood in PLACEMENT_REWARDS:
        if placing.rank <= max_rank:
            bond_delta = player.change_bond(bond_gain)
            if narrative_mood is not None:
                mood = Mood.parse(narrative_mood)
                player.apply_narrative_mood(mood)
            break
    else:
        energy_delta = player.change_energy(-UNPLACED_ENERGY_LOSS)
    if won:
        messages.append(f"{player.name} wins! Your bond grows stronger.")
    elif placing.rank <= 3:
        messages.append(f"{player.name} makes the podium in {_ordinal(placing.rank)}.")
    elif bond_delta:
        messages.append(f"A solid run to {_ordinal(placing.rank)}.")
    else:
        messages.append(f"{player.name} finished {_ordinal(placing.rank)} and looks worn out.")
    return AftermathResult(
        rank=placing.rank,
        won=won,
        bond_delta=bond_delta,
        energy_delta=energy_delta,
        mood=mood,
        messages=tuple(messages),
    )


def _ordinal(rank: int) -> str:
    if 10 <= rank % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(rank % 10, "th")
    return f"{rank}{suffix}"


def simulate_event(
    player: Competitor,
    spec: FieldSpec,
    player_strategy: Strategy | str,
    rng: random.Random,
    tables: ModifierTables | None = None,
) -> EventOutcome:
    return RaceSimulator(tables).simulate_event(player, spec, player_strategy, rng)

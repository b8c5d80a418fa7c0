from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field

from .config import REST_HEALTH_CHANCE, REST_HEALTH_GAIN, TRAINING_RANDOM_RANGE
from .errors import (
    CAREER_OVER,
    INSUFFICIENT_ENERGY,
    CareerOver,
    InsufficientResource,
    UserRecoverableError,
)
from .models import STAT_NAMES, CareerRecord, Competitor, Mood
from .modifiers import ModifierTables, TrainingKind
from .schedule import EventScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TrainingResult:
    success: bool
    kind: str
    stat_delta: dict[str, int] = field(default_factory=dict)
    energy_delta: int = 0
    bond_delta: int = 0
    health_delta: int = 0
    turn_after: int = 0
    event_due: str | None = None
    error: UserRecoverableError | None = None
    messages: tuple[str, ...] = ()

    @property
    def event_ready(self) -> bool:
        return self.event_due is not None

    def as_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "kind": self.kind,
            "stat_delta": dict(self.stat_delta),
            "energy_delta": self.energy_delta,
            "bond_delta": self.bond_delta,
            "health_delta": self.health_delta,
            "turn_after": self.turn_after,
            "event_due": self.event_due,
            "error": self.error.to_payload() if self.error is not None else None,
            "messages": list(self.messages),
        }


class TrainingEngine:
    """Applies one training action per turn.

    Randomness per call: a stat session draws one `uniform(0.8, 1.2)`, rest
    draws one `random()` for the health roll, media draws nothing. Failed
    calls draw nothing.
    """

    def __init__(self, tables: ModifierTables | None = None) -> None:
        self.tables = tables or ModifierTables.from_config()

    def raw_gain(
        self,
        competitor: Competitor,
        kind: TrainingKind,
        random_factor: float,
        mood: Mood | None = None,
    ) -> float:
        stat = kind.stat or ""
        return (
            kind.base_gain
            * self.tables.growth_multiplier(
                competitor.breed, competitor.growth_grade(stat), stat, competitor.specialization
            )
            * self.tables.form_multiplier(mood if mood is not None else competitor.condition.mood)
            * self.tables.bond_multiplier(competitor.bond)
            * random_factor
        )

    def preview_gain(self, competitor: Competitor, kind_name: str) -> int:
        kind = self.tables.training_kind(kind_name)
        if not kind.trains_stat:
            return 0
        midpoint = sum(TRAINING_RANDOM_RANGE) / 2.0
        return max(1, int(round(self.raw_gain(competitor, kind, midpoint))))

    def apply_training(
        self,
        competitor: Competitor,
        career: CareerRecord,
        kind_name: str,
        rng: random.Random,
        scheduler: EventScheduler | None = None,
    ) -> TrainingResult:
        kind = self.tables.training_kind(kind_name)

        if career.finished:
            error = CareerOver(CAREER_OVER, "The career is over; no turns remain.", {"turn": career.turn})
            return TrainingResult(success=False, kind=kind.name, turn_after=career.turn, error=error)

        energy = competitor.condition.energy
        if kind.cost > 0 and energy < kind.cost:
            error = InsufficientResource(
                INSUFFICIENT_ENERGY,
                f"Not enough energy for {kind.name} training ({energy}/{kind.cost}).",
                {"required": kind.cost, "available": energy, "suggestions": self.tables.recovery_kinds()},
            )
            logger.debug("training %s rejected: energy %d < %d", kind.name, energy, kind.cost)
            return TrainingResult(success=False, kind=kind.name, turn_after=career.turn, error=error)

        # Gains use the form the horse walked in with.
        mood_before = competitor.condition.mood
        stat_delta: dict[str, int] = {}
        messages: list[str] = []
        health_delta = 0

        energy_delta = competitor.change_energy(kind.recover - kind.cost)

        if kind.trains_stat:
            stat = kind.stat or ""
            factor = rng.uniform(*TRAINING_RANDOM_RANGE)
            raw = self.raw_gain(competitor, kind, factor, mood=mood_before)
            gain = max(1, int(round(raw)))
            applied = competitor.change_stat(stat, gain)
            stat_delta[stat] = applied
            if applied < gain:
                messages.append(f"{stat.capitalize()} is at the {competitor.breed} limit.")
            messages.append(f"{stat.capitalize()} +{applied}")
        elif kind.name == "rest":
            if rng.random() < REST_HEALTH_CHANCE:
                health_delta = competitor.change_health(REST_HEALTH_GAIN)
                if health_delta:
                    messages.append(f"Health +{health_delta}")
        bond_delta = competitor.change_bond(kind.bond)

        competitor.refresh_mood()
        turn_after = career.advance_turn()
        if kind.trains_stat:
            career.training_sessions += 1

        event_due = scheduler.is_event_due(turn_after) if scheduler is not None else None
        if event_due is not None:
            messages.append("Race day is here.")
        logger.debug(
            "training %s: stats=%s energy=%+d bond=%+d turn=%d event=%s",
            kind.name,
            stat_delta,
            energy_delta,
            bond_delta,
            turn_after,
            event_due,
        )
        return TrainingResult(
            success=True,
            kind=kind.name,
            stat_delta=stat_delta,
            energy_delta=energy_delta,
            bond_delta=bond_delta,
            health_delta=health_delta,
            turn_after=turn_after,
            event_due=event_due,
            messages=tuple(messages),
        )

    def recommendations(
        self,
        competitor: Competitor,
        career: CareerRecord,
        scheduler: EventScheduler | None = None,
    ) -> list[str]:
        tips: list[str] = []
        energy = competitor.condition.energy
        if energy < 30:
            tips.append("Energy is low. Rest before training again.")
        elif energy < 50:
            tips.append("Energy is getting low. Consider resting soon.")
        weakest = min(STAT_NAMES, key=competitor.stats.get)
        if competitor.stats.get(weakest) < 50:
            tips.append(f"{weakest.capitalize()} is the weakest stat ({competitor.stats.get(weakest)}).")
        if competitor.condition.mood <= Mood.TIRED:
            tips.append("Mood is poor. A media day lifts spirits without costing energy.")
        if scheduler is not None:
            upcoming = scheduler.next_event(career.turn)
            if upcoming is not None:
                event, turns_until = upcoming
                if turns_until <= 2:
                    focus = "stamina" if event.category in {"MEDIUM", "LONG"} else "speed"
                    tips.append(f"{event.name} in {turns_until} turn(s). Focus on {focus}.")
        return tips

from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import SECONDS_PER_LENGTH
from .engine import EventOutcome, Placing
from .errors import CAREER_OVER, TUTORIAL_STEP_MISMATCH, CareerOver, TutorialStepMismatch
from .models import CareerRecord, Competitor, Stats, Strategy
from .modifiers import ModifierTables
from .training import TrainingResult

logger = logging.getLogger(__name__)

TUTORIAL_HORSE = "Tutorial Star"
TUTORIAL_EVENT_ID = "tutorial-sprint-cup"


@dataclass(frozen=True, slots=True)
class TutorialStep:
    kind: str
    stat_gain: int
    energy_change: int
    instruction: str


TUTORIAL_STEPS: tuple[TutorialStep, ...] = (
    TutorialStep("speed", 8, -15, "Start with speed training. It costs 15 energy and builds raw pace."),
    TutorialStep("stamina", 6, -10, "Now stamina. Longer races reward a horse that can last."),
    TutorialStep("power", 7, -15, "Power helps at the break and when pushing through the pack."),
    TutorialStep("rest", 0, 30, "Energy is running low. Rest restores 30 energy."),
    TutorialStep("media", 0, 15, "A media day restores 15 energy and strengthens your bond."),
)

# name, rank, time
TUTORIAL_RESULTS: tuple[tuple[str, int, float], ...] = (
    (TUTORIAL_HORSE, 1, 58.42),
    ("Training Rival", 2, 58.48),
    ("Sprint Master", 3, 59.12),
)


class TutorialSession:
    """Scripted five-turn walkthrough with one fixed-result race."""

    def __init__(self, tables: ModifierTables | None = None) -> None:
        self.tables = tables or ModifierTables.from_config()
        self.competitor = Competitor(
            name=TUTORIAL_HORSE,
            stats=Stats(speed=25, stamina=25, power=25),
            strategy=Strategy.FRONT,
            is_player=True,
        )
        self.career = CareerRecord(max_turns=len(TUTORIAL_STEPS))
        self.step_index = 0
        self.outcome: EventOutcome | None = None

    @property
    def training_done(self) -> bool:
        return self.step_index >= len(TUTORIAL_STEPS)

    @property
    def current_step(self) -> TutorialStep | None:
        if self.training_done:
            return None
        return TUTORIAL_STEPS[self.step_index]

    def instruction(self) -> str:
        step = self.current_step
        if step is None:
            return "Training complete. Time for your first race."
        return f"Turn {self.step_index + 1}/{len(TUTORIAL_STEPS)}: {step.instruction}"

    def train(self, kind_name: str) -> TrainingResult:
        kind = self.tables.training_kind(kind_name)
        step = self.current_step
        if step is None:
            raise CareerOver(CAREER_OVER, "Tutorial training is finished.")
        if kind.name != step.kind:
            raise TutorialStepMismatch(
                TUTORIAL_STEP_MISMATCH,
                f"The coach asked for {step.kind} this turn, not {kind.name}.",
                {"expected": step.kind, "received": kind.name},
            )
        stat_delta: dict[str, int] = {}
        energy_delta = self.competitor.change_energy(step.energy_change)
        if kind.stat is not None:
            stat_delta[kind.stat] = self.competitor.change_stat(kind.stat, step.stat_gain)
        bond_delta = self.competitor.change_bond(kind.bond)
        self.step_index += 1
        turn_after = self.career.advance_turn()
        if kind.stat is not None:
            self.career.training_sessions += 1
        event_due = TUTORIAL_EVENT_ID if self.training_done else None
        logger.debug("tutorial step %d: %s", self.step_index, kind.name)
        return TrainingResult(
            success=True,
            kind=kind.name,
            stat_delta=stat_delta,
            energy_delta=energy_delta,
            bond_delta=bond_delta,
            turn_after=turn_after,
            event_due=event_due,
            messages=(self.instruction(),),
        )

    def run_race(self) -> EventOutcome:
        if not self.training_done:
            raise TutorialStepMismatch(
                TUTORIAL_STEP_MISMATCH,
                "Finish the tutorial training turns before racing.",
                {"expected": self.current_step.kind if self.current_step else None},
            )
        if self.outcome is not None:
            return self.outcome
        placings: list[Placing] = []
        winner_time = TUTORIAL_RESULTS[0][2]
        for name, rank, time in TUTORIAL_RESULTS:
            is_player = name == TUTORIAL_HORSE
            placings.append(
                Placing(
                    participant_id=self.competitor.competitor_id if is_player else name.lower().replace(" ", "-"),
                    name=name,
                    rank=rank,
                    time=time,
                    performance_score=round(100.0 - (time - winner_time) * 10.0, 2),
                    is_player=is_player,
                    strategy=Strategy.FRONT.value if is_player else Strategy.MID.value,
                    breed="Thoroughbred",
                    margin_lengths=round((time - winner_time) / SECONDS_PER_LENGTH, 1),
                )
            )
        self.outcome = EventOutcome(
            event_id=TUTORIAL_EVENT_ID,
            name="Tutorial Sprint Cup",
            category="SPRINT",
            surface="TURF",
            distance=1000,
            phase_names=("break", "early", "stretch"),
            placings=tuple(placings),
        )
        self.career.races_run += 1
        self.career.races_won += 1
        return self.outcome

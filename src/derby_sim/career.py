from __future__ import annotations

import logging
import random
from typing import Any, Callable

from .config import (
    CAREER_GRADE_WEIGHTS,
    CAREER_GRADES,
    DEFAULT_BREED,
    HORSE_COLORS,
    MAX_TURNS,
    ROSTER_SIZE,
)
from .engine import EventOutcome, FieldSpec, RaceSimulator, race_aftermath
from .errors import (
    BAD_FIELD,
    BAD_SCHEDULE,
    BAD_SNAPSHOT,
    INVALID_NAME,
    NO_ACTIVE_CAREER,
    SAVE_FAILED,
    SAVE_NOT_FOUND,
    UNKNOWN_ACTION,
    UNRECOGNIZED_INPUT,
    ConfigurationError,
    SnapshotError,
    UnrecognizedInput,
    UserRecoverableError,
)
from .flow import TRAINING_INPUTS, ActionResult, FlowMachine, FlowState, InputOutcome, Outcome
from .models import CareerRecord, Competitor, Stats, Strategy
from .modifiers import ModifierTables
from .names import HorseNameGenerator
from .pacing import RaceReplay
from .roster import RivalRoster
from .schedule import EventSchedule, EventScheduler, ScheduledEvent, build_default_schedule
from .snapshot import SnapshotParts, from_snapshot, rng_state_from_json, rng_state_to_json, to_snapshot
from .training import TrainingEngine, TrainingResult
from .tutorial import TutorialSession

logger = logging.getLogger(__name__)

SaveWriter = Callable[[str, dict[str, Any]], object]
SaveLoader = Callable[[str], "dict[str, Any] | None"]

STARTING_STATS = 20
NAME_LENGTH = (2, 30)
STRATEGY_TOKENS: dict[str, Strategy] = {
    "1": Strategy.FRONT,
    "2": Strategy.MID,
    "3": Strategy.LATE,
    "front": Strategy.FRONT,
    "mid": Strategy.MID,
    "late": Strategy.LATE,
}
RNG_STREAMS = ("training", "race", "roster")
STAT_DEVELOPMENT_TARGET = 150

ACHIEVEMENTS: tuple[tuple[str, str, str], ...] = (
    ("perfect_record", "Perfect Record", "Won every race of the career."),
    ("champion", "Champion", "Won 3 or more races."),
    ("elite_athlete", "Elite Athlete", "Reached 250 total stats."),
    ("best_friends", "Best Friends", "Finished with a bond of 90 or more."),
    ("training_fanatic", "Training Fanatic", "Completed 20 or more training sessions."),
)


def grade_for_score(score: float) -> str:
    for grade, threshold in CAREER_GRADES:
        if score >= threshold:
            return grade
    return CAREER_GRADES[-1][0]


def finish_points(rank: int, field_size: int) -> float:
    """100 for a win down to 0 for last place."""
    if field_size <= 1:
        return 100.0
    return max(0.0, 100.0 - (rank - 1) * 100.0 / (field_size - 1))


def grade_career(
    competitor: Competitor,
    career: CareerRecord,
    results_log: list[dict[str, Any]],
    starting_total: int,
    total_events: int,
) -> dict[str, Any]:
    finishes = [
        (int(row["rank"]), int(row.get("field_size") or 2)) for row in results_log if row.get("rank")
    ]
    race_performance = (
        sum(finish_points(rank, size) for rank, size in finishes) / len(finishes) if finishes else 0.0
    )
    placements = 100.0 * sum(1 for rank, _ in finishes if rank <= 3) / max(1, len(finishes))
    stat_development = min(100.0, 100.0 * max(0, competitor.stats.total - starting_total) / STAT_DEVELOPMENT_TARGET)
    components = {
        "race_performance": round(race_performance, 1),
        "placements": round(placements, 1),
        "stat_development": round(stat_development, 1),
        "bond": float(competitor.bond),
    }
    score = sum(components[key] * weight for key, weight in CAREER_GRADE_WEIGHTS.items())

    earned: list[dict[str, str]] = []
    checks = {
        "perfect_record": total_events > 0 and career.races_won >= total_events,
        "champion": career.races_won >= 3,
        "elite_athlete": competitor.stats.total >= 250,
        "best_friends": competitor.bond >= 90,
        "training_fanatic": career.training_sessions >= 20,
    }
    for key, title, description in ACHIEVEMENTS:
        if checks[key]:
            earned.append({"id": key, "title": title, "description": description})

    return {
        "name": competitor.name,
        "breed": competitor.breed,
        "grade": grade_for_score(score),
        "score": round(score, 1),
        "components": components,
        "races_run": career.races_run,
        "races_won": career.races_won,
        "training_sessions": career.training_sessions,
        "final_stats": competitor.stats.as_dict(),
        "stat_gain": competitor.stats.total - starting_total,
        "bond": competitor.bond,
        "achievements": earned,
        "results": list(results_log),
    }


class CareerSession:
    """One player's career: owns the flow machine and answers its actions."""

    def __init__(
        self,
        seed: int | None = None,
        tables: ModifierTables | None = None,
        schedule: EventSchedule | None = None,
        max_turns: int = MAX_TURNS,
        roster_size: int = ROSTER_SIZE,
        field_size: int | None = None,
        save_writer: SaveWriter | None = None,
        save_loader: SaveLoader | None = None,
        replay_frames: int = 60,
    ) -> None:
        self.seed = seed if seed is not None else random.Random().randrange(1 << 31)
        self.tables = tables or ModifierTables.from_config()
        self.max_turns = max_turns
        self.schedule = schedule or build_default_schedule(max_turns)
        if self.schedule.max_turns > max_turns:
            raise ConfigurationError(BAD_SCHEDULE, "Schedule runs past the career length.")
        self.roster_size = roster_size
        self.field_size = field_size
        self.save_writer = save_writer
        self.save_loader = save_loader
        self.replay_frames = replay_frames
        self.save_slot = "1"

        self.training_engine = TrainingEngine(self.tables)
        self.simulator = RaceSimulator(self.tables)
        self.machine = FlowMachine()
        self._rngs = self._derive_rngs(self.seed)
        self._names = HorseNameGenerator(seed=f"names:{self.seed}")
        self._clear_career()
        self.pending_breed = DEFAULT_BREED
        self.pending_specialization: str | None = None
        self.name_options: list[str] = []
        self.tutorial: TutorialSession | None = None
        self.saved_snapshot: dict[str, Any] | None = None

        self._register_handlers()
        self.machine.add_auto_transition(FlowState.TRAINING, self._career_end_check)
        self.machine.validate()

    def _derive_rngs(self, seed: int) -> dict[str, random.Random]:
        return {stream: random.Random(f"{seed}:{stream}") for stream in RNG_STREAMS}

    def _clear_career(self) -> None:
        self.competitor: Competitor | None = None
        self.career: CareerRecord | None = None
        self.scheduler: EventScheduler | None = None
        self.roster: RivalRoster | None = None
        self.last_training: TrainingResult | None = None
        self.current_event: ScheduledEvent | None = None
        self.current_field: list[Competitor] = []
        self.selected_strategy: Strategy | None = None
        self.last_outcome: EventOutcome | None = None
        self.last_messages: tuple[str, ...] = ()
        self.replay: RaceReplay | None = None
        self.results_log: list[dict[str, Any]] = []
        self.starting_total = STARTING_STATS * 3

    def _register_handlers(self) -> None:
        self.machine.register_many(
            {
                "new_career": self._on_new_career,
                "tutorial": self._on_tutorial,
                "suggest_names": self._on_suggest_names,
                "choose_name": self._on_choose_name,
                "cycle_breed": self._on_cycle_breed,
                "cycle_specialization": self._on_cycle_specialization,
                "create_character": self._on_create_character,
                "load_slot": self._on_load_slot,
                "save_game": self._on_save_game,
                "show_races": self._on_show_races,
                "continue": self._on_continue,
                "choose_strategy": self._on_choose_strategy,
                "finish_race": self._on_finish_race,
                "skip_race": self._on_skip_race,
                "start_tutorial": self._on_start_tutorial,
                "tutorial_train": self._on_tutorial_train,
                "run_tutorial_race": self._on_run_tutorial_race,
            }
        )
        for kind in sorted(set(TRAINING_INPUTS.values())):
            self.machine.register(kind, self._training_handler(kind))

    # Queries

    @property
    def state(self) -> FlowState:
        return self.machine.current_state

    @property
    def has_career(self) -> bool:
        return self.competitor is not None and self.career is not None

    def _require_career(self) -> tuple[Competitor, CareerRecord, EventScheduler]:
        if self.competitor is None or self.career is None or self.scheduler is None:
            raise UserRecoverableError(NO_ACTIVE_CAREER, "No career in progress.")
        return self.competitor, self.career, self.scheduler

    def _career_end_check(self) -> FlowState | None:
        if self.career is None or self.scheduler is None:
            return None
        if self.scheduler.all_events_completed() and self.career.finished:
            return FlowState.CAREER_COMPLETE
        return None

    def career_over(self) -> bool:
        if self.career is None or self.scheduler is None:
            return False
        if self.career.finished:
            return True
        # The final race on the final turn closes the career.
        return self.scheduler.all_events_completed() and self.career.turn >= self.career.max_turns

    def handle_input(self, raw: str) -> InputOutcome:
        outcome = self.machine.process_input(raw)
        self.last_messages = outcome.messages
        return outcome

    def status(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "state": self.state.value,
            "valid_inputs": self.machine.get_valid_inputs(),
            "accepts_text": self.machine.accepts_text(),
            "help": self.machine.describe(),
            "messages": list(self.last_messages),
            "seed": self.seed,
        }
        if self.competitor is not None and self.career is not None and self.scheduler is not None:
            payload["horse"] = self.competitor.summary()
            payload["career"] = self.career.as_dict()
            payload["events_completed"] = self.scheduler.completed
            payload["events_remaining"] = self.scheduler.remaining_events()
            payload["recommendations"] = self.training_engine.recommendations(
                self.competitor, self.career, self.scheduler
            )
            upcoming = self.scheduler.next_event(self.career.turn)
            payload["next_event"] = (
                {**upcoming[0].as_dict(), "turns_until": upcoming[1]} if upcoming is not None else None
            )
        if self.current_event is not None:
            payload["current_event"] = self.current_event.as_dict()
        if self.current_field:
            payload["field"] = [
                {"name": c.name, "breed": c.breed, "strategy": c.strategy.value, "total": c.stats.total}
                for c in self.current_field
            ]
        if self.state == FlowState.CHARACTER_CREATION:
            payload["pending_breed"] = self.pending_breed
            payload["pending_specialization"] = self.pending_specialization
            payload["name_options"] = list(self.name_options)
        if self.tutorial is not None and self.state in {
            FlowState.TUTORIAL,
            FlowState.TUTORIAL_TRAINING,
            FlowState.TUTORIAL_RACE,
            FlowState.TUTORIAL_COMPLETE,
        }:
            payload["tutorial"] = {
                "instruction": self.tutorial.instruction(),
                "horse": self.tutorial.competitor.summary(),
                "turn": self.tutorial.career.turn,
            }
        return payload

    def schedule_rows(self) -> list[dict[str, object]]:
        if self.scheduler is None:
            return self.schedule.as_list()
        turn = self.career.turn if self.career is not None else 1
        return self.scheduler.upcoming(turn)

    def career_summary(self) -> dict[str, Any]:
        competitor, career, scheduler = self._require_career()
        summary = grade_career(competitor, career, self.results_log, self.starting_total, scheduler.total)
        if self.roster is not None:
            summary["rival_leaders"] = self.roster.leaders()
        return summary

    # Career lifecycle

    def start_career(self, name: str, breed: str | None = None, specialization: str | None = None) -> Competitor:
        name = " ".join(name.split())
        low, high = NAME_LENGTH
        if not low <= len(name) <= high:
            raise UserRecoverableError(
                INVALID_NAME,
                f"Horse names must be {low}-{high} characters.",
                {"name": name},
            )
        breed = breed or self.pending_breed
        specialization = specialization or self.pending_specialization
        caps = self.tables.caps_for(breed)
        if specialization is not None:
            self.tables.specialization(specialization)
        self._clear_career()
        self._rngs = self._derive_rngs(self.seed)
        self.competitor = Competitor(
            name=name,
            breed=breed,
            stats=Stats(speed=STARTING_STATS, stamina=STARTING_STATS, power=STARTING_STATS),
            is_player=True,
            color=HORSE_COLORS[sum(ord(ch) for ch in name) % len(HORSE_COLORS)],
            stat_caps=caps,
            specialization=specialization,
        )
        self.starting_total = self.competitor.stats.total
        self.career = CareerRecord(max_turns=self.max_turns)
        self.scheduler = EventScheduler(self.schedule)
        self._names.reserve([name])
        self.roster = RivalRoster.generate(
            self.competitor.stats.total,
            self._rngs["roster"],
            size=self.roster_size,
            names=self._names,
            tables=self.tables,
        )
        self.name_options = []
        logger.info("new career: %s (%s, %s), seed %s", name, breed, specialization or "unspecialized", self.seed)
        return self.competitor

    def snapshot(self) -> dict[str, Any]:
        competitor, career, scheduler = self._require_career()
        return to_snapshot(
            competitor,
            career,
            scheduler.completed,
            flow_state=FlowState.TRAINING.value,
            results_log=self.results_log,
            rivals=self.roster.to_dict() if self.roster is not None else [],
            rng_state={stream: rng_state_to_json(rng) for stream, rng in self._rngs.items()},
            seed=self.seed,
        )

    def restore(self, raw: dict[str, Any], *, reset_flow: bool = True) -> SnapshotParts:
        """Replace the current career with a saved one. Nothing changes if the save is invalid."""
        parts = from_snapshot(raw, self.tables)
        if parts.events_completed > len(self.schedule):
            raise SnapshotError(BAD_SNAPSHOT, "Save has more completed races than the schedule holds.")
        if parts.career.max_turns != self.max_turns:
            logger.warning("save uses %d turns; session uses %d", parts.career.max_turns, self.max_turns)
        rngs = self._derive_rngs(parts.seed if parts.seed is not None else self.seed)
        for stream, state in parts.rng_state.items():
            if stream not in rngs:
                continue
            try:
                rngs[stream].setstate(rng_state_from_json(state))
            except (TypeError, ValueError) as exc:
                raise SnapshotError(BAD_SNAPSHOT, f"Random state for '{stream}' is invalid.") from exc
        roster = (
            RivalRoster.from_dict(parts.rivals, self.tables)
            if parts.rivals
            else RivalRoster.generate(parts.competitor.stats.total, rngs["roster"], self.roster_size, tables=self.tables)
        )

        self._clear_career()
        if parts.seed is not None:
            self.seed = parts.seed
        self._rngs = rngs
        self.competitor = parts.competitor
        self.career = parts.career
        self.scheduler = EventScheduler(self.schedule, completed=parts.events_completed)
        self.roster = roster
        self.results_log = list(parts.results_log)
        self.starting_total = STARTING_STATS * 3
        if reset_flow:
            self.machine.restore(FlowState.TRAINING)
            self.machine.run_auto_transitions()
        logger.info("restored career for %s at turn %d", self.competitor.name, self.career.turn)
        return parts

    # Handlers

    def _on_new_career(self, token: str, raw: str) -> ActionResult:
        self._clear_career()
        self.tutorial = None
        self.name_options = []
        return ActionResult.goto(FlowState.CHARACTER_CREATION, "Name your horse.")

    def _on_tutorial(self, token: str, raw: str) -> ActionResult:
        self.tutorial = TutorialSession(self.tables)
        return ActionResult.goto(FlowState.TUTORIAL, "Welcome to the tutorial.")

    def _on_suggest_names(self, token: str, raw: str) -> ActionResult:
        self.name_options = self._names.suggestions(6)
        lines = [f"{idx}. {name}" for idx, name in enumerate(self.name_options, start=1)]
        return ActionResult.stay(*lines, names=list(self.name_options))

    def _on_choose_name(self, token: str, raw: str) -> ActionResult:
        idx = int(token) - 1
        if not self.name_options or idx >= len(self.name_options):
            raise UnrecognizedInput(
                UNRECOGNIZED_INPUT,
                "Press g for name suggestions first, then pick one by number.",
                {"valid_inputs": self.machine.get_valid_inputs()},
            )
        return self._on_create_character(token, self.name_options[idx])

    def _on_cycle_breed(self, token: str, raw: str) -> ActionResult:
        breeds = self.tables.breed_names()
        idx = breeds.index(self.pending_breed) if self.pending_breed in breeds else -1
        self.pending_breed = breeds[(idx + 1) % len(breeds)]
        caps = self.tables.caps_for(self.pending_breed)
        return ActionResult.stay(
            f"Breed: {self.pending_breed} (caps {caps['speed']}/{caps['stamina']}/{caps['power']})",
            breed=self.pending_breed,
        )

    def _on_cycle_specialization(self, token: str, raw: str) -> ActionResult:
        options: list[str | None] = [None, *self.tables.specialization_names()]
        idx = options.index(self.pending_specialization) if self.pending_specialization in options else 0
        self.pending_specialization = options[(idx + 1) % len(options)]
        if self.pending_specialization is None:
            return ActionResult.stay("Specialization: none (all-rounder)", specialization=None)
        profile = self.tables.specialization(self.pending_specialization)
        low, high = profile.distance_range
        return ActionResult.stay(
            f"Specialization: {profile.name} (best at {low}-{high}m)",
            specialization=profile.name,
        )

    def _on_create_character(self, token: str, raw: str) -> ActionResult:
        competitor = self.start_career(raw)
        return ActionResult.goto(
            FlowState.TRAINING,
            f"{competitor.name} the {competitor.breed} joins the stable.",
        )

    def _on_load_slot(self, token: str, raw: str) -> ActionResult:
        if self.save_loader is None:
            raise UserRecoverableError(SAVE_NOT_FOUND, "Loading is not available.")
        slot = raw or token
        try:
            payload = self.save_loader(slot)
            if payload is None:
                raise UserRecoverableError(SAVE_NOT_FOUND, f"No save in slot '{slot}'.", {"slot": slot})
            self.restore(payload, reset_flow=False)
        except ConfigurationError as exc:
            logger.warning("failed to load slot %s: %s", slot, exc)
            raise UserRecoverableError(exc.code, exc.message, exc.details) from exc
        self.save_slot = slot
        competitor = self.competitor
        return ActionResult.goto(
            FlowState.TRAINING,
            f"{competitor.name if competitor else 'Career'} loaded from slot {slot}.",
        )

    def _on_save_game(self, token: str, raw: str) -> ActionResult:
        snapshot = self.snapshot()
        if self.save_writer is None:
            self.saved_snapshot = snapshot
            return ActionResult.stay("Career saved.")
        try:
            self.save_writer(self.save_slot, snapshot)
        except OSError as exc:
            logger.warning("save to slot %s failed: %s", self.save_slot, exc)
            raise UserRecoverableError(SAVE_FAILED, f"Could not save: {exc}") from exc
        self.saved_snapshot = snapshot
        return ActionResult.stay(f"Career saved to slot {self.save_slot}.")

    def _on_show_races(self, token: str, raw: str) -> ActionResult:
        lines = []
        for row in self.schedule_rows():
            status = "done" if row.get("completed") else f"turn {row['turn']}"
            lines.append(f"{row['name']} ({row['category']}, {row['surface']} {row['distance']}m) - {status}")
        return ActionResult.stay(*lines)

    def _training_handler(self, kind: str) -> Callable[[str, str], ActionResult]:
        def _handler(token: str, raw: str) -> ActionResult:
            return self._on_training(kind)

        return _handler

    def _on_training(self, kind: str) -> ActionResult:
        competitor, career, scheduler = self._require_career()
        result = self.training_engine.apply_training(
            competitor, career, kind, self._rngs["training"], scheduler
        )
        self.last_training = result
        if result.error is not None:
            return ActionResult.failed(result.error)
        if self.roster is not None:
            upcoming = scheduler.next_event(career.turn)
            self.roster.progress(career.turn, upcoming[0] if upcoming else None, self._rngs["roster"])
        payload = result.as_dict()
        if result.event_due is not None:
            self.current_event = scheduler.event(result.event_due)
            self.current_field = []
            return ActionResult(
                Outcome.EVENT_DUE,
                messages=(*result.messages, f"{self.current_event.name} is today!"),
                payload=payload,
            )
        if career.finished:
            return ActionResult(Outcome.CAREER_FINISHED, messages=result.messages, payload=payload)
        return ActionResult.stay(*result.messages, **payload)

    def _on_continue(self, token: str, raw: str) -> ActionResult:
        state = self.machine.current_state
        if state == FlowState.RACE_PREVIEW:
            if self.current_event is None or self.roster is None:
                raise UserRecoverableError(NO_ACTIVE_CAREER, "No race is scheduled.")
            size = self.field_size or self.current_event.field_size
            self.current_field = self.roster.select_field(size - 1, self._rngs["race"])
            names = [c.name for c in self.current_field]
            return ActionResult.goto(FlowState.FIELD_LINEUP, *names)
        if state == FlowState.FIELD_LINEUP:
            return ActionResult.goto(FlowState.STRATEGY_SELECT, "1 Front Runner / 2 Stalker / 3 Closer")
        if state == FlowState.RACE_RESULTS:
            self.current_event = None
            self.current_field = []
            if self.career_over():
                return ActionResult(Outcome.CAREER_FINISHED, messages=("The career is complete.",))
            return ActionResult.goto(FlowState.TRAINING)
        raise ConfigurationError(UNKNOWN_ACTION, f"'continue' has no meaning in {state.value}.")

    def _on_choose_strategy(self, token: str, raw: str) -> ActionResult:
        competitor, career, scheduler = self._require_career()
        if self.current_event is None:
            raise UserRecoverableError(NO_ACTIVE_CAREER, "No race is scheduled.")
        strategy = STRATEGY_TOKENS[token]
        self.selected_strategy = strategy
        competitor.strategy = strategy
        spec = FieldSpec(event=self.current_event, rivals=self.current_field, size=self.field_size)
        outcome = self.simulator.simulate_event(competitor, spec, strategy, self._rngs["race"])
        placing = outcome.player_placing
        if placing is None:
            raise ConfigurationError(BAD_FIELD, "Race finished without the player's horse.")
        aftermath = race_aftermath(competitor, career, placing)
        scheduler.mark_event_completed()
        if self.roster is not None:
            self.roster.record_outcome(outcome)
        self.last_outcome = outcome
        self.results_log.append(
            {
                "event_id": outcome.event_id,
                "name": outcome.name,
                "turn": career.turn,
                "rank": placing.rank,
                "field_size": outcome.field_size,
                "time": placing.time,
                "strategy": strategy.value,
                "winner": outcome.winner.name,
            }
        )
        self.replay = RaceReplay(outcome, frame_count=self.replay_frames)
        return ActionResult.goto(FlowState.RACE_RUNNING, *aftermath.messages, rank=placing.rank)

    def _on_finish_race(self, token: str, raw: str) -> ActionResult:
        return ActionResult.goto(FlowState.RACE_RESULTS)

    def _on_skip_race(self, token: str, raw: str) -> ActionResult:
        if self.replay is not None:
            self.replay.skip()
        return ActionResult.goto(FlowState.RACE_RESULTS)

    def _on_start_tutorial(self, token: str, raw: str) -> ActionResult:
        if self.tutorial is None:
            self.tutorial = TutorialSession(self.tables)
        return ActionResult.goto(FlowState.TUTORIAL_TRAINING, self.tutorial.instruction())

    def _on_tutorial_train(self, token: str, raw: str) -> ActionResult:
        if self.tutorial is None:
            raise UserRecoverableError(NO_ACTIVE_CAREER, "The tutorial has not started.")
        result = self.tutorial.train(TRAINING_INPUTS[token])
        if result.event_due is not None:
            return ActionResult.goto(FlowState.TUTORIAL_RACE, *result.messages)
        return ActionResult.stay(*result.messages)

    def _on_run_tutorial_race(self, token: str, raw: str) -> ActionResult:
        if self.tutorial is None:
            raise UserRecoverableError(NO_ACTIVE_CAREER, "The tutorial has not started.")
        outcome = self.tutorial.run_race()
        self.last_outcome = outcome
        self.replay = RaceReplay(outcome, frame_count=self.replay_frames)
        return ActionResult.goto(
            FlowState.TUTORIAL_COMPLETE,
            f"{outcome.winner.name} wins the {outcome.name} in {outcome.winner.time:.2f}s!",
        )

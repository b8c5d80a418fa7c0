from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping

from .errors import (
    AUTO_TRANSITION_LOOP,
    BAD_STATE_TABLE,
    INVALID_TRANSITION,
    UNKNOWN_ACTION,
    UNRECOGNIZED_INPUT,
    ConfigurationError,
    InvalidTransition,
    UnrecognizedInput,
    UserRecoverableError,
)

logger = logging.getLogger(__name__)

CONFIRM = "confirm"
TEXT_INPUT = "text"
CONFIRM_TOKENS = frozenset({"", "enter", "confirm", "\n", "\r"})
MAX_AUTO_CHAIN = 3


class FlowState(str, Enum):
    MAIN_MENU = "main_menu"
    CHARACTER_CREATION = "character_creation"
    LOAD_GAME = "load_game"
    TRAINING = "training"
    RACE_PREVIEW = "race_preview"
    FIELD_LINEUP = "field_lineup"
    STRATEGY_SELECT = "strategy_select"
    RACE_RUNNING = "race_running"
    RACE_RESULTS = "race_results"
    CAREER_COMPLETE = "career_complete"
    HELP = "help"
    TUTORIAL = "tutorial"
    TUTORIAL_TRAINING = "tutorial_training"
    TUTORIAL_RACE = "tutorial_race"
    TUTORIAL_COMPLETE = "tutorial_complete"


class Outcome(Enum):
    STAY = "stay"
    GOTO = "goto"
    EVENT_DUE = "event_due"
    CAREER_FINISHED = "career_finished"
    BACK = "back"
    QUIT = "quit"


@dataclass(frozen=True, slots=True)
class StateSpec:
    transitions: frozenset[FlowState]
    inputs: Mapping[str, str]
    accepts_confirm: bool = False
    description: str = ""
    back_enabled: bool = False


@dataclass(frozen=True, slots=True)
class ActionResult:
    outcome: Outcome = Outcome.STAY
    target: FlowState | None = None
    error: UserRecoverableError | None = None
    messages: tuple[str, ...] = ()
    payload: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def stay(cls, *messages: str, **payload: Any) -> "ActionResult":
        return cls(Outcome.STAY, messages=messages, payload=payload)

    @classmethod
    def goto(cls, target: FlowState, *messages: str, **payload: Any) -> "ActionResult":
        return cls(Outcome.GOTO, target=target, messages=messages, payload=payload)

    @classmethod
    def failed(cls, error: UserRecoverableError) -> "ActionResult":
        return cls(Outcome.STAY, error=error, messages=(error.message,))


@dataclass(frozen=True, slots=True)
class InputOutcome:
    accepted: bool
    state: FlowState
    previous_state: FlowState
    action: str | None = None
    result: ActionResult | None = None
    error: UserRecoverableError | None = None
    valid_inputs: tuple[str, ...] = ()

    @property
    def changed_state(self) -> bool:
        return self.state != self.previous_state

    @property
    def messages(self) -> tuple[str, ...]:
        if self.result is not None:
            return self.result.messages
        if self.error is not None:
            return (self.error.message,)
        return ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "state": self.state.value,
            "previous_state": self.previous_state.value,
            "action": self.action,
            "messages": list(self.messages),
            "error": self.error.to_payload() if self.error is not None else None,
            "valid_inputs": list(self.valid_inputs),
            "payload": dict(self.result.payload) if self.result is not None else {},
        }


def _spec(
    transitions: set[FlowState],
    inputs: dict[str, str],
    *,
    accepts_confirm: bool = False,
    description: str = "",
    back_enabled: bool = False,
) -> StateSpec:
    return StateSpec(
        transitions=frozenset(transitions),
        inputs=MappingProxyType(inputs),
        accepts_confirm=accepts_confirm,
        description=description,
        back_enabled=back_enabled,
    )


TRAINING_INPUTS = {
    "1": "speed",
    "2": "stamina",
    "3": "power",
    "4": "rest",
    "5": "media",
    "speed": "speed",
    "stamina": "stamina",
    "power": "power",
    "rest": "rest",
    "media": "media",
    "social": "media",
}

S = FlowState
STATE_TABLE: Mapping[FlowState, StateSpec] = MappingProxyType(
    {
        S.MAIN_MENU: _spec(
            {S.CHARACTER_CREATION, S.LOAD_GAME, S.HELP, S.TUTORIAL},
            {"1": "new_career", "2": "load_game", "3": "help", "h": "help", "t": "tutorial", "q": "quit"},
            description="Start a new career, load a saved one, or learn the ropes.",
        ),
        S.CHARACTER_CREATION: _spec(
            {S.TRAINING, S.MAIN_MENU},
            {
                TEXT_INPUT: "create_character",
                "g": "suggest_names",
                **{str(n): "choose_name" for n in range(1, 7)},
                "b": "cycle_breed",
                "p": "cycle_specialization",
                "q": "main_menu",
                "back": "main_menu",
            },
            description="Type a name, g for suggestions, 1-6 to pick one, b to change breed, p for specialization.",
            back_enabled=True,
        ),
        S.LOAD_GAME: _spec(
            {S.TRAINING, S.MAIN_MENU},
            {
                TEXT_INPUT: "load_slot",
                **{str(n): "load_slot" for n in range(1, 10)},
                "q": "main_menu",
                "back": "main_menu",
            },
            description="Enter a save slot number or name.",
            back_enabled=True,
        ),
        S.TRAINING: _spec(
            {S.RACE_PREVIEW, S.HELP, S.MAIN_MENU, S.CAREER_COMPLETE},
            {**TRAINING_INPUTS, "s": "save_game", "r": "show_races", "h": "help", "q": "main_menu"},
            description="Choose one training per turn. Races arrive on scheduled turns.",
        ),
        S.RACE_PREVIEW: _spec(
            {S.FIELD_LINEUP},
            {CONFIRM: "continue"},
            accepts_confirm=True,
            description="Race day. Press enter to meet the field.",
        ),
        S.FIELD_LINEUP: _spec(
            {S.STRATEGY_SELECT},
            {CONFIRM: "continue"},
            accepts_confirm=True,
            description="The runners line up. Press enter to pick a strategy.",
        ),
        S.STRATEGY_SELECT: _spec(
            {S.RACE_RUNNING},
            {
                "1": "choose_strategy",
                "2": "choose_strategy",
                "3": "choose_strategy",
                "front": "choose_strategy",
                "mid": "choose_strategy",
                "late": "choose_strategy",
            },
            description="1 front runner, 2 stalker, 3 closer.",
        ),
        S.RACE_RUNNING: _spec(
            {S.RACE_RESULTS},
            {CONFIRM: "finish_race", "s": "skip_race", "skip": "skip_race"},
            accepts_confirm=True,
            description="They're off. Press enter or s to skip to the finish.",
        ),
        S.RACE_RESULTS: _spec(
            {S.TRAINING, S.CAREER_COMPLETE},
            {CONFIRM: "continue"},
            accepts_confirm=True,
            description="Official results. Press enter to continue.",
        ),
        S.CAREER_COMPLETE: _spec(
            {S.CHARACTER_CREATION, S.MAIN_MENU},
            {CONFIRM: "new_career", "q": "main_menu"},
            accepts_confirm=True,
            description="Career over. Press enter for a new horse or q for the menu.",
        ),
        S.HELP: _spec(
            {S.TRAINING, S.MAIN_MENU},
            {CONFIRM: "back", "q": "main_menu"},
            accepts_confirm=True,
            description="Train on turns, race on schedule, finish with a graded summary.",
            back_enabled=True,
        ),
        S.TUTORIAL: _spec(
            {S.TUTORIAL_TRAINING, S.MAIN_MENU},
            {CONFIRM: "start_tutorial", "q": "main_menu"},
            accepts_confirm=True,
            description="A guided five-turn walkthrough with one practice race.",
        ),
        S.TUTORIAL_TRAINING: _spec(
            {S.TUTORIAL_RACE, S.MAIN_MENU},
            {**{token: "tutorial_train" for token in TRAINING_INPUTS}, "q": "main_menu"},
            description="Follow the coach's instruction for each turn.",
        ),
        S.TUTORIAL_RACE: _spec(
            {S.TUTORIAL_COMPLETE},
            {CONFIRM: "run_tutorial_race"},
            accepts_confirm=True,
            description="Your first race. Press enter to run it.",
        ),
        S.TUTORIAL_COMPLETE: _spec(
            {S.CHARACTER_CREATION, S.MAIN_MENU},
            {CONFIRM: "new_career", "q": "main_menu"},
            accepts_confirm=True,
            description="Tutorial finished. Press enter to start a real career.",
        ),
    }
)
del S

BUILTIN_ACTIONS = frozenset({"back", "quit"})
# Oldest screens fall off once the back stack is full.
HISTORY_LIMIT = 32

Handler = Callable[[str, str], "ActionResult | None"]
AutoTransition = Callable[[], "FlowState | None"]
Listener = Callable[[FlowState, FlowState], None]


def normalize_token(raw: str, accepts_confirm: bool) -> str:
    token = raw.strip().casefold()
    if accepts_confirm and (raw in CONFIRM_TOKENS or token in CONFIRM_TOKENS):
        return CONFIRM
    return token


class FlowMachine:
    """Table-driven screen flow with input dispatch and auto-transitions."""

    def __init__(
        self,
        table: Mapping[FlowState, StateSpec] = STATE_TABLE,
        initial: FlowState = FlowState.MAIN_MENU,
    ) -> None:
        self.table = table
        self.initial = initial
        self._current = initial
        self._history: deque[FlowState] = deque(maxlen=HISTORY_LIMIT)
        self._handlers: dict[str, Handler] = {}
        self._auto: dict[FlowState, list[AutoTransition]] = {}
        self._listeners: list[Listener] = []
        self.quit_requested = False
        self._check_table()

    def _check_table(self) -> None:
        for state, spec in self.table.items():
            unknown = [target for target in spec.transitions if target not in self.table]
            if unknown:
                raise ConfigurationError(
                    BAD_STATE_TABLE,
                    f"{state.value} transitions to unknown states {sorted(t.value for t in unknown)}.",
                )
        if self.initial not in self.table:
            raise ConfigurationError(BAD_STATE_TABLE, f"Initial state {self.initial.value} is not in the table.")

    @property
    def current_state(self) -> FlowState:
        return self._current

    @property
    def history(self) -> tuple[FlowState, ...]:
        return tuple(self._history)

    def get_current_state(self) -> FlowState:
        return self._current

    def get_allowed_transitions(self, state: FlowState | None = None) -> list[FlowState]:
        spec = self.table[state or self._current]
        return sorted(spec.transitions, key=lambda s: s.value)

    def get_valid_inputs(self, state: FlowState | None = None) -> list[str]:
        spec = self.table[state or self._current]
        return sorted(token for token in spec.inputs if token != TEXT_INPUT)

    def accepts_text(self, state: FlowState | None = None) -> bool:
        return TEXT_INPUT in self.table[state or self._current].inputs

    def describe(self, state: FlowState | None = None) -> str:
        target = state or self._current
        spec = self.table[target]
        lines = [f"[{target.value}] {spec.description}".rstrip()]
        tokens = [t for t in self.get_valid_inputs(target) if t != CONFIRM]
        if tokens:
            lines.append("Inputs: " + ", ".join(tokens))
        if self.accepts_text(target):
            lines.append("Free text is accepted here.")
        if spec.accepts_confirm:
            lines.append("Press enter to continue.")
        if spec.back_enabled:
            lines.append("You can go back from here.")
        return "\n".join(lines)

    def register(self, action_id: str, handler: Handler) -> None:
        self._handlers[action_id] = handler

    def register_many(self, handlers: Mapping[str, Handler]) -> None:
        for action_id, handler in handlers.items():
            self.register(action_id, handler)

    def add_auto_transition(self, state: FlowState, predicate: AutoTransition) -> None:
        self._auto.setdefault(state, []).append(predicate)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _is_navigation(self, action_id: str) -> bool:
        try:
            FlowState(action_id)
        except ValueError:
            return False
        return True

    def validate(self) -> None:
        """Check every action in the table has somewhere to go."""
        missing: list[str] = []
        for state, spec in self.table.items():
            for token, action_id in spec.inputs.items():
                if action_id in self._handlers or action_id in BUILTIN_ACTIONS:
                    continue
                if self._is_navigation(action_id):
                    continue
                missing.append(f"{state.value}:{token}->{action_id}")
        if missing:
            raise ConfigurationError(UNKNOWN_ACTION, "Actions without handlers: " + ", ".join(sorted(missing)))

    def reset(self, state: FlowState | None = None) -> None:
        self._current = state or self.initial
        self._history.clear()
        self.quit_requested = False

    def restore(self, state: FlowState) -> None:
        """Jump straight to `state`, e.g. after loading a save. History is cleared."""
        if state not in self.table:
            raise ConfigurationError(BAD_STATE_TABLE, f"Unknown state {state!r}.")
        previous = self._current
        self._current = state
        self._history.clear()
        self._notify(previous, state)

    def _notify(self, previous: FlowState, current: FlowState) -> None:
        for listener in self._listeners:
            listener(previous, current)

    def _move(self, target: FlowState, *, record_history: bool = True) -> None:
        spec = self.table[self._current]
        if target not in spec.transitions:
            allowed = [s.value for s in self.get_allowed_transitions()]
            logger.warning("rejected transition %s -> %s", self._current.value, target.value)
            raise InvalidTransition(
                INVALID_TRANSITION,
                f"Cannot move from {self._current.value} to {target.value}.",
                {"from": self._current.value, "to": target.value, "allowed": allowed},
            )
        previous = self._current
        if record_history:
            self._history.append(previous)
        self._current = target
        logger.debug("transition %s -> %s", previous.value, target.value)
        self._notify(previous, target)

    def transition_to(self, target: FlowState) -> FlowState:
        self._move(target)
        self.run_auto_transitions()
        return self._current

    def run_auto_transitions(self) -> FlowState:
        for _hop in range(MAX_AUTO_CHAIN + 1):
            target = None
            for predicate in self._auto.get(self._current, []):
                target = predicate()
                if target is not None and target != self._current:
                    break
                target = None
            if target is None:
                return self._current
            if _hop == MAX_AUTO_CHAIN:
                break
            logger.info("auto transition %s -> %s", self._current.value, target.value)
            self._move(target)
        raise ConfigurationError(
            AUTO_TRANSITION_LOOP,
            f"Auto transitions did not settle within {MAX_AUTO_CHAIN} hops (at {self._current.value}).",
        )

    def _unrecognized(self, token: str, reason: str | None = None) -> UnrecognizedInput:
        valid = self.get_valid_inputs()
        return UnrecognizedInput(
            UNRECOGNIZED_INPUT,
            reason or f"'{token}' is not a valid input here. Try: {', '.join(valid)}",
            {"token": token, "state": self._current.value, "valid_inputs": valid},
        )

    def _resolve_action(self, token: str) -> str | None:
        spec = self.table[self._current]
        action = spec.inputs.get(token)
        if action is not None:
            return action
        if TEXT_INPUT in spec.inputs and len(token) > 1 and token != CONFIRM:
            return spec.inputs[TEXT_INPUT]
        return None

    def _back_target(self) -> FlowState | None:
        allowed = self.table[self._current].transitions
        while self._history:
            candidate = self._history.pop()
            if candidate in allowed:
                return candidate
        return None

    def _target_for(self, result: ActionResult) -> FlowState | None:
        if result.outcome is Outcome.GOTO:
            return result.target
        if result.outcome is Outcome.EVENT_DUE:
            return FlowState.RACE_PREVIEW
        if result.outcome is Outcome.CAREER_FINISHED:
            return FlowState.CAREER_COMPLETE
        return None

    def _reject(self, previous: FlowState, action: str | None, error: UserRecoverableError) -> InputOutcome:
        return InputOutcome(
            accepted=False,
            state=self._current,
            previous_state=previous,
            action=action,
            error=error,
            valid_inputs=tuple(self.get_valid_inputs()),
        )

    def process_input(self, raw: str) -> InputOutcome:
        previous = self._current
        spec = self.table[previous]
        token = normalize_token(raw, spec.accepts_confirm)
        action = self._resolve_action(token)
        if action is None:
            logger.debug("unrecognized input %r in %s", token, previous.value)
            return self._reject(previous, None, self._unrecognized(token))

        if action == "quit":
            self.quit_requested = True
            result = ActionResult(Outcome.QUIT, messages=("Goodbye.",))
        elif action == "back" and action not in self._handlers:
            result = ActionResult(Outcome.BACK)
        elif action in self._handlers:
            try:
                result = self._handlers[action](token, raw.strip()) or ActionResult.stay()
            except UserRecoverableError as exc:
                result = ActionResult.failed(exc)
        elif self._is_navigation(action):
            result = ActionResult.goto(FlowState(action))
        else:
            raise ConfigurationError(UNKNOWN_ACTION, f"No handler registered for action '{action}'.")

        if result.error is not None:
            return InputOutcome(
                accepted=False,
                state=self._current,
                previous_state=previous,
                action=action,
                result=result,
                error=result.error,
                valid_inputs=tuple(self.get_valid_inputs()),
            )

        if result.outcome is Outcome.BACK:
            target = self._back_target()
            if target is None:
                return self._reject(previous, action, self._unrecognized(token, "There is nowhere to go back to."))
            self._move(target, record_history=False)
        else:
            target = self._target_for(result)
            if target is not None and target != self._current:
                self._move(target)
        self.run_auto_transitions()
        return InputOutcome(
            accepted=True,
            state=self._current,
            previous_state=previous,
            action=action,
            result=result,
            valid_inputs=tuple(self.get_valid_inputs()),
        )

    def find_path(self, source: FlowState, target: FlowState) -> list[FlowState] | None:
        """Shortest chain of legal transitions from `source` to `target`."""
        if source == target:
            return [source]
        queue: deque[list[FlowState]] = deque([[source]])
        seen = {source}
        while queue:
            path = queue.popleft()
            for nxt in sorted(self.table[path[-1]].transitions, key=lambda s: s.value):
                if nxt in seen:
                    continue
                if nxt == target:
                    return [*path, nxt]
                seen.add(nxt)
                queue.append([*path, nxt])
        return None

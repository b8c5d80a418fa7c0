from types import MappingProxyType

import pytest

from derby_sim.errors import (
    AUTO_TRANSITION_LOOP,
    UNKNOWN_ACTION,
    ConfigurationError,
    InvalidTransition,
    UnrecognizedInput,
)
from derby_sim.flow import (
    CONFIRM,
    HISTORY_LIMIT,
    STATE_TABLE,
    ActionResult,
    FlowMachine,
    FlowState,
    StateSpec,
    normalize_token,
)


def test_every_transition_target_is_a_known_state() -> None:
    for spec in STATE_TABLE.values():
        assert spec.transitions <= set(STATE_TABLE)


def test_illegal_transition_raises_and_keeps_state() -> None:
    machine = FlowMachine()
    with pytest.raises(InvalidTransition) as info:
        machine.transition_to(FlowState.RACE_RESULTS)
    assert machine.current_state == FlowState.MAIN_MENU
    assert "character_creation" in info.value.allowed


def test_unrecognized_input_lists_valid_tokens() -> None:
    machine = FlowMachine()
    outcome = machine.process_input("zzz")
    assert outcome.accepted is False
    assert isinstance(outcome.error, UnrecognizedInput)
    assert "1" in outcome.error.valid_inputs
    assert outcome.state == FlowState.MAIN_MENU
    assert not outcome.changed_state


def test_confirm_normalization_only_where_accepted() -> None:
    assert normalize_token("", accepts_confirm=True) == CONFIRM
    assert normalize_token("  Enter ", accepts_confirm=True) == CONFIRM
    assert normalize_token("", accepts_confirm=False) == ""
    assert normalize_token(" SPEED ", accepts_confirm=False) == "speed"


def test_navigation_actions_move_without_handlers() -> None:
    machine = FlowMachine()
    outcome = machine.process_input("h")
    assert outcome.accepted
    assert machine.current_state == FlowState.HELP


def test_back_returns_to_previous_state() -> None:
    machine = FlowMachine()
    machine.process_input("3")
    outcome = machine.process_input("")
    assert outcome.accepted
    assert machine.current_state == FlowState.MAIN_MENU


def test_quit_sets_flag() -> None:
    machine = FlowMachine()
    outcome = machine.process_input("Q")
    assert outcome.accepted
    assert machine.quit_requested


def test_handler_result_drives_transition() -> None:
    machine = FlowMachine()
    seen: list[tuple[str, str]] = []

    def new_career(token: str, raw: str) -> ActionResult:
        seen.append((token, raw))
        return ActionResult.goto(FlowState.CHARACTER_CREATION, "Name your horse.")

    machine.register("new_career", new_career)
    outcome = machine.process_input(" 1 ")
    assert seen == [("1", "1")]
    assert outcome.messages == ("Name your horse.",)
    assert machine.current_state == FlowState.CHARACTER_CREATION
    assert machine.history == (FlowState.MAIN_MENU,)


def test_free_text_goes_to_text_action() -> None:
    machine = FlowMachine()
    names: list[str] = []
    machine.register("new_career", lambda token, raw: ActionResult.goto(FlowState.CHARACTER_CREATION))
    machine.register("create_character", lambda token, raw: names.append(raw) or ActionResult.stay())
    machine.process_input("1")
    machine.process_input("Silver Comet")
    assert names == ["Silver Comet"]


def test_missing_handler_is_a_configuration_error() -> None:
    machine = FlowMachine()
    with pytest.raises(ConfigurationError) as info:
        machine.process_input("1")
    assert info.value.code == UNKNOWN_ACTION


def test_validate_reports_unhandled_actions() -> None:
    with pytest.raises(ConfigurationError):
        FlowMachine().validate()


def test_listeners_see_each_transition() -> None:
    machine = FlowMachine()
    moves: list[tuple[FlowState, FlowState]] = []
    machine.add_listener(lambda before, after: moves.append((before, after)))
    machine.process_input("h")
    assert moves == [(FlowState.MAIN_MENU, FlowState.HELP)]


def test_auto_transitions_are_bounded() -> None:
    table = MappingProxyType(
        {
            FlowState.MAIN_MENU: StateSpec(transitions=frozenset({FlowState.HELP}), inputs={}),
            FlowState.HELP: StateSpec(transitions=frozenset({FlowState.MAIN_MENU}), inputs={}),
        }
    )
    machine = FlowMachine(table=table)
    machine.add_auto_transition(FlowState.MAIN_MENU, lambda: FlowState.HELP)
    machine.add_auto_transition(FlowState.HELP, lambda: FlowState.MAIN_MENU)
    with pytest.raises(ConfigurationError) as info:
        machine.run_auto_transitions()
    assert info.value.code == AUTO_TRANSITION_LOOP


def test_auto_transition_fires_after_input() -> None:
    machine = FlowMachine()
    machine.add_auto_transition(FlowState.HELP, lambda: FlowState.MAIN_MENU)
    machine.process_input("h")
    assert machine.current_state == FlowState.MAIN_MENU


def test_find_path_uses_legal_transitions() -> None:
    machine = FlowMachine()
    path = machine.find_path(FlowState.MAIN_MENU, FlowState.CAREER_COMPLETE)
    assert path is not None
    assert path[0] == FlowState.MAIN_MENU
    assert path[-1] == FlowState.CAREER_COMPLETE
    assert len(path) == 4
    for source, target in zip(path, path[1:]):
        assert target in machine.get_allowed_transitions(source)


def test_describe_mentions_inputs() -> None:
    text = FlowMachine().describe(FlowState.TRAINING)
    assert text.startswith("[training]")
    assert "speed" in text


@pytest.mark.parametrize("state", list(STATE_TABLE))
def test_transitions_outside_table_are_refused(state: FlowState) -> None:
    spec = STATE_TABLE[state]
    for target in FlowState:
        if target in spec.transitions:
            continue
        machine = FlowMachine()
        machine.restore(state)
        with pytest.raises(InvalidTransition):
            machine.transition_to(target)
        assert machine.get_current_state() == state


@pytest.mark.parametrize("state", [FlowState.CHARACTER_CREATION, FlowState.LOAD_GAME])
def test_back_token_returns_to_main_menu(state: FlowState) -> None:
    machine = FlowMachine()
    machine.restore(state)
    assert "back" in machine.get_valid_inputs()
    assert "go back" in machine.describe()
    outcome = machine.process_input("back")
    assert outcome.accepted is True
    assert machine.get_current_state() == FlowState.MAIN_MENU


def test_history_keeps_only_recent_screens() -> None:
    machine = FlowMachine()
    machine.restore(FlowState.TRAINING)
    for _ in range(100):
        machine.transition_to(FlowState.HELP)
        machine.transition_to(FlowState.TRAINING)
    assert len(machine.history) == HISTORY_LIMIT

    machine.transition_to(FlowState.HELP)
    assert machine.process_input("").accepted is True
    assert machine.get_current_state() == FlowState.TRAINING

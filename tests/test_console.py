from derby_sim.app import build_session, format_schedule, main, run_console
from derby_sim.flow import FlowState


def _scripted(lines: list[str]):
    pending = list(lines)

    def _input(prompt: str) -> str:
        if not pending:
            raise EOFError
        return pending.pop(0)

    return _input


def test_console_plays_through_first_race(tmp_path) -> None:
    printed: list[str] = []
    session = build_session(seed=14, saves_dir=tmp_path)
    tokens = ["1", "Console Colt", "speed", "stamina", "power", "", "", "1", "", ""]

    run_console(session, input_fn=_scripted(tokens), output_fn=printed.append)

    assert session.state == FlowState.TRAINING
    assert session.career.races_run == 1
    assert any(line.startswith("Finish: ") for line in printed)
    assert any("Console Colt" in line for line in printed)


def test_console_stops_on_quit(tmp_path) -> None:
    session = build_session(seed=1, saves_dir=tmp_path)
    run_console(session, input_fn=_scripted(["q", "1"]), output_fn=lambda line: None)
    assert session.machine.quit_requested
    assert session.state == FlowState.MAIN_MENU


def test_schedule_table_lists_every_race() -> None:
    session = build_session(seed=2)
    text = format_schedule(session.schedule_rows())
    for name in ("Maiden Sprint", "Mile Championship", "Dirt Stakes", "Turf Cup Final"):
        assert name in text


def test_main_builds_seeded_session(tmp_path, monkeypatch) -> None:
    started = []
    monkeypatch.setattr("derby_sim.app.run_console", started.append)
    main(["--seed", "3", "--saves", str(tmp_path)])
    assert len(started) == 1
    assert started[0].seed == 3
    assert started[0].save_loader is not None

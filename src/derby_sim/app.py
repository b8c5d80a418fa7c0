from __future__ import annotations

import argparse
import json
import logging
import re
import shutil
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence

from .career import CareerSession
from .engine import EventOutcome
from .errors import BAD_SNAPSHOT, INVALID_NAME, SnapshotError, UserRecoverableError
from .flow import FlowState
from .models import Competitor
from .pacing import ReplayFrame
from .snapshot import SAVE_VERSION, read_save_version

logger = logging.getLogger(__name__)

SLOT_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,32}$")


class SaveStore:
    """Save slots as JSON files under one directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.last_load_error: str | None = None

    def path_for(self, slot: str) -> Path:
        slot = slot.strip()
        if not SLOT_PATTERN.match(slot):
            raise UserRecoverableError(
                INVALID_NAME,
                "Slot names use letters, digits, '-' or '_' (max 32).",
                {"slot": slot},
            )
        return self.root / f"slot_{slot}.json"

    def slots(self) -> list[dict[str, Any]]:
        if not self.root.exists():
            return []
        rows: list[dict[str, Any]] = []
        for path in sorted(self.root.glob("slot_*.json")):
            slot = path.stem[len("slot_"):]
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("unreadable save %s: %s", path.name, exc)
                rows.append({"slot": slot, "valid": False})
                continue
            if not isinstance(raw, dict):
                rows.append({"slot": slot, "valid": False})
                continue
            character = raw.get("character") if isinstance(raw.get("character"), dict) else {}
            rows.append(
                {
                    "slot": slot,
                    "valid": True,
                    "save_version": raw.get("save_version", 1),
                    "name": raw.get("name") or character.get("name"),
                    "turn": raw.get("turn"),
                    "races_won": raw.get("races_won"),
                }
            )
        return rows

    def load(self, slot: str) -> dict[str, Any] | None:
        path = self.path_for(slot)
        self.last_load_error = None
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            self.last_load_error = f"Failed to load slot {slot} ({exc})."
            raise SnapshotError(BAD_SNAPSHOT, self.last_load_error, {"slot": slot}) from exc
        if not isinstance(raw, dict):
            self.last_load_error = f"Slot {slot} has invalid format."
            raise SnapshotError(BAD_SNAPSHOT, self.last_load_error, {"slot": slot})
        try:
            version = read_save_version(raw)
        except SnapshotError as exc:
            self.last_load_error = f"Slot {slot}: {exc.message}"
            raise
        if version > SAVE_VERSION:
            self.last_load_error = f"Unsupported save version {version}; app supports up to {SAVE_VERSION}."
        return raw

    def save(self, slot: str, payload: dict[str, Any]) -> Path:
        path = self.path_for(slot)
        self.root.mkdir(parents=True, exist_ok=True)
        self._write_json_with_backup(path, payload)
        logger.info("saved slot %s", slot)
        return path

    def delete(self, slot: str) -> bool:
        path = self.path_for(slot)
        if not path.exists():
            return False
        path.unlink()
        return True

    def _write_json_with_backup(self, path: Path, payload: Any, *, with_backup: bool = True) -> None:
        if with_backup and path.exists():
            backup = path.with_suffix(path.suffix + ".bak")
            try:
                shutil.copy2(path, backup)
            except OSError as exc:
                logger.warning("could not back up %s: %s", path.name, exc)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def build_session(
    seed: int | None = None,
    saves_dir: str | Path | None = None,
    **options: Any,
) -> CareerSession:
    if saves_dir is None:
        return CareerSession(seed=seed, **options)
    store = SaveStore(saves_dir)
    return CareerSession(seed=seed, save_writer=store.save, save_loader=store.load, **options)


def format_horse(horse: Competitor) -> str:
    stats = horse.stats
    cond = horse.condition
    return "\n".join(
        [
            f"{horse.name} ({horse.breed}, {horse.specialization or 'all-rounder'}, {horse.strategy.label})",
            f"  SPD {stats.speed:>3}/{horse.cap('speed'):<3} STA {stats.stamina:>3}/{horse.cap('stamina'):<3}"
            f" POW {stats.power:>3}/{horse.cap('power'):<3}",
            f"  Energy {cond.energy:>3}  Health {cond.health:>3}  Mood {cond.mood.label:<9} Bond {horse.bond:>3}",
        ]
    )


def format_status(session: CareerSession) -> str:
    if session.competitor is None or session.career is None:
        return session.machine.describe()
    career = session.career
    lines = [
        f"Turn {min(career.turn, career.max_turns)}/{career.max_turns}"
        f"  Races {career.races_won}W/{career.races_run}R",
        format_horse(session.competitor),
    ]
    status = session.status()
    upcoming = status.get("next_event")
    if upcoming:
        lines.append(f"Next race: {upcoming['name']} in {upcoming['turns_until']} turn(s)")
    for tip in status.get("recommendations", []):
        lines.append(f"  * {tip}")
    return "\n".join(lines)


def format_schedule(rows: Iterable[dict[str, Any]]) -> str:
    lines = ["Turn Race                      Cat    Surface  Dist  Status"]
    for row in rows:
        status = "done" if row.get("completed") else f"in {row.get('turns_until', '?')}"
        lines.append(
            f"{row['turn']:>4} {row['name']:<25} {row['category']:<6} {row['surface']:<8}"
            f" {row['distance']:>4}m {status}"
        )
    return "\n".join(lines)


def format_lineup(field: Sequence[Competitor], player: Competitor | None = None) -> str:
    lines = ["Gate Horse                 Breed          Style         Total"]
    runners = [player, *field] if player is not None else list(field)
    for gate, horse in enumerate(runners, start=1):
        marker = "*" if horse.is_player else " "
        lines.append(
            f"{gate:>3}{marker} {horse.name:<21} {horse.breed:<14} {horse.strategy.label:<13} {horse.stats.total:>5}"
        )
    return "\n".join(lines)


def format_outcome(outcome: EventOutcome) -> str:
    lines = [
        f"{outcome.name} - {outcome.surface} {outcome.distance}m",
        "Pos Horse                 Time     Margin",
    ]
    for placing in outcome.placings:
        marker = "*" if placing.is_player else " "
        margin = "-" if placing.rank == 1 else f"{placing.margin_lengths:.1f}L"
        lines.append(f"{placing.rank:>3}{marker}{placing.name:<21} {placing.time:>7.2f}s {margin:>7}")
    return "\n".join(lines)


def format_summary(summary: dict[str, Any]) -> str:
    comps = summary["components"]
    lines = [
        f"Career complete: {summary['name']} ({summary['breed']})",
        f"Grade {summary['grade']}  Score {summary['score']:.1f}",
        f"Races {summary['races_won']}W/{summary['races_run']}R  Training sessions {summary['training_sessions']}",
        f"Race performance {comps['race_performance']:.1f}  Placements {comps['placements']:.1f}"
        f"  Development {comps['stat_development']:.1f}  Bond {comps['bond']:.0f}",
    ]
    for row in summary["results"]:
        lines.append(f"  {row['name']:<25} {row['rank']}/{row['field_size']}  {row['time']:.2f}s")
    for achievement in summary["achievements"]:
        lines.append(f"  [{achievement['title']}] {achievement['description']}")
    return "\n".join(lines)


def render(session: CareerSession) -> str:
    state = session.state
    if state == FlowState.TRAINING:
        return format_status(session)
    if state == FlowState.RACE_PREVIEW:
        return format_schedule(session.schedule_rows())
    if state == FlowState.FIELD_LINEUP:
        return format_lineup(session.current_field, session.competitor)
    if state == FlowState.RACE_RESULTS and session.last_outcome is not None:
        return format_outcome(session.last_outcome)
    if state == FlowState.CAREER_COMPLETE and session.has_career:
        return format_summary(session.career_summary())
    return session.machine.describe()


def run_console(
    session: CareerSession,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
    frame_delay: float = 0.0,
) -> CareerSession:
    def show_frame(frame: ReplayFrame) -> None:
        if frame.index % 15 == 0 and not frame.final:
            output_fn(" > ".join(frame.order[:3]))

    output_fn(render(session))
    while not session.machine.quit_requested:
        try:
            line = input_fn("> ")
        except EOFError:
            break
        outcome = session.handle_input(line)
        for message in outcome.messages:
            output_fn(message)
        if outcome.changed_state or session.state == FlowState.TRAINING:
            output_fn(render(session))
        if session.state == FlowState.RACE_RUNNING and session.replay is not None:
            last = session.replay.play(show_frame, frame_delay=frame_delay)
            output_fn("Finish: " + " > ".join(last.order[:3]))
    return session


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Turn-based horse racing career simulator")
    parser.add_argument("--seed", type=int, default=None, help="seed for a reproducible career")
    parser.add_argument("--saves", default="saves", help="directory for save slots")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(name)s %(levelname)s %(message)s")
    run_console(build_session(seed=args.seed, saves_dir=args.saves))


if __name__ == "__main__":
    main()

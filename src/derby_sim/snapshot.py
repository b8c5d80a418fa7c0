from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any

from .config import BOND_MAX, BOND_MIN, ENERGY_MAX, ENERGY_MIN, GROWTH_GRADES, HEALTH_MAX, HEALTH_MIN, STAT_MIN
from .errors import BAD_SNAPSHOT, OUT_OF_BOUNDS, UNSUPPORTED_SAVE_VERSION, ConfigurationError, SnapshotError
from .models import STAT_NAMES, CareerRecord, Competitor, Condition, Mood, Stats, Strategy
from .modifiers import ModifierTables

logger = logging.getLogger(__name__)

SAVE_VERSION = 2


@dataclass(slots=True)
class SnapshotParts:
    competitor: Competitor
    career: CareerRecord
    events_completed: int
    flow_state: str = "training"
    results_log: list[dict[str, Any]] = field(default_factory=list)
    rivals: list[dict[str, Any]] = field(default_factory=list)
    rng_state: dict[str, Any] = field(default_factory=dict)
    seed: int | None = None
    migrated_from: int | None = None


def rng_state_to_json(rng: random.Random) -> list[Any]:
    version, internal, gauss_next = rng.getstate()
    return [version, list(internal), gauss_next]


def rng_state_from_json(raw: Any) -> tuple[Any, ...]:
    if not isinstance(raw, (list, tuple)) or len(raw) != 3 or not isinstance(raw[1], (list, tuple)):
        raise SnapshotError(BAD_SNAPSHOT, "Random state payload is invalid.")
    try:
        return (int(raw[0]), tuple(int(v) for v in raw[1]), raw[2])
    except (TypeError, ValueError) as exc:
        raise SnapshotError(BAD_SNAPSHOT, "Random state payload is invalid.") from exc


def read_save_version(raw: dict[str, Any]) -> int:
    try:
        return int(raw.get("save_version", 1) or 1)
    except (TypeError, ValueError) as exc:
        raise SnapshotError(
            BAD_SNAPSHOT, "Save version is not a number.", {"save_version": raw.get("save_version")}
        ) from exc


def to_snapshot(
    competitor: Competitor,
    career: CareerRecord,
    events_completed: int,
    *,
    flow_state: str = "training",
    results_log: list[dict[str, Any]] | None = None,
    rivals: list[dict[str, Any]] | None = None,
    rng_state: dict[str, Any] | None = None,
    seed: int | None = None,
) -> dict[str, Any]:
    return {
        "save_version": SAVE_VERSION,
        "seed": seed,
        "flow_state": flow_state,
        "competitor_id": competitor.competitor_id,
        "name": competitor.name,
        "breed": competitor.breed,
        "specialization": competitor.specialization,
        "color": competitor.color,
        "speed": competitor.stats.speed,
        "stamina": competitor.stats.stamina,
        "power": competitor.stats.power,
        "energy": competitor.condition.energy,
        "health": competitor.condition.health,
        "mood": competitor.condition.mood.name.lower(),
        "bond": competitor.bond,
        "strategy": competitor.strategy.value,
        "growth": dict(competitor.growth),
        "turn": career.turn,
        "max_turns": career.max_turns,
        "races_run": career.races_run,
        "races_won": career.races_won,
        "training_sessions": career.training_sessions,
        "events_completed": events_completed,
        "results_log": list(results_log or []),
        "rivals": list(rivals or []),
        "rng_state": dict(rng_state or {}),
    }


def _grade_for(value: Any) -> str:
    if isinstance(value, str) and value.upper() in GROWTH_GRADES:
        return value.upper()
    try:
        numeric = float(value)
    except (TypeError, ValueError) as exc:
        raise SnapshotError(BAD_SNAPSHOT, f"Invalid growth value {value!r}.") from exc
    return min(GROWTH_GRADES, key=lambda grade: abs(GROWTH_GRADES[grade] - numeric))


def _migrate_v1(raw: dict[str, Any]) -> dict[str, Any]:
    """Flatten the nested `character` layout written by version 1 saves."""
    character = raw.get("character")
    if not isinstance(character, dict):
        raise SnapshotError(BAD_SNAPSHOT, "Legacy save has no character record.")
    stats = character.get("stats") if isinstance(character.get("stats"), dict) else {}
    condition = character.get("condition") if isinstance(character.get("condition"), dict) else {}
    career = character.get("career") if isinstance(character.get("career"), dict) else {}
    growth = character.get("growthRates") if isinstance(character.get("growthRates"), dict) else {}
    races_run = career.get("racesRun") or 0
    state = raw.get("gameState", "training")
    return {
        "save_version": SAVE_VERSION,
        "flow_state": state if isinstance(state, str) else "training",
        "competitor_id": character.get("id"),
        "name": character.get("name", ""),
        "breed": character.get("breed", "Thoroughbred"),
        "specialization": character.get("specialization"),
        "speed": stats.get("speed"),
        "stamina": stats.get("stamina"),
        "power": stats.get("power"),
        "energy": condition.get("energy", ENERGY_MAX),
        "health": condition.get("health", HEALTH_MAX),
        "mood": condition.get("mood"),
        "bond": character.get("friendship", 0),
        "growth": {stat: _grade_for(growth.get(stat, 1.0)) for stat in STAT_NAMES},
        "turn": career.get("turn", 1),
        "max_turns": career.get("maxTurns", 12),
        "races_run": races_run,
        "races_won": career.get("racesWon", 0),
        "training_sessions": career.get("totalTraining", 0),
        "events_completed": races_run,
    }


def _int_field(raw: dict[str, Any], key: str, low: int, high: int) -> int:
    value = raw.get(key)
    if isinstance(value, bool):
        raise SnapshotError(BAD_SNAPSHOT, f"Field '{key}' must be a number.")
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise SnapshotError(BAD_SNAPSHOT, f"Field '{key}' is missing or not a number.", {"field": key}) from exc
    if not low <= number <= high:
        raise SnapshotError(
            OUT_OF_BOUNDS,
            f"Field '{key}' = {number} outside [{low}, {high}].",
            {"field": key, "value": number, "low": low, "high": high},
        )
    return number


def from_snapshot(raw: Any, tables: ModifierTables | None = None) -> SnapshotParts:
    """Validate and rebuild a snapshot. Raises SnapshotError; never half-applies."""
    tables = tables or ModifierTables.from_config()
    if not isinstance(raw, dict):
        raise SnapshotError(BAD_SNAPSHOT, "Save payload has invalid format.")
    version = read_save_version(raw)
    if version > SAVE_VERSION:
        raise SnapshotError(
            UNSUPPORTED_SAVE_VERSION,
            f"Unsupported save version {version}; app supports up to {SAVE_VERSION}.",
            {"version": version, "supported": SAVE_VERSION},
        )
    migrated_from: int | None = None
    if version < SAVE_VERSION or "character" in raw:
        logger.warning("migrating save from version %d", version)
        raw = _migrate_v1(raw)
        migrated_from = version

    name = str(raw.get("name") or "").strip()
    if not name:
        raise SnapshotError(BAD_SNAPSHOT, "Save has no horse name.")
    breed = str(raw.get("breed") or "Thoroughbred")
    try:
        caps = tables.caps_for(breed)
    except ConfigurationError as exc:
        raise SnapshotError(BAD_SNAPSHOT, f"Save references unknown breed '{breed}'.") from exc
    specialization = raw.get("specialization")
    if specialization is not None:
        try:
            specialization = tables.specialization(str(specialization)).name
        except ConfigurationError as exc:
            raise SnapshotError(BAD_SNAPSHOT, f"Save references unknown specialization {specialization!r}.") from exc

    stats = Stats(**{stat: _int_field(raw, stat, STAT_MIN, caps[stat]) for stat in STAT_NAMES})
    energy = _int_field(raw, "energy", ENERGY_MIN, ENERGY_MAX)
    health = _int_field(raw, "health", HEALTH_MIN, HEALTH_MAX)
    bond = _int_field(raw, "bond", BOND_MIN, BOND_MAX)
    max_turns = _int_field(raw, "max_turns", 1, 999)
    turn = _int_field(raw, "turn", 1, max_turns + 1)
    races_run = _int_field(raw, "races_run", 0, max_turns)
    races_won = _int_field(raw, "races_won", 0, races_run)
    training_sessions = _int_field(raw, "training_sessions", 0, max_turns)
    events_completed = _int_field(raw, "events_completed", 0, max_turns)

    raw_growth = raw.get("growth") if isinstance(raw.get("growth"), dict) else {}
    growth = {stat: _grade_for(raw_growth.get(stat, "B")) for stat in STAT_NAMES}
    try:
        strategy = Strategy(str(raw.get("strategy") or "MID").upper())
    except ValueError as exc:
        raise SnapshotError(BAD_SNAPSHOT, f"Unknown strategy {raw.get('strategy')!r}.") from exc

    competitor = Competitor(
        name=name,
        breed=breed,
        stats=stats,
        condition=Condition(energy=energy, health=health),
        growth=growth,
        strategy=strategy,
        bond=bond,
        is_player=True,
        color=str(raw.get("color") or "bay"),
        stat_caps=caps,
        specialization=specialization,
        **({"competitor_id": str(raw["competitor_id"])} if raw.get("competitor_id") else {}),
    )
    mood = raw.get("mood")
    if mood:
        try:
            competitor.apply_narrative_mood(Mood.parse(mood))
        except (KeyError, ValueError):
            logger.warning("ignoring unknown saved mood %r", mood)

    results_log = raw.get("results_log", [])
    rivals = raw.get("rivals", [])
    rng_state = raw.get("rng_state", {})
    seed = raw.get("seed")
    return SnapshotParts(
        competitor=competitor,
        career=CareerRecord(
            turn=turn,
            max_turns=max_turns,
            races_run=races_run,
            races_won=races_won,
            training_sessions=training_sessions,
        ),
        events_completed=events_completed,
        flow_state=str(raw.get("flow_state") or "training"),
        results_log=[r for r in results_log if isinstance(r, dict)] if isinstance(results_log, list) else [],
        rivals=[r for r in rivals if isinstance(r, dict)] if isinstance(rivals, list) else [],
        rng_state=dict(rng_state) if isinstance(rng_state, dict) else {},
        seed=int(seed) if isinstance(seed, int) else None,
        migrated_from=migrated_from,
    )

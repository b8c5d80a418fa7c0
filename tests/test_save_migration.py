import json

import pytest

from derby_sim.app import SaveStore, build_session
from derby_sim.errors import BAD_SNAPSHOT, OUT_OF_BOUNDS, UNSUPPORTED_SAVE_VERSION, SnapshotError
from derby_sim.flow import FlowState
from derby_sim.models import CareerRecord, Competitor, Condition, Mood, Stats, Strategy
from derby_sim.roster import RivalRoster
from derby_sim.snapshot import SAVE_VERSION, from_snapshot, to_snapshot


def _snapshot(**overrides) -> dict:
    horse = Competitor(
        name="Saved Star",
        breed="Quarter Horse",
        stats=Stats(speed=61, stamina=44, power=58),
        condition=Condition(energy=55, health=90),
        growth={"speed": "A", "stamina": "C", "power": "B"},
        strategy=Strategy.FRONT,
        bond=42,
        is_player=True,
    )
    career = CareerRecord(turn=8, races_run=2, races_won=1, training_sessions=5)
    payload = to_snapshot(horse, career, 2, results_log=[{"event_id": "maiden-sprint", "rank": 1}], seed=77)
    payload.update(overrides)
    return payload


@pytest.mark.regression
def test_snapshot_round_trip_preserves_career() -> None:
    parts = from_snapshot(json.loads(json.dumps(_snapshot())))
    horse = parts.competitor
    assert horse.name == "Saved Star"
    assert horse.breed == "Quarter Horse"
    assert horse.stats.as_dict() == {"speed": 61, "stamina": 44, "power": 58}
    assert horse.condition.energy == 55
    assert horse.bond == 42
    assert horse.strategy == Strategy.FRONT
    assert horse.growth == {"speed": "A", "stamina": "C", "power": "B"}
    assert parts.career.turn == 8
    assert parts.career.races_won == 1
    assert parts.events_completed == 2
    assert parts.results_log[0]["rank"] == 1
    assert parts.seed == 77
    assert parts.migrated_from is None


@pytest.mark.regression
def test_snapshot_keeps_race_mood() -> None:
    payload = _snapshot(mood="great")
    parts = from_snapshot(payload)
    assert parts.competitor.condition.mood == Mood.GREAT


@pytest.mark.regression
def test_loads_legacy_nested_character_save() -> None:
    legacy = {
        "character": {
            "id": "legacy-1",
            "name": "Old Timer",
            "stats": {"speed": 45, "stamina": 38, "power": 40},
            "condition": {"energy": 60, "health": 90, "mood": "good"},
            "growthRates": {"speed": 1.2, "stamina": 1.0, "power": 0.8},
            "friendship": 35,
            "career": {"turn": 5, "maxTurns": 12, "racesRun": 1, "racesWon": 0, "totalTraining": 3},
        },
        "gameState": "training",
    }
    parts = from_snapshot(legacy)
    assert parts.migrated_from == 1
    assert parts.competitor.competitor_id == "legacy-1"
    assert parts.competitor.name == "Old Timer"
    assert parts.competitor.bond == 35
    assert parts.competitor.growth == {"speed": "A", "stamina": "B", "power": "C"}
    assert parts.competitor.condition.mood == Mood.GOOD
    assert parts.career.turn == 5
    assert parts.career.training_sessions == 3
    assert parts.events_completed == 1


@pytest.mark.regression
def test_rejects_future_save_version_with_clear_error() -> None:
    with pytest.raises(SnapshotError) as info:
        from_snapshot(_snapshot(save_version=999))
    assert info.value.code == UNSUPPORTED_SAVE_VERSION
    assert "Unsupported save version 999" in info.value.message


@pytest.mark.regression
def test_rejects_out_of_range_fields() -> None:
    with pytest.raises(SnapshotError) as info:
        from_snapshot(_snapshot(energy=150))
    assert info.value.code == OUT_OF_BOUNDS

    with pytest.raises(SnapshotError):
        from_snapshot(_snapshot(speed=140))

    with pytest.raises(SnapshotError):
        from_snapshot(_snapshot(races_won=3))


@pytest.mark.regression
def test_rejects_unknown_breed_and_missing_name() -> None:
    with pytest.raises(SnapshotError):
        from_snapshot(_snapshot(breed="Unicorn"))
    with pytest.raises(SnapshotError):
        from_snapshot(_snapshot(name=""))
    with pytest.raises(SnapshotError):
        from_snapshot(["not", "a", "dict"])


@pytest.mark.regression
def test_slot_save_includes_save_version_and_backup(tmp_path) -> None:
    store = SaveStore(tmp_path)
    slot_path = tmp_path / "slot_main.json"
    backup_path = tmp_path / "slot_main.json.bak"

    # First write creates the primary file.
    store.save("main", _snapshot())
    payload = json.loads(slot_path.read_text(encoding="utf-8"))
    assert payload["save_version"] == SAVE_VERSION
    assert not backup_path.exists()

    # Second write keeps the previous file as a backup.
    store.save("main", _snapshot(turn=9))
    assert backup_path.exists()
    assert json.loads(backup_path.read_text(encoding="utf-8"))["turn"] == 8
    assert [row["slot"] for row in store.slots()] == ["main"]


@pytest.mark.regression
def test_corrupt_slot_raises_snapshot_error(tmp_path) -> None:
    (tmp_path / "slot_broken.json").write_text("{not json", encoding="utf-8")
    store = SaveStore(tmp_path)
    with pytest.raises(SnapshotError):
        store.load("broken")
    assert "Failed to load slot broken" in store.last_load_error
    assert store.slots() == [{"slot": "broken", "valid": False}]


def test_missing_slot_loads_as_none(tmp_path) -> None:
    assert SaveStore(tmp_path / "nowhere").load("1") is None


@pytest.mark.regression
def test_legacy_save_with_non_numeric_race_count_is_rejected() -> None:
    legacy = {
        "character": {
            "name": "Old Timer",
            "stats": {"speed": 45, "stamina": 38, "power": 40},
            "career": {"turn": 5, "maxTurns": 12, "racesRun": "two"},
        },
    }
    with pytest.raises(SnapshotError) as info:
        from_snapshot(legacy)
    assert info.value.code == BAD_SNAPSHOT


@pytest.mark.regression
def test_malformed_rival_rows_raise_snapshot_error() -> None:
    with pytest.raises(SnapshotError):
        RivalRoster.from_dict([{"name": "Broken", "breed": "Arabian", "stats": {"speed": "fast"}}])
    with pytest.raises(SnapshotError):
        RivalRoster.from_dict([{"name": "Broken", "strategy": "SIDEWAYS"}])
    with pytest.raises(SnapshotError):
        RivalRoster.from_dict([{"name": "Broken", "breed": "Unicorn"}])
    with pytest.raises(SnapshotError):
        RivalRoster.from_dict([{"name": "Broken", "specialization": "Hurdler"}])


@pytest.mark.regression
@pytest.mark.parametrize(
    "overrides",
    [
        {"rng_state": {"race": [3, [1, 2, 3], None]}},
        {"rng_state": {"race": [3, ["x"] * 625, None]}},
        {"rivals": [{"name": "Broken", "breed": "Arabian", "stats": {"speed": "fast"}}]},
        {"specialization": "Hurdler"},
    ],
)
def test_bad_slot_from_menu_stays_on_load_screen(tmp_path, overrides: dict) -> None:
    (tmp_path / "slot_bad.json").write_text(json.dumps(_snapshot(**overrides)), encoding="utf-8")
    session = build_session(seed=3, saves_dir=tmp_path)
    session.handle_input("2")
    assert session.state == FlowState.LOAD_GAME

    outcome = session.handle_input("bad")
    assert outcome.accepted is False
    assert outcome.error.code == BAD_SNAPSHOT
    assert session.state == FlowState.LOAD_GAME
    assert session.competitor is None


@pytest.mark.regression
def test_non_numeric_save_version_is_reported(tmp_path) -> None:
    (tmp_path / "slot_odd.json").write_text(json.dumps(_snapshot(save_version="abc")), encoding="utf-8")
    store = SaveStore(tmp_path)
    with pytest.raises(SnapshotError) as info:
        store.load("odd")
    assert info.value.code == BAD_SNAPSHOT
    assert "Save version is not a number" in store.last_load_error
    with pytest.raises(SnapshotError):
        from_snapshot(_snapshot(save_version="abc"))


@pytest.mark.regression
def test_specialization_survives_save_and_load() -> None:
    payload = _snapshot(specialization="Stayer")
    assert from_snapshot(json.loads(json.dumps(payload))).competitor.specialization == "Stayer"
    assert from_snapshot(_snapshot()).competitor.specialization is None

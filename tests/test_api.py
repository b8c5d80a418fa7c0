from fastapi.testclient import TestClient

from derby_sim.api import SimService, build_app


def _client(tmp_path) -> TestClient:
    return TestClient(build_app(SimService(data_root=tmp_path, seed=5)))


def _new_career(client: TestClient, **payload) -> dict:
    response = client.post("/api/new", json={"name": "Api Runner", **payload})
    assert response.status_code == 200, response.text
    return response.json()


def test_health_and_initial_state(tmp_path) -> None:
    client = _client(tmp_path)
    assert client.get("/api/health").json() == {"status": "ok"}
    state = client.get("/api/state").json()
    assert state["state"] == "main_menu"
    assert "1" in state["valid_inputs"]


def test_new_career_then_train(tmp_path) -> None:
    client = _client(tmp_path)
    state = _new_career(client, breed="Arabian")
    assert state["state"] == "training"
    assert state["horse"]["breed"] == "Arabian"
    assert state["next_event"]["event_id"] == "maiden-sprint"

    response = client.post("/api/input", json={"token": "1"})
    body = response.json()
    assert response.status_code == 200
    assert body["accepted"] is True
    assert body["status"]["career"]["turn"] == 2


def test_unrecognized_token_is_reported_not_raised(tmp_path) -> None:
    client = _client(tmp_path)
    _new_career(client)
    body = client.post("/api/input", json={"token": "zzz"}).json()
    assert body["accepted"] is False
    assert body["error"]["code"] == "UNRECOGNIZED_INPUT"
    assert body["status"]["career"]["turn"] == 1


def test_unknown_breed_is_bad_request(tmp_path) -> None:
    client = _client(tmp_path)
    response = client.post("/api/new", json={"name": "Api Runner", "breed": "Unicorn"})
    assert response.status_code == 400


def test_invalid_name_is_bad_request(tmp_path) -> None:
    client = _client(tmp_path)
    response = client.post("/api/new", json={"name": "x"})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_NAME"


def test_summary_and_race_need_progress(tmp_path) -> None:
    client = _client(tmp_path)
    assert client.get("/api/summary").status_code == 404
    _new_career(client)
    assert client.get("/api/race").status_code == 404
    assert client.get("/api/replay").status_code == 404
    summary = client.get("/api/summary").json()
    assert summary["name"] == "Api Runner"
    assert summary["races_run"] == 0


def test_race_result_and_replay(tmp_path) -> None:
    client = _client(tmp_path)
    _new_career(client)
    for token in ("1", "2", "3", "", "", "2", "s"):
        body = client.post("/api/input", json={"token": token}).json()
        assert body["accepted"] is True, body
    assert body["state"] == "race_results"

    race = client.get("/api/race").json()
    assert race["event_id"] == "maiden-sprint"
    assert len(race["placings"]) == 8
    assert [p["rank"] for p in race["placings"]] == list(range(1, 9))

    replay = client.get("/api/replay", params={"frames": 5}).json()
    assert len(replay["frames"]) == 5
    assert replay["frames"][-1]["final"] is True


def test_save_list_and_load(tmp_path) -> None:
    client = _client(tmp_path)
    _new_career(client)
    client.post("/api/input", json={"token": "2"})

    saved = client.post("/api/save", json={"slot": "a1"}).json()
    assert saved == {"ok": True, "slot": "a1", "file": "slot_a1.json"}
    assert (tmp_path / "slot_a1.json").exists()

    slots = client.get("/api/saves").json()
    assert slots[0]["slot"] == "a1"
    assert slots[0]["name"] == "Api Runner"

    client.post("/api/reset")
    assert client.get("/api/state").json()["state"] == "main_menu"

    loaded = client.post("/api/load", json={"slot": "a1"}).json()
    assert loaded["state"] == "training"
    assert loaded["career"]["turn"] == 2
    assert loaded["migrated_from"] is None


def test_load_and_save_errors(tmp_path) -> None:
    client = _client(tmp_path)
    missing = client.post("/api/load", json={"slot": "nothing"})
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "SAVE_NOT_FOUND"

    assert client.post("/api/save", json={"slot": "a1"}).status_code == 400
    _new_career(client)
    assert client.post("/api/save", json={"slot": "bad slot!"}).status_code == 400


def test_corrupt_save_is_unprocessable(tmp_path) -> None:
    (tmp_path / "slot_bad.json").write_text("[1, 2]", encoding="utf-8")
    client = _client(tmp_path)
    response = client.post("/api/load", json={"slot": "bad"})
    assert response.status_code == 422


def test_new_career_with_specialization(tmp_path) -> None:
    client = _client(tmp_path)
    state = _new_career(client, specialization="Miler")
    assert state["horse"]["specialization"] == "Miler"

    response = client.post("/api/new", json={"name": "Api Runner", "specialization": "Hurdler"})
    assert response.status_code == 400

import random

from derby_sim.engine import FieldSpec, RaceSimulator
from derby_sim.models import Competitor, Stats, Strategy
from derby_sim.pacing import RaceReplay
from derby_sim.schedule import ScheduledEvent


def _outcome(seed: int = 4):
    event = ScheduledEvent(turn=4, event_id="replay-sprint", name="Replay Sprint", category="SPRINT", distance=1200)
    player = Competitor(name="Replay Hope", is_player=True, stats=Stats(60, 50, 55))
    return RaceSimulator().simulate_event(player, FieldSpec(event=event), Strategy.FRONT, random.Random(seed))


def test_replay_yields_requested_frame_count() -> None:
    frames = list(RaceReplay(_outcome(), frame_count=12).frames())
    assert len(frames) == 12
    assert [frame.index for frame in frames] == list(range(1, 13))
    assert frames[-1].final
    assert not any(frame.final for frame in frames[:-1])


def test_final_frame_matches_finishing_order() -> None:
    outcome = _outcome()
    final = RaceReplay(outcome, frame_count=20).final_frame()
    assert list(final.order) == [p.participant_id for p in outcome.placings]
    assert final.progress[outcome.winner.participant_id] == 1.0


def test_progress_never_moves_backwards() -> None:
    frames = list(RaceReplay(_outcome(9), frame_count=25).frames())
    for before, after in zip(frames, frames[1:]):
        for pid, value in before.progress.items():
            assert after.progress[pid] >= value


def test_skip_jumps_to_final_frame() -> None:
    replay = RaceReplay(_outcome(), frame_count=40)
    seen = []
    for frame in replay.frames():
        seen.append(frame)
        if frame.index == 3:
            replay.skip()
    assert len(seen) == 4
    assert seen[-1].final
    assert seen[-1].order == replay.final_frame().order


def test_play_sleeps_between_frames_only() -> None:
    replay = RaceReplay(_outcome(), frame_count=6)
    shown = []
    pauses = []
    last = replay.play(shown.append, frame_delay=0.25, sleep=pauses.append)
    assert len(shown) == 6
    assert pauses == [0.25] * 5
    assert last.final


def test_frame_payload_is_rounded() -> None:
    frame = RaceReplay(_outcome(), frame_count=3).final_frame()
    payload = frame.as_dict()
    assert payload["final"] is True
    assert len(payload["order"]) == 8
    assert all(0.0 <= value <= 1.0 for value in payload["progress"].values())

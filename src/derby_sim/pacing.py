from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterator

from .engine import EventOutcome


@dataclass(frozen=True, slots=True)
class ReplayFrame:
    index: int
    final: bool
    progress: dict[str, float]
    order: tuple[str, ...]

    def as_dict(self) -> dict[str, object]:
        return {
            "index": self.index,
            "final": self.final,
            "progress": {pid: round(value, 4) for pid, value in self.progress.items()},
            "order": list(self.order),
        }


class RaceReplay:
    """Replays a finished race frame by frame.

    The outcome is already decided; frames only interpolate toward it. `skip()`
    makes the next frame the final one.
    """

    def __init__(self, outcome: EventOutcome, frame_count: int = 60) -> None:
        self.outcome = outcome
        self.frame_count = max(1, frame_count)
        self.fast_forward = False
        self._rank = {p.participant_id: p.rank for p in outcome.placings}

    def skip(self) -> None:
        self.fast_forward = True

    def _frame(self, index: int, t: float) -> ReplayFrame:
        winner_time = self.outcome.winner.time
        progress: dict[str, float] = {}
        for placing in self.outcome.placings:
            if placing.time <= 0:
                progress[placing.participant_id] = 1.0
                continue
            progress[placing.participant_id] = min(1.0, t * winner_time / placing.time)
        order = tuple(sorted(progress, key=lambda pid: (-progress[pid], self._rank[pid])))
        return ReplayFrame(index=index, final=t >= 1.0, progress=progress, order=order)

    def final_frame(self) -> ReplayFrame:
        return self._frame(self.frame_count, 1.0)

    def frames(self) -> Iterator[ReplayFrame]:
        for index in range(1, self.frame_count + 1):
            if self.fast_forward:
                yield self.final_frame()
                return
            yield self._frame(index, index / self.frame_count)

    def play(
        self,
        on_frame: Callable[[ReplayFrame], None],
        frame_delay: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ) -> ReplayFrame:
        last = self.final_frame()
        for frame in self.frames():
            on_frame(frame)
            last = frame
            if not frame.final:
                sleep(frame_delay)
        return last

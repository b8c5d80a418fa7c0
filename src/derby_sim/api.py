from __future__ import annotations

import logging
import os
from pathlib import Path
from threading import Lock
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .app import SaveStore
from .career import CareerSession
from .errors import (
    INVALID_TRANSITION,
    SAVE_NOT_FOUND,
    ConfigurationError,
    DerbySimError,
    InvalidTransition,
    SnapshotError,
    UserRecoverableError,
)
from .flow import FlowState
from .pacing import RaceReplay

logger = logging.getLogger(__name__)


class InputSelection(BaseModel):
    token: str = ""


class NewCareerSelection(BaseModel):
    name: str
    breed: str | None = None
    specialization: str | None = None
    seed: int | None = None


class SlotSelection(BaseModel):
    slot: str = "1"


def _status_for(error: DerbySimError) -> int:
    if error.code == SAVE_NOT_FOUND:
        return 404
    if isinstance(error, InvalidTransition) or error.code == INVALID_TRANSITION:
        return 409
    if isinstance(error, SnapshotError):
        return 422
    if isinstance(error, UserRecoverableError):
        return 400
    return 500


def _http_error(error: DerbySimError) -> HTTPException:
    status = _status_for(error)
    if status >= 500:
        logger.error("unexpected simulation error: %s", error)
    return HTTPException(status_code=status, detail=error.to_payload())


class SimService:
    def __init__(self, data_root: str | Path | None = None, seed: int | None = None) -> None:
        default_root = Path(__file__).resolve().parents[2] / "saves"
        self.data_root = Path(data_root or os.environ.get("DERBY_SIM_DATA") or default_root)
        self.store = SaveStore(self.data_root)
        self._seed = seed
        self._init_fresh_state()
        self._lock = Lock()

    def _init_fresh_state(self) -> None:
        self.session = CareerSession(
            seed=self._seed,
            save_writer=self.store.save,
            save_loader=self.store.load,
        )

    def state(self) -> dict[str, Any]:
        return self.session.status()

    def input(self, token: str) -> dict[str, Any]:
        try:
            outcome = self.session.handle_input(token)
        except InvalidTransition as exc:
            raise _http_error(exc) from exc
        return {**outcome.as_dict(), "status": self.session.status()}

    def new_career(
        self,
        name: str,
        breed: str | None = None,
        seed: int | None = None,
        specialization: str | None = None,
    ) -> dict[str, Any]:
        if seed is not None:
            self._seed = seed
            self._init_fresh_state()
        session = self.session
        if breed is not None and breed not in session.tables.breed_names():
            raise HTTPException(status_code=400, detail=f"Unknown breed '{breed}'")
        if specialization is not None and specialization not in session.tables.specialization_names():
            raise HTTPException(status_code=400, detail=f"Unknown specialization '{specialization}'")
        try:
            session.start_career(name, breed, specialization)
        except (UserRecoverableError, ConfigurationError) as exc:
            raise _http_error(exc) from exc
        session.machine.restore(FlowState.TRAINING)
        return session.status()

    def summary(self) -> dict[str, Any]:
        if not self.session.has_career:
            raise HTTPException(status_code=404, detail="No career in progress")
        return self.session.career_summary()

    def race(self) -> dict[str, Any]:
        outcome = self.session.last_outcome
        if outcome is None:
            raise HTTPException(status_code=404, detail="No race has been run yet")
        return outcome.as_dict()

    def replay(self, frames: int = 30) -> dict[str, Any]:
        outcome = self.session.last_outcome
        if outcome is None:
            raise HTTPException(status_code=404, detail="No race has been run yet")
        replay = RaceReplay(outcome, frame_count=max(1, min(frames, 240)))
        return {
            "event_id": outcome.event_id,
            "frames": [frame.as_dict() for frame in replay.frames()],
        }

    def saves(self) -> list[dict[str, Any]]:
        return self.store.slots()

    def save(self, slot: str) -> dict[str, Any]:
        try:
            snapshot = self.session.snapshot()
            path = self.store.save(slot, snapshot)
        except DerbySimError as exc:
            raise _http_error(exc) from exc
        except OSError as exc:
            logger.warning("save to slot %s failed: %s", slot, exc)
            raise HTTPException(status_code=500, detail=f"Could not save: {exc}") from exc
        self.session.save_slot = slot
        return {"ok": True, "slot": slot, "file": path.name}

    def load(self, slot: str) -> dict[str, Any]:
        try:
            raw = self.store.load(slot)
            if raw is None:
                raise UserRecoverableError(SAVE_NOT_FOUND, f"No save in slot '{slot}'.", {"slot": slot})
            parts = self.session.restore(raw)
        except DerbySimError as exc:
            raise _http_error(exc) from exc
        self.session.save_slot = slot
        return {**self.session.status(), "migrated_from": parts.migrated_from}

    def reset(self) -> dict[str, Any]:
        self._init_fresh_state()
        return self.session.status()


def build_app(service: SimService) -> FastAPI:
    api = FastAPI(title="Derby Sim API", version="0.1.0")
    api.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @api.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @api.get("/api/state")
    def state() -> dict[str, Any]:
        with service._lock:
            return service.state()

    @api.post("/api/input")
    def send_input(payload: InputSelection) -> dict[str, Any]:
        with service._lock:
            return service.input(payload.token)

    @api.post("/api/new")
    def new_career(payload: NewCareerSelection) -> dict[str, Any]:
        with service._lock:
            return service.new_career(
                payload.name, breed=payload.breed, seed=payload.seed, specialization=payload.specialization
            )

    @api.get("/api/summary")
    def summary() -> dict[str, Any]:
        with service._lock:
            return service.summary()

    @api.get("/api/race")
    def race() -> dict[str, Any]:
        with service._lock:
            return service.race()

    @api.get("/api/replay")
    def replay(frames: int = 30) -> dict[str, Any]:
        with service._lock:
            return service.replay(frames=frames)

    @api.get("/api/saves")
    def saves() -> list[dict[str, Any]]:
        with service._lock:
            return service.saves()

    @api.post("/api/save")
    def save(payload: SlotSelection) -> dict[str, Any]:
        with service._lock:
            return service.save(payload.slot)

    @api.post("/api/load")
    def load(payload: SlotSelection) -> dict[str, Any]:
        with service._lock:
            return service.load(payload.slot)

    @api.post("/api/reset")
    def reset() -> dict[str, Any]:
        with service._lock:
            return service.reset()

    return api


service = SimService()
app = build_app(service)

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class DerbySimError(Exception):
    """Structured error raised or returned by the simulation core.

    `code` is stable and machine-readable so the front ends can map it to a
    status or help text without parsing `message`.
    """

    code: str
    message: str
    details: Optional[Any] = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class UserRecoverableError(DerbySimError):
    """Shown to the player; never leaves the career half-mutated."""


class InsufficientResource(UserRecoverableError):
    @property
    def required(self) -> int:
        return int((self.details or {}).get("required", 0))

    @property
    def available(self) -> int:
        return int((self.details or {}).get("available", 0))

    @property
    def suggestions(self) -> list[str]:
        return list((self.details or {}).get("suggestions", []))


class UnrecognizedInput(UserRecoverableError):
    @property
    def valid_inputs(self) -> list[str]:
        return list((self.details or {}).get("valid_inputs", []))


class CareerOver(UserRecoverableError):
    pass


class TutorialStepMismatch(UserRecoverableError):
    pass


class ConfigurationError(DerbySimError):
    pass


class InvalidTrainingKind(ConfigurationError):
    pass


class SnapshotError(ConfigurationError):
    pass


class InvariantViolation(DerbySimError):
    pass


class InvalidTransition(DerbySimError):
    @property
    def allowed(self) -> list[str]:
        return list((self.details or {}).get("allowed", []))


# Error codes (stable API surface)
INSUFFICIENT_ENERGY = "INSUFFICIENT_ENERGY"
UNRECOGNIZED_INPUT = "UNRECOGNIZED_INPUT"
CAREER_OVER = "CAREER_OVER"
TUTORIAL_STEP_MISMATCH = "TUTORIAL_STEP_MISMATCH"
BAD_SCHEDULE = "BAD_SCHEDULE"
BAD_FIELD = "BAD_FIELD"
BAD_BREED = "BAD_BREED"
BAD_SPECIALIZATION = "BAD_SPECIALIZATION"
BAD_STATE_TABLE = "BAD_STATE_TABLE"
AUTO_TRANSITION_LOOP = "AUTO_TRANSITION_LOOP"
UNKNOWN_TRAINING_KIND = "UNKNOWN_TRAINING_KIND"
UNKNOWN_ACTION = "UNKNOWN_ACTION"
BAD_SNAPSHOT = "BAD_SNAPSHOT"
UNSUPPORTED_SAVE_VERSION = "UNSUPPORTED_SAVE_VERSION"
OUT_OF_BOUNDS = "OUT_OF_BOUNDS"
TURN_OVERFLOW = "TURN_OVERFLOW"
EVENT_OVERFLOW = "EVENT_OVERFLOW"
INVALID_TRANSITION = "INVALID_TRANSITION"
NO_ACTIVE_CAREER = "NO_ACTIVE_CAREER"
SAVE_NOT_FOUND = "SAVE_NOT_FOUND"
SAVE_FAILED = "SAVE_FAILED"
INVALID_NAME = "INVALID_NAME"

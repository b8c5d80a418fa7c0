from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from . import config
from .errors import (
    BAD_BREED,
    BAD_FIELD,
    BAD_SPECIALIZATION,
    UNKNOWN_TRAINING_KIND,
    ConfigurationError,
    InvalidTrainingKind,
)
from .models import STAT_NAMES, Mood


@dataclass(frozen=True, slots=True)
class BreedProfile:
    name: str
    caps: Mapping[str, int]
    growth: Mapping[str, float]
    surface: Mapping[str, float]

    def surface_preference(self, surface: str) -> float:
        return float(self.surface.get(surface.upper(), 1.0))


@dataclass(frozen=True, slots=True)
class SpecializationProfile:
    name: str
    distance_range: tuple[int, int]
    growth: Mapping[str, float]

    def distance_fit(self, distance: int) -> float:
        low, high = self.distance_range
        if low <= distance <= high:
            return config.DISTANCE_FIT_BONUS
        outside = low - distance if distance < low else distance - high
        return max(config.DISTANCE_FIT_FLOOR, 1.0 - (outside / 100.0) * config.DISTANCE_FIT_PENALTY)


@dataclass(frozen=True, slots=True)
class TrainingKind:
    name: str
    cost: int
    recover: int
    base_gain: int
    stat: str | None
    bond: int

    @property
    def trains_stat(self) -> bool:
        return self.stat is not None


@dataclass(frozen=True, slots=True)
class PhasePlan:
    name: str
    share: float
    weights: Mapping[str, float]
    stage: str


def _freeze(raw: Mapping) -> Mapping:
    return MappingProxyType(dict(raw))


def _phase_family(phase_name: str) -> str:
    # middle1/middle2 share the middle profile.
    return phase_name.rstrip("0123456789")


def _specialization_profiles(raw_table: Mapping[str, Mapping[str, object]]) -> Mapping[str, SpecializationProfile]:
    profiles: dict[str, SpecializationProfile] = {}
    for name, raw in raw_table.items():
        low, high = (int(v) for v in raw["distance"])  # type: ignore[union-attr]
        growth = {s: float(raw.get("growth", {}).get(s, 1.0)) for s in STAT_NAMES}  # type: ignore[union-attr]
        if low >= high or low <= 0:
            raise ConfigurationError(BAD_SPECIALIZATION, f"Specialization '{name}' has an empty distance range.")
        if any(g <= 0 for g in growth.values()):
            raise ConfigurationError(BAD_SPECIALIZATION, f"Specialization '{name}' has a non-positive growth rate.")
        profiles[name] = SpecializationProfile(name=name, distance_range=(low, high), growth=_freeze(growth))
    return _freeze(profiles)


@dataclass(frozen=True, slots=True)
class ModifierTables:
    """Read-only modifier configuration handed to the engines at construction."""

    breeds: Mapping[str, BreedProfile]
    training_kinds: Mapping[str, TrainingKind]
    mood_multipliers: Mapping[str, float] = field(default_factory=lambda: _freeze(config.MOOD_MULTIPLIERS))
    growth_grades: Mapping[str, float] = field(default_factory=lambda: _freeze(config.GROWTH_GRADES))
    bond_thresholds: tuple[tuple[int, float], ...] = config.BOND_THRESHOLDS
    race_phases: Mapping[str, tuple[tuple[str, float], ...]] = field(default_factory=lambda: _freeze(config.RACE_PHASES))
    phase_profiles: Mapping[str, tuple[dict[str, float], str]] = field(
        default_factory=lambda: _freeze(config.PHASE_PROFILES)
    )
    strategy_usage: Mapping[str, dict[str, float]] = field(
        default_factory=lambda: _freeze(config.STRATEGY_ENERGY_USAGE)
    )
    training_aliases: Mapping[str, str] = field(default_factory=lambda: _freeze(config.TRAINING_ALIASES))
    specializations: Mapping[str, SpecializationProfile] = field(
        default_factory=lambda: _specialization_profiles(config.SPECIALIZATIONS)
    )

    @classmethod
    def from_config(
        cls,
        breeds: Mapping[str, Mapping[str, Mapping[str, float]]] | None = None,
        training_kinds: Mapping[str, Mapping[str, object]] | None = None,
        specializations: Mapping[str, Mapping[str, object]] | None = None,
    ) -> "ModifierTables":
        raw_breeds = breeds if breeds is not None else config.BREEDS
        raw_kinds = training_kinds if training_kinds is not None else config.TRAINING_KINDS
        profiles: dict[str, BreedProfile] = {}
        for name, raw in raw_breeds.items():
            caps = {s: int(raw["caps"][s]) for s in STAT_NAMES}
            if any(cap < config.STAT_MIN for cap in caps.values()):
                raise ConfigurationError(BAD_BREED, f"Breed '{name}' has a cap below {config.STAT_MIN}.", caps)
            profiles[name] = BreedProfile(
                name=name,
                caps=_freeze(caps),
                growth=_freeze({s: float(raw.get("growth", {}).get(s, 1.0)) for s in STAT_NAMES}),
                surface=_freeze({k.upper(): float(v) for k, v in raw.get("surface", {}).items()}),
            )
        kinds = {
            name: TrainingKind(
                name=name,
                cost=int(raw["cost"]),
                recover=int(raw.get("recover", 0)),
                base_gain=int(raw.get("base_gain", 0)),
                stat=raw.get("stat"),  # type: ignore[arg-type]
                bond=int(raw.get("bond", 0)),
            )
            for name, raw in raw_kinds.items()
        }
        raw_specs = specializations if specializations is not None else config.SPECIALIZATIONS
        return cls(
            breeds=_freeze(profiles),
            training_kinds=_freeze(kinds),
            specializations=_specialization_profiles(raw_specs),
        )

    def breed(self, name: str) -> BreedProfile:
        profile = self.breeds.get(name)
        if profile is None:
            raise ConfigurationError(BAD_BREED, f"Unknown breed '{name}'.", {"known": sorted(self.breeds)})
        return profile

    def breed_names(self) -> list[str]:
        return list(self.breeds)

    def caps_for(self, breed: str) -> dict[str, int]:
        return dict(self.breed(breed).caps)

    def training_kind(self, name: str) -> TrainingKind:
        key = str(name).strip().lower()
        key = self.training_aliases.get(key, key)
        kind = self.training_kinds.get(key)
        if kind is None:
            raise InvalidTrainingKind(
                UNKNOWN_TRAINING_KIND,
                f"Unknown training kind '{name}'.",
                {"known": sorted(self.training_kinds)},
            )
        return kind

    def recovery_kinds(self) -> list[str]:
        return [k.name for k in self.training_kinds.values() if k.recover > 0]

    def form_multiplier(self, mood: Mood) -> float:
        return float(self.mood_multipliers.get(mood.name.lower(), 1.0))

    def bond_multiplier(self, bond: int) -> float:
        for threshold, multiplier in self.bond_thresholds:
            if bond >= threshold:
                return multiplier
        return self.bond_thresholds[-1][1]

    def specialization(self, name: str) -> SpecializationProfile:
        profile = self.specializations.get(name)
        if profile is None:
            raise ConfigurationError(
                BAD_SPECIALIZATION,
                f"Unknown specialization '{name}'.",
                {"known": sorted(self.specializations)},
            )
        return profile

    def specialization_names(self) -> list[str]:
        return list(self.specializations)

    def distance_fit(self, specialization: str | None, distance: int) -> float:
        if specialization is None:
            return 1.0
        return self.specialization(specialization).distance_fit(distance)

    def growth_multiplier(self, breed: str, grade: str, stat: str, specialization: str | None = None) -> float:
        multiplier = float(self.growth_grades.get(grade, 1.0)) * float(self.breed(breed).growth.get(stat, 1.0))
        if specialization is not None:
            multiplier *= float(self.specialization(specialization).growth.get(stat, 1.0))
        return multiplier

    def surface_preference(self, breed: str, surface: str) -> float:
        return self.breed(breed).surface_preference(surface)

    def phase_plan(self, category: str) -> list[PhasePlan]:
        phases = self.race_phases.get(category.upper())
        if not phases:
            raise ConfigurationError(BAD_FIELD, f"No phase layout for race category '{category}'.")
        plan: list[PhasePlan] = []
        for name, share in phases:
            weights, stage = self.phase_profiles[_phase_family(name)]
            plan.append(PhasePlan(name=name, share=share, weights=_freeze(weights), stage=stage))
        return plan

    def strategy_fit(self, strategy: str, stage: str) -> float:
        usage = self.strategy_usage.get(strategy, {}).get(stage, 1.0 / 3.0)
        return 1.0 + (usage - 1.0 / 3.0) * config.STRATEGY_FIT_SCALE

from __future__ import annotations

import random
from typing import Iterable

PREFIXES = (
    "Thunder", "Silver", "Midnight", "Golden", "Storm", "Swift", "Royal", "Wild", "Desert", "Crimson",
    "Shadow", "Iron", "Lucky", "Northern", "Velvet", "Copper", "Blazing", "Quiet", "Rapid", "Noble",
    "Dancing", "Rolling", "Silent", "Bold", "Misty", "Frosty", "Scarlet", "Ocean", "Prairie", "Autumn",
)

SUFFIXES = (
    "Bolt", "Arrow", "Dream", "Spirit", "Runner", "Comet", "Dancer", "Flash", "Legend", "Echo",
    "Wind", "Star", "Glory", "Charm", "Blaze", "Rider", "Tide", "Whisper", "Crown", "Fury",
    "Jewel", "Dash", "Promise", "Venture", "Ember", "Rhythm", "Harbor", "Ranger", "Quest", "Sonnet",
)

PLACES = (
    "Saratoga", "Ascot", "Keeneland", "Epsom", "Longchamp", "Del Mar", "Aintree", "Belmont", "Chantilly", "Meydan",
)

STANDALONE_NAMES = (
    "Paddock Gossip", "Oats For Breakfast", "Photo Finish", "Furlong Fancy", "Late Scratch",
    "Gate Crasher", "Muddy Waters", "Turf Whisperer", "Hay Is For Horses", "Odds On Favorite",
)

# Racehorse registries cap names at 18 characters, spaces included.
MAX_NAME_LENGTH = 18

# (template, weight)
NAME_PATTERNS = (
    ("{prefix} {suffix}", 6),
    ("{prefix}'s {suffix}", 2),
    ("{suffix} of {place}", 1),
    ("{standalone}", 1),
)
DRAW_ATTEMPTS = 50


class HorseNameGenerator:
    """Seeded registry-style names, never handing out the same name twice."""

    def __init__(self, seed: int | str | None = None) -> None:
        self._rng = random.Random(seed)
        self._taken: set[str] = set()
        self._templates = [template for template, _ in NAME_PATTERNS]
        self._weights = [weight for _, weight in NAME_PATTERNS]

    def reserve(self, names: Iterable[str]) -> None:
        self._taken.update(names)

    def is_taken(self, name: str) -> bool:
        return name in self._taken

    def _compose(self) -> str:
        template = self._rng.choices(self._templates, weights=self._weights, k=1)[0]
        return template.format(
            prefix=self._rng.choice(PREFIXES),
            suffix=self._rng.choice(SUFFIXES),
            place=self._rng.choice(PLACES),
            standalone=self._rng.choice(STANDALONE_NAMES),
        )

    def _fresh(self, exclude: set[str] | frozenset[str] = frozenset()) -> str | None:
        for _ in range(DRAW_ATTEMPTS):
            name = self._compose()
            if len(name) <= MAX_NAME_LENGTH and name not in self._taken and name not in exclude:
                return name
        return None

    def _with_numeral(self) -> str:
        numeral = 2
        while True:
            for _ in range(DRAW_ATTEMPTS):
                candidate = f"{self._compose()} {_roman(numeral)}"
                if len(candidate) <= MAX_NAME_LENGTH and candidate not in self._taken:
                    return candidate
            numeral += 1

    def next_name(self) -> str:
        name = self._fresh() or self._with_numeral()
        self._taken.add(name)
        return name

    def suggestions(self, count: int = 6) -> list[str]:
        """Fresh names for the player to pick from; not reserved until chosen."""
        picks: list[str] = []
        for _ in range(count * 2):
            if len(picks) >= count:
                break
            name = self._fresh(exclude=set(picks))
            if name is not None:
                picks.append(name)
        return picks


def _roman(value: int) -> str:
    numerals = ((10, "X"), (9, "IX"), (5, "V"), (4, "IV"), (1, "I"))
    out = ""
    for amount, symbol in numerals:
        while value >= amount:
            out += symbol
            value -= amount
    return out

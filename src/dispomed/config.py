"""Configuration models and defaults for the availability engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date


@dataclass(frozen=True)
class ScoreWeights:
    """Penalty points per incident day used by the availability score.

    These are a product decision rather than a measured quantity; callers
    may pass their own weights.
    """

    rupture: float = 1.0
    tension: float = 0.5
    arret: float = 1.0

    def penalty(self, rupture_days: int, tension_days: int, arret_days: int) -> float:
        return (
            self.rupture * rupture_days
            + self.tension * tension_days
            + self.arret * arret_days
        )


@dataclass(frozen=True)
class Config:
    """Runtime configuration for the availability pipeline."""

    recency_window_days: int = 7
    months_to_show: int = 12
    program_start: date = date(2021, 4, 1)
    score_weights: ScoreWeights = field(default_factory=ScoreWeights)
    version: str = "1.0.0"


def default_config() -> Config:
    return Config()

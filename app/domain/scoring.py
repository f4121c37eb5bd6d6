"""Deterministic session scoring strategies.

The score maps a recording's TagCounts to an integer in [0, 100]. Each mode
owns a strategy so the weighting can be swapped without touching callers.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping

from .models import RecordingMode, TagCounts


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class ScoreBreakdown:
    """Score plus the mastery flag that caps it."""

    score: int
    passed: bool


class ScoringStrategy(ABC):
    """Pure TagCounts -> score mapping for one recording mode."""

    @abstractmethod
    def evaluate(self, counts: TagCounts) -> ScoreBreakdown:
        ...

    def score(self, counts: TagCounts) -> int:
        return self.evaluate(counts).score


class ShieldScoringStrategy(ScoringStrategy):
    """CDI scoring: desirable skills build a shield that negatives wear down.

    Each of praise, echo and narration contributes up to `skill_cap` uses. The
    shield absorbs negatives at `damage_per_hit` points each; once broken,
    every further negative costs one point from the base. Scores above
    `fail_cap` require mastery (every skill at cap and few negatives).
    """

    def __init__(
        self,
        *,
        base: float = 60.0,
        max_shield: float = 40.0,
        skill_cap: int = 10,
        damage_per_hit: float = 10.0 / 3.0,
        max_negatives_for_pass: int = 3,
        pass_cap: int = 100,
        fail_cap: int = 89,
    ) -> None:
        self.base = base
        self.max_shield = max_shield
        self.skill_cap = skill_cap
        self.damage_per_hit = damage_per_hit
        self.max_negatives_for_pass = max_negatives_for_pass
        self.pass_cap = pass_cap
        self.fail_cap = fail_cap

    def evaluate(self, counts: TagCounts) -> ScoreBreakdown:
        skills = (counts.praise, counts.echo, counts.narration)
        effective = sum(min(max(value, 0), self.skill_cap) for value in skills)
        shield = effective * self.max_shield / (self.skill_cap * len(skills))
        hits_to_break = shield / self.damage_per_hit
        negatives = max(counts.negatives, 0)

        if negatives <= hits_to_break:
            raw = self.base + shield - negatives * self.damage_per_hit
        else:
            raw = self.base - (negatives - hits_to_break)

        passed = (
            all(value >= self.skill_cap for value in skills)
            and negatives <= self.max_negatives_for_pass
        )
        capped = min(raw, self.pass_cap if passed else self.fail_cap)
        return ScoreBreakdown(score=_round_half_up(max(0.0, capped)), passed=passed)


class CommandRatioScoringStrategy(ScoringStrategy):
    """PDI scoring: percentage of commands that were effective direct commands."""

    def __init__(self, *, pass_threshold: int = 75) -> None:
        self.pass_threshold = pass_threshold

    def evaluate(self, counts: TagCounts) -> ScoreBreakdown:
        total = (
            counts.direct_command
            + counts.indirect_command
            + counts.vague_command
            + counts.chained_command
        )
        if total <= 0:
            return ScoreBreakdown(score=0, passed=False)
        score = _round_half_up(counts.direct_command / total * 100)
        score = max(0, min(100, score))
        return ScoreBreakdown(score=score, passed=score >= self.pass_threshold)


class Scorer:
    """Dispatch TagCounts to the strategy registered for the recording mode."""

    def __init__(
        self,
        strategies: Mapping[RecordingMode, ScoringStrategy] | None = None,
    ) -> None:
        self._strategies = dict(
            strategies
            or {
                RecordingMode.CDI: ShieldScoringStrategy(),
                RecordingMode.PDI: CommandRatioScoringStrategy(),
            }
        )

    def evaluate(self, counts: TagCounts, mode: RecordingMode) -> ScoreBreakdown:
        try:
            strategy = self._strategies[RecordingMode(mode)]
        except KeyError as exc:
            raise ValueError(f"No scoring strategy registered for mode {mode}") from exc
        return strategy.evaluate(counts)

    def score(self, counts: TagCounts, mode: RecordingMode) -> int:
        return self.evaluate(counts, mode).score


__all__ = [
    "CommandRatioScoringStrategy",
    "ScoreBreakdown",
    "Scorer",
    "ScoringStrategy",
    "ShieldScoringStrategy",
]

"""Unit tests for the TagCounts fold and the scoring strategies."""

from __future__ import annotations

import pytest

from app.domain.models import RecordingMode, TagCounts
from app.domain.scoring import CommandRatioScoringStrategy, Scorer, ShieldScoringStrategy
from app.domain.tags import display_tag_for, fold_tag_counts


def test_fold_counts_praise_and_command_families():
    counts = fold_tag_counts(["LP", "DC", "UP"])

    assert counts.praise == 2
    assert counts.labeled_praise == 1
    assert counts.unlabeled_praise == 1
    assert counts.command == 1
    assert counts.direct_command == 1
    assert counts.echo == 0
    assert counts.narration == 0
    assert counts.question == 0
    assert counts.criticism == 0
    assert counts.neutral == 0


def test_fold_ignores_unknown_and_blank_codes():
    counts = fold_tag_counts(["rf", " bd ", None, "", "XYZ", "SILENT"])

    assert counts.echo == 1
    assert counts.narration == 1
    assert counts.model_dump() == TagCounts(echo=1, narration=1).model_dump()


def test_fold_is_order_independent():
    codes = ["Q", "NTA", "RQ", "IC", "CC", "VC", "AK", "ID"]
    assert fold_tag_counts(codes) == fold_tag_counts(reversed(codes))
    counts = fold_tag_counts(codes)
    assert counts.command == 3
    assert counts.negatives == 5
    assert counts.neutral == 2


def test_display_tag_for_known_and_unknown_codes():
    assert display_tag_for("lp") == "Labeled Praise"
    assert display_tag_for("RQ") == "Echo"
    assert display_tag_for("WAT") == "WAT"
    assert display_tag_for(None) is None


@pytest.mark.parametrize(
    "counts, expected",
    [
        (TagCounts(), 60),
        (TagCounts(praise=10, echo=10, narration=10), 100),
        (TagCounts(praise=10, echo=10, narration=10, question=3), 90),
        (TagCounts(praise=10, echo=10, narration=10, question=4), 87),
        (TagCounts(praise=5), 67),
        (TagCounts(criticism=5), 55),
        (TagCounts(criticism=100), 0),
    ],
)
def test_shield_scoring(counts, expected):
    assert ShieldScoringStrategy().score(counts) == expected


def test_shield_caps_unmastered_sessions():
    breakdown = ShieldScoringStrategy().evaluate(TagCounts(praise=30, echo=30, narration=9))

    assert breakdown.passed is False
    assert breakdown.score == 89


def test_command_ratio_scoring():
    strategy = CommandRatioScoringStrategy()

    assert strategy.evaluate(TagCounts()).score == 0
    breakdown = strategy.evaluate(TagCounts(direct_command=3, indirect_command=1, command=4))
    assert breakdown.score == 75
    assert breakdown.passed is True
    assert strategy.evaluate(TagCounts(direct_command=1, vague_command=2)).passed is False


def test_scorer_dispatches_by_mode():
    scorer = Scorer()
    counts = TagCounts(direct_command=1, indirect_command=1)

    assert scorer.score(counts, RecordingMode.PDI) == 50
    assert scorer.score(counts, RecordingMode.CDI) == 60


def test_scorer_rejects_unregistered_mode():
    scorer = Scorer({RecordingMode.CDI: ShieldScoringStrategy()})

    with pytest.raises(ValueError):
        scorer.evaluate(TagCounts(), RecordingMode.PDI)

from __future__ import annotations

import json

import pytest

from nameback.candidates import NameCandidate, SourceKind
from nameback.scoring import (
    QualityScorer,
    ScoringWeights,
    is_date_only,
    load_scoring_weights,
    looks_like_installer,
    weights_from_dict,
)


def _meta(text: str, field: str = "Title") -> NameCandidate:
    return NameCandidate(text, SourceKind.METADATA, field=field)


def test_score_formula_for_plain_title() -> None:
    scored = QualityScorer().score(_meta("Sunset Beach"))
    # length 12 -> band 0.6 * 2, metadata 3.0, two words, 11 of 12 chars unique
    assert scored.score == pytest.approx(1.2 + 3.0 + 1.0 + 11 / 12 * 1.5)
    assert scored.penalty == 1.0
    assert scored.penalties_applied == ()


def test_same_text_ranks_by_source_reliability() -> None:
    ranked = QualityScorer().rank(
        [
            NameCandidate("Garden Party", SourceKind.DIRECTORY_CONTEXT),
            NameCandidate("Garden Party", SourceKind.OCR_TEXT),
            NameCandidate("Garden Party", SourceKind.METADATA),
        ]
    )
    assert [s.candidate.source for s in ranked] == [
        SourceKind.METADATA,
        SourceKind.OCR_TEXT,
        SourceKind.DIRECTORY_CONTEXT,
    ]


def test_equal_scores_keep_collection_order() -> None:
    first = _meta("Quarterly Review", field="Title")
    second = _meta("Quarterly Review", field="Subject")
    selection = QualityScorer().select([first, second])
    assert selection.best is not None
    assert selection.best.candidate.field == "Title"


def test_bare_date_is_penalized_below_threshold() -> None:
    scored = QualityScorer().score(_meta("2023-10-15", field="CreateDate"))
    assert "date_only" in scored.penalties_applied
    assert "mostly_numeric" in scored.penalties_applied
    assert scored.score < ScoringWeights().min_score


def test_exif_timestamp_is_not_date_only() -> None:
    scored = QualityScorer().score(_meta("2023:10:15 14:30:22", field="DateTimeOriginal"))
    assert scored.penalties_applied == ("mostly_numeric",)
    # length 19 -> 0.6 * 2, metadata 3.0, two words, 8 of 19 chars unique, halved
    assert scored.score == pytest.approx((1.2 + 3.0 + 1.0 + 8 / 19 * 1.5) * 0.5)
    assert scored.score >= ScoringWeights().min_score


@pytest.mark.parametrize(
    ("text", "expected"),
    [("2023", True), ("202306", True), ("2023.06.15", True), ("20230615143022", False), ("June 2023", False)],
)
def test_is_date_only(text, expected) -> None:
    assert is_date_only(text) is expected


def test_error_and_technical_id_penalties() -> None:
    scorer = QualityScorer()
    assert "error_keyword" in scorer.score(_meta("Error loading page content")).penalties_applied
    uuid = scorer.score(NameCandidate("550e8400-e29b-41d4-a716-446655440000", SourceKind.FILENAME_STEM))
    assert "technical_id" in uuid.penalties_applied


def test_installer_needs_three_indicators() -> None:
    assert looks_like_installer("Adobe Reader Setup Windows x64 2023")
    assert not looks_like_installer("Windows tips and tricks")


def test_ocr_noise_is_below_threshold() -> None:
    selection = QualityScorer().select([NameCandidate("||||III|", SourceKind.OCR_TEXT, language="eng")])
    assert selection.best is None
    assert selection.below_threshold
    scored = selection.ranked[0]
    assert {"symbol_noise", "repeated_chars"} <= set(scored.penalties_applied)


def test_select_without_candidates() -> None:
    selection = QualityScorer().select([])
    assert selection.best is None
    assert not selection.below_threshold


def test_scoring_is_deterministic() -> None:
    candidates = [
        _meta("Family reunion"),
        NameCandidate("reunion photos lake", SourceKind.KEY_PHRASE),
        NameCandidate("Photos_2023", SourceKind.DIRECTORY_CONTEXT),
    ]
    scorer = QualityScorer()
    assert scorer.rank(candidates) == scorer.rank(list(candidates))


def test_weights_from_dict_overrides() -> None:
    weights = weights_from_dict(
        {"min_score": 5.5, "source_reliability": {"ocr_text": 4.0}, "penalties": {"date_only": 0.1}}
    )
    assert weights.min_score == 5.5
    assert weights.reliability(SourceKind.OCR_TEXT) == 4.0
    assert weights.reliability(SourceKind.METADATA) == 3.0
    assert weights.penalties["date_only"] == 0.1
    assert weights.penalties["installer"] == 0.2


def test_weights_from_dict_rejects_unknown_source() -> None:
    with pytest.raises(ValueError, match="Unknown candidate source"):
        weights_from_dict({"source_reliability": {"telepathy": 1.0}})


def test_unknown_penalty_name_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown penalty"):
        ScoringWeights(penalties={"made_up": 0.5})


def test_load_scoring_weights(tmp_path) -> None:
    path = tmp_path / "weights.json"
    path.write_text(json.dumps({"length_weight": 3.0, "word_cap": 3}), encoding="utf-8")
    weights = load_scoring_weights(path)
    assert weights.length_weight == 3.0
    assert weights.word_cap == 3


def test_load_scoring_weights_invalid_json(tmp_path) -> None:
    path = tmp_path / "weights.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid JSON"):
        load_scoring_weights(path)


def test_load_scoring_weights_missing_file(tmp_path) -> None:
    with pytest.raises(ValueError, match="Could not read"):
        load_scoring_weights(tmp_path / "nope.json")

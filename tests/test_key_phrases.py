from __future__ import annotations

from nameback.key_phrases import extract_key_phrases, is_stop_word, key_phrase_text

TEXT = "Solar panel installation guide. Solar panel installation costs. Solar panel installation permits."


def test_empty_and_stop_word_only_input() -> None:
    assert extract_key_phrases("") == []
    assert extract_key_phrases(None) == []
    assert extract_key_phrases("the and of to with") == []
    assert key_phrase_text("   ") == ""


def test_frequent_early_phrase_ranks_first_with_original_casing() -> None:
    phrases = extract_key_phrases(TEXT)
    assert phrases[0] == "Solar panel installation"
    assert len(phrases) <= 3


def test_phrases_do_not_overlap_and_fit_char_cap() -> None:
    phrases = extract_key_phrases(TEXT, max_phrases=3, max_chars=80)
    assert len(" ".join(phrases)) <= 80
    assert phrases == ["Solar panel installation", "guide", "panel installation costs"]


def test_tight_char_cap() -> None:
    phrases = extract_key_phrases(TEXT, max_chars=10)
    assert phrases == ["Solar"]


def test_phrases_do_not_cross_sentence_punctuation() -> None:
    phrases = extract_key_phrases("Budget meeting. Marketing plan.", max_phrases=5)
    assert "meeting Marketing" not in " ".join(phrases)
    assert all("." not in p for p in phrases)


def test_extraction_is_deterministic() -> None:
    text = "Quarterly sales report for the northern region with sales figures and sales targets."
    assert extract_key_phrases(text) == extract_key_phrases(text)


def test_stop_words_are_case_insensitive() -> None:
    assert is_stop_word("The")
    assert not is_stop_word("Solar")

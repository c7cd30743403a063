from __future__ import annotations

from pathlib import Path

from nameback.series import SeriesKind, detect_series, series_by_path


def _paths(*names: str) -> list[Path]:
    return [Path("/photos") / n for n in names]


def test_underscore_series_with_padding() -> None:
    files = _paths("beach_001.jpg", "beach_002.jpg", "beach_003.jpg", "notes.txt")
    [series] = detect_series(files)
    assert series.kind is SeriesKind.UNDERSCORE
    assert series.prefix == "beach"
    assert series.digit_width == 3
    assert series.member_ordinals == ("001", "002", "003")
    assert series.ordinal_suffix(Path("/photos/beach_002.jpg")) == "002"
    assert series.ordinal_suffix(Path("/photos/notes.txt")) is None


def test_two_members_are_not_a_series() -> None:
    assert detect_series(_paths("trip_1.jpg", "trip_2.jpg")) == []


def test_parenthesized_series() -> None:
    [series] = detect_series(_paths("photo (1).jpg", "photo (2).jpg", "photo(3).jpg"))
    assert series.kind is SeriesKind.PARENTHESIZED
    assert series.prefix == "photo"
    assert series.digit_width == 0


def test_hyphen_and_space_series() -> None:
    found = detect_series(_paths("scan-1.pdf", "scan-2.pdf", "scan-3.pdf", "trip 1.mp4", "trip 2.mp4", "trip 3.mp4"))
    assert {(s.prefix, s.kind) for s in found} == {("scan", SeriesKind.HYPHEN), ("trip", SeriesKind.SPACE)}


def test_unpadded_ordinal_joins_padded_class_of_same_width() -> None:
    files = _paths("img_01.jpg", "img_02.jpg", "img_10.jpg", "img_3.jpg")
    [series] = detect_series(files)
    assert series.digit_width == 2
    assert series.member_ordinals == ("01", "02", "10")
    assert Path("/photos/img_3.jpg") not in series.member_paths


def test_different_kinds_do_not_mix() -> None:
    assert detect_series(_paths("a_1.jpg", "a_2.jpg", "a-3.jpg")) == []


def test_detection_is_order_independent() -> None:
    files = _paths("clip_3.mp4", "clip_1.mp4", "clip_2.mp4")
    assert detect_series(files) == detect_series(list(reversed(files)))


def test_series_by_path_index() -> None:
    files = _paths("beach_001.jpg", "beach_002.jpg", "beach_003.jpg")
    index = series_by_path(detect_series(files))
    assert set(index) == set(files)

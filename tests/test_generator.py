from __future__ import annotations

import threading
from pathlib import Path

from nameback.generator import (
    COUNTER_RESERVE_BYTES,
    FILENAME_MAX_BYTES,
    NameAllocator,
    NameOptions,
    build_base_name,
    generate_filename,
    sanitize_stem,
    timestamp_label,
)
from nameback.series import detect_series

GPS = {
    "GPSLatitude": "37 deg 46' 29.64\" N",
    "GPSLatitudeRef": "North",
    "GPSLongitude": "122 deg 25' 9.84\" W",
    "GPSLongitudeRef": "West",
}


def test_sanitize_stem_replaces_unsafe_characters() -> None:
    assert sanitize_stem('Report: Q1/Q2 "final"') == "Report_Q1_Q2_final"
    assert sanitize_stem("Budget (draft) [v2]") == "Budget_draft_v2"
    assert sanitize_stem("a\x00b c") == "ab_c"


def test_sanitize_stem_trims_and_collapses_separators() -> None:
    assert sanitize_stem("  __Hello   World__  ") == "Hello_World"
    assert sanitize_stem(".hidden name.") == "hidden_name"
    assert sanitize_stem("one -- two") == "one_two"


def test_sanitize_stem_empty_and_reserved() -> None:
    assert sanitize_stem("///") is None
    assert sanitize_stem("") is None
    assert sanitize_stem("con") == "con_"


def test_build_base_name_enrichment_order() -> None:
    name = build_base_name("beach", location="San_Francisco_CA", timestamp="2023-10-15", ordinal="001")
    assert name == "beach_San_Francisco_CA_2023-10-15_001"


def test_build_base_name_truncation_keeps_ordinal() -> None:
    name = build_base_name("x" * 300, ordinal="007", max_chars=200)
    assert len(name) == 200
    assert name.endswith("_007")


def test_build_base_name_byte_cap_keeps_ordinal() -> None:
    name = build_base_name("\u6d77" * 120, ordinal="012", max_bytes=100)
    assert name.endswith("_012")
    assert len(name.encode("utf-8")) <= 100
    # 96 bytes left for the head, exactly 32 three-byte characters
    assert name == "\u6d77" * 32 + "_012"


def test_build_base_name_byte_cap_never_splits_a_character() -> None:
    name = build_base_name("ab" + "\u00e9" * 20, max_bytes=9)
    assert name == "ab\u00e9\u00e9\u00e9"


def test_generate_filename_fits_filesystem_limit() -> None:
    name = generate_filename(
        "\u6d77" * 200,
        path=Path("/photos/a.jpeg"),
        metadata={},
        series=None,
        options=NameOptions(),
        allocator=NameAllocator(),
        geocoder=lambda point: None,
    )
    assert name.endswith(".jpeg")
    assert len(name.encode("utf-8")) <= FILENAME_MAX_BYTES - COUNTER_RESERVE_BYTES


def test_timestamp_label_prefers_date_time_original() -> None:
    meta = {"CreateDate": "2020:01:01 00:00:00", "DateTimeOriginal": "2023:10:15 14:30:22"}
    assert timestamp_label(meta) == "2023-10-15"
    assert timestamp_label({}) is None


def test_allocator_is_case_insensitive() -> None:
    allocator = NameAllocator(["Report.pdf"])
    assert allocator.allocate("report", ".pdf") == "report_1.pdf"
    assert allocator.allocate("report", ".pdf") == "report_2.pdf"


def test_allocator_returns_own_name() -> None:
    allocator = NameAllocator(["report.pdf", "report_1.pdf"])
    assert allocator.allocate("Report", ".pdf", own_name="report.pdf") == "Report.pdf"
    assert allocator.allocate("report", ".pdf", own_name="report_1.pdf") == "report_1.pdf"


def test_allocator_is_thread_safe() -> None:
    allocator = NameAllocator()
    results: list[str] = []
    lock = threading.Lock()

    def _worker() -> None:
        name = allocator.allocate("scan", ".png")
        with lock:
            results.append(name)

    threads = [threading.Thread(target=_worker) for _ in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(set(results)) == 50


def test_allocator_seeded_from_directory(tmp_path) -> None:
    (tmp_path / "notes.txt").write_text("x", encoding="utf-8")
    (tmp_path / "sub").mkdir()
    allocator = NameAllocator.for_directory(tmp_path)
    assert allocator.is_taken("NOTES.txt")
    assert allocator.is_taken("sub")


def test_generate_filename_with_series_and_timestamp() -> None:
    files = [Path(f"/photos/IMG_{i:03d}.jpg") for i in range(1, 4)]
    [series] = detect_series(files)
    name = generate_filename(
        "Sunset Beach",
        path=files[0],
        metadata={"DateTimeOriginal": "2023:10:15 14:30:22"},
        series=series,
        options=NameOptions(include_timestamp=True),
        allocator=NameAllocator(p.name for p in files),
        geocoder=lambda point: None,
    )
    assert name == "Sunset_Beach_2023-10-15_001.jpg"


def test_generate_filename_location_geocoded_and_coordinates() -> None:
    path = Path("/photos/IMG_9.jpg")
    geocoded = generate_filename(
        "Golden Gate",
        path=path,
        metadata=GPS,
        series=None,
        options=NameOptions(include_location=True),
        allocator=NameAllocator(),
        geocoder=lambda point: "San_Francisco_CA",
    )
    assert geocoded == "Golden_Gate_San_Francisco_CA.jpg"

    coords = generate_filename(
        "Golden Gate",
        path=path,
        metadata=GPS,
        series=None,
        options=NameOptions(include_location=True, geocode=False),
        allocator=NameAllocator(),
        geocoder=lambda point: "unused",
    )
    assert coords == "Golden_Gate_37.77N_122.42W.jpg"


def test_generate_filename_empty_after_sanitizing() -> None:
    name = generate_filename(
        "???",
        path=Path("/x/a.txt"),
        metadata={},
        series=None,
        options=NameOptions(),
        allocator=NameAllocator(),
        geocoder=lambda point: None,
    )
    assert name is None

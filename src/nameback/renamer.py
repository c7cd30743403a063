from __future__ import annotations

import csv
import json
import logging
import os
import sys
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .candidates import CollectOptions, Collaborators, collect_candidates
from .generator import NameAllocator, NameOptions, generate_filename
from .rename_ops import (
    REPORT_FIELDS,
    Disposition,
    RenameOutcome,
    RenamePlan,
    RenameState,
    commit_plan,
    ensure_not_root,
)
from .scoring import QualityScorer, ScoringWeights, Selection, load_scoring_weights, weights_from_dict
from .series import SeriesPattern, detect_series, series_by_path

logger = logging.getLogger(__name__)

DEFAULT_OCR_LANGUAGES = ("chi_tra", "chi_sim", "eng")


@dataclass(frozen=True)
class RenamerConfig:
    dry_run: bool = False
    skip_hidden: bool = False
    include_location: bool = False
    include_timestamp: bool = False
    geocode: bool = True  # Reverse-geocode GPS to City_Region; off = coordinates only
    multiframe_video: bool = True  # OCR frames at 1s, 5s and 10s instead of only 1s
    verbose: bool = False
    # Walk subdirectories; every directory is its own batch (own series and name space).
    recursive: bool = False
    # Threads for metadata/OCR/text analysis. Names are allocated and renames applied sequentially.
    workers: int = 1
    # Offer parent/grandparent folder names as a candidate.
    use_directory_context: bool = True
    # Tesseract languages tried per image; the longest result wins.
    ocr_languages: tuple[str, ...] = DEFAULT_OCR_LANGUAGES
    # Text longer than this is reduced to key phrases.
    key_phrase_min_chars: int = 150
    max_key_phrases: int = 3
    max_key_phrase_chars: int = 80
    max_name_chars: int = 200
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    # Write outcomes as JSON (or CSV for a .csv suffix).
    report_path: str | Path | None = None

    def __post_init__(self) -> None:
        if isinstance(self.ocr_languages, str):
            object.__setattr__(self, "ocr_languages", tuple(self.ocr_languages.replace("+", ",").split(",")))
        langs = tuple(lang.strip() for lang in self.ocr_languages if lang and lang.strip())
        if not langs:
            raise ValueError("ocr_languages must name at least one Tesseract language")
        object.__setattr__(self, "ocr_languages", langs)
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        if self.key_phrase_min_chars < 0:
            raise ValueError(f"key_phrase_min_chars must be >= 0, got {self.key_phrase_min_chars}")
        if self.max_key_phrases < 1:
            raise ValueError(f"max_key_phrases must be >= 1, got {self.max_key_phrases}")
        if self.max_key_phrase_chars < 10:
            raise ValueError(f"max_key_phrase_chars must be >= 10, got {self.max_key_phrase_chars}")
        if not 20 <= self.max_name_chars <= 250:
            raise ValueError(f"max_name_chars must be between 20 and 250, got {self.max_name_chars}")
        if not isinstance(self.weights, ScoringWeights):
            raise ValueError("weights must be a ScoringWeights instance")

    def collect_options(self) -> CollectOptions:
        return CollectOptions(
            ocr_languages=self.ocr_languages,
            multiframe_video=self.multiframe_video,
            use_directory_context=self.use_directory_context,
            key_phrase_min_chars=self.key_phrase_min_chars,
            max_key_phrases=self.max_key_phrases,
            max_key_phrase_chars=self.max_key_phrase_chars,
        )

    def name_options(self) -> NameOptions:
        return NameOptions(
            include_location=self.include_location,
            include_timestamp=self.include_timestamp,
            geocode=self.geocode,
            max_name_chars=self.max_name_chars,
        )


def build_config_from_flat_dict(data: dict) -> RenamerConfig:
    """
    Build RenamerConfig from a flat dict of option names -> values (CLI args or
    a JSON/YAML config file). Scoring weights may be given inline as a
    ``scoring_weights`` mapping or as a ``scoring_weights_file`` path.
    """
    allowed = set(RenamerConfig.__dataclass_fields__)
    kwargs = {k: v for k, v in data.items() if k in allowed and v is not None}
    weights_file = data.get("scoring_weights_file")
    inline = data.get("scoring_weights")
    if weights_file:
        kwargs["weights"] = load_scoring_weights(weights_file)
    elif inline is not None:
        kwargs["weights"] = weights_from_dict(inline)
    if isinstance(kwargs.get("ocr_languages"), list):
        kwargs["ocr_languages"] = tuple(kwargs["ocr_languages"])
    return RenamerConfig(**kwargs)


@dataclass(frozen=True)
class BatchSummary:
    total: int
    renamed: int
    skipped: int
    failed: int
    by_state: dict[RenameState, int]

    @classmethod
    def from_outcomes(cls, outcomes: list[RenameOutcome]) -> BatchSummary:
        counts = Counter(o.state for o in outcomes)
        return cls(
            total=len(outcomes),
            renamed=counts[RenameState.RENAMED],
            skipped=sum(n for state, n in counts.items() if state.is_skip),
            failed=counts[RenameState.FAILED],
            by_state=dict(counts),
        )

    def line(self) -> str:
        return f"Processed {self.total}, renamed {self.renamed}, skipped {self.skipped}, failed {self.failed}."


@dataclass(frozen=True)
class _Analysis:
    path: Path
    metadata: dict[str, Any]
    selection: Selection | None
    error: BaseException | None = None


def _is_hidden(path: Path) -> bool:
    return path.name.startswith(".")


def _collect_files(directory: Path, *, recursive: bool, skip_hidden: bool) -> dict[Path, list[Path]]:
    """Regular files grouped by directory, each group sorted by name."""
    groups: dict[Path, list[Path]] = {}
    if recursive:
        for root, dirs, files in os.walk(directory):
            if skip_hidden:
                dirs[:] = [d for d in dirs if not d.startswith(".")]
            dirs.sort()
            root_path = Path(root)
            paths = [root_path / f for f in files]
            paths = [p for p in paths if p.is_file() and not (skip_hidden and _is_hidden(p))]
            if paths:
                groups[root_path] = sorted(paths, key=lambda p: p.name)
    else:
        paths = [p for p in directory.iterdir() if p.is_file() and not (skip_hidden and _is_hidden(p))]
        if paths:
            groups[directory] = sorted(paths, key=lambda p: p.name)
    return groups


def _analyze_file(
    path: Path,
    config: RenamerConfig,
    scorer: QualityScorer,
    collaborators: Collaborators,
) -> _Analysis:
    """Metadata, candidates and ranking for one file. Safe to run on a worker thread."""
    try:
        category = collaborators.detect_type(path)
        metadata = collaborators.read_metadata(path) or {}
        candidates = collect_candidates(path, category, metadata, config.collect_options(), collaborators)
        return _Analysis(path, metadata, scorer.select(candidates))
    except Exception as exc:
        return _Analysis(path, {}, None, error=exc)


def _analyze_all(
    files: list[Path],
    config: RenamerConfig,
    collaborators: Collaborators,
) -> list[_Analysis]:
    scorer = QualityScorer(config.weights)
    if config.workers > 1 and len(files) > 1:
        executor = ThreadPoolExecutor(max_workers=config.workers)
        try:
            # map() yields in input order, so results stay in file order.
            results = list(executor.map(lambda p: _analyze_file(p, config, scorer, collaborators), files))
        except KeyboardInterrupt:
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown()
        return results
    return [_analyze_file(p, config, scorer, collaborators) for p in files]


def _plan(
    analysis: _Analysis,
    *,
    series: SeriesPattern | None,
    config: RenamerConfig,
    allocator: NameAllocator,
    collaborators: Collaborators,
) -> RenamePlan:
    path = analysis.path
    selection = analysis.selection
    if selection is None or not selection.ranked:
        return RenamePlan(path, None, Disposition.SKIP_NO_CANDIDATE, reason="no name candidates")
    if selection.best is None:
        top = selection.ranked[0]
        return RenamePlan(
            path,
            None,
            Disposition.SKIP_BELOW_THRESHOLD,
            candidate=top.candidate,
            reason=f"best candidate {top.text!r} scored {top.score:.2f} < {config.weights.min_score:.2f}",
        )
    winner = selection.best.candidate
    name = generate_filename(
        winner.text,
        path=path,
        metadata=analysis.metadata,
        series=series,
        options=config.name_options(),
        allocator=allocator,
        geocoder=collaborators.reverse_geocode,
    )
    if name is None:
        return RenamePlan(
            path, None, Disposition.SKIP_NO_CANDIDATE, candidate=winner, reason="candidate is empty after sanitizing"
        )
    if name.lower() == path.name.lower():
        return RenamePlan(path, name, Disposition.SKIP_UNCHANGED, candidate=winner, reason="already named")
    return RenamePlan(path, name, Disposition.RENAME, candidate=winner)


def _plan_directory(
    directory: Path,
    files: list[Path],
    config: RenamerConfig,
    collaborators: Collaborators,
) -> tuple[NameAllocator, list[tuple[RenamePlan, BaseException | None]]]:
    """Series detection, analysis and name allocation for one directory, in file order."""
    series_index = series_by_path(detect_series(files))
    allocator = NameAllocator.for_directory(directory)
    planned: list[tuple[RenamePlan, BaseException | None]] = []
    for analysis in _analyze_all(files, config, collaborators):
        if analysis.error is not None:
            plan = RenamePlan(
                analysis.path, None, Disposition.SKIP_NO_CANDIDATE, reason=f"analysis failed: {analysis.error}"
            )
            planned.append((plan, analysis.error))
            continue
        plan = _plan(
            analysis,
            series=series_index.get(analysis.path),
            config=config,
            allocator=allocator,
            collaborators=collaborators,
        )
        planned.append((plan, None))
    return allocator, planned


def _resolve_directory(directory: str | Path) -> Path:
    if not str(directory).strip():
        raise ValueError("Directory path must be non-empty.")
    path = Path(directory)
    if not path.exists():
        raise FileNotFoundError(f"Directory does not exist: {path}")
    if not path.is_dir():
        raise NotADirectoryError(f"Not a directory: {path}")
    return path.resolve()


def analyze_directory(
    directory: str | Path,
    config: RenamerConfig | None = None,
    collaborators: Collaborators | None = None,
) -> list[RenamePlan]:
    """Plans for every file without touching the filesystem (preview)."""
    ensure_not_root()
    config = config or RenamerConfig()
    collaborators = collaborators or Collaborators()
    path = _resolve_directory(directory)
    plans: list[RenamePlan] = []
    for subdir, files in _collect_files(path, recursive=config.recursive, skip_hidden=config.skip_hidden).items():
        _, planned = _plan_directory(subdir, files, config, collaborators)
        plans.extend(plan for plan, _ in planned)
    return plans


def _log_outcome(outcome: RenameOutcome, verbose: bool) -> None:
    if outcome.state is RenameState.RENAMED or outcome.state is RenameState.FAILED:
        return  # logged by commit_plan
    level = logging.INFO if verbose else logging.DEBUG
    logger.log(level, "Skipping %s: %s (%s)", outcome.original_path.name, outcome.state.value, outcome.reason)


def _write_json_or_csv(path: Path, rows: list[dict], csv_fieldnames: list[str] | None) -> None:
    """Write rows to path as CSV (if csv_fieldnames and .csv suffix) or JSON. Creates parent dirs."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".csv" and csv_fieldnames:
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=csv_fieldnames)
            writer.writeheader()
            writer.writerows(rows)
    else:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(rows, f, ensure_ascii=False, indent=2)


def process_directory(
    directory: str | Path,
    config: RenamerConfig | None = None,
    collaborators: Collaborators | None = None,
) -> list[RenameOutcome]:
    """
    Rename every file in directory to a name derived from its content.

    Raises RootExecutionError when run as root and FileNotFoundError /
    NotADirectoryError for a bad path; everything per file ends up in the
    returned outcomes, one per file, in name order (per directory when
    recursive).
    """
    ensure_not_root()
    config = config or RenamerConfig()
    collaborators = collaborators or Collaborators()
    path = _resolve_directory(directory)
    groups = _collect_files(path, recursive=config.recursive, skip_hidden=config.skip_hidden)
    total_files = sum(len(files) for files in groups.values())

    if config.dry_run:
        logger.info("Dry-run mode: no files will be renamed.")

    outcomes: list[RenameOutcome] = []
    try:
        for subdir, files in groups.items():
            logger.info("Analyzing %s file(s) in %s", len(files), subdir)
            allocator, planned = _plan_directory(subdir, files, config, collaborators)
            for i, (plan, error) in enumerate(planned):
                logger.debug("Processing %s/%s: %s", i + 1, len(planned), plan.original_path)
                if error is not None:
                    logger.error("Failed to process %s: %s", plan.original_path, error)
                    outcome = RenameOutcome(plan, RenameState.FAILED, reason=str(error), dry_run=config.dry_run)
                else:
                    outcome = commit_plan(plan, allocator=allocator, dry_run=config.dry_run)
                _log_outcome(outcome, config.verbose)
                outcomes.append(outcome)
    except KeyboardInterrupt:
        logger.warning(
            "Interrupted: %s of %s file(s) processed; completed renames are kept.", len(outcomes), total_files
        )
        raise
    finally:
        _finish(path, outcomes, config)
    return outcomes


def _finish(path: Path, outcomes: list[RenameOutcome], config: RenamerConfig) -> None:
    if config.report_path and outcomes:
        report = Path(config.report_path)
        _write_json_or_csv(report, [o.as_row() for o in outcomes], REPORT_FIELDS)
        logger.info("Wrote report (%s entries) to %s", len(outcomes), report)

    if not outcomes:
        logger.info("No files found in %s", path)
        print(f"No files found in {path}.", file=sys.stderr)
        return
    summary = BatchSummary.from_outcomes(outcomes)
    logger.info(
        "Summary: %s file(s) processed, %s renamed, %s skipped, %s failed",
        summary.total,
        summary.renamed,
        summary.skipped,
        summary.failed,
    )
    print(summary.line(), file=sys.stderr)

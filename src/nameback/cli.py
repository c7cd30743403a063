from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from .logging_utils import LOG_FILE_ENV, LOG_LEVEL_ENV, parse_level, setup_logging
from .rename_ops import RenameOutcome, RenameState, RootExecutionError
from .renamer import RenamerConfig, build_config_from_flat_dict, process_directory

logger = logging.getLogger(__name__)


def _load_config_file(path: str | Path) -> dict:
    """Load a JSON or YAML config file into a flat dict. Raises ValueError on unreadable or invalid files."""
    p = Path(path)
    try:
        raw = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Could not read config file {p}: {exc!s}") from exc
    suf = p.suffix.lower()
    if suf in (".yaml", ".yml"):
        try:
            import yaml
        except ImportError as exc:
            raise ValueError("YAML config files need PyYAML. Install with: pip install -e '.[yaml]'") from exc
        try:
            data = yaml.safe_load(raw) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {p.name}: {exc!s}") from exc
    else:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {p.name}: {exc!s}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Config file {p.name} must contain a mapping of option names to values")
    return data


def _add_input_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("directory", metavar="DIR", help="Directory whose files should be renamed")
    p.add_argument(
        "--recursive",
        dest="recursive",
        action="store_true",
        default=None,
        help="Also process subdirectories (each directory is handled on its own).",
    )
    p.add_argument(
        "--skip-hidden",
        dest="skip_hidden",
        action="store_true",
        default=None,
        help="Ignore files and directories whose name starts with a dot.",
    )
    p.add_argument(
        "--config",
        dest="config",
        default=None,
        metavar="FILE",
        help="JSON or YAML file with option defaults (keys as in RenamerConfig, plus scoring_weights).",
    )


def _add_naming_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_true",
        default=None,
        help="Show what would be renamed without renaming anything.",
    )
    p.add_argument(
        "--include-location",
        dest="include_location",
        action="store_true",
        default=None,
        help="Append GPS location (place name or coordinates) to photo and video names.",
    )
    p.add_argument(
        "--include-timestamp",
        dest="include_timestamp",
        action="store_true",
        default=None,
        help="Append the capture/creation date (YYYY-MM-DD).",
    )
    p.add_argument(
        "--no-geocode",
        dest="geocode",
        action="store_false",
        default=None,
        help="Use raw coordinates instead of reverse-geocoded place names.",
    )
    p.add_argument(
        "--no-directory-context",
        dest="use_directory_context",
        action="store_false",
        default=None,
        help="Never fall back to parent folder names.",
    )


def _add_extraction_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--fast-video",
        dest="multiframe_video",
        action="store_false",
        default=None,
        help="OCR only the frame at 1s of each video (default: frames at 1s, 5s and 10s).",
    )
    p.add_argument(
        "--ocr-lang",
        dest="ocr_languages",
        nargs="+",
        default=None,
        metavar="LANG",
        help="Tesseract languages to try, in priority order (default: chi_tra chi_sim eng).",
    )
    p.add_argument(
        "--workers",
        dest="workers",
        type=int,
        default=None,
        metavar="N",
        help="Parallel analysis threads (default 1). Renames are always applied sequentially.",
    )


def _add_output_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--report",
        dest="report_path",
        default=None,
        metavar="FILE",
        help="Write per-file outcomes to FILE (.json or .csv).",
    )
    p.add_argument(
        "--quiet",
        dest="quiet",
        action="store_true",
        help="Less output (log level WARNING). Overridden by --verbose.",
    )
    p.add_argument(
        "--verbose",
        "-v",
        dest="verbose",
        action="store_true",
        default=None,
        help="More output (log level DEBUG) and the reason for every skipped file. Overrides --quiet.",
    )
    p.add_argument(
        "--log-file",
        dest="log_file",
        default=None,
        metavar="PATH",
        help=f"Also write the log to PATH (default: env {LOG_FILE_ENV}, else no log file)",
    )
    p.add_argument(
        "--log-level",
        dest="log_level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Log level (default: env {LOG_LEVEL_ENV} or INFO). Overridden by --verbose/--quiet.",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="nameback",
        description="Rename files to meaningful names derived from their metadata and content.",
    )
    _add_input_args(p.add_argument_group("Input"))
    _add_naming_args(p.add_argument_group("Naming"))
    _add_extraction_args(p.add_argument_group("Extraction"))
    _add_output_args(p.add_argument_group("Output and logging"))
    return p


def _resolve_log_config(args: argparse.Namespace) -> tuple[str | None, int]:
    """Resolve log file path and log level from args and env. Returns (log_file_path, log_level)."""
    log_file = getattr(args, "log_file", None) or os.environ.get(LOG_FILE_ENV) or None
    if getattr(args, "verbose", False):
        log_level = logging.DEBUG
    elif getattr(args, "quiet", False):
        log_level = logging.WARNING
    elif getattr(args, "log_level", None):
        log_level = parse_level(args.log_level)
    else:
        log_level = parse_level(os.environ.get(LOG_LEVEL_ENV), logging.INFO)
    return (log_file, log_level)


_CLI_OPTIONS = (
    "dry_run",
    "skip_hidden",
    "include_location",
    "include_timestamp",
    "geocode",
    "multiframe_video",
    "verbose",
    "recursive",
    "workers",
    "use_directory_context",
    "ocr_languages",
    "report_path",
)


def _build_config_from_args(args: argparse.Namespace, file_defaults: dict) -> RenamerConfig:
    """Config file values first, then every option given on the command line on top."""
    data = dict(file_defaults)
    for attr in _CLI_OPTIONS:
        value = getattr(args, attr, None)
        if value is not None:
            data[attr] = value
    try:
        return build_config_from_flat_dict(data)
    except (TypeError, ValueError) as exc:
        raise SystemExit(f"Invalid configuration: {exc!s}") from exc


def _print_results(outcomes: list[RenameOutcome], *, dry_run: bool, verbose: bool) -> None:
    arrow = "would be renamed to" if dry_run else "->"
    for outcome in outcomes:
        if outcome.state is RenameState.RENAMED:
            print(f"{outcome.original_path.name} {arrow} {outcome.final_name}")
        elif verbose or outcome.state is RenameState.FAILED:
            print(f"{outcome.original_path.name}: {outcome.state.value} ({outcome.reason})")


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    log_file, log_level = _resolve_log_config(args)
    setup_logging(log_file=log_file, level=log_level)

    try:
        file_defaults = _load_config_file(args.config) if getattr(args, "config", None) else {}
    except ValueError as exc:
        raise SystemExit(f"Error: {exc!s}") from exc
    config = _build_config_from_args(args, file_defaults)

    try:
        outcomes = process_directory(args.directory, config)
    except RootExecutionError as exc:
        raise SystemExit(f"Error: {exc!s}") from exc
    except (FileNotFoundError, NotADirectoryError) as exc:
        raise SystemExit(f"Error: {exc!s}") from exc
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        raise SystemExit(130) from None
    except (ValueError, OSError) as exc:
        logger.debug("Unhandled exception", exc_info=True)
        raise SystemExit(f"Error: {exc!s}") from exc

    _print_results(outcomes, dry_run=config.dry_run, verbose=config.verbose)


if __name__ == "__main__":
    main()

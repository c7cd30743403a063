"""
Rename plans, outcomes and the commit protocol.

A plan is committed only if the source still exists, its directory is
writable and the destination is still free on disk. Existing files are never
overwritten. Dry-run performs the same read-only checks and only skips the
final ``os.rename``.
"""

from __future__ import annotations

import errno
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .candidates import NameCandidate
from .generator import FILENAME_MAX_BYTES, NameAllocator

logger = logging.getLogger(__name__)


class RootExecutionError(RuntimeError):
    """Raised when the process runs with root privileges."""


def ensure_not_root() -> None:
    geteuid = getattr(os, "geteuid", None)
    if geteuid is not None and geteuid() == 0:
        raise RootExecutionError(
            "Refusing to run as root: renaming files with elevated privileges can damage system files."
        )


class Disposition(str, Enum):
    RENAME = "rename"
    SKIP_NO_CANDIDATE = "skip_no_candidate"
    SKIP_BELOW_THRESHOLD = "skip_below_threshold"
    SKIP_WOULD_OVERWRITE = "skip_would_overwrite"
    SKIP_PERMISSION_DENIED = "skip_permission_denied"
    SKIP_UNCHANGED = "skip_unchanged"


class RenameState(str, Enum):
    PLANNED = "planned"
    RENAMED = "renamed"
    SKIPPED_NO_CANDIDATE = "skipped_no_candidate"
    SKIPPED_BELOW_THRESHOLD = "skipped_below_threshold"
    SKIPPED_WOULD_OVERWRITE = "skipped_would_overwrite"
    SKIPPED_PERMISSION_DENIED = "skipped_permission_denied"
    SKIPPED_UNCHANGED = "skipped_unchanged"
    FAILED = "failed"

    @property
    def is_skip(self) -> bool:
        return self.value.startswith("skipped_")


_SKIP_STATES = {
    Disposition.SKIP_NO_CANDIDATE: RenameState.SKIPPED_NO_CANDIDATE,
    Disposition.SKIP_BELOW_THRESHOLD: RenameState.SKIPPED_BELOW_THRESHOLD,
    Disposition.SKIP_WOULD_OVERWRITE: RenameState.SKIPPED_WOULD_OVERWRITE,
    Disposition.SKIP_PERMISSION_DENIED: RenameState.SKIPPED_PERMISSION_DENIED,
    Disposition.SKIP_UNCHANGED: RenameState.SKIPPED_UNCHANGED,
}


@dataclass(frozen=True)
class RenamePlan:
    original_path: Path
    proposed_name: str | None
    disposition: Disposition
    candidate: NameCandidate | None = None
    reason: str = ""

    def __post_init__(self) -> None:
        if self.disposition is Disposition.RENAME and not self.proposed_name:
            raise ValueError("A RENAME plan needs a proposed name")


@dataclass(frozen=True)
class RenameOutcome:
    plan: RenamePlan
    state: RenameState
    final_name: str | None = None
    reason: str = ""
    dry_run: bool = False

    @property
    def original_path(self) -> Path:
        return self.plan.original_path

    def as_row(self) -> dict[str, str]:
        candidate = self.plan.candidate
        return {
            "path": str(self.plan.original_path),
            "new_name": self.final_name or "",
            "state": self.state.value,
            "source": candidate.source.value if candidate else "",
            "reason": self.reason,
            "dry_run": "yes" if self.dry_run else "no",
        }


REPORT_FIELDS = ["path", "new_name", "state", "source", "reason", "dry_run"]


def _writable(path: Path) -> bool:
    return os.access(path, os.W_OK)


def _os_error_reason(exc: OSError, name: str) -> str:
    if exc.errno == errno.ENAMETOOLONG:
        return f"filename too long for filesystem: {name!r}"
    return str(exc)


def _free_target(directory: Path, name: str, src: Path, allocator: NameAllocator) -> str | None:
    """Name that is free on disk: the planned one, or one fresh allocation after a collision."""
    if not (directory / name).exists():
        return name
    logger.info("Target %s appeared on disk; allocating a new name for %s", name, src.name)
    allocator.mark_taken(name)
    stem, ext = os.path.splitext(name)
    fresh = allocator.allocate(stem, ext, own_name=src.name)
    if fresh.lower() == src.name.lower() or (directory / fresh).exists():
        return None
    return fresh


def commit_plan(plan: RenamePlan, *, allocator: NameAllocator, dry_run: bool) -> RenameOutcome:
    """
    Carry out one plan. Non-RENAME plans map straight to their skip state.
    OS errors become FAILED outcomes; nothing here raises for a single file.
    """
    if plan.disposition is not Disposition.RENAME:
        return RenameOutcome(plan, _SKIP_STATES[plan.disposition], reason=plan.reason, dry_run=dry_run)

    src = plan.original_path
    directory = src.parent
    # Destination is always the source's own directory.
    name = Path(plan.proposed_name or "").name

    if not src.exists():
        logger.error("Source vanished before rename: %s", src)
        return RenameOutcome(plan, RenameState.FAILED, reason="source no longer exists", dry_run=dry_run)
    if not _writable(directory) or not _writable(src):
        logger.warning("Permission denied for %s; skipping", src)
        return RenameOutcome(
            plan, RenameState.SKIPPED_PERMISSION_DENIED, reason="directory or file not writable", dry_run=dry_run
        )

    if len(name.encode("utf-8")) > FILENAME_MAX_BYTES:
        logger.error("Not renaming %s: %r is longer than %s bytes", src.name, name, FILENAME_MAX_BYTES)
        return RenameOutcome(
            plan, RenameState.FAILED, reason=f"filename too long for filesystem: {name!r}", dry_run=dry_run
        )
    try:
        target_name = _free_target(directory, name, src, allocator)
    except OSError as exc:
        reason = _os_error_reason(exc, name)
        logger.error("Cannot check target %s for %s: %s", name, src.name, reason)
        return RenameOutcome(plan, RenameState.FAILED, reason=reason, dry_run=dry_run)
    if target_name is None:
        logger.warning("Not renaming %s: %s exists and would be overwritten", src.name, name)
        return RenameOutcome(
            plan, RenameState.SKIPPED_WOULD_OVERWRITE, reason=f"target {name!r} exists", dry_run=dry_run
        )
    target = directory / target_name

    if dry_run:
        logger.info("Dry-run: would rename '%s' to '%s'", src.name, target.name)
        return RenameOutcome(plan, RenameState.RENAMED, final_name=target.name, dry_run=True)

    try:
        os.rename(src, target)
    except PermissionError as exc:
        logger.warning("Permission denied renaming %s: %s", src, exc)
        return RenameOutcome(plan, RenameState.SKIPPED_PERMISSION_DENIED, reason=str(exc))
    except OSError as exc:
        reason = _os_error_reason(exc, target.name)
        logger.error("Failed to rename %s -> %s: %s", src, target.name, reason)
        return RenameOutcome(plan, RenameState.FAILED, reason=reason)
    logger.info("Renamed '%s' to '%s'", src.name, target.name)
    return RenameOutcome(plan, RenameState.RENAMED, final_name=target.name)

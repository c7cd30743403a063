from __future__ import annotations

import errno
import os

import pytest

from nameback import rename_ops
from nameback.generator import NameAllocator
from nameback.rename_ops import (
    Disposition,
    RenamePlan,
    RenameState,
    RootExecutionError,
    commit_plan,
    ensure_not_root,
)


def _plan(path, name) -> RenamePlan:
    return RenamePlan(path, name, Disposition.RENAME)


def test_ensure_not_root_refuses_uid_zero(monkeypatch) -> None:
    monkeypatch.setattr(os, "geteuid", lambda: 0, raising=False)
    with pytest.raises(RootExecutionError):
        ensure_not_root()


def test_rename_plan_requires_name() -> None:
    with pytest.raises(ValueError):
        RenamePlan(rename_ops.Path("/x/a.txt"), None, Disposition.RENAME)


@pytest.mark.parametrize(
    ("disposition", "state"),
    [
        (Disposition.SKIP_NO_CANDIDATE, RenameState.SKIPPED_NO_CANDIDATE),
        (Disposition.SKIP_BELOW_THRESHOLD, RenameState.SKIPPED_BELOW_THRESHOLD),
        (Disposition.SKIP_UNCHANGED, RenameState.SKIPPED_UNCHANGED),
    ],
)
def test_skip_plans_map_to_states(tmp_path, disposition, state) -> None:
    path = tmp_path / "a.txt"
    path.write_text("x", encoding="utf-8")
    outcome = commit_plan(RenamePlan(path, None, disposition, reason="r"), allocator=NameAllocator(), dry_run=False)
    assert outcome.state is state
    assert outcome.state.is_skip
    assert path.exists()


def test_commit_renames_file(tmp_path) -> None:
    src = tmp_path / "a.txt"
    src.write_text("hello", encoding="utf-8")
    outcome = commit_plan(_plan(src, "Greeting.txt"), allocator=NameAllocator(["a.txt"]), dry_run=False)
    assert outcome.state is RenameState.RENAMED
    assert outcome.final_name == "Greeting.txt"
    assert not src.exists()
    assert (tmp_path / "Greeting.txt").read_text(encoding="utf-8") == "hello"


def test_dry_run_leaves_file_alone(tmp_path) -> None:
    src = tmp_path / "a.txt"
    src.write_text("hello", encoding="utf-8")
    outcome = commit_plan(_plan(src, "Greeting.txt"), allocator=NameAllocator(["a.txt"]), dry_run=True)
    assert outcome.state is RenameState.RENAMED
    assert outcome.dry_run
    assert src.exists()
    assert not (tmp_path / "Greeting.txt").exists()


def test_collision_on_disk_gets_fresh_name(tmp_path) -> None:
    src = tmp_path / "a.txt"
    src.write_text("new", encoding="utf-8")
    # Appeared after planning; the allocator never saw it.
    (tmp_path / "Notes.txt").write_text("existing", encoding="utf-8")
    outcome = commit_plan(_plan(src, "Notes.txt"), allocator=NameAllocator(["a.txt"]), dry_run=False)
    assert outcome.final_name == "Notes_1.txt"
    assert (tmp_path / "Notes.txt").read_text(encoding="utf-8") == "existing"
    assert (tmp_path / "Notes_1.txt").read_text(encoding="utf-8") == "new"


def test_second_collision_skips_instead_of_overwriting(tmp_path) -> None:
    src = tmp_path / "a.txt"
    src.write_text("new", encoding="utf-8")
    (tmp_path / "Notes.txt").write_text("one", encoding="utf-8")
    (tmp_path / "Notes_1.txt").write_text("two", encoding="utf-8")
    outcome = commit_plan(_plan(src, "Notes.txt"), allocator=NameAllocator(["a.txt"]), dry_run=False)
    assert outcome.state is RenameState.SKIPPED_WOULD_OVERWRITE
    assert src.read_text(encoding="utf-8") == "new"
    assert (tmp_path / "Notes.txt").read_text(encoding="utf-8") == "one"
    assert (tmp_path / "Notes_1.txt").read_text(encoding="utf-8") == "two"


def test_missing_source_fails(tmp_path) -> None:
    outcome = commit_plan(_plan(tmp_path / "gone.txt", "x.txt"), allocator=NameAllocator(), dry_run=False)
    assert outcome.state is RenameState.FAILED
    assert "no longer exists" in outcome.reason


def test_permission_denied(monkeypatch, tmp_path) -> None:
    src = tmp_path / "a.txt"
    src.write_text("x", encoding="utf-8")
    monkeypatch.setattr(rename_ops, "_writable", lambda p: False)
    for dry_run in (True, False):
        outcome = commit_plan(_plan(src, "b.txt"), allocator=NameAllocator(), dry_run=dry_run)
        assert outcome.state is RenameState.SKIPPED_PERMISSION_DENIED
    assert src.exists()


def test_os_error_becomes_failed(monkeypatch, tmp_path) -> None:
    src = tmp_path / "a.txt"
    src.write_text("x", encoding="utf-8")

    def _boom(a, b):
        raise OSError(5, "I/O error")

    monkeypatch.setattr(rename_ops.os, "rename", _boom)
    outcome = commit_plan(_plan(src, "b.txt"), allocator=NameAllocator(), dry_run=False)
    assert outcome.state is RenameState.FAILED
    assert "I/O error" in outcome.reason


def test_path_components_are_stripped(tmp_path) -> None:
    sub = tmp_path / "sub"
    sub.mkdir()
    src = sub / "a.txt"
    src.write_text("x", encoding="utf-8")
    outcome = commit_plan(_plan(src, "../escape.txt"), allocator=NameAllocator(["a.txt"]), dry_run=False)
    assert outcome.final_name == "escape.txt"
    assert (sub / "escape.txt").exists()
    assert not (tmp_path / "escape.txt").exists()


def test_outcome_row() -> None:
    plan = RenamePlan(rename_ops.Path("/d/a.txt"), "b.txt", Disposition.RENAME)
    row = rename_ops.RenameOutcome(plan, RenameState.RENAMED, final_name="b.txt").as_row()
    assert row["new_name"] == "b.txt"
    assert row["state"] == "renamed"
    assert set(row) == set(rename_ops.REPORT_FIELDS)


@pytest.mark.parametrize("dry_run", [True, False])
def test_overlong_name_fails_without_raising(tmp_path, dry_run) -> None:
    src = tmp_path / "a.txt"
    src.write_text("x", encoding="utf-8")
    outcome = commit_plan(_plan(src, "海" * 90 + ".txt"), allocator=NameAllocator(["a.txt"]), dry_run=dry_run)
    assert outcome.state is RenameState.FAILED
    assert "too long" in outcome.reason
    assert src.exists()


def test_target_check_error_becomes_failed(monkeypatch, tmp_path) -> None:
    src = tmp_path / "a.txt"
    src.write_text("x", encoding="utf-8")

    def _stat_fails(directory, name, src, allocator):
        raise OSError(errno.ENAMETOOLONG, "File name too long")

    monkeypatch.setattr(rename_ops, "_free_target", _stat_fails)
    outcome = commit_plan(_plan(src, "b.txt"), allocator=NameAllocator(), dry_run=True)
    assert outcome.state is RenameState.FAILED
    assert outcome.reason == "filename too long for filesystem: 'b.txt'"

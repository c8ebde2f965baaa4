"""Git subprocess wrapper: availability, ref probing, changed-file listings."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional

DIFF_FILTER = "--diff-filter=ACMRTUXB"


class GitError(Exception):
    """Raised when git is unavailable or returns an unexpected error."""


def _run_git(args: list[str], cwd: Path, timeout: int = 30) -> str:
    """Run a git command and return stdout. Raises GitError on failure."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError:
        raise GitError("git is not installed or not on PATH")
    except subprocess.TimeoutExpired:
        raise GitError(f"git command timed out after {timeout}s: git {' '.join(args)}")

    if result.returncode != 0:
        stderr = result.stderr.strip()
        # --quiet probes fail without output
        if not stderr or "fatal" not in stderr.lower():
            return result.stdout
        raise GitError(f"git error: {stderr}")
    return result.stdout


def _lines(output: str) -> List[str]:
    return [line.strip().replace("\\", "/") for line in output.splitlines() if line.strip()]


def git_available(cwd: Path) -> bool:
    try:
        return _run_git(["--version"], cwd=cwd).startswith("git version")
    except GitError:
        return False


def is_inside_work_tree(cwd: Path) -> bool:
    try:
        return _run_git(["rev-parse", "--is-inside-work-tree"], cwd=cwd).strip() == "true"
    except GitError:
        return False


def ref_exists(cwd: Path, ref: str) -> bool:
    """True if *ref* resolves to a commit. *ref* must already be validated."""
    try:
        return bool(_run_git(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], cwd=cwd).strip())
    except GitError:
        return False


def merge_base(cwd: Path, ref: str) -> Optional[str]:
    try:
        out = _run_git(["merge-base", "HEAD", ref], cwd=cwd).strip()
    except GitError:
        return None
    return out or None


def diff_names_since(cwd: Path, start: str) -> List[str]:
    """Files changed on HEAD since *start*, relative to *cwd*."""
    return _lines(_run_git(["diff", "--name-only", "--relative", DIFF_FILTER, f"{start}...HEAD"], cwd=cwd))


def working_tree_changes(cwd: Path) -> List[str]:
    """Unstaged, staged and untracked files, relative to *cwd*."""
    try:
        unstaged = _run_git(["diff", "--name-only", "--relative", DIFF_FILTER, "HEAD"], cwd=cwd)
    except GitError:
        # no commits yet
        unstaged = ""
    staged = _run_git(["diff", "--cached", "--name-only", "--relative", DIFF_FILTER], cwd=cwd)
    untracked = _run_git(["ls-files", "--others", "--exclude-standard"], cwd=cwd)
    return _lines(unstaged) + _lines(staged) + _lines(untracked)

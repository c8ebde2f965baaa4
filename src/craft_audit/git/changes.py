"""Resolve which template files changed, for ``--changed-only`` audits.

User-supplied refs never reach git unvalidated: a ref must pass
:func:`is_valid_git_ref` before it is probed, and every path git returns
must pass :func:`is_safe_relative_path` before it is used.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import AbstractSet, Iterable, List, Mapping, Optional

from craft_audit.findings.models import Finding
from craft_audit.git import adapter
from craft_audit.git.adapter import GitError
from craft_audit.git.models import ChangeSet, ChangeStatus

logger = logging.getLogger(__name__)

MAX_REF_LENGTH = 256
AUTO_BASE_REF = "auto"

# Checked in order for base_ref = "auto"
CI_BASE_REF_VARS = ("GITHUB_BASE_REF", "CI_BASE_REF", "BITBUCKET_PR_DESTINATION_BRANCH")

TEMPLATE_EXTENSIONS = (".twig", ".html")

_VALID_REF_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._/~^-]*$")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")


def is_valid_git_ref(ref: object) -> bool:
    """True if *ref* is safe to pass to git as a revision argument."""
    if not isinstance(ref, str) or not ref or len(ref) > MAX_REF_LENGTH:
        return False
    if ref.startswith("-"):
        return False
    if ".." in ref:
        return False
    if _CONTROL_RE.search(ref):
        return False
    return _VALID_REF_RE.match(ref) is not None


def is_safe_relative_path(path: str) -> bool:
    """Reject absolute paths and anything that climbs out with ``..``."""
    if not path:
        return False
    candidate = path.replace("\\", "/")
    if candidate.startswith("/") or re.match(r"^[A-Za-z]:", candidate):
        return False
    return ".." not in candidate.split("/")


def resolve_base_ref(requested: Optional[str], env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Expand ``"auto"`` from CI variables. Other values pass through."""
    if not requested:
        return None
    if requested != AUTO_BASE_REF:
        return requested
    env = os.environ if env is None else env
    for var in CI_BASE_REF_VARS:
        value = (env.get(var) or "").strip()
        if value:
            logger.debug("Base ref %r taken from %s", value, var)
            return value
    return None


def _resolve_diff_ref(cwd: Path, ref: str) -> Optional[str]:
    if not is_valid_git_ref(ref):
        logger.warning("Rejected invalid git ref %r", ref)
        return None
    for candidate in (ref, f"origin/{ref}", f"refs/remotes/origin/{ref}", f"refs/heads/{ref}"):
        if adapter.ref_exists(cwd, candidate):
            return candidate
    logger.warning("Git ref %r not found locally or on origin", ref)
    return None


def _template_root_rel(project_path: Path, templates_path: Path) -> Optional[str]:
    try:
        rel = templates_path.resolve().relative_to(project_path.resolve())
    except ValueError:
        return None
    rel_str = rel.as_posix().rstrip("/")
    return "" if rel_str == "." else rel_str


def filter_template_changes(candidates: Iterable[str], template_root: str) -> frozenset:
    """Keep template files under *template_root*, relative to it."""
    changed = set()
    for path in candidates:
        if not path.endswith(TEMPLATE_EXTENSIONS):
            continue
        if not is_safe_relative_path(path):
            continue
        if not template_root:
            changed.add(path)
            continue
        if not path.startswith(template_root + "/"):
            continue
        relative = path[len(template_root) + 1:]
        if is_safe_relative_path(relative):
            changed.add(relative)
    return frozenset(changed)


def resolve_change_set(
    project_path: Path,
    templates_path: Path,
    base_ref: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ChangeSet:
    """Return template files changed in *project_path*.

    Without a base ref, uses the working tree (unstaged, staged, untracked).
    With one, diffs ``<merge-base>...HEAD``. An unusable ref falls back to
    the working tree with ``fell_back`` set.
    """
    if not adapter.git_available(project_path):
        logger.warning("git is not available; analyzing all templates")
        return ChangeSet(status=ChangeStatus.GIT_UNAVAILABLE)
    if not adapter.is_inside_work_tree(project_path):
        logger.warning("%s is not a git work tree; analyzing all templates", project_path)
        return ChangeSet(status=ChangeStatus.NOT_A_REPO)

    template_root = _template_root_rel(project_path, templates_path)
    if template_root is None:
        logger.warning("Templates path %s is outside the project; no changes resolved", templates_path)
        return ChangeSet()

    requested = resolve_base_ref(base_ref, env)
    fell_back = bool(base_ref) and requested is None
    if base_ref == AUTO_BASE_REF and requested is None:
        logger.info("No CI base ref variable set; using the working tree")

    candidates: List[str]
    diff_ref = _resolve_diff_ref(project_path, requested) if requested else None
    try:
        if diff_ref is not None:
            start = adapter.merge_base(project_path, diff_ref) or diff_ref
            candidates = adapter.diff_names_since(project_path, start)
        else:
            if requested:
                fell_back = True
            candidates = adapter.working_tree_changes(project_path)
    except GitError as exc:
        logger.warning("Could not list changed files: %s", exc)
        candidates = []

    paths = filter_template_changes(candidates, template_root)
    logger.debug("Changed templates: %d (base %s)", len(paths), diff_ref or "working tree")
    return ChangeSet(paths=paths, base_ref=diff_ref, fell_back=fell_back)


def narrow_to_changes(
    findings: List[Finding],
    change_set: ChangeSet,
    template_rules: AbstractSet[str],
) -> List[Finding]:
    """Keep findings from *template_rules* that sit in changed files.

    Findings from any other rule, and file-less findings, pass through.
    """
    if not change_set.usable:
        return list(findings)
    return [
        f for f in findings
        if f.rule_id not in template_rules or not f.file or f.file in change_set.paths
    ]

"""Git integration: change-set resolution and ref validation."""

from craft_audit.git.changes import (
    is_safe_relative_path,
    is_valid_git_ref,
    narrow_to_changes,
    resolve_base_ref,
    resolve_change_set,
)
from craft_audit.git.models import ChangeSet, ChangeStatus

__all__ = [
    "ChangeSet",
    "ChangeStatus",
    "is_safe_relative_path",
    "is_valid_git_ref",
    "narrow_to_changes",
    "resolve_base_ref",
    "resolve_change_set",
]

"""Data models for change scoping."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional


class ChangeStatus(str, Enum):
    OK = "ok"
    GIT_UNAVAILABLE = "git-unavailable"
    NOT_A_REPO = "not-a-repo"


@dataclass(frozen=True)
class ChangeSet:
    """Template files touched relative to a base ref or the working tree.

    ``paths`` are relative to the template root. When ``status`` is not
    ``OK`` the set is empty and the caller should analyze everything.
    """

    paths: FrozenSet[str] = field(default_factory=frozenset)
    status: ChangeStatus = ChangeStatus.OK
    base_ref: Optional[str] = None  # resolved diff boundary
    fell_back: bool = False  # requested ref unusable, working tree used

    @property
    def usable(self) -> bool:
        return self.status is ChangeStatus.OK

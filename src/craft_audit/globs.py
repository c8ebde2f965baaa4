"""Glob matching shared by ignore paths, plugin file patterns and scoping.

``**`` crosses directory separators, ``*`` and ``?`` stay inside one path
segment. Patterns are anchored at both ends and matched against normalized
forward-slash paths.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable


def normalize(path: str) -> str:
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


@lru_cache(maxsize=512)
def compile_glob(pattern: str) -> re.Pattern[str]:
    pattern = normalize(pattern)
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "*":
            if pattern.startswith("**", i):
                # "**/" also matches zero directories
                if pattern.startswith("**/", i):
                    out.append("(?:.*/)?")
                    i += 3
                else:
                    out.append(".*")
                    i += 2
                continue
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("^" + "".join(out) + "$")


def match(path: str, pattern: str) -> bool:
    return compile_glob(pattern).match(normalize(path)) is not None


def match_any(path: str, patterns: Iterable[str]) -> bool:
    normalized = normalize(path)
    return any(compile_glob(p).match(normalized) is not None for p in patterns)

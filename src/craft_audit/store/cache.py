"""Incremental analysis cache.

Maps a file path to the SHA-256 of the content last analyzed and the raw
findings produced for it. A lookup only hits when the content hash matches
exactly. The file is rebuilt from scratch whenever it is unreadable,
malformed, of another version, or written by a different analyzer
signature.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from craft_audit.findings.models import Finding

logger = logging.getLogger(__name__)

CACHE_VERSION = "1"
CACHE_FILENAME = ".craft-audit-cache.json"


def resolve_cache_path(project_path: Path, custom: Optional[str] = None) -> Path:
    if custom:
        return Path(custom).resolve()
    return project_path / CACHE_FILENAME


def hash_content(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class AnalysisCache:
    """Per-file cache of raw analyzer findings, keyed by content hash."""

    def __init__(self, path: Path, signature: Optional[str] = None) -> None:
        self.path = path
        self.signature = signature
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._hits = 0
        self._misses = 0

    def load(self) -> None:
        """Read the cache file. Starts empty on any problem."""
        self._entries = {}
        if not self.path.is_file():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable cache %s: %s", self.path, exc)
            return
        if not isinstance(data, dict) or data.get("version") != CACHE_VERSION:
            logger.warning("Ignoring cache %s with unsupported version", self.path)
            return
        if self.signature is not None and data.get("signature") != self.signature:
            logger.info("Cache %s was written by another analyzer version; starting fresh", self.path)
            return
        entries = data.get("entries")
        if not isinstance(entries, dict):
            logger.warning("Ignoring cache %s without an entries table", self.path)
            return
        self._entries = {
            k: v for k, v in entries.items()
            if isinstance(v, dict) and isinstance(v.get("hash"), str) and isinstance(v.get("issues"), list)
        }
        logger.debug("Loaded %d cache entries from %s", len(self._entries), self.path)

    def save(self) -> None:
        payload: Dict[str, Any] = {"version": CACHE_VERSION}
        if self.signature is not None:
            payload["signature"] = self.signature
        payload["entries"] = self._entries
        tmp_path = self.path.with_name(f"{self.path.name}.tmp.{os.getpid()}")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.warning("Could not write cache %s: %s", self.path, exc)

    def get(self, file_path: str, content: str) -> Optional[List[Finding]]:
        """Cached findings when *content* is unchanged, else None."""
        entry = self._entries.get(file_path)
        if entry is not None and entry["hash"] == hash_content(content):
            try:
                findings = [Finding.from_dict(item) for item in entry["issues"]]
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Dropping corrupt cache entry for %s: %s", file_path, exc)
                del self._entries[file_path]
            else:
                self._hits += 1
                return findings
        self._misses += 1
        return None

    def set(self, file_path: str, content: str, findings: List[Finding]) -> None:
        self._entries[file_path] = {
            "hash": hash_content(content),
            "issues": [f.to_dict() for f in findings],
            "timestamp": int(time.time() * 1000),
        }

    def clear(self) -> None:
        self._entries = {}
        self._hits = 0
        self._misses = 0

    def stats(self) -> Dict[str, int]:
        return {"hits": self._hits, "misses": self._misses}

    def __len__(self) -> int:
        return len(self._entries)

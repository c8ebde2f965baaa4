"""Integration state: fingerprints already delivered to each notification sink.

Concurrent writers are serialised with an ``O_CREAT | O_EXCL`` lock file
next to the state file. The state itself is written to a temp file and
moved into place with ``os.replace``, so readers never see a partial file.
Writes merge with what is on disk; fingerprints are never removed.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from craft_audit.findings.models import Finding

logger = logging.getLogger(__name__)

STATE_SCHEMA_VERSION = "1.0.0"
STATE_FILENAME = ".craft-audit-clickup-state.json"
DEFAULT_SINK = "clickup"

LOCK_TIMEOUT = 5.0
LOCK_INITIAL_DELAY = 0.05
LOCK_MAX_DELAY = 0.4


def resolve_state_path(project_path: Path, custom: Optional[str] = None) -> Path:
    if custom:
        return Path(custom).resolve()
    return project_path / STATE_FILENAME


def _process_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def _reclaim_if_stale(lock_path: Path) -> bool:
    """Remove *lock_path* when its owner pid is gone. True if removed."""
    try:
        pid = int(lock_path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return False
    if _process_alive(pid):
        return False
    try:
        lock_path.unlink()
    except FileNotFoundError:
        pass
    except OSError:
        return False
    logger.info("Removed stale state lock %s (pid %d)", lock_path, pid)
    return True


@contextlib.contextmanager
def state_lock(lock_path: Path, timeout: float = LOCK_TIMEOUT) -> Iterator[bool]:
    """Hold *lock_path* for the duration of the block.

    Yields False when the lock could not be taken within *timeout*; the
    caller proceeds unlocked in that case.
    """
    deadline = time.monotonic() + timeout
    delay = LOCK_INITIAL_DELAY
    acquired = False

    while True:
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            if _reclaim_if_stale(lock_path):
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            time.sleep(min(delay, remaining))
            delay = min(delay * 2, LOCK_MAX_DELAY)
            continue
        try:
            os.write(fd, str(os.getpid()).encode("ascii"))
        finally:
            os.close(fd)
        acquired = True
        break

    try:
        yield acquired
    finally:
        if acquired:
            try:
                lock_path.unlink()
            except FileNotFoundError:
                pass


def _read_state(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable integration state %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _sent_from(data: Dict[str, Any], sink: str) -> Set[str]:
    section = data.get(sink)
    if not isinstance(section, dict):
        return set()
    sent = section.get("sentFingerprints")
    if not isinstance(sent, list):
        return set()
    return {item for item in sent if isinstance(item, str)}


def load_sent_fingerprints(path: Path, sink: str = DEFAULT_SINK) -> Set[str]:
    """Fingerprints already delivered to *sink*. Empty on any problem."""
    return _sent_from(_read_state(path), sink)


def _write_unlocked(path: Path, fingerprints: Iterable[str], sink: str) -> int:
    data = _read_state(path)
    merged = _sent_from(data, sink)
    merged.update(fingerprints)

    data["schemaVersion"] = STATE_SCHEMA_VERSION
    data["updatedAt"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    data[sink] = {"sentFingerprints": sorted(merged)}

    tmp_path = path.with_name(f"{path.name}.tmp.{os.getpid()}")
    tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    os.replace(tmp_path, path)
    return len(merged)


def write_sent_fingerprints(
    path: Path,
    fingerprints: Iterable[str],
    sink: str = DEFAULT_SINK,
    lock_timeout: float = LOCK_TIMEOUT,
) -> int:
    """Merge *fingerprints* into the sink's section. Returns the new total."""
    fingerprints = list(fingerprints)
    lock_path = path.with_name(path.name + ".lock")
    with state_lock(lock_path, timeout=lock_timeout) as locked:
        if not locked:
            logger.warning(
                "Could not lock %s within %.1fs; writing without the lock", path, lock_timeout
            )
        return _write_unlocked(path, fingerprints, sink)


def filter_unsent(findings: List[Finding], sent: Set[str]) -> Tuple[List[Finding], int]:
    """Drop findings already delivered. Returns (remaining, skipped_count)."""
    if not sent:
        return list(findings), 0
    kept: List[Finding] = []
    skipped = 0
    for finding in findings:
        if finding.fingerprint and finding.fingerprint in sent:
            skipped += 1
            continue
        kept.append(finding)
    return kept, skipped

"""Run analyzers concurrently and merge their findings.

Every analyzer kind (built-in, scripted plugin, declarative plugin) is
driven through :class:`Analyzer`. A failing or timed-out analyzer is turned
into one ``runtime/<name>-failed`` finding; it never aborts the others.
Results are merged in registration order, not completion order.
"""

from __future__ import annotations

import logging
import subprocess
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from craft_audit.findings.fingerprint import KeyStrategy
from craft_audit.findings.models import Evidence, Finding

logger = logging.getLogger(__name__)

FAILURE_SUGGESTION = "Fix runtime/analyzer errors and rerun the audit."

MAX_WORKERS = 8


@runtime_checkable
class Analyzer(Protocol):
    name: str
    key_strategies: Dict[str, KeyStrategy]

    @property
    def failure_rule_id(self) -> str: ...

    @property
    def failure_message(self) -> str: ...

    def produce_findings(self, target: Path) -> List[Finding]: ...


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, subprocess.CalledProcessError):
        stderr = exc.stderr.decode("utf-8", "replace") if isinstance(exc.stderr, bytes) else exc.stderr
        detail = (stderr or "").strip()
        return f"{exc}" + (f": {detail}" if detail else "")
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def failure_finding(analyzer: Analyzer, details: str) -> Finding:
    """The synthetic finding reported in place of a failed analyzer's output."""
    return Finding(
        severity="high",
        category="system",
        rule_id=analyzer.failure_rule_id,
        message=analyzer.failure_message,
        suggestion=FAILURE_SUGGESTION,
        confidence=1.0,
        evidence=Evidence(details=details),
    )


def run_analyzers(
    analyzers: Sequence[Analyzer],
    target: Path,
    timeout: Optional[float] = None,
) -> List[Finding]:
    """Run *analyzers* against *target* concurrently and merge the results.

    *timeout* bounds the whole stage in seconds. Analyzers still running
    when it expires are abandoned and reported as failed.
    """
    if not analyzers:
        return []

    executor = ThreadPoolExecutor(
        max_workers=min(MAX_WORKERS, len(analyzers)),
        thread_name_prefix="craft-audit-analyzer",
    )
    futures: List[Future] = [executor.submit(a.produce_findings, target) for a in analyzers]
    try:
        wait(futures, timeout=timeout)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    merged: List[Finding] = []
    for analyzer, future in zip(analyzers, futures):
        if not future.done():
            logger.warning("Analyzer %s did not finish within %ss", analyzer.name, timeout)
            merged.append(failure_finding(analyzer, f"timed out after {timeout}s"))
            continue
        if future.cancelled():
            logger.warning("Analyzer %s was cancelled before it started", analyzer.name)
            merged.append(failure_finding(analyzer, f"cancelled after the {timeout}s stage timeout"))
            continue
        exc = future.exception()
        if exc is not None:
            logger.warning("Analyzer %s failed: %s", analyzer.name, exc)
            logger.debug("Analyzer %s traceback", analyzer.name, exc_info=exc)
            merged.append(failure_finding(analyzer, _error_text(exc)))
            continue
        findings = future.result()
        logger.debug("Analyzer %s produced %d findings", analyzer.name, len(findings))
        merged.extend(findings)
    return merged


def collect_key_strategies(analyzers: Sequence[Analyzer]) -> Dict[str, KeyStrategy]:
    strategies: Dict[str, KeyStrategy] = {}
    for analyzer in analyzers:
        strategies.update(analyzer.key_strategies)
    return strategies

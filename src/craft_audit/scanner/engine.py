"""Audit pipeline: the finding lifecycle from raw output to final report.

Stages, in order:
  1. load custom rules (load failures become findings)
  2. run built-in analyzers and plugins concurrently
  3. assign fingerprints
  4. apply rule tuning (preset + user settings)
  5. narrow template findings to the git change set (``changed_only``)
  6. write and/or apply the baseline

The cache is loaded before stage 2 and saved after it.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from craft_audit import __version__
from craft_audit.analyzers import build_builtin_analyzers, templates_path
from craft_audit.analyzers.templates import RULE_IDS as TEMPLATE_RULE_IDS, TemplateAnalyzer
from craft_audit.config.schema import AuditConfig
from craft_audit.findings.aggregator import Analyzer, collect_key_strategies, run_analyzers
from craft_audit.findings.fingerprint import Fingerprinter
from craft_audit.findings.models import AuditResult, Finding
from craft_audit.git.changes import narrow_to_changes, resolve_change_set
from craft_audit.rules import tuning
from craft_audit.rules.metadata import default_severities
from craft_audit.rules.presets import get_preset
from craft_audit.rules.registry import RuleRegistry
from craft_audit.store.baseline import filter_baseline, load_baseline, resolve_baseline_path, write_baseline
from craft_audit.store.cache import AnalysisCache, resolve_cache_path

logger = logging.getLogger(__name__)


def rule_defaults(registry: Optional[RuleRegistry] = None) -> Dict[str, str]:
    """Default severity per rule id: built-ins, then loaded custom rules."""
    defaults = default_severities()
    if registry is not None:
        for plugin in registry.plugins:
            defaults[plugin.meta.id] = plugin.meta.default_severity
    return defaults


def effective_ruleset(cfg: AuditConfig, registry: Optional[RuleRegistry] = None) -> tuning.EffectiveRuleset:
    """Raises ``UnknownPresetError`` for an unknown preset name."""
    return tuning.resolve(rule_defaults(registry), cfg.rules.preset, cfg.rules.settings)


def _open_cache(project_path: Path, cfg: AuditConfig, clear: bool) -> Optional[AnalysisCache]:
    if not cfg.cache.enabled:
        return None
    cache = AnalysisCache(resolve_cache_path(project_path, cfg.cache.location), signature=__version__)
    if clear:
        logger.info("Clearing analysis cache %s", cache.path)
        cache.clear()
    else:
        cache.load()
    return cache


def run_audit(
    project_path: Path,
    cfg: AuditConfig,
    *,
    clear_cache: bool = False,
    baseline_write_path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    extra_analyzers: Optional[List[Analyzer]] = None,
) -> AuditResult:
    """Run the full pipeline for *project_path* and return the final result.

    *baseline_write_path* overrides ``cfg.baseline.path`` when
    ``cfg.baseline.write`` is set. *env* is consulted for CI base-ref
    variables (defaults to ``os.environ``).
    """
    start = time.perf_counter()
    project_path = project_path.resolve()
    result = AuditResult()

    # An unknown preset fails before any plugin module is executed.
    if cfg.rules.preset is not None:
        get_preset(cfg.rules.preset)

    registry = RuleRegistry()
    load_failures: List[Finding] = []
    if cfg.audit.rules_dir:
        load_failures = registry.load_from_directory(Path(cfg.audit.rules_dir))
    ruleset = effective_ruleset(cfg, registry)

    cache = _open_cache(project_path, cfg, clear_cache)

    analyzers: List[Analyzer] = list(build_builtin_analyzers(project_path, cfg, cache=cache))
    analyzers.extend(extra_analyzers or [])
    analyzers.extend(registry.bind_project(project_path))
    logger.debug("Running %d analyzers against %s", len(analyzers), project_path)

    raw = load_failures + run_analyzers(analyzers, project_path, timeout=cfg.audit.timeout)
    result.raw_count = len(raw)

    for analyzer in analyzers:
        if isinstance(analyzer, TemplateAnalyzer):
            result.inline_suppressed += len(analyzer.suppressed)

    if cache is not None:
        stats = cache.stats()
        result.cache_hits, result.cache_misses = stats["hits"], stats["misses"]
        cache.save()

    strategies = collect_key_strategies(analyzers)
    strategies.update(registry.key_strategies)
    findings = Fingerprinter(strategies).assign(raw)

    tuned = tuning.apply(findings, ruleset)
    findings = tuned.findings
    result.tuning_removed = tuned.removed_count
    result.tuning_modified = tuned.modified_count

    if cfg.audit.changed_only and not cfg.audit.skip_templates:
        change_set = resolve_change_set(
            project_path, templates_path(project_path, cfg), cfg.audit.base_ref, env
        )
        if change_set.usable:
            narrowed = narrow_to_changes(findings, change_set, TEMPLATE_RULE_IDS)
            result.narrowed_out = len(findings) - len(narrowed)
            result.changed_files = len(change_set.paths)
            findings = narrowed

    baseline_path = resolve_baseline_path(project_path, cfg.baseline.path)
    if cfg.baseline.write:
        write_path = resolve_baseline_path(project_path, baseline_write_path) if baseline_write_path else baseline_path
        result.baseline_written = write_baseline(write_path, findings)
        logger.info("Wrote %d fingerprints to %s", result.baseline_written, write_path)

    if cfg.baseline.enabled:
        baseline = filter_baseline(findings, load_baseline(baseline_path))
        findings = baseline.findings
        result.baseline_suppressed = baseline.suppressed_count

    result.findings = findings
    result.duration_ms = round((time.perf_counter() - start) * 1000, 2)
    return result

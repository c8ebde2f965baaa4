"""Rule registry: discovers plugin rule files and hands them to the aggregator."""

from __future__ import annotations

import importlib.util
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from craft_audit.findings.fingerprint import KeyStrategy
from craft_audit.findings.models import Evidence, Finding
from craft_audit.rules.models import (
    DEFAULT_FILE_PATTERN,
    DeclarativeRule,
    PluginError,
    ProjectFiles,
    RuleMeta,
    RulePlugin,
    ScriptedRule,
)

logger = logging.getLogger(__name__)

LOAD_FAILED_RULE_ID = "runtime/plugin-load-failed"

_MODULE_NAME_RE = re.compile(r"[^0-9A-Za-z_]")


def _load_failure(path: Path, error: object) -> Finding:
    logger.warning("Skipping rule file %s: %s", path.name, error)
    return Finding(
        severity="low",
        category="system",
        rule_id=LOAD_FAILED_RULE_ID,
        message=f'Failed to load rule file "{path.name}".',
        suggestion="Fix or remove the rule file and rerun the audit.",
        confidence=1.0,
        evidence=Evidence(snippet=path.name, details=f"{path}: {error}"),
    )


class RuleRegistry:
    """Ordered store of loaded rule plugins, keyed by rule id."""

    key_strategies: Dict[str, KeyStrategy] = {LOAD_FAILED_RULE_ID: KeyStrategy.CONTENT}

    def __init__(self) -> None:
        self._plugins: Dict[str, RulePlugin] = {}

    # ---- registration ----

    def register(self, plugin: RulePlugin) -> None:
        existing = self._plugins.get(plugin.meta.id)
        if existing is not None:
            logger.warning(
                "Rule %s from %s overrides the one from %s",
                plugin.meta.id, plugin.source.name, existing.source.name,
            )
        self._plugins[plugin.meta.id] = plugin

    # ---- queries ----

    @property
    def plugins(self) -> List[RulePlugin]:
        return list(self._plugins.values())

    @property
    def rule_ids(self) -> List[str]:
        return list(self._plugins)

    def get(self, rule_id: str) -> Optional[RulePlugin]:
        return self._plugins.get(rule_id)

    def __len__(self) -> int:
        return len(self._plugins)

    def bind_project(self, root: Path) -> List[RulePlugin]:
        """Return the plugins, sharing one file index for *root*."""
        files = ProjectFiles(root)
        for plugin in self._plugins.values():
            plugin.bind(files)
        return self.plugins

    # ---- loading ----

    def load_from_directory(self, directory: Path) -> List[Finding]:
        """Load every rule file in *directory* in filename order.

        Returns one ``runtime/plugin-load-failed`` finding per file that
        could not be loaded; the remaining files still load.
        """
        if not directory.is_dir():
            return [_load_failure(directory, "rules directory does not exist")]

        failures: List[Finding] = []
        for path in sorted(directory.iterdir()):
            if not path.is_file():
                continue
            try:
                if path.suffix == ".py":
                    plugins = [_load_scripted(path)]
                elif path.suffix in (".yaml", ".yml"):
                    plugins = _load_declarative(path, _read_yaml(path))
                elif path.name.endswith(".rule.json"):
                    plugins = _load_declarative(path, _read_json(path))
                else:
                    continue
            except Exception as exc:  # plugin code may raise anything
                failures.append(_load_failure(path, exc))
                continue
            for plugin in plugins:
                self.register(plugin)
                logger.debug("Loaded custom rule %s (%s)", plugin.meta.id, path.name)
        return failures


def _read_yaml(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def _read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _load_scripted(path: Path) -> ScriptedRule:
    module_name = "craft_audit_rule_" + _MODULE_NAME_RE.sub("_", path.stem)
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise PluginError("cannot import module")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    raw_meta = getattr(module, "meta", None)
    create = getattr(module, "create", None)
    if raw_meta is None or not callable(create):
        raise PluginError("module must export `meta` and a callable `create(context)`")
    if isinstance(raw_meta, RuleMeta):
        meta = raw_meta
    elif isinstance(raw_meta, Mapping):
        meta = RuleMeta.from_mapping(raw_meta)
    else:
        raise PluginError("`meta` must be a mapping or RuleMeta")
    return ScriptedRule(meta=meta, source=path, create=create)


def _load_declarative(path: Path, data: Any) -> List[RulePlugin]:
    entries = data if isinstance(data, list) else [data]
    if not entries:
        raise PluginError("file contains no rules")
    return [_declarative_rule(path, entry) for entry in entries]


def _declarative_rule(path: Path, entry: Any) -> DeclarativeRule:
    if not isinstance(entry, dict):
        raise PluginError("rule definition must be a mapping")

    nested = entry.get("meta")
    if isinstance(nested, dict):
        # {id, pattern, message, meta: {severity, description, category, docs}}
        meta_data = {
            "id": entry.get("id"),
            "category": nested.get("category", "template"),
            "defaultSeverity": nested.get("severity"),
            "description": nested.get("description"),
            "docsUrl": nested.get("docs"),
        }
    else:
        meta_data = entry
    meta = RuleMeta.from_mapping(meta_data)

    pattern = entry.get("pattern")
    message = entry.get("message")
    if not isinstance(pattern, str) or not pattern:
        raise PluginError(f"{meta.id}: pattern must be a non-empty string")
    if not isinstance(message, str) or not message:
        raise PluginError(f"{meta.id}: message must be a non-empty string")
    try:
        re.compile(pattern)
    except re.error as exc:
        raise PluginError(f"{meta.id}: invalid pattern: {exc}") from exc

    file_pattern = entry.get("filePattern", DEFAULT_FILE_PATTERN)
    if not isinstance(file_pattern, str) or not file_pattern:
        raise PluginError(f"{meta.id}: filePattern must be a string")

    return DeclarativeRule(
        meta=meta,
        source=path,
        pattern=pattern,
        message=message,
        suggestion=entry.get("suggestion"),
        file_pattern=file_pattern,
    )

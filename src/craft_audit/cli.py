"""craft-audit CLI: Typer application with audit, rules, and init commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from craft_audit import __version__

app = typer.Typer(
    name="craft-audit",
    help="Audit Craft CMS projects: templates, dependencies, security.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console(stderr=True)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose, rich_tracebacks=verbose)],
        force=True,
    )


def _resolve_project(path: Path) -> Path:
    """Validate the project path, exit 2 on failure."""
    from craft_audit.config.loader import ValidationError, validate_project_path

    try:
        return validate_project_path(path)
    except ValidationError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc


def _load_config(project: Path, config: Optional[str]):
    from craft_audit.config.loader import ConfigError, load_config

    try:
        return load_config(project, config)
    except ConfigError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc


# ── audit ─────────────────────────────────────────────────────────────────────


@app.command()
def audit(
    path: Path = typer.Argument(Path("."), help="Craft project root"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to .craft-audit.toml"),
    templates: Optional[str] = typer.Option(None, "--templates", help="Template root (default: <path>/templates)"),
    format: Optional[str] = typer.Option(None, "--format", "-f", help="Output format: console | json | sarif"),
    output_file: Optional[str] = typer.Option(None, "--output-file", "-o", help="Write report to file"),
    exit_threshold: Optional[str] = typer.Option(
        None, "--exit-threshold", help="Fail at: none | high | medium | low | info"
    ),
    preset: Optional[str] = typer.Option(None, "--preset", help="Rule preset: strict | balanced | legacy-migration"),
    changed_only: bool = typer.Option(False, "--changed-only", help="Only report template findings in changed files"),
    base_ref: Optional[str] = typer.Option(None, "--base-ref", help="Git ref to diff against, or 'auto' for CI"),
    baseline: Optional[str] = typer.Option(None, "--baseline", help="Baseline file path"),
    no_baseline: bool = typer.Option(False, "--no-baseline", help="Do not apply the baseline"),
    write_baseline: bool = typer.Option(False, "--write-baseline", help="Write current findings to the baseline"),
    write_baseline_path: Optional[str] = typer.Option(
        None, "--write-baseline-path", help="Write the baseline here instead (implies --write-baseline)"
    ),
    cache: bool = typer.Option(False, "--cache", help="Enable the incremental template cache"),
    cache_location: Optional[str] = typer.Option(None, "--cache-location", help="Cache file path"),
    clear_cache: bool = typer.Option(False, "--clear-cache", help="Discard the cache before analyzing"),
    rules_dir: Optional[str] = typer.Option(None, "--rules-dir", help="Directory of custom rule files"),
    skip_templates: bool = typer.Option(False, "--skip-templates", help="Skip template analysis"),
    skip_system: bool = typer.Option(False, "--skip-system", help="Skip composer/system checks"),
    skip_security: bool = typer.Option(False, "--skip-security", help="Skip security checks"),
    site_url: Optional[str] = typer.Option(None, "--site-url", help="Check HTTP security headers of this URL"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds allowed for the analyzer stage"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Audit a Craft CMS project and report findings."""
    from craft_audit.config.loader import validate_config
    from craft_audit.findings.summary import should_fail
    from craft_audit.output import json_report, sarif, terminal
    from craft_audit.rules.presets import UnknownPresetError
    from craft_audit.scanner.engine import run_audit

    _configure_logging(verbose)
    project = _resolve_project(path)
    cfg = _load_config(project, config)

    # --- CLI overrides ---
    if templates:
        cfg.audit.templates = str(Path(templates).resolve())
    if format:
        cfg.output.format = format  # type: ignore[assignment]
    if output_file:
        cfg.output.output_file = output_file
    if exit_threshold:
        cfg.output.exit_threshold = exit_threshold  # type: ignore[assignment]
    if preset:
        cfg.rules.preset = preset
    if changed_only:
        cfg.audit.changed_only = True
    if base_ref:
        cfg.audit.base_ref = base_ref
    if baseline:
        cfg.baseline.path = baseline
    if no_baseline:
        cfg.baseline.enabled = False
    if write_baseline or write_baseline_path:
        cfg.baseline.write = True
    if cache or clear_cache:
        cfg.cache.enabled = True
    if cache_location:
        cfg.cache.location = cache_location
    if rules_dir:
        cfg.audit.rules_dir = rules_dir
    cfg.audit.skip_templates = cfg.audit.skip_templates or skip_templates
    cfg.audit.skip_system = cfg.audit.skip_system or skip_system
    cfg.audit.skip_security = cfg.audit.skip_security or skip_security
    if site_url:
        cfg.audit.site_url = site_url
    if timeout is not None:
        cfg.audit.timeout = timeout

    errors = validate_config(cfg)
    if errors:
        for err in errors:
            console.print(f"[bold red]Invalid option:[/bold red] {err}")
        raise typer.Exit(code=2)

    if verbose:
        console.print(f"[dim]Project: {project}[/dim]")
        console.print(f"[dim]Preset: {cfg.rules.preset or 'none'}[/dim]")

    # --- Run pipeline ---
    try:
        result = run_audit(
            project,
            cfg,
            clear_cache=clear_cache,
            baseline_write_path=write_baseline_path,
        )
    except UnknownPresetError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc

    # --- Output ---
    threshold = cfg.output.exit_threshold
    report_text: Optional[str] = None
    if cfg.output.format == "console":
        terminal.render(result, exit_threshold=threshold, console=console)
    elif cfg.output.format == "json":
        report_text = json_report.render(result, project_path=str(project), exit_threshold=threshold)
    elif cfg.output.format == "sarif":
        report_text = sarif.render(result)

    # --- Write to file ---
    if cfg.output.output_file:
        if report_text is None:
            # Console format with an output file writes JSON.
            report_text = json_report.render(result, project_path=str(project), exit_threshold=threshold)
        Path(cfg.output.output_file).write_text(report_text, encoding="utf-8")
        if verbose:
            console.print(f"[dim]Report written to {cfg.output.output_file}[/dim]")
    elif report_text is not None:
        print(report_text)

    # --- Exit code ---
    if should_fail(result.findings, threshold):
        raise typer.Exit(code=1)


# ── rules ─────────────────────────────────────────────────────────────────────


@app.command()
def rules(
    path: Path = typer.Argument(Path("."), help="Craft project root"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to .craft-audit.toml"),
    preset: Optional[str] = typer.Option(None, "--preset", help="Preview this preset instead of the configured one"),
    rules_dir: Optional[str] = typer.Option(None, "--rules-dir", help="Directory of custom rule files"),
) -> None:
    """Print the effective ruleset after presets and rule settings."""
    from rich.table import Table

    from craft_audit.rules.presets import UnknownPresetError
    from craft_audit.rules.registry import RuleRegistry
    from craft_audit.scanner.engine import effective_ruleset

    _configure_logging(False)
    project = _resolve_project(path)
    cfg = _load_config(project, config)
    if preset:
        cfg.rules.preset = preset
    if rules_dir:
        cfg.audit.rules_dir = rules_dir

    registry = RuleRegistry()
    if cfg.audit.rules_dir:
        registry.load_from_directory(Path(cfg.audit.rules_dir))

    try:
        ruleset = effective_ruleset(cfg, registry)
    except UnknownPresetError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc

    table = Table(title=f"Effective rules (preset: {cfg.rules.preset or 'none'})", border_style="dim")
    table.add_column("Rule", style="cyan")
    table.add_column("Enabled", justify="center")
    table.add_column("Severity")
    table.add_column("Ignore paths", style="magenta")

    for rule_id, rule in ruleset.rules.items():
        severity = f"{rule.severity} *" if rule.severity_overridden else rule.severity
        table.add_row(
            rule_id,
            "[green]yes[/green]" if rule.enabled else "[red]no[/red]",
            severity,
            ", ".join(rule.ignore_paths) or "-",
        )
    out = Console()
    out.print(table)
    out.print("[dim]* severity overridden by preset or rule settings[/dim]")


# ── init ──────────────────────────────────────────────────────────────────────


@app.command()
def init(
    path: Path = typer.Argument(Path("."), help="Craft project root"),
) -> None:
    """Generate a starter .craft-audit.toml in the project root."""
    from craft_audit.config.defaults import DEFAULT_TOML
    from craft_audit.config.loader import CONFIG_FILENAME

    project = _resolve_project(path)
    config_path = project / CONFIG_FILENAME

    if config_path.exists():
        console.print(f"[yellow]⚠[/yellow]  {CONFIG_FILENAME} already exists at {config_path}")
        raise typer.Exit(code=1)

    config_path.write_text(DEFAULT_TOML, encoding="utf-8")
    console.print(f"[green]✓[/green] Created {config_path}")


# ── version ───────────────────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        print(f"craft-audit {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback,
        is_eager=True, help="Show version and exit",
    ),
) -> None:
    """craft-audit: audit Craft CMS projects."""

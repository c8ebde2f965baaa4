"""Rich terminal reporter: findings table, severity pills, summary."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from craft_audit.findings.models import AuditResult, Finding
from craft_audit.findings.summary import blocking_findings, summarize

_SEVERITY_STYLE = {
    "high": "bold white on red",
    "medium": "bold black on yellow",
    "low": "bold black on bright_cyan",
    "info": "bold white on grey37",
}

_SEVERITY_ICON = {
    "high": "🔴",
    "medium": "🟡",
    "low": "🔵",
    "info": "⚪",
}


def _severity_pill(severity: str) -> Text:
    style = _SEVERITY_STYLE.get(severity, "")
    icon = _SEVERITY_ICON.get(severity, "")
    return Text(f" {icon} {severity.upper()} ", style=style)


def _location(finding: Finding) -> str:
    if not finding.file:
        return "-"
    return f"{finding.file}:{finding.line}" if finding.line else finding.file


def _message(finding: Finding) -> Text:
    text = Text(finding.message)
    if finding.suggestion:
        text.append(f"\n→ {finding.suggestion}", style="dim")
    return text


def render(
    result: AuditResult,
    *,
    exit_threshold: str = "high",
    console: Optional[Console] = None,
) -> None:
    """Print audit results to the terminal using Rich."""
    console = console or Console(stderr=True)

    if not result.findings:
        console.print()
        console.print("[bold green]✅ No issues found.[/bold green]")
        _print_summary(console, result, exit_threshold)
        return

    console.print()
    table = Table(
        title="Craft Audit Findings",
        show_lines=True,
        title_style="bold",
        border_style="dim",
    )
    table.add_column("Severity", justify="center", width=12)
    table.add_column("Rule", style="cyan", min_width=20)
    table.add_column("Location", style="magenta")
    table.add_column("Message", min_width=30)

    for finding in result.findings:
        table.add_row(
            _severity_pill(finding.severity),
            finding.rule_id,
            _location(finding),
            _message(finding),
        )

    console.print(table)
    _print_summary(console, result, exit_threshold)

    console.print()
    blocking = blocking_findings(result.findings, exit_threshold)
    if blocking:
        console.print(
            f"[bold red]❌ FAILED: {len(blocking)} finding(s) at or above "
            f"the '{exit_threshold}' threshold.[/bold red]"
        )
    else:
        console.print("[bold yellow]⚠️  Findings detected but below the exit threshold.[/bold yellow]")


def _print_summary(console: Console, result: AuditResult, exit_threshold: str) -> None:
    counts = summarize(result.findings)
    console.print()
    console.print(
        f"[dim]Findings:[/dim]       {counts['total']} "
        f"(high {counts['high']}, medium {counts['medium']}, "
        f"low {counts['low']}, info {counts['info']})"
    )
    console.print(f"[dim]Exit threshold:[/dim] {exit_threshold}")
    if result.tuning_removed or result.tuning_modified:
        console.print(
            f"[dim]Tuning:[/dim]         {result.tuning_removed} removed, "
            f"{result.tuning_modified} re-severitied"
        )
    if result.inline_suppressed:
        console.print(f"[dim]Suppressed:[/dim]     {result.inline_suppressed} inline")
    if result.baseline_suppressed:
        console.print(f"[dim]Baseline:[/dim]       {result.baseline_suppressed} suppressed")
    if result.baseline_written is not None:
        console.print(f"[dim]Baseline:[/dim]       {result.baseline_written} fingerprints written")
    if result.changed_files is not None:
        console.print(
            f"[dim]Changed files:[/dim]  {result.changed_files} "
            f"({result.narrowed_out} findings outside the change set)"
        )
    if result.cache_hits or result.cache_misses:
        console.print(f"[dim]Cache:[/dim]          {result.cache_hits} hits, {result.cache_misses} misses")
    console.print(f"[dim]Duration:[/dim]       {result.duration_ms:.0f}ms")

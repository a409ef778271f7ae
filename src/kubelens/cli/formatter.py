# src/kubelens/cli/formatter.py
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from kubelens.core.models import Finding, Severity
from kubelens.rules.recommendations import recommend, remediation_for
from kubelens.scanner.scanner import sort_by_severity

# Initialize the Rich console for high-quality terminal output
console = Console()

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
}


class KubeFormatter:
    """
    KubeFormatter: The visual heart of the CLI.
    Responsible for rendering findings, side-by-side fixes, warnings and execution reports.
    """

    def __init__(self, out: Optional[Console] = None):
        self.console = out or console

    def display_findings(self, file_name: str, findings: List[Finding],
                         min_severity: Severity = Severity.LOW, verbose: bool = False):
        """
        Renders one table per file, worst severity first.
        Findings below ``min_severity`` are hidden.
        """
        visible = [f for f in sort_by_severity(findings) if f.severity.rank >= min_severity.rank]
        if not visible:
            return

        table = Table(title=f"Findings: {file_name}", show_lines=verbose, header_style="bold magenta")
        table.add_column("Severity", justify="center")
        table.add_column("Path", style="dim")
        table.add_column("Issue")
        table.add_column("Fix", justify="center")
        if verbose:
            table.add_column("Recommendation")

        for f in visible:
            style = SEVERITY_STYLES[f.severity]
            remediation = remediation_for(f)
            fixable = "auto" if remediation and remediation.auto_fixable else "manual"
            row = [f"[{style}]{f.severity.value}[/{style}]", str(f.path), f.issue, fixable]
            if verbose:
                row.append(recommend(f))
            table.add_row(*row)

        self.console.print(table)

    def display_side_by_side(self, file_name: str, old_content: str, new_content: str):
        """Vertical split comparison. No fixed height so long manifests scroll naturally."""
        old_syntax = Syntax(old_content.strip(), "yaml", theme="ansi_dark", line_numbers=True)
        new_syntax = Syntax(new_content.strip(), "yaml", theme="monokai", line_numbers=True)

        layout_table = Table.grid(expand=True, padding=1)
        layout_table.add_column(ratio=1)
        layout_table.add_column(ratio=1)
        layout_table.add_row(
            Panel(old_syntax, title=f"[bold red]ORIGINAL: {file_name}[/bold red]", border_style="red"),
            Panel(new_syntax, title=f"[bold green]FIXED: {file_name}[/bold green]", border_style="green")
        )
        self.console.print(layout_table)

    def show_shield_logs(self, logs: List[str]):
        """Lists each remediation the ShieldEngine applied."""
        for log in logs:
            self.console.print(f"🛡️  [bold cyan]SHIELD:[/bold cyan] [white]{log}[/white]")

    def show_warning(self, file_name: str, warning: Optional[str]):
        if warning:
            self.console.print(f"[bold yellow]⚠️  {file_name}:[/bold yellow] {warning}")

    def show_notes(self, file_name: str, notes: List[str]):
        """Non-blocking identity notes, one dim line each."""
        for note in notes:
            self.console.print(f"[dim]ℹ {file_name}: {note}[/dim]")

    def print_final_table(self, reports: List[Dict[str, Any]]):
        """Builds the per-file table shown at the very end of a run."""
        table = Table(title="KubeLens Execution Report", show_lines=True, header_style="bold magenta")
        table.add_column("File Path", style="cyan")
        table.add_column("Kinds", style="white")
        table.add_column("Findings", justify="right")
        table.add_column("Status", style="bold")
        table.add_column("Result", justify="center")

        for r in reports:
            if not r.get("success", False) and r.get("error"):
                self.console.print(f"[bold red]Error in {r['file_path']}:[/bold red] {r.get('error')}")

            success = r.get("success", False)
            clean = success and not r.get("findings")
            status_color = "green" if clean else "yellow" if success else "red"
            result_icon = "✅" if clean else "⚠️" if success else "❌"

            table.add_row(
                str(r.get("file_path")),
                ", ".join(r.get("kinds") or []) or "Unknown",
                str(len(r.get("findings") or [])),
                f"[{status_color}]{r.get('status', 'FAILED')}[/{status_color}]",
                result_icon
            )

        self.console.print(table)

    def print_summary(self, summary: Dict[str, Any]):
        by_sev = summary["by_severity"]
        self.console.print(Panel(
            f"[bold white]Summary Report[/bold white]\n"
            f"════════════════════════════════════════\n"
            f"Total Files:      {summary['total_files']}\n"
            f"Total Findings:   {summary['total_findings']}\n"
            f"  Critical:       [bold red]{by_sev.get('Critical', 0)}[/bold red]\n"
            f"  High:           [red]{by_sev.get('High', 0)}[/red]\n"
            f"  Medium:         [yellow]{by_sev.get('Medium', 0)}[/yellow]\n"
            f"  Low:            [cyan]{by_sev.get('Low', 0)}[/cyan]\n"
            f"Fixed Files:      [green]{summary['fixed_files']}[/green]\n"
            f"Unscannable:      {summary['unscannable_files']}\n"
            f"System Errors:    [red]{summary['system_errors']}[/red]\n"
            f"Backups Created:  {summary['backups_created']}",
            border_style="dim"
        ))

#!/usr/bin/env python3
"""
KUBELENS CLI - Security Review UI
---------------------------------
Primary interface: scan manifests for privilege escalation and RBAC
risks, or apply the automatic fixes with side-by-side comparison,
confirmation gates and backups.

Author: KubeLens Team
Date: 2026-01-16
"""

import sys
import json
import argparse
from pathlib import Path
from typing import Any, Dict, List

# Rich library components for high-fidelity terminal UI
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    BarColumn,
    TaskProgressColumn
)

# Core Engine import
from kubelens.cli.formatter import KubeFormatter
from kubelens.core.engine import AuditEngine
from kubelens.core.models import KubeLensError, Severity

# Global console for consistent styling across the application
console = Console()

VERSION = "1.0.0"


class KubeLensCLI:
    """
    CLI wrapper that translates user commands into Engine actions.
    Provides visual feedback, safety confirmations, and side-by-side diffs.
    """

    def __init__(self):
        """Initializes the CLI and sets up the argument parser."""
        self.parser = argparse.ArgumentParser(
            prog="kubelens",
            description="KubeLens - Kubernetes Manifest Security Analyzer & Remediator",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.formatter = KubeFormatter(console)
        self._setup_args()

    def _setup_args(self):
        """Configures the command-line flags and subcommands."""
        self.parser.add_argument("-v", "--version", action="version", version=f"kubelens v{VERSION}")
        subparsers = self.parser.add_subparsers(dest="command", metavar="Command")

        # 'scan' subcommand - Read-only audit mode
        scan_parser = subparsers.add_parser("scan", help="🔍 Audit manifests for security risks")
        scan_parser.add_argument("path", help="Path to a YAML file or directory")
        scan_parser.add_argument("--ext", default=".yaml", help="File extension filter (default: .yaml)")
        scan_parser.add_argument("--rules", help="JSON rule table overriding the built-in RBAC tables")
        scan_parser.add_argument("--min-severity", default="Low",
                                 choices=[s.value for s in Severity], help="Hide findings below this level")
        scan_parser.add_argument("--json", action="store_true", help="Emit findings as JSON")
        scan_parser.add_argument("--verbose", action="store_true", help="Show recommendations per finding")

        # 'fix' subcommand - Remediation mode
        fix_parser = subparsers.add_parser("fix", help="🛡️  Auto-fix insecure settings")
        fix_parser.add_argument("path", help="Path to a YAML file or directory")
        fix_parser.add_argument("--dry-run", action="store_true", help="Preview results without writing")
        fix_parser.add_argument("--diff", action="store_true", help="Display vertical split comparison")
        fix_parser.add_argument("-y", "--yes", action="store_true", help="Auto-confirm single file")
        fix_parser.add_argument("--yes-all", action="store_true", help="Auto-confirm batch operations")
        fix_parser.add_argument("--ext", default=".yaml", help="File extension filter (default: .yaml)")
        fix_parser.add_argument("--rules", help="JSON rule table overriding the built-in RBAC tables")

    def print_header(self, subtitle: str):
        """Renders the KubeLens splash header with themed styling."""
        console.print(Panel.fit(
            f"[bold cyan]KubeLens v{VERSION}[/bold cyan]\n"
            "══════════════════════════════════════════════════════════════════",
            title=f"[bold white]{subtitle}[/bold white]",
            border_style="cyan"
        ))

    def _confirm_action(self, target_count: int, args: argparse.Namespace) -> bool:
        """Safety Gate logic: ensures the user wants to proceed with writes."""
        if args.dry_run:
            return True

        if target_count == 1:
            if args.yes or args.yes_all:
                return True
            choice = console.input("\n[bold yellow]Apply fixes to this file? (y/N): [/bold yellow]").lower()
            return choice == "y"

        if target_count > 1:
            if args.yes_all:
                return True

            console.print(Panel(
                f"[bold red]⚠️  CRITICAL: BATCH MODIFICATION DETECTED[/bold red]\n\n"
                f"Target Path: [white]{args.path}[/white]\n"
                f"File Count:  [bold cyan]{target_count} files[/bold cyan]\n",
                expand=False, border_style="red"
            ))
            return console.input("[bold yellow]Type 'CONFIRM' to execute fixes: [/bold yellow]") == "CONFIRM"

        return False

    def _run_engine(self, args: argparse.Namespace, is_fix_mode: bool) -> int:
        """Main processing loop orchestration. Returns the process exit code."""
        input_path = Path(args.path).resolve()
        if not input_path.exists():
            console.print(f"[bold red]Error:[/bold red] Path '{args.path}' not found.")
            return 2

        workspace = input_path if input_path.is_dir() else input_path.parent
        try:
            engine = AuditEngine(str(workspace), rules_path=args.rules)
        except KubeLensError as e:
            console.print(f"[bold red]CRITICAL ERROR:[/bold red] {e}")
            return 2

        target_count = 1 if input_path.is_file() else len(engine.discover_manifests(args.ext))
        if not target_count:
            console.print("\n[bold yellow]⚠️  No manifest files found.[/bold yellow]")
            return 0

        if is_fix_mode and not self._confirm_action(target_count, args):
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            return 1

        as_json = getattr(args, "json", False)
        dry_run = getattr(args, "dry_run", True)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(bar_width=40),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            disable=as_json
        ) as progress:

            task_id = progress.add_task("Scanning manifests...", total=target_count)

            def on_progress(done: int, total: int):
                progress.update(task_id, completed=done, total=total, description=f"Checked {done}/{total}")

            if input_path.is_file():
                reports = [engine.audit_file(input_path.name, fix=is_fix_mode, dry_run=dry_run)]
                on_progress(1, 1)
            else:
                reports = engine.scan_directory(extension=args.ext, fix=is_fix_mode, dry_run=dry_run,
                                                progress_callback=on_progress)

        if as_json:
            self._render_json(reports, engine)
        else:
            for report in reports:
                self._render_file(report, args, is_fix_mode)
            self._render_final_report(reports, engine)

        if not is_fix_mode and any(
                f.severity == Severity.CRITICAL for r in reports for f in r.get("findings", [])):
            return 1
        return 0 if all(r.get("success") for r in reports) else 1

    def _render_file(self, report: Dict[str, Any], args: argparse.Namespace, is_fix_mode: bool):
        rel_path = report["file_path"]
        self.formatter.show_warning(rel_path, report.get("warning"))
        self.formatter.show_notes(rel_path, report.get("notes") or [])

        if not is_fix_mode:
            self.formatter.display_findings(
                rel_path, report.get("findings", []),
                min_severity=Severity.parse(args.min_severity),
                verbose=args.verbose
            )
            return

        if report.get("fixed_content"):
            console.print(f"\n[bold cyan]Remediation for: {rel_path}[/bold cyan]")
            self.formatter.show_shield_logs(report.get("changes", []))
            if args.diff:
                self.formatter.display_side_by_side(rel_path, report["original_content"], report["fixed_content"])
            remaining = report.get("remaining_findings") or []
            if remaining:
                console.print(f"[yellow]{len(remaining)} finding(s) need manual review:[/yellow]")
                self.formatter.display_findings(rel_path, remaining)
            console.print("─" * console.width)

    def _render_json(self, reports: List[Dict[str, Any]], engine: AuditEngine):
        payload = {
            "files": [
                {
                    "file": r["file_path"],
                    "status": r.get("status"),
                    "warning": r.get("warning"),
                    "notes": r.get("notes") or [],
                    "error": r.get("error"),
                    "findings": [f.to_dict() for f in r.get("findings", [])],
                }
                for r in reports
            ],
            "summary": engine.generate_summary(reports),
        }
        print(json.dumps(payload, indent=2, default=str))

    def _render_final_report(self, reports: List[Dict[str, Any]], engine: AuditEngine):
        """Constructs the final summary table and metrics panel for the user."""
        self.formatter.print_final_table(reports)
        self.formatter.print_summary(engine.generate_summary(reports))

    def run(self, argv: List[str] = None) -> int:
        """Primary routing entry point."""
        argv = sys.argv[1:] if argv is None else argv
        if not argv:
            self.print_header("K8s Manifest Security")
            self.parser.print_help()
            return 0

        args = self.parser.parse_args(argv)
        if args.command == "scan":
            if not args.json:
                self.print_header("Security Scan")
            return self._run_engine(args, is_fix_mode=False)
        if args.command == "fix":
            self.print_header("Security Auto-Fix")
            return self._run_engine(args, is_fix_mode=True)
        self.parser.print_help()
        return 0


def main():
    """Application entry point with interrupt handling."""
    try:
        sys.exit(KubeLensCLI().run())
    except KeyboardInterrupt:
        console.print("\n[bold red]Terminated by user.[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    main()

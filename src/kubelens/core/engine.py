#!/usr/bin/env python3
"""
KUBELENS ENGINE - The Orchestrator
----------------------------------
The AuditEngine runs manifests on disk through the analysis pipeline:
read, parse, scan, optionally remediate, and write back atomically with
a backup. Per-file failures are folded into the report instead of
aborting a batch.

Author: KubeLens Team
Date: 2026-01-16
"""

import os
import time
import shutil
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from kubelens.core.models import Finding, ParseError, Severity
from kubelens.manifest.exporter import KubeExporter
from kubelens.manifest.loader import KubeLoader
from kubelens.rules.shield import ShieldEngine
from kubelens.rules.tables import DEFAULT_RULE_TABLE, RuleTable
from kubelens.scanner.scanner import ManifestScanner, count_by_severity
from kubelens.validator.validator import KindValidator

# Setup standardized logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("kubelens.engine")

BACKUP_SUFFIX = ".kubelens.backup"
TEMP_SUFFIX = ".kubelens.tmp"


class AuditEngine:
    """
    Principal orchestrator for workspace scans and fixes.
    Owns one instance of each pipeline stage, all sharing the same rule table.
    """

    def __init__(self, workspace_path: str, rule_table: Optional[RuleTable] = None,
                 rules_path: Optional[Union[str, Path]] = None):
        """
        Args:
            workspace_path: root directory that relative file paths resolve against.
            rule_table: injected rule table (takes precedence over rules_path).
            rules_path: JSON rule table override; raises RuleTableError if unreadable.
        """
        self.workspace = Path(workspace_path).resolve()

        if rule_table is None:
            rule_table = RuleTable.from_json(rules_path) if rules_path else DEFAULT_RULE_TABLE
        self.rule_table = rule_table

        self.loader = KubeLoader()
        self.exporter = KubeExporter()
        self.scanner = ManifestScanner(rule_table)
        self.shield = ShieldEngine(rule_table)
        self.validator = KindValidator()

    def audit_text(self, raw_text: str, fix: bool = False) -> Dict[str, Any]:
        """
        Runs the in-memory pipeline on manifest text.

        Raises:
            ParseError: malformed YAML.
        """
        result = self.loader.parse(raw_text)
        data, multi = result.data, result.is_multi_doc

        findings = self.scanner.scan(data, multi)
        report: Dict[str, Any] = {
            "findings": findings,
            "finding_counts": count_by_severity(findings),
            "documents": self.validator.document_info(data, multi),
            "warning": self.validator.warning_for(data, multi),
            "notes": self.validator.identity_notes(data, multi),
            "fixed_content": None,
            "changes": [],
            "remaining_findings": findings,
        }

        if fix and data is not None:
            fixed, changes = self.shield.protect(data, multi)
            if fixed != data:
                report["fixed_content"] = self.exporter.export(fixed, multi)
                report["changes"] = changes
                report["remaining_findings"] = self.scanner.scan(fixed, multi)
        return report

    def audit_file(self, relative_path: str, fix: bool = False,
                   dry_run: bool = True) -> Dict[str, Any]:
        """
        Scans (and with ``fix`` remediates) a single manifest.
        Nothing is written unless ``fix`` is set and ``dry_run`` is not.
        """
        full_path = (self.workspace / relative_path).resolve()

        if not full_path.exists():
            return self._file_error(relative_path, "FILE_NOT_FOUND", f"Path missing: {full_path}")

        try:
            # BOM-aware read
            raw_text = full_path.read_text(encoding="utf-8-sig")
            analysis = self.audit_text(raw_text, fix=fix)
        except ParseError as e:
            logger.error(f"Invalid YAML in {relative_path}: {e.message}")
            return self._file_error(relative_path, "PARSE_ERROR", e.message)
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Error processing {relative_path}: {str(e)}")
            return self._file_error(relative_path, "ENGINE_ERROR", str(e))

        findings: List[Finding] = analysis["findings"]
        is_modified = analysis["fixed_content"] is not None

        report = {
            "file_path": str(relative_path),
            "success": True,
            "status": self._derive_status(findings, analysis["warning"], fix, is_modified, dry_run),
            "kinds": [row["kind"] for row in analysis["documents"]],
            "findings": findings,
            "finding_counts": analysis["finding_counts"],
            "remaining_findings": analysis["remaining_findings"],
            "warning": analysis["warning"],
            "notes": analysis["notes"],
            "original_content": raw_text,
            "fixed_content": analysis["fixed_content"],
            "changes": analysis["changes"],
            "written": False,
            "backup_created": None,
            "timestamp": time.time(),
        }

        if fix and is_modified and not dry_run:
            backup_path = self._create_unique_backup(full_path)
            try:
                shutil.copy2(full_path, backup_path)
                report["backup_created"] = str(backup_path.relative_to(self.workspace))
            except OSError as e:
                report["backup_warning"] = f"Backup failed: {str(e)}"

            try:
                self._atomic_write(full_path, analysis["fixed_content"])
                report["written"] = True
            except IOError as e:
                report["write_error"] = str(e)
                report["success"] = False

        return report

    def discover_manifests(self, extension: str = ".yaml", max_depth: int = 10) -> List[Path]:
        """
        Recursively lists manifests under the workspace, skipping symlinks
        and anything nested deeper than ``max_depth``.
        """
        try:
            max_depth = int(max_depth)
        except (ValueError, TypeError):
            logger.warning(f"Invalid max_depth '{max_depth}'. Falling back to default: 10")
            max_depth = 10

        candidates = set()
        for pattern in (f"*{extension.lower()}", f"*{extension.upper()}"):
            candidates.update(f for f in self.workspace.rglob(pattern) if f.is_file() and not f.is_symlink())
        return sorted(f for f in candidates if len(f.relative_to(self.workspace).parts) <= max_depth)

    def scan_directory(self, extension: str = ".yaml", fix: bool = False, dry_run: bool = True,
                       max_depth: int = 10,
                       progress_callback: Optional[Callable[[int, int], None]] = None) -> List[Dict[str, Any]]:
        """Processes every discovered manifest, reporting progress per file."""
        all_files = self.discover_manifests(extension, max_depth)

        reports = []
        total = len(all_files)
        for processed, file_path in enumerate(all_files, 1):
            reports.append(self.audit_file(str(file_path.relative_to(self.workspace)),
                                           fix=fix, dry_run=dry_run))
            if progress_callback:
                progress_callback(processed, total)

        return reports

    def generate_summary(self, reports: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Aggregate metrics for the final report panel."""
        counts = {sev.value: 0 for sev in Severity}
        if not reports:
            return {
                "total_files": 0, "total_findings": 0, "by_severity": counts,
                "files_with_findings": 0, "fixed_files": 0, "written_to_disk": 0,
                "backups_created": 0, "system_errors": 0, "unscannable_files": 0,
            }

        for r in reports:
            for sev, n in (r.get("finding_counts") or {}).items():
                counts[sev] = counts.get(sev, 0) + n

        return {
            "total_files": len(reports),
            "total_findings": sum(counts.values()),
            "by_severity": counts,
            "files_with_findings": sum(1 for r in reports if r.get("findings")),
            "fixed_files": sum(1 for r in reports if r.get("fixed_content")),
            "written_to_disk": sum(1 for r in reports if r.get("written")),
            "backups_created": sum(1 for r in reports if r.get("backup_created")),
            "system_errors": sum(1 for r in reports if not r.get("success", False)),
            "unscannable_files": sum(1 for r in reports if r.get("status") == "UNSCANNABLE"),
            "summary_timestamp": time.strftime("%Y-%m-%d %H:%M:%S"),
        }

    def _derive_status(self, findings: List[Finding], warning: Optional[str], fix: bool,
                       modified: bool, dry: bool) -> str:
        if fix:
            if not modified:
                return "UNCHANGED"
            return "PREVIEW" if dry else "FIXED"
        if findings:
            return "ISSUES"
        return "UNSCANNABLE" if warning else "CLEAN"

    def _atomic_write(self, target_path: Path, content: str):
        if not os.access(target_path.parent, os.W_OK):
            raise PermissionError(f"No write access to {target_path.parent}")
        temp_file = target_path.with_suffix(TEMP_SUFFIX)
        try:
            temp_file.write_text(content, encoding="utf-8")
            os.replace(temp_file, target_path)
        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            raise IOError(f"Atomic write failed: {str(e)}") from e

    def _create_unique_backup(self, target_path: Path) -> Path:
        backup_path = target_path.with_suffix(BACKUP_SUFFIX)
        counter = 1
        while backup_path.exists():
            backup_path = target_path.with_name(f"{target_path.stem}-{counter}{BACKUP_SUFFIX}")
            counter += 1
        return backup_path

    def _file_error(self, path: str, status: str, error: str) -> Dict[str, Any]:
        return {
            "file_path": path, "status": status, "error": error,
            "success": False, "findings": [], "finding_counts": {},
            "kinds": [], "written": False, "backup_created": None,
        }

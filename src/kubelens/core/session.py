#!/usr/bin/env python3
"""
KUBELENS SESSION - Working State
--------------------------------
Holds the manifest currently under review: parsed data, its serialized
text, the latest findings and the undo history. Every fix goes through
the same sequence: snapshot, fix, re-serialize, re-scan.

A failed load leaves the session exactly as it was.

Author: KubeLens Team
Date: 2026-01-16
"""

import copy
import logging
from typing import Any, List, Optional

from kubelens.core.history import HistoryManager
from kubelens.core.models import Finding, HistorySnapshot
from kubelens.manifest.exporter import KubeExporter
from kubelens.manifest.loader import KubeLoader
from kubelens.rules.shield import ShieldEngine
from kubelens.rules.tables import DEFAULT_RULE_TABLE, RuleTable
from kubelens.scanner.scanner import ManifestScanner
from kubelens.validator.validator import KindValidator

logger = logging.getLogger("kubelens.session")


class ManifestSession:
    """
    The engine-side half of the viewer. Presentation layers call
    load / fix_one / fix_all / undo / clear and read the public state.
    """

    def __init__(self, rule_table: RuleTable = DEFAULT_RULE_TABLE, history_limit: int = 50,
                 exporter: Optional[KubeExporter] = None):
        self.loader = KubeLoader()
        self.exporter = exporter or KubeExporter()
        self.scanner = ManifestScanner(rule_table)
        self.shield = ShieldEngine(rule_table)
        self.validator = KindValidator()
        self.history = HistoryManager(limit=history_limit)
        self._reset_state()

    def _reset_state(self):
        self.data: Any = None
        self.is_multi_doc: bool = False
        self.text: str = ""
        self.findings: List[Finding] = []
        self.warning: Optional[str] = None

    @property
    def is_loaded(self) -> bool:
        return self.data is not None

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def is_secure(self) -> bool:
        """Scannable content with zero findings. Unsupported kinds are not 'secure'."""
        return self.is_loaded and not self.findings and self.warning is None

    def load(self, text: str) -> List[Finding]:
        """
        Parses and scans new content, replacing the current manifest.

        Raises:
            ParseError: the session is left untouched.
        """
        result = self.loader.parse(text)

        self.history.clear()
        self.data = result.data
        self.is_multi_doc = result.is_multi_doc
        self.text = self._serialize(self.data)
        self.findings = self.scanner.scan(self.data, self.is_multi_doc)
        self.warning = self.validator.warning_for(self.data, self.is_multi_doc)

        logger.info(f"Loaded manifest: {len(self.findings)} finding(s)")
        return self.findings

    def fix_one(self, finding: Finding) -> List[Finding]:
        if not self.is_loaded:
            return self.findings
        self._snapshot()
        self._commit(self.shield.fix_one(self.data, finding))
        return self.findings

    def fix_all(self, document_index: Optional[int] = None) -> List[Finding]:
        """Fixes every document, or only ``document_index`` of a multi-document set."""
        if not self.is_loaded:
            return self.findings
        self._snapshot()
        self._commit(self.shield.fix_all(self.data, document_index))
        return self.findings

    def undo(self) -> bool:
        """Restores the previous state. Returns False when there was nothing to undo."""
        snapshot = self.history.pop()
        if snapshot is None:
            return False
        self.data = snapshot.document
        self.text = snapshot.serialized_text
        self.findings = snapshot.findings
        return True

    def clear(self):
        self.history.clear()
        self._reset_state()

    def _snapshot(self):
        self.history.push(HistorySnapshot(
            document=copy.deepcopy(self.data),
            serialized_text=self.text,
            findings=list(self.findings),
        ))

    def _commit(self, fixed: Any):
        self.data = fixed
        self.text = self._serialize(fixed)
        self.findings = self.scanner.scan(fixed, self.is_multi_doc)

    def _serialize(self, data: Any) -> str:
        if data is None:
            return ""
        return self.exporter.export(data, self.is_multi_doc)

#!/usr/bin/env python3
"""
KUBELENS SCANNER - The Inspector
--------------------------------
Entry point for security analysis. Classifies each document once,
hands it to the pod or RBAC scanner, and stitches the results together
for multi-document streams. Scanning is total: malformed structures
simply yield fewer findings, never exceptions.

Author: KubeLens Team
Date: 2026-01-16
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List

from kubelens.core.models import Finding, Severity
from kubelens.manifest.shapes import classify
from kubelens.rules.tables import DEFAULT_RULE_TABLE, RuleTable
from kubelens.scanner.pod import PodSecurityScanner
from kubelens.scanner.rbac import RbacScanner

logger = logging.getLogger("kubelens.scanner")


class ManifestScanner:
    """
    Dispatches documents by resource shape. Stateless between calls;
    the rule table is the only configuration.
    """

    def __init__(self, rule_table: RuleTable = DEFAULT_RULE_TABLE):
        self.rule_table = rule_table
        self.pod_scanner = PodSecurityScanner(rule_table)
        self.rbac_scanner = RbacScanner(rule_table)

    def scan(self, data: Any, is_multi_doc: bool = False) -> List[Finding]:
        """
        Scans a document, or a document set when ``is_multi_doc`` is set.
        Multi-doc findings get ``document[i].`` path prefixes and ``document_index``.
        """
        if is_multi_doc and isinstance(data, list):
            findings: List[Finding] = []
            for doc_index, doc in enumerate(data):
                findings.extend(f.in_document(doc_index) for f in self.scan_document(doc))
            return findings
        return self.scan_document(data)

    def scan_document(self, doc: Any) -> List[Finding]:
        shape = classify(doc)
        if shape.has_rules:
            findings = self.rbac_scanner.scan(doc, shape)
        elif shape.has_pod_spec:
            findings = self.pod_scanner.scan(doc, shape)
        else:
            findings = []
        logger.debug(f"{shape.name} document scanned: {len(findings)} finding(s)")
        return findings


_default_scanner = ManifestScanner()


def scan(data: Any, is_multi_doc: bool = False, rule_table: RuleTable = DEFAULT_RULE_TABLE) -> List[Finding]:
    """Scans with the default rule table unless another is given."""
    if rule_table is DEFAULT_RULE_TABLE:
        return _default_scanner.scan(data, is_multi_doc)
    return ManifestScanner(rule_table).scan(data, is_multi_doc)


def group_by_severity(findings: Iterable[Finding]) -> Dict[Severity, List[Finding]]:
    grouped: Dict[Severity, List[Finding]] = OrderedDict()
    for finding in findings:
        grouped.setdefault(finding.severity, []).append(finding)
    return grouped


def group_by_category(findings: Iterable[Finding]) -> Dict[str, List[Finding]]:
    grouped: Dict[str, List[Finding]] = OrderedDict()
    for finding in findings:
        category = finding.category.value if finding.category else "Other"
        grouped.setdefault(category, []).append(finding)
    return grouped


def sort_by_severity(findings: Iterable[Finding]) -> List[Finding]:
    """Worst first; ties keep scan order."""
    return sorted(findings, key=lambda f: -f.severity.rank)


def count_by_severity(findings: Iterable[Finding]) -> Dict[str, int]:
    counts = {sev.value: 0 for sev in Severity}
    for finding in findings:
        counts[finding.severity.value] += 1
    return counts

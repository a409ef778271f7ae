#!/usr/bin/env python3
"""
KUBELENS VALIDATOR - The Gatekeeper
-----------------------------------
Decides what the scanners can actually judge. A manifest whose kind is
outside the supported set produces zero findings, which must not be
mistaken for "no issues found"; this module surfaces that difference
as a warning, and summarizes each document for display.

Author: KubeLens Team
Date: 2026-01-16
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger("kubelens.validator")

# Pod resources and workloads, then RBAC (only Role and ClusterRole are scanned)
SCANNABLE_KINDS = (
    "Pod", "Deployment", "DaemonSet", "StatefulSet", "ReplicaSet", "Job", "CronJob",
    "Role", "ClusterRole",
)


def _documents(data: Any, is_multi_doc: bool) -> List[Any]:
    if is_multi_doc and isinstance(data, list):
        return data
    return [data]


class KindValidator:
    """
    Classifies documents as scannable or not, and builds the
    per-document info rows the presentation layer lists.
    """

    def __init__(self, scannable_kinds: Tuple[str, ...] = SCANNABLE_KINDS):
        self.scannable_kinds = scannable_kinds
        # Core fields that must exist in every Kubernetes resource
        self.required_fields = ["apiVersion", "kind", "metadata"]

    def is_scannable_kind(self, doc: Any) -> bool:
        if not isinstance(doc, dict) or not doc.get("kind"):
            return False
        return doc["kind"] in self.scannable_kinds

    def unsupported_kinds(self, data: Any, is_multi_doc: bool = False) -> List[str]:
        """Kinds present in the input that cannot be scanned, in document order."""
        kinds = []
        for doc in _documents(data, is_multi_doc):
            if isinstance(doc, dict) and doc.get("kind") and not self.is_scannable_kind(doc):
                kinds.append(str(doc["kind"]))
        return kinds

    def warning_for(self, data: Any, is_multi_doc: bool = False) -> Optional[str]:
        """Non-blocking warning text, or None when every kind is supported."""
        kinds = self.unsupported_kinds(data, is_multi_doc)
        if not kinds:
            return None
        return f"Warning: {', '.join(kinds)} cannot be scanned for security issues"

    def document_info(self, data: Any, is_multi_doc: bool = False) -> List[Dict[str, Any]]:
        if data is None:
            return []
        rows = []
        for index, doc in enumerate(_documents(data, is_multi_doc)):
            doc_map = doc if isinstance(doc, dict) else {}
            metadata = doc_map.get("metadata") if isinstance(doc_map.get("metadata"), dict) else {}
            rows.append({
                "index": index,
                "kind": doc_map.get("kind") or "Unknown",
                "name": metadata.get("name") or "",
                "namespace": metadata.get("namespace") or "default",
                "is_scannable": self.is_scannable_kind(doc),
            })
        return rows

    def validate_identity(self, doc: Any) -> Tuple[bool, str]:
        """
        Light pre-flight check on a document's identity fields.
        Failing this never blocks scanning; it only feeds report notes.
        """
        if not isinstance(doc, dict):
            return False, "Document is not a mapping."
        for field in self.required_fields:
            if field not in doc:
                return False, f"Missing required top-level field '{field}'."
        return True, "Document identity is complete."

    def identity_notes(self, data: Any, is_multi_doc: bool = False) -> List[str]:
        """Identity problems per document. Empty documents are skipped."""
        if data is None:
            return []
        notes = []
        for index, doc in enumerate(_documents(data, is_multi_doc)):
            if doc is None:
                continue
            ok, message = self.validate_identity(doc)
            if not ok:
                notes.append(f"Document {index}: {message}")
        return notes

#!/usr/bin/env python3
"""
KUBELENS LOGIC SHIELD - Targeted Remediation
--------------------------------------------
The ShieldEngine turns a Finding back into a minimal edit: flip the one
insecure field, strip the one dangerous capability, swap the one hostPath
volume. It never introduces a field the user did not already have set to
an insecure value, and applying a fix twice changes nothing.

Inputs are copied at the boundary with every YAML alias expanded into its
own subtree, so callers always get a fresh tree and a fix never leaks
into a node that merely shared an anchor.
RBAC findings are informational and are never auto-fixed.

Author: KubeLens Team
Date: 2026-01-16
"""

import copy
import logging
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple

from kubelens.core.models import Finding
from kubelens.manifest.shapes import as_list, classify, detach, iter_containers
from kubelens.rules.tables import DEFAULT_RULE_TABLE, RuleTable
from kubelens.scanner.pod import is_root_uid
from kubelens.scanner.scanner import ManifestScanner

logger = logging.getLogger("kubelens.shield")

NON_ROOT_UID = 1000

Handler = Callable[[Dict[Any, Any], Finding, bool], None]


def _prune(parent: Dict[Any, Any], key: str):
    """Drops ``parent[key]`` when it is an empty mapping."""
    value = parent.get(key)
    if isinstance(value, dict) and not value:
        del parent[key]


class ShieldEngine:
    """
    Remediation registry keyed by Finding.key.
    Every handler receives the live pod spec of a private copy of the document.
    """

    def __init__(self, rule_table: RuleTable = DEFAULT_RULE_TABLE):
        self.rule_table = rule_table
        self.scanner = ManifestScanner(rule_table)

        self.handlers: Dict[str, Handler] = {
            "hostNetwork": self._fix_host_namespace,
            "hostPID": self._fix_host_namespace,
            "hostIPC": self._fix_host_namespace,
            "privileged": self._fix_privileged,
            "allowPrivilegeEscalation": self._fix_privilege_escalation,
            "runAsUser": self._fix_run_as_root,
            "hostPath": self._fix_host_path,
            "automountServiceAccountToken": self._fix_service_account_token,
        }
        for capability in rule_table.dangerous_capabilities:
            self.handlers[capability] = self._fix_capability

    def is_fixable(self, finding: Finding) -> bool:
        return not finding.is_rbac and finding.key in self.handlers

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def fix_one(self, data: Any, finding: Finding, from_fix_all: bool = False) -> Any:
        """
        Returns a copy of ``data`` with ``finding`` remediated.

        ``data`` may be a single document or a document set; for a set, only
        the document at ``finding.document_index`` is touched. Stale or
        unfixable findings return an unchanged copy.
        """
        if isinstance(data, list):
            fixed = detach(data)
            index = finding.document_index
            if index is None or not 0 <= index < len(fixed):
                logger.debug(f"No document {index} in set of {len(fixed)}; nothing to fix")
                return fixed
            fixed[index] = self._apply(fixed[index], finding, from_fix_all)
            return fixed
        return self._apply(detach(data), finding, from_fix_all)

    def fix_all(self, data: Any, document_index: Optional[int] = None) -> Any:
        """
        Fixes every fixable finding. Each pass re-scans the document it just
        produced, so decisions are never made on a stale finding list.

        For a document set, ``document_index`` limits the fixes to that one
        document; the others come back as untouched copies.
        """
        if isinstance(data, list):
            fixed = detach(data)
            if document_index is None:
                return [self._fix_all_document(doc) for doc in fixed]
            if not 0 <= document_index < len(fixed):
                logger.debug(f"No document {document_index} in set of {len(fixed)}; nothing to fix")
                return fixed
            fixed[document_index] = self._fix_all_document(fixed[document_index])
            return fixed
        return self._fix_all_document(detach(data))

    def protect(self, data: Any, is_multi_doc: bool = False) -> Tuple[Any, List[str]]:
        """
        Runs fix_all and explains what changed.
        Returns the fixed data and one human-readable line per resolved finding.
        """
        before = self.scanner.scan(data, is_multi_doc)
        fixed = self.fix_all(data)
        remaining = {(str(f.path), f.key) for f in self.scanner.scan(fixed, is_multi_doc)}

        changes = []
        for finding in before:
            if not self.is_fixable(finding):
                continue
            if (str(finding.path), finding.key) in remaining:
                continue
            changes.append(f"Fixed: {finding.issue} at {finding.path}")
        return fixed, changes

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _apply(self, doc: Any, finding: Finding, from_fix_all: bool) -> Any:
        """Mutates ``doc`` (already a private copy) in place and returns it."""
        if finding.is_rbac:
            logger.debug(f"RBAC finding at {finding.path} is informational; skipping")
            return doc

        handler = self.handlers.get(finding.key)
        if handler is None:
            logger.debug(f"No remediation registered for '{finding.key}'")
            return doc

        pod_spec = classify(doc).pod_spec(doc)
        if pod_spec is None:
            return doc

        handler(pod_spec, finding, from_fix_all)
        return doc

    def _fix_all_document(self, doc: Any) -> Any:
        while True:
            fixable = [f for f in self.scanner.scan_document(doc) if self.is_fixable(f)]
            if not fixable:
                return doc

            # One fix per issue class per container
            unique: "OrderedDict[Tuple[str, Any], Finding]" = OrderedDict()
            for finding in fixable:
                unique[(finding.key, finding.container_index)] = finding

            before = copy.deepcopy(doc)
            for finding in unique.values():
                doc = self._apply(doc, finding, from_fix_all=True)

            if doc == before:
                logger.debug("Fix pass made no progress; stopping")
                return doc

    def _target_containers(self, pod_spec: Dict[Any, Any], finding: Finding) -> List[Dict[Any, Any]]:
        """
        The container the finding points at, or every container when the
        finding carries no index. An out-of-range index targets nothing.
        """
        refs = iter_containers(pod_spec)
        if finding.container_index is None:
            return [ref.container for ref in refs]
        return [ref.container for ref in refs if ref.index == finding.container_index]

    def _disable_flag(self, pod_spec: Dict[Any, Any], finding: Finding, flag: str):
        for container in self._target_containers(pod_spec, finding):
            ctx = container.get("securityContext")
            if isinstance(ctx, dict) and ctx.get(flag) is True:
                ctx[flag] = False
                _prune(container, "securityContext")

    def _fix_host_namespace(self, pod_spec: Dict[Any, Any], finding: Finding, from_fix_all: bool):
        # Only flip an existing true; never introduce the field
        if pod_spec.get(finding.key) is True:
            pod_spec[finding.key] = False

    def _fix_privileged(self, pod_spec: Dict[Any, Any], finding: Finding, from_fix_all: bool):
        self._disable_flag(pod_spec, finding, "privileged")

    def _fix_privilege_escalation(self, pod_spec: Dict[Any, Any], finding: Finding, from_fix_all: bool):
        self._disable_flag(pod_spec, finding, "allowPrivilegeEscalation")

    def _fix_run_as_root(self, pod_spec: Dict[Any, Any], finding: Finding, from_fix_all: bool):
        targets = self._target_containers(pod_spec, finding)
        root_containers = [
            c for c in targets
            if isinstance(c.get("securityContext"), dict) and is_root_uid(c["securityContext"].get("runAsUser"))
        ]
        if from_fix_all and not root_containers:
            logger.debug(f"Container {finding.container_index} is not running as root; leaving it alone")
            return

        for container in root_containers:
            ctx = container["securityContext"]
            ctx["runAsUser"] = NON_ROOT_UID
            ctx["runAsNonRoot"] = True

    def _fix_host_path(self, pod_spec: Dict[Any, Any], finding: Finding, from_fix_all: bool):
        volumes = as_list(pod_spec.get("volumes"))
        volume_index = finding.path.index_after("volumes")
        if volume_index is None:
            targets = volumes
        elif 0 <= volume_index < len(volumes):
            targets = [volumes[volume_index]]
        else:
            return

        for volume in targets:
            if isinstance(volume, dict) and volume.get("hostPath") is not None:
                del volume["hostPath"]
                volume["emptyDir"] = {}

    def _fix_capability(self, pod_spec: Dict[Any, Any], finding: Finding, from_fix_all: bool):
        capability = finding.value if isinstance(finding.value, str) else finding.key

        for container in self._target_containers(pod_spec, finding):
            ctx = container.get("securityContext")
            if not isinstance(ctx, dict):
                continue
            caps = ctx.get("capabilities")
            if not isinstance(caps, dict):
                continue
            added = caps.get("add")
            if not isinstance(added, list) or capability not in added:
                continue

            caps["add"] = [cap for cap in added if cap != capability]
            if not caps["add"]:
                del caps["add"]
            if not caps.get("drop"):
                caps["drop"] = ["ALL"]

            _prune(ctx, "capabilities")
            _prune(container, "securityContext")

    def _fix_service_account_token(self, pod_spec: Dict[Any, Any], finding: Finding, from_fix_all: bool):
        if pod_spec.get("automountServiceAccountToken") is True:
            pod_spec["automountServiceAccountToken"] = False


_default_shield = ShieldEngine()


def fix_one(data: Any, finding: Finding, from_fix_all: bool = False) -> Any:
    return _default_shield.fix_one(data, finding, from_fix_all)


def fix_all(data: Any, document_index: Optional[int] = None) -> Any:
    return _default_shield.fix_all(data, document_index)

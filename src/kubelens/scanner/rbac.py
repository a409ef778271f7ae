#!/usr/bin/env python3
"""
KUBELENS RBAC SCANNER
---------------------
Evaluates Role/ClusterRole rules against the RuleTable. One risky rule
produces findings at several granularities: the rule itself (for summary
views) and the exact verb/resource element (for precise highlighting).

Check order per rule:
  1. wildcard resources
  2. wildcard verbs
  3. full wildcard (apiGroups/resources/verbs); stops further checks
  4. wildcard nonResourceURLs
  5. dangerous verb x resource pairs (no wildcard verb)
  6. wildcard verb on critical resources

Author: KubeLens Team
Date: 2026-01-16
"""

import logging
from typing import Any, List

from kubelens.core.models import Category, Finding, FindingPath, Severity
from kubelens.manifest.shapes import ResourceShape, as_list
from kubelens.rules.tables import DEFAULT_RULE_TABLE, WILDCARD, RuleTable

logger = logging.getLogger("kubelens.scanner")


def base_resource(resource: str) -> str:
    """'pods/exec' -> 'pods'."""
    return resource.split("/")[0]


def _rbac(path: FindingPath, key: str, value: Any, issue: str, severity: Severity,
          description: str) -> Finding:
    return Finding(
        path=path,
        key=key,
        value=value,
        issue=issue,
        severity=severity,
        category=Category.RBAC,
        description=description,
    )


def _impact(severity: Severity) -> str:
    if severity == Severity.CRITICAL:
        return "severe security issues including privilege escalation."
    return "potential security concerns depending on usage context."


class RbacScanner:
    """Rule-by-rule RBAC analysis driven by an injectable RuleTable."""

    def __init__(self, rule_table: RuleTable = DEFAULT_RULE_TABLE):
        self.rule_table = rule_table

    def scan(self, doc: Any, shape: ResourceShape) -> List[Finding]:
        findings: List[Finding] = []
        base = FindingPath(shape.rules_path)
        for rule_index, rule in enumerate(shape.rules(doc)):
            if not isinstance(rule, dict):
                logger.debug(f"Skipping non-mapping rule at index {rule_index}")
                continue
            findings.extend(self.scan_rule(rule, base.child(rule_index)))
        return findings

    def scan_rule(self, rule: dict, rule_path: FindingPath) -> List[Finding]:
        api_groups = as_list(rule.get("apiGroups"))
        resources = as_list(rule.get("resources"))
        verbs = as_list(rule.get("verbs"))
        non_resource_urls = as_list(rule.get("nonResourceURLs"))

        wildcard_resource = WILDCARD in resources
        wildcard_verb = WILDCARD in verbs
        wildcard_api_group = WILDCARD in api_groups

        findings: List[Finding] = []

        # 1. Wildcard resources
        if wildcard_resource:
            findings.append(_rbac(
                rule_path, "rules", WILDCARD,
                "Wildcard resources RBAC permissions", Severity.CRITICAL,
                "This role grants permissions to all resources (*) which effectively provides access "
                "to potentially sensitive resources. This is dangerous and violates principle of least "
                "privilege.",
            ))
            findings.append(_rbac(
                rule_path.child("resources", resources.index(WILDCARD)), "resources", WILDCARD,
                "Wildcard resources access", Severity.CRITICAL,
                "The wildcard resource (*) grants access to all resources in the API group, including "
                "potentially sensitive ones like secrets, configmaps, and more.",
            ))

        # 2. Wildcard verbs
        if wildcard_verb:
            findings.append(_rbac(
                rule_path.child("verbs", verbs.index(WILDCARD)), "verbs", WILDCARD,
                "Wildcard verb access", Severity.CRITICAL,
                "The wildcard verb (*) grants all possible actions on the specified resources, which "
                "is a significant security risk and violates the principle of least privilege.",
            ))

        # 3. Full wildcard subsumes every narrower check
        if wildcard_api_group and wildcard_resource and wildcard_verb:
            findings.append(_rbac(
                rule_path, "rules", WILDCARD,
                "Full wildcard RBAC permissions", Severity.CRITICAL,
                "This role grants full wildcard permissions (*/*/*), effectively providing full access "
                "to the cluster. This is extremely dangerous and violates principle of least privilege.",
            ))
            findings.append(_rbac(
                rule_path.child("verbs", verbs.index(WILDCARD)), "verbs", WILDCARD,
                "Wildcard verb with full permissions", Severity.CRITICAL,
                "The wildcard verb (*) combined with wildcarded resources and API groups grants full "
                "access to everything in the cluster. This is extremely dangerous and violates principle "
                "of least privilege.",
            ))
            return findings

        # 4. Non-resource URLs
        if WILDCARD in non_resource_urls:
            findings.append(_rbac(
                rule_path.child("nonResourceURLs"), "nonResourceURLs", WILDCARD,
                "Wildcard non-resource URL access", Severity.HIGH,
                "This role grants access to all non-resource URLs, which can include sensitive API "
                "server endpoints. This permission should be limited to specific URLs only.",
            ))

        if not wildcard_verb:
            findings.extend(self._check_verbs(verbs, resources, wildcard_resource, rule_path))
        else:
            findings.extend(self._check_wildcard_verb(verbs, resources, rule_path))
        return findings

    def _check_verbs(self, verbs: list, resources: list, wildcard_resource: bool,
                     rule_path: FindingPath) -> List[Finding]:
        """Step 5: specific verbs against specific (or all) resources."""
        table = self.rule_table
        findings: List[Finding] = []

        for verb_index, verb in enumerate(verbs):
            if not table.is_dangerous_verb(verb):
                continue
            verb_path = rule_path.child("verbs", verb_index)
            any_resource = table.severity_for(verb, WILDCARD)

            if wildcard_resource:
                if any_resource:
                    description = (f"The '{verb}' permission on all resources is extremely risky and "
                                   f"provides excessive access that violates the principle of least privilege.")
                    findings.append(_rbac(rule_path, "rules", f"{verb} *",
                                          f"Dangerous RBAC permission: {verb} on all resources",
                                          any_resource, description))
                    findings.append(_rbac(verb_path, "verbs", verb,
                                          f"Dangerous verb: {verb} on all resources",
                                          any_resource, description))
                    continue

                for resource in table.listed_resources(verb):
                    severity = table.severity_for(verb, resource)
                    description = (f"The '{verb}' permission on all '{resource}' is risky. This allows a "
                                   f"user to {verb} any {resource}, which could lead to privilege "
                                   f"escalation or sensitive data exposure.")
                    findings.append(_rbac(rule_path, "rules", f"{verb} *.{resource}",
                                          f"Dangerous RBAC permission: {verb} {resource}",
                                          severity, description))
                    findings.append(_rbac(verb_path, "verbs", verb,
                                          f"Dangerous verb: {verb} on all {resource}",
                                          severity, description))
                continue

            for resource_index, resource in enumerate(resources):
                if not isinstance(resource, str):
                    continue
                severity = table.severity_for(verb, base_resource(resource))
                if severity:
                    description = (f"The '{verb}' permission on '{resource}' can be risky. This allows a "
                                   f"user to {verb} {resource}, which could lead to {_impact(severity)}")
                    findings.append(_rbac(rule_path, "rules", f"{verb} {resource}",
                                          f"Sensitive RBAC permission: {verb} {resource}",
                                          severity, description))
                    findings.append(_rbac(verb_path, "verbs", verb,
                                          f"Dangerous verb: {verb} on {resource}",
                                          severity, description))
                    findings.append(_rbac(
                        rule_path.child("resources", resource_index), "resources", resource,
                        f"Sensitive resource: {resource} with {verb}", severity,
                        f"The resource '{resource}' can be sensitive when accessed with '{verb}'. This "
                        f"could expose confidential information or provide a pathway for privilege "
                        f"escalation.",
                    ))
                elif any_resource:
                    description = (f"The '{verb}' permission is highly privileged on any resource. Using "
                                   f"it on '{resource}' could lead to security issues.")
                    findings.append(_rbac(rule_path, "rules", f"{verb} {resource}",
                                          f"Dangerous RBAC permission: {verb} {resource}",
                                          any_resource, description))
                    findings.append(_rbac(verb_path, "verbs", verb,
                                          f"Dangerous verb: {verb} on {resource}",
                                          any_resource, description))
        return findings

    def _check_wildcard_verb(self, verbs: list, resources: list,
                             rule_path: FindingPath) -> List[Finding]:
        """Step 6: '*' verb against resources from the critical wildcard set."""
        findings: List[Finding] = []
        verb_path = rule_path.child("verbs", verbs.index(WILDCARD))

        for resource in resources:
            if not isinstance(resource, str):
                continue
            if not self.rule_table.is_critical_wildcard_resource(base_resource(resource)):
                continue
            severity = Severity.CRITICAL if resource == WILDCARD else Severity.HIGH
            findings.append(_rbac(
                rule_path, "rules", f"* {resource}",
                f"Dangerous RBAC permission: all verbs on {resource}", severity,
                f"Granting all verbs on '{resource}' is extremely dangerous. This effectively gives "
                f"complete control over {resource}, which could be used for privilege escalation.",
            ))
            findings.append(_rbac(
                verb_path, "verbs", WILDCARD,
                f"Dangerous wildcard verb: * on {resource}", severity,
                f"The wildcard (*) verb grants all possible actions on '{resource}'. This effectively "
                f"gives complete control over {resource}, which could be used for privilege escalation.",
            ))
        return findings

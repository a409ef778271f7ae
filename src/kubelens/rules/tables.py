#!/usr/bin/env python3
"""
KUBELENS RULE TABLES
--------------------
Static knowledge used by the scanners: which RBAC verb/resource pairs are
dangerous (and how dangerous), which resources are critical under a
wildcard verb, and which Linux capabilities must never be added.

A RuleTable is immutable once built. The default table is a module
constant; callers can inject their own (or load one from JSON) without
touching global state.

Author: KubeLens Team
Date: 2026-01-16
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Union

from kubelens.core.models import RuleTableError, Severity

logger = logging.getLogger("kubelens.rules")

WILDCARD = "*"

_DANGEROUS_RBAC_VERBS: Dict[str, Dict[str, str]] = {
    # Critical permissions
    "create": {
        "*": "Critical",
        "pods": "Critical",
        "deployments": "Critical",
        "daemonsets": "Critical",
        "statefulsets": "Critical",
        "jobs": "Critical",
        "cronjobs": "Critical",
    },
    "patch": {
        "*": "Critical",
        "pods": "Critical",
        "deployments": "Critical",
        "daemonsets": "Critical",
        "statefulsets": "Critical",
        "roles": "Critical",
        "clusterroles": "Critical",
        "rolebindings": "Critical",
        "clusterrolebindings": "Critical",
    },
    "update": {
        "*": "Critical",
        "roles": "Critical",
        "clusterroles": "Critical",
        "rolebindings": "Critical",
        "clusterrolebindings": "Critical",
    },
    "bind": {"*": "Critical"},
    "escalate": {"*": "Critical"},
    "impersonate": {"*": "Critical"},
    "delete": {
        "*": "High",
        "pods": "High",
        "deployments": "High",
        "daemonsets": "High",
        "statefulsets": "High",
    },
    # Sensitive but sometimes necessary
    "get": {"secrets": "Medium", "configmaps": "Low"},
    "list": {"secrets": "Medium", "configmaps": "Low"},
    "watch": {"secrets": "Medium"},
}

_CRITICAL_WILDCARD_RESOURCES = (
    "*", "pods", "deployments", "daemonsets", "statefulsets", "jobs", "cronjobs",
    "secrets", "roles", "clusterroles", "rolebindings", "clusterrolebindings",
)

_DANGEROUS_CAPABILITIES = ("SYS_ADMIN", "NET_ADMIN", "ALL")


def _string_list(data: Mapping[str, Any], key: str, default: Iterable[str]) -> Iterable[str]:
    value = data.get(key, default)
    if not isinstance(value, (list, tuple)) or not all(isinstance(item, str) for item in value):
        raise RuleTableError(f"'{key}' must be a list of strings.")
    return value


class RuleTable:
    """
    Verb x resource -> severity matrix plus the wildcard and capability sets.
    """

    def __init__(self,
                 dangerous_verbs: Mapping[str, Mapping[str, Union[str, Severity]]],
                 critical_wildcard_resources: Iterable[str],
                 dangerous_capabilities: Iterable[str] = _DANGEROUS_CAPABILITIES):
        if not isinstance(dangerous_verbs, Mapping):
            raise RuleTableError("Dangerous verbs must be a mapping of verb to resources.")
        frozen = {}
        for verb, resources in dangerous_verbs.items():
            if not isinstance(resources, Mapping):
                raise RuleTableError(f"Verb '{verb}' must map resources to severities.")
            try:
                frozen[str(verb)] = MappingProxyType(
                    {str(res): Severity.parse(sev) for res, sev in resources.items()}
                )
            except ValueError as e:
                raise RuleTableError(f"Verb '{verb}': {e}") from e

        self._verbs = MappingProxyType(frozen)
        self._wildcard_resources: FrozenSet[str] = frozenset(critical_wildcard_resources)
        self._capabilities: FrozenSet[str] = frozenset(dangerous_capabilities)

    @property
    def dangerous_verbs(self) -> Mapping[str, Mapping[str, Severity]]:
        return self._verbs

    @property
    def critical_wildcard_resources(self) -> FrozenSet[str]:
        return self._wildcard_resources

    @property
    def dangerous_capabilities(self) -> FrozenSet[str]:
        return self._capabilities

    def is_dangerous_verb(self, verb: Any) -> bool:
        return isinstance(verb, str) and verb in self._verbs

    def severity_for(self, verb: str, resource: str) -> Optional[Severity]:
        """Exact table lookup; no wildcard fallback."""
        return self._verbs.get(verb, {}).get(resource)

    def listed_resources(self, verb: str) -> Iterable[str]:
        """Concrete resources the table lists for a verb, in table order."""
        return [res for res in self._verbs.get(verb, {}) if res != WILDCARD]

    def is_critical_wildcard_resource(self, resource: str) -> bool:
        return resource in self._wildcard_resources

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuleTable":
        """
        Builds a table from a plain mapping. Missing sections fall back
        to the defaults so overrides can be partial.
        """
        if not isinstance(data, Mapping):
            raise RuleTableError("Rule table must be a JSON object.")

        verbs = data.get("dangerousVerbs", _DANGEROUS_RBAC_VERBS)
        if not isinstance(verbs, Mapping):
            raise RuleTableError("'dangerousVerbs' must map verbs to {resource: severity} objects.")

        return cls(
            dangerous_verbs=verbs,
            critical_wildcard_resources=_string_list(
                data, "criticalWildcardResources", _CRITICAL_WILDCARD_RESOURCES),
            dangerous_capabilities=_string_list(data, "dangerousCapabilities", _DANGEROUS_CAPABILITIES),
        )

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "RuleTable":
        """Loads an override table from disk."""
        resolved = Path(path).resolve()
        try:
            with open(resolved, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Critical Failure: Unable to load rule table from {resolved}")
            raise RuleTableError(f"Failed to load rule table: {str(e)}") from e
        return cls.from_dict(data)


DEFAULT_RULE_TABLE = RuleTable(_DANGEROUS_RBAC_VERBS, _CRITICAL_WILDCARD_RESOURCES)

# Read-only views for callers that only want the raw data
DANGEROUS_RBAC_VERBS = DEFAULT_RULE_TABLE.dangerous_verbs
CRITICAL_WILDCARD_RESOURCES = DEFAULT_RULE_TABLE.critical_wildcard_resources
DANGEROUS_CAPABILITIES = DEFAULT_RULE_TABLE.dangerous_capabilities

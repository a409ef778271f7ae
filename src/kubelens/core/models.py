#!/usr/bin/env python3
"""
KUBELENS CORE MODELS
--------------------
Defines the fundamental data structures used across the KubeLens engine:
the structured finding path, the Finding record itself, history snapshots
and the exception hierarchy.

Author: KubeLens Team
Date: 2026-01-16
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class KubeLensError(Exception):
    """Base class for every error the engine raises on purpose."""


class ParseError(KubeLensError):
    """
    Raised when manifest text is not valid YAML.
    Carries the underlying parser message; no partial documents are returned.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RuleTableError(KubeLensError):
    """Raised when a rule table override cannot be loaded or is malformed."""


class Severity(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        """Ordinal risk level. Critical is 4, Low is 1."""
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: Union[str, "Severity"]) -> "Severity":
        if isinstance(value, Severity):
            return value
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        raise ValueError(f"Unknown severity '{value}'")

    def __str__(self) -> str:
        return self.value


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


class Category(str, Enum):
    PRIVILEGE_ESCALATION = "PrivilegeEscalation"
    RBAC = "RBAC"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PathSegment:
    """A single step in a FindingPath: either a mapping key or a list index."""
    value: Union[str, int]

    @property
    def is_index(self) -> bool:
        return isinstance(self.value, int)


_SEGMENT_PATTERN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")


class FindingPath:
    """
    Structured locator for the offending field of a Finding.

    Stored as an ordered tuple of key/index segments and rendered in a
    canonical dotted form, e.g. ``spec.containers[0].securityContext.privileged``.
    Equality is exact on segments; comparing against a plain string compares
    the canonical rendering.
    """

    __slots__ = ("_segments",)

    def __init__(self, segments: Tuple[Union[str, int, PathSegment], ...] = ()):
        normalized = []
        for seg in segments:
            normalized.append(seg if isinstance(seg, PathSegment) else PathSegment(seg))
        self._segments: Tuple[PathSegment, ...] = tuple(normalized)

    @classmethod
    def parse(cls, text: str) -> "FindingPath":
        """Inverse of str(): ``a.b[0].c`` becomes ('a', 'b', 0, 'c')."""
        segments: List[Union[str, int]] = []
        for key, index in _SEGMENT_PATTERN.findall(text or ""):
            segments.append(int(index) if index else key)
        return cls(tuple(segments))

    @property
    def segments(self) -> Tuple[PathSegment, ...]:
        return self._segments

    def child(self, *parts: Union[str, int]) -> "FindingPath":
        return FindingPath(self._segments + tuple(PathSegment(p) for p in parts))

    def prefixed(self, *parts: Union[str, int]) -> "FindingPath":
        return FindingPath(tuple(PathSegment(p) for p in parts) + self._segments)

    def startswith(self, other: Union["FindingPath", str]) -> bool:
        """Segment-wise prefix test, so rules[1] is never a prefix of rules[10]."""
        if isinstance(other, str):
            other = FindingPath.parse(other)
        n = len(other._segments)
        return self._segments[:n] == other._segments

    def index_after(self, key: str) -> Optional[int]:
        """Returns the list index that directly follows ``key``, if any."""
        for pos, seg in enumerate(self._segments[:-1]):
            if seg.value == key:
                nxt = self._segments[pos + 1]
                if nxt.is_index:
                    return nxt.value
        return None

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self):
        return iter(self._segments)

    def __str__(self) -> str:
        out = ""
        for seg in self._segments:
            if seg.is_index:
                out += f"[{seg.value}]"
            elif out:
                out += f".{seg.value}"
            else:
                out = str(seg.value)
        return out

    def __repr__(self) -> str:
        return f"FindingPath('{self}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FindingPath):
            return self._segments == other._segments
        if isinstance(other, str):
            return str(self) == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(str(self))


@dataclass
class Finding:
    """
    A single located, classified security observation.

    ``container_index`` addresses the concatenation ``containers + initContainers``
    of the owning pod spec. ``document_index`` is only set for multi-document input.
    """
    path: FindingPath
    key: str
    value: Any
    issue: str
    severity: Severity
    category: Category
    description: str
    document_index: Optional[int] = None
    container_index: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.path, str):
            self.path = FindingPath.parse(self.path)
        self.severity = Severity.parse(self.severity)
        if not isinstance(self.category, Category):
            self.category = Category(self.category)

    @property
    def is_rbac(self) -> bool:
        return self.category == Category.RBAC

    def in_document(self, index: int) -> "Finding":
        """Copy of this finding re-addressed into a document set."""
        return Finding(
            path=self.path.prefixed("document", index),
            key=self.key,
            value=self.value,
            issue=self.issue,
            severity=self.severity,
            category=self.category,
            description=self.description,
            document_index=index,
            container_index=self.container_index,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Plain record consumed by presentation layers (camelCase keys)."""
        record = {
            "path": str(self.path),
            "key": self.key,
            "value": self.value,
            "issue": self.issue,
            "severity": self.severity.value,
            "category": self.category.value,
            "description": self.description,
        }
        if self.document_index is not None:
            record["documentIndex"] = self.document_index
        if self.container_index is not None:
            record["containerIndex"] = self.container_index
        return record


@dataclass
class HistorySnapshot:
    """State captured immediately before a mutating fix."""
    document: Any
    serialized_text: str
    findings: List[Finding] = field(default_factory=list)

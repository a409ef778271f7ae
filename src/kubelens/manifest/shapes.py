#!/usr/bin/env python3
"""
KUBELENS SHAPES - Resource Layout Dispatch
------------------------------------------
Kubernetes hides the same pod spec at different depths depending on the
resource kind. Each shape below knows where its pod spec (or RBAC rule
list) lives, so scanners and fixers never repeat the nested lookups.

Author: KubeLens Team
Date: 2026-01-16
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

RBAC_KINDS = ("Role", "ClusterRole")

POD_SPEC = ("spec",)
TEMPLATE_POD_SPEC = ("spec", "template", "spec")
CRONJOB_POD_SPEC = ("spec", "jobTemplate", "spec", "template", "spec")


def as_map(value: Any) -> Dict[Any, Any]:
    """Returns value if it is a mapping, else an empty dict."""
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    """Returns value if it is a sequence, else an empty list."""
    return value if isinstance(value, list) else []


def detach(node: Any, _active: Optional[set] = None) -> Any:
    """
    Copies nested mappings and lists without memoization, so YAML aliases
    become independent subtrees. Raises ValueError on a recursive alias.
    """
    if not isinstance(node, (dict, list)):
        return node
    active = set() if _active is None else _active
    if id(node) in active:
        raise ValueError("Recursive alias in manifest")
    active.add(id(node))
    try:
        if isinstance(node, dict):
            return {key: detach(value, active) for key, value in node.items()}
        return [detach(item, active) for item in node]
    finally:
        active.discard(id(node))


def dig(doc: Any, keys: Tuple[str, ...]) -> Any:
    """Walks nested mappings; returns None as soon as a step is missing."""
    node = doc
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


@dataclass(frozen=True)
class ResourceShape:
    """Base shape: nothing scannable."""
    name: str = "Other"
    pod_spec_path: Optional[Tuple[str, ...]] = None
    rules_path: Optional[Tuple[str, ...]] = None

    @property
    def has_pod_spec(self) -> bool:
        return self.pod_spec_path is not None

    @property
    def has_rules(self) -> bool:
        return self.rules_path is not None

    def pod_spec(self, doc: Any) -> Optional[Dict[Any, Any]]:
        if self.pod_spec_path is None:
            return None
        spec = dig(doc, self.pod_spec_path)
        return spec if isinstance(spec, dict) else None

    def rules(self, doc: Any) -> List[Any]:
        if self.rules_path is None:
            return []
        return as_list(dig(doc, self.rules_path))


PodShape = ResourceShape(name="Pod", pod_spec_path=POD_SPEC)
TemplatedWorkloadShape = ResourceShape(name="TemplatedWorkload", pod_spec_path=TEMPLATE_POD_SPEC)
CronJobShape = ResourceShape(name="CronJob", pod_spec_path=CRONJOB_POD_SPEC)
RbacShape = ResourceShape(name="RBAC", rules_path=("rules",))
OtherShape = ResourceShape()


def classify(doc: Any) -> ResourceShape:
    """
    Selects the shape for a document exactly once.
    Documents without a kind are never scanned.
    """
    if not isinstance(doc, dict):
        return OtherShape
    kind = doc.get("kind")
    if not kind:
        return OtherShape
    if kind in RBAC_KINDS:
        return RbacShape
    if kind == "Pod":
        return PodShape
    if kind == "CronJob":
        if dig(doc, CRONJOB_POD_SPEC[:-1]) is not None:
            return CronJobShape
        return OtherShape
    if dig(doc, TEMPLATE_POD_SPEC[:-1]) is not None:
        return TemplatedWorkloadShape
    return OtherShape


@dataclass
class ContainerRef:
    """
    A container located inside a pod spec.

    ``index`` is the position in containers + initContainers; ``path`` is the
    real location (``containers[i]`` or ``initContainers[j]``).
    """
    index: int
    path: Tuple[Any, ...]
    container: Dict[Any, Any]


def iter_containers(pod_spec: Dict[Any, Any], base: Tuple[Any, ...] = ()) -> List[ContainerRef]:
    """Flattens main and init containers; init containers are offset by the main count."""
    refs: List[ContainerRef] = []
    main = as_list(pod_spec.get("containers"))
    init = as_list(pod_spec.get("initContainers"))
    for i, container in enumerate(main):
        refs.append(ContainerRef(i, base + ("containers", i), as_map(container)))
    for j, container in enumerate(init):
        refs.append(ContainerRef(len(main) + j, base + ("initContainers", j), as_map(container)))
    return refs


def container_at(pod_spec: Dict[Any, Any], index: int) -> Optional[Dict[Any, Any]]:
    """Resolves a concatenated container index back to the live container mapping."""
    for ref in iter_containers(pod_spec):
        if ref.index == index:
            return ref.container
    return None

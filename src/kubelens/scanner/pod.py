#!/usr/bin/env python3
"""
KUBELENS POD SCANNER
--------------------
Privilege-escalation checks for anything that carries a pod spec:
host namespaces, service account token automount, privileged and
escalating containers, dangerous capabilities, root UIDs and hostPath
volumes.

Author: KubeLens Team
Date: 2026-01-16
"""

from typing import Any, Dict, List

from kubelens.core.models import Category, Finding, FindingPath, Severity
from kubelens.manifest.shapes import ResourceShape, as_list, as_map, iter_containers
from kubelens.rules.tables import DEFAULT_RULE_TABLE, RuleTable

HOST_NAMESPACE_CHECKS = (
    (
        "hostNetwork",
        "Host network used",
        "Using the host network stack gives the pod access to all network interfaces and "
        "loopback services on the host. This allows pods to sniff network traffic, access "
        "localhost services, and potentially bypass network policies.",
    ),
    (
        "hostPID",
        "Host PID namespace used",
        "Using the host PID namespace allows the pod to see and interact with all processes "
        "on the host. This can be used to kill, trace, or modify host processes, view sensitive "
        "process information, and potentially access host credentials.",
    ),
    (
        "hostIPC",
        "Host IPC namespace used",
        "Using the host IPC namespace allows the pod to use inter-process communication with "
        "processes on the host. This can be used to read and modify shared memory segments of "
        "host processes, potentially leading to memory corruption or sensitive data exposure.",
    ),
)

CAPABILITY_DESCRIPTIONS = {
    "SYS_ADMIN": "The SYS_ADMIN capability gives a container nearly all permissions of the root "
                 "user. It allows mounting filesystems, creating special files, and managing system "
                 "configuration. Attackers can use this to escape container isolation by mounting "
                 "host directories or modifying kernel parameters.",
    "NET_ADMIN": "The NET_ADMIN capability grants control over host network configurations. It "
                 "allows modifying routing tables, network interfaces, and firewall rules. Attackers "
                 "can use this to intercept network traffic, bypass security controls, or perform "
                 "man-in-the-middle attacks.",
    "ALL": "The ALL capability gives a container all Linux capabilities at once. This provides "
           "almost unrestricted access equivalent to root privileges on the host. It completely "
           "breaks container isolation and should never be used in production environments.",
}


def is_true(value: Any) -> bool:
    """Strict boolean check; 'true' strings and 1 do not count."""
    return value is True


def is_root_uid(value: Any) -> bool:
    """UID 0 as a number. Booleans are not UIDs."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0


def _finding(path: FindingPath, key: str, value: Any, issue: str, severity: Severity,
             description: str, container_index=None) -> Finding:
    return Finding(
        path=path,
        key=key,
        value=value,
        issue=issue,
        severity=severity,
        category=Category.PRIVILEGE_ESCALATION,
        description=description,
        container_index=container_index,
    )


class PodSecurityScanner:
    """
    Walks one pod spec. The resource shape supplies where that spec lives,
    so every emitted path mirrors the manifest's real nesting.
    """

    def __init__(self, rule_table: RuleTable = DEFAULT_RULE_TABLE):
        self.rule_table = rule_table

    def scan(self, doc: Any, shape: ResourceShape) -> List[Finding]:
        pod_spec = shape.pod_spec(doc)
        if pod_spec is None:
            return []

        base = FindingPath(shape.pod_spec_path)
        findings: List[Finding] = []
        findings.extend(self._check_host_namespaces(pod_spec, base))
        findings.extend(self._check_service_account_token(pod_spec, base))
        findings.extend(self._check_containers(pod_spec, base))
        findings.extend(self._check_volumes(pod_spec, base))
        return findings

    def _check_host_namespaces(self, pod_spec: Dict[Any, Any], base: FindingPath) -> List[Finding]:
        findings = []
        for key, issue, description in HOST_NAMESPACE_CHECKS:
            if is_true(pod_spec.get(key)):
                findings.append(_finding(base.child(key), key, True, issue, Severity.HIGH, description))
        return findings

    def _check_service_account_token(self, pod_spec: Dict[Any, Any], base: FindingPath) -> List[Finding]:
        if not is_true(pod_spec.get("automountServiceAccountToken")):
            return []
        return [_finding(
            base.child("automountServiceAccountToken"),
            "automountServiceAccountToken",
            True,
            "Service account token automatically mounted",
            Severity.LOW,
            "Automatically mounting the service account token gives pods access to the Kubernetes "
            "API. If the service account has excessive permissions, attackers who can compromise the "
            "pod may be able to access or modify cluster resources. Only grant this when API access "
            "is required.",
        )]

    def _check_containers(self, pod_spec: Dict[Any, Any], base: FindingPath) -> List[Finding]:
        findings = []
        for ref in iter_containers(pod_spec):
            ctx = as_map(ref.container.get("securityContext"))
            ctx_path = base.child(*ref.path).child("securityContext")

            if is_true(ctx.get("privileged")):
                findings.append(_finding(
                    ctx_path.child("privileged"), "privileged", True,
                    "Privileged container", Severity.CRITICAL,
                    "Privileged containers have full, unrestricted access to the host system with "
                    "all capabilities enabled and all device access. This effectively gives root-level "
                    "access to the host, allowing container escape and complete system compromise. "
                    "Never use in production.",
                    ref.index,
                ))

            if is_true(ctx.get("allowPrivilegeEscalation")):
                findings.append(_finding(
                    ctx_path.child("allowPrivilegeEscalation"), "allowPrivilegeEscalation", True,
                    "Privilege escalation allowed", Severity.LOW,
                    "Setting allowPrivilegeEscalation to true permits processes to gain more "
                    "privileges than their parent process. For example, this allows setuid binaries "
                    "to add capabilities and execute as root, even if the container starts as "
                    "non-root. Always set to false unless absolutely necessary.",
                    ref.index,
                ))

            added = as_list(as_map(ctx.get("capabilities")).get("add"))
            for cap_index, cap in enumerate(added):
                if isinstance(cap, str) and cap in self.rule_table.dangerous_capabilities:
                    findings.append(_finding(
                        ctx_path.child("capabilities", "add", cap_index), cap, cap,
                        f"Dangerous capability: {cap}", Severity.HIGH,
                        CAPABILITY_DESCRIPTIONS.get(
                            cap, f"The {cap} capability grants privileges that can break container isolation."
                        ),
                        ref.index,
                    ))

            if is_root_uid(ctx.get("runAsUser")):
                findings.append(_finding(
                    ctx_path.child("runAsUser"), "runAsUser", 0,
                    "Container running as root", Severity.MEDIUM,
                    "Running containers as root (UID 0) gives processes elevated privileges within "
                    "the container. Combined with kernel vulnerabilities or volume mounts, processes "
                    "running as root have a higher chance of escaping the container. Use a non-root "
                    "user ID and add runAsNonRoot:true to prevent privilege abuse.",
                    ref.index,
                ))
        return findings

    def _check_volumes(self, pod_spec: Dict[Any, Any], base: FindingPath) -> List[Finding]:
        findings = []
        for v_index, volume in enumerate(as_list(pod_spec.get("volumes"))):
            volume = as_map(volume)
            if volume.get("hostPath") is None:
                continue
            host_path = volume["hostPath"]
            findings.append(_finding(
                base.child("volumes", v_index, "hostPath"), "hostPath",
                host_path.get("path") if isinstance(host_path, dict) else host_path,
                "Host path volume mount", Severity.HIGH,
                "Host path volume mounts give containers direct access to the host filesystem. This "
                "can lead to container escapes by accessing sensitive host files, modifying system "
                "configurations, creating device files, or installing backdoors. Use ephemeral "
                "volumes, configMaps, or persistent volumes instead.",
            ))
        return findings

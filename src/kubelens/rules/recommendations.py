#!/usr/bin/env python3
"""
KUBELENS RECOMMENDATIONS
------------------------
Human guidance attached to findings: a remediation summary (what the
one-click fix does, or why there is none) and a longer recommendation
paragraph for detail views.

Author: KubeLens Team
"""

from dataclasses import dataclass
from typing import Optional

from kubelens.core.models import Category, Finding, Severity
from kubelens.rules.tables import DANGEROUS_CAPABILITIES


@dataclass(frozen=True)
class Remediation:
    id: str
    title: str
    description: str
    auto_fixable: bool = True


NON_ROOT = Remediation("nonRoot", "Run as Non-Root User",
                       "Set container to run as a non-root user (UID 1000)")
DISABLE_ESCALATION = Remediation("disablePrivilegeEscalation", "Disable Privilege Escalation",
                                 "Prevent containers from gaining more privileges than their parent process")
DROP_CAPABILITIES = Remediation("dropCapabilities", "Drop All Capabilities",
                                "Remove all Linux capabilities and only add necessary ones")
REMOVE_HOST_PATH = Remediation("removeHostPath", "Remove Host Path Mounts",
                               "Replace hostPath volume mounts with emptyDir or other volume types")
DISABLE_HOST_NAMESPACES = Remediation("disableHostNamespaces", "Disable Host Namespaces",
                                      "Disable access to host namespaces to prevent container escapes")
DISABLE_PRIVILEGED = Remediation("disablePrivileged", "Disable Privileged Mode",
                                 "Run containers without privileged mode to prevent potential container escapes")
DISABLE_TOKEN_AUTOMOUNT = Remediation("disableTokenAutomount", "Disable Token Automount",
                                      "Stop mounting the service account token into pods that do not call the API")
LIMIT_RBAC = Remediation("limitRBACPermissions", "Limit RBAC Permissions",
                         "Restrict RBAC rules to only what is necessary following principle of least privilege",
                         auto_fixable=False)

_BY_KEY = {
    "runAsUser": NON_ROOT,
    "allowPrivilegeEscalation": DISABLE_ESCALATION,
    "hostPath": REMOVE_HOST_PATH,
    "hostNetwork": DISABLE_HOST_NAMESPACES,
    "hostPID": DISABLE_HOST_NAMESPACES,
    "hostIPC": DISABLE_HOST_NAMESPACES,
    "privileged": DISABLE_PRIVILEGED,
    "automountServiceAccountToken": DISABLE_TOKEN_AUTOMOUNT,
}


def remediation_for(finding: Optional[Finding]) -> Optional[Remediation]:
    """Short remediation summary for a finding, or None if nothing applies."""
    if finding is None:
        return None
    if finding.category == Category.RBAC:
        return LIMIT_RBAC
    if finding.key in _BY_KEY:
        return _BY_KEY[finding.key]
    if finding.key in DANGEROUS_CAPABILITIES or (
            isinstance(finding.value, str) and finding.value in DANGEROUS_CAPABILITIES):
        return DROP_CAPABILITIES
    return None


_PRIVILEGE_TEXT = {
    "privileged": "Remove 'privileged: true' from the security context. If specific privileged "
                  "operations are needed, use more fine-grained capabilities instead. Running in "
                  "privileged mode gives containers close to full root access to the host, effectively "
                  "bypassing all container isolation.",
    "hostNetwork": "Remove 'hostNetwork: true' from the pod spec. This gives containers direct access to "
                   "the host network stack, allowing them to sniff host network traffic, access all "
                   "network interfaces, and bind to privileged ports. It also bypasses network policies "
                   "applied to pod communications.",
    "hostPID": "Remove 'hostPID: true' from the pod spec. This allows containers to see and interact "
               "with all processes on the host, not just those in the container. Attackers can use this "
               "to monitor host processes, kill system services, or attach debuggers to critical processes.",
    "hostIPC": "Remove 'hostIPC: true' from the pod spec. This allows containers to access the host's "
               "inter-process communication namespace, enabling direct access to shared memory segments "
               "of host processes. This can lead to memory corruption or information leakage from host "
               "applications.",
    "allowPrivilegeEscalation": "Set 'allowPrivilegeEscalation: false' in the security context. This "
                                "prevents processes from gaining additional privileges (like through "
                                "setuid binaries).",
    "SYS_ADMIN": "Remove the SYS_ADMIN capability by removing it from securityContext.capabilities.add "
                 "and adding it to capabilities.drop. Instead, identify the specific operations your "
                 "container needs and use more limited capabilities.",
    "NET_ADMIN": "Remove the NET_ADMIN capability by removing it from securityContext.capabilities.add. "
                 "For legitimate network functionality, consider using NetworkPolicy resources or a "
                 "service mesh rather than granting this powerful capability.",
    "ALL": "Remove the ALL capability immediately - this effectively gives the container root access "
           "to the host. Replace with capabilities.drop: [\"ALL\"] and only add the minimal specific "
           "capabilities your application actually needs, like NET_BIND_SERVICE.",
    "hostPath": "Replace hostPath volumes with more secure volume types like emptyDir, configMap, or "
                "persistent volumes. Direct access to host filesystems is a common container escape "
                "vector. If host access is necessary, use read-only mounts with minimal scope.",
    "automountServiceAccountToken": "Set 'automountServiceAccountToken: false' for pods that don't need "
                                    "API access. Only enable this for pods that specifically need to "
                                    "interact with the Kubernetes API.",
}

_RUN_AS_ROOT_TEXT = ("Set 'runAsUser' to a non-zero value (e.g., 1000) and add 'runAsNonRoot: true' to the "
                     "security context. Running as a non-root user limits the impact of container "
                     "compromises and helps prevent container escapes.")

_GENERIC_TEXT = ("Apply Kubernetes security best practices by removing potentially dangerous settings "
                 "and following the principle of least privilege.")


def recommend(finding: Finding) -> str:
    """Long-form recommendation paragraph for a finding."""
    if finding.category == Category.RBAC:
        if finding.severity == Severity.CRITICAL:
            if "wildcard" in finding.issue.lower():
                return ("Replace wildcards (*) with specific resources and verbs. Wildcard permissions "
                        "grant excessive access to your cluster. Explicitly list only the API resources "
                        "and verbs that your application needs to function.")
            return ("Restrict this dangerous RBAC permission by specifying narrower resource types and "
                    "verbs. Limit it to specific namespaces or use resourceNames to name exact objects.")
        if finding.severity == Severity.HIGH:
            return ("Review this permission carefully and consider restricting it to more specific "
                    "resources or a more limited verb set. Verbs like 'create', 'update', 'patch' and "
                    "'delete' should be tightly scoped.")
        return ("This permission may be necessary for normal operation. Check that it is only granted "
                "to ServiceAccounts that need it, and consider resourceNames to narrow its scope.")

    if finding.key == "runAsUser":
        return _RUN_AS_ROOT_TEXT
    return _PRIVILEGE_TEXT.get(finding.key, _GENERIC_TEXT)

import copy
import pytest
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))

from kubelens.core.models import Finding, Severity
from kubelens.manifest.loader import parse
from kubelens.rules.shield import ShieldEngine, fix_all, fix_one
from kubelens.scanner.scanner import scan


def _pod(containers, **spec):
    body = {"containers": containers}
    body.update(spec)
    return {"apiVersion": "v1", "kind": "Pod", "metadata": {"name": "p"}, "spec": body}


def _finding(findings, key):
    return next(f for f in findings if f.key == key)


def test_fix_one_clears_privileged():
    doc = _pod([{"name": "a", "securityContext": {"privileged": True}}])
    finding = _finding(scan(doc), "privileged")

    fixed = fix_one(doc, finding)
    assert fixed["spec"]["containers"][0]["securityContext"]["privileged"] is False
    assert not [f for f in scan(fixed) if f.path == finding.path]


def test_host_path_volume_becomes_empty_dir():
    doc = _pod(
        [{"name": "a"}],
        volumes=[
            {"name": "cfg", "configMap": {"name": "settings"}},
            {"name": "host", "hostPath": {"path": "/var/lib/docker"}},
            {"name": "scratch", "emptyDir": {}},
        ],
    )
    fixed = fix_one(doc, _finding(scan(doc), "hostPath"))
    volumes = fixed["spec"]["volumes"]
    assert volumes[1] == {"name": "host", "emptyDir": {}}
    assert volumes[0] == doc["spec"]["volumes"][0]
    assert volumes[2] == doc["spec"]["volumes"][2]


def test_host_path_fix_targets_only_its_volume():
    doc = _pod([{"name": "a"}], volumes=[
        {"name": "one", "hostPath": {"path": "/a"}},
        {"name": "two", "hostPath": {"path": "/b"}},
    ])
    second = [f for f in scan(doc) if f.key == "hostPath"][1]
    fixed = fix_one(doc, second)
    assert "hostPath" in fixed["spec"]["volumes"][0]
    assert "hostPath" not in fixed["spec"]["volumes"][1]


def test_input_is_never_mutated():
    doc = _pod([{"name": "a", "securityContext": {"privileged": True, "runAsUser": 0,
                                                   "capabilities": {"add": ["SYS_ADMIN"]}}}],
               hostNetwork=True)
    pristine = copy.deepcopy(doc)
    for finding in scan(doc):
        fix_one(doc, finding)
    fix_all(doc)
    assert doc == pristine


def test_output_does_not_alias_input():
    doc = _pod([{"name": "a", "securityContext": {"privileged": True}}])
    fixed = fix_one(doc, _finding(scan(doc), "privileged"))
    fixed["spec"]["containers"][0]["name"] = "changed"
    assert doc["spec"]["containers"][0]["name"] == "a"


def test_fix_all_is_idempotent():
    doc = _pod(
        [{"name": "a", "securityContext": {"privileged": True, "allowPrivilegeEscalation": True,
                                           "runAsUser": 0, "capabilities": {"add": ["ALL", "NET_ADMIN"]}}}],
        hostPID=True, automountServiceAccountToken=True,
        volumes=[{"name": "h", "hostPath": {"path": "/"}}],
    )
    once = fix_all(doc)
    assert fix_all(once) == once
    assert scan(once) == []


def test_fix_all_removes_every_dangerous_capability():
    doc = _pod([{"name": "a", "securityContext": {"capabilities": {"add": ["SYS_ADMIN", "NET_ADMIN", "CHOWN"]}}}])
    fixed = fix_all(doc)
    caps = fixed["spec"]["containers"][0]["securityContext"]["capabilities"]
    assert caps["add"] == ["CHOWN"]
    assert caps["drop"] == ["ALL"]


def test_capability_fix_prunes_empty_add_and_keeps_existing_drop():
    doc = _pod([{"name": "a", "securityContext": {"capabilities": {"add": ["SYS_ADMIN"], "drop": ["NET_RAW"]}}}])
    fixed = fix_one(doc, _finding(scan(doc), "SYS_ADMIN"))
    assert fixed["spec"]["containers"][0]["securityContext"]["capabilities"] == {"drop": ["NET_RAW"]}


def test_run_as_root_becomes_non_root():
    doc = _pod([{"name": "a", "securityContext": {"runAsUser": 0}}])
    fixed = fix_one(doc, _finding(scan(doc), "runAsUser"))
    ctx = fixed["spec"]["containers"][0]["securityContext"]
    assert ctx == {"runAsUser": 1000, "runAsNonRoot": True}


def test_fix_all_adds_no_spurious_fields():
    doc = _pod([
        {"name": "root", "securityContext": {"runAsUser": 0}},
        {"name": "plain"},
        {"name": "ok", "securityContext": {"runAsUser": 2000}},
    ])
    fixed = fix_all(doc)
    containers = fixed["spec"]["containers"]
    assert containers[0]["securityContext"] == {"runAsUser": 1000, "runAsNonRoot": True}
    assert containers[1] == {"name": "plain"}
    assert containers[2] == {"name": "ok", "securityContext": {"runAsUser": 2000}}
    assert "hostNetwork" not in fixed["spec"]


def test_fix_targets_only_the_indexed_container():
    doc = _pod([
        {"name": "a", "securityContext": {"privileged": True}},
        {"name": "b", "securityContext": {"privileged": True}},
    ])
    second = [f for f in scan(doc) if f.key == "privileged"][1]
    fixed = fix_one(doc, second)
    assert fixed["spec"]["containers"][0]["securityContext"]["privileged"] is True
    assert fixed["spec"]["containers"][1]["securityContext"]["privileged"] is False


def test_init_container_fix_uses_concatenated_index():
    doc = _pod(
        [{"name": "main", "securityContext": {"privileged": True}}],
        initContainers=[{"name": "init", "securityContext": {"privileged": True}}],
    )
    init_finding = next(f for f in scan(doc) if f.container_index == 1)
    fixed = fix_one(doc, init_finding)
    assert fixed["spec"]["containers"][0]["securityContext"]["privileged"] is True
    assert fixed["spec"]["initContainers"][0]["securityContext"]["privileged"] is False


def test_stale_container_index_is_a_no_op():
    doc = _pod([{"name": "a", "securityContext": {"privileged": True}}])
    stale = Finding(
        path="spec.containers[5].securityContext.privileged", key="privileged", value=True,
        issue="Privileged container", severity=Severity.CRITICAL, category="PrivilegeEscalation",
        description="", container_index=5,
    )
    assert fix_one(doc, stale) == doc


def test_unknown_key_is_a_no_op():
    doc = _pod([{"name": "a", "securityContext": {"privileged": True}}])
    odd = Finding(path="spec.foo", key="foo", value=True, issue="", severity="Low",
                  category="PrivilegeEscalation", description="")
    assert fix_one(doc, odd) == doc


def test_host_namespace_and_token_flags():
    doc = _pod([{"name": "a"}], hostNetwork=True, hostIPC=True, automountServiceAccountToken=True)
    fixed = fix_one(doc, _finding(scan(doc), "hostNetwork"))
    assert fixed["spec"]["hostNetwork"] is False
    assert fixed["spec"]["hostIPC"] is True

    fixed = fix_all(doc)
    assert fixed["spec"]["hostIPC"] is False
    assert fixed["spec"]["automountServiceAccountToken"] is False


def test_fix_one_in_document_set_touches_only_its_document():
    text = (
        "kind: Pod\n"
        "spec:\n"
        "  hostPID: true\n"
        "  containers: []\n"
        "---\n"
        "kind: Pod\n"
        "spec:\n"
        "  hostPID: true\n"
        "  containers: []\n"
    )
    result = parse(text)
    findings = scan(result.data, result.is_multi_doc)
    fixed = fix_one(result.data, findings[1])
    assert fixed[0]["spec"]["hostPID"] is True
    assert fixed[1]["spec"]["hostPID"] is False


@pytest.mark.parametrize("index", [None, 7, -1])
def test_document_set_with_bad_index_is_unchanged(index):
    docs = [_pod([{"name": "a", "securityContext": {"privileged": True}}])]
    finding = copy.copy(scan(docs[0])[0])
    finding.document_index = index
    assert fix_one(docs, finding) == docs


def test_fix_all_over_document_set():
    docs = [
        _pod([{"name": "a", "securityContext": {"privileged": True}}]),
        {"kind": "ClusterRole", "rules": [{"resources": ["*"], "verbs": ["*"], "apiGroups": ["*"]}]},
        {"kind": "ConfigMap", "data": {"k": "v"}},
    ]
    fixed = fix_all(docs)
    assert scan(fixed[0]) == []
    assert fixed[1] == docs[1]
    assert fixed[2] == docs[2]


def test_protect_reports_each_resolved_finding():
    doc = _pod([{"name": "a", "securityContext": {"privileged": True, "runAsUser": 0}}])
    fixed, changes = ShieldEngine().protect(doc)
    assert scan(fixed) == []
    assert changes == [
        "Fixed: Privileged container at spec.containers[0].securityContext.privileged",
        "Fixed: Container running as root at spec.containers[0].securityContext.runAsUser",
    ]


def test_fix_one_on_aliased_containers_touches_only_its_container():
    text = (
        "apiVersion: v1\n"
        "kind: Pod\n"
        "metadata:\n"
        "  name: p\n"
        "spec:\n"
        "  containers:\n"
        "    - &c\n"
        "      securityContext:\n"
        "        privileged: true\n"
        "    - *c\n"
    )
    doc = parse(text).data
    first = next(f for f in scan(doc) if f.key == "privileged" and f.container_index == 0)
    fixed = fix_one(doc, first)
    assert fixed["spec"]["containers"][0]["securityContext"]["privileged"] is False
    assert fixed["spec"]["containers"][1]["securityContext"]["privileged"] is True


def test_fix_one_splits_shared_container_objects():
    shared = {"name": "a", "securityContext": {"privileged": True}}
    doc = _pod([shared, shared])
    second = [f for f in scan(doc) if f.key == "privileged"][1]
    fixed = fix_one(doc, second)
    assert fixed["spec"]["containers"][0]["securityContext"]["privileged"] is True
    assert fixed["spec"]["containers"][1]["securityContext"]["privileged"] is False
    assert shared["securityContext"]["privileged"] is True


def test_fix_one_on_cronjob_reaches_nested_pod_spec():
    doc = {
        "apiVersion": "batch/v1",
        "kind": "CronJob",
        "metadata": {"name": "nightly"},
        "spec": {"schedule": "0 2 * * *", "jobTemplate": {"spec": {"template": {"spec": {
            "containers": [{"name": "job", "securityContext": {"runAsUser": 0, "privileged": True}}],
        }}}}},
    }
    fixed = fix_one(doc, _finding(scan(doc), "runAsUser"))
    ctx = fixed["spec"]["jobTemplate"]["spec"]["template"]["spec"]["containers"][0]["securityContext"]
    assert ctx == {"runAsUser": 1000, "runAsNonRoot": True, "privileged": True}
    assert fixed["spec"]["schedule"] == "0 2 * * *"
    assert "containers" not in fixed["spec"]


def test_fix_one_on_deployment_init_container():
    doc = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "web"},
        "spec": {"template": {"spec": {
            "containers": [
                {"name": "web", "securityContext": {"privileged": True}},
                {"name": "sidecar"},
            ],
            "initContainers": [{"name": "setup", "securityContext": {"privileged": True}}],
        }}},
    }
    init_finding = next(f for f in scan(doc) if f.key == "privileged" and f.container_index == 2)
    fixed = fix_one(doc, init_finding)
    pod_spec = fixed["spec"]["template"]["spec"]
    assert pod_spec["initContainers"][0]["securityContext"]["privileged"] is False
    assert pod_spec["containers"][0]["securityContext"]["privileged"] is True
    assert pod_spec["containers"][1] == {"name": "sidecar"}
    assert "containers" not in fixed["spec"]


def test_fix_all_limited_to_one_document():
    docs = [
        _pod([{"name": "a", "securityContext": {"privileged": True}}]),
        _pod([{"name": "b", "securityContext": {"privileged": True}}], hostPID=True),
    ]
    fixed = fix_all(docs, document_index=1)
    assert fixed[0] == docs[0]
    assert fixed[0] is not docs[0]
    assert scan(fixed[1]) == []
    assert docs[1]["spec"]["hostPID"] is True


@pytest.mark.parametrize("index", [5, -1])
def test_fix_all_with_missing_document_is_unchanged(index):
    docs = [_pod([{"name": "a", "securityContext": {"privileged": True}}])]
    assert ShieldEngine().fix_all(docs, document_index=index) == docs

import json
import pytest
import sys
import os
from pathlib import Path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))

from ruamel.yaml import YAML
from kubelens.cli.main import KubeLensCLI
from kubelens.core.engine import AuditEngine
from kubelens.core.models import RuleTableError


PRIVILEGED_DEPLOYMENT = (
    "apiVersion: apps/v1\n"
    "kind: Deployment\n"
    "metadata:\n"
    "  name: api\n"
    "spec:\n"
    "  template:\n"
    "    spec:\n"
    "      containers:\n"
    "        - name: api\n"
    "          image: api:2\n"
    "          securityContext:\n"
    "            privileged: true\n"
    "            runAsUser: 0\n"
)

SAFE_POD = (
    "apiVersion: v1\n"
    "kind: Pod\n"
    "metadata:\n"
    "  name: ok\n"
    "spec:\n"
    "  containers:\n"
    "    - name: ok\n"
    "      image: ok:1\n"
)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    (tmp_path / "deploy.yaml").write_text(PRIVILEGED_DEPLOYMENT)
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "pod.yaml").write_text(SAFE_POD)
    (tmp_path / "nested" / "svc.yaml").write_text("kind: Service\nmetadata:\n  name: s\n")
    (tmp_path / "broken.yaml").write_text("kind: [Pod\n")
    return tmp_path


def test_scan_reports_findings_without_writing(workspace):
    engine = AuditEngine(str(workspace))
    report = engine.audit_file("deploy.yaml")
    assert report["success"] is True
    assert report["status"] == "ISSUES"
    assert report["kinds"] == ["Deployment"]
    assert report["finding_counts"]["Critical"] == 1
    assert report["finding_counts"]["Medium"] == 1
    assert report["written"] is False
    assert (workspace / "deploy.yaml").read_text() == PRIVILEGED_DEPLOYMENT


def test_dry_run_fix_previews_only(workspace):
    engine = AuditEngine(str(workspace))
    report = engine.audit_file("deploy.yaml", fix=True, dry_run=True)
    assert report["status"] == "PREVIEW"
    assert report["fixed_content"]
    assert report["remaining_findings"] == []
    assert len(report["changes"]) == 2
    assert (workspace / "deploy.yaml").read_text() == PRIVILEGED_DEPLOYMENT


def test_fix_writes_atomically_with_backup(workspace):
    engine = AuditEngine(str(workspace))
    report = engine.audit_file("deploy.yaml", fix=True, dry_run=False)
    assert report["status"] == "FIXED"
    assert report["written"] is True
    assert report["backup_created"] == "deploy.kubelens.backup"
    assert (workspace / "deploy.kubelens.backup").read_text() == PRIVILEGED_DEPLOYMENT

    doc = YAML(typ='safe').load((workspace / "deploy.yaml").read_text())
    ctx = doc["spec"]["template"]["spec"]["containers"][0]["securityContext"]
    assert ctx == {"privileged": False, "runAsUser": 1000, "runAsNonRoot": True}
    assert not list(workspace.glob("*.kubelens.tmp"))


def test_second_backup_gets_a_unique_name(workspace):
    engine = AuditEngine(str(workspace))
    engine.audit_file("deploy.yaml", fix=True, dry_run=False)
    (workspace / "deploy.yaml").write_text(PRIVILEGED_DEPLOYMENT)
    report = engine.audit_file("deploy.yaml", fix=True, dry_run=False)
    assert report["backup_created"] == "deploy-1.kubelens.backup"


def test_clean_file_is_unchanged_in_fix_mode(workspace):
    engine = AuditEngine(str(workspace))
    report = engine.audit_file("nested/pod.yaml", fix=True, dry_run=False)
    assert report["status"] == "UNCHANGED"
    assert report["written"] is False
    assert not (workspace / "nested" / "pod.kubelens.backup").exists()


def test_unsupported_kind_status(workspace):
    report = AuditEngine(str(workspace)).audit_file("nested/svc.yaml")
    assert report["status"] == "UNSCANNABLE"
    assert "Service" in report["warning"]


def test_error_statuses(workspace):
    engine = AuditEngine(str(workspace))
    assert engine.audit_file("broken.yaml")["status"] == "PARSE_ERROR"
    missing = engine.audit_file("nope.yaml")
    assert missing["status"] == "FILE_NOT_FOUND"
    assert missing["success"] is False


def test_scan_directory_and_summary(workspace):
    engine = AuditEngine(str(workspace))
    seen = []
    reports = engine.scan_directory(progress_callback=lambda done, total: seen.append((done, total)))
    assert len(reports) == 4
    assert seen[-1] == (4, 4)

    summary = engine.generate_summary(reports)
    assert summary["total_files"] == 4
    assert summary["files_with_findings"] == 1
    assert summary["by_severity"]["Critical"] == 1
    assert summary["system_errors"] == 1
    assert summary["unscannable_files"] == 1


def test_scan_directory_respects_max_depth(workspace):
    reports = AuditEngine(str(workspace)).scan_directory(max_depth=1)
    assert sorted(r["file_path"] for r in reports) == ["broken.yaml", "deploy.yaml"]


def test_empty_summary():
    summary = AuditEngine(".").generate_summary([])
    assert summary["total_files"] == 0
    assert summary["by_severity"] == {"Critical": 0, "High": 0, "Medium": 0, "Low": 0}


def test_rules_file_override(workspace, tmp_path):
    rules = workspace / "rules.json"
    rules.write_text(json.dumps({"dangerousCapabilities": ["CHOWN"]}))
    engine = AuditEngine(str(workspace), rules_path=rules)
    assert engine.rule_table.dangerous_capabilities == frozenset({"CHOWN"})

    with pytest.raises(RuleTableError):
        AuditEngine(str(workspace), rules_path=workspace / "absent.json")


def test_cli_scan_exit_code_tracks_critical_findings(workspace):
    cli = KubeLensCLI()
    assert cli.run(["scan", str(workspace / "deploy.yaml")]) == 1
    assert cli.run(["scan", str(workspace / "nested" / "pod.yaml")]) == 0


def test_cli_scan_json_output(workspace, capsys):
    code = KubeLensCLI().run(["scan", str(workspace / "deploy.yaml"), "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert code == 1
    assert payload["files"][0]["findings"][0]["severity"] == "Critical"
    assert payload["summary"]["total_findings"] == 2


def test_cli_fix_with_auto_confirm(workspace):
    code = KubeLensCLI().run(["fix", str(workspace / "deploy.yaml"), "-y"])
    assert code == 0
    assert (workspace / "deploy.kubelens.backup").exists()
    assert "privileged: false" in (workspace / "deploy.yaml").read_text()


def test_discover_manifests_lists_relative_files(workspace):
    engine = AuditEngine(str(workspace))
    found = [str(p.relative_to(workspace)) for p in engine.discover_manifests()]
    assert found == ["broken.yaml", "deploy.yaml", os.path.join("nested", "pod.yaml"),
                     os.path.join("nested", "svc.yaml")]
    assert len(engine.discover_manifests(max_depth=1)) == 2


def test_identity_notes_are_reported(workspace):
    engine = AuditEngine(str(workspace))
    assert engine.audit_file("deploy.yaml")["notes"] == []
    notes = engine.audit_file("nested/svc.yaml")["notes"]
    assert notes == ["Document 0: Missing required top-level field 'apiVersion'."]


def test_cli_rejects_malformed_rules_file(workspace, tmp_path):
    bad = tmp_path / "bad-rules.json"
    bad.write_text(json.dumps({"dangerousVerbs": ["get"]}))
    assert KubeLensCLI().run(["scan", str(workspace / "deploy.yaml"), "--rules", str(bad)]) == 2

    bad.write_text(json.dumps({"criticalWildcardResources": 5}))
    assert KubeLensCLI().run(["fix", str(workspace / "deploy.yaml"), "-y", "--rules", str(bad)]) == 2
    assert (workspace / "deploy.yaml").read_text() == PRIVILEGED_DEPLOYMENT


def test_cli_scans_a_directory_through_the_engine(workspace, capsys):
    code = KubeLensCLI().run(["scan", str(workspace), "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert code == 1
    assert sorted(entry["file"] for entry in payload["files"]) == [
        "broken.yaml", "deploy.yaml", os.path.join("nested", "pod.yaml"), os.path.join("nested", "svc.yaml"),
    ]
    svc = next(entry for entry in payload["files"] if entry["file"].endswith("svc.yaml"))
    assert svc["status"] == "UNSCANNABLE"
    assert svc["notes"]

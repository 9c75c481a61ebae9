import json
import subprocess

import pytest

import stackrestore.core as core_module
from stackrestore.core import RestoreError, StackRestorer
from stackrestore.models import ResolvedDatabase, Settings


@pytest.fixture
def settings(tmp_path):
    return Settings(base_dir=str(tmp_path), workdir=str(tmp_path / "poktpool"), skip_install=True)


@pytest.fixture
def restorer(settings):
    return StackRestorer(settings)


def _stub_steps(monkeypatch, restorer, calls, **overrides):
    steps = [
        "require_root",
        "prepare_workdir",
        "install_dependencies",
        "validate_docker_environment",
        "clone_repositories",
        "validate_storage_access",
        "ensure_network",
        "download_dumps",
        "start_database_stack",
        "resolve_databases",
        "ensure_databases",
        "restore_databases",
        "start_app_container",
        "start_compose_apps",
    ]
    for name in steps:
        if name in overrides:
            monkeypatch.setattr(restorer, name, overrides[name])
            continue

        def step(*args, _name=name):
            calls.append(_name)
            return {} if _name == "download_dumps" else []

        monkeypatch.setattr(restorer, name, step)


def test_run_executes_steps_in_order(tmp_path, monkeypatch, restorer):
    calls = []
    _stub_steps(monkeypatch, restorer, calls)
    (tmp_path / "poktpool").mkdir()

    assert restorer.run() == 0

    assert calls[0] == "require_root"
    assert calls.index("clone_repositories") < calls.index("validate_storage_access")
    assert calls.index("validate_storage_access") < calls.index("restore_databases")
    assert calls[-1] == "start_compose_apps"

    manifest = json.loads((tmp_path / "poktpool" / "restore-manifest.json").read_text(encoding="utf-8"))
    assert manifest["status"] == "success"
    assert [step["name"] for step in manifest["steps"]][:2] == ["require_root", "prepare_workdir"]


def test_run_aborts_before_restore_when_storage_access_fails(tmp_path, monkeypatch, restorer):
    calls = []

    def no_access():
        raise RestoreError("Cannot continue without uplink access.")

    _stub_steps(monkeypatch, restorer, calls, validate_storage_access=no_access)
    (tmp_path / "poktpool").mkdir()

    assert restorer.run() == 1

    assert "restore_databases" not in calls
    assert "ensure_databases" not in calls
    manifest = json.loads((tmp_path / "poktpool" / "restore-manifest.json").read_text(encoding="utf-8"))
    assert manifest["status"] == "failed"
    assert "uplink access" in manifest["error"]


def test_required_repository_failure_aborts(monkeypatch, restorer):
    monkeypatch.setattr(
        restorer.git_service,
        "clone_or_update_repo",
        lambda repo, workdir, branch, run_cmd: repo.name != "poktpooldb",
    )

    with pytest.raises(RestoreError, match="poktpooldb clone failed"):
        restorer.clone_repositories()


def test_optional_repository_failure_is_skipped(monkeypatch, restorer):
    monkeypatch.setattr(
        restorer.git_service,
        "clone_or_update_repo",
        lambda repo, workdir, branch, run_cmd: repo.name != "poktpoolui",
    )

    restorer.clone_repositories()

    assert restorer.manifest_service.manifest["skipped"] == [
        {"component": "poktpoolui", "reason": "clone failed"}
    ]


def test_unexpected_errors_return_non_zero(monkeypatch, restorer):
    calls = []

    def explode():
        raise ValueError("unexpected")

    _stub_steps(monkeypatch, restorer, calls, ensure_network=explode)

    assert restorer.run() == 1


def test_dry_run_prints_plan_without_running_steps(tmp_path, monkeypatch):
    restorer = StackRestorer(
        Settings(workdir=str(tmp_path / "poktpool"), git_token="secret-token", dry_run=True)
    )

    def fail_if_called():
        raise AssertionError("steps must not run during --dry-run")

    monkeypatch.setattr(restorer, "require_root", fail_if_called)

    assert restorer.run() == 0
    assert not (tmp_path / "poktpool").exists()
    assert restorer._public_settings()["git_token"] == "****"


def test_download_dumps_targets_database_checkout(tmp_path, monkeypatch, restorer):
    downloads = []
    monkeypatch.setattr(
        restorer.storage_service,
        "download_if_missing",
        lambda remote, local, label, run_cmd: downloads.append((remote, local)) or True,
    )

    paths = restorer.download_dumps()

    db_dir = tmp_path / "poktpool" / "poktpooldb"
    assert paths == {
        "poktpooldb": str(db_dir / "20251217_142112_poktpooldb.dump"),
        "nodedb": str(db_dir / "20251217_142112_waxtrax.dump"),
    }
    assert downloads[0][0] == "sj://blockchains/postgres/poktpooldb/20251217_142112_poktpooldb.dump"
    assert downloads[1][0] == "sj://blockchains/postgres/waxtrax/20251217_142112_waxtrax.dump"


def test_resolve_databases_reads_container_environment(monkeypatch, restorer):
    restorer.compose_cmd = ["docker", "compose"]
    container_ids = {"poktpooldb": "cid-pokt", "nodedb": "cid-node"}
    container_env = {
        ("cid-pokt", "POSTGRES_USER"): "pokt",
        ("cid-pokt", "POSTGRES_DB"): "poktpool_prod",
        ("cid-node", "POSTGRES_DB"): "nodes",
    }
    monkeypatch.setattr(
        restorer.docker_runtime_service,
        "get_compose_container_id",
        lambda compose_cmd, service, directory, run_cmd: container_ids[service],
    )
    monkeypatch.setattr(
        restorer.docker_runtime_service,
        "get_container_env",
        lambda cid, name, default, run_cmd: container_env.get((cid, name), default),
    )

    resolved = restorer.resolve_databases({"poktpooldb": "a.dump", "nodedb": "b.dump"})

    assert resolved == [
        ResolvedDatabase("poktpooldb", "cid-pokt", "pokt", "poktpool_prod", "a.dump"),
        ResolvedDatabase("nodedb", "cid-node", "postgres", "waxtrax", "b.dump"),
    ]


def test_resolve_databases_aborts_when_container_missing(monkeypatch, restorer):
    restorer.compose_cmd = ["docker", "compose"]
    monkeypatch.setattr(
        restorer.docker_runtime_service,
        "get_compose_container_id",
        lambda compose_cmd, service, directory, run_cmd: "" if service == "nodedb" else "cid",
    )

    with pytest.raises(RestoreError, match="service 'nodedb'"):
        restorer.resolve_databases({"poktpooldb": "a.dump", "nodedb": "b.dump"})


def test_restore_databases_records_table_counts(monkeypatch, restorer):
    monkeypatch.setattr(restorer.database_service, "restore_dump", lambda *args: True)
    monkeypatch.setattr(restorer.database_service, "count_tables", lambda *args: 7)

    restorer.restore_databases([ResolvedDatabase("nodedb", "cid", "postgres", "waxtrax", "b.dump")])

    assert restorer.manifest_service.manifest["databases"] == [
        {"service": "nodedb", "database": "waxtrax", "restored": True, "tables": 7}
    ]


def test_missing_optional_components_are_skipped(monkeypatch, restorer):
    restorer.compose_cmd = ["docker", "compose"]

    def fail_run_cmd(*_args, **_kwargs):
        raise AssertionError("no commands expected for missing checkouts")

    monkeypatch.setattr(restorer, "_run_cmd", fail_run_cmd)

    restorer.start_app_container()
    restorer.start_compose_apps()

    skipped = [item["component"] for item in restorer.manifest_service.manifest["skipped"]]
    assert skipped == ["blockjobpicker", "poktpool", "poktpoolui"]


def test_start_database_stack_composes_in_database_checkout(tmp_path, monkeypatch, restorer):
    restorer.compose_cmd = ["docker", "compose"]
    monkeypatch.setattr(core_module.time, "sleep", lambda *_args: None)
    calls = []

    def fake_run_cmd(cmd, check=True, capture_output=False, **kwargs):
        calls.append((cmd, kwargs))
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(restorer, "_run_cmd", fake_run_cmd)

    restorer.start_database_stack()

    assert calls == [
        (["docker", "compose", "up", "-d", "--build"], {"cwd": str(tmp_path / "poktpool" / "poktpooldb")})
    ]


def test_interrupted_step_is_marked_aborted(tmp_path, monkeypatch, restorer):
    calls = []

    def interrupt():
        raise KeyboardInterrupt

    _stub_steps(monkeypatch, restorer, calls, download_dumps=interrupt)
    (tmp_path / "poktpool").mkdir()

    assert restorer.run() == 1

    manifest = json.loads((tmp_path / "poktpool" / "restore-manifest.json").read_text(encoding="utf-8"))
    assert manifest["status"] == "aborted"
    steps = {step["name"]: step["status"] for step in manifest["steps"]}
    assert steps["download_dumps"] == "aborted"
    assert "running" not in steps.values()
    assert "start_database_stack" not in calls

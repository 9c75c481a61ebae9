import subprocess

import pytest

from stackrestore.errors import RestoreError
from stackrestore.services.object_storage import ObjectStorageService


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def warning(self, message, *_args, **_kwargs):
        self.warnings.append(message)


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakeUplink:
    def __init__(self, returncode=0, payload=b"PGDMP"):
        self.returncode = returncode
        self.payload = payload
        self.calls = []

    def __call__(self, cmd, check=True, capture_output=False, **kwargs):
        self.calls.append((cmd, kwargs))
        if cmd[1] == "cp":
            with open(cmd[3], "wb") as file_obj:
                file_obj.write(self.payload)
        return subprocess.CompletedProcess(cmd, self.returncode, stdout="", stderr="")


class InterruptedUplink(FakeUplink):
    """Writes part of the object, then fails like a dropped connection."""

    def __call__(self, cmd, check=True, capture_output=False, **kwargs):
        super().__call__(cmd, check=check, capture_output=capture_output, **kwargs)
        raise RestoreError("Command failed (1): uplink cp")


def test_sanity_check_passes_access_grant_to_uplink():
    uplink = FakeUplink()
    service = ObjectStorageService(
        logger=DummyLogger(),
        console=DummyConsole(),
        storage_root="sj://blockchains/postgres",
        access_grant="grant-123",
    )

    service.sanity_check(uplink)

    cmd, kwargs = uplink.calls[0]
    assert cmd == ["uplink", "ls", "sj://blockchains/postgres"]
    assert kwargs["env"] == {"UPLINK_ACCESS": "grant-123"}


def test_sanity_check_aborts_without_access():
    logger = DummyLogger()
    service = ObjectStorageService(
        logger=logger,
        console=DummyConsole(),
        storage_root="sj://blockchains/postgres",
    )

    with pytest.raises(RestoreError, match="Cannot continue without uplink access"):
        service.sanity_check(FakeUplink(returncode=1))

    assert "uplink setup" in logger.warnings[0]


def test_sanity_check_reports_invalid_grant():
    logger = DummyLogger()
    service = ObjectStorageService(
        logger=logger,
        console=DummyConsole(),
        storage_root="sj://blockchains/postgres",
        access_grant="expired",
    )

    with pytest.raises(RestoreError):
        service.sanity_check(FakeUplink(returncode=1))

    assert "invalid or expired" in logger.warnings[0]


def test_download_if_missing_fetches_absent_dump(tmp_path):
    uplink = FakeUplink()
    service = ObjectStorageService(logger=DummyLogger(), console=DummyConsole(), storage_root="sj://b/p")
    local = tmp_path / "20251217_142112_waxtrax.dump"

    assert service.download_if_missing("sj://b/p/waxtrax/x.dump", str(local), "waxtrax", uplink) is True
    assert uplink.calls[0][0] == ["uplink", "cp", "sj://b/p/waxtrax/x.dump", f"{local}.part"]
    assert local.read_bytes() == b"PGDMP"
    assert not (tmp_path / f"{local.name}.part").exists()


def test_download_if_missing_skips_existing_dump(tmp_path):
    uplink = FakeUplink()
    service = ObjectStorageService(logger=DummyLogger(), console=DummyConsole(), storage_root="sj://b/p")
    local = tmp_path / "20251217_142112_waxtrax.dump"
    local.write_bytes(b"PGDMP")

    assert service.download_if_missing("sj://b/p/waxtrax/x.dump", str(local), "waxtrax", uplink) is False
    assert uplink.calls == []


def test_interrupted_download_is_retried_on_next_run(tmp_path):
    service = ObjectStorageService(logger=DummyLogger(), console=DummyConsole(), storage_root="sj://b/p")
    local = tmp_path / "20251217_142112_waxtrax.dump"

    with pytest.raises(RestoreError, match="uplink cp"):
        service.download_if_missing(
            "sj://b/p/waxtrax/x.dump", str(local), "waxtrax", InterruptedUplink(payload=b"PGDMP-partial")
        )

    assert not local.exists()
    assert not (tmp_path / f"{local.name}.part").exists()

    uplink = FakeUplink(payload=b"PGDMP-complete")
    assert service.download_if_missing("sj://b/p/waxtrax/x.dump", str(local), "waxtrax", uplink) is True
    assert len(uplink.calls) == 1
    assert local.read_bytes() == b"PGDMP-complete"


def test_download_replaces_stale_partial_file(tmp_path):
    service = ObjectStorageService(logger=DummyLogger(), console=DummyConsole(), storage_root="sj://b/p")
    local = tmp_path / "20251217_142112_poktpooldb.dump"
    (tmp_path / f"{local.name}.part").write_bytes(b"leftover")

    assert service.download_if_missing("sj://b/p/poktpooldb/x.dump", str(local), "poktpooldb", FakeUplink()) is True
    assert local.read_bytes() == b"PGDMP"


def test_download_fails_when_uplink_leaves_no_file(tmp_path):
    service = ObjectStorageService(logger=DummyLogger(), console=DummyConsole(), storage_root="sj://b/p")
    local = tmp_path / "20251217_142112_poktpooldb.dump"

    def silent_uplink(cmd, check=True, capture_output=False, **kwargs):
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    with pytest.raises(RestoreError, match="Failed to store poktpooldb dump"):
        service.download_if_missing("sj://b/p/poktpooldb/x.dump", str(local), "poktpooldb", silent_uplink)

    assert not local.exists()

"""Host prerequisite checks and installers (apt, Docker Engine, uplink)."""

import os
import platform
import shutil
import tempfile
from typing import Callable, Dict, Optional

from stackrestore.constants import (
    APT_KEYRINGS_DIR,
    BASE_APT_PACKAGES,
    BIN_MODE,
    DIR_MODE,
    DOCKER_APT_PACKAGES,
    DOCKER_APT_REPO,
    DOCKER_GPG_URL,
    DOCKER_KEYRING_PATH,
    DOCKER_SOURCES_LIST,
    KEY_MODE,
    UPLINK_ARCHES,
    UPLINK_INSTALL_PATH,
    UPLINK_RELEASE_URL,
)
from stackrestore.errors import RestoreError
from stackrestore.errors_catalog import actionable_error


def has_cmd(name: str) -> bool:
    return shutil.which(name) is not None


def read_os_release(path: str = "/etc/os-release") -> Dict[str, str]:
    values: Dict[str, str] = {}
    try:
        with open(path, "r", encoding="utf-8") as file_obj:
            for line in file_obj:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, _, value = line.partition("=")
                values[key] = value.strip().strip("'\"")
    except OSError as exc:
        raise RestoreError(f"Could not read {path}: {exc}") from exc
    return values


class SystemService:
    """Installs the host tools the restore depends on, skipping what is present."""

    def __init__(
        self,
        logger,
        console,
        download_service,
        archive_service,
        keyrings_dir: str = APT_KEYRINGS_DIR,
        keyring_path: str = DOCKER_KEYRING_PATH,
        sources_list: str = DOCKER_SOURCES_LIST,
        uplink_install_path: str = UPLINK_INSTALL_PATH,
        os_release_path: str = "/etc/os-release",
    ):
        self.logger = logger
        self.console = console
        self.download_service = download_service
        self.archive_service = archive_service
        self.keyrings_dir = keyrings_dir
        self.keyring_path = keyring_path
        self.sources_list = sources_list
        self.uplink_install_path = uplink_install_path
        self.os_release_path = os_release_path

    def require_root(self):
        if os.geteuid() != 0:
            raise RestoreError(actionable_error("not_root"))

    def install_prereqs(self, run_cmd: Callable):
        self.console.print(
            f"[green][+] Installing base dependencies ({', '.join(BASE_APT_PACKAGES)})...[/green]"
        )
        run_cmd(["apt-get", "update", "-y"])
        run_cmd(["apt-get", "install", "-y", *BASE_APT_PACKAGES])

    def docker_compose_available(self, run_cmd: Callable) -> bool:
        if not has_cmd("docker"):
            return False
        result = run_cmd(["docker", "compose", "version"], check=False, capture_output=True)
        return result.returncode == 0

    def install_docker_compose_v2(self, run_cmd: Callable):
        if self.docker_compose_available(run_cmd):
            self.console.print("[green][+] Docker + Compose v2 are already installed.[/green]")
            return

        self.console.print(
            "[green][+] Installing Docker Engine + Docker Compose v2 (official Docker repo)...[/green]"
        )
        os.makedirs(self.keyrings_dir, mode=DIR_MODE, exist_ok=True)
        os.chmod(self.keyrings_dir, DIR_MODE)

        with tempfile.TemporaryDirectory(prefix="stackrestore-docker-") as tmpdir:
            armored_key = os.path.join(tmpdir, "docker.asc")
            self.download_service.download_file(DOCKER_GPG_URL, armored_key, "Docker GPG key")
            run_cmd(
                ["gpg", "--batch", "--yes", "--dearmor", "-o", self.keyring_path, armored_key],
                capture_output=True,
            )
        os.chmod(self.keyring_path, KEY_MODE)

        arch = run_cmd(["dpkg", "--print-architecture"], capture_output=True).stdout.strip()
        codename = read_os_release(self.os_release_path).get("VERSION_CODENAME", "")
        if not codename:
            raise RestoreError(f"VERSION_CODENAME is missing from {self.os_release_path}.")

        with open(self.sources_list, "w", encoding="utf-8", newline="\n") as file_obj:
            file_obj.write(
                f"deb [arch={arch} signed-by={self.keyring_path}] "
                f"{DOCKER_APT_REPO} {codename} stable\n"
            )

        run_cmd(["apt-get", "update", "-y"])
        run_cmd(["apt-get", "install", "-y", *DOCKER_APT_PACKAGES])

        run_cmd(["systemctl", "enable", "docker"])
        run_cmd(["systemctl", "start", "docker"])

        run_cmd(["docker", "version"], capture_output=True)
        run_cmd(["docker", "compose", "version"], capture_output=True)
        self.console.print("[green][+] Docker + Compose v2 installed OK.[/green]")

    def uplink_version(self, run_cmd: Callable, binary: str = "uplink") -> str:
        result = run_cmd([binary, "version"], check=False, capture_output=True)
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip().splitlines()[0]
        return "installed"

    def resolve_uplink_arch(self, machine: Optional[str] = None) -> str:
        machine = (machine or platform.machine()).lower()
        try:
            return UPLINK_ARCHES[machine]
        except KeyError:
            raise RestoreError(actionable_error("unsupported_arch", arch=machine)) from None

    def install_uplink(self, run_cmd: Callable):
        if has_cmd("uplink"):
            self.console.print(
                f"[green][+] uplink is already installed: {self.uplink_version(run_cmd)}[/green]"
            )
            return

        self.console.print("[green][+] Installing uplink (Storj) from GitHub Releases...[/green]")
        arch = self.resolve_uplink_arch()
        url = UPLINK_RELEASE_URL.format(arch=arch)

        with tempfile.TemporaryDirectory(prefix="stackrestore-uplink-") as tmpdir:
            zip_path = os.path.join(tmpdir, "uplink.zip")
            self.console.print(f"[green][+] Downloading uplink: {url}[/green]")
            self.download_service.download_file(url, zip_path, "Downloading uplink...")

            extract_dir = os.path.join(tmpdir, "extract")
            os.makedirs(extract_dir, exist_ok=True)
            self.archive_service.safe_extract_zip(zip_path, extract_dir)

            binary = self.archive_service.find_executable(extract_dir, "uplink")
            if not binary:
                raise RestoreError("Could not find 'uplink' binary inside the asset.")

            os.makedirs(os.path.dirname(self.uplink_install_path), exist_ok=True)
            shutil.copyfile(binary, self.uplink_install_path)
            os.chmod(self.uplink_install_path, BIN_MODE)

        self.console.print(f"[green][+] uplink installed: {self.uplink_version(run_cmd, self.uplink_install_path)}[/green]")

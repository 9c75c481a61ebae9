"""Docker runtime services for stackrestore."""

import os
import re
import subprocess
import time
from typing import Callable, List, Optional

from packaging import version

from stackrestore.constants import COMPOSE_FILE_NAMES, COMPOSE_REGISTRATION_SECONDS
from stackrestore.errors import RestoreError
from stackrestore.models import AppContainerSpec
from stackrestore.services.polling import ensure_exists, poll_until

_VERSION_PATTERN = re.compile(r"(\d+\.\d+(?:\.\d+)?)")


class DockerRuntimeService:
    """Manages compose detection, networks, containers and their metadata."""

    def __init__(self, logger, console, subprocess_module=subprocess):
        self.logger = logger
        self.console = console
        self.subprocess = subprocess_module

    def _warn(self, message: str):
        self.console.print(f"[yellow][!] {message}[/yellow]")
        self.logger.warning(message)

    def get_docker_compose_cmd(self) -> List[str]:
        try:
            self.subprocess.run(["docker", "compose", "version"], check=True, capture_output=True)
            return ["docker", "compose"]
        except (self.subprocess.CalledProcessError, FileNotFoundError):
            try:
                self.subprocess.run(["docker-compose", "--version"], check=True, capture_output=True)
                return ["docker-compose"]
            except (self.subprocess.CalledProcessError, FileNotFoundError):
                raise RestoreError(
                    "Docker Compose is not available. Install Docker Compose v2 (`docker compose`) "
                    "or v1 (`docker-compose`) and try again."
                )

    def compose_version(self, compose_cmd: List[str], run_cmd: Callable) -> Optional[version.Version]:
        result = run_cmd(compose_cmd + ["version"], check=False, capture_output=True)
        if result.returncode != 0:
            return None
        match = _VERSION_PATTERN.search(result.stdout or "")
        if not match:
            return None
        try:
            return version.parse(match.group(1))
        except version.InvalidVersion:
            return None

    def validate_environment(self, compose_cmd: List[str], run_cmd: Callable):
        run_cmd(["docker", "--version"], capture_output=True)
        compose_ver = self.compose_version(compose_cmd, run_cmd)
        if compose_ver is None:
            self.logger.info("Docker Compose is available (version unknown).")
        elif compose_ver.major < 2:
            self._warn(
                f"Docker Compose {compose_ver} detected. Compose v2 is recommended for this stack."
            )
        else:
            self.logger.info("Docker Compose %s is available.", compose_ver)

    def network_exists(self, name: str, run_cmd: Callable) -> bool:
        result = run_cmd(["docker", "network", "inspect", name], check=False, capture_output=True)
        return result.returncode == 0

    def ensure_network(self, name: str, run_cmd: Callable) -> bool:
        def create():
            self.console.print(f"[green][+] Creating Docker network: {name}[/green]")
            result = run_cmd(["docker", "network", "create", name], check=False, capture_output=True)
            if result.returncode != 0:
                raise RestoreError(f"Failed to create network {name}")

        created = ensure_exists(lambda: self.network_exists(name, run_cmd), create)
        if not created:
            self.console.print(f"[green][+] Docker network '{name}' already exists[/green]")
        return created

    @staticmethod
    def has_compose_file(directory: str) -> bool:
        return any(os.path.isfile(os.path.join(directory, name)) for name in COMPOSE_FILE_NAMES)

    def compose_up(self, compose_cmd: List[str], directory: str, run_cmd: Callable):
        run_cmd(compose_cmd + ["up", "-d", "--build"], cwd=directory)

    def compose_up_if_exists(
        self, compose_cmd: List[str], directory: str, label: str, run_cmd: Callable
    ) -> bool:
        if not self.has_compose_file(directory):
            self._warn(
                f"Could not find docker-compose.yml in {directory}. "
                f"Skipping docker compose up for {label}."
            )
            return False

        self.console.print(f"[green][+] Starting {label} with docker compose...[/green]")
        self.compose_up(compose_cmd, directory, run_cmd)
        return True

    def is_container_running(self, container_id: str, run_cmd: Callable) -> bool:
        result = run_cmd(
            ["docker", "inspect", "-f", "{{.State.Running}}", container_id],
            check=False,
            capture_output=True,
        )
        return result.returncode == 0 and (result.stdout or "").strip() == "true"

    def wait_for_container(
        self,
        container_id: str,
        run_cmd: Callable,
        max_attempts: int = 30,
        interval_seconds: float = 1.0,
    ) -> bool:
        return poll_until(
            lambda: self.is_container_running(container_id, run_cmd),
            interval_seconds=interval_seconds,
            max_attempts=max_attempts,
        )

    def get_compose_container_id(
        self, compose_cmd: List[str], service: str, directory: str, run_cmd: Callable
    ) -> str:
        # Compose registers containers slightly after `up` returns.
        time.sleep(COMPOSE_REGISTRATION_SECONDS)

        result = run_cmd(
            compose_cmd + ["ps", "-q", service],
            check=False,
            capture_output=True,
            cwd=directory,
        )
        container_id = _first_line(result.stdout) if result.returncode == 0 else ""
        if container_id:
            return container_id

        result = run_cmd(
            [
                "docker",
                "ps",
                "-q",
                "--filter",
                f"label=com.docker.compose.service={service}",
                "--filter",
                f"label=com.docker.compose.project.working_dir={directory}",
            ],
            check=False,
            capture_output=True,
        )
        return _first_line(result.stdout) if result.returncode == 0 else ""

    def get_container_env(
        self, container_id: str, var_name: str, default: str, run_cmd: Callable
    ) -> str:
        result = run_cmd(
            [
                "docker",
                "inspect",
                container_id,
                "--format",
                "{{range .Config.Env}}{{println .}}{{end}}",
            ],
            check=False,
            capture_output=True,
        )
        if result.returncode != 0:
            return default

        prefix = f"{var_name}="
        for line in (result.stdout or "").splitlines():
            if line.startswith(prefix):
                return line[len(prefix):]
        return default

    def build_image(self, image: str, directory: str, run_cmd: Callable):
        run_cmd(["docker", "build", "-t", image, "."], cwd=directory)

    def remove_container(self, name: str, run_cmd: Callable):
        run_cmd(["docker", "rm", "-f", name], check=False, capture_output=True)

    def run_app_container(
        self,
        spec: AppContainerSpec,
        directory: str,
        network_name: str,
        run_cmd: Callable,
    ):
        """Rebuilds the image and replaces any previous container of the same name."""
        self.console.print(f"[green][+] Building and starting {spec.name}...[/green]")
        self.build_image(spec.image, directory, run_cmd)
        self.remove_container(spec.name, run_cmd)

        cmd = ["docker", "run", "-d", "--name", spec.name, "--restart", spec.restart_policy]
        if self.network_exists(network_name, run_cmd):
            cmd += ["--network", network_name]
        else:
            self._warn(
                f"Docker network '{network_name}' does not exist. Check the database compose "
                "networks. Continuing without it (but DB hostnames will not resolve)."
            )
        cmd += ["-p", spec.ports, spec.image]
        run_cmd(cmd)


def _first_line(output: Optional[str]) -> str:
    for line in (output or "").splitlines():
        cleaned = line.strip()
        if cleaned:
            return cleaned
    return ""

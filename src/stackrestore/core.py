import logging
import os
import subprocess
import time
import uuid
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Sequence

import requests
from rich.console import Console

from .constants import DIR_MODE, MANIFEST_FILE_NAME
from .errors import RestoreError
from .errors_catalog import actionable_error
from .models import AppContainerSpec, DatabaseTarget, RepoSpec, ResolvedDatabase, Settings
from .services.archive import ArchiveService
from .services.command_runner import CommandRunner
from .services.database import DatabaseService
from .services.docker_runtime import DockerRuntimeService
from .services.download import DownloadService
from .services.git_repos import GitRepoService
from .services.manifest import ManifestService
from .services.object_storage import ObjectStorageService
from .services.system import SystemService
from .stack import (
    APP_CONTAINER,
    APP_CONTAINER_REPO,
    COMPOSE_APPS,
    DATABASE_REPO,
    DATABASE_TARGETS,
    REPOSITORIES,
)

console = Console()
logger = logging.getLogger("stackrestore")


class StackRestorer:
    """Provisions the host, fetches the stack and restores its databases."""

    def __init__(
        self,
        settings: Settings,
        repositories: Sequence[RepoSpec] = REPOSITORIES,
        database_targets: Sequence[DatabaseTarget] = DATABASE_TARGETS,
        app_container: AppContainerSpec = APP_CONTAINER,
    ):
        self.settings = settings
        self.repositories = list(repositories)
        self.database_targets = list(database_targets)
        self.app_container = app_container

        self.run_id = uuid.uuid4().hex[:10]
        self.workdir = settings.workdir
        self.db_repo_dir = os.path.join(self.workdir, DATABASE_REPO)
        self.manifest_service = ManifestService(
            manifest_file=os.path.join(self.workdir, MANIFEST_FILE_NAME),
            logger=logger,
        )
        self.current_step_name: Optional[str] = None
        self.compose_cmd: Optional[List[str]] = None

        self.command_runner = CommandRunner(logger=logger, sensitive_values=settings.secrets())
        self.archive_service = ArchiveService()
        self.download_service = DownloadService(
            logger=logger,
            console=console,
            requests_module=requests,
        )
        self.system_service = SystemService(
            logger=logger,
            console=console,
            download_service=self.download_service,
            archive_service=self.archive_service,
        )
        self.git_service = GitRepoService(logger=logger, console=console, git_token=settings.git_token)
        self.storage_service = ObjectStorageService(
            logger=logger,
            console=console,
            storage_root=settings.storage_root,
            access_grant=settings.storj_access_grant,
        )
        self.docker_runtime_service = DockerRuntimeService(
            logger=logger,
            console=console,
            subprocess_module=subprocess,
        )
        self.database_service = DatabaseService(
            logger=logger,
            console=console,
            docker_runtime_service=self.docker_runtime_service,
            postgres_ready_attempts=settings.postgres_ready_attempts,
            container_ready_attempts=settings.container_ready_attempts,
            poll_interval_seconds=settings.poll_interval_seconds,
        )

    def _log(self, message: str):
        console.print(f"[green][+] {message}[/green]")
        logger.info(message)

    def _warn(self, message: str):
        console.print(f"[yellow][!] {message}[/yellow]")
        logger.warning(message)

    def _run_step(self, name: str, callback, *args, **kwargs):
        self.manifest_service.step_started(name)
        self.current_step_name = name

        try:
            result = callback(*args, **kwargs)
        except KeyboardInterrupt:
            self.manifest_service.step_finished(name, "aborted", error="Operation cancelled by user.")
            raise
        except Exception as exc:
            self.manifest_service.step_finished(name, "failed", error=str(exc))
            raise

        self.manifest_service.step_finished(name, "success")
        self.current_step_name = None
        return result

    def _run_cmd(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        **kwargs: Any,
    ) -> subprocess.CompletedProcess:
        return self.command_runner.run(cmd, check=check, capture_output=capture_output, **kwargs)

    def _get_docker_compose_cmd(self) -> List[str]:
        if self.compose_cmd is None:
            self.compose_cmd = self.docker_runtime_service.get_docker_compose_cmd()
        return self.compose_cmd

    def _public_settings(self) -> Dict[str, Any]:
        data = asdict(self.settings)
        for key in ("git_token", "storj_access_grant"):
            if data.get(key):
                data[key] = CommandRunner.MASK
        return data

    def repo_dir(self, name: str) -> str:
        return os.path.join(self.workdir, name)

    def require_root(self):
        self.system_service.require_root()

    def prepare_workdir(self):
        os.makedirs(self.workdir, mode=DIR_MODE, exist_ok=True)

    def install_dependencies(self):
        if self.settings.skip_install:
            self._log("Skipping system dependency installation.")
            return
        self.system_service.install_prereqs(self._run_cmd)
        self.system_service.install_docker_compose_v2(self._run_cmd)
        self.system_service.install_uplink(self._run_cmd)

    def validate_docker_environment(self):
        self.docker_runtime_service.validate_environment(self._get_docker_compose_cmd(), self._run_cmd)

    def clone_repositories(self):
        self._log("Cloning repos...")
        for repo in self.repositories:
            ok = self.git_service.clone_or_update_repo(
                repo, self.workdir, self.settings.git_branch, self._run_cmd
            )
            if ok:
                continue
            if repo.required:
                raise RestoreError(actionable_error("required_repo_missing", name=repo.name))
            self._warn(f"{repo.name} clone failed - will skip this component")
            self.manifest_service.record_skipped(repo.name, "clone failed")

    def validate_storage_access(self):
        self.storage_service.sanity_check(self._run_cmd)

    def ensure_network(self):
        self.docker_runtime_service.ensure_network(self.settings.network_name, self._run_cmd)

    def download_dumps(self) -> Dict[str, str]:
        self._log(f"Entering {DATABASE_REPO} and downloading dumps...")
        local_paths: Dict[str, str] = {}
        for target in self.database_targets:
            filename = target.dump.filename(self.settings.dump_timestamp)
            local_path = os.path.join(self.db_repo_dir, filename)
            self.storage_service.download_if_missing(
                target.dump.remote_path(self.settings),
                local_path,
                target.dump.name,
                self._run_cmd,
            )
            local_paths[target.service] = local_path
            self.manifest_service.add_artifact(f"{target.dump.name}_dump", local_path)
        return local_paths

    def start_database_stack(self):
        self._log(f"Starting {DATABASE_REPO} (DBs) with docker compose...")
        self.docker_runtime_service.compose_up(
            self._get_docker_compose_cmd(), self.db_repo_dir, self._run_cmd
        )
        self._log("Waiting for containers to be ready...")
        time.sleep(self.settings.containers_settle_seconds)

    def resolve_databases(self, dump_paths: Dict[str, str]) -> List[ResolvedDatabase]:
        compose_cmd = self._get_docker_compose_cmd()
        container_ids: Dict[str, str] = {}
        for target in self.database_targets:
            container_id = self.docker_runtime_service.get_compose_container_id(
                compose_cmd, target.service, self.db_repo_dir, self._run_cmd
            )
            if not container_id:
                raise RestoreError(
                    actionable_error(
                        "container_not_detected",
                        service=target.service,
                        directory=self.db_repo_dir,
                    )
                )
            container_ids[target.service] = container_id

        self._log(
            "Containers detected: "
            + ", ".join(f"{service}={cid}" for service, cid in container_ids.items())
        )

        resolved: List[ResolvedDatabase] = []
        for target in self.database_targets:
            container_id = container_ids[target.service]
            user = self.docker_runtime_service.get_container_env(
                container_id, "POSTGRES_USER", target.default_user, self._run_cmd
            )
            database = target.database or self.docker_runtime_service.get_container_env(
                container_id,
                "POSTGRES_DB",
                target.default_database or target.service,
                self._run_cmd,
            )
            resolved.append(
                ResolvedDatabase(
                    service=target.service,
                    container_id=container_id,
                    user=user,
                    database=database,
                    dump_path=dump_paths[target.service],
                )
            )
            self.manifest_service.add_artifact(f"{target.service}_container", container_id)

        self._log("Configuration detected:")
        for item in resolved:
            self._log(f"  {item.service}: USER={item.user}, DB={item.database}")
        return resolved

    def ensure_databases(self, databases: List[ResolvedDatabase]):
        for item in databases:
            self.database_service.ensure_db_exists(
                item.container_id, item.user, item.database, self._run_cmd
            )

    def restore_databases(self, databases: List[ResolvedDatabase]):
        for item in databases:
            restored = self.database_service.restore_dump(
                item.container_id, item.user, item.database, item.dump_path, self._run_cmd
            )
            tables = self.database_service.count_tables(
                item.container_id, item.user, item.database, self._run_cmd
            )
            if tables is not None:
                self._log(f"DB '{item.database}' now holds {tables} table(s).")
            self.manifest_service.record_database(item.service, item.database, restored, tables)

    def start_app_container(self):
        directory = self.repo_dir(APP_CONTAINER_REPO)
        if not os.path.isdir(directory):
            self._warn(f"{APP_CONTAINER_REPO} directory not found. Skipping {APP_CONTAINER_REPO} setup.")
            self.manifest_service.record_skipped(APP_CONTAINER_REPO, "directory not found")
            return
        self.docker_runtime_service.run_app_container(
            self.app_container, directory, self.settings.network_name, self._run_cmd
        )

    def start_compose_apps(self):
        compose_cmd = self._get_docker_compose_cmd()
        for name in COMPOSE_APPS:
            directory = self.repo_dir(name)
            if not os.path.isdir(directory):
                self._warn(f"{name} directory not found. Skipping {name} setup.")
                self.manifest_service.record_skipped(name, "directory not found")
                continue
            started = self.docker_runtime_service.compose_up_if_exists(
                compose_cmd, directory, name, self._run_cmd
            )
            if not started:
                self.manifest_service.record_skipped(name, "no compose file")

    def print_summary(self):
        console.print("[bold green][+] RESTORE COMPLETED. Check status:[/bold green]")
        console.print("  - docker ps")
        console.print(f"  - ({DATABASE_REPO}) cd {self.db_repo_dir} && docker compose ps")
        console.print(f"  - logs: docker logs -f {self.app_container.name}")

    def print_plan(self):
        console.print("[bold blue]Dry run: no commands will be executed.[/bold blue]")
        for key, value in self._public_settings().items():
            console.print(f"  {key}: {value}")
        console.print("[blue]Repositories:[/blue]")
        for repo in self.repositories:
            marker = "required" if repo.required else "optional"
            console.print(f"  - {repo.name} ({marker}) -> {self.repo_dir(repo.name)}")
        console.print("[blue]Dumps:[/blue]")
        for target in self.database_targets:
            local_path = os.path.join(
                self.db_repo_dir, target.dump.filename(self.settings.dump_timestamp)
            )
            console.print(
                f"  - {target.dump.remote_path(self.settings)} -> {local_path} "
                f"(service {target.service})"
            )
        console.print(f"[blue]Docker network:[/blue] {self.settings.network_name}")
        console.print(
            f"[blue]Services:[/blue] {self.app_container.name} container, "
            f"compose apps {', '.join(COMPOSE_APPS)}"
        )

    def run(self) -> int:
        if self.settings.dry_run:
            self.print_plan()
            return 0

        exit_code = 1
        manifest_status = "failed"
        manifest_error: Optional[str] = None
        self.manifest_service.start_run(run_id=self.run_id, settings=self._public_settings())

        try:
            logger.info("Starting stackrestore run %s...", self.run_id)

            self._run_step("require_root", self.require_root)
            self._run_step("prepare_workdir", self.prepare_workdir)
            self._run_step("install_dependencies", self.install_dependencies)
            self._run_step("validate_docker_environment", self.validate_docker_environment)
            self._run_step("clone_repositories", self.clone_repositories)
            self._run_step("validate_storage_access", self.validate_storage_access)
            self._run_step("ensure_network", self.ensure_network)

            dump_paths = self._run_step("download_dumps", self.download_dumps)
            self._run_step("start_database_stack", self.start_database_stack)
            databases = self._run_step("resolve_databases", self.resolve_databases, dump_paths)
            self._run_step("ensure_databases", self.ensure_databases, databases)
            self._run_step("restore_databases", self.restore_databases, databases)

            self._run_step("start_app_container", self.start_app_container)
            self._run_step("start_compose_apps", self.start_compose_apps)

            self.print_summary()
            manifest_status = "success"
            exit_code = 0
            return exit_code

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            manifest_status = "aborted"
            manifest_error = "Operation cancelled by user."
            return exit_code
        except RestoreError as exc:
            console.print(f"[bold red][x] Error:[/bold red] {exc}")
            logger.error(str(exc))
            manifest_error = str(exc)
            return exit_code
        except Exception as exc:
            console.print(f"[bold red][x] Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            manifest_error = str(exc)
            return exit_code
        finally:
            if self.current_step_name:
                logger.debug("Run stopped during step: %s", self.current_step_name)
            if os.path.isdir(self.workdir):
                self.manifest_service.finalize(manifest_status, error=manifest_error)

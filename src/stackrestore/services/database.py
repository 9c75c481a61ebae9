"""PostgreSQL readiness, database creation and dump restore inside containers."""

import os
from typing import Callable, Optional

from stackrestore.constants import PG_RESTORE_FLAGS
from stackrestore.errors import RestoreError
from stackrestore.services.polling import ensure_exists, poll_until


class DatabaseService:
    """Handles PostgreSQL readiness, database creation and pg_restore."""

    USER_TABLES_QUERY = (
        "SELECT count(*) FROM information_schema.tables "
        "WHERE table_schema NOT IN ('pg_catalog', 'information_schema') "
        "AND table_type = 'BASE TABLE';"
    )

    def __init__(
        self,
        logger,
        console,
        docker_runtime_service,
        postgres_ready_attempts: int = 60,
        container_ready_attempts: int = 30,
        poll_interval_seconds: float = 1.0,
    ):
        self.logger = logger
        self.console = console
        self.docker_runtime_service = docker_runtime_service
        self.postgres_ready_attempts = postgres_ready_attempts
        self.container_ready_attempts = container_ready_attempts
        self.poll_interval_seconds = poll_interval_seconds

    def _warn(self, message: str):
        self.console.print(f"[yellow][!] {message}[/yellow]")
        self.logger.warning(message)

    def _psql(self, container_id: str, user: str, run_cmd: Callable, *args: str):
        return run_cmd(
            ["docker", "exec", container_id, "psql", "-U", user, "-d", "postgres", *args],
            check=False,
            capture_output=True,
        )

    def is_postgres_ready(self, container_id: str, user: str, run_cmd: Callable) -> bool:
        result = run_cmd(
            ["docker", "exec", container_id, "pg_isready", "-U", user],
            check=False,
            capture_output=True,
        )
        return result.returncode == 0

    def wait_for_postgres(self, container_id: str, user: str, run_cmd: Callable):
        ready = poll_until(
            lambda: self.is_postgres_ready(container_id, user, run_cmd),
            interval_seconds=self.poll_interval_seconds,
            max_attempts=self.postgres_ready_attempts,
        )
        if not ready:
            raise RestoreError(f"PostgreSQL is not ready in container {container_id} after waiting.")

    def database_exists(self, container_id: str, user: str, database: str, run_cmd: Callable) -> bool:
        # The target database may not exist yet, so both probes connect to 'postgres'.
        escaped = database.replace("'", "''")
        result = self._psql(
            container_id,
            user,
            run_cmd,
            "-tAc",
            f"SELECT 1 FROM pg_database WHERE datname='{escaped}'",
        )
        if result.returncode == 0 and "1" in (result.stdout or "").split():
            return True

        result = self._psql(container_id, user, run_cmd, "-lqt")
        if result.returncode != 0:
            return False
        for line in (result.stdout or "").splitlines():
            if line.split("|", 1)[0].strip() == database:
                return True
        return False

    def create_database(self, container_id: str, user: str, database: str, run_cmd: Callable):
        self.console.print(f"[green][+] Creating DB '{database}'...[/green]")
        result = run_cmd(
            ["docker", "exec", container_id, "createdb", "-U", user, database],
            check=False,
            capture_output=True,
        )
        output = f"{result.stdout or ''}{result.stderr or ''}".strip()

        if result.returncode == 0:
            self.console.print(f"[green][+] DB '{database}' created successfully.[/green]")
        elif "already exists" in output.lower():
            self.console.print(
                f"[green][+] DB '{database}' already exists (detected during creation).[/green]"
            )
        else:
            self._warn(f"Error creating DB '{database}': {output}")
            raise RestoreError(f"Could not create DB '{database}'.")

    def ensure_db_exists(self, container_id: str, user: str, database: str, run_cmd: Callable) -> bool:
        self.console.print(f"[green][+] Checking existence of DB '{database}'...[/green]")
        self.wait_for_postgres(container_id, user, run_cmd)

        created = ensure_exists(
            lambda: self.database_exists(container_id, user, database, run_cmd),
            lambda: self.create_database(container_id, user, database, run_cmd),
        )
        if not created:
            self.console.print(f"[green][+] DB '{database}' already exists.[/green]")
        return created

    def restore_dump(
        self, container_id: str, user: str, database: str, dump_path: str, run_cmd: Callable
    ) -> bool:
        """Feeds a local dump to pg_restore on stdin.

        A non-zero pg_restore exit is reported but does not abort the run.
        """
        if not container_id:
            raise RestoreError("Empty container ID (service not started?)")
        if not os.path.isfile(dump_path):
            raise RestoreError(f"Local dump does not exist: {dump_path}")

        self.console.print(
            f"[green][+] Restoring dump {os.path.basename(dump_path)} to DB={database} "
            f"USER={user} (container={container_id})...[/green]"
        )

        ready = self.docker_runtime_service.wait_for_container(
            container_id,
            run_cmd,
            max_attempts=self.container_ready_attempts,
            interval_seconds=self.poll_interval_seconds,
        )
        if not ready:
            raise RestoreError(f"Container {container_id} is not running after waiting.")

        self.wait_for_postgres(container_id, user, run_cmd)

        result = run_cmd(
            [
                "docker",
                "exec",
                "-i",
                container_id,
                "pg_restore",
                "-U",
                user,
                "-d",
                database,
                *PG_RESTORE_FLAGS,
            ],
            check=False,
            stdin_path=dump_path,
        )
        if result.returncode != 0:
            self._warn("pg_restore returned error code. Check the logs.")
            self._warn("This may be normal if the DB already exists and has data.")
            return False

        self.console.print("[green][+] Restore completed successfully.[/green]")
        return True

    def count_tables(self, container_id: str, user: str, database: str, run_cmd: Callable) -> Optional[int]:
        result = run_cmd(
            [
                "docker",
                "exec",
                container_id,
                "psql",
                "-U",
                user,
                "-d",
                database,
                "-tAc",
                self.USER_TABLES_QUERY,
            ],
            check=False,
            capture_output=True,
        )
        if result.returncode != 0:
            return None
        try:
            return int((result.stdout or "").strip().splitlines()[0])
        except (IndexError, ValueError):
            return None

"""Storj access checks and dump downloads through the uplink CLI."""

import os
from typing import Callable, Dict, Optional

from stackrestore.errors import RestoreError
from stackrestore.errors_catalog import actionable_error
from stackrestore.services.polling import ensure_exists


class ObjectStorageService:
    """Wraps ``uplink ls`` / ``uplink cp`` with the configured access grant."""

    def __init__(self, logger, console, storage_root: str, access_grant: str = ""):
        self.logger = logger
        self.console = console
        self.storage_root = storage_root
        self.access_grant = access_grant

    @property
    def uplink_env(self) -> Optional[Dict[str, str]]:
        if not self.access_grant:
            return None
        return {"UPLINK_ACCESS": self.access_grant}

    def sanity_check(self, run_cmd: Callable):
        self.console.print("[green][+] Validating uplink (Storj access)...[/green]")
        if self.access_grant:
            self.console.print("[green][+] Using Storj Access Grant from environment[/green]")

        result = run_cmd(
            ["uplink", "ls", self.storage_root],
            check=False,
            capture_output=True,
            env=self.uplink_env,
        )
        if result.returncode != 0:
            code = "uplink_invalid_access_grant" if self.access_grant else "uplink_no_access_grant"
            message = actionable_error(code, path=self.storage_root)
            self.console.print(f"[yellow][!] {message}[/yellow]")
            self.logger.warning(message)
            raise RestoreError("Cannot continue without uplink access.")

        self.console.print(f"[green][+] uplink OK - access validated for {self.storage_root}[/green]")

    def download_if_missing(self, remote_path: str, local_path: str, label: str, run_cmd: Callable) -> bool:
        """Returns True when the object was downloaded by this call.

        ``uplink cp`` writes to ``<local_path>.part`` and the file is moved into
        place only after the copy succeeds, so an interrupted download never
        looks like a finished dump on the next run.
        """
        partial_path = f"{local_path}.part"

        def download():
            self.console.print(f"[green][+] Downloading {label} dump from Storj...[/green]")
            _remove_quietly(partial_path)
            try:
                run_cmd(["uplink", "cp", remote_path, partial_path], env=self.uplink_env)
                os.replace(partial_path, local_path)
            except OSError as exc:
                _remove_quietly(partial_path)
                raise RestoreError(f"Failed to store {label} dump at {local_path}: {exc}") from exc
            except BaseException:
                _remove_quietly(partial_path)
                raise

        downloaded = ensure_exists(lambda: os.path.isfile(local_path), download)
        if not downloaded:
            self.console.print(
                f"[green][+] {label} dump already exists locally, skipping download.[/green]"
            )
        return downloaded


def _remove_quietly(path: str):
    if os.path.exists(path):
        os.remove(path)

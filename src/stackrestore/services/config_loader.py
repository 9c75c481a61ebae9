"""Configuration loading: YAML defaults, .env files and process environment."""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import dotenv_values

from stackrestore.constants import (
    CONTAINER_READY_ATTEMPTS,
    CONTAINERS_SETTLE_SECONDS,
    DEFAULT_BASE_DIR,
    DEFAULT_DUMP_TIMESTAMP,
    DEFAULT_GIT_BRANCH,
    DEFAULT_NETWORK_NAME,
    DEFAULT_STORJ_BUCKET,
    DEFAULT_STORJ_PREFIX,
    POLL_INTERVAL_SECONDS,
    POSTGRES_READY_ATTEMPTS,
)
from stackrestore.errors import RestoreError
from stackrestore.models import Settings

# Settings field -> environment variable.
ENV_VARS = {
    "base_dir": "BASE_DIR",
    "workdir": "WORKDIR",
    "git_branch": "GIT_BRANCH",
    "git_token": "GIT_TOKEN",
    "storj_bucket": "STORJ_BUCKET",
    "storj_prefix": "STORJ_PREFIX",
    "storj_access_grant": "STORJ_ACCESS_GRANT",
    "dump_timestamp": "DUMP_TIMESTAMP",
    "network_name": "DOCKER_NETWORK",
}

DEFAULTS: Dict[str, Any] = {
    "base_dir": DEFAULT_BASE_DIR,
    "git_branch": DEFAULT_GIT_BRANCH,
    "git_token": "",
    "storj_bucket": DEFAULT_STORJ_BUCKET,
    "storj_prefix": DEFAULT_STORJ_PREFIX,
    "storj_access_grant": "",
    "dump_timestamp": DEFAULT_DUMP_TIMESTAMP,
    "network_name": DEFAULT_NETWORK_NAME,
    "skip_install": False,
    "container_ready_attempts": CONTAINER_READY_ATTEMPTS,
    "postgres_ready_attempts": POSTGRES_READY_ATTEMPTS,
    "poll_interval_seconds": POLL_INTERVAL_SECONDS,
    "containers_settle_seconds": CONTAINERS_SETTLE_SECONDS,
}


class ConfigLoader:
    """Loads YAML configuration files and .env files into Settings."""

    SUPPORTED_KEYS = {
        "base_dir",
        "workdir",
        "git_branch",
        "storj_bucket",
        "storj_prefix",
        "dump_timestamp",
        "network_name",
        "skip_install",
        "verbose",
        "log_file",
        "container_ready_attempts",
        "postgres_ready_attempts",
        "poll_interval_seconds",
        "containers_settle_seconds",
    }

    def __init__(self, logger=None, console=None):
        self.logger = logger
        self.console = console

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise RestoreError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise RestoreError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise RestoreError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise RestoreError(f"Unknown configuration keys: {unknown_list}")

        return parsed

    def load_env_file(self, env_path: str, required: bool = False) -> Dict[str, str]:
        """Reads KEY=VALUE pairs without touching ``os.environ``."""
        if not os.path.isfile(env_path):
            if required:
                raise RestoreError(f"Env file not found: {env_path}")
            if self.console is not None:
                self.console.print(
                    f"[yellow][!] .env file not found at {env_path}. "
                    "Git operations may fail for private repos.[/yellow]"
                )
            return {}

        if self.console is not None:
            self.console.print(f"[green][+] Loading environment variables from {env_path}...[/green]")
        values = {key: value for key, value in dotenv_values(env_path).items() if value is not None}
        if self.logger is not None:
            self.logger.debug("Loaded %s variable(s) from %s", len(values), env_path)
        return values

    def build_settings(
        self,
        environ: Mapping[str, str],
        config: Optional[Mapping[str, Any]] = None,
        **overrides: Any,
    ) -> Settings:
        """Resolves each field as override > environment > config file > default.

        Empty environment values count as unset.
        """
        config = config or {}
        resolved: Dict[str, Any] = {}

        for field, default in DEFAULTS.items():
            value = overrides.get(field)
            if value is None:
                env_name = ENV_VARS.get(field)
                value = environ.get(env_name) if env_name else None
            if value in (None, ""):
                value = config.get(field)
            if value in (None, ""):
                value = default
            resolved[field] = value

        workdir = overrides.get("workdir") or environ.get("WORKDIR") or config.get("workdir")
        # Compose records absolute working_dir labels.
        resolved["workdir"] = os.path.abspath(workdir or os.path.join(resolved["base_dir"], "poktpool"))

        try:
            resolved["container_ready_attempts"] = int(resolved["container_ready_attempts"])
            resolved["postgres_ready_attempts"] = int(resolved["postgres_ready_attempts"])
            resolved["poll_interval_seconds"] = float(resolved["poll_interval_seconds"])
            resolved["containers_settle_seconds"] = float(resolved["containers_settle_seconds"])
        except (TypeError, ValueError) as exc:
            raise RestoreError(f"Invalid numeric configuration value: {exc}") from exc
        resolved["skip_install"] = bool(resolved["skip_install"])
        resolved["dry_run"] = bool(overrides.get("dry_run", False))

        return Settings(**resolved)

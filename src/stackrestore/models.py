"""Shared domain models for stackrestore."""

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from .constants import (
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


@dataclass(frozen=True)
class Settings:
    """Resolved configuration handed to every provisioning step."""

    base_dir: str = DEFAULT_BASE_DIR
    workdir: str = os.path.join(DEFAULT_BASE_DIR, "poktpool")
    git_branch: str = DEFAULT_GIT_BRANCH
    git_token: str = ""
    storj_bucket: str = DEFAULT_STORJ_BUCKET
    storj_prefix: str = DEFAULT_STORJ_PREFIX
    storj_access_grant: str = ""
    dump_timestamp: str = DEFAULT_DUMP_TIMESTAMP
    network_name: str = DEFAULT_NETWORK_NAME
    skip_install: bool = False
    dry_run: bool = False
    container_ready_attempts: int = CONTAINER_READY_ATTEMPTS
    postgres_ready_attempts: int = POSTGRES_READY_ATTEMPTS
    poll_interval_seconds: float = POLL_INTERVAL_SECONDS
    containers_settle_seconds: float = CONTAINERS_SETTLE_SECONDS

    @property
    def storage_root(self) -> str:
        return f"sj://{self.storj_bucket}/{self.storj_prefix}"

    def secrets(self) -> Tuple[str, ...]:
        return tuple(value for value in (self.git_token, self.storj_access_grant) if value)


@dataclass(frozen=True)
class RepoSpec:
    name: str
    url: str
    required: bool = False


@dataclass(frozen=True)
class DumpSpec:
    """A dump object stored under ``<prefix>/<name>/<timestamp>_<name>.dump``."""

    name: str

    def filename(self, timestamp: str) -> str:
        return f"{timestamp}_{self.name}.dump"

    def remote_path(self, settings: Settings) -> str:
        return f"{settings.storage_root}/{self.name}/{self.filename(settings.dump_timestamp)}"


@dataclass(frozen=True)
class DatabaseTarget:
    """A compose service whose PostgreSQL instance receives one dump.

    When ``database`` is set it is used verbatim; otherwise the name is read
    from the container's ``POSTGRES_DB`` and falls back to ``default_database``.
    """

    service: str
    dump: DumpSpec
    default_user: str = "postgres"
    database: Optional[str] = None
    default_database: Optional[str] = None


@dataclass(frozen=True)
class AppContainerSpec:
    name: str
    image: str
    ports: str
    restart_policy: str = "unless-stopped"


@dataclass(frozen=True)
class ResolvedDatabase:
    service: str
    container_id: str
    user: str
    database: str
    dump_path: str

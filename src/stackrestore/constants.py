"""Static defaults for stackrestore."""

DIR_MODE = 0o755
BIN_MODE = 0o755
KEY_MODE = 0o644

DEFAULT_BASE_DIR = "/root"
DEFAULT_GIT_BRANCH = "main"
DEFAULT_STORJ_BUCKET = "blockchains"
DEFAULT_STORJ_PREFIX = "postgres"
DEFAULT_DUMP_TIMESTAMP = "20251217_142112"
DEFAULT_NETWORK_NAME = "poktpool"

CONTAINER_READY_ATTEMPTS = 30
POSTGRES_READY_ATTEMPTS = 60
POLL_INTERVAL_SECONDS = 1.0
CONTAINERS_SETTLE_SECONDS = 5.0
COMPOSE_REGISTRATION_SECONDS = 2.0

DEFAULT_ENV_FILE = ".env"
DEFAULT_CONFIG_FILE = ".stackrestore.yml"
MANIFEST_FILE_NAME = "restore-manifest.json"

BASE_APT_PACKAGES = ("git", "curl", "jq", "unzip", "ca-certificates", "gnupg", "lsb-release")
DOCKER_APT_PACKAGES = (
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
)
DOCKER_GPG_URL = "https://download.docker.com/linux/ubuntu/gpg"
DOCKER_APT_REPO = "https://download.docker.com/linux/ubuntu"
APT_KEYRINGS_DIR = "/etc/apt/keyrings"
DOCKER_KEYRING_PATH = "/etc/apt/keyrings/docker.gpg"
DOCKER_SOURCES_LIST = "/etc/apt/sources.list.d/docker.list"

UPLINK_RELEASE_URL = "https://github.com/storj/storj/releases/latest/download/uplink_linux_{arch}.zip"
UPLINK_INSTALL_PATH = "/usr/local/bin/uplink"
UPLINK_ARCHES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}

COMPOSE_FILE_NAMES = ("docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml")

GITHUB_HTTPS_PREFIX = "https://github.com/"

PG_RESTORE_FLAGS = ("--clean", "--if-exists", "--no-owner", "--no-acl", "-v")

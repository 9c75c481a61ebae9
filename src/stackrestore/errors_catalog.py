"""Actionable error catalog for stackrestore."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "not_root": {
        "what": "Run this as root (or with sudo).",
        "next": "Re-run the command with `sudo stackrestore`.",
    },
    "clone_failed_no_token": {
        "what": "Failed to clone {name} from {url}. This may be a private repository.",
        "next": (
            "Set GIT_TOKEN in the .env file, configure SSH keys or git credentials, "
            "or confirm you have access to the repository."
        ),
    },
    "clone_failed_with_token": {
        "what": "Failed to clone {name} from {url} even with credentials.",
        "next": "Check that GIT_TOKEN has read access to the repository.",
    },
    "required_repo_missing": {
        "what": "{name} clone failed - this is required for the restore process.",
        "next": "Fix repository access and run stackrestore again.",
    },
    "uplink_no_access_grant": {
        "what": "uplink does NOT have configured access to list {path}.",
        "next": "Set STORJ_ACCESS_GRANT in the .env file, or run `uplink setup`.",
    },
    "uplink_invalid_access_grant": {
        "what": "uplink does NOT have configured access to list {path}.",
        "next": "The provided STORJ_ACCESS_GRANT may be invalid or expired. Generate a new one.",
    },
    "container_not_detected": {
        "what": "Could not detect container for service '{service}' (docker compose ps).",
        "next": "Run `docker compose ps` in {directory} and check the service definition.",
    },
    "unsupported_arch": {
        "what": "Architecture not supported for uplink: {arch}",
        "next": "Install uplink manually and make sure it is on PATH.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"

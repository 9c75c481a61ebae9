"""Clone-or-update logic for the stack's source repositories."""

import os
from typing import Callable

from stackrestore.constants import GITHUB_HTTPS_PREFIX
from stackrestore.errors_catalog import actionable_error
from stackrestore.models import RepoSpec


def inject_git_credentials(url: str, token: str) -> str:
    if not token:
        return url
    return url.replace(GITHUB_HTTPS_PREFIX, f"https://{token}@github.com/", 1)


class GitRepoService:
    """Keeps a checkout per repository under the working directory."""

    def __init__(self, logger, console, git_token: str = ""):
        self.logger = logger
        self.console = console
        self.git_token = git_token

    def _warn(self, message: str):
        self.console.print(f"[yellow][!] {message}[/yellow]")
        self.logger.warning(message)

    def remote_branch_exists(self, directory: str, branch: str, run_cmd: Callable) -> bool:
        result = run_cmd(
            [
                "git",
                "-C",
                directory,
                "show-ref",
                "--verify",
                "--quiet",
                f"refs/remotes/origin/{branch}",
            ],
            check=False,
            capture_output=True,
        )
        return result.returncode == 0

    def checkout_branch(self, directory: str, branch: str, run_cmd: Callable) -> bool:
        result = run_cmd(
            ["git", "-C", directory, "checkout", branch],
            check=False,
            capture_output=True,
        )
        if result.returncode == 0:
            return True
        result = run_cmd(
            ["git", "-C", directory, "checkout", "-b", branch, f"origin/{branch}"],
            check=False,
            capture_output=True,
        )
        return result.returncode == 0

    def current_branch(self, directory: str, run_cmd: Callable) -> str:
        result = run_cmd(
            ["git", "-C", directory, "branch", "--show-current"],
            check=False,
            capture_output=True,
        )
        if result.returncode != 0:
            return "unknown"
        return (result.stdout or "").strip() or "unknown"

    def update_repo(self, repo: RepoSpec, directory: str, branch: str, run_cmd: Callable):
        self.console.print(f"[green][+] Updating repo {repo.name}...[/green]")
        auth_url = inject_git_credentials(repo.url, self.git_token)

        if self.git_token and auth_url != repo.url:
            run_cmd(
                ["git", "-C", directory, "remote", "set-url", "origin", auth_url],
                check=False,
                capture_output=True,
            )

        fetch = run_cmd(["git", "-C", directory, "fetch", "--all", "--prune"], check=False)
        if fetch.returncode != 0:
            self._warn(f"Failed to fetch {repo.name}. Continuing...")

        if self.remote_branch_exists(directory, branch, run_cmd):
            self.checkout_branch(directory, branch, run_cmd)

        pull = run_cmd(["git", "-C", directory, "pull", "--rebase"], check=False)
        if pull.returncode != 0:
            self.logger.warning("git pull --rebase failed for %s; keeping local state.", repo.name)

    def clone_repo(self, repo: RepoSpec, directory: str, branch: str, run_cmd: Callable) -> bool:
        self.console.print(f"[green][+] Cloning repo {repo.name}...[/green]")
        auth_url = inject_git_credentials(repo.url, self.git_token)

        result = run_cmd(["git", "clone", auth_url, directory], check=False)
        if result.returncode != 0:
            code = "clone_failed_with_token" if self.git_token else "clone_failed_no_token"
            self._warn(actionable_error(code, name=repo.name, url=repo.url))
            self._warn(f"Skipping {repo.name}...")
            return False

        if self.remote_branch_exists(directory, branch, run_cmd):
            self.checkout_branch(directory, branch, run_cmd)
        else:
            self.console.print(
                f"[green][+] Branch '{branch}' not found in {repo.name}, staying on default "
                f"branch: {self.current_branch(directory, run_cmd)}[/green]"
            )
        return True

    def clone_or_update_repo(
        self, repo: RepoSpec, workdir: str, branch: str, run_cmd: Callable
    ) -> bool:
        """Returns False when a fresh clone failed; updates never fail the run."""
        directory = os.path.join(workdir, repo.name)

        if os.path.isdir(os.path.join(directory, ".git")):
            self.update_repo(repo, directory, branch, run_cmd)
            return True

        return self.clone_repo(repo, directory, branch, run_cmd)

import subprocess

from stackrestore.models import RepoSpec
from stackrestore.services.git_repos import GitRepoService, inject_git_credentials


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def warning(self, message, *args, **_kwargs):
        self.warnings.append(message % args if args else message)


class DummyConsole:
    def __init__(self):
        self.lines = []

    def print(self, message, *_args, **_kwargs):
        self.lines.append(message)


class FakeGit:
    def __init__(self, failing=()):
        self.failing = failing
        self.calls = []

    def __call__(self, cmd, check=True, capture_output=False, **_kwargs):
        self.calls.append(cmd)
        returncode = 1 if any(word in cmd for word in self.failing) else 0
        stdout = "develop\n" if "--show-current" in cmd else ""
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="")


REPO = RepoSpec("poktpooldb", "https://github.com/infoboy27/poktpooldb.git", required=True)


def test_inject_git_credentials_rewrites_github_urls():
    assert (
        inject_git_credentials("https://github.com/infoboy27/poktpool.git", "tok")
        == "https://tok@github.com/infoboy27/poktpool.git"
    )


def test_inject_git_credentials_without_token_keeps_url():
    url = "https://github.com/infoboy27/poktpool.git"

    assert inject_git_credentials(url, "") == url


def test_fresh_clone_checks_out_requested_branch(tmp_path):
    git = FakeGit()
    service = GitRepoService(logger=DummyLogger(), console=DummyConsole(), git_token="tok")

    assert service.clone_or_update_repo(REPO, str(tmp_path), "main", git) is True

    target = str(tmp_path / "poktpooldb")
    assert git.calls[0] == ["git", "clone", "https://tok@github.com/infoboy27/poktpooldb.git", target]
    assert ["git", "-C", target, "checkout", "main"] in git.calls


def test_fresh_clone_stays_on_default_branch_when_missing(tmp_path):
    git = FakeGit(failing=("show-ref",))
    console = DummyConsole()
    service = GitRepoService(logger=DummyLogger(), console=console)

    assert service.clone_or_update_repo(REPO, str(tmp_path), "release", git) is True

    assert not any("checkout" in cmd for cmd in git.calls)
    assert any("staying on default branch: develop" in line for line in console.lines)


def test_failed_clone_returns_false_with_hint(tmp_path):
    git = FakeGit(failing=("clone",))
    logger = DummyLogger()
    service = GitRepoService(logger=logger, console=DummyConsole())

    assert service.clone_or_update_repo(REPO, str(tmp_path), "main", git) is False

    assert any("GIT_TOKEN" in warning for warning in logger.warnings)
    assert any("Skipping poktpooldb" in warning for warning in logger.warnings)


def test_existing_checkout_is_updated_and_never_fails(tmp_path):
    (tmp_path / "poktpooldb" / ".git").mkdir(parents=True)
    git = FakeGit(failing=("fetch", "--rebase"))
    service = GitRepoService(logger=DummyLogger(), console=DummyConsole(), git_token="tok")

    assert service.clone_or_update_repo(REPO, str(tmp_path), "main", git) is True

    target = str(tmp_path / "poktpooldb")
    assert [
        "git",
        "-C",
        target,
        "remote",
        "set-url",
        "origin",
        "https://tok@github.com/infoboy27/poktpooldb.git",
    ] in git.calls
    assert ["git", "-C", target, "pull", "--rebase"] in git.calls
    assert not any(cmd[:2] == ["git", "clone"] for cmd in git.calls)


def test_checkout_falls_back_to_tracking_branch(tmp_path):
    calls = []

    def git(cmd, check=True, capture_output=False, **_kwargs):
        calls.append(cmd)
        returncode = 1 if cmd[-1] == "main" and "-b" not in cmd else 0
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="")

    service = GitRepoService(logger=DummyLogger(), console=DummyConsole())

    assert service.checkout_branch(str(tmp_path), "main", git) is True
    assert calls[-1] == ["git", "-C", str(tmp_path), "checkout", "-b", "main", "origin/main"]

"""Shared fixtures: a temporary home directory, fake git and fake ssh-agent."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest

from gitid.context import ExecutionContext
from gitid.errors import GitCommandError
from gitid.keys import generate_key
from gitid.models import Account


class FakeGit:
    """In-memory stand-in for :class:`gitid.git.GitClient`."""

    def __init__(self, repo_path: Optional[Path] = None) -> None:
        self.repo_path = repo_path
        self.config: dict[str, dict[str, str]] = {"local": {}, "global": {}}
        self.remotes: dict[str, str] = {}
        self.credentials: list[tuple[str, str, str]] = []
        self.calls: list[tuple] = []
        self.fail_on: Optional[str] = None

    def toplevel(self) -> Optional[Path]:
        return self.repo_path

    def get_config(self, key: str, scope: str) -> Optional[str]:
        return self.config[scope].get(key)

    def set_config(self, key: str, value: str, scope: str) -> None:
        self.calls.append(("set_config", key, value, scope))
        if self.fail_on == key:
            raise GitCommandError(["config", f"--{scope}", key, value], 255, "could not lock config file")
        self.config[scope][key] = value

    def list_remotes(self) -> list[str]:
        return sorted(self.remotes)

    def get_remote_url(self, remote: str) -> Optional[str]:
        return self.remotes.get(remote)

    def set_remote_url(self, remote: str, url: str) -> None:
        self.calls.append(("set_remote_url", remote, url))
        if self.fail_on == "remote":
            raise GitCommandError(["remote", "set-url", remote, url], 2, "No such remote")
        self.remotes[remote] = url

    def credential_approve(self, host: str, username: str, token: str) -> None:
        self.calls.append(("credential_approve", host, username))
        self.credentials.append((host, username, token))


class FakeAgent:
    def __init__(self, keys=None) -> None:
        self.keys = keys
        self.added: list[Path] = []

    def list_keys(self):
        return self.keys

    def add(self, private_key: Path):
        self.added.append(private_key)
        return True, f"Added {private_key} to ssh-agent"


@pytest.fixture
def home(tmp_path) -> Path:
    home = tmp_path / "home"
    (home / ".ssh").mkdir(parents=True, mode=0o700)
    return home


@pytest.fixture
def repo(tmp_path) -> Path:
    path = tmp_path / "my-repo"
    path.mkdir()
    return path


@pytest.fixture
def ctx(home, repo) -> ExecutionContext:
    return ExecutionContext(
        home_dir=home,
        current_repo_path=repo,
        now=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )


@pytest.fixture
def global_ctx(home) -> ExecutionContext:
    return ExecutionContext(
        home_dir=home,
        current_repo_path=None,
        now=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )


@pytest.fixture
def fake_git(repo) -> FakeGit:
    return FakeGit(repo)


@pytest.fixture
def alice(ctx) -> Account:
    generate_key(ctx.home_dir / ".ssh" / "id_ed25519_alice", "alice@example.com")
    return Account(
        username="alice",
        email="alice@example.com",
        ssh_key_path="~/.ssh/id_ed25519_alice",
    )


@pytest.fixture
def bob() -> Account:
    return Account(username="bob", email="bob@example.com")

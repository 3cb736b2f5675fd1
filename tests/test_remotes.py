"""Tests for gitid.remotes."""

import pytest

from gitid.models import Account
from gitid.remotes import (
    RemoteUrl,
    build_https_url,
    build_ssh_url,
    parse_remote_url,
    real_host,
    reverse_alias,
)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("git@github.com:alice/my-repo.git", RemoteUrl("ssh", "github.com", "alice", "my-repo")),
        ("git@github.com-alice:alice/my-repo.git", RemoteUrl("ssh", "github.com-alice", "alice", "my-repo")),
        ("git@github.com:alice/my-repo", RemoteUrl("ssh", "github.com", "alice", "my-repo")),
        ("ssh://git@gitlab.com:2222/group/sub/proj.git", RemoteUrl("ssh", "gitlab.com", "group/sub", "proj")),
        ("https://github.com/alice/my-repo.git", RemoteUrl("https", "github.com", "alice", "my-repo")),
        ("https://tok@github.com/alice/my-repo", RemoteUrl("https", "github.com", "alice", "my-repo")),
    ],
)
def test_parse_remote_url(url, expected):
    assert parse_remote_url(url) == expected


@pytest.mark.parametrize("url", ["", "/local/path/repo", "https://github.com/only-owner", "file:///tmp/x"])
def test_parse_remote_url_rejects(url):
    assert parse_remote_url(url) is None


def test_build_urls():
    acc = Account(username="alice", email="alice@example.com")
    assert build_ssh_url(acc, "alice", "my-repo") == "git@github.com-alice:alice/my-repo.git"
    assert build_https_url("github.com", "alice", "my-repo") == "https://github.com/alice/my-repo.git"


def test_reverse_alias_prefers_registry():
    accounts = [Account(username="my-name", email="m@example.com")]
    assert reverse_alias("github.com-my-name", accounts) == ("github.com", "my-name")


def test_reverse_alias_heuristic_for_unknown_alias():
    assert reverse_alias("github.com-bob", []) == ("github.com", "bob")
    assert reverse_alias("github.com", []) is None
    assert reverse_alias("my-gitlab.example.com", []) is None


def test_real_host():
    assert real_host("github.com-bob", []) == "github.com"
    assert real_host("gitlab.com", []) == "gitlab.com"

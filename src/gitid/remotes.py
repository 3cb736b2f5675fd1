"""Remote URL parsing and building."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .models import Account, ssh_alias


@dataclass(frozen=True)
class RemoteUrl:
    scheme: str  # "ssh" or "https"
    raw_host: str  # host as written in the URL, possibly an SSH alias
    owner: str
    repo: str

    @property
    def path(self) -> str:
        return f"{self.owner}/{self.repo}"


def parse_remote_url(url: str) -> Optional[RemoteUrl]:
    """Parse scp-style, ``ssh://`` and ``https://`` remote URLs."""
    url = url.strip()
    if url.startswith("ssh://"):
        rest = url[len("ssh://"):]
        rest = rest.split("@", 1)[1] if "@" in rest.split("/", 1)[0] else rest
        host, _, path = rest.partition("/")
        host = host.split(":", 1)[0]  # drop port
        return _split("ssh", host, path)
    if url.startswith("https://") or url.startswith("http://"):
        rest = url.split("://", 1)[1]
        authority, _, path = rest.partition("/")
        host = authority.rsplit("@", 1)[-1]
        return _split("https", host, path)
    if "@" in url and ":" in url:
        user_host, _, path = url.partition(":")
        host = user_host.split("@", 1)[1]
        return _split("ssh", host, path)
    return None


def _split(scheme: str, host: str, path: str) -> Optional[RemoteUrl]:
    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    owner, _, repo = path.rpartition("/")
    if not host or not owner or not repo:
        return None
    return RemoteUrl(scheme, host, owner, repo)


def build_ssh_url(account: Account, owner: str, repo: str) -> str:
    return f"git@{account.alias}:{owner}/{repo}.git"


def build_https_url(host: str, owner: str, repo: str) -> str:
    return f"https://{host}/{owner}/{repo}.git"


def reverse_alias(
    raw_host: str, accounts: Iterable[Account]
) -> Optional[tuple[str, str]]:
    """Recover ``(host, username)`` from an SSH alias.

    Registered aliases are looked up exactly. Otherwise a trailing
    ``-suffix`` without a dot is taken to be a username added by another
    account scheme (``github.com-bob`` -> ``("github.com", "bob")``).
    Plain hostnames give ``None``.
    """
    for acc in accounts:
        if ssh_alias(acc.host, acc.username) == raw_host:
            return (acc.host, acc.username)
    host, sep, suffix = raw_host.rpartition("-")
    if sep and host and suffix and "." not in suffix and "." in host:
        return (host, suffix)
    return None


def real_host(raw_host: str, accounts: Iterable[Account]) -> str:
    pair = reverse_alias(raw_host, accounts)
    return pair[0] if pair else raw_host

"""Domain models for git-id."""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_HOST = "github.com"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class Account(BaseModel):
    """A registered identity, unique by ``(username, host)``."""

    model_config = ConfigDict(validate_assignment=True)

    username: str
    email: str
    host: str = DEFAULT_HOST
    ssh_key_path: Optional[str] = None
    https_token: Optional[str] = None

    @field_validator("username")
    @classmethod
    def _username(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("username must not be empty")
        if any(ch.isspace() or ch in "@:/" for ch in value):
            raise ValueError(f"username {value!r} contains whitespace, '@', ':' or '/'")
        return value

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        value = value.strip()
        if not _EMAIL_RE.match(value):
            raise ValueError(f"{value!r} is not a valid email address")
        return value

    @field_validator("host", mode="before")
    @classmethod
    def _host(cls, value: Optional[str]) -> str:
        value = (value or "").strip()
        if not value:
            return DEFAULT_HOST
        if any(ch.isspace() or ch in "@:/" for ch in value):
            raise ValueError(f"host {value!r} is not a bare hostname")
        return value

    @field_validator("ssh_key_path", "https_token", mode="before")
    @classmethod
    def _empty_is_absent(cls, value: Optional[str]) -> Optional[str]:
        # The accounts file writes absent values as "".
        if value is None:
            return None
        value = value.strip()
        return value or None

    @property
    def key(self) -> tuple[str, str]:
        return (self.username, self.host)

    @property
    def id(self) -> str:
        return account_id(self.username, self.host)

    @property
    def alias(self) -> str:
        return ssh_alias(self.host, self.username)


def account_id(username: str, host: str = DEFAULT_HOST) -> str:
    """Return the ``username@host`` form used on the command line."""
    return f"{username}@{host or DEFAULT_HOST}"


def ssh_alias(host: str, username: str) -> str:
    """Return the SSH host alias ``{host}-{username}``.

    Used both as the ``Host`` entry in ``~/.ssh/config`` and as the hostname of
    rewritten remote URLs. The registry refuses two accounts whose aliases
    collide, so within a registry the mapping is reversible.
    """
    return f"{host or DEFAULT_HOST}-{username}"

"""Execution context and configuration paths.

Nothing in the core reads the working directory or ``$HOME`` directly; the CLI
builds one :class:`ExecutionContext` per invocation and hands it down.

Registry location, first match wins:

1. ``GIT_ID_CONFIG``                         explicit file path
2. ``$XDG_CONFIG_HOME/git-id/accounts.toml``
3. ``~/.config/git-id/accounts.toml``

``GIT_ID_HOME`` overrides the home directory itself.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ExecutionContext:
    home_dir: Path
    current_repo_path: Optional[Path] = None
    now: datetime = field(default_factory=_utcnow)

    @property
    def ssh_dir(self) -> Path:
        return self.home_dir / ".ssh"

    @property
    def ssh_config_path(self) -> Path:
        return self.ssh_dir / "config"

    def expand(self, path: str | Path) -> Path:
        """Expand a leading ``~`` against :attr:`home_dir`."""
        text = str(path)
        if text == "~":
            return self.home_dir
        if text.startswith("~/"):
            return self.home_dir / text[2:]
        return Path(text)

    def contract(self, path: Path) -> str:
        """Inverse of :meth:`expand` for paths under the home directory."""
        try:
            rel = path.relative_to(self.home_dir)
        except ValueError:
            return str(path)
        return f"~/{rel.as_posix()}"

    def backup_suffix(self) -> str:
        return f".bak.{int(self.now.timestamp())}"


def home_from_env(environ: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if environ is None else environ
    override = env.get("GIT_ID_HOME")
    return Path(override) if override else Path.home()


def accounts_path(home_dir: Path, environ: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if environ is None else environ
    explicit = env.get("GIT_ID_CONFIG")
    if explicit:
        return Path(explicit)
    xdg = env.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else home_dir / ".config"
    return base / "git-id" / "accounts.toml"

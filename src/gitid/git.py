"""Git subprocess wrapper.

git-id treats git as a key-value store with two scopes (``local`` and
``global``) plus remote-URL lookup. An absent key reads as ``None``; any
other non-zero exit raises :class:`GitCommandError`.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional

from .errors import GitCommandError

log = logging.getLogger(__name__)

SCOPES = ("local", "global")


class GitClient:
    """Runs ``git`` in *repo_path* with ``HOME`` set to *home_dir*."""

    def __init__(self, repo_path: Optional[Path] = None, home_dir: Optional[Path] = None) -> None:
        self.repo_path = repo_path
        self.home_dir = home_dir

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _run(self, args: list[str], *, input: Optional[str] = None) -> subprocess.CompletedProcess:
        env = dict(os.environ)
        if self.home_dir is not None:
            env["HOME"] = str(self.home_dir)
        log.debug("git %s (cwd=%s)", " ".join(args), self.repo_path)
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.repo_path,
                env=env,
                input=input,
                capture_output=True,
                text=True,
                timeout=30,
            )
        except FileNotFoundError as exc:
            raise GitCommandError(args, 127, "git not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(args, -1, "timed out") from exc

    def _check(self, args: list[str], *, input: Optional[str] = None) -> str:
        result = self._run(args, input=input)
        if result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr)
        return result.stdout.strip()

    # ------------------------------------------------------------------
    # Repository
    # ------------------------------------------------------------------

    def toplevel(self) -> Optional[Path]:
        """Root of the repository containing ``repo_path``, if any."""
        try:
            result = self._run(["rev-parse", "--show-toplevel"])
        except GitCommandError:
            return None
        if result.returncode != 0 or not result.stdout.strip():
            return None
        return Path(result.stdout.strip())

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def get_config(self, key: str, scope: str) -> Optional[str]:
        _check_scope(scope)
        result = self._run(["config", f"--{scope}", "--get", key])
        if result.returncode == 1:
            return None
        if result.returncode != 0:
            raise GitCommandError(["config", f"--{scope}", "--get", key], result.returncode, result.stderr)
        return result.stdout.strip() or None

    def set_config(self, key: str, value: str, scope: str) -> None:
        _check_scope(scope)
        self._check(["config", f"--{scope}", key, value])

    # ------------------------------------------------------------------
    # Remotes
    # ------------------------------------------------------------------

    def list_remotes(self) -> list[str]:
        result = self._run(["remote"])
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def get_remote_url(self, remote: str) -> Optional[str]:
        result = self._run(["remote", "get-url", remote])
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def set_remote_url(self, remote: str, url: str) -> None:
        self._check(["remote", "set-url", remote, url])

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def credential_approve(self, host: str, username: str, token: str) -> None:
        """Hand a token to the configured git credential helper."""
        payload = (
            "protocol=https\n"
            f"host={host}\n"
            f"username={username}\n"
            f"password={token}\n\n"
        )
        self._check(["credential", "approve"], input=payload)


def _check_scope(scope: str) -> None:
    if scope not in SCOPES:
        raise ValueError(f"scope must be one of {SCOPES}, got {scope!r}")

"""Identity resolution: account + scope + remote mode -> mutation plan.

:func:`resolve` is a pure function of its arguments. Everything it needs from
the outside world (the repository's origin URL, whether key files exist) is
read up front into :class:`RepoState` or through the execution context.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .context import ExecutionContext
from .errors import NoOriginRemote, NoUsableCredential
from .git import GitClient
from .models import Account
from .plan import (
    CheckCredential,
    Effect,
    MutationPlan,
    SetGitConfig,
    SetRemoteUrl,
    StoreHttpsCredential,
    WriteSshStanza,
)
from .remotes import build_https_url, build_ssh_url, parse_remote_url

log = logging.getLogger(__name__)

MODES = ("auto", "ssh", "https")
ORIGIN = "origin"


@dataclass(frozen=True)
class RepoState:
    path: Optional[Path] = None
    origin_url: Optional[str] = None

    @classmethod
    def read(cls, git: GitClient, ctx: ExecutionContext) -> "RepoState":
        if ctx.current_repo_path is None:
            return cls()
        if ORIGIN not in git.list_remotes():
            return cls(ctx.current_repo_path, None)
        return cls(ctx.current_repo_path, git.get_remote_url(ORIGIN))


def has_credential(account: Account, mode: str, ctx: ExecutionContext) -> bool:
    if mode == "ssh":
        return bool(account.ssh_key_path) and ctx.expand(account.ssh_key_path).is_file()
    return bool(account.https_token)


def resolve_mode(account: Account, mode: str, ctx: ExecutionContext) -> str:
    """Turn ``auto`` into ``ssh`` or ``https``; explicit modes pass through."""
    if mode not in MODES:
        raise ValueError(f"mode must be one of {MODES}, got {mode!r}")
    if mode != "auto":
        return mode
    if has_credential(account, "ssh", ctx):
        return "ssh"
    if has_credential(account, "https", ctx):
        return "https"
    raise NoUsableCredential(
        f"Account '{account.id}' has neither an SSH key on disk nor an HTTPS token. "
        f"Run: git-id ssh gen {account.id}"
    )


def resolve(
    account: Account,
    scope: str,
    mode: str,
    repo: RepoState,
    ctx: ExecutionContext,
) -> MutationPlan:
    effective = resolve_mode(account, mode, ctx)
    effects: list[Effect] = []
    notes: list[str] = []

    # A forced mode is checked when the plan runs, before anything is written.
    if mode != "auto":
        effects.append(CheckCredential(account, effective))

    effects.append(SetGitConfig("user.name", account.username, scope))
    effects.append(SetGitConfig("user.email", account.email, scope))

    # A global switch never touches the current repository's remotes.
    if scope == "global":
        if repo.origin_url is not None:
            notes.append(f"Remote '{ORIGIN}' left unchanged for a global switch.")
        return MutationPlan(account, scope, effective, tuple(effects), tuple(notes))

    if repo.origin_url is None:
        if repo.path is None:
            raise NoOriginRemote("Not inside a git repository. Use --global or cd into a repo.")
        raise NoOriginRemote(f"Repository {repo.path} has no 'origin' remote.")

    parsed = parse_remote_url(repo.origin_url)
    if parsed is None:
        notes.append(f"Unrecognised origin URL {repo.origin_url!r} - left unchanged.")
        return MutationPlan(account, scope, effective, tuple(effects), tuple(notes))

    if effective == "ssh":
        if account.ssh_key_path:
            effects.append(WriteSshStanza(account))
        new_url = build_ssh_url(account, parsed.owner, parsed.repo)
    else:
        if account.https_token:
            effects.append(StoreHttpsCredential(account))
        new_url = build_https_url(account.host, parsed.owner, parsed.repo)

    if new_url != repo.origin_url:
        effects.append(SetRemoteUrl(ORIGIN, new_url, previous=repo.origin_url))
    else:
        notes.append(f"Remote '{ORIGIN}' already points at {new_url}.")

    log.debug("resolved %s (%s, %s): %d effects", account.id, scope, effective, len(effects))
    return MutationPlan(account, scope, effective, tuple(effects), tuple(notes))

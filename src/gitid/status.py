"""Active-identity inference.

:func:`gather_evidence` snapshots git and ssh-agent state; :func:`match` maps
that snapshot back to at most one registered account. Both are read-only and
the result is advisory: nothing here feeds back into a mutation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from .context import ExecutionContext
from .git import GitClient
from .keys import AgentKey, SshAgent, key_fingerprint
from .models import Account, ssh_alias
from .remotes import parse_remote_url, reverse_alias
from .resolver import ORIGIN


@dataclass(frozen=True)
class Evidence:
    global_name: Optional[str] = None
    global_email: Optional[str] = None
    local_name: Optional[str] = None
    local_email: Optional[str] = None
    repo_path: Optional[str] = None
    origin_url: Optional[str] = None
    agent_keys: Optional[tuple[AgentKey, ...]] = None  # None: agent unreachable

    @property
    def active_email(self) -> Optional[str]:
        return self.local_email or self.global_email

    @property
    def active_scope(self) -> Optional[str]:
        if self.local_email:
            return "local"
        return "global" if self.global_email else None


@dataclass(frozen=True)
class Mismatch:
    """The origin alias names a different identity than the active email."""

    account: Account
    remote_host: str
    remote_username: str

    def describe(self) -> str:
        return (
            f"origin uses alias '{ssh_alias(self.remote_host, self.remote_username)}' "
            f"but the active email belongs to '{self.account.id}'"
        )


@dataclass(frozen=True)
class Matched:
    account: Account
    mismatch: Optional[Mismatch] = None


@dataclass(frozen=True)
class Ambiguous:
    candidates: tuple[Account, ...]


@dataclass(frozen=True)
class Unmatched:
    email: Optional[str] = None


MatchResult = Union[Matched, Ambiguous, Unmatched]


@dataclass(frozen=True)
class AnnotatedKey:
    key: AgentKey
    account: Optional[Account] = None


@dataclass
class StatusReport:
    evidence: Evidence
    result: MatchResult
    agent_keys: Optional[list[AnnotatedKey]] = field(default=None)


def gather_evidence(git: GitClient, agent: SshAgent, ctx: ExecutionContext) -> Evidence:
    local_name = local_email = origin_url = None
    if ctx.current_repo_path is not None:
        local_name = git.get_config("user.name", "local")
        local_email = git.get_config("user.email", "local")
        if ORIGIN in git.list_remotes():
            origin_url = git.get_remote_url(ORIGIN)
    keys = agent.list_keys()
    return Evidence(
        global_name=git.get_config("user.name", "global"),
        global_email=git.get_config("user.email", "global"),
        local_name=local_name,
        local_email=local_email,
        repo_path=str(ctx.current_repo_path) if ctx.current_repo_path else None,
        origin_url=origin_url,
        agent_keys=tuple(keys) if keys is not None else None,
    )


def match(evidence: Evidence, accounts: Iterable[Account]) -> MatchResult:
    accounts = list(accounts)
    email = evidence.active_email
    if not email:
        return Unmatched()

    candidates = [a for a in accounts if a.email.lower() == email.lower()]
    if not candidates:
        return Unmatched(email)

    remote_pair = _remote_identity(evidence.origin_url, accounts)

    if len(candidates) > 1:
        narrowed = [a for a in candidates if remote_pair and a.key == (remote_pair[1], remote_pair[0])]
        if len(narrowed) == 1:
            return Matched(narrowed[0])
        return Ambiguous(tuple(candidates))

    account = candidates[0]
    if remote_pair is not None and remote_pair != (account.host, account.username):
        return Matched(account, Mismatch(account, remote_pair[0], remote_pair[1]))
    return Matched(account)


def annotate_agent_keys(
    keys: Iterable[AgentKey], accounts: Iterable[Account], ctx: ExecutionContext
) -> list[AnnotatedKey]:
    """Pair agent keys with the account whose public key has that fingerprint."""
    by_fingerprint: dict[str, Account] = {}
    for acc in accounts:
        if not acc.ssh_key_path:
            continue
        fp = key_fingerprint(ctx.expand(acc.ssh_key_path))
        if fp:
            by_fingerprint.setdefault(fp, acc)
    return [AnnotatedKey(k, by_fingerprint.get(k.fingerprint)) for k in keys]


def build_report(
    git: GitClient, agent: SshAgent, accounts: list[Account], ctx: ExecutionContext
) -> StatusReport:
    evidence = gather_evidence(git, agent, ctx)
    annotated = None
    if evidence.agent_keys is not None:
        annotated = annotate_agent_keys(evidence.agent_keys, accounts, ctx)
    return StatusReport(evidence, match(evidence, accounts), annotated)


def _remote_identity(origin_url: Optional[str], accounts: list[Account]) -> Optional[tuple[str, str]]:
    if not origin_url:
        return None
    parsed = parse_remote_url(origin_url)
    if parsed is None or parsed.scheme != "ssh":
        return None
    return reverse_alias(parsed.raw_host, accounts)

"""Executes or previews a :class:`~gitid.plan.MutationPlan`.

Live runs are not transactional: effects run in order and a failure leaves
the earlier ones applied. Every effect is safe to re-apply, so re-running the
same plan after fixing the cause is the recovery path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .context import ExecutionContext
from .errors import ApplyError, GitIdError, NoUsableCredential
from .git import GitClient
from .plan import (
    CheckCredential,
    Effect,
    MutationPlan,
    SetGitConfig,
    SetRemoteUrl,
    StoreHttpsCredential,
    WriteSshStanza,
)
from .resolver import has_credential
from .sshconfig import SshConfigFile

log = logging.getLogger(__name__)


@dataclass
class ApplyReport:
    dry_run: bool
    applied: list[Effect] = field(default_factory=list)
    lines: list[str] = field(default_factory=list)


class Applier:
    def __init__(self, git: GitClient, ctx: ExecutionContext, *, dry_run: bool = False) -> None:
        self.git = git
        self.ctx = ctx
        self.dry_run = dry_run

    def apply(self, plan: MutationPlan) -> ApplyReport:
        report = ApplyReport(dry_run=self.dry_run)
        if self.dry_run:
            report.lines = [f"would execute: {effect.describe()}" for effect in plan]
            return report

        effects = list(plan)
        for i, effect in enumerate(effects):
            try:
                self._apply_one(effect)
            except NoUsableCredential:
                # Only CheckCredential raises this, and it precedes any write.
                raise
            except (GitIdError, OSError) as exc:
                raise ApplyError(effect, list(report.applied), effects[i + 1 :], exc) from exc
            report.applied.append(effect)
            report.lines.append(effect.describe())
        return report

    def _apply_one(self, effect: Effect) -> None:
        log.debug("applying: %s", effect.describe())
        if isinstance(effect, CheckCredential):
            if not has_credential(effect.account, effect.mode, self.ctx):
                what = "SSH key" if effect.mode == "ssh" else "HTTPS token"
                raise NoUsableCredential(
                    f"--{effect.mode} requested but account '{effect.account.id}' has no usable {what}."
                )
        elif isinstance(effect, SetGitConfig):
            self.git.set_config(effect.key, effect.value, effect.scope)
        elif isinstance(effect, WriteSshStanza):
            SshConfigFile(self.ctx).upsert(effect.account)
        elif isinstance(effect, StoreHttpsCredential):
            acc = effect.account
            self.git.credential_approve(acc.host, acc.username, acc.https_token or "")
        elif isinstance(effect, SetRemoteUrl):
            self.git.set_remote_url(effect.remote, effect.url)
        else:
            raise TypeError(f"unknown effect {effect!r}")

"""Tests for gitid.applier."""

import pytest

from gitid.applier import Applier
from gitid.errors import ApplyError, NoUsableCredential
from gitid.resolver import RepoState, resolve
from gitid.sshconfig import SshConfigFile, render_stanza

ORIGIN = "git@github.com:alice/my-repo.git"


def _plan(account, ctx, fake_git, scope="local", mode="auto"):
    return resolve(account, scope, mode, RepoState.read(fake_git, ctx), ctx)


def test_live_apply_switches_identity(ctx, fake_git, alice):
    fake_git.remotes["origin"] = ORIGIN
    report = Applier(fake_git, ctx).apply(_plan(alice, ctx, fake_git))

    assert fake_git.config["local"] == {"user.name": "alice", "user.email": "alice@example.com"}
    assert fake_git.remotes["origin"] == "git@github.com-alice:alice/my-repo.git"
    assert SshConfigFile(ctx).load().get(alice.alias) == render_stanza(alice)
    assert len(report.applied) == 4


def test_dry_run_changes_nothing(ctx, fake_git, alice):
    fake_git.remotes["origin"] = ORIGIN
    plan = _plan(alice, ctx, fake_git)
    report = Applier(fake_git, ctx, dry_run=True).apply(plan)

    assert fake_git.calls == []
    assert fake_git.remotes["origin"] == ORIGIN
    assert not ctx.ssh_config_path.exists()
    assert report.applied == []
    assert report.lines == [f"would execute: {e.describe()}" for e in plan]


def test_dry_run_previews_the_live_plan(ctx, fake_git, alice):
    fake_git.remotes["origin"] = ORIGIN
    previewed = _plan(alice, ctx, fake_git)
    Applier(fake_git, ctx, dry_run=True).apply(previewed)
    live = _plan(alice, ctx, fake_git)
    assert live == previewed
    report = Applier(fake_git, ctx).apply(live)
    assert report.applied == list(previewed)


def test_forced_https_without_token_leaves_config_untouched(ctx, fake_git, bob):
    fake_git.remotes["origin"] = ORIGIN
    plan = _plan(bob, ctx, fake_git, mode="https")
    with pytest.raises(NoUsableCredential):
        Applier(fake_git, ctx).apply(plan)
    assert fake_git.calls == []
    assert fake_git.remotes["origin"] == ORIGIN


def test_forced_mode_dry_run_still_succeeds(ctx, fake_git, bob):
    fake_git.remotes["origin"] = ORIGIN
    report = Applier(fake_git, ctx, dry_run=True).apply(_plan(bob, ctx, fake_git, mode="ssh"))
    assert report.lines[0].startswith("would execute: check SSH key")


def test_partial_failure_reports_applied_and_skipped(ctx, fake_git, alice):
    fake_git.remotes["origin"] = ORIGIN
    fake_git.fail_on = "user.email"
    plan = _plan(alice, ctx, fake_git)

    with pytest.raises(ApplyError) as info:
        Applier(fake_git, ctx).apply(plan)

    exc = info.value
    assert exc.failed == plan.effects[1]
    assert exc.applied == [plan.effects[0]]
    assert exc.skipped == list(plan.effects[2:])
    # Non-transactional: the first effect stays applied.
    assert fake_git.config["local"] == {"user.name": "alice"}


def test_reapplying_after_failure_completes(ctx, fake_git, alice):
    fake_git.remotes["origin"] = ORIGIN
    fake_git.fail_on = "remote"
    plan = _plan(alice, ctx, fake_git)
    with pytest.raises(ApplyError):
        Applier(fake_git, ctx).apply(plan)

    fake_git.fail_on = None
    Applier(fake_git, ctx).apply(plan)
    assert fake_git.remotes["origin"] == "git@github.com-alice:alice/my-repo.git"


def test_https_token_goes_to_credential_helper(ctx, fake_git):
    from gitid.models import Account

    acc = Account(username="carol", email="carol@example.com", https_token="ghp_secret")
    fake_git.remotes["origin"] = ORIGIN
    Applier(fake_git, ctx).apply(_plan(acc, ctx, fake_git))
    assert fake_git.credentials == [("github.com", "carol", "ghp_secret")]
    assert "ghp_secret" not in fake_git.remotes["origin"]

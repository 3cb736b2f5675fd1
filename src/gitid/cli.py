"""git-id — manage multiple git hosting identities on one machine.

Commands
--------
  add       Register an account
  list      List accounts with key/token status
  use       Switch the repository (or global) identity to an account
  status    Show the active identity and loaded SSH keys
  remove    Delete an account (and optionally its key files)
  ssh gen   Generate an ed25519 key for an account
  ssh pick  Use an existing ~/.ssh/*.pub key for an account
  ssh config  Rewrite the git-id stanzas in ~/.ssh/config
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator, Optional

import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from . import __version__
from .applier import Applier
from .context import ExecutionContext, accounts_path, home_from_env
from .errors import ApplyError, GitIdError
from .git import GitClient
from .keys import (
    SshAgent,
    default_key_path,
    ensure_ssh_dir,
    generate_key,
    list_public_keys,
    pick_key,
    public_path,
)
from .models import DEFAULT_HOST, Account
from .resolver import RepoState, resolve
from .sshconfig import SshConfigFile, render_stanza
from .status import Ambiguous, Matched, StatusReport, build_report
from .store import AccountStore, ensure_addable, find_account

# ---------------------------------------------------------------------------
# App & consoles
# ---------------------------------------------------------------------------

_THEME = Theme(
    {
        "success": "bold green",
        "warning": "bold yellow",
        "danger": "bold red",
        "muted": "dim",
        "label": "cyan",
        "highlight": "bold white",
    }
)

console = Console(theme=_THEME)
err = Console(stderr=True, theme=_THEME)

app = typer.Typer(
    name="git-id",
    help="[bold cyan]git-id[/bold cyan] — switch between git hosting identities.",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
    rich_markup_mode="rich",
    add_completion=True,
)
ssh_app = typer.Typer(
    name="ssh",
    help="SSH key management.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(ssh_app, name="ssh")

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _context() -> ExecutionContext:
    home = home_from_env()
    repo = GitClient(Path.cwd(), home).toplevel()
    return ExecutionContext(home_dir=home, current_repo_path=repo)


def _store(ctx: ExecutionContext) -> AccountStore:
    return AccountStore(accounts_path(ctx.home_dir), backup_suffix=ctx.backup_suffix())


def _git(ctx: ExecutionContext) -> GitClient:
    return GitClient(ctx.current_repo_path, ctx.home_dir)


def _agent() -> SshAgent:
    return SshAgent()


@contextmanager
def _reported() -> Iterator[None]:
    """Turn :class:`GitIdError` into a red message and its exit code."""
    try:
        yield
    except ApplyError as exc:
        err.print(f"[danger]{escape(str(exc))}[/danger]")
        for effect in exc.applied:
            err.print(f"  [success]applied[/success]  {escape(effect.describe())}")
        err.print(f"  [danger]failed[/danger]   {escape(exc.failed.describe())}")
        for effect in exc.skipped:
            err.print(f"  [muted]skipped  {escape(effect.describe())}[/muted]")
        err.print("[muted]Applied changes were kept; re-run the same command once fixed.[/muted]")
        raise typer.Exit(exc.exit_code) from exc
    except GitIdError as exc:
        err.print(f"[danger]{escape(str(exc))}[/danger]")
        raise typer.Exit(exc.exit_code) from exc


def _offer_to_agent(private_key: Path) -> None:
    ok, message = _agent().add(private_key)
    if ok:
        console.print(f"[success]{escape(message)}[/success]")
    else:
        err.print(f"[warning]![/warning] {escape(message)}")


def _show_public_key(private_key: Path) -> None:
    pub = public_path(private_key)
    if not pub.exists():
        return
    console.print(
        Panel(
            pub.read_text(encoding="utf-8").strip(),
            title="[bold]Public key — add it to your account's SSH keys[/bold]",
            border_style="cyan",
            expand=False,
        )
    )


def _presence(ok: bool) -> str:
    return "[green]yes[/green]" if ok else "[red]no[/red]"


@app.callback()
def _main(
    verbose: Annotated[bool, typer.Option("--verbose", "-V", help="Log git and file operations.")] = False,
) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err, show_path=False)],
        )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def add(
    username: Annotated[Optional[str], typer.Option("--username", "-u", help="Hosting username.")] = None,
    email: Annotated[Optional[str], typer.Option("--email", "-e", help="Commit email.")] = None,
    host: Annotated[str, typer.Option("--host", help="Hosting provider hostname.")] = DEFAULT_HOST,
    ssh_key: Annotated[
        Optional[str], typer.Option("--ssh-key", help="Path to an SSH private key (may not exist yet).")
    ] = None,
    token: Annotated[Optional[str], typer.Option("--token", help="HTTPS personal access token.")] = None,
    generate: Annotated[bool, typer.Option("--generate-key", "-g", help="Generate an ed25519 key.")] = False,
) -> None:
    """Register a new account."""
    ctx = _context()
    store = _store(ctx)

    if username is None:
        username = Prompt.ask("  Username", console=console)
    if email is None:
        email = Prompt.ask("  Commit email", console=console)

    try:
        account = Account(username=username, email=email, host=host, ssh_key_path=ssh_key, https_token=token)
    except ValidationError as exc:
        for problem in exc.errors():
            err.print(f"[danger]{escape(problem['msg'])}[/danger]")
        raise typer.Exit(2) from exc

    with _reported():
        ensure_addable(store.load(), account)
        if generate:
            key = generate_key(default_key_path(ctx, account.username), account.email)
            account.ssh_key_path = ctx.contract(key)
        store.add(account)
        if account.ssh_key_path:
            SshConfigFile(ctx).regenerate(store.load())

    console.print(f"\n[success]Account '[bold]{account.id}[/bold]' added.[/success]")
    if generate:
        key = ctx.expand(account.ssh_key_path)
        _offer_to_agent(key)
        _show_public_key(key)
    console.print(
        f"[muted]Next: git-id use {account.username}  (inside a repo)  "
        f"or  git-id use {account.username} --global[/muted]"
    )


@app.command("list")
def list_accounts() -> None:
    """List all accounts in a formatted table."""
    ctx = _context()
    store = _store(ctx)
    with _reported():
        accounts = store.load()

    if not accounts:
        console.print("[muted]No accounts configured yet. Run: git-id add[/muted]")
        console.print(f"[muted]Config file: {store.path}[/muted]")
        return

    git = _git(ctx)
    with _reported():
        local_email = git.get_config("user.email", "local") if ctx.current_repo_path else None
        global_email = git.get_config("user.email", "global")

    table = Table(
        title=f"Accounts ({len(accounts)} total)",
        box=box.ROUNDED,
        header_style="bold cyan",
        title_style="bold",
    )
    table.add_column("#", style="muted", justify="right", no_wrap=True)
    table.add_column("Account", style="bold white", min_width=16)
    table.add_column("Email", style="dim")
    table.add_column("SSH key", style="blue", max_width=40)
    table.add_column("Priv", justify="center")
    table.add_column("Pub", justify="center")
    table.add_column("Token", justify="center")
    table.add_column("Alias", style="muted")
    table.add_column("Active")

    for i, acc in enumerate(accounts, 1):
        key = ctx.expand(acc.ssh_key_path) if acc.ssh_key_path else None
        tags = []
        if local_email and acc.email == local_email:
            tags.append("[green]local[/green]")
        if global_email and acc.email == global_email:
            tags.append("[yellow]global[/yellow]")
        table.add_row(
            str(i),
            escape(acc.id),
            escape(acc.email),
            escape(acc.ssh_key_path) if acc.ssh_key_path else "[muted](none)[/muted]",
            _presence(bool(key and key.exists())),
            _presence(bool(key and public_path(key).exists())),
            "[green]yes[/green]" if acc.https_token else "[muted]-[/muted]",
            acc.alias,
            " ".join(tags),
        )
    console.print(table)


@app.command()
def use(
    account: Annotated[str, typer.Argument(help="Username or username@host.")],
    global_: Annotated[bool, typer.Option("--global", help="Set the global identity instead of the repo's.")] = False,
    ssh: Annotated[bool, typer.Option("--ssh", help="Rewrite origin to the account's SSH alias.")] = False,
    https: Annotated[bool, typer.Option("--https", help="Rewrite origin to an HTTPS URL.")] = False,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Print the changes without making them.")] = False,
) -> None:
    """Switch the identity of the current repository (or globally)."""
    if ssh and https:
        err.print("[danger]Cannot use --ssh and --https together.[/danger]")
        raise typer.Exit(2)

    ctx = _context()
    git = _git(ctx)
    mode = "ssh" if ssh else "https" if https else "auto"
    scope = "global" if global_ else "local"

    with _reported():
        acc = find_account(_store(ctx).load(), account)
        plan = resolve(acc, scope, mode, RepoState.read(git, ctx), ctx)
        for note in plan.notes:
            console.print(f"[muted]{escape(note)}[/muted]")
        report = Applier(git, ctx, dry_run=dry_run).apply(plan)

    prefix = "[warning]\\[dry-run][/warning] " if dry_run else "[success]OK[/success] "
    for line in report.lines:
        console.print(prefix + escape(line))
    if not dry_run:
        console.print(
            f"[success]Git identity ({scope}):[/success] [bold]{escape(acc.username)}[/bold] "
            f"<{escape(acc.email)}>  [muted]via {plan.mode}[/muted]"
        )


@app.command()
def status() -> None:
    """Show the active git identity and the keys loaded in ssh-agent."""
    ctx = _context()
    with _reported():
        accounts = _store(ctx).load()
        report = build_report(_git(ctx), _agent(), accounts, ctx)
    _render_status(report)


def _render_status(report: StatusReport) -> None:
    ev = report.evidence
    body = Text()

    def row(label: str, value: Optional[str], missing: str) -> None:
        body.append(f"  {label:<8}", style="label")
        if value:
            body.append(value + "\n", style="highlight")
        else:
            body.append(missing + "\n", style="muted")

    body.append("Global identity\n", style="bold")
    row("name", ev.global_name, "(not set)")
    row("email", ev.global_email, "(not set)")
    body.append("\n")
    if ev.repo_path:
        body.append("Repo identity", style="bold")
        body.append(f"  ({Path(ev.repo_path).name})\n", style="muted")
        row("name", ev.local_name, "(inherits global)")
        row("email", ev.local_email, "(inherits global)")
        row("origin", ev.origin_url, "(no origin remote)")
    else:
        body.append("(not in a git repository)\n", style="muted")
    console.print(Panel(body, title="[bold cyan]git-id status[/bold cyan]", border_style="cyan", expand=False))

    console.print("[bold]ssh-agent keys[/bold]")
    if not report.agent_keys:
        console.print("  [muted](no keys loaded, or agent not running)[/muted]")
    else:
        for item in report.agent_keys:
            owner = f"  [green]{escape(item.account.id)}[/green]" if item.account else ""
            console.print(f"  {item.key.fingerprint}  [muted]{escape(item.key.comment)}[/muted]{owner}")

    result = report.result
    if isinstance(result, Matched):
        acc = result.account
        console.print(
            f"\n[bold]Matched account:[/bold] [success]{escape(acc.username)}[/success]  "
            f"[muted]{escape(acc.host)} ({ev.active_scope})[/muted]"
        )
        if result.mismatch is not None:
            err.print(f"[warning]Mismatch:[/warning] {escape(result.mismatch.describe())}")
    elif isinstance(result, Ambiguous):
        console.print("\n[warning]Active email matches several accounts:[/warning]")
        for acc in result.candidates:
            console.print(f"  • {escape(acc.id)}")
    elif ev.active_email:
        console.print("\n[muted]Active email does not match any configured account.[/muted]")


@app.command()
def remove(
    account: Annotated[str, typer.Argument(help="Username or username@host.")],
    delete_keys: Annotated[bool, typer.Option("--delete-keys", help="Also delete the SSH key files.")] = False,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Print the changes without making them.")] = False,
) -> None:
    """Remove an account and its ~/.ssh/config stanza."""
    ctx = _context()
    store = _store(ctx)
    with _reported():
        acc = find_account(store.load(), account)

    key = ctx.expand(acc.ssh_key_path) if acc.ssh_key_path else None
    key_files = [p for p in (key, key and public_path(key)) if p is not None and p.exists()]

    if dry_run:
        console.print(f"[warning]\\[dry-run][/warning] would remove account {escape(acc.id)}")
        console.print(f"[warning]\\[dry-run][/warning] would remove ~/.ssh/config stanza 'Host {escape(acc.alias)}'")
        if delete_keys:
            for path in key_files:
                console.print(f"[warning]\\[dry-run][/warning] would delete {escape(str(path))}")
        return

    if not yes:
        console.print(f"\n  [warning]About to remove account:[/warning] [bold]{escape(acc.id)}[/bold]")
        console.print(f"    email: {escape(acc.email)}")
        if acc.ssh_key_path:
            console.print(f"    key  : {escape(acc.ssh_key_path)}")
        if not Confirm.ask("  Confirm removal?", default=False, console=console):
            raise typer.Exit(0)

    with _reported():
        store.remove(acc.username, acc.host)
        SshConfigFile(ctx).regenerate(store.load())

    if delete_keys:
        for path in key_files:
            try:
                path.unlink()
            except OSError as exc:
                err.print(f"[warning]Kept {escape(str(path))}:[/warning] {escape(exc.strerror or str(exc))}")
                continue
            console.print(f"[success]Deleted[/success] {escape(str(path))}")
    elif key_files:
        console.print("[muted]SSH key files kept (use --delete-keys to also remove them):[/muted]")
        for path in key_files:
            console.print(f"    [muted]{escape(str(path))}[/muted]")

    console.print(f"[danger]Account '[bold]{escape(acc.id)}[/bold]' removed.[/danger]")


# ---------------------------------------------------------------------------
# ssh sub-commands
# ---------------------------------------------------------------------------


@ssh_app.command("gen")
def ssh_gen(
    account: Annotated[str, typer.Argument(help="Username or username@host.")],
) -> None:
    """Generate a new ed25519 key for an account."""
    ctx = _context()
    store = _store(ctx)
    with _reported():
        acc = find_account(store.load(), account)
        ensure_ssh_dir(ctx)
        key = generate_key(default_key_path(ctx, acc.username), acc.email)
        acc.ssh_key_path = ctx.contract(key)
        store.update(acc)
        SshConfigFile(ctx).regenerate(store.load())

    console.print(f"[success]Generated[/success] {escape(str(key))}")
    _offer_to_agent(key)
    _show_public_key(key)


@ssh_app.command("pick")
def ssh_pick(
    account: Annotated[str, typer.Argument(help="Username or username@host.")],
    key: Annotated[Optional[Path], typer.Option("--key", "-k", help="Public key file to use.")] = None,
) -> None:
    """Use an existing ~/.ssh/*.pub key for an account."""
    ctx = _context()
    store = _store(ctx)
    with _reported():
        acc = find_account(store.load(), account)

    if key is None:
        candidates = list_public_keys(ctx)
        if not candidates:
            err.print("[danger]No .pub files found in ~/.ssh/[/danger]")
            raise typer.Exit(1)
        console.print(f"\n[bold]Pick SSH key for '{escape(acc.id)}'[/bold]")
        for i, path in enumerate(candidates, 1):
            console.print(f"  [muted]{i:>3}.[/muted]  {escape(str(path))}")
        choice = IntPrompt.ask(
            "  Select public key",
            choices=[str(i) for i in range(1, len(candidates) + 1)],
            default=1,
            console=console,
        )
        key = candidates[choice - 1]

    with _reported():
        private = pick_key(ctx.expand(key), ctx.ssh_dir)
        acc.ssh_key_path = ctx.contract(private)
        store.update(acc)
        SshConfigFile(ctx).regenerate(store.load())

    _offer_to_agent(private)
    console.print(f"[success]SSH key for '{escape(acc.id)}' →[/success] {escape(acc.ssh_key_path)}")


@ssh_app.command("config")
def ssh_config(
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Print the new file instead of writing it.")] = False,
) -> None:
    """Rewrite the git-id stanzas in ~/.ssh/config for all accounts."""
    ctx = _context()
    cfg = SshConfigFile(ctx)
    with _reported():
        accounts = _store(ctx).load()

    if not accounts:
        console.print("[muted]No accounts configured. Run: git-id add[/muted]")

    if dry_run:
        console.print(f"[warning]\\[dry-run][/warning] would write {escape(str(cfg.path))}:")
        console.print(escape(cfg.preview(accounts)), end="", highlight=False)
        return

    with _reported():
        changed = cfg.regenerate(accounts)

    if changed:
        console.print(f"[success]Updated[/success] {escape(ctx.contract(cfg.path))}")
    else:
        console.print(f"[muted]{escape(ctx.contract(cfg.path))} already up to date.[/muted]")
    for acc in accounts:
        if acc.ssh_key_path:
            console.print(escape(render_stanza(acc)), highlight=False)
        else:
            console.print(f"[muted]{escape(acc.id)}: no SSH key (run: git-id ssh gen {escape(acc.id)})[/muted]")


@app.command()
def version() -> None:
    """Print the git-id version."""
    console.print(f"git-id {__version__}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    app()


if __name__ == "__main__":
    main()

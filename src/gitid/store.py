"""Accounts file I/O.

File format
-----------
A TOML document with one ``[[accounts]]`` table per account::

    [[accounts]]
    username = "alice"
    email = "alice@example.com"
    host = "github.com"
    ssh_key = "~/.ssh/id_ed25519_alice"
    https_token = ""

Absent optional values are written as empty strings. The file is safe to edit
by hand; every mutating call re-reads it and re-serialises the whole document.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tomllib
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError

from .errors import AmbiguousAccount, Conflict, CorruptStore, NotFound
from .models import DEFAULT_HOST, Account, account_id

log = logging.getLogger(__name__)

# TOML basic strings may not hold raw control characters.
_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_HEADER = (
    "# git-id accounts - managed by git-id (safe to edit manually)\n"
    "# Add a new [[accounts]] section to register another identity.\n"
)
_FIELDS = (
    ("username", "username"),
    ("email", "email"),
    ("host", "host"),
    ("ssh_key", "ssh_key_path"),
    ("https_token", "https_token"),
)


class AccountStore:
    """Reads and writes the accounts file."""

    def __init__(self, path: Path, backup_suffix: Optional[str] = None) -> None:
        self.path = path
        self.backup_suffix = backup_suffix

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> list[Account]:
        """Parse the accounts file; a missing file is an empty registry."""
        if not self.path.exists():
            return []
        try:
            data = tomllib.loads(self.path.read_text(encoding="utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
            raise CorruptStore(f"Failed to parse {self.path}: {exc}") from exc
        return _parse(data, self.path)

    def save(self, accounts: Iterable[Account]) -> None:
        """Serialise *accounts* and atomically replace the file."""
        accounts = list(accounts)
        _check_unique(accounts, CorruptStore)
        write_atomic(self.path, dumps(accounts), backup_suffix=self.backup_suffix)

    def add(self, account: Account) -> None:
        accounts = self.load()
        ensure_addable(accounts, account)
        accounts.append(account)
        self.save(accounts)

    def update(self, account: Account) -> None:
        """Replace the stored record that has the same ``(username, host)``."""
        accounts = self.load()
        for i, existing in enumerate(accounts):
            if existing.key == account.key:
                accounts[i] = account
                self.save(accounts)
                return
        raise NotFound(f"Account '{account.id}' not found.")

    def remove(self, username: str, host: str = DEFAULT_HOST) -> Account:
        """Delete one record and return it.

        Key files are never touched here; the caller decides what to do with
        ``ssh_key_path`` of the returned account.
        """
        accounts = self.load()
        kept = [a for a in accounts if a.key != (username, host)]
        if len(kept) == len(accounts):
            raise NotFound(f"Account '{account_id(username, host)}' not found.")
        removed = next(a for a in accounts if a.key == (username, host))
        self.save(kept)
        return removed

    def find(self, key: str) -> Account:
        return find_account(self.load(), key)


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def ensure_addable(accounts: Iterable[Account], account: Account) -> None:
    """Raise :class:`Conflict` if *account* clashes by key or SSH alias."""
    _check_unique([*accounts, account], Conflict)



def find_account(accounts: Iterable[Account], key: str) -> Account:
    """Resolve ``username`` or ``username@host`` to exactly one account."""
    accounts = list(accounts)
    if "@" in key:
        username, host = key.split("@", 1)
        for acc in accounts:
            if acc.key == (username, host):
                return acc
        raise NotFound(f"Account '{key}' not found. Run: git-id list")

    matches = [a for a in accounts if a.username == key]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise NotFound(f"Account '{key}' not found. Run: git-id list")
    hints = "  or  ".join(f"'{a.id}'" for a in matches)
    raise AmbiguousAccount(
        f"Multiple accounts with username '{key}'. Specify host to disambiguate: {hints}"
    )


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------


def dumps(accounts: Iterable[Account]) -> str:
    lines = [_HEADER, "\n"]
    for acc in accounts:
        lines.append("[[accounts]]\n")
        for toml_key, attr in _FIELDS:
            value = getattr(acc, attr) or ""
            lines.append(f"{toml_key} = {_quote(value)}\n")
        lines.append("\n")
    return "".join(lines)


def _quote(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    escaped = _CONTROL.sub(lambda m: f"\\u{ord(m.group()):04x}", escaped)
    return f'"{escaped}"'


def _parse(data: dict, path: Path) -> list[Account]:
    raw = data.get("accounts", [])
    if not isinstance(raw, list):
        raise CorruptStore(f"{path}: 'accounts' must be an array of tables.")

    accounts = []
    for i, entry in enumerate(raw, 1):
        if not isinstance(entry, dict):
            raise CorruptStore(f"{path}: accounts entry #{i} is not a table.")
        fields = {attr: entry.get(toml_key) for toml_key, attr in _FIELDS}
        if fields["host"] is None:
            fields["host"] = DEFAULT_HOST
        try:
            accounts.append(Account(**fields))
        except ValidationError as exc:
            raise CorruptStore(f"{path}: accounts entry #{i} is invalid: {exc}") from exc

    _check_unique(accounts, CorruptStore)
    return accounts


def _check_unique(accounts: list[Account], error: type[Exception]) -> None:
    seen_keys: set[tuple[str, str]] = set()
    seen_aliases: dict[str, Account] = {}
    for acc in accounts:
        if acc.key in seen_keys:
            raise error(f"Account '{acc.id}' already exists.")
        other = seen_aliases.get(acc.alias)
        if other is not None:
            raise error(
                f"Accounts '{other.id}' and '{acc.id}' share the SSH alias '{acc.alias}'."
            )
        seen_keys.add(acc.key)
        seen_aliases[acc.alias] = acc


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def write_atomic(
    path: Path,
    text: str,
    *,
    mode: int = 0o600,
    backup_suffix: Optional[str] = None,
) -> None:
    """Write *text* to *path* through a temp file in the same directory.

    With *backup_suffix*, an existing file is first copied to
    ``<name><backup_suffix>``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    if backup_suffix and path.exists():
        backup = path.with_name(path.name + backup_suffix)
        shutil.copy2(path, backup)
        log.debug("backed up %s -> %s", path, backup)

    tmp = path.with_name(path.name + ".tmp")
    tmp.unlink(missing_ok=True)
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(text)
    os.chmod(tmp, mode)
    tmp.replace(path)
    log.debug("wrote %s", path)

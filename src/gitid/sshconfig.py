"""``~/.ssh/config`` editing.

The file is parsed into a sequence of foreign blocks (text git-id does not
own, kept byte-for-byte) and owned blocks, one per SSH alias, delimited by::

    # >>> git-id: github.com-alice >>>
    ...
    # <<< git-id: github.com-alice <<<

Owned blocks are replaced, inserted or deleted by alias; everything else is
re-serialised untouched and in its original order.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

from .context import ExecutionContext
from .keys import SSH_DIR_MODE
from .models import Account
from .store import write_atomic

log = logging.getLogger(__name__)

BEGIN = "# >>> git-id: {alias} >>>"
END = "# <<< git-id: {alias} <<<"

_BEGIN_RE = re.compile(r"^# >>> git-id: (?P<alias>\S+) >>>$")


@dataclass
class ForeignBlock:
    text: str


@dataclass
class OwnedBlock:
    alias: str
    text: str


Block = Union[ForeignBlock, OwnedBlock]


def render_stanza(account: Account) -> str:
    """The owned block for *account*, markers included."""
    alias = account.alias
    return (
        f"{BEGIN.format(alias=alias)}\n"
        f"Host {alias}\n"
        f"    HostName {account.host}\n"
        f"    User git\n"
        f"    IdentityFile {_ssh_value(account.ssh_key_path)}\n"
        f"    IdentitiesOnly yes\n"
        f"{END.format(alias=alias)}\n"
    )


def _ssh_value(value: Optional[str]) -> str:
    if value and any(ch.isspace() for ch in value):
        return f'"{value}"'
    return value or ""


class SshConfigDocument:
    """An editable, parsed ``~/.ssh/config``."""

    def __init__(self, blocks: Optional[list[Block]] = None) -> None:
        self.blocks: list[Block] = blocks or []

    # ------------------------------------------------------------------
    # Parsing / rendering
    # ------------------------------------------------------------------

    @classmethod
    def parse(cls, text: str) -> "SshConfigDocument":
        lines = text.splitlines(keepends=True)
        blocks: list[Block] = []
        foreign: list[str] = []
        i = 0
        while i < len(lines):
            match = _BEGIN_RE.match(lines[i].rstrip("\r\n"))
            end_at = _find_end(lines, i, match.group("alias")) if match else None
            if end_at is None:
                foreign.append(lines[i])
                i += 1
                continue
            if foreign:
                blocks.append(ForeignBlock("".join(foreign)))
                foreign = []
            blocks.append(OwnedBlock(match.group("alias"), "".join(lines[i : end_at + 1])))
            i = end_at + 1
        if foreign:
            blocks.append(ForeignBlock("".join(foreign)))
        return cls(blocks)

    def render(self) -> str:
        return "".join(block.text for block in self.blocks)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def aliases(self) -> list[str]:
        return [b.alias for b in self.blocks if isinstance(b, OwnedBlock)]

    def get(self, alias: str) -> Optional[str]:
        for block in self.blocks:
            if isinstance(block, OwnedBlock) and block.alias == alias:
                return block.text
        return None

    def upsert(self, alias: str, text: str) -> None:
        """Replace the block for *alias*, or append it at the end."""
        for block in self.blocks:
            if isinstance(block, OwnedBlock) and block.alias == alias:
                block.text = text
                return
        current = self.render()
        if current:
            # Separate from what precedes with exactly one blank line.
            if not current.endswith("\n"):
                self.blocks.append(ForeignBlock("\n\n"))
            elif not current.endswith("\n\n"):
                self.blocks.append(ForeignBlock("\n"))
        self.blocks.append(OwnedBlock(alias, text))

    def remove(self, alias: str) -> bool:
        before = len(self.blocks)
        self.blocks = [
            b for b in self.blocks if not (isinstance(b, OwnedBlock) and b.alias == alias)
        ]
        return len(self.blocks) != before

    def sync(self, accounts: Iterable[Account]) -> None:
        """Make the owned blocks exactly the stanzas of *accounts* with a key."""
        wanted = {a.alias: render_stanza(a) for a in accounts if a.ssh_key_path}
        for alias in self.aliases():
            if alias not in wanted:
                self.remove(alias)
        for alias, text in wanted.items():
            self.upsert(alias, text)


def _find_end(lines: list[str], start: int, alias: str) -> Optional[int]:
    end = END.format(alias=alias)
    for j in range(start + 1, len(lines)):
        stripped = lines[j].rstrip("\r\n")
        if stripped == end:
            return j
        if _BEGIN_RE.match(stripped):
            return None
    return None


# ---------------------------------------------------------------------------
# File access
# ---------------------------------------------------------------------------


class SshConfigFile:
    """Load/save ``~/.ssh/config`` for a given context."""

    def __init__(self, ctx: ExecutionContext) -> None:
        self.ctx = ctx
        self.path: Path = ctx.ssh_config_path

    def read(self) -> str:
        if not self.path.exists():
            return ""
        return self.path.read_text(encoding="utf-8")

    def load(self) -> SshConfigDocument:
        return SshConfigDocument.parse(self.read())

    def save(self, doc: SshConfigDocument) -> bool:
        """Write *doc* if it differs from the file; returns whether it wrote."""
        text = doc.render()
        if self.path.exists() and self.read() == text:
            log.debug("%s unchanged", self.path)
            return False
        if not self.ctx.ssh_dir.exists():
            self.ctx.ssh_dir.mkdir(mode=SSH_DIR_MODE, parents=True)
        write_atomic(self.path, text, backup_suffix=self.ctx.backup_suffix())
        return True

    def regenerate(self, accounts: Iterable[Account]) -> bool:
        doc = self.load()
        doc.sync(accounts)
        return self.save(doc)

    def upsert(self, account: Account) -> bool:
        doc = self.load()
        doc.upsert(account.alias, render_stanza(account))
        return self.save(doc)

    def preview(self, accounts: Iterable[Account]) -> str:
        doc = self.load()
        doc.sync(accounts)
        return doc.render()

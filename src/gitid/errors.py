"""Error kinds surfaced by git-id.

Every failure the core can report is a :class:`GitIdError`; the CLI catches
that one base class, prints the message and exits with ``exit_code``.
"""

from __future__ import annotations


class GitIdError(Exception):
    """Base class for all reportable git-id failures."""

    exit_code = 1


class CorruptStore(GitIdError):
    """The accounts file is unparsable or holds duplicate accounts."""


class Conflict(GitIdError):
    """An account with the same ``username@host`` (or alias) already exists."""

    exit_code = 2


class NotFound(GitIdError):
    """No registered account matches the requested key."""

    exit_code = 2


class AmbiguousAccount(GitIdError):
    """A bare username matches accounts on more than one host."""

    exit_code = 2


class PathExists(GitIdError):
    """Key generation would overwrite an existing file."""


class KeyNotFound(GitIdError):
    """A picked public key has no usable private key beside it."""


class NoOriginRemote(GitIdError):
    """A local-scope switch was requested without an ``origin`` remote."""


class NoUsableCredential(GitIdError):
    """Neither an SSH key nor a token fits the requested remote mode."""


class GitCommandError(GitIdError):
    """A git subprocess exited non-zero."""

    def __init__(self, args: list[str], returncode: int, stderr: str) -> None:
        self.command = args
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"git {' '.join(args)}: {detail}")


class ApplyError(GitIdError):
    """An effect of a mutation plan failed part-way through the plan."""

    def __init__(self, failed, applied: list, skipped: list, cause: Exception) -> None:
        self.failed = failed
        self.applied = applied
        self.skipped = skipped
        self.cause = cause
        super().__init__(f"Failed: {failed.describe()} ({cause})")

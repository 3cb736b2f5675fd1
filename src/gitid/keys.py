"""SSH key material for git-id.

Algorithm: ed25519 only, generated in-process with ``cryptography`` and
written in OpenSSH format without a passphrase.
Fingerprints: ``SHA256:<unpadded base64>`` of the public key blob, the same
string ``ssh-add -l`` prints.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from .context import ExecutionContext
from .errors import KeyNotFound, PathExists

log = logging.getLogger(__name__)

PRIVATE_MODE = 0o600
PUBLIC_MODE = 0o644
SSH_DIR_MODE = 0o700


def default_key_path(ctx: ExecutionContext, username: str) -> Path:
    return ctx.ssh_dir / f"id_ed25519_{username}"


def public_path(private_key: Path) -> Path:
    return private_key.with_name(private_key.name + ".pub")


def ensure_ssh_dir(ctx: ExecutionContext) -> Path:
    if not ctx.ssh_dir.exists():
        ctx.ssh_dir.mkdir(mode=SSH_DIR_MODE, parents=True)
    return ctx.ssh_dir


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------


def generate_key(path: Path, comment: str) -> Path:
    """Create an ed25519 key pair at *path* and ``path.pub``.

    Raises :class:`PathExists` if either file is already there; nothing is
    overwritten.
    """
    pub = public_path(path)
    for target in (path, pub):
        if target.exists():
            raise PathExists(f"{target} already exists - delete it first to regenerate.")

    key = Ed25519PrivateKey.generate()
    private_bytes = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.OpenSSH,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_bytes = key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )

    path.parent.mkdir(mode=SSH_DIR_MODE, parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, PRIVATE_MODE)
    with os.fdopen(fd, "wb") as fh:
        fh.write(private_bytes)
    os.chmod(path, PRIVATE_MODE)

    pub.write_bytes(public_bytes + b" " + comment.encode("utf-8") + b"\n")
    os.chmod(pub, PUBLIC_MODE)
    log.debug("generated ed25519 key %s", path)
    return path


def list_public_keys(ctx: ExecutionContext) -> list[Path]:
    if not ctx.ssh_dir.is_dir():
        return []
    return sorted(p for p in ctx.ssh_dir.glob("*.pub") if p.is_file())


def pick_key(pub: Path, ssh_dir: Path) -> Path:
    """Validate a public key under *ssh_dir* and return its private key path."""
    if not pub.is_file():
        raise KeyNotFound(f"Public key not found: {pub}")
    if pub.resolve().parent != ssh_dir.resolve():
        raise KeyNotFound(f"{pub} is not in {ssh_dir}; copy the key pair there first.")
    private = pub.with_name(pub.name[: -len(".pub")]) if pub.name.endswith(".pub") else pub
    if private == pub or not private.is_file():
        raise KeyNotFound(f"Private key not found for {pub} (expected {private}).")

    derived = _derived_public_blob(private)
    if derived is not None and derived != _public_blob(pub.read_text(encoding="utf-8")):
        raise KeyNotFound(f"Private key {private} does not match {pub}.")

    fix_permissions(private)
    return private


def fix_permissions(private_key: Path) -> None:
    if private_key.exists():
        os.chmod(private_key, PRIVATE_MODE)
    pub = public_path(private_key)
    if pub.exists():
        os.chmod(pub, PUBLIC_MODE)


# ---------------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------------


def fingerprint(public_key_line: str) -> Optional[str]:
    """Return the SHA256 fingerprint of an OpenSSH public key line."""
    blob = _public_blob(public_key_line)
    if blob is None:
        return None
    digest = hashlib.sha256(blob).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


def key_fingerprint(private_key: Path) -> Optional[str]:
    """Fingerprint of the ``.pub`` file beside *private_key*, if readable."""
    pub = public_path(private_key)
    try:
        return fingerprint(pub.read_text(encoding="utf-8"))
    except OSError:
        return None


def _public_blob(line: str) -> Optional[bytes]:
    parts = line.strip().split()
    if len(parts) < 2:
        return None
    try:
        return base64.b64decode(parts[1], validate=True)
    except ValueError:
        return None


def _derived_public_blob(private: Path) -> Optional[bytes]:
    """Public blob of an unencrypted OpenSSH private key, else ``None``."""
    try:
        key = serialization.load_ssh_private_key(private.read_bytes(), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        # Encrypted or non-OpenSSH formats cannot be checked here.
        log.debug("cannot verify %s against its public key: %s", private, exc)
        return None
    line = key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )
    return _public_blob(line.decode("ascii"))


# ---------------------------------------------------------------------------
# ssh-agent
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgentKey:
    """One line of ``ssh-add -l``."""

    bits: str
    fingerprint: str
    comment: str
    key_type: str


def parse_agent_listing(output: str) -> list[AgentKey]:
    keys = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 2 or not parts[1].startswith(("SHA256:", "MD5:")):
            continue
        key_type = ""
        rest = parts[2:]
        if rest and rest[-1].startswith("(") and rest[-1].endswith(")"):
            key_type = rest[-1][1:-1]
            rest = rest[:-1]
        keys.append(AgentKey(parts[0], parts[1], " ".join(rest), key_type))
    return keys


class SshAgent:
    """Thin wrapper around ``ssh-add``."""

    def list_keys(self) -> Optional[list[AgentKey]]:
        """Loaded keys; ``[]`` if the agent is empty, ``None`` if unreachable."""
        try:
            result = subprocess.run(
                ["ssh-add", "-l"],
                capture_output=True,
                text=True,
                timeout=5,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired):
            return None
        if result.returncode == 1:
            return []
        if result.returncode != 0:
            return None
        return parse_agent_listing(result.stdout)

    def add(self, private_key: Path) -> tuple[bool, str]:
        """Run ``ssh-add`` on *private_key*; returns ``(ok, message)``."""
        if not os.environ.get("SSH_AUTH_SOCK"):
            return False, "SSH_AUTH_SOCK not set - ssh-agent may not be running"
        try:
            result = subprocess.run(
                ["ssh-add", str(private_key)],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired) as exc:
            return False, f"Failed to run ssh-add: {exc}"
        if result.returncode != 0:
            return False, f"ssh-add failed: {result.stderr.strip()}"
        return True, f"Added {private_key} to ssh-agent"

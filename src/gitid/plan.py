"""Mutation plans: the ordered effects of an identity switch."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from .models import Account


@dataclass(frozen=True)
class CheckCredential:
    """Fail with ``NoUsableCredential`` unless *account* can use *mode*."""

    account: Account
    mode: str

    def describe(self) -> str:
        if self.mode == "ssh":
            return f"check SSH key for {self.account.id} exists ({self.account.ssh_key_path or 'none configured'})"
        return f"check HTTPS token for {self.account.id} is set"


@dataclass(frozen=True)
class SetGitConfig:
    key: str
    value: str
    scope: str

    def describe(self) -> str:
        return f"git config --{self.scope} {self.key} {self.value!r}"


@dataclass(frozen=True)
class WriteSshStanza:
    account: Account

    def describe(self) -> str:
        return f"write ~/.ssh/config stanza 'Host {self.account.alias}' -> {self.account.ssh_key_path}"


@dataclass(frozen=True)
class StoreHttpsCredential:
    account: Account

    def describe(self) -> str:
        return f"git credential approve https://{self.account.username}:********@{self.account.host}"


@dataclass(frozen=True)
class SetRemoteUrl:
    remote: str
    url: str
    previous: str = ""

    def describe(self) -> str:
        return f"git remote set-url {self.remote} {self.url}"


Effect = Union[CheckCredential, SetGitConfig, WriteSshStanza, StoreHttpsCredential, SetRemoteUrl]


@dataclass(frozen=True)
class MutationPlan:
    account: Account
    scope: str
    mode: str
    effects: tuple[Effect, ...] = field(default_factory=tuple)
    notes: tuple[str, ...] = field(default_factory=tuple)

    def __iter__(self):
        return iter(self.effects)

    def __len__(self) -> int:
        return len(self.effects)

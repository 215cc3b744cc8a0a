from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping, Union


class EntryKind(str, Enum):
    PRIVATE_KEY = "private-key-with-chain"
    TRUSTED_CERT = "trusted-certificate"


class Classification(str, Enum):
    ABSENT = "absent"
    SATISFIED = "satisfied"
    CHAIN_MISMATCH = "chain-mismatch"
    KIND_MISMATCH = "kind-mismatch"


class Status(str, Enum):
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    FAILED = "failed"


@dataclass(frozen=True)
class Certificate:
    serial: str
    owner: str = ""
    issuer: str = ""


CertificateChain = tuple[Certificate, ...]


def serials(chain: CertificateChain) -> tuple[str, ...]:
    return tuple(cert.serial for cert in chain)


@dataclass(frozen=True)
class Entry:
    alias: str
    kind: EntryKind
    chain: CertificateChain

    def __post_init__(self) -> None:
        if self.kind is EntryKind.PRIVATE_KEY and not self.chain:
            raise ValueError(f"Private key entry <{self.alias}> has an empty certificate chain")


@dataclass(frozen=True)
class Keystore:
    path: str
    storetype: str = "jks"
    password: str = field(default="", repr=False)


@dataclass(frozen=True)
class SourceBundle:
    path: str
    password: str = field(default="", repr=False)
    alias: str | None = None
    storetype: str = "pkcs12"

    @property
    def is_certificate(self) -> bool:
        return self.storetype == "certificate"


@dataclass(frozen=True)
class DesiredSpec:
    alias: str
    keystore: Keystore
    source: SourceBundle | None = None
    key_password: str | None = field(default=None, repr=False)
    current_key_password: str | None = field(default=None, repr=False)
    ensure: str = "present"
    trustcacerts: bool = False

    @property
    def name(self) -> str:
        return f"{self.alias}:{self.keystore.path}"


class Snapshot(Mapping[str, Entry]):
    """Read-only view of a keystore's entries at the moment it was listed."""

    def __init__(
        self,
        entries: Mapping[str, Entry] | None = None,
        storetype: str | None = None,
        rejected: tuple[str, ...] = (),
    ) -> None:
        self._entries = MappingProxyType(dict(entries or {}))
        self.storetype = storetype
        self.rejected = tuple(rejected)

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    def __getitem__(self, alias: str) -> Entry:
        return self._entries[alias]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Snapshot(aliases={list(self._entries)!r}, rejected={list(self.rejected)!r})"


@dataclass(frozen=True)
class Delete:
    alias: str


@dataclass(frozen=True)
class Import:
    alias: str
    source: SourceBundle
    source_alias: str
    key_password: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class ImportCertificate:
    alias: str
    source: SourceBundle
    trustcacerts: bool = False


@dataclass(frozen=True)
class ChangeKeyPassword:
    alias: str
    old_password: str = field(repr=False)
    new_password: str = field(repr=False)


Operation = Union[Delete, Import, ImportCertificate, ChangeKeyPassword]


def describe(op: Operation) -> str:
    if isinstance(op, Delete):
        return f"delete <{op.alias}>"
    if isinstance(op, Import):
        return f"import <{op.alias}> from {op.source.path} (source alias <{op.source_alias}>)"
    if isinstance(op, ImportCertificate):
        return f"import trusted certificate <{op.alias}> from {op.source.path}"
    if isinstance(op, ChangeKeyPassword):
        return f"change key password of <{op.alias}>"
    raise TypeError(f"Unsupported operation {op!r}")


@dataclass(frozen=True)
class Plan:
    operations: tuple[Operation, ...] = ()
    warnings: tuple[Warning, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.operations)


@dataclass
class Result:
    alias: str
    status: Status
    classification: Classification | None = None
    operations: list[Operation] = field(default_factory=list)
    warnings: list[Warning] = field(default_factory=list)
    error: Exception | None = None

    @property
    def failed(self) -> bool:
        return self.status is Status.FAILED

    @property
    def reason(self) -> str | None:
        return str(self.error) if self.error is not None else None

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping

from .errors import ConfigError


@dataclass(frozen=True)
class Capabilities:
    storetype: str
    # keytool stores aliases lower-cased for these formats
    folds_alias_case: bool = True
    supports_keypasswd: bool = True
    honours_destkeypass: bool = True

    def stored_alias(self, alias: str) -> str:
        return alias.lower() if self.folds_alias_case else alias


DEFAULT_CAPABILITIES: dict[str, Capabilities] = {
    "jks": Capabilities("jks"),
    "jceks": Capabilities("jceks"),
    # keytool refuses -keypasswd and ignores -destkeypass for PKCS12
    "pkcs12": Capabilities("pkcs12", supports_keypasswd=False, honours_destkeypass=False),
}

_FLAGS = ("folds_alias_case", "supports_keypasswd", "honours_destkeypass")


class CapabilityTable:
    def __init__(self, overrides: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._table = dict(DEFAULT_CAPABILITIES)
        for storetype, flags in (overrides or {}).items():
            self.override(storetype, flags)

    def override(self, storetype: str, flags: Mapping[str, Any]) -> None:
        key = storetype.lower()
        unknown = set(flags) - set(_FLAGS)
        if unknown:
            raise ConfigError(f"Unknown capability flag(s) for {key}: {', '.join(sorted(unknown))}")
        for name, value in flags.items():
            if not isinstance(value, bool):
                raise ConfigError(f"Capability {key}.{name} must be true or false")
        base = self._table.get(key, Capabilities(key))
        self._table[key] = replace(base, **dict(flags))

    def get(self, storetype: str) -> Capabilities:
        key = storetype.lower()
        caps = self._table.get(key)
        if caps is None:
            # unknown formats get the conservative profile
            return Capabilities(key, supports_keypasswd=False, honours_destkeypass=False)
        return caps

    def __contains__(self, storetype: str) -> bool:
        return storetype.lower() in self._table

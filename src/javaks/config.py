from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError
from .formats import CapabilityTable
from .keytool import DEFAULT_TIMEOUT
from .model import DesiredSpec, Keystore, SourceBundle

ENSURE_VALUES = ("present", "absent")


@dataclass
class Settings:
    keytool: str | None = None
    keytool_timeout: float = DEFAULT_TIMEOUT
    log_level: str = "WARNING"
    capabilities: CapabilityTable = field(default_factory=CapabilityTable)
    entries: list[DesiredSpec] = field(default_factory=list)


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path).expanduser()
    try:
        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {p}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {p}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{p}: config root must be a mapping")
    return data


def _require(item: Mapping[str, Any], key: str, where: str) -> Any:
    value = item.get(key)
    if value is None or value == "":
        raise ConfigError(f"{where}: missing required key '{key}'")
    return value


def resolve_secret(item: Mapping[str, Any], key: str, where: str, base: Path | None = None) -> str | None:
    """Read ``key`` inline, as ``env:NAME``, or from ``<key>_file``."""
    file_key = f"{key}_file"
    if item.get(file_key):
        p = Path(str(item[file_key])).expanduser()
        if base is not None and not p.is_absolute():
            p = base / p
        try:
            return p.read_text(encoding="utf-8").rstrip("\r\n")
        except OSError as exc:
            raise ConfigError(f"{where}: cannot read {file_key} {p}: {exc}") from exc
    value = item.get(key)
    if value is None:
        return None
    value = str(value)
    if value.startswith("env:"):
        name = value[4:]
        if name not in os.environ:
            raise ConfigError(f"{where}: environment variable {name} for '{key}' is not set")
        return os.environ[name]
    return value


def parse_entry(item: Mapping[str, Any], where: str, base: Path | None = None) -> DesiredSpec:
    if not isinstance(item, Mapping):
        raise ConfigError(f"{where}: entry must be a mapping")
    ensure = str(item.get("ensure", "present"))
    if ensure not in ENSURE_VALUES:
        raise ConfigError(f"{where}: ensure must be one of {', '.join(ENSURE_VALUES)}")

    keystore = Keystore(
        path=str(_require(item, "keystore", where)),
        storetype=str(item.get("storetype", "jks")).lower(),
        password=resolve_secret(item, "password", where, base) or "",
    )
    if not keystore.password:
        raise ConfigError(f"{where}: missing required key 'password'")

    source = None
    if ensure == "present":
        source = SourceBundle(
            path=str(_require(item, "certificate", where)),
            password=resolve_secret(item, "source_password", where, base) or "",
            alias=None if item.get("source_alias") is None else str(item["source_alias"]),
            storetype=str(item.get("source_storetype", "pkcs12")).lower(),
        )

    return DesiredSpec(
        alias=str(_require(item, "alias", where)),
        keystore=keystore,
        source=source,
        key_password=resolve_secret(item, "destkeypass", where, base),
        current_key_password=resolve_secret(item, "current_keypass", where, base),
        ensure=ensure,
        trustcacerts=bool(item.get("trustcacerts", False)),
    )


def load_settings(path: str | Path) -> Settings:
    data = load_yaml(path)
    base = Path(path).expanduser().resolve().parent

    capabilities = data.get("capabilities") or {}
    if not isinstance(capabilities, dict):
        raise ConfigError("capabilities must be a mapping of storetype to flags")
    entries = data.get("entries") or []
    if not isinstance(entries, list):
        raise ConfigError("entries must be a list")

    try:
        timeout = float(data.get("keytool_timeout", DEFAULT_TIMEOUT))
    except (TypeError, ValueError) as exc:
        raise ConfigError("keytool_timeout must be a number") from exc

    return Settings(
        keytool=data.get("keytool"),
        keytool_timeout=timeout,
        log_level=str(data.get("log_level", "WARNING")).upper(),
        capabilities=CapabilityTable(capabilities),
        entries=[parse_entry(item, f"entries[{i}]", base) for i, item in enumerate(entries)],
    )

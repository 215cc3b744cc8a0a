from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from javaks.keytool import SECRET_PREFIX, ToolResult
from javaks.model import Certificate, Entry, EntryKind

STOREPASS = "puppet"
SOURCEPASS = "pkcs12pass"
KEYPASS = "abcdef123456"


def cert(serial: str | int, owner: str | None = None, issuer: str | None = None) -> Certificate:
    s = format(serial, "x") if isinstance(serial, int) else serial
    return Certificate(serial=s, owner=owner or f"CN=cert{s}", issuer=issuer or f"CN=issuer{s}")


def key_entry(alias: str, *serials: int) -> Entry:
    return Entry(alias=alias, kind=EntryKind.PRIVATE_KEY, chain=tuple(cert(s) for s in serials))


def trusted_entry(alias: str, serial: int) -> Entry:
    return Entry(alias=alias, kind=EntryKind.TRUSTED_CERT, chain=(cert(serial),))


def _render_cert(c: Certificate) -> list[str]:
    return [
        f"Owner: {c.owner}",
        f"Issuer: {c.issuer}",
        f"Serial number: {c.serial}",
        "Valid from: Mon Oct 19 00:00:00 UTC 2026 until: Tue Oct 19 00:00:00 UTC 2027",
        "Certificate fingerprints:",
        "\t SHA1: 3A:1F:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00",
        "\t SHA256: 9C:44:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00:00",
        "Signature algorithm name: SHA256withRSA",
        "Subject Public Key Algorithm: 2048-bit RSA key",
        "Version: 3",
        "",
        "Extensions: ",
        "",
        "#1: ObjectId: 2.5.29.35 Criticality=false",
        "AuthorityKeyIdentifier [",
        "KeyIdentifier [",
        "0000: 01 02 03 04                                        ....",
        "]",
        "[CN=Root]",
        "SerialNumber: [    01]",
        "]",
        "",
    ]


def render_listing(entries: list[Entry], storetype: str = "PKCS12") -> str:
    """Text in the shape of ``keytool -list -v``."""
    noun = "entry" if len(entries) == 1 else "entries"
    lines = [f"Keystore type: {storetype}", "Keystore provider: SUN", "", f"Your keystore contains {len(entries)} {noun}", ""]
    for entry in entries:
        lines.append(f"Alias name: {entry.alias}")
        lines.append("Creation date: Oct 19, 2026")
        if entry.kind is EntryKind.PRIVATE_KEY:
            lines.append("Entry type: PrivateKeyEntry")
            lines.append(f"Certificate chain length: {len(entry.chain)}")
            for i, c in enumerate(entry.chain, start=1):
                lines.append(f"Certificate[{i}]:")
                lines.extend(_render_cert(c))
        else:
            lines.append("Entry type: trustedCertEntry")
            lines.append("")
            lines.extend(_render_cert(entry.chain[0]))
        lines += ["", "*******************************************", "*******************************************", "", ""]
    return "\n".join(lines) + "\n"


def render_printcert(chain: list[Certificate]) -> str:
    lines: list[str] = []
    for i, c in enumerate(chain, start=1):
        if len(chain) > 1:
            lines.append(f"Certificate[{i}]:")
        lines.extend(_render_cert(c))
    return "\n".join(lines) + "\n"


def _opt(args: list[str], name: str) -> str | None:
    for i, tok in enumerate(args):
        if tok == name or tok.startswith(name + ":"):
            if tok.endswith(":env"):
                return "env:" + args[i + 1]
            return args[i + 1]
    return None


@dataclass
class FakeStore:
    password: str
    storetype: str = "pkcs12"
    entries: dict[str, Entry] = field(default_factory=dict)


@dataclass
class FakeKeytool:
    """In-memory stand-in for keytool that understands the commands javaks issues."""

    stores: dict[str, FakeStore] = field(default_factory=dict)
    certificates: dict[str, list[Certificate]] = field(default_factory=dict)
    fail: dict[str, tuple[int, str]] = field(default_factory=dict)
    reverse_imported_chains: bool = False
    listing_rewrites: dict[str, list[tuple[str, str]]] = field(default_factory=dict)
    folds_alias_case: bool = True
    calls: list[list[str]] = field(default_factory=list)
    secrets_seen: list[dict[str, str]] = field(default_factory=list)

    def add_store(self, path: str, password: str, *entries: Entry, storetype: str = "pkcs12") -> FakeStore:
        store = FakeStore(password=password, storetype=storetype, entries={e.alias: e for e in entries})
        self.stores[path] = store
        return store

    @property
    def mutating_calls(self) -> list[list[str]]:
        return [c for c in self.calls if c[0] in ("-delete", "-importkeystore", "-importcert", "-keypasswd")]

    def _secret(self, args: list[str], option: str, secrets: dict[str, str]) -> str | None:
        value = _opt(args, option)
        if value is not None and value.startswith("env:"):
            name = value[4:]
            assert name.startswith(SECRET_PREFIX)
            return secrets.get(name[len(SECRET_PREFIX):])
        return value

    def _fold(self, alias: str) -> str:
        return alias.lower() if self.folds_alias_case else alias

    def _error(self, args: list[str], message: str, code: int = 1) -> ToolResult:
        return ToolResult(args=tuple(args), returncode=code, stdout=f"keytool error: {message}\n")

    def run(self, args, secrets=None, stdin=None) -> ToolResult:
        args = list(args)
        secrets = dict(secrets or {})
        self.calls.append(args)
        self.secrets_seen.append(secrets)
        command = args[0]
        if command in self.fail:
            code, message = self.fail[command]
            return ToolResult(args=tuple(args), returncode=code, stderr=message)
        handler = getattr(self, "_cmd_" + command.lstrip("-"))
        return handler(args, secrets)

    def _open(self, args: list[str], secrets: dict[str, str], path_opt: str, pass_opt: str) -> FakeStore | ToolResult:
        path = _opt(args, path_opt) or ""
        store = self.stores.get(path)
        if store is None:
            return self._error(args, f"java.lang.Exception: Keystore file does not exist: {path}")
        if self._secret(args, pass_opt, secrets) != store.password:
            return self._error(args, "java.io.IOException: keystore password was incorrect")
        return store

    def _cmd_list(self, args: list[str], secrets: dict[str, str]) -> ToolResult:
        store = self._open(args, secrets, "-keystore", "-storepass")
        if isinstance(store, ToolResult):
            return store
        text = render_listing(list(store.entries.values()), storetype=store.storetype.upper())
        for old, new in self.listing_rewrites.get(_opt(args, "-keystore") or "", []):
            text = text.replace(old, new)
        return ToolResult(args=tuple(args), returncode=0, stdout=text)

    def _cmd_printcert(self, args: list[str], secrets: dict[str, str]) -> ToolResult:
        path = _opt(args, "-file") or ""
        if path not in self.certificates:
            return self._error(args, f"java.io.FileNotFoundException: {path} (No such file or directory)")
        return ToolResult(args=tuple(args), returncode=0, stdout=render_printcert(self.certificates[path]))

    def _cmd_delete(self, args: list[str], secrets: dict[str, str]) -> ToolResult:
        store = self._open(args, secrets, "-keystore", "-storepass")
        if isinstance(store, ToolResult):
            return store
        alias = self._fold(_opt(args, "-alias") or "")
        if alias not in store.entries:
            return self._error(args, f"java.lang.Exception: Alias <{alias}> does not exist")
        del store.entries[alias]
        return ToolResult(args=tuple(args), returncode=0)

    def _cmd_importkeystore(self, args: list[str], secrets: dict[str, str]) -> ToolResult:
        src = self._open(args, secrets, "-srckeystore", "-srcstorepass")
        if isinstance(src, ToolResult):
            return src
        src_alias = _opt(args, "-srcalias") or ""
        entry = src.entries.get(src_alias)
        if entry is None:
            return self._error(args, f"java.lang.Exception: Alias <{src_alias}> does not exist")
        dest_path = _opt(args, "-destkeystore") or ""
        dest_pass = self._secret(args, "-deststorepass", secrets) or ""
        dest = self.stores.get(dest_path)
        if dest is None:
            dest = self.add_store(dest_path, dest_pass, storetype=_opt(args, "-deststoretype") or "jks")
        elif dest.password != dest_pass:
            return self._error(args, "java.io.IOException: keystore password was incorrect")
        alias = self._fold(_opt(args, "-destalias") or src_alias)
        if alias in dest.entries:
            return self._error(args, f"java.lang.Exception: Alias <{alias}> already exists")
        chain = tuple(reversed(entry.chain)) if self.reverse_imported_chains else entry.chain
        dest.entries[alias] = Entry(alias=alias, kind=entry.kind, chain=chain)
        return ToolResult(args=tuple(args), returncode=0)

    def _cmd_importcert(self, args: list[str], secrets: dict[str, str]) -> ToolResult:
        path = _opt(args, "-keystore") or ""
        password = self._secret(args, "-storepass", secrets) or ""
        store = self.stores.get(path) or self.add_store(path, password, storetype=_opt(args, "-storetype") or "jks")
        alias = self._fold(_opt(args, "-alias") or "")
        if alias in store.entries:
            return self._error(args, f"java.lang.Exception: Certificate not imported, alias <{alias}> already exists")
        chain = self.certificates[_opt(args, "-file") or ""]
        store.entries[alias] = Entry(alias=alias, kind=EntryKind.TRUSTED_CERT, chain=(chain[0],))
        return ToolResult(args=tuple(args), returncode=0, stdout="Certificate was added to keystore\n")

    def _cmd_keypasswd(self, args: list[str], secrets: dict[str, str]) -> ToolResult:
        store = self._open(args, secrets, "-keystore", "-storepass")
        if isinstance(store, ToolResult):
            return store
        alias = self._fold(_opt(args, "-alias") or "")
        if alias not in store.entries:
            return self._error(args, f"java.lang.Exception: Alias <{alias}> does not exist")
        return ToolResult(args=tuple(args), returncode=0)


@pytest.fixture
def fake_keytool() -> FakeKeytool:
    fake = FakeKeytool()
    fake.add_store("/tmp/leaf.p12", SOURCEPASS, key_entry("Leaf Cert", 5, 4, 3))
    fake.add_store("/tmp/leaf2.p12", SOURCEPASS, key_entry("Leaf Cert", 5, 6))
    return fake


# Live keytool fixtures


@pytest.fixture(scope="session")
def keytool_path() -> str:
    path = shutil.which("keytool")
    if not path:
        pytest.skip("keytool not found in PATH (install a JDK)")
    return path


@pytest.fixture(scope="session")
def base_env() -> dict[str, str]:
    env = os.environ.copy()
    env["LC_ALL"] = "C"
    env["LANG"] = "C"
    env["TZ"] = "UTC"
    return env


def run_cmd(cmd: list[str], env: dict[str, str], check: bool = True, input_text: str | None = None) -> subprocess.CompletedProcess:
    return subprocess.run(
        cmd,
        env=env,
        input=input_text,
        text=True,
        capture_output=True,
        check=check,
    )


def _build_chain(serials: list[int]):
    """Leaf-first chain where each certificate is signed by the next one."""
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.x509.oid import NameOID

    now = datetime.now(timezone.utc)
    keys = [ec.generate_private_key(ec.SECP256R1()) for _ in serials]
    names = [x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, f"JavaKS {s}")]) for s in serials]
    certs = []
    for i, serial in enumerate(serials):
        issuer = min(i + 1, len(serials) - 1)
        builder = (
            x509.CertificateBuilder()
            .subject_name(names[i])
            .issuer_name(names[issuer])
            .public_key(keys[i].public_key())
            .serial_number(serial)
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=365))
            .add_extension(x509.BasicConstraints(ca=i > 0, path_length=None), critical=True)
        )
        certs.append(builder.sign(keys[issuer], hashes.SHA256()))
    return keys[0], certs


def write_pkcs12(path: Path, alias: str, serials: list[int], password: str) -> Path:
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.serialization import pkcs12

    key, certs = _build_chain(serials)
    blob = pkcs12.serialize_key_and_certificates(
        alias.encode("utf-8"),
        key,
        certs[0],
        certs[1:],
        serialization.BestAvailableEncryption(password.encode("utf-8")),
    )
    path.write_bytes(blob)
    return path


def write_certificate(path: Path, serial: int) -> Path:
    from cryptography.hazmat.primitives import serialization

    _, certs = _build_chain([serial])
    path.write_bytes(certs[0].public_bytes(serialization.Encoding.PEM))
    return path


@pytest.fixture
def leaf_p12(tmp_path: Path) -> Path:
    return write_pkcs12(tmp_path / "leaf.p12", "Leaf Cert", [5, 4, 3], SOURCEPASS)


@pytest.fixture
def leaf2_p12(tmp_path: Path) -> Path:
    return write_pkcs12(tmp_path / "leaf2.p12", "Leaf Cert", [5, 6], SOURCEPASS)

"""Parser for ``keytool -list -v`` and ``keytool -printcert -v`` reports.

Only structurally stable labels are used: the entry count line, and the
``Alias name``, ``Entry type``, ``Certificate chain length``, ``Owner``,
``Issuer`` and ``Serial number`` lines. Everything else (dates,
fingerprints, extensions, warnings) is ignored so wording changes between
JDK releases do not break parsing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .errors import ListingParseError
from .model import Certificate, CertificateChain, Entry, EntryKind, Snapshot

logger = logging.getLogger(__name__)

STORETYPE_RE = re.compile(r"^Keystore type:\s*(\S+)\s*$")
COUNT_RE = re.compile(r"^Your keystore contains (\d+) entr(?:y|ies)\s*$")
ALIAS_RE = re.compile(r"^Alias name: ?(.*)$")
KIND_RE = re.compile(r"^Entry type:\s*(\S+)\s*$")
CHAIN_LEN_RE = re.compile(r"^Certificate chain length:\s*(\d+)\s*$")
OWNER_RE = re.compile(r"^Owner:\s*(.*?)\s*$")
ISSUER_RE = re.compile(r"^Issuer:\s*(.*?)\s*$")
SERIAL_RE = re.compile(r"^Serial number:\s*([0-9A-Fa-f]+)\s*$")

ENTRY_KINDS = {
    "PrivateKeyEntry": EntryKind.PRIVATE_KEY,
    "keyEntry": EntryKind.PRIVATE_KEY,
    "trustedCertEntry": EntryKind.TRUSTED_CERT,
    "trustedCertificate": EntryKind.TRUSTED_CERT,
}


def normalize_serial(serial: str) -> str:
    return serial.strip().lower().lstrip("0") or "0"


@dataclass
class _CertBuilder:
    owner: str = ""
    issuer: str = ""
    serial: str | None = None


@dataclass
class _Block:
    alias: str
    kind: str | None = None
    chain_length: int | None = None


def _collect_certificates(lines: list[str]) -> list[_CertBuilder]:
    certs: list[_CertBuilder] = []
    for line in lines:
        m = OWNER_RE.match(line)
        if m:
            certs.append(_CertBuilder(owner=m.group(1)))
            continue
        if not certs:
            continue
        m = ISSUER_RE.match(line)
        if m:
            certs[-1].issuer = m.group(1)
            continue
        m = SERIAL_RE.match(line)
        if m and certs[-1].serial is None:
            certs[-1].serial = normalize_serial(m.group(1))
    return certs


def _to_chain(certs: list[_CertBuilder]) -> CertificateChain | None:
    chain = []
    for cert in certs:
        if cert.serial is None:
            return None
        chain.append(Certificate(serial=cert.serial, owner=cert.owner, issuer=cert.issuer))
    return tuple(chain)


def parse_certificates(text: str) -> CertificateChain:
    """Certificates of a ``-printcert -v`` report, in the order printed."""
    lines = [ln.rstrip("\r") for ln in text.splitlines()]
    chain = _to_chain(_collect_certificates(lines))
    if not chain:
        raise ListingParseError("no certificate with a serial number found in keytool output")
    return chain


def _split_blocks(lines: list[str]) -> list[tuple[str, list[str]]]:
    blocks: list[tuple[str, list[str]]] = []
    for line in lines:
        m = ALIAS_RE.match(line)
        if m:
            blocks.append((m.group(1), []))
        elif blocks:
            blocks[-1][1].append(line)
    return blocks


def _classify_block(alias: str, lines: list[str]) -> Entry | None:
    block = _Block(alias=alias)
    for line in lines:
        m = KIND_RE.match(line)
        if m and block.kind is None:
            block.kind = m.group(1)
            continue
        m = CHAIN_LEN_RE.match(line)
        if m and block.chain_length is None:
            block.chain_length = int(m.group(1))
    kind = ENTRY_KINDS.get(block.kind or "")
    if kind is None:
        logger.debug("entry <%s>: unsupported entry type %r", alias, block.kind)
        return None
    chain = _to_chain(_collect_certificates(lines))
    if not chain:
        logger.debug("entry <%s>: no certificates with serial numbers", alias)
        return None
    if kind is EntryKind.PRIVATE_KEY:
        if block.chain_length is None or block.chain_length != len(chain):
            logger.debug(
                "entry <%s>: chain length marker %s does not match %d certificates",
                alias,
                block.chain_length,
                len(chain),
            )
            return None
    elif len(chain) != 1:
        logger.debug("entry <%s>: trusted entry lists %d certificates", alias, len(chain))
        return None
    return Entry(alias=alias, kind=kind, chain=chain)


def parse_listing(text: str) -> Snapshot:
    """Turn ``keytool -list -v`` output into a Snapshot.

    Entries that cannot be classified end up in ``Snapshot.rejected``.
    Raises ListingParseError when the report as a whole is not a listing.
    """
    lines = [ln.rstrip("\r") for ln in text.splitlines()]
    storetype = None
    count = None
    for line in lines:
        if storetype is None:
            m = STORETYPE_RE.match(line)
            if m:
                storetype = m.group(1).lower()
                continue
        m = COUNT_RE.match(line)
        if m:
            count = int(m.group(1))
            break
    if count is None:
        raise ListingParseError("keytool output has no entry count line", diagnostic=text)

    blocks = _split_blocks(lines)
    if len(blocks) != count:
        raise ListingParseError(
            f"keytool reported {count} entries but listed {len(blocks)}",
            diagnostic=text,
        )

    entries: dict[str, Entry] = {}
    rejected: list[str] = []
    for alias, block_lines in blocks:
        entry = _classify_block(alias, block_lines)
        if entry is None:
            rejected.append(alias)
        else:
            entries[alias] = entry
    return Snapshot(entries, storetype=storetype, rejected=tuple(rejected))

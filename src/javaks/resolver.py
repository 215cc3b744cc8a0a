from __future__ import annotations

import logging

from .errors import AmbiguousSource, ListingParseError, SourceAliasNotFound, SourceUnreadable
from .formats import CapabilityTable
from .inspector import list_args
from .keytool import Keytool
from .listing import parse_certificates, parse_listing
from .model import Entry, EntryKind, Snapshot, SourceBundle

logger = logging.getLogger(__name__)


class DesiredStateResolver:
    """Works out which entry of a source bundle is meant to be installed.

    Without an explicit source alias the bundle's only private key entry is
    used; a bundle with several key entries is ambiguous. A bundle with no
    key entries resolves only if it holds exactly one entry.
    """

    def __init__(self, keytool: Keytool, capabilities: CapabilityTable | None = None) -> None:
        self.keytool = keytool
        self.capabilities = capabilities or CapabilityTable()

    def resolve(self, source: SourceBundle, alias: str | None = None) -> Entry:
        if source.is_certificate:
            return self._resolve_certificate(source, alias)
        snapshot = self._list(source, alias)
        if source.alias is not None:
            entry = self._lookup(snapshot, source, alias)
        else:
            entry = self._pick(snapshot, source, alias)
        logger.debug("source %s: using <%s>, chain %s", source.path, entry.alias, [c.serial for c in entry.chain])
        return entry

    def _list(self, source: SourceBundle, alias: str | None) -> Snapshot:
        args = list_args(source.path, source.storetype, secret="srcstorepass")
        result = self.keytool.run(args, secrets={"srcstorepass": source.password})
        if not result.ok:
            raise SourceUnreadable(
                f"cannot open source {source.path} (exit {result.returncode})",
                alias=alias,
                operation="list source",
                diagnostic=result.diagnostic,
            )
        try:
            return parse_listing(result.stdout)
        except ListingParseError as exc:
            raise SourceUnreadable(
                f"cannot parse listing of source {source.path}: {exc.message}",
                alias=alias,
                operation="list source",
                diagnostic=result.stdout,
            ) from exc

    def _lookup(self, snapshot: Snapshot, source: SourceBundle, alias: str | None) -> Entry:
        wanted = source.alias or ""
        if wanted in snapshot:
            return snapshot[wanted]
        folded = self.capabilities.get(source.storetype).stored_alias(wanted)
        if folded in snapshot:
            return snapshot[folded]
        raise SourceAliasNotFound(
            f"alias <{wanted}> not found in source {source.path}",
            alias=alias,
            operation="resolve source",
            diagnostic="available aliases: " + ", ".join(f"<{a}>" for a in snapshot),
        )

    def _pick(self, snapshot: Snapshot, source: SourceBundle, alias: str | None) -> Entry:
        keys = [e for e in snapshot.values() if e.kind is EntryKind.PRIVATE_KEY]
        if len(keys) == 1:
            return keys[0]
        if not keys and len(snapshot) == 1:
            return next(iter(snapshot.values()))
        candidates = keys or list(snapshot.values())
        if not candidates:
            raise AmbiguousSource(f"source {source.path} contains no usable entries", alias=alias, operation="resolve source")
        raise AmbiguousSource(
            f"source {source.path} contains {len(candidates)} candidate entries; set a source alias",
            alias=alias,
            operation="resolve source",
            diagnostic="candidates: " + ", ".join(f"<{e.alias}>" for e in candidates),
        )

    def _resolve_certificate(self, source: SourceBundle, alias: str | None) -> Entry:
        result = self.keytool.run(["-printcert", "-v", "-file", source.path])
        if not result.ok:
            raise SourceUnreadable(
                f"cannot read certificate {source.path} (exit {result.returncode})",
                alias=alias,
                operation="read certificate",
                diagnostic=result.diagnostic,
            )
        try:
            chain = parse_certificates(result.stdout)
        except ListingParseError as exc:
            raise SourceUnreadable(
                f"cannot parse certificate {source.path}: {exc.message}",
                alias=alias,
                operation="read certificate",
                diagnostic=result.stdout,
            ) from exc
        # -importcert keeps only the first certificate of a trusted entry
        return Entry(alias=alias or source.path, kind=EntryKind.TRUSTED_CERT, chain=chain[:1])

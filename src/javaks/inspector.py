from __future__ import annotations

import logging
import re
from pathlib import Path

from .errors import InspectionFailed, ListingParseError
from .keytool import Keytool, password_option
from .listing import parse_listing
from .model import Keystore, Snapshot

logger = logging.getLogger(__name__)

MISSING_STORE_RE = re.compile(r"Keystore file does not exist", re.IGNORECASE)


def list_args(path: str, storetype: str, option: str = "-storepass", secret: str = "storepass") -> list[str]:
    return ["-list", "-v", "-keystore", path, "-storetype", storetype, *password_option(option, secret)]


class KeystoreInspector:
    def __init__(self, keytool: Keytool) -> None:
        self.keytool = keytool

    def snapshot(self, keystore: Keystore, alias: str | None = None) -> Snapshot:
        args = list_args(keystore.path, keystore.storetype)
        result = self.keytool.run(args, secrets={"storepass": keystore.password})
        if not result.ok:
            if not result.timed_out and MISSING_STORE_RE.search(result.diagnostic) and not Path(keystore.path).exists():
                logger.info("keystore %s does not exist yet", keystore.path)
                return Snapshot.empty()
            raise InspectionFailed(
                f"cannot list keystore {keystore.path} (exit {result.returncode})",
                alias=alias,
                operation="list",
                diagnostic=result.diagnostic,
            )
        try:
            snapshot = parse_listing(result.stdout)
        except ListingParseError as exc:
            raise InspectionFailed(
                f"cannot parse listing of {keystore.path}: {exc.message}",
                alias=alias,
                operation="list",
                diagnostic=result.stdout,
            ) from exc
        if snapshot.rejected:
            logger.warning(
                "keystore %s: could not classify entries %s",
                keystore.path,
                ", ".join(f"<{a}>" for a in snapshot.rejected),
            )
        logger.debug("keystore %s: %d entries", keystore.path, len(snapshot))
        return snapshot

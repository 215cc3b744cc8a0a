from __future__ import annotations

import argparse
import getpass
import sys

from .config import Settings, load_settings
from .engine import ReconciliationEngine
from .errors import KeystoreError
from .inspector import KeystoreInspector
from .keytool import DEFAULT_TIMEOUT, Keytool, find_keytool
from .log import configure_logging
from .model import Keystore, Result, Status, describe

EXIT_OK = 0
EXIT_FAILED = 2
EXIT_ERROR = 3


def _err(msg: str) -> int:
    print(f"javaks error: {msg}", file=sys.stderr)
    return EXIT_ERROR


def _keytool(path: str | None, timeout: float) -> Keytool:
    return Keytool(executable=find_keytool(path), timeout=timeout)


def _log_level(args: argparse.Namespace, default: str) -> str:
    if args.verbose >= 2:
        return "DEBUG"
    if args.verbose == 1:
        return "INFO"
    if args.quiet:
        return "ERROR"
    return default


def _print_result(result: Result, dry_run: bool) -> None:
    if result.status is Status.FAILED:
        print(f"[XX] {result.alias}: failed: {result.reason}")
        return
    label = result.status.value
    if dry_run and result.status is Status.CHANGED:
        label = "would change"
    print(f"[..] {result.alias}: {label}")
    for op in result.operations:
        print(f"     - {describe(op)}")
    for warning in result.warnings:
        print(f"[!!] {result.alias}: {warning}")


def _cmd_converge(args: argparse.Namespace, dry_run: bool) -> int:
    settings: Settings = load_settings(args.config)
    configure_logging(_log_level(args, settings.log_level))
    keytool = _keytool(args.keytool or settings.keytool, args.timeout or settings.keytool_timeout)
    engine = ReconciliationEngine(keytool, settings.capabilities, dry_run=dry_run)
    results = engine.converge_all(settings.entries)
    for result in results:
        _print_result(result, dry_run)
    changed = sum(1 for r in results if r.status is Status.CHANGED)
    failed = sum(1 for r in results if r.failed)
    warned = sum(1 for r in results if r.warnings)
    print(f"\n{len(results)} entries: {changed} changed, {failed} failed, {warned} with warnings")
    return EXIT_FAILED if failed else EXIT_OK


def _cmd_inspect(args: argparse.Namespace) -> int:
    configure_logging(_log_level(args, "WARNING"))
    storepass = args.storepass
    if storepass is None:
        storepass = getpass.getpass("Enter keystore password: ")
    keytool = _keytool(args.keytool, args.timeout or DEFAULT_TIMEOUT)
    keystore = Keystore(path=args.keystore, storetype=args.storetype.lower(), password=storepass)
    snapshot = KeystoreInspector(keytool).snapshot(keystore)
    print(f"Keystore: {keystore.path} ({snapshot.storetype or keystore.storetype})")
    print(f"Entries: {len(snapshot)}")
    for alias in sorted(snapshot):
        entry = snapshot[alias]
        print(f"\n{alias}, {entry.kind.value}, chain length {len(entry.chain)}")
        for i, cert in enumerate(entry.chain, start=1):
            print(f"  [{i}] serial {cert.serial}  {cert.owner}")
    for alias in snapshot.rejected:
        print(f"\n{alias}, unclassified")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="javaks",
        description="Converge Java keystore entries to a declared state using keytool.",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (repeat for debug)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors")
    parser.add_argument("--keytool", help="Path to the keytool executable")
    parser.add_argument("--timeout", type=float, help="Seconds to wait for each keytool call")
    sub = parser.add_subparsers(dest="command", required=True)

    converge = sub.add_parser("converge", help="Apply the entries declared in a config file")
    converge.add_argument("-c", "--config", required=True, help="YAML file declaring entries")
    converge.add_argument("-n", "--dry-run", action="store_true", help="Plan only, change nothing")

    plan = sub.add_parser("plan", help="Show what converge would do")
    plan.add_argument("-c", "--config", required=True, help="YAML file declaring entries")

    inspect = sub.add_parser("inspect", help="List the entries of a keystore")
    inspect.add_argument("-keystore", dest="keystore", required=True, help="Keystore path")
    inspect.add_argument("-storetype", dest="storetype", default="jks", help="jks, jceks or pkcs12")
    inspect.add_argument("-storepass", dest="storepass", help="Keystore password")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.command == "converge":
            return _cmd_converge(args, dry_run=args.dry_run)
        if args.command == "plan":
            return _cmd_converge(args, dry_run=True)
        if args.command == "inspect":
            return _cmd_inspect(args)
        return _err(f"Unsupported command {args.command}")
    except KeystoreError as exc:
        return _err(str(exc))


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import logging

from .errors import OperationFailed
from .keytool import Keytool, password_option
from .model import (
    ChangeKeyPassword,
    Delete,
    DesiredSpec,
    Import,
    ImportCertificate,
    Operation,
    Plan,
    describe,
)

logger = logging.getLogger(__name__)


def _store_args(spec: DesiredSpec) -> list[str]:
    return ["-keystore", spec.keystore.path, "-storetype", spec.keystore.storetype, *password_option("-storepass", "storepass")]


def build_command(spec: DesiredSpec, op: Operation) -> tuple[list[str], dict[str, str]]:
    """keytool arguments and secrets for one operation."""
    secrets = {"storepass": spec.keystore.password}
    if isinstance(op, Delete):
        return ["-delete", "-alias", op.alias, *_store_args(spec)], secrets

    if isinstance(op, Import):
        args = [
            "-importkeystore",
            "-srckeystore",
            op.source.path,
            "-srcstoretype",
            op.source.storetype,
            *password_option("-srcstorepass", "srcstorepass"),
            "-srcalias",
            op.source_alias,
            "-destkeystore",
            spec.keystore.path,
            "-deststoretype",
            spec.keystore.storetype,
            *password_option("-deststorepass", "storepass"),
            "-destalias",
            op.alias,
        ]
        secrets["srcstorepass"] = op.source.password
        if op.key_password:
            # source keys are assumed to share the source store password
            args += password_option("-srckeypass", "srcstorepass")
            args += password_option("-destkeypass", "destkeypass")
            secrets["destkeypass"] = op.key_password
        args.append("-noprompt")
        return args, secrets

    if isinstance(op, ImportCertificate):
        args = ["-importcert", "-alias", op.alias, "-file", op.source.path, *_store_args(spec), "-noprompt"]
        if op.trustcacerts:
            args.append("-trustcacerts")
        return args, secrets

    if isinstance(op, ChangeKeyPassword):
        args = [
            "-keypasswd",
            "-alias",
            op.alias,
            *_store_args(spec),
            *password_option("-keypass", "keypass"),
            *password_option("-new", "newkeypass"),
        ]
        secrets["keypass"] = op.old_password
        secrets["newkeypass"] = op.new_password
        return args, secrets

    raise TypeError(f"Unsupported operation {op!r}")


class OperationExecutor:
    def __init__(self, keytool: Keytool) -> None:
        self.keytool = keytool

    def apply(self, spec: DesiredSpec, plan: Plan) -> list[Operation]:
        """Run the plan in order, stopping at the first failing step."""
        applied: list[Operation] = []
        for op in plan.operations:
            step = describe(op)
            args, secrets = build_command(spec, op)
            logger.info("%s: %s", spec.name, step)
            result = self.keytool.run(args, secrets=secrets)
            if not result.ok:
                reason = "timed out" if result.timed_out else f"exited {result.returncode}"
                raise OperationFailed(
                    f"keytool {reason}",
                    alias=spec.alias,
                    step=step,
                    exit_code=result.returncode,
                    stderr=result.diagnostic,
                )
            applied.append(op)
        return applied

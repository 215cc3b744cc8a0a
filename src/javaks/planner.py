from __future__ import annotations

import logging

from .errors import PasswordChangeUnsupportedWarning
from .formats import Capabilities
from .model import (
    ChangeKeyPassword,
    Classification,
    Delete,
    DesiredSpec,
    Entry,
    EntryKind,
    Import,
    ImportCertificate,
    Operation,
    Plan,
)

logger = logging.getLogger(__name__)


def plan_removal(current: Entry | None) -> Plan:
    if current is None:
        return Plan()
    return Plan(operations=(Delete(current.alias),))


def plan(
    spec: DesiredSpec,
    classification: Classification,
    current: Entry | None,
    desired: Entry,
    capabilities: Capabilities,
) -> Plan:
    """Ordered operations that take ``current`` to ``desired``.

    Any mismatch replaces the whole entry: delete (when present), then
    import. A key password change, when needed, always comes last.
    """
    operations: list[Operation] = []
    warnings: list[Warning] = []

    if classification is Classification.SATISFIED:
        if desired.kind is EntryKind.PRIVATE_KEY and spec.key_password:
            if not capabilities.supports_keypasswd:
                # the key password can be neither checked nor changed in place
                warnings.append(PasswordChangeUnsupportedWarning(spec.alias, capabilities.storetype))
            elif _wants_rotation(spec):
                _change_key_password(spec, spec.current_key_password or "", capabilities, operations, warnings)
        return Plan(tuple(operations), tuple(warnings))

    if current is not None:
        operations.append(Delete(current.alias))

    if spec.source is None:
        raise ValueError(f"<{spec.alias}> has no source to import from")
    if spec.source.is_certificate:
        operations.append(ImportCertificate(spec.alias, spec.source, trustcacerts=spec.trustcacerts))
        return Plan(tuple(operations), tuple(warnings))

    key_password = spec.key_password if desired.kind is EntryKind.PRIVATE_KEY else None
    operations.append(
        Import(
            spec.alias,
            spec.source,
            source_alias=desired.alias,
            key_password=key_password if capabilities.honours_destkeypass else None,
        )
    )
    if key_password and not capabilities.honours_destkeypass and key_password != spec.keystore.password:
        # the imported key ends up protected by the store password
        _change_key_password(spec, spec.keystore.password, capabilities, operations, warnings)
    return Plan(tuple(operations), tuple(warnings))


def _wants_rotation(spec: DesiredSpec) -> bool:
    if spec.current_key_password is None:
        return False
    return spec.key_password != spec.current_key_password


def _change_key_password(
    spec: DesiredSpec,
    old_password: str,
    capabilities: Capabilities,
    operations: list[Operation],
    warnings: list[Warning],
) -> None:
    if capabilities.supports_keypasswd:
        operations.append(ChangeKeyPassword(spec.alias, old_password=old_password, new_password=spec.key_password or ""))
        return
    logger.debug("<%s>: %s does not support -keypasswd", spec.alias, capabilities.storetype)
    warnings.append(PasswordChangeUnsupportedWarning(spec.alias, capabilities.storetype))

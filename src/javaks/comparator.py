from __future__ import annotations

from .model import Classification, Entry, serials


def classify(current: Entry | None, desired: Entry) -> Classification:
    """Compare by entry kind, then serial numbers position by position.

    A matching chain is SATISFIED even when a key password was declared:
    keytool offers no read-only way to check a key password.
    """
    if current is None:
        return Classification.ABSENT
    if current.kind is not desired.kind:
        return Classification.KIND_MISMATCH
    if serials(current.chain) != serials(desired.chain):
        return Classification.CHAIN_MISMATCH
    return Classification.SATISFIED

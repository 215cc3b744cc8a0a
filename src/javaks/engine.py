from __future__ import annotations

import logging
from typing import Iterable

from .comparator import classify
from .errors import ConvergenceVerificationFailed, InspectionFailed, KeystoreError
from .executor import OperationExecutor
from .formats import CapabilityTable
from .inspector import KeystoreInspector
from .keytool import Keytool
from .model import Classification, DesiredSpec, Entry, Result, Snapshot, Status, describe
from .planner import plan, plan_removal
from .resolver import DesiredStateResolver

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Converges one keystore entry per DesiredSpec.

    Each pass lists the keystore and the source, classifies, plans, applies
    the plan and lists the keystore again to confirm the result. Passes are
    synchronous and never retried; a keystore must not be touched by anything
    else while a pass runs.
    """

    def __init__(
        self,
        keytool: Keytool,
        capabilities: CapabilityTable | None = None,
        dry_run: bool = False,
    ) -> None:
        self.capabilities = capabilities or CapabilityTable()
        self.inspector = KeystoreInspector(keytool)
        self.resolver = DesiredStateResolver(keytool, self.capabilities)
        self.executor = OperationExecutor(keytool)
        self.dry_run = dry_run

    def _current(self, snapshot: Snapshot, spec: DesiredSpec) -> Entry | None:
        stored = self.capabilities.get(spec.keystore.storetype).stored_alias(spec.alias)
        if spec.alias in snapshot.rejected or stored in snapshot.rejected:
            # the alias exists but its state is unknown; never plan against it
            raise InspectionFailed(
                f"entry could not be parsed from listing of {spec.keystore.path}",
                alias=spec.alias,
                operation="list",
            )
        if spec.alias in snapshot:
            return snapshot[spec.alias]
        return snapshot.get(stored)

    def converge(self, spec: DesiredSpec) -> Result:
        try:
            return self._converge(spec)
        except KeystoreError as exc:
            logger.error("%s: %s", spec.name, exc)
            return Result(alias=spec.alias, status=Status.FAILED, error=exc)

    def converge_all(self, specs: Iterable[DesiredSpec]) -> list[Result]:
        return [self.converge(spec) for spec in specs]

    def _converge(self, spec: DesiredSpec) -> Result:
        caps = self.capabilities.get(spec.keystore.storetype)
        current = self._current(self.inspector.snapshot(spec.keystore, alias=spec.alias), spec)

        classification: Classification | None = None
        if spec.ensure == "absent":
            desired = None
            steps = plan_removal(current)
        else:
            if spec.source is None:
                raise KeystoreError("no source declared", alias=spec.alias, operation="resolve source")
            desired = self.resolver.resolve(spec.source, alias=spec.alias)
            classification = classify(current, desired)
            steps = plan(spec, classification, current, desired, caps)
        logger.debug(
            "%s: %s, plan %s",
            spec.name,
            classification.value if classification else spec.ensure,
            [describe(op) for op in steps.operations],
        )

        for warning in steps.warnings:
            logger.warning("%s: %s", spec.name, warning)
        result = Result(
            alias=spec.alias,
            status=Status.UNCHANGED,
            classification=classification,
            warnings=list(steps.warnings),
        )
        if not steps:
            return result
        if self.dry_run:
            result.status = Status.CHANGED
            result.operations = list(steps.operations)
            return result

        result.operations = self.executor.apply(spec, steps)
        result.status = Status.CHANGED
        self._verify(spec, desired)
        return result

    def _verify(self, spec: DesiredSpec, desired: Entry | None) -> None:
        after = self._current(self.inspector.snapshot(spec.keystore, alias=spec.alias), spec)
        if desired is None:
            if after is not None:
                raise ConvergenceVerificationFailed(
                    "entry is still present after delete", alias=spec.alias, operation="verify"
                )
            return
        outcome = classify(after, desired)
        if outcome is not Classification.SATISFIED:
            raise ConvergenceVerificationFailed(
                f"entry classifies as {outcome.value} after apply",
                alias=spec.alias,
                operation="verify",
                diagnostic=_chain_report(after, desired),
            )
        logger.info("%s: converged", spec.name)


def _chain_report(after: Entry | None, desired: Entry) -> str:
    found = "absent" if after is None else f"{after.kind.value} {[c.serial for c in after.chain]}"
    return f"expected {desired.kind.value} {[c.serial for c in desired.chain]}, found {found}"

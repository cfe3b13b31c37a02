from __future__ import annotations

import copy
from typing import Any

from . import db
from .builders import build, verify
from .models import DesiredState, StepOutcome, complete, failed, in_progress
from .naming import Role, key_for
from .ownership import OwnershipError, bind
from .store import AlreadyExists, Conflict, NotFound, StoreError, StoreGateway

# Dependents come after what they reference: the workload mounts the config
# and resolves its peers through the peer service.
STEPS: tuple[Role, ...] = (
    Role.MASTER_PEER,
    Role.MASTER_SERVICE,
    Role.MASTER_CONFIG,
    Role.MASTER_STATEFULSET,
)


class DriftError(Exception):
    pass


def stateful_set_drift(observed: dict[str, Any], desired: DesiredState) -> dict[str, Any] | None:
    """Return `observed` with the image corrected, or None if it already matches."""
    containers = (((observed.get("spec") or {}).get("template") or {}).get("spec") or {}).get("containers") or []
    if not containers:
        raise DriftError("master statefulset has no containers")
    current = containers[0].get("image")
    if current == desired.image:
        return None
    patched = copy.deepcopy(observed)
    patched["spec"]["template"]["spec"]["containers"][0]["image"] = desired.image
    return patched


# Roles absent here are never updated once created.
DRIFT_CHECKS = {
    Role.MASTER_STATEFULSET: stateful_set_drift,
}


class MasterReconciler:
    """Converges the master tier of one Seaweed cluster, one step per call at most."""

    def __init__(self, store: StoreGateway):
        self.store = store

    def reconcile(self, desired: DesiredState) -> StepOutcome:
        for role in STEPS:
            outcome = self.ensure(desired, role)
            if not outcome.done:
                return outcome
        return complete()

    def ensure(self, desired: DesiredState, role: Role) -> StepOutcome:
        key = key_for(desired.name, desired.namespace, role)
        what = f"master {role.kind.lower()} {key.name}"

        try:
            observed = self.store.get(key)
        except NotFound:
            return self._create(desired, role)
        except StoreError as e:
            self._log("ERROR", f"Failed to get {what}: {e}", desired)
            return failed(f"lookup-error: {key}: {e}")

        check = DRIFT_CHECKS.get(role)
        if check is None:
            return complete()

        try:
            patched = check(observed, desired)
        except DriftError as e:
            self._log("ERROR", f"Cannot compare {what}: {e}", desired)
            return failed(f"drift-error: {key}: {e}")
        if patched is None:
            return complete()

        self._log("INFO", f"Updating {what} image to {desired.image}", desired)
        try:
            self.store.update(patched)
        except Conflict as e:
            self._log("WARN", f"Update conflict on {what}, will re-check: {e}", desired)
            return in_progress(f"update-conflict: {key}")
        except StoreError as e:
            self._log("ERROR", f"Failed to update {what}: {e}", desired)
            return failed(f"update-error: {key}: {e}")
        return in_progress(f"updated {key}")

    def _create(self, desired: DesiredState, role: Role) -> StepOutcome:
        key = key_for(desired.name, desired.namespace, role)
        manifest = build(role, desired)
        verify(manifest, key, desired)
        try:
            bind(manifest, desired)
        except OwnershipError as e:
            self._log("ERROR", f"Cannot bind {key} to its owner: {e}", desired)
            return failed(f"ownership-error: {key}: {e}")

        self._log("INFO", f"Creating {key}", desired)
        try:
            self.store.create(manifest)
        except AlreadyExists:
            self._log("WARN", f"{key} already exists, will re-check", desired)
            return in_progress(f"already-exists: {key}")
        except StoreError as e:
            self._log("ERROR", f"Failed to create {key}: {e}", desired)
            return failed(f"create-error: {key}: {e}")
        return in_progress(f"created {key}")

    def _log(self, level: str, message: str, desired: DesiredState) -> None:
        db.log_event(level, message, cluster=desired.name, namespace=desired.namespace)

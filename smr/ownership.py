from __future__ import annotations

from typing import Any

from .models import DesiredState
from .naming import SEAWEED_API_VERSION, SEAWEED_KIND


class OwnershipError(Exception):
    pass


def owner_reference(owner: DesiredState) -> dict[str, Any]:
    return {
        "apiVersion": SEAWEED_API_VERSION,
        "kind": SEAWEED_KIND,
        "name": owner.name,
        "uid": owner.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def bind(child: dict[str, Any], owner: DesiredState) -> dict[str, Any]:
    """Make `owner` the controller of `child` so the store's GC deletes it with the owner.

    Must run before the child is created. `owner` is expected to have been read
    back from the store, which assigns its uid. Returns `child`.
    """
    if not owner.uid:
        raise OwnershipError(f"{owner.namespace}/{owner.name} has no uid; it must be read from the store first")
    meta = child.setdefault("metadata", {})
    if meta.get("namespace") not in (None, owner.namespace):
        raise OwnershipError(f"cross-namespace owner {owner.namespace}/{owner.name} for {meta.get('namespace')}/{meta.get('name')}")

    refs = [r for r in meta.get("ownerReferences") or [] if r.get("uid") != owner.uid]
    for r in refs:
        if r.get("controller"):
            raise OwnershipError(
                f"{meta.get('name')} is already controlled by {r.get('kind')}/{r.get('name')}"
            )
    refs.append(owner_reference(owner))
    meta["ownerReferences"] = refs
    return child


def owner_uids(obj: dict[str, Any]) -> list[str]:
    meta = obj.get("metadata") or {}
    return [r["uid"] for r in meta.get("ownerReferences") or [] if r.get("uid")]

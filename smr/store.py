from __future__ import annotations

import copy
import secrets
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any

from .naming import ManagedObjectKey, key_of
from .ownership import owner_uids
from .settings import Settings


class StoreError(Exception):
    pass


class NotFound(StoreError):
    pass


class AlreadyExists(StoreError):
    pass


class Conflict(StoreError):
    pass


class TransientStoreError(StoreError):
    pass


class StoreGateway(ABC):
    """Synchronous access to the declarative object store.

    Objects are plain manifest dicts. Failures are raised as StoreError subclasses.
    """

    @abstractmethod
    def get(self, key: ManagedObjectKey) -> dict[str, Any]:
        ...

    @abstractmethod
    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    def list(self, kind: str, namespace: str | None = None) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    def delete(self, key: ManagedObjectKey) -> None:
        ...


class InMemoryStore(StoreGateway):
    """Dict-backed store with resourceVersion checks and owner-reference cascading delete."""

    def __init__(self) -> None:
        self.lock = Lock()
        self._objects: dict[ManagedObjectKey, dict[str, Any]] = {}
        self._revision = 0
        self.journal: list[tuple[str, ManagedObjectKey]] = []  # mutations, in order

    def _next_revision(self) -> str:
        self._revision += 1
        return str(self._revision)

    def get(self, key: ManagedObjectKey) -> dict[str, Any]:
        with self.lock:
            obj = self._objects.get(key)
            if obj is None:
                raise NotFound(str(key))
            return copy.deepcopy(obj)

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        key = key_of(obj)
        if not key.name:
            raise ValueError("object has no metadata.name")
        with self.lock:
            self.journal.append(("create", key))
            if key in self._objects:
                raise AlreadyExists(str(key))
            stored = copy.deepcopy(obj)
            meta = stored.setdefault("metadata", {})
            meta["uid"] = meta.get("uid") or secrets.token_hex(8)
            meta["resourceVersion"] = self._next_revision()
            self._objects[key] = stored
            return copy.deepcopy(stored)

    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        key = key_of(obj)
        with self.lock:
            self.journal.append(("update", key))
            current = self._objects.get(key)
            if current is None:
                raise NotFound(str(key))
            sent_rv = (obj.get("metadata") or {}).get("resourceVersion")
            if sent_rv and sent_rv != current["metadata"]["resourceVersion"]:
                raise Conflict(f"{key}: stale resourceVersion {sent_rv}")
            stored = copy.deepcopy(obj)
            meta = stored.setdefault("metadata", {})
            meta["uid"] = current["metadata"]["uid"]
            meta["resourceVersion"] = self._next_revision()
            self._objects[key] = stored
            return copy.deepcopy(stored)

    def list(self, kind: str, namespace: str | None = None) -> list[dict[str, Any]]:
        with self.lock:
            out = [
                copy.deepcopy(o)
                for k, o in sorted(self._objects.items(), key=lambda kv: str(kv[0]))
                if k.kind == kind and (namespace is None or k.namespace == namespace)
            ]
        return out

    def delete(self, key: ManagedObjectKey) -> None:
        with self.lock:
            self.journal.append(("delete", key))
            obj = self._objects.pop(key, None)
            if obj is None:
                raise NotFound(str(key))
            # Cascade like the store's garbage collector: anything owned by a deleted uid goes too.
            gone = [obj["metadata"]["uid"]]
            while gone:
                uid = gone.pop()
                for k, o in list(self._objects.items()):
                    if uid in owner_uids(o):
                        del self._objects[k]
                        gone.append(o["metadata"]["uid"])

    def mutations(self) -> int:
        return len(self.journal)


def build_store(cfg: Settings) -> StoreGateway:
    backend = cfg.store_backend.strip().lower()
    if backend == "memory":
        return InMemoryStore()
    if backend == "kubernetes":
        from .kube import KubernetesStore

        return KubernetesStore(kubeconfig=cfg.kubeconfig, request_timeout_s=cfg.request_timeout_s)
    raise ValueError(f"Unknown store backend '{cfg.store_backend}'. Use 'memory' or 'kubernetes'.")

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

SEAWEED_GROUP = "seaweed.seaweedfs.com"
SEAWEED_VERSION = "v1"
SEAWEED_API_VERSION = f"{SEAWEED_GROUP}/{SEAWEED_VERSION}"
SEAWEED_KIND = "Seaweed"
SEAWEED_PLURAL = "seaweeds"

MASTER_HTTP_PORT = 9333
MASTER_GRPC_PORT = 19333


class Role(Enum):
    """One managed object of the master tier: (kind, name suffix)."""

    MASTER_PEER = ("Service", "-master-peer")
    MASTER_SERVICE = ("Service", "-master")
    MASTER_CONFIG = ("ConfigMap", "-master-config")
    MASTER_STATEFULSET = ("StatefulSet", "-master")

    @property
    def kind(self) -> str:
        return self.value[0]

    @property
    def suffix(self) -> str:
        return self.value[1]


@dataclass(frozen=True)
class ManagedObjectKey:
    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind}/{self.namespace}/{self.name}"


def key_for(name: str, namespace: str, role: Role) -> ManagedObjectKey:
    return ManagedObjectKey(kind=role.kind, namespace=namespace, name=name + role.suffix)


def seaweed_key(name: str, namespace: str) -> ManagedObjectKey:
    return ManagedObjectKey(kind=SEAWEED_KIND, namespace=namespace, name=name)


def key_of(obj: dict) -> ManagedObjectKey:
    meta = obj.get("metadata") or {}
    return ManagedObjectKey(kind=obj.get("kind", ""), namespace=meta.get("namespace", ""), name=meta.get("name", ""))


def labels_for(name: str, role: str = "master") -> dict[str, str]:
    """Labels stamped on every object of a tier and used as its pod selector."""
    return {"app": "seaweedfs", "role": role, "name": name}

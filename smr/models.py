from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .naming import SEAWEED_API_VERSION, SEAWEED_KIND


class DesiredState(BaseModel):
    """Master tier of one Seaweed cluster, as declared in its custom resource."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=52, description="Cluster name (dns-safe)")
    namespace: str = Field("default", min_length=1)
    uid: str = Field("", description="Store-assigned uid of the custom resource")
    resource_version: str = Field("", description="Store revision the record was read at")
    image: str = Field(..., min_length=1, description="SeaweedFS image (name:tag)")
    replicas: int = Field(1, ge=1)

    volume_size_limit_mb: int | None = Field(None, ge=1)
    default_replication: str | None = None
    garbage_threshold: float | None = Field(None, ge=0, le=1)
    pulse_seconds: int | None = Field(None, ge=1)
    volume_preallocate: bool = False
    concurrent_start: bool = True
    config: str = ""
    service_type: str = Field("ClusterIP", pattern=r"^(ClusterIP|NodePort|LoadBalancer)$")
    image_pull_policy: str = Field("IfNotPresent", pattern=r"^(Always|IfNotPresent|Never)$")
    env: dict[str, str] = Field(default_factory=dict)
    resources: dict[str, dict[str, str]] = Field(default_factory=dict)

    @classmethod
    def from_resource(cls, obj: dict[str, Any]) -> "DesiredState":
        """Read a ``Seaweed`` custom resource document."""
        meta = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        master = spec.get("master") or {}
        service = master.get("service") or {}
        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace") or "default",
            uid=meta.get("uid") or "",
            resource_version=str(meta.get("resourceVersion") or ""),
            image=spec.get("image", ""),
            replicas=master.get("replicas", 1),
            volume_size_limit_mb=master.get("volumeSizeLimitMB"),
            default_replication=master.get("defaultReplication"),
            garbage_threshold=master.get("garbageThreshold"),
            pulse_seconds=master.get("pulseSeconds"),
            volume_preallocate=bool(master.get("volumePreallocate", False)),
            concurrent_start=bool(master.get("concurrentStart", True)),
            config=master.get("config") or "",
            service_type=service.get("type") or "ClusterIP",
            image_pull_policy=master.get("imagePullPolicy") or spec.get("imagePullPolicy") or "IfNotPresent",
            env=master.get("env") or {},
            resources=master.get("resources") or {},
        )

    def to_resource(self) -> dict[str, Any]:
        master: dict[str, Any] = {
            "replicas": self.replicas,
            "volumePreallocate": self.volume_preallocate,
            "concurrentStart": self.concurrent_start,
            "config": self.config,
            "service": {"type": self.service_type},
            "imagePullPolicy": self.image_pull_policy,
            "env": dict(self.env),
            "resources": {k: dict(v) for k, v in self.resources.items()},
        }
        if self.volume_size_limit_mb is not None:
            master["volumeSizeLimitMB"] = self.volume_size_limit_mb
        if self.default_replication is not None:
            master["defaultReplication"] = self.default_replication
        if self.garbage_threshold is not None:
            master["garbageThreshold"] = self.garbage_threshold
        if self.pulse_seconds is not None:
            master["pulseSeconds"] = self.pulse_seconds

        meta: dict[str, Any] = {"name": self.name, "namespace": self.namespace}
        if self.uid:
            meta["uid"] = self.uid
        if self.resource_version:
            meta["resourceVersion"] = self.resource_version
        return {
            "apiVersion": SEAWEED_API_VERSION,
            "kind": SEAWEED_KIND,
            "metadata": meta,
            "spec": {"image": self.image, "master": master},
        }


class Phase(str, Enum):
    COMPLETE = "complete"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"


@dataclass(frozen=True)
class StepOutcome:
    phase: Phase
    reason: str = ""

    @property
    def done(self) -> bool:
        return self.phase is Phase.COMPLETE

    def __str__(self) -> str:
        return f"{self.phase.value}: {self.reason}" if self.reason else self.phase.value


def complete() -> StepOutcome:
    return StepOutcome(Phase.COMPLETE)


def in_progress(reason: str) -> StepOutcome:
    return StepOutcome(Phase.IN_PROGRESS, reason)


def failed(reason: str) -> StepOutcome:
    return StepOutcome(Phase.FAILED, reason)

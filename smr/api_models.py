from __future__ import annotations

from pydantic import BaseModel, Field

from .models import DesiredState


class ClusterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=52, pattern=r"^[a-z][a-z0-9\-]*$", description="Cluster name (dns-safe)")
    namespace: str = Field("default", min_length=1, pattern=r"^[a-z0-9][a-z0-9\-]*$")
    image: str = Field(..., min_length=1, description="SeaweedFS image (name:tag)")
    replicas: int = Field(1, ge=1, le=9, description="Master replicas (odd for raft quorum)")
    volume_size_limit_mb: int | None = Field(None, ge=1)
    default_replication: str | None = Field(None, pattern=r"^[0-9]{3}$")
    garbage_threshold: float | None = Field(None, ge=0, le=1)
    pulse_seconds: int | None = Field(None, ge=1)
    volume_preallocate: bool = False
    concurrent_start: bool = True
    config: str = Field("", description="master.toml content")
    service_type: str = Field("ClusterIP", pattern=r"^(ClusterIP|NodePort|LoadBalancer)$")
    image_pull_policy: str = Field("IfNotPresent", pattern=r"^(Always|IfNotPresent|Never)$")
    env: dict[str, str] = Field(default_factory=dict)
    resources: dict[str, dict[str, str]] = Field(default_factory=dict, description="Container requests/limits")

    def to_desired(self) -> DesiredState:
        return DesiredState(**self.model_dump())

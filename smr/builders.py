from __future__ import annotations

import json
from typing import Any, Callable

from .models import DesiredState
from .naming import MASTER_GRPC_PORT, MASTER_HTTP_PORT, ManagedObjectKey, Role, key_for, labels_for

CONFIG_FILE = "master.toml"
CONFIG_MOUNT_PATH = "/etc/seaweedfs"
DATA_MOUNT_PATH = "/data"


class BuilderInvariantViolation(Exception):
    """A builder produced a manifest that disagrees with the key or label scheme."""


def _metadata(desired: DesiredState, role: Role) -> dict[str, Any]:
    key = key_for(desired.name, desired.namespace, role)
    return {"name": key.name, "namespace": key.namespace, "labels": labels_for(desired.name)}


def _ports() -> list[dict[str, Any]]:
    return [
        {"name": "master-http", "port": MASTER_HTTP_PORT, "targetPort": MASTER_HTTP_PORT, "protocol": "TCP"},
        {"name": "master-grpc", "port": MASTER_GRPC_PORT, "targetPort": MASTER_GRPC_PORT, "protocol": "TCP"},
    ]


def build_peer_service(desired: DesiredState) -> dict[str, Any]:
    """Headless service giving every master pod a stable DNS name."""
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(desired, Role.MASTER_PEER),
        "spec": {
            "clusterIP": "None",
            # Peers must resolve each other before they report ready.
            "publishNotReadyAddresses": True,
            "ports": _ports(),
            "selector": labels_for(desired.name),
        },
    }


def build_client_service(desired: DesiredState) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(desired, Role.MASTER_SERVICE),
        "spec": {
            "type": desired.service_type,
            "ports": _ports(),
            "selector": labels_for(desired.name),
        },
    }


def build_config_map(desired: DesiredState) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": _metadata(desired, Role.MASTER_CONFIG),
        "data": {CONFIG_FILE: desired.config},
    }


def peer_addresses(desired: DesiredState) -> list[str]:
    """host:port of every replica, via the peer service's per-pod DNS records."""
    sts = key_for(desired.name, desired.namespace, Role.MASTER_STATEFULSET).name
    peer = key_for(desired.name, desired.namespace, Role.MASTER_PEER).name
    return [f"{sts}-{i}.{peer}.{desired.namespace}:{MASTER_HTTP_PORT}" for i in range(desired.replicas)]


def master_command(desired: DesiredState) -> list[str]:
    peer = key_for(desired.name, desired.namespace, Role.MASTER_PEER).name
    args = [
        "weed",
        "-logtostderr=true",
        "master",
        f"-port={MASTER_HTTP_PORT}",
        f"-mdir={DATA_MOUNT_PATH}",
        f"-ip=$(POD_NAME).{peer}.$(NAMESPACE)",
        "-ip.bind=0.0.0.0",
        "-peers=" + ",".join(peer_addresses(desired)),
    ]
    if desired.volume_size_limit_mb is not None:
        args.append(f"-volumeSizeLimitMB={desired.volume_size_limit_mb}")
    if desired.default_replication is not None:
        args.append(f"-defaultReplication={desired.default_replication}")
    if desired.garbage_threshold is not None:
        args.append(f"-garbageThreshold={desired.garbage_threshold}")
    if desired.pulse_seconds is not None:
        args.append(f"-pulseSeconds={desired.pulse_seconds}")
    if desired.volume_preallocate:
        args.append("-volumePreallocate")
    return args


def _env(desired: DesiredState) -> list[dict[str, Any]]:
    env: list[dict[str, Any]] = [
        {"name": "POD_IP", "valueFrom": {"fieldRef": {"fieldPath": "status.podIP"}}},
        {"name": "POD_NAME", "valueFrom": {"fieldRef": {"fieldPath": "metadata.name"}}},
        {"name": "NAMESPACE", "valueFrom": {"fieldRef": {"fieldPath": "metadata.namespace"}}},
    ]
    for k in sorted(desired.env):
        env.append({"name": k, "value": desired.env[k]})
    return env


def _probe(initial_delay_s: int, period_s: int, failure_threshold: int) -> dict[str, Any]:
    return {
        "httpGet": {"path": "/cluster/status", "port": MASTER_HTTP_PORT, "scheme": "HTTP"},
        "initialDelaySeconds": initial_delay_s,
        "periodSeconds": period_s,
        "timeoutSeconds": 3,
        "successThreshold": 1,
        "failureThreshold": failure_threshold,
    }


def build_stateful_set(desired: DesiredState) -> dict[str, Any]:
    labels = labels_for(desired.name)
    container: dict[str, Any] = {
        "name": "master",
        "image": desired.image,
        "imagePullPolicy": desired.image_pull_policy,
        "command": ["/bin/sh", "-ec", " ".join(master_command(desired))],
        "env": _env(desired),
        "ports": [
            {"name": "master-http", "containerPort": MASTER_HTTP_PORT},
            {"name": "master-grpc", "containerPort": MASTER_GRPC_PORT},
        ],
        "volumeMounts": [
            {"name": "master-config", "mountPath": CONFIG_MOUNT_PATH, "readOnly": True},
            {"name": "master-data", "mountPath": DATA_MOUNT_PATH},
        ],
        "readinessProbe": _probe(10, 15, 100),
        "livenessProbe": _probe(20, 30, 6),
    }
    if desired.resources:
        container["resources"] = {k: dict(v) for k, v in sorted(desired.resources.items())}

    return {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": _metadata(desired, Role.MASTER_STATEFULSET),
        "spec": {
            "serviceName": key_for(desired.name, desired.namespace, Role.MASTER_PEER).name,
            "podManagementPolicy": "Parallel" if desired.concurrent_start else "OrderedReady",
            "replicas": desired.replicas,
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "enableServiceLinks": False,
                    "containers": [container],
                    "volumes": [
                        {
                            "name": "master-config",
                            "configMap": {"name": key_for(desired.name, desired.namespace, Role.MASTER_CONFIG).name},
                        },
                        {"name": "master-data", "emptyDir": {}},
                    ],
                },
            },
        },
    }


BUILDERS: dict[Role, Callable[[DesiredState], dict[str, Any]]] = {
    Role.MASTER_PEER: build_peer_service,
    Role.MASTER_SERVICE: build_client_service,
    Role.MASTER_CONFIG: build_config_map,
    Role.MASTER_STATEFULSET: build_stateful_set,
}


def build(role: Role, desired: DesiredState) -> dict[str, Any]:
    return BUILDERS[role](desired)


def verify(manifest: dict[str, Any], key: ManagedObjectKey, desired: DesiredState) -> None:
    """Raise BuilderInvariantViolation if `manifest` is not the object `key` names."""
    meta = manifest.get("metadata") or {}
    if manifest.get("kind") != key.kind:
        raise BuilderInvariantViolation(f"{key}: built kind {manifest.get('kind')!r}")
    if meta.get("name") != key.name or meta.get("namespace") != key.namespace:
        raise BuilderInvariantViolation(f"{key}: built {meta.get('namespace')}/{meta.get('name')}")
    if meta.get("labels") != labels_for(desired.name):
        raise BuilderInvariantViolation(f"{key}: labels {meta.get('labels')!r} do not match the label scheme")


def canonical_json(manifest: dict[str, Any]) -> bytes:
    return json.dumps(manifest, sort_keys=True, separators=(",", ":")).encode()

import pytest
from pydantic import ValidationError

from smr.api_models import ClusterRequest
from smr.builders import (
    BUILDERS,
    BuilderInvariantViolation,
    build,
    build_client_service,
    build_config_map,
    build_peer_service,
    build_stateful_set,
    canonical_json,
    verify,
)
from smr.models import DesiredState
from smr.naming import Role, key_for, labels_for


def _desired(**kw):
    base = dict(name="cluster1", namespace="ns", uid="u1", image="repo/master:1.0", replicas=3)
    base.update(kw)
    return DesiredState(**base)


@pytest.mark.parametrize("role", list(Role))
def test_builders_are_deterministic(role):
    a = build(role, _desired(env={"B": "2", "A": "1"}))
    b = build(role, _desired(env={"A": "1", "B": "2"}))
    assert canonical_json(a) == canonical_json(b)


@pytest.mark.parametrize("role", list(Role))
def test_builders_apply_label_scheme_and_key(role):
    d = _desired()
    manifest = build(role, d)
    key = key_for(d.name, d.namespace, role)

    assert manifest["metadata"]["labels"] == {"app": "seaweedfs", "role": "master", "name": "cluster1"}
    assert manifest["metadata"]["name"] == key.name
    assert manifest["metadata"]["namespace"] == "ns"
    # No ownership until the binder runs.
    assert "ownerReferences" not in manifest["metadata"]
    verify(manifest, key, d)


def test_every_role_has_a_builder():
    assert set(BUILDERS) == set(Role)


def test_peer_service_is_headless_and_selects_masters():
    svc = build_peer_service(_desired())
    assert svc["metadata"]["name"] == "cluster1-master-peer"
    assert svc["spec"]["clusterIP"] == "None"
    assert svc["spec"]["publishNotReadyAddresses"] is True
    assert svc["spec"]["selector"] == labels_for("cluster1")
    assert [p["port"] for p in svc["spec"]["ports"]] == [9333, 19333]


def test_client_service_is_routable():
    svc = build_client_service(_desired(service_type="LoadBalancer"))
    assert svc["metadata"]["name"] == "cluster1-master"
    assert svc["spec"]["type"] == "LoadBalancer"
    assert "clusterIP" not in svc["spec"]
    assert svc["spec"]["selector"] == labels_for("cluster1")


def test_config_map_carries_master_toml():
    cm = build_config_map(_desired(config="[master.maintenance]\nsleep_minutes = 17\n"))
    assert cm["metadata"]["name"] == "cluster1-master-config"
    assert cm["data"] == {"master.toml": "[master.maintenance]\nsleep_minutes = 17\n"}


def test_stateful_set_shape():
    sts = build_stateful_set(_desired())
    spec = sts["spec"]
    pod = spec["template"]["spec"]
    container = pod["containers"][0]

    assert sts["metadata"]["name"] == "cluster1-master"
    assert spec["replicas"] == 3
    assert spec["serviceName"] == "cluster1-master-peer"
    assert spec["selector"]["matchLabels"] == labels_for("cluster1")
    assert spec["template"]["metadata"]["labels"] == labels_for("cluster1")
    assert len(pod["containers"]) == 1
    assert container["image"] == "repo/master:1.0"

    config_volume = next(v for v in pod["volumes"] if v["name"] == "master-config")
    assert config_volume["configMap"]["name"] == "cluster1-master-config"
    assert {"name": "master-config", "mountPath": "/etc/seaweedfs", "readOnly": True} in container["volumeMounts"]


@pytest.mark.parametrize("concurrent_start,policy", [(True, "Parallel"), (False, "OrderedReady")])
def test_concurrent_start_selects_pod_management_policy(concurrent_start, policy):
    sts = build_stateful_set(_desired(concurrent_start=concurrent_start))
    assert sts["spec"]["podManagementPolicy"] == policy


def test_masters_start_in_parallel_by_default():
    assert build_stateful_set(_desired())["spec"]["podManagementPolicy"] == "Parallel"


def test_master_command_lists_every_peer():
    cmd = build_stateful_set(_desired())["spec"]["template"]["spec"]["containers"][0]["command"][-1]
    peers = (
        "-peers=cluster1-master-0.cluster1-master-peer.ns:9333,"
        "cluster1-master-1.cluster1-master-peer.ns:9333,"
        "cluster1-master-2.cluster1-master-peer.ns:9333"
    )
    assert peers in cmd
    assert "-ip=$(POD_NAME).cluster1-master-peer.$(NAMESPACE)" in cmd
    assert "-volumeSizeLimitMB" not in cmd


def test_master_command_optional_flags():
    d = _desired(volume_size_limit_mb=1024, default_replication="001", pulse_seconds=5, volume_preallocate=True)
    cmd = build_stateful_set(d)["spec"]["template"]["spec"]["containers"][0]["command"][-1]
    assert "-volumeSizeLimitMB=1024" in cmd
    assert "-defaultReplication=001" in cmd
    assert "-pulseSeconds=5" in cmd
    assert cmd.endswith("-volumePreallocate")


def test_verify_rejects_manifest_off_the_key_or_label_scheme():
    d = _desired()
    key = key_for(d.name, d.namespace, Role.MASTER_CONFIG)

    wrong_labels = build_config_map(d)
    wrong_labels["metadata"]["labels"]["role"] = "volume"
    with pytest.raises(BuilderInvariantViolation):
        verify(wrong_labels, key, d)

    wrong_kind = build_config_map(d)
    wrong_kind["kind"] = "Secret"
    with pytest.raises(BuilderInvariantViolation):
        verify(wrong_kind, key, d)

    with pytest.raises(BuilderInvariantViolation):
        verify(build_client_service(d), key, d)


def test_desired_state_reads_custom_resource():
    doc = {
        "apiVersion": "seaweed.seaweedfs.com/v1",
        "kind": "Seaweed",
        "metadata": {"name": "cluster1", "namespace": "ns", "uid": "abc", "resourceVersion": "42"},
        "spec": {
            "image": "chrislusf/seaweedfs:3.59",
            "master": {"replicas": 3, "volumeSizeLimitMB": 1024, "service": {"type": "NodePort"}},
        },
    }
    d = DesiredState.from_resource(doc)

    assert (d.name, d.namespace, d.uid, d.resource_version) == ("cluster1", "ns", "abc", "42")
    assert d.image == "chrislusf/seaweedfs:3.59"
    assert d.replicas == 3
    assert d.volume_size_limit_mb == 1024
    assert d.service_type == "NodePort"
    assert DesiredState.from_resource(d.to_resource()) == d


def test_desired_state_requires_at_least_one_replica():
    with pytest.raises(ValidationError):
        _desired(replicas=0)


def test_cluster_request_carries_pull_policy_and_resources():
    req = ClusterRequest(
        name="cluster1",
        namespace="ns",
        image="repo/master:1.0",
        image_pull_policy="Always",
        resources={"requests": {"cpu": "250m"}, "limits": {"memory": "512Mi"}},
    )
    d = req.to_desired()

    assert d.image_pull_policy == "Always"
    assert d.resources == {"requests": {"cpu": "250m"}, "limits": {"memory": "512Mi"}}
    container = build_stateful_set(d)["spec"]["template"]["spec"]["containers"][0]
    assert container["imagePullPolicy"] == "Always"
    assert container["resources"]["limits"] == {"memory": "512Mi"}

import pytest
import urllib3
from kubernetes.client.rest import ApiException

from smr.kube import KubernetesStore
from smr.naming import ManagedObjectKey
from smr.settings import Settings
from smr.store import (
    AlreadyExists,
    Conflict,
    InMemoryStore,
    NotFound,
    StoreGateway,
    TransientStoreError,
    build_store,
)


def _cm(name="c1", namespace="ns", **meta):
    return {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": name, "namespace": namespace, **meta}, "data": {}}


def test_memory_store_create_get_update():
    store = InMemoryStore()
    created = store.create(_cm())

    assert created["metadata"]["uid"]
    assert created["metadata"]["resourceVersion"] == "1"
    got = store.get(ManagedObjectKey("ConfigMap", "ns", "c1"))
    assert got == created

    got["data"] = {"k": "v"}
    updated = store.update(got)
    assert updated["metadata"]["resourceVersion"] == "2"
    assert updated["metadata"]["uid"] == created["metadata"]["uid"]


def test_memory_store_returns_copies():
    store = InMemoryStore()
    store.create(_cm())
    got = store.get(ManagedObjectKey("ConfigMap", "ns", "c1"))
    got["data"]["x"] = "y"
    assert store.get(ManagedObjectKey("ConfigMap", "ns", "c1"))["data"] == {}


def test_memory_store_errors():
    store = InMemoryStore()
    with pytest.raises(NotFound):
        store.get(ManagedObjectKey("ConfigMap", "ns", "c1"))
    with pytest.raises(NotFound):
        store.update(_cm())

    first = store.create(_cm())
    with pytest.raises(AlreadyExists):
        store.create(_cm())

    store.update(first)
    with pytest.raises(Conflict):
        store.update(first)  # stale resourceVersion


def test_memory_store_list_filters_by_kind_and_namespace():
    store = InMemoryStore()
    store.create(_cm("a", "ns1"))
    store.create(_cm("b", "ns2"))
    assert [o["metadata"]["name"] for o in store.list("ConfigMap")] == ["a", "b"]
    assert [o["metadata"]["name"] for o in store.list("ConfigMap", "ns2")] == ["b"]
    assert store.list("Service") == []


def test_store_gateway_requires_every_operation():
    class GetOnly(StoreGateway):
        def get(self, key):
            raise NotFound(str(key))

    with pytest.raises(TypeError):
        GetOnly()
    with pytest.raises(TypeError):
        StoreGateway()


def test_build_store_selects_backend():
    assert isinstance(build_store(Settings(store_backend="memory")), InMemoryStore)
    # The kubernetes backend loads its config lazily, so building it does not contact a cluster.
    assert isinstance(build_store(Settings(store_backend="kubernetes")), KubernetesStore)
    with pytest.raises(ValueError):
        build_store(Settings(store_backend="etcd"))


class _FakeCore:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def read_namespaced_config_map(self, name, namespace, **kw):
        self.calls.append(("read", name, namespace))
        if self.error:
            raise self.error
        return {"metadata": {"name": name, "namespace": namespace}, "data": {}}

    def create_namespaced_config_map(self, namespace, body, **kw):
        self.calls.append(("create", namespace, body))
        if self.error:
            raise self.error
        return body

    def replace_namespaced_config_map(self, name, namespace, body, **kw):
        self.calls.append(("replace", name, namespace))
        if self.error:
            raise self.error
        return body


class _FakeCustom:
    def list_cluster_custom_object(self, group, version, plural, **kw):
        return {"items": [{"kind": "Seaweed", "metadata": {"name": "c1", "namespace": "ns"}}]}


def _kube(core=None):
    return KubernetesStore(apis={"core": core or _FakeCore(), "custom": _FakeCustom()})


def test_kube_store_get_stamps_kind():
    obj = _kube().get(ManagedObjectKey("ConfigMap", "ns", "c1"))
    assert obj["kind"] == "ConfigMap"
    assert obj["apiVersion"] == "v1"


@pytest.mark.parametrize(
    "op,error,expected",
    [
        ("get", ApiException(status=404, reason="Not Found"), NotFound),
        ("get", ApiException(status=500, reason="Internal Server Error"), TransientStoreError),
        ("get", urllib3.exceptions.MaxRetryError(None, "/api/v1"), TransientStoreError),
        ("create", ApiException(status=409, reason="Conflict"), AlreadyExists),
        ("update", ApiException(status=409, reason="Conflict"), Conflict),
        ("update", ApiException(status=503, reason="Service Unavailable"), TransientStoreError),
    ],
)
def test_kube_store_maps_errors(op, error, expected):
    store = _kube(_FakeCore(error))
    with pytest.raises(expected):
        if op == "get":
            store.get(ManagedObjectKey("ConfigMap", "ns", "c1"))
        elif op == "create":
            store.create(_cm())
        else:
            store.update(_cm())


def test_kube_store_lists_custom_resources():
    items = _kube().list("Seaweed")
    assert [i["metadata"]["name"] for i in items] == ["c1"]


def test_kube_store_rejects_unknown_kind():
    with pytest.raises(ValueError):
        _kube().get(ManagedObjectKey("Secret", "ns", "s1"))

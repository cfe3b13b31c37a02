from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .naming import SEAWEED_GROUP, SEAWEED_KIND, SEAWEED_PLURAL, SEAWEED_VERSION, ManagedObjectKey, key_of
from .store import AlreadyExists, Conflict, NotFound, StoreGateway, TransientStoreError

# kind -> (api, method suffix, apiVersion)
_TYPED_KINDS: dict[str, tuple[str, str, str]] = {
    "Service": ("core", "service", "v1"),
    "ConfigMap": ("core", "config_map", "v1"),
    "StatefulSet": ("apps", "stateful_set", "apps/v1"),
}


@contextmanager
def _translate_errors(key: ManagedObjectKey, on_conflict: type[Exception]) -> Iterator[None]:
    try:
        yield
    except ApiException as e:
        if e.status == 404:
            raise NotFound(str(key)) from e
        if e.status == 409:
            raise on_conflict(f"{key}: {e.reason}") from e
        raise TransientStoreError(f"{key}: HTTP {e.status} {e.reason}") from e
    except urllib3.exceptions.HTTPError as e:
        raise TransientStoreError(f"{key}: {type(e).__name__}: {e}") from e


class KubernetesStore(StoreGateway):
    """Store gateway backed by the Kubernetes API.

    Typed objects (Service, ConfigMap, StatefulSet) and the Seaweed custom
    resource are exchanged as plain dicts in API (camelCase) form.
    """

    def __init__(
        self,
        kubeconfig: str | None = None,
        request_timeout_s: int = 10,
        api_client: Any = None,
        apis: dict[str, Any] | None = None,
    ):
        self.kubeconfig = kubeconfig
        self.request_timeout_s = request_timeout_s
        self._api_client = api_client
        # "core" / "apps" / "custom" -> pre-built API objects
        self._apis = dict(apis or {})

    def _client(self) -> Any:
        if self._api_client is None:
            try:
                config.load_incluster_config()
            except config.ConfigException:
                config.load_kube_config(config_file=self.kubeconfig)
            self._api_client = client.ApiClient()
        return self._api_client

    def _api(self, which: str) -> Any:
        if which not in self._apis:
            if which == "core":
                self._apis[which] = client.CoreV1Api(self._client())
            elif which == "apps":
                self._apis[which] = client.AppsV1Api(self._client())
            else:
                self._apis[which] = client.CustomObjectsApi(self._client())
        return self._apis[which]

    def _to_dict(self, obj: Any, kind: str, api_version: str) -> dict[str, Any]:
        out = obj if isinstance(obj, dict) else self._client().sanitize_for_serialization(obj)
        out["kind"] = kind
        out["apiVersion"] = api_version
        return out

    def _typed(self, kind: str) -> tuple[Any, str, str]:
        try:
            which, suffix, api_version = _TYPED_KINDS[kind]
        except KeyError:
            raise ValueError(f"Unsupported kind '{kind}'") from None
        return self._api(which), suffix, api_version

    def get(self, key: ManagedObjectKey) -> dict[str, Any]:
        with _translate_errors(key, Conflict):
            if key.kind == SEAWEED_KIND:
                obj = self._api("custom").get_namespaced_custom_object(
                    SEAWEED_GROUP, SEAWEED_VERSION, key.namespace, SEAWEED_PLURAL, key.name,
                    _request_timeout=self.request_timeout_s,
                )
                return obj
            api, suffix, api_version = self._typed(key.kind)
            obj = getattr(api, f"read_namespaced_{suffix}")(key.name, key.namespace, _request_timeout=self.request_timeout_s)
            return self._to_dict(obj, key.kind, api_version)

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        key = key_of(obj)
        with _translate_errors(key, AlreadyExists):
            if key.kind == SEAWEED_KIND:
                return self._api("custom").create_namespaced_custom_object(
                    SEAWEED_GROUP, SEAWEED_VERSION, key.namespace, SEAWEED_PLURAL, obj,
                    _request_timeout=self.request_timeout_s,
                )
            api, suffix, api_version = self._typed(key.kind)
            created = getattr(api, f"create_namespaced_{suffix}")(key.namespace, obj, _request_timeout=self.request_timeout_s)
            return self._to_dict(created, key.kind, api_version)

    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        key = key_of(obj)
        with _translate_errors(key, Conflict):
            if key.kind == SEAWEED_KIND:
                return self._api("custom").replace_namespaced_custom_object(
                    SEAWEED_GROUP, SEAWEED_VERSION, key.namespace, SEAWEED_PLURAL, key.name, obj,
                    _request_timeout=self.request_timeout_s,
                )
            api, suffix, api_version = self._typed(key.kind)
            updated = getattr(api, f"replace_namespaced_{suffix}")(key.name, key.namespace, obj, _request_timeout=self.request_timeout_s)
            return self._to_dict(updated, key.kind, api_version)

    def list(self, kind: str, namespace: str | None = None) -> list[dict[str, Any]]:
        key = ManagedObjectKey(kind=kind, namespace=namespace or "*", name="*")
        with _translate_errors(key, Conflict):
            if kind == SEAWEED_KIND:
                custom = self._api("custom")
                if namespace:
                    resp = custom.list_namespaced_custom_object(
                        SEAWEED_GROUP, SEAWEED_VERSION, namespace, SEAWEED_PLURAL,
                        _request_timeout=self.request_timeout_s,
                    )
                else:
                    resp = custom.list_cluster_custom_object(
                        SEAWEED_GROUP, SEAWEED_VERSION, SEAWEED_PLURAL, _request_timeout=self.request_timeout_s
                    )
                return list(resp.get("items") or [])
            api, suffix, api_version = self._typed(kind)
            if namespace:
                resp = getattr(api, f"list_namespaced_{suffix}")(namespace, _request_timeout=self.request_timeout_s)
            else:
                resp = getattr(api, f"list_{suffix}_for_all_namespaces")(_request_timeout=self.request_timeout_s)
            return [self._to_dict(item, kind, api_version) for item in resp.items]

    def delete(self, key: ManagedObjectKey) -> None:
        # Foreground propagation lets the API server's GC remove owned objects.
        body = client.V1DeleteOptions(propagation_policy="Foreground")
        with _translate_errors(key, Conflict):
            if key.kind == SEAWEED_KIND:
                self._api("custom").delete_namespaced_custom_object(
                    SEAWEED_GROUP, SEAWEED_VERSION, key.namespace, SEAWEED_PLURAL, key.name, body=body,
                    _request_timeout=self.request_timeout_s,
                )
                return
            api, suffix, _ = self._typed(key.kind)
            getattr(api, f"delete_namespaced_{suffix}")(key.name, key.namespace, body=body, _request_timeout=self.request_timeout_s)

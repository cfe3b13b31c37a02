from __future__ import annotations

import secrets
from dataclasses import asdict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from smr import db
from smr.api_models import ClusterRequest
from smr.dispatcher import Dispatcher
from smr.engine import STEPS
from smr.naming import key_for, seaweed_key
from smr.runtime import RuntimeState
from smr.settings import settings
from smr.store import Conflict, NotFound, StoreError, build_store

app = FastAPI(title="Seaweed Master Reconciler")
security = HTTPBasic()

store = build_store(settings)
runtime = RuntimeState()
dispatcher = Dispatcher(store, runtime)


def get_current_username(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    if not (
        secrets.compare_digest(credentials.username, settings.admin_user)
        and secrets.compare_digest(credentials.password, settings.admin_password)
    ):
        raise HTTPException(status_code=401, detail="Invalid credentials", headers={"WWW-Authenticate": "Basic"})
    return credentials.username


@app.on_event("startup")
def startup() -> None:
    db.init_db()
    if settings.start_dispatcher:
        dispatcher.start()


@app.on_event("shutdown")
def shutdown() -> None:
    dispatcher.stop()


@app.get("/health")
def health() -> dict:
    return {"status": "healthy"}


def _status_payload(namespace: str, name: str) -> dict:
    st = runtime.get(namespace, name)
    if st is None:
        return {"namespace": namespace, "name": name, "phase": "pending", "reason": ""}
    return st.to_dict()


@app.put("/clusters")
def apply_cluster(req: ClusterRequest, username: str = Depends(get_current_username)) -> dict:
    """Create or update the Seaweed record, then trigger a pass for it."""
    desired = req.to_desired()
    key = seaweed_key(desired.name, desired.namespace)
    doc = desired.to_resource()
    try:
        try:
            current = store.get(key)
        except NotFound:
            store.create(doc)
            action = "created"
        else:
            meta = current.get("metadata") or {}
            doc["metadata"]["uid"] = meta.get("uid")
            doc["metadata"]["resourceVersion"] = meta.get("resourceVersion")
            store.update(doc)
            action = "updated"
    except Conflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"{type(e).__name__}: {e}")

    db.log_event("INFO", f"Seaweed record {action} by {username}", cluster=desired.name, namespace=desired.namespace)
    dispatcher.trigger(desired.namespace, desired.name)
    return {"action": action, "status": _status_payload(desired.namespace, desired.name)}


@app.get("/clusters")
def list_clusters(username: str = Depends(get_current_username)) -> list[dict]:
    return [st.to_dict() for st in runtime.list_records()]


@app.get("/clusters/{namespace}/{name}")
def get_cluster(namespace: str, name: str, username: str = Depends(get_current_username)) -> dict:
    try:
        store.get(seaweed_key(name, namespace))
    except NotFound:
        raise HTTPException(status_code=404, detail=f"Unknown cluster '{namespace}/{name}'")
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"{type(e).__name__}: {e}")

    objects = []
    for role in STEPS:
        key = key_for(name, namespace, role)
        try:
            obj = store.get(key)
            objects.append({"kind": key.kind, "name": key.name, "exists": True,
                            "resourceVersion": (obj.get("metadata") or {}).get("resourceVersion")})
        except NotFound:
            objects.append({"kind": key.kind, "name": key.name, "exists": False, "resourceVersion": None})
        except StoreError as e:
            raise HTTPException(status_code=503, detail=f"{type(e).__name__}: {e}")

    passes = [asdict(p) for p in db.list_passes(namespace, name, limit=10)]
    return {"status": _status_payload(namespace, name), "objects": objects, "passes": passes}


@app.post("/clusters/{namespace}/{name}/reconcile", status_code=status.HTTP_202_ACCEPTED)
def trigger_reconcile(namespace: str, name: str, username: str = Depends(get_current_username)) -> dict:
    dispatcher.trigger(namespace, name)
    db.log_event("INFO", f"Reconcile requested by {username}", cluster=name, namespace=namespace)
    return {"triggered": f"{namespace}/{name}"}


@app.get("/events")
def events(limit: int = 50, cluster: str | None = None, username: str = Depends(get_current_username)) -> list[dict]:
    limit = max(1, min(500, int(limit)))
    return db.latest_events(limit=limit, cluster=cluster)

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("SMR_DB_PATH", "smr.db")
    poll_interval_s: float = _env_float("SMR_POLL_INTERVAL_S", 1.0)

    # Requeue policy
    requeue_after_s: float = _env_float("SMR_REQUEUE_AFTER_S", 5.0)
    backoff_base_s: float = _env_float("SMR_BACKOFF_BASE_S", 2.0)
    backoff_max_s: float = _env_float("SMR_BACKOFF_MAX_S", 300.0)
    resync_interval_s: float = _env_float("SMR_RESYNC_INTERVAL_S", 60.0)

    # Object store
    store_backend: str = os.getenv("SMR_STORE_BACKEND", "memory")  # memory|kubernetes
    watch_namespace: str | None = os.getenv("SMR_WATCH_NAMESPACE") or None
    kubeconfig: str | None = os.getenv("SMR_KUBECONFIG") or None
    request_timeout_s: int = _env_int("SMR_REQUEST_TIMEOUT_S", 10)

    # API
    admin_user: str = os.getenv("SMR_ADMIN_USER", "admin")
    admin_password: str = os.getenv("SMR_ADMIN_PASSWORD", "admin")
    start_dispatcher: bool = _env_bool("SMR_START_DISPATCHER", True)


settings = Settings()

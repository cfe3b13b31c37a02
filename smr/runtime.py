from __future__ import annotations

from dataclasses import asdict, dataclass, field
from threading import Lock
from typing import Any

from .db import utc_now


@dataclass
class RecordStatus:
    namespace: str
    name: str
    phase: str = "pending"  # pending|complete|in_progress|failed|parked
    reason: str = ""
    failures: int = 0  # consecutive failed passes
    next_due: float = 0.0  # clock value; 0 means now
    resource_version: str = ""
    passes: int = 0
    last_run: str | None = None
    first_seen: str = field(default_factory=utc_now)

    @property
    def parked(self) -> bool:
        return self.phase == "parked"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class RuntimeState:
    """In-memory scheduling state of every tracked record."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.records: dict[tuple[str, str], RecordStatus] = {}

    def observe(self, namespace: str, name: str, resource_version: str) -> RecordStatus:
        """Track a record; a changed revision makes it due now (and unparks it)."""
        with self.lock:
            st = self.records.get((namespace, name))
            if st is None:
                st = RecordStatus(namespace=namespace, name=name, resource_version=resource_version)
                self.records[(namespace, name)] = st
            elif st.resource_version != resource_version:
                st.resource_version = resource_version
                st.next_due = 0.0
                if st.parked:
                    st.phase = "pending"
            return RecordStatus(**asdict(st))

    def trigger(self, namespace: str, name: str) -> None:
        with self.lock:
            st = self.records.setdefault((namespace, name), RecordStatus(namespace=namespace, name=name))
            st.next_due = 0.0
            if st.parked:
                st.phase = "pending"

    def record(self, namespace: str, name: str, phase: str, reason: str, failures: int, next_due: float) -> None:
        with self.lock:
            st = self.records.setdefault((namespace, name), RecordStatus(namespace=namespace, name=name))
            st.phase = phase
            st.reason = reason
            st.failures = failures
            st.next_due = next_due
            st.passes += 1
            st.last_run = utc_now()

    def forget(self, namespace: str, name: str) -> None:
        with self.lock:
            self.records.pop((namespace, name), None)

    def keys(self) -> set[tuple[str, str]]:
        with self.lock:
            return set(self.records)

    def get(self, namespace: str, name: str) -> RecordStatus | None:
        with self.lock:
            st = self.records.get((namespace, name))
            return RecordStatus(**asdict(st)) if st else None

    def list_records(self) -> list[RecordStatus]:
        with self.lock:
            return [RecordStatus(**asdict(st)) for _, st in sorted(self.records.items())]

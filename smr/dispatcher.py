from __future__ import annotations

import time
from threading import Event, Thread
from typing import Any, Callable

from pydantic import ValidationError

from . import db
from .builders import BuilderInvariantViolation
from .engine import MasterReconciler
from .models import DesiredState, Phase, StepOutcome, failed
from .naming import SEAWEED_KIND
from .runtime import RuntimeState
from .settings import Settings, settings
from .store import StoreGateway


class Dispatcher:
    """Drives MasterReconciler for every Seaweed record in the store.

    One thread reconciles due records one after another, so a record is never
    reconciled concurrently with itself. Outcomes decide when a record is due
    again: fixed delay after IN_PROGRESS, exponential backoff after FAILED,
    periodic resync after COMPLETE.
    """

    def __init__(
        self,
        store: StoreGateway,
        runtime: RuntimeState,
        cfg: Settings = settings,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.runtime = runtime
        self.cfg = cfg
        self.clock = clock
        self.reconciler = MasterReconciler(store)
        self._stop = Event()
        self._wake = Event()
        self._thr: Thread | None = None

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = Thread(target=self._loop, daemon=True)
        self._thr.start()

    def stop(self) -> None:
        self._stop.set()
        self._wake.set()

    def trigger(self, namespace: str, name: str) -> None:
        self.runtime.trigger(namespace, name)
        self._wake.set()

    def _loop(self) -> None:
        db.log_event("INFO", "Dispatcher started")
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception as e:
                db.log_event("ERROR", f"Dispatcher tick failed: {type(e).__name__}: {e}")
            self._wake.wait(max(0.1, self.cfg.poll_interval_s))
            self._wake.clear()
        db.log_event("INFO", "Dispatcher stopped")

    def tick(self) -> int:
        """Reconcile every due record once. Returns the number of passes run."""
        docs = self.store.list(SEAWEED_KIND, self.cfg.watch_namespace)
        seen: set[tuple[str, str]] = set()
        ran = 0
        for doc in docs:
            meta = doc.get("metadata") or {}
            namespace, name = meta.get("namespace") or "default", meta.get("name") or ""
            seen.add((namespace, name))
            st = self.runtime.observe(namespace, name, str(meta.get("resourceVersion") or ""))
            if st.parked or st.next_due > self.clock():
                continue
            self._run(namespace, name, doc, st.failures)
            ran += 1

        for namespace, name in self.runtime.keys() - seen:
            # Owned objects are left to the store's garbage collector.
            self.runtime.forget(namespace, name)
            db.log_event("INFO", "Seaweed record deleted, no longer tracked", cluster=name, namespace=namespace)
        return ran

    def _run(self, namespace: str, name: str, doc: dict[str, Any], failures: int) -> None:
        try:
            desired = DesiredState.from_resource(doc)
        except ValidationError as e:
            self._park(namespace, name, f"invalid record: {e.error_count()} validation error(s)")
            return
        except (AttributeError, TypeError) as e:
            self._park(namespace, name, f"malformed record: {type(e).__name__}: {e}")
            return
        try:
            outcome = self.reconciler.reconcile(desired)
        except BuilderInvariantViolation as e:
            self._park(namespace, name, f"builder invariant violated: {e}")
            return
        except Exception as e:
            # Confined to this record; it backs off like any failed pass.
            outcome = failed(f"unexpected-error: {type(e).__name__}: {e}")
        self._schedule(namespace, name, outcome, failures)

    def _schedule(self, namespace: str, name: str, outcome: StepOutcome, failures: int) -> None:
        now = self.clock()
        if outcome.phase is Phase.FAILED:
            failures += 1
            delay = self.backoff(failures)
            db.log_event("WARN", f"Reconcile failed ({outcome.reason}); retry in {delay:g}s", cluster=name, namespace=namespace)
        elif outcome.phase is Phase.IN_PROGRESS:
            failures = 0
            delay = self.cfg.requeue_after_s
        else:
            prev = self.runtime.get(namespace, name)
            if prev is None or prev.phase != Phase.COMPLETE.value:
                db.log_event("INFO", "Master tier converged", cluster=name, namespace=namespace)
            failures = 0
            delay = self.cfg.resync_interval_s
        self.runtime.record(namespace, name, outcome.phase.value, outcome.reason, failures, now + delay)
        db.record_pass(namespace, name, outcome.phase.value, outcome.reason)

    def backoff(self, failures: int) -> float:
        return min(self.cfg.backoff_max_s, self.cfg.backoff_base_s * (2 ** max(0, failures - 1)))

    def _park(self, namespace: str, name: str, reason: str) -> None:
        db.log_event("ERROR", f"Not retrying until the record changes: {reason}", cluster=name, namespace=namespace)
        self.runtime.record(namespace, name, "parked", reason, 0, 0.0)
        db.record_pass(namespace, name, "error", reason)

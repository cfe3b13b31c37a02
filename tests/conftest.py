import os as _os
import sys
from dataclasses import replace

# Ensure project root is importable (so `import main` / `import cli` work without installing)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

import pytest

from smr import db
from smr.engine import MasterReconciler
from smr.models import DesiredState
from smr.settings import settings
from smr.store import InMemoryStore


@pytest.fixture(autouse=True)
def event_db(tmp_path, monkeypatch):
    """Give every test its own sqlite event log."""
    monkeypatch.setattr(db, "settings", replace(settings, db_path=str(tmp_path / "smr.db")))
    db.init_db()
    return db


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def desired():
    return DesiredState(name="cluster1", namespace="ns", uid="uid-cluster1", image="repo/master:1.0", replicas=3)


@pytest.fixture
def reconciler(store):
    return MasterReconciler(store)


def converge(reconciler, desired, max_passes=10):
    """Run passes until COMPLETE; return the outcomes seen."""
    outcomes = []
    for _ in range(max_passes):
        outcome = reconciler.reconcile(desired)
        outcomes.append(outcome)
        if outcome.done:
            return outcomes
    raise AssertionError(f"did not converge in {max_passes} passes: {outcomes}")

"""Seaweed Master Reconciler (SMR).

Converges the master tier of a SeaweedFS cluster, declared as a ``Seaweed``
custom resource, onto four managed objects:
 - a headless peer service for master-to-master discovery
 - a client service
 - a config map holding master.toml
 - a stateful set running ``weed master``

Each reconciliation pass advances at most one object and reports whether the
tier has converged; the dispatcher re-runs passes until it has.
"""

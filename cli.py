from __future__ import annotations

import argparse
import json
import os
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Seaweed Master Reconciler CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    p.add_argument("--user", default=os.getenv("SMR_ADMIN_USER", "admin"))
    p.add_argument("--password", default=os.getenv("SMR_ADMIN_PASSWORD", "admin"))
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("clusters", help="List tracked clusters and their reconcile phase")

    s_st = sub.add_parser("status", help="Show one cluster and its managed objects")
    s_st.add_argument("--namespace", default="default")
    s_st.add_argument("--name", required=True)

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--cluster")

    s_apply = sub.add_parser("apply", help="Create/update a Seaweed master tier")
    s_apply.add_argument("--name", required=True)
    s_apply.add_argument("--namespace", default="default")
    s_apply.add_argument("--image", required=True)
    s_apply.add_argument("--replicas", type=int, default=1)
    s_apply.add_argument("--volume-size-limit-mb", type=int)
    s_apply.add_argument("--default-replication")
    s_apply.add_argument("--service-type", default="ClusterIP")
    s_apply.add_argument("--config-file", help="Path to a master.toml to ship in the config map")

    s_rec = sub.add_parser("reconcile", help="Request an immediate reconcile pass")
    s_rec.add_argument("--namespace", default="default")
    s_rec.add_argument("--name", required=True)

    args = p.parse_args(argv)

    base = args.api.rstrip("/")
    auth = (args.user, args.password)

    if args.cmd == "clusters":
        _print(requests.get(f"{base}/clusters", auth=auth, timeout=10).json())
        return 0

    if args.cmd == "status":
        r = requests.get(f"{base}/clusters/{args.namespace}/{args.name}", auth=auth, timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.cluster:
            params["cluster"] = args.cluster
        _print(requests.get(f"{base}/events", params=params, auth=auth, timeout=10).json())
        return 0

    if args.cmd == "apply":
        payload = {
            "name": args.name,
            "namespace": args.namespace,
            "image": args.image,
            "replicas": args.replicas,
            "service_type": args.service_type,
        }
        if args.volume_size_limit_mb is not None:
            payload["volume_size_limit_mb"] = args.volume_size_limit_mb
        if args.default_replication:
            payload["default_replication"] = args.default_replication
        if args.config_file:
            with open(args.config_file, encoding="utf-8") as f:
                payload["config"] = f.read()
        r = requests.put(f"{base}/clusters", json=payload, auth=auth, timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "reconcile":
        r = requests.post(f"{base}/clusters/{args.namespace}/{args.name}/reconcile", auth=auth, timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))

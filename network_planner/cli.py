"""
Command line entry point: network-planner <command> payload.json

    optimize     rolling-lease (or fixed, per config) run of one payload
    fixed        fixed-lease MILP regardless of the configured mode
    sweep        one scenario per node count, minNodes..maxNodes
    lease-sweep  one scenario per lease length

Writes the JSON response to stdout or --output. Exit code 0 on success,
2 when the payload cannot be read or planning fails (the error body is still
written).
"""

import argparse
import json
import logging
import os
import sys

from network_planner.errors import PlannerError
from network_planner.service import error_response, run_lease_sweep, run_optimization, run_sweep

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(level: str = None) -> None:
    """Console logging for command-line runs; level from --log-level or LOG_LEVEL."""
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root = logging.getLogger("network_planner")
    root.setLevel(level)
    # Avoid duplicate handlers if called multiple times
    if not root.handlers:
        root.addHandler(handler)


def _load_payload(path: str) -> dict:
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Multi-year rolling-lease facility network planner"
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING (default: LOG_LEVEL or INFO)")
    parser.add_argument("--output", default=None, help="Write the JSON response here instead of stdout")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("optimize", help="Run the rolling-lease optimizer").add_argument("payload")
    sub.add_parser("fixed", help="Run the fixed-lease MILP").add_argument("payload")
    sweep_parser = sub.add_parser("sweep", help="Sweep node counts minNodes..maxNodes")
    sweep_parser.add_argument("payload")
    sweep_parser.add_argument("--min-nodes", type=int, default=None)
    sweep_parser.add_argument("--max-nodes", type=int, default=None)
    sweep_parser.add_argument("--workers", type=int, default=None)
    lease_parser = sub.add_parser("lease-sweep", help="Sweep lease lengths")
    lease_parser.add_argument("payload")
    lease_parser.add_argument("--lease-years", type=int, nargs="+", default=None)

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        payload = _load_payload(args.payload)
        if args.command == "optimize":
            response = run_optimization(payload)
        elif args.command == "fixed":
            config = dict(payload.get("config") or {})
            config["optimization"] = {**(config.get("optimization") or {}), "mode": "fixed_lease"}
            response = run_optimization({**payload, "config": config})
        elif args.command == "sweep":
            overrides = {"minNodes": args.min_nodes, "maxNodes": args.max_nodes,
                         "maxWorkers": args.workers}
            response = run_sweep({**payload, **{k: v for k, v in overrides.items() if v is not None}})
        else:
            if args.lease_years:
                payload = {**payload, "leaseYears": args.lease_years}
            response = run_lease_sweep(payload)
        code = 0
    except (PlannerError, OSError, json.JSONDecodeError) as exc:
        response = error_response(exc if isinstance(exc, PlannerError)
                                  else PlannerError(f"cannot read payload: {exc}"))
        code = 2

    text = json.dumps(response, indent=2)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            fh.write(text)
    else:
        print(text)
    return code


if __name__ == "__main__":
    sys.exit(main())

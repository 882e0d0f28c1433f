#!/usr/bin/env python3
"""Run one reconciliation pass; intended for a daily cron or scheduler job."""

import argparse
import json
import logging
import os
import sys

from pickup_sync.dependencies import get_orchestrator


def main() -> int:
    parser = argparse.ArgumentParser(description="Reconcile recurring pickups with the routing service.")
    parser.add_argument("--preview", action="store_true", help="Report what a run would do without changing anything.")
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "INFO"))
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    orchestrator = get_orchestrator()
    if args.preview:
        preview = orchestrator.preview()
        print(json.dumps({"orders_to_create": preview.orders_to_create, "errors": preview.errors}, indent=2))
        return 0

    result = orchestrator.run()
    print(json.dumps(result.to_record(), indent=2))
    return 1 if result.status == "failed" else 0


if __name__ == "__main__":
    sys.exit(main())

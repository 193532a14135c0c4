# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
permengine-sweep: run the expiration sweep against a shared record store.

Any node may run it; the sweep is idempotent. By default one pass is run and
a JSON summary is printed. ``--loop`` keeps sweeping every interval.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from ..common.utils import coerce_duration
from ..core.config import EngineConfig
from ..core.engine import PermissionEngine
from ..errors import PermissionEngineError
from ..store import create_store


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="permengine-sweep",
        description="Expire overdue delegations, emergency elevations and overrides.",
    )
    parser.add_argument("--config", "-c", help="YAML or JSON engine configuration file")
    parser.add_argument("--store", choices=["redis", "memory"], default="redis",
                        help="record store backend (default: redis)")
    parser.add_argument("--redis-url", help="override the configured Redis URL")
    parser.add_argument("--archive", action="store_true",
                        help="also archive audit records past their retention date")
    parser.add_argument("--loop", action="store_true", help="keep sweeping every interval")
    parser.add_argument("--interval", type=coerce_duration,
                        help="sweep interval for --loop, e.g. 30s, 5m")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def load_config(args: argparse.Namespace) -> EngineConfig:
    config = EngineConfig.from_file(args.config) if args.config else EngineConfig.from_env()
    if args.redis_url:
        config.redis_url = args.redis_url
    # Expiry is driven by the sweep only; no in-process timers in a CLI run.
    config.in_process_timers = False
    return config


async def run(args: argparse.Namespace) -> int:
    config = load_config(args)
    engine = PermissionEngine.new(config, store=create_store(args.store, config))

    try:
        if args.loop:
            await engine.run_sweeper(args.interval)
            return 0

        result = await engine.reconcile()
        summary = {
            "delegations_expired": result.delegations_expired,
            "emergency_contexts_expired": result.emergency_contexts_expired,
            "overrides_expired": result.overrides_expired,
            "schedules_completed": result.schedules_completed,
            "errors": result.errors,
        }
        if args.archive:
            summary["audit_records_archived"] = await engine.audit.archive_old_records()

        print(json.dumps(summary, indent=2))
        return 1 if result.errors else 0
    finally:
        await engine.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return asyncio.run(run(args))
    except PermissionEngineError as e:
        logger.error("Sweep failed: %s", e.message)
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())

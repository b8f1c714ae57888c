#!/usr/bin/env python3
"""
HerdGuard command line.

Operates on the cache configured through the environment (see
``CacheConfig``). Every subcommand prints JSON to stdout.

    herdguard info            backend configuration and health
    herdguard get KEY         read one logical key
    herdguard flush           delete every key in the namespace
    herdguard metrics         Prometheus exposition of this process
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from herdguard.cache.config import CacheConfig, create_cache_service, get_cache_config
from herdguard.core.error_handling import CacheConfigurationError
from herdguard.core.metrics import get_metrics_text
from herdguard.core.secrets import mask_url
from herdguard.logging_config import setup_json_logging

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_DEGRADED = 2


def _print_json(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


async def _info(config: CacheConfig) -> int:
    async with create_cache_service(config) as cache:
        info = cache.info()
    payload = info.to_dict()
    payload["redis_url"] = mask_url(config.redis_url) or None
    _print_json(payload)

    if info.distributed_configured and not info.distributed_healthy:
        return EXIT_DEGRADED
    return EXIT_OK


async def _get(config: CacheConfig, key: str) -> int:
    async with create_cache_service(config) as cache:
        value = await cache.get(key)
        stats = cache.stats()
    _print_json({"key": key, "hit": stats.hits > 0, "value": value})
    return EXIT_OK


async def _flush(config: CacheConfig) -> int:
    async with create_cache_service(config) as cache:
        removed = await cache.flush_namespace()
    _print_json({"namespace": config.namespace, "removed": removed})
    return EXIT_OK


def run_info(args: argparse.Namespace) -> int:
    """Show which backends the configured cache uses and whether Redis answers."""
    return asyncio.run(_info(args.config))


def run_get(args: argparse.Namespace) -> int:
    return asyncio.run(_get(args.config, args.key))


def run_flush(args: argparse.Namespace) -> int:
    return asyncio.run(_flush(args.config))


def run_metrics(args: argparse.Namespace) -> int:
    sys.stdout.write(get_metrics_text())
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="herdguard",
        description="HerdGuard cache administration\nUse `herdguard <subcommand>`",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level for diagnostics written to stderr (default: WARNING)",
    )
    parser.add_argument("--namespace", "-n", help="Override CACHE_NAMESPACE")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("info", help="Show backend configuration and health")

    gp = sub.add_parser("get", help="Read a cached value")
    gp.add_argument("key", help="Logical key, without the namespace prefix")

    sub.add_parser("flush", help="Delete every key in the namespace")
    sub.add_parser("metrics", help="Print Prometheus metrics")

    return parser


COMMANDS = {
    "info": run_info,
    "get": run_get,
    "flush": run_flush,
    "metrics": run_metrics,
}


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_CONFIG_ERROR)

    setup_json_logging(log_level=args.log_level, stream=sys.stderr)

    try:
        args.config = get_cache_config()
        if args.namespace:
            args.config.namespace = args.namespace
        code = COMMANDS[args.command](args)
    except CacheConfigurationError as e:
        _print_json({"error": e.to_dict()})
        sys.exit(EXIT_CONFIG_ERROR)

    sys.exit(code)


if __name__ == "__main__":
    main()

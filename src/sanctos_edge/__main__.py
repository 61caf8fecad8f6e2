"""Command-line entry point.

Run::

    sanctos-edge                          # edge node on http://0.0.0.0:8787
    sanctos-edge --stats-service --port 8788 --stats-path stats.json
"""
from __future__ import annotations

import argparse
import uuid

import uvicorn

from sanctos_edge.core.config import EdgeConfig
from sanctos_edge.core.constants import WORKER_BUILD
from sanctos_edge.utils.logging import configure_logging, get_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sanctos-edge", description="SanctOS Solana RPC caching edge node"
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8787, help="Bind port")
    parser.add_argument(
        "--stats-service",
        action="store_true",
        help="Serve only the stats actor (/ping, /bump, /get); run with one worker",
    )
    parser.add_argument(
        "--stats-path",
        default=None,
        help="JSON file the stats actor persists to (overrides SANCTOS_STATS_PATH)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    config = EdgeConfig.from_env()
    if args.stats_path:
        config = config.model_copy(update={"stats_path": args.stats_path})

    instance_id = uuid.uuid4().hex
    configure_logging(
        config.log_level, json=config.log_json, instance_id=instance_id, build=WORKER_BUILD
    )
    logger = get_logger(__name__)

    if args.stats_service:
        from sanctos_edge.stats.actor import InMemoryStatsStorage, JsonFileStatsStorage, StatsActor
        from sanctos_edge.stats.service import create_stats_app

        storage = (
            JsonFileStatsStorage(config.stats_path) if config.stats_path else InMemoryStatsStorage()
        )
        app = create_stats_app(StatsActor(storage, keep_days=config.stats_keep_days))
        logger.info("stats_service_starting", host=args.host, port=args.port)
    else:
        from sanctos_edge.core.proxy import EdgeProxy
        from sanctos_edge.server.app import create_app

        app = create_app(proxy=EdgeProxy.from_config(config, instance_id=instance_id))
        logger.info("edge_node_starting", host=args.host, port=args.port)

    uvicorn.run(app, host=args.host, port=args.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()

"""
server.py - Tracker service entry point.

Single-process service combining:
 - SQLite persistent storage via StorageManager
 - Update pipeline (fetcher, reconciler, lifecycle, batch scheduler)
 - Read cache with invalidation on every update
 - Operator API (FastAPI on uvicorn, port 8080)

Usage:
    python -m tracker.server serve [--api-port 8080] [--db-path data/tracker.db]
    python -m tracker.server run
    python -m tracker.server update ADDRESS [--dry-run]
    python -m tracker.server reset ADDRESS
    python -m tracker.server prune
"""

import argparse
import asyncio
import logging
import os
from typing import Optional

import uvicorn
from fastapi import FastAPI

from tracker import __version__
from tracker.cache import CacheInvalidator, ReadCache
from tracker.config import TrackerConfig
from tracker.errors import TrackerError
from tracker.fetcher import SnapshotFetcher
from tracker.lifecycle import LifecycleManager
from tracker.pipeline import ParticipantPipeline
from tracker.reconciler import Reconciler
from tracker.retention import prune_stats
from tracker.routers import register_all_routers
from tracker.scheduler import BatchScheduler
from tracker.storage import StorageManager

LOG_FORMAT = "%(asctime)s [%(name)-10s] %(levelname)-5s %(message)s"

logger = logging.getLogger("server")


class TrackerService:
    """Wires storage, the update pipeline, the read cache and the operator API."""

    def __init__(self, config: Optional[TrackerConfig] = None):
        self.config = config or TrackerConfig()

        # Storage + services are initialized async in init_services()
        self.storage: Optional[StorageManager] = None
        self.fetcher: Optional[SnapshotFetcher] = None
        self.cache = ReadCache()
        self.invalidator = CacheInvalidator(self.cache)
        self.reconciler: Optional[Reconciler] = None
        self.lifecycle: Optional[LifecycleManager] = None
        self.pipeline: Optional[ParticipantPipeline] = None
        self.scheduler: Optional[BatchScheduler] = None

        self._update_task: Optional[asyncio.Task] = None
        self._uvicorn_server: Optional[uvicorn.Server] = None

        self.app = FastAPI(title="Pool Participant Tracker", version=__version__)
        self.app.state.server = self
        register_all_routers(self.app)

    async def init_services(self, storage: Optional[StorageManager] = None,
                            fetcher: Optional[SnapshotFetcher] = None):
        """Initialize storage and wire up services (must be called in async context)."""
        cfg = self.config
        if storage is None:
            db_dir = os.path.dirname(cfg.db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
            storage = StorageManager(cfg.db_path)
            await storage.initialize()
        self.storage = storage

        self.fetcher = fetcher or SnapshotFetcher(
            cfg.api_url,
            max_retries=cfg.max_retries,
            retry_delay=cfg.retry_delay_sec,
            local_retries=cfg.local_read_retries,
            local_backoff=cfg.local_read_backoff_sec,
            timeout=cfg.http_timeout_sec,
        )
        self.reconciler = Reconciler(self.storage, self.invalidator)
        self.lifecycle = LifecycleManager(self.storage, self.invalidator)
        self.pipeline = ParticipantPipeline(
            self.storage, self.fetcher, self.reconciler, self.lifecycle,
        )
        self.scheduler = BatchScheduler(self.storage, self.pipeline, batch_size=cfg.batch_size)

        logger.info("Services initialized (db=%s, source=%s)", cfg.db_path, cfg.api_url)

    # -------------------------------------------------------------------
    # Periodic update loop
    # -------------------------------------------------------------------

    async def _update_loop(self):
        """Run a scheduler pass every update interval."""
        while True:
            try:
                await self.scheduler.run()
            except Exception:
                logger.exception("Error in update loop")
            await asyncio.sleep(self.config.update_interval_sec)

    async def start(self):
        """Start storage, the update loop, the cache sweeper and the API server."""
        await self.init_services()
        self.cache.start()
        self._update_task = asyncio.create_task(self._update_loop())

        config = uvicorn.Config(
            self.app,
            host="0.0.0.0",
            port=self.config.api_port,
            log_level="info",
        )
        self._uvicorn_server = uvicorn.Server(config)
        logger.info("Operator API starting on port %d", self.config.api_port)
        try:
            await self._uvicorn_server.serve()
        finally:
            await self.stop()

    async def stop(self):
        """Stop the update loop and release the store and HTTP client."""
        if self._update_task is not None:
            self._update_task.cancel()
            try:
                await self._update_task
            except asyncio.CancelledError:
                pass
            self._update_task = None
        await self.cache.stop()
        if self.fetcher is not None:
            await self.fetcher.aclose()
        if self.storage is not None:
            await self.storage.close()
            self.storage = None
        if self._uvicorn_server is not None:
            self._uvicorn_server.should_exit = True


# ---------------------------------------------------------------------------
# One-shot commands
# ---------------------------------------------------------------------------

async def _cmd_run(service: TrackerService) -> int:
    summary = await service.scheduler.run()
    return 1 if summary.errors and not summary.users else 0


async def _cmd_update(service: TrackerService, address: str, dry_run: bool) -> int:
    try:
        result = await service.pipeline.update_single(address, dry_run=dry_run)
    except TrackerError as exc:
        logger.error("Update of %s failed [%s]: %s", address, exc.kind.value, exc)
        return 1
    logger.info(
        "%s %s: outcome=%s changed=%s",
        "Dry run for" if dry_run else "Updated", address, result.outcome.value, result.changed,
    )
    return 0


async def _cmd_reset(service: TrackerService, address: str) -> int:
    participant = await service.lifecycle.reactivate(address)
    if participant is None:
        logger.error("Participant %s not found", address)
        return 1
    return 0


async def _cmd_prune(service: TrackerService) -> int:
    cfg = service.config
    await prune_stats(
        service.storage,
        participant_hours=cfg.participant_stats_retention_hours,
        worker_hours=cfg.worker_stats_retention_hours,
    )
    return 0


async def _run_command(service: TrackerService, args: argparse.Namespace) -> int:
    await service.init_services()
    try:
        if args.command == "run":
            return await _cmd_run(service)
        if args.command == "update":
            return await _cmd_update(service, args.address, args.dry_run)
        if args.command == "reset":
            return await _cmd_reset(service, args.address)
        if args.command == "prune":
            return await _cmd_prune(service)
        raise ValueError(f"unknown command: {args.command}")
    finally:
        await service.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ckpool participant stats tracker")
    parser.add_argument("--api-url", default=None, help="Pool API base URL or local root directory")
    parser.add_argument("--db-path", default=None, help="SQLite database path (default: data/tracker.db)")
    parser.add_argument("--batch-size", type=int, default=None, help="Participants per batch (default: 10)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Root log level")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Run one scheduler pass over all active participants")

    serve = sub.add_parser("serve", help="Run the periodic update loop and the operator API")
    serve.add_argument("--api-port", type=int, default=None, help="REST API port (default: 8080)")
    serve.add_argument("--interval", dest="update_interval_sec", type=float, default=None,
                       help="Seconds between scheduler passes (default: 60)")

    update = sub.add_parser("update", help="Update a single participant")
    update.add_argument("address")
    update.add_argument("--dry-run", action="store_true", help="Report changes without writing")

    reset = sub.add_parser("reset", help="Reactivate a participant and restart its grace period")
    reset.add_argument("address")

    sub.add_parser("prune", help="Delete stats points past their retention window")
    return parser


def main(argv=None) -> int:
    """CLI entry point for the tracker."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )

    config = TrackerConfig.from_env().with_overrides(
        api_url=args.api_url,
        db_path=args.db_path,
        batch_size=args.batch_size,
        api_port=getattr(args, "api_port", None),
        update_interval_sec=getattr(args, "update_interval_sec", None),
    )
    service = TrackerService(config)

    if args.command == "serve":
        logger.info("=" * 60)
        logger.info("  Pool Participant Tracker %s", __version__)
        logger.info("  Source:      %s", config.api_url)
        logger.info("  REST API:    http://localhost:%d", config.api_port)
        logger.info("  Database:    %s", config.db_path)
        logger.info("  Batch size:  %d", config.batch_size)
        logger.info("=" * 60)
        try:
            asyncio.run(service.start())
        except KeyboardInterrupt:
            logger.info("Shutting down...")
        return 0

    return asyncio.run(_run_command(service, args))


if __name__ == "__main__":
    raise SystemExit(main())

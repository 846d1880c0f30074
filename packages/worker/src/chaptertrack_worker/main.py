"""chaptertrack worker process.

Usage:
    chaptertrack-worker [--queues series-resolution,activity] [--no-schedulers]

Runs one consumer per queue, the impression buffer flush loop and the
maintenance schedulers until SIGINT/SIGTERM.
"""

import argparse
import asyncio
import signal
from typing import Optional

from chaptertrack_activity import ActivityEngine, ImpressionBuffer, TierDecision
from chaptertrack_common import ConfigurationError, Settings, configure_logging, get_logger, get_settings
from chaptertrack_resolver import RESOLUTION_QUEUE, MetadataResolver
from chaptertrack_storage import check_connection_health, close_connection_pool
from chaptertrack_sync import ChapterSynchronizer, ScraperAdapter
from md_client import MDClient
from prometheus_client import start_http_server as start_prometheus_server

from chaptertrack_worker.handlers import (
    ACTIVITY_QUEUE,
    SYNC_QUEUE,
    activity_handlers,
    resolution_exhausted_hook,
    resolution_handlers,
    sync_handlers,
)
from chaptertrack_worker.metrics import IMPRESSION_FLUSHES, TIER_CHANGES
from chaptertrack_worker.runner import JobRunner
from chaptertrack_worker.scheduler import maintenance_tasks, run_periodic

logger = get_logger(__name__)

DEFAULT_QUEUES = (RESOLUTION_QUEUE, SYNC_QUEUE, ACTIVITY_QUEUE)


def _count_tier_change(series_id, decision: TierDecision) -> None:
    TIER_CHANGES.labels(tier=decision.tier.value, reason=decision.reason).inc()


class _CountingImpressionBuffer(ImpressionBuffer):
    async def flush(self) -> int:
        try:
            flushed = await super().flush()
        except Exception:
            IMPRESSION_FLUSHES.labels(status="error").inc()
            raise
        if flushed:
            IMPRESSION_FLUSHES.labels(status="success").inc()
        return flushed


def build_runners(
    queues: tuple[str, ...],
    settings: Settings,
    provider: MDClient,
    engine: ActivityEngine,
    impressions: ImpressionBuffer,
    adapters: Optional[dict[str, ScraperAdapter]] = None,
) -> list[JobRunner]:
    """One JobRunner per requested queue."""
    resolver = MetadataResolver(provider, settings=settings)
    synchronizer = ChapterSynchronizer(activity=engine)

    runners = []
    for queue in queues:
        if queue == RESOLUTION_QUEUE:
            runners.append(
                JobRunner(
                    queue,
                    resolution_handlers(resolver),
                    batch_size=settings.worker_batch_size,
                    on_exhausted=resolution_exhausted_hook(resolver),
                )
            )
        elif queue == SYNC_QUEUE:
            runners.append(JobRunner(queue, sync_handlers(synchronizer, adapters or {}), batch_size=1))
        elif queue == ACTIVITY_QUEUE:
            runners.append(
                JobRunner(queue, activity_handlers(engine, impressions), batch_size=settings.worker_batch_size)
            )
        else:
            raise ValueError(f"Unknown queue: {queue}")
    return runners


async def run_worker(
    queues: tuple[str, ...] = DEFAULT_QUEUES,
    run_schedulers: bool = True,
    settings: Optional[Settings] = None,
    adapters: Optional[dict[str, ScraperAdapter]] = None,
) -> None:
    """Run consumers and schedulers until a shutdown signal arrives."""
    settings = settings or get_settings()

    try:
        start_prometheus_server(settings.metrics_port)
        logger.info("prometheus_metrics_started", port=settings.metrics_port)
    except OSError as e:
        logger.warning("prometheus_metrics_port_busy", port=settings.metrics_port, error=str(e))

    if not await check_connection_health():
        raise ConfigurationError("Database unreachable; check DATABASE_URL")

    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("shutdown_signal_received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    engine = ActivityEngine(on_tier_change=_count_tier_change)
    impressions = _CountingImpressionBuffer(engine, flush_interval=settings.impression_flush_interval_seconds)

    try:
        async with MDClient.from_settings() as provider:
            runners = build_runners(queues, settings, provider, engine, impressions, adapters)
            tasks = [
                asyncio.create_task(runner.run(shutdown_event, settings.worker_poll_interval_seconds))
                for runner in runners
            ]
            tasks.append(asyncio.create_task(impressions.run(shutdown_event)))
            if run_schedulers:
                tasks.extend(
                    asyncio.create_task(run_periodic(task, shutdown_event))
                    for task in maintenance_tasks(settings, engine)
                )

            logger.info("worker_started", queues=list(queues), schedulers=run_schedulers)
            await shutdown_event.wait()
            await asyncio.gather(*tasks)

    finally:
        logger.info("worker_stopping")
        await close_connection_pool()
        logger.info("worker_stopped")


def main() -> None:
    """Entry point for the chaptertrack-worker command."""
    parser = argparse.ArgumentParser(description="chaptertrack background worker")
    parser.add_argument(
        "--queues",
        default=",".join(DEFAULT_QUEUES),
        help=f"Comma-separated queues to consume (default: {','.join(DEFAULT_QUEUES)})",
    )
    parser.add_argument(
        "--no-schedulers",
        action="store_true",
        default=False,
        help="Skip demotion, healing and queue maintenance loops",
    )
    args = parser.parse_args()

    configure_logging()
    queues = tuple(q.strip() for q in args.queues.split(",") if q.strip())

    try:
        asyncio.run(run_worker(queues, run_schedulers=not args.no_schedulers))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

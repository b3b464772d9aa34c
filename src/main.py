"""Main application entry point - runs publish workers + token refresh + queue maintenance."""

import asyncio
import signal
import sys
from time import time
from typing import Optional

from src.config.settings import settings
from src.services.core.publish_worker import PublishWorker
from src.services.core.queue_reconciler import QueueReconciler
from src.services.core.refresh_scheduler import TokenRefreshScheduler
from src.services.integrations.platforms import build_adapters
from src.utils.logger import logger
from src.utils.validators import ConfigValidator

# Track session statistics
session_start_time = None
session_posts_published = 0
shutdown_in_progress = False


async def run_worker_loop(worker: PublishWorker, poll_interval: Optional[float] = None):
    """Run one publish worker - process due jobs, sleep when the queue is idle."""
    global session_posts_published
    poll_interval = poll_interval or settings.WORKER_POLL_INTERVAL_SECONDS
    logger.info(f"Starting publish worker {worker.worker_id}...")

    while True:
        outcome = None
        try:
            outcome = await worker.process_next()
            if outcome is not None and outcome.success:
                session_posts_published += 1
        except Exception as e:
            logger.error(f"Error in publish worker {worker.worker_id}: {e}", exc_info=True)
        finally:
            worker.cleanup_transactions()

        # Keep draining while jobs are due
        if outcome is None:
            await asyncio.sleep(poll_interval)


async def posts_sync_loop(reconciler: QueueReconciler):
    """Enqueue scheduled posts that have no job (periodic safety net)."""
    interval = settings.posts_sync_interval_seconds
    logger.info(f"Starting scheduled posts sync loop (interval: {interval}s)")

    while True:
        try:
            result = reconciler.sync_scheduled_posts(triggered_by="scheduler")
            if result["enqueued"] > 0:
                logger.info(f"Posts sync enqueued {result['enqueued']} scheduled posts")
        except Exception as e:
            logger.error(f"Error in posts sync loop: {e}", exc_info=True)
        finally:
            reconciler.cleanup_transactions()

        await asyncio.sleep(interval)


async def reconcile_loop(reconciler: QueueReconciler):
    """Recover stalled jobs and stuck posts every RECONCILE_INTERVAL_SECONDS."""
    interval = settings.RECONCILE_INTERVAL_SECONDS
    logger.info(f"Starting queue reconcile loop (interval: {interval}s)")

    while True:
        # Startup already ran a pass
        await asyncio.sleep(interval)
        try:
            reconciler.reconcile_stuck_posts(triggered_by="scheduler")
        except Exception as e:
            logger.error(f"Error in queue reconcile loop: {e}", exc_info=True)
        finally:
            reconciler.cleanup_transactions()


async def cleanup_jobs_loop(reconciler: QueueReconciler):
    """Purge finished jobs past retention every JOB_CLEANUP_INTERVAL_SECONDS."""
    logger.info("Starting job cleanup loop...")

    while True:
        await asyncio.sleep(settings.JOB_CLEANUP_INTERVAL_SECONDS)
        try:
            reconciler.cleanup_finished_jobs(triggered_by="scheduler")
        except Exception as e:
            logger.error(f"Error in job cleanup loop: {e}", exc_info=True)
        finally:
            reconciler.cleanup_transactions()


async def main_async():
    """Main async application entry point."""
    global session_start_time

    logger.info("=" * 60)
    logger.info("Social Publisher - scheduled publishing worker")
    logger.info("=" * 60)

    is_valid, errors = ConfigValidator.validate_all()

    if not is_valid:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        sys.exit(1)

    logger.info("✓ Configuration validated successfully")

    missing = ConfigValidator.missing_platform_credentials()
    if missing:
        logger.warning(f"Token refresh unavailable (app credentials missing): {', '.join(missing)}")

    adapters = build_adapters()
    workers = [PublishWorker(adapters=adapters) for _ in range(settings.WORKER_CONCURRENCY)]
    reconciler = QueueReconciler(worker=workers[0])
    refresh_scheduler = TokenRefreshScheduler()

    # Recover work interrupted by the previous shutdown before claiming new jobs
    result = reconciler.reconcile_stuck_posts(triggered_by="startup")
    logger.info(
        f"✓ Startup reconciliation: {result['stalled_jobs']} stalled jobs, "
        f"{result['stuck_posts']} stuck posts"
    )

    session_start_time = time()

    tasks = [asyncio.create_task(run_worker_loop(worker)) for worker in workers]
    tasks.extend(
        [
            asyncio.create_task(refresh_scheduler.run_forever()),
            asyncio.create_task(posts_sync_loop(reconciler)),
            asyncio.create_task(reconcile_loop(reconciler)),
            asyncio.create_task(cleanup_jobs_loop(reconciler)),
        ]
    )

    logger.info("✓ All services started")
    logger.info(f"✓ Workers: {settings.WORKER_CONCURRENCY}")
    logger.info(f"✓ Dry run mode: {settings.DRY_RUN_MODE}")
    logger.info(
        f"✓ Retries: {settings.PUBLISH_MAX_ATTEMPTS} attempts, "
        f"backoff base {settings.PUBLISH_BACKOFF_BASE_MS}ms"
    )
    logger.info(f"✓ Stalled job recovery: every {settings.RECONCILE_INTERVAL_SECONDS}s")
    logger.info(f"✓ Token refresh: every {settings.token_refresh_interval_seconds}s")
    logger.info("=" * 60)

    async def shutdown_handler(sig):
        """Handle shutdown signals gracefully."""
        global shutdown_in_progress

        if shutdown_in_progress:
            logger.info(f"Shutdown already in progress, ignoring {sig.name} signal")
            return
        shutdown_in_progress = True

        logger.info(f"Received {sig.name} signal...")

        uptime = int(time() - session_start_time) if session_start_time else 0
        logger.info(f"Uptime: {uptime}s, posts published this session: {session_posts_published}")

        for task in tasks:
            task.cancel()

        for service in [*workers, reconciler, refresh_scheduler.token_manager]:
            service.close()

        logger.info("✓ Shutdown complete")

    loop = asyncio.get_event_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(shutdown_handler(s)))

    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        # Tasks were cancelled during shutdown
        pass


def main():
    """Main entry point."""
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
RQ Worker Startup Script
Runs the detached training and generation phases when JOB_DISPATCH_MODE=rq.

Usage:
    python scripts/run_workers.py                    # Listen on all queues
    python scripts/run_workers.py --queues training
    python scripts/run_workers.py --workers 4        # 4 worker processes
    python scripts/run_workers.py --check            # Ping Redis and exit
"""

import argparse
import logging
import signal
import sys
from multiprocessing import Process
from typing import List, Optional

from rq import Queue, Worker

from app.core.config import settings
from app.core.logging_config import setup_logging
from app.core.redis import Queues, get_redis, redis_health_check

logger = logging.getLogger("twyn.worker")


def start_worker(queues: List[str], worker_name: Optional[str] = None, burst: bool = False):
    """
    Start a single RQ worker.

    Args:
        queues: Queue names to listen to, in priority order
        worker_name: Optional worker identifier
        burst: Exit once the queues are empty
    """
    setup_logging()
    redis_conn = get_redis()
    queue_objs = [Queue(name, connection=redis_conn) for name in queues]

    worker = Worker(
        queues=queue_objs,
        connection=redis_conn,
        name=worker_name,
        log_job_description=True,
        job_monitoring_interval=5
    )

    logger.info(f"Worker {worker_name or 'default'} starting on queues: {queues} (burst={burst})")
    worker.work(burst=burst, logging_level=settings.LOG_LEVEL.upper())


def run_worker_process(queues: List[str], process_id: int, burst: bool):
    """Target function for worker processes."""
    worker_name = f"worker-{process_id}"

    def signal_handler(signum, frame):
        logger.info(f"{worker_name}: Received shutdown signal")
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    start_worker(queues, worker_name, burst)


def main():
    parser = argparse.ArgumentParser(description="Start RQ workers for the Twyn API")
    parser.add_argument(
        "--queues", "-q",
        nargs="+",
        default=Queues.ALL,
        help="Queue names to listen to (default: all queues)"
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=1,
        help="Number of worker processes (default: 1)"
    )
    parser.add_argument(
        "--burst", "-b",
        action="store_true",
        help="Run in burst mode (exit when queue is empty)"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check Redis connection and exit"
    )

    args = parser.parse_args()
    setup_logging()

    if args.check:
        health = redis_health_check()
        print(f"Redis Status: {health}")
        sys.exit(0 if health.get("connected") else 1)

    if settings.JOB_DISPATCH_MODE != "rq":
        logger.warning("JOB_DISPATCH_MODE is not 'rq'; the API will not enqueue anything for these workers")

    health = redis_health_check()
    if not health.get("connected"):
        logger.error(f"Cannot connect to Redis at {health.get('url')}: {health.get('error')}")
        sys.exit(1)

    logger.info(f"Redis connected: {health.get('redis_version')}")
    logger.info(f"Starting {args.workers} worker(s) on queues: {args.queues}")

    if args.workers == 1:
        start_worker(args.queues, "worker-main", args.burst)
        return

    processes: List[Process] = []

    def shutdown_all(signum, frame):
        logger.info("Shutting down all workers...")
        for p in processes:
            if p.is_alive():
                p.terminate()
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown_all)
    signal.signal(signal.SIGINT, shutdown_all)

    for i in range(args.workers):
        p = Process(
            target=run_worker_process,
            args=(args.queues, i + 1, args.burst),
            name=f"worker-{i + 1}"
        )
        p.start()
        processes.append(p)
        logger.info(f"Started worker process {i + 1}/{args.workers} (PID: {p.pid})")

    for p in processes:
        p.join()


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Run the reminder and expiry jobs.
By default the jobs run forever on their configured intervals; use --once
from cron to run a single pass.
"""

import argparse
import signal
import sys
import threading

from salesdesk.logging_config import configure_logging
from salesdesk.services import build_services

logger = configure_logging("salesdesk.scripts.run_reminders", "salesdesk.log")

JOBS = ("24h", "1h", "expiry")


def run_once(services, jobs):
    for job in jobs:
        if job == "expiry":
            expired = services.proposals.expire_overdue()
            logger.info("Expiry sweep done. Expired: %d", expired)
        else:
            run = services.scheduler.run_once(job)
            logger.info("%s done. Sent: %d, Skipped: %d, Failed: %d", job, run.sent, run.skipped, run.failed)
    services.dispatcher.wait_idle(timeout=60)


def main():
    parser = argparse.ArgumentParser(description="Send event reminders and expire overdue proposals")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run each selected job a single time and exit"
    )
    parser.add_argument(
        "--job",
        choices=JOBS,
        action="append",
        help="Job to run (repeatable, default: all)"
    )

    args = parser.parse_args()
    jobs = args.job or list(JOBS)

    try:
        services = build_services()
    except Exception:
        logger.exception("Could not start the scheduler")
        sys.exit(1)

    try:
        if args.once:
            run_once(services, jobs)
            return

        stopped = threading.Event()
        signal.signal(signal.SIGTERM, lambda *_: stopped.set())
        signal.signal(signal.SIGINT, lambda *_: stopped.set())

        services.scheduler.start(jobs)
        stopped.wait()
    finally:
        services.shutdown()


if __name__ == "__main__":
    main()

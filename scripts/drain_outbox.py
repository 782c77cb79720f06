# scripts/drain_outbox.py
"""
Drain the side-effect outbox once.

The API already drains after each write (FastAPI background task); run
this from cron to pick up retries and anything left behind by a restart.
"""

from __future__ import annotations

import argparse
import logging

from meet_engine.db.session import SessionLocal
from meet_engine.services.task_queue import build_collaborators, process_pending_tasks


def run_once(max_tasks: int | None = None) -> int:
    db = SessionLocal()
    try:
        done = process_pending_tasks(db, build_collaborators(), max_tasks=max_tasks)
        print(f"[drain_outbox] Completed {done} task(s)")
        return done
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--max-tasks",
        type=int,
        default=None,
        help="Optional max number of tasks to run in this pass",
    )
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    run_once(max_tasks=args.max_tasks)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""CLI script to run one pass of a meeting lifecycle job.

Usage:
    uv run python scripts/run_jobs.py dispatch-bots
    uv run python scripts/run_jobs.py poll-transcripts
    uv run python scripts/run_jobs.py all

Connects directly to the database using DATABASE_URL from environment or .env file.
Intended for an external scheduler when the in-process job loops are disabled.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Ensure project root is on sys.path so we can import src.aftermeet
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

JOBS = ("dispatch-bots", "poll-transcripts")


async def run(job: str) -> int:
    """Run the requested job(s) once and print each run summary as JSON."""
    from src.aftermeet.api.middleware.logging import configure_structlog
    from src.aftermeet.config import get_settings
    from src.aftermeet.core.database import close_db, init_db
    from src.aftermeet.meetings.jobs import PeriodicJob, build_pipeline

    configure_structlog()
    settings = get_settings()
    await init_db()

    try:
        pipeline = build_pipeline(settings)
        if pipeline.dispatcher is None or pipeline.poller is None:
            print("RECALL_AI_API_KEY is not configured", file=sys.stderr)
            return 1

        runners = {
            "dispatch-bots": PeriodicJob("dispatch-bots", pipeline.dispatcher.dispatch_due, 0),
            "poll-transcripts": PeriodicJob("poll-transcripts", pipeline.poller.poll, 0),
        }
        selected = JOBS if job == "all" else (job,)

        exit_code = 0
        for name in selected:
            summary = await runners[name].run_once()
            if summary is None:
                exit_code = 1
                continue
            print(json.dumps(summary.model_dump()))
        return exit_code
    finally:
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a meeting lifecycle job once")
    parser.add_argument("job", choices=[*JOBS, "all"], help="Job to run")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args.job)))


if __name__ == "__main__":
    main()

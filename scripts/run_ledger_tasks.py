#!/usr/bin/env python3
"""
Run the periodic ledger tasks for one or more schools.

Usage:
    python scripts/run_ledger_tasks.py daily --school 1 --school 2
    python scripts/run_ledger_tasks.py daily --school 1 --as-of 2024-03-01
    python scripts/run_ledger_tasks.py weekly --school 1

Requirements: migrations applied (alembic upgrade head), database reachable.
"""

import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.core.config import settings
from src.core.database.session import async_session
from src.modules.tasks.service import LedgerTasks


async def run(task: str, school_ids: list[int], as_of: date | None, threshold: int | None) -> None:
    async with async_session() as session:
        tasks = LedgerTasks(session)
        for school_id in school_ids:
            if task == "daily":
                result = await tasks.run_daily(school_id, as_of)
            else:
                result = await tasks.run_weekly(school_id, threshold)
            print(f"school {school_id}: {result}")


async def main() -> None:
    import argparse
    parser = argparse.ArgumentParser(description="Run periodic ledger tasks")
    parser.add_argument("task", choices=["daily", "weekly"])
    parser.add_argument("--school", type=int, action="append", required=True, dest="schools")
    parser.add_argument("--as-of", type=date.fromisoformat, default=None, help="YYYY-MM-DD, daily only")
    parser.add_argument("--threshold", type=int, default=None, help="Overdue installments before a plan defaults")
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level.upper())
    print("Database:", settings.database_url.split("@")[-1] if "@" in settings.database_url else "?")
    try:
        await run(args.task, args.schools, args.as_of, args.threshold)
    except Exception as exc:
        print(f"Failed: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())

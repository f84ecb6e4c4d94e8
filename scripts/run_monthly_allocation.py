#!/usr/bin/env python3
"""LeaveFlow monthly allocation — entry point for the external scheduler.

Credits each active employee's ``rate_of_leave`` into their default-bucket
balance for the current schedule slot. Safe to call on every tick: nothing
happens until the configured ``next_run_at`` is due, and a slot that was
already credited is skipped.

Usage:
    python scripts/run_monthly_allocation.py                # scheduled run
    python scripts/run_monthly_allocation.py --manual       # ignore schedule guards
    python scripts/run_monthly_allocation.py --json         # machine-readable output

Exit codes:
    0 = run completed, or nothing was due
    1 = one or more employees failed
    2 = run could not start (no settings, end date passed, no leave type)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# ── Path setup ────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)

from leaveflow.allocation.service import AllocationRun, AllocationService  # noqa: E402
from leaveflow.config import configure_logging  # noqa: E402
from leaveflow.database import engine, session_scope  # noqa: E402

logger = logging.getLogger("monthly_allocation")


def _summary(run: AllocationRun) -> dict:
    return {
        "success": run.success,
        "manual": run.manual,
        "slot": run.slot.isoformat() if run.slot else None,
        "message": run.message,
        "allocated": run.allocated_count,
        "skipped": run.skipped_count,
        "errors": run.error_count,
        "results": [
            {
                "employee_code": r.employee_code,
                "status": r.status,
                "amount": str(r.amount),
                "message": r.message,
            }
            for r in run.results
        ],
    }


async def _run(manual: bool) -> AllocationRun:
    try:
        async with session_scope() as session:
            return await AllocationService.allocate_monthly_leave(session, manual=manual)
    finally:
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Credit monthly leave (rate_of_leave) to active employees",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--manual", action="store_true",
                        help="Skip the settings / end-date / due-time guards")
    parser.add_argument("--json", action="store_true",
                        help="Print the run summary as JSON")
    args = parser.parse_args()

    configure_logging()
    run = asyncio.run(_run(args.manual))

    if args.json:
        print(json.dumps(_summary(run), indent=2))
    else:
        logger.info("%s", run.message)
        for result in run.results:
            if result.status == "error":
                logger.warning("  %s: %s", result.employee_code, result.message)

    if not run.success:
        return 2
    if run.error_count:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

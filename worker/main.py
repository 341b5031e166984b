"""
Subscription lifecycle worker.

Every WORKER_INTERVAL_SECONDS it sends due reminder emails, downgrades
expired subscriptions and clears stale sessions. WORKER_RUN_ONCE=true runs a
single cycle and exits, which suits an external cron.
"""
import asyncio
import logging
import os

from dotenv import load_dotenv

from core.db.schema import init_db
from worker.lifecycle import run_cycle

load_dotenv(override=True)

CHECK_INTERVAL = int(os.getenv("WORKER_INTERVAL_SECONDS") or 3600)
RUN_ONCE = os.getenv("WORKER_RUN_ONCE", "false").lower() == "true"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
log = logging.getLogger("worker")


async def run_once() -> dict:
    # DB and SMTP calls block; run them off the event loop.
    result = await asyncio.to_thread(run_cycle)
    log.info(
        "Lifecycle cycle finished",
        extra={"reminders": result["reminders"], "expiry": result["expiry"], "sessions_purged": result.get("sessions_purged")},
    )
    return result


async def main():
    init_db()
    log.info("Worker started", extra={"interval_seconds": CHECK_INTERVAL, "run_once": RUN_ONCE})

    while True:
        try:
            await run_once()
        except Exception as e:
            log.exception("Lifecycle cycle failed", extra={"error": str(e)})

        if RUN_ONCE:
            break
        await asyncio.sleep(CHECK_INTERVAL)


if __name__ == "__main__":
    asyncio.run(main())

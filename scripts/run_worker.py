"""Run issue delivery workers in their own process.

Use with NEWSLETTER_DELIVERY_WORKERS=0 on the API so delivery scales separately from HTTP.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

# Add the project root to the path so we can import 'newsletter'
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from newsletter.config import get_settings  # noqa: E402
from newsletter.core.database import dispose_db_engine, require_session_factory  # noqa: E402
from newsletter.core.logging import initialize_logging  # noqa: E402
from newsletter.jobs.runner import build_delivery_worker, start_delivery_workers, stop_delivery_workers  # noqa: E402
from newsletter.notifications.factory import build_email_client  # noqa: E402
from newsletter.storage.factory import build_postgres_repositories  # noqa: E402

logger = logging.getLogger("scripts.run_worker")


async def _run(count: int) -> None:
  settings = get_settings()
  initialize_logging(settings)
  session_factory = require_session_factory()
  email_client = build_email_client(settings)
  worker = build_delivery_worker(settings=settings, session_factory=session_factory, repositories=build_postgres_repositories(), email_client=email_client)

  shutdown = asyncio.Event()
  loop = asyncio.get_running_loop()
  for signum in (signal.SIGINT, signal.SIGTERM):
    loop.add_signal_handler(signum, shutdown.set)

  handles = start_delivery_workers(worker, count=count, shutdown_grace_seconds=settings.worker_shutdown_grace_seconds)
  try:
    await shutdown.wait()
    logger.info("Shutdown requested; stopping %d worker(s)", len(handles))
  finally:
    await stop_delivery_workers(handles)
    await email_client.aclose()
    await dispose_db_engine()


def main() -> None:
  settings = get_settings()
  count = settings.delivery_workers or 1
  asyncio.run(_run(count))


if __name__ == "__main__":
  main()

"""Create the sync tables, waiting for the database to accept connections."""

from __future__ import annotations

import argparse
import time
from typing import Callable

from sqlalchemy.exc import OperationalError

from core.env import load_dotenv_if_available

load_dotenv_if_available()

import models  # noqa: E402,F401
from core.logging import get_logger, setup_logging  # noqa: E402
from database import Base, engine  # noqa: E402

logger = get_logger(__name__)


def _retry(operation: Callable[[], None], *, retries: int, delay: float) -> None:
    for attempt in range(1, retries + 1):
        try:
            operation()
            return
        except OperationalError as exc:
            if attempt == retries:
                raise
            logger.warning(
                "Database not ready yet (attempt %d/%d). Retrying in %.1f seconds: %s",
                attempt,
                retries,
                delay,
                exc,
            )
            time.sleep(delay)


def init_db(*, retries: int = 7, delay: float = 3.0) -> None:
    logger.info("Ensuring sync tables on %s.", engine.url.render_as_string(hide_password=True))
    _retry(lambda: Base.metadata.create_all(bind=engine), retries=retries, delay=delay)
    logger.info("Tables ensured: %s.", ", ".join(sorted(Base.metadata.tables)))


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the Employes sync tables.")
    parser.add_argument("--retries", type=int, default=7)
    parser.add_argument("--delay", type=float, default=3.0, help="Seconds between connection attempts.")
    args = parser.parse_args()
    setup_logging()
    init_db(retries=max(1, args.retries), delay=max(0.0, args.delay))


if __name__ == "__main__":
    main()

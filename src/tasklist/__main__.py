"""Entry point: python -m tasklist

Runs the task list server. Configure it with TASKLIST_* environment
variables or a settings.json file (see ``tasklist.config``).
"""

import asyncio
import sys

from tasklist.config import get_settings
from tasklist.errors import StorageError
from tasklist.logging import Loggers, configure_logging
from tasklist.server import run_server


def main() -> None:
    settings = get_settings()
    configure_logging(settings)
    logger = Loggers.config()
    logger.info(
        "settings_loaded",
        data_dir=str(settings.data_dir),
        address=settings.address,
    )

    try:
        asyncio.run(run_server(settings))
    except StorageError as e:
        logger.error("storage_unavailable", error=e.message)
        sys.exit(1)
    except OSError as e:
        logger.error("listen_failed", address=settings.address, error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()

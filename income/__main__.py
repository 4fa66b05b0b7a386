"""Module entry point for running the CLI via ``python -m income``.

Logging is configured here rather than in the library modules; set
``INCOME_LOG_LEVEL=DEBUG`` to see why payments were skipped.
"""

import logging
import os

from .cli import main


def entry_point() -> None:
    """Configure logging and run the interactive menu."""
    logging.basicConfig(
        level=os.getenv("INCOME_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    main()


if __name__ == "__main__":  # pragma: no cover - manual execution entry
    entry_point()

import logging
import os
from pathlib import Path

# Explicit DB path from the environment, or a file next to the project
DB_PATH = os.getenv(
    "TIMEGRID_DB_PATH",
    str(Path(__file__).resolve().parent.parent / "timegrid.sqlite3"),
)

# Long press threshold before a press turns into a range drag
DWELL_MS = int(os.getenv("TIMEGRID_DWELL_MS", "500"))

LOG_LEVEL = os.getenv("TIMEGRID_LOG_LEVEL", "INFO").upper()

SEED_DEFAULTS = os.getenv("TIMEGRID_SEED_DEFAULTS", "1") not in ("0", "false", "no")


def configure_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

"""
Configuration constants for the document query core.

Everything the core needs is passed in at call time; the values below are
defaults for the reference store and the command line wrapper.
"""

from __future__ import annotations

import logging
import os
from decimal import ROUND_HALF_EVEN
from pathlib import Path
from typing import Optional

# ---------------------------------------------------------------------------
# Document identity and indexes
# ---------------------------------------------------------------------------

ID_FIELD = "_id"
ID_INDEX_NAME = "_id_"
OBJECT_ID_LENGTH = 24  # hex characters

# Hint value that forces a collection scan.
NATURAL_HINT = "$natural"

# ---------------------------------------------------------------------------
# Query defaults
# ---------------------------------------------------------------------------

DEFAULT_PAGE_SIZE = 5

# $round policy: half-to-even on the decimal representation of the value.
ROUNDING_MODE = ROUND_HALF_EVEN

# ---------------------------------------------------------------------------
# Command line / environment
# ---------------------------------------------------------------------------

DATA_PATH_ENV = "DOC_QUERY_DATA"
LOG_LEVEL_ENV = "DOC_QUERY_LOG_LEVEL"
DEFAULT_DATA_PATH = Path("books.json")
DEFAULT_LOG_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def resolve_data_path(cli_value: Optional[str] = None) -> Path:
    """Data file location: CLI flag, then environment, then default."""
    if cli_value:
        return Path(cli_value)
    env_value = os.environ.get(DATA_PATH_ENV)
    if env_value:
        return Path(env_value)
    return DEFAULT_DATA_PATH


def resolve_log_level(verbose: int = 0) -> int:
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    name = os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        return logging.WARNING
    return level

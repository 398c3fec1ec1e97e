"""Logging configuration and match audit logging."""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Configuration from environment
LOG_FILE = os.environ.get("GPOTOOLS_LOG_FILE")
MATCHES_FILE = os.environ.get("GPOTOOLS_MATCHES_FILE")
VERBOSE = os.environ.get("GPOTOOLS_VERBOSE", "0") == "1"

# Module-level state (initialized by init_logging)
logger: logging.Logger = None
_match_file = None


def init_logging(verbose: bool = False) -> logging.Logger:
    """Initialize logging. Returns the package logger.

    Library modules log through logging.getLogger(__name__), so they all
    land on the "gpotools" logger configured here.
    """
    global logger, _match_file

    logger = logging.getLogger("gpotools")
    logger.setLevel(logging.DEBUG if (verbose or VERBOSE) else logging.INFO)
    logger.propagate = False
    logger.handlers.clear()
    if LOG_FILE:
        handler = logging.FileHandler(LOG_FILE)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)

    # Match audit records (JSONL format, line-buffered)
    if MATCHES_FILE and _match_file is None:
        _match_file = open(MATCHES_FILE, "a", buffering=1)

    return logger


def close_logging():
    """Close logging resources."""
    global _match_file
    if _match_file:
        _match_file.close()
        _match_file = None


def log_match(**kwargs) -> None:
    """Append a match record as JSONL (timestamp first)."""
    if not _match_file:
        return
    event = {"ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds")}
    event.update(kwargs)
    _match_file.write(json.dumps(event, separators=(",", ":")) + "\n")

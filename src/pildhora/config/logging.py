"""Logging setup for the operator commands."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
NOISY_LOGGERS = ("httpx", "google.auth", "urllib3")


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Configure the root logger for a reconcile or diagnose run.

    ``force=True`` replaces handlers installed earlier, e.g. when ``--verbose``
    lowers the level to DEBUG. Transport loggers stay at WARNING or above so
    per-request lines do not drown the per-entity outcomes.
    """

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S", force=force)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

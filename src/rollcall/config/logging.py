"""Logging setup for the rollcall command line."""

from __future__ import annotations

import logging

# one INFO line per request or statement drowns the pass summary
_CHATTY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def configure_logging(*, verbose: bool = False, force: bool = False) -> None:
    """Initialise the root logger for CLI output.

    ``verbose`` switches rollcall's own loggers to DEBUG; HTTP and SQL client
    libraries stay at WARNING either way. Pass ``force=True`` to reconfigure
    an already initialised root logger.
    """

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

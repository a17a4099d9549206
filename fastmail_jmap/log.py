from __future__ import annotations

import logging
import sys

PACKAGE_LOGGER = "fastmail_jmap"

_HANDLER_NAME = "fastmail_jmap.stderr"


def setup_logging(debug: bool = False) -> logging.Logger:
    """Send package logs to stderr, at DEBUG when ``debug`` else INFO.

    Calling it again only changes the level.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    if not any(handler.get_name() == _HANDLER_NAME for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    return logger

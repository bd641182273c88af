from __future__ import annotations

import logging

PACKAGE_LOGGER = "orgauthz"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_app_logging(level: str = "INFO") -> logging.Logger:
    """
    Set the level for the `orgauthz` logger tree and return its root logger.

    - stdlib logging only. Under uvicorn or pytest the host owns the handlers;
      when nothing is configured at all (a bare script) a stderr handler is added.
    - `AUTHZ_LOG_LEVEL=DEBUG` shows per-decision traces: cache hits,
      short-circuits for inactive members, dangling catalog references.
    """

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level.upper())

    if not logging.getLogger().handlers and not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)

    return package_logger

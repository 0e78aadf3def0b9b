"""
Logging configuration.

The packaged `src/bunda/config/logging.yaml` is applied with `dictConfig`, after the
level has been overridden from settings (`BUNDA_LOG_LEVEL`) or from an explicit
argument (the CLI `--log-level` flag).
"""

from __future__ import annotations

import copy
import logging.config

from bunda.config.settings import get_logging_config, get_settings


def configure_logging(level: str | None = None) -> None:
    """Configure stdlib logging for the API/CLI process."""
    # get_logging_config() is cached; never mutate the shared dict.
    config = copy.deepcopy(get_logging_config())

    level = (level or get_settings().app.log_level).upper()
    config.setdefault("root", {})["level"] = level
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = level

    logging.config.dictConfig(config)

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_LOADER_ID = "_DEFAULT"
DEFAULT_CLEAR_ON_STATUS = 500
DEFAULT_LOG_LEVEL = "WARNING"

LOGGER_NAME = "loadflags"


@dataclass(frozen=True)
class LoadingSettings:
    default_loader_id: str = DEFAULT_LOADER_ID
    clear_on_status: int = DEFAULT_CLEAR_ON_STATUS
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "LoadingSettings":
        """Build settings from the environment (a `.env` file is loaded first if present).

        Env:
          LOADING_DEFAULT_ID       reserved loader id used when callers pass none
          LOADING_CLEAR_ON_STATUS  lowest HTTP status that makes recovery hooks clear all flags
          LOADING_LOG_LEVEL        level for the `loadflags` logger
        """
        load_dotenv(override=False)
        default_id = os.getenv("LOADING_DEFAULT_ID") or DEFAULT_LOADER_ID
        raw_status = os.getenv("LOADING_CLEAR_ON_STATUS", str(DEFAULT_CLEAR_ON_STATUS))
        try:
            clear_on_status = int(raw_status)
        except ValueError:
            raise ValueError(f"LOADING_CLEAR_ON_STATUS must be an integer, got {raw_status!r}")
        log_level = (os.getenv("LOADING_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
        return cls(default_loader_id=default_id, clear_on_status=clear_on_status, log_level=log_level)


def configure_logging(settings: LoadingSettings | None = None) -> logging.Logger:
    # only touches our own logger; handlers stay with the host application
    settings = settings or LoadingSettings.from_env()
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(settings.log_level)
    return logger

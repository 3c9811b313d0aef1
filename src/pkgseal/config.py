"""
Runtime settings and logging setup.

Settings come from PKGSEAL_* environment variables; CLI flags override them.
"""

import logging
import os
import sys
from dataclasses import dataclass, replace
from typing import Mapping, Optional

import structlog

from .errors import ConfigurationError

SIGNATURE_MODES = ("detached", "embedded")
LOG_FORMATS = ("console", "json")


@dataclass(frozen=True)
class Settings:
    """Per-invocation settings."""
    signature_mode: str = "detached"
    hash_workers: int = 1
    log_level: str = "INFO"
    log_format: str = "console"

    def __post_init__(self):
        if self.signature_mode not in SIGNATURE_MODES:
            raise ConfigurationError(
                f"Invalid signature mode {self.signature_mode!r}, use one of {list(SIGNATURE_MODES)}"
            )
        if self.hash_workers < 1:
            raise ConfigurationError(f"hash_workers must be >= 1, got {self.hash_workers}")
        if self.log_format not in LOG_FORMATS:
            raise ConfigurationError(
                f"Invalid log format {self.log_format!r}, use one of {list(LOG_FORMATS)}"
            )
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigurationError(f"Invalid log level {self.log_level!r}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        workers_raw = env.get("PKGSEAL_HASH_WORKERS", "1")
        try:
            workers = int(workers_raw)
        except ValueError:
            raise ConfigurationError(f"PKGSEAL_HASH_WORKERS must be an integer, got {workers_raw!r}")

        return cls(
            signature_mode=env.get("PKGSEAL_SIGNATURE_MODE", "detached").lower(),
            hash_workers=workers,
            log_level=env.get("PKGSEAL_LOG_LEVEL", "INFO").upper(),
            log_format=env.get("PKGSEAL_LOG_FORMAT", "console").lower(),
        )

    def override(self, **changes) -> "Settings":
        """Return a copy with the non-None values replaced."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes)


def configure_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Configure structlog to write filtered events to stderr."""
    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

"""
Runtime settings, read from the environment (and a .env file if present).

    OWNER_PARSER_GIVEN_NAMES      path to a given-name list (JSON)
    OWNER_PARSER_MARKERS          path to the advanced marker rules (JSON)
    OWNER_PARSER_LEGACY_MARKERS   path to the legacy marker vocabulary (JSON)
    OWNER_PARSER_MAX_WORKERS      batch thread pool size (default 4)
    OWNER_PARSER_LOG_LEVEL        logging level name (default INFO)

Unset paths mean the files packaged with owner_parser.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ENV_PREFIX = "OWNER_PARSER_"
DEFAULT_MAX_WORKERS = 4
DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class Settings(BaseModel):
    """Where the rule data lives and how batches run."""

    given_names_path: Optional[Path] = None
    markers_path: Optional[Path] = None
    legacy_markers_path: Optional[Path] = None
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1)
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Args:
            env: Variables to read. Defaults to os.environ after loading .env.

        Bad values never abort startup: they are logged and replaced by the
        default.
        """
        if env is None:
            load_dotenv()
            env = os.environ

        def path(name: str) -> Optional[Path]:
            value = env.get(ENV_PREFIX + name, "").strip()
            return Path(value) if value else None

        return cls(
            given_names_path=path("GIVEN_NAMES"),
            markers_path=path("MARKERS"),
            legacy_markers_path=path("LEGACY_MARKERS"),
            max_workers=_positive_int(env, "MAX_WORKERS", DEFAULT_MAX_WORKERS),
            log_level=_log_level(env),
        )


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value < 1:
        logger.warning(
            "Ignoring %s%s=%r (expected a positive integer), using %d",
            ENV_PREFIX, name, raw, default,
        )
        return default
    return value


def _log_level(env: Mapping[str, str]) -> str:
    raw = env.get(ENV_PREFIX + "LOG_LEVEL", "").strip().upper()
    if not raw:
        return DEFAULT_LOG_LEVEL
    if not isinstance(logging.getLevelName(raw), int):
        logger.warning("Unknown log level %r, using %s", raw, DEFAULT_LOG_LEVEL)
        return DEFAULT_LOG_LEVEL
    return raw


def configure_logging(settings: Settings) -> None:
    """Root logging setup for the entry points. Library code never calls this."""
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

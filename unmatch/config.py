"""Settings loading and logging setup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

from unmatch.fileio import read_yaml, write_yaml_atomic
from unmatch.workspace import resolve_timezone, settings_path, workspace_root

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    timezone: str = "UTC"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Settings:
        if not d or not isinstance(d, dict):
            d = {}
        tz = resolve_timezone(d.get("timezone"))
        level = str(os.environ.get("UNMATCH_LOG_LEVEL") or d.get("log_level") or "INFO").upper()
        if level not in VALID_LOG_LEVELS:
            level = "INFO"
        return cls(timezone=tz.key, log_level=level)

    def to_dict(self) -> dict[str, Any]:
        return {"timezone": self.timezone, "log_level": self.log_level}

    def zoneinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def load_settings(root: Path | None = None) -> Settings:
    """Load settings.yaml; unknown keys are ignored, bad values fall back."""
    if root is None:
        root = workspace_root()
    return Settings.from_dict(read_yaml(settings_path(root)))


def save_settings(settings: Settings, root: Path | None = None) -> None:
    if root is None:
        root = workspace_root()
    write_yaml_atomic(settings_path(root), settings.to_dict())


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach one stream handler to the ``unmatch`` logger (idempotent)."""
    logger = logging.getLogger("unmatch")
    logger.setLevel(level.upper() if level.upper() in VALID_LOG_LEVELS else "INFO")
    if not any(getattr(h, "_unmatch_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._unmatch_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger

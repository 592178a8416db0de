"""
Configuration for docmodel.

Settings are loaded from environment variables with the DOCMODEL_ prefix
via pydantic-settings. Explicit keyword arguments override the environment.

Invariants:
    - All settings have defaults suitable for local development
    - The in-memory store is the default backend
"""

from __future__ import annotations

import logging
import os
from typing import Literal

import json_log_formatter
from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """docmodel configuration loaded from environment."""

    # Store
    store_backend: Literal["memory", "sqlite"] = Field(
        default="memory", description="Bucket implementation"
    )
    sqlite_path: str = Field(default="docmodel.db", description="SQLite bucket file")

    # Design documents
    design_documents_path: str = Field(
        default="",
        description="View source roots, separated by os.pathsep, searched in order",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["text", "json"] = Field(default="text")

    model_config = {"env_prefix": "DOCMODEL_"}

    @property
    def design_documents_paths(self) -> list[str]:
        """View source roots in search order."""
        return [p for p in self.design_documents_path.split(os.pathsep) if p]

    def log_config(self) -> None:
        """Log the effective configuration."""
        logger.info(
            "docmodel configuration loaded",
            extra={
                "store_backend": self.store_backend,
                "sqlite_path": self.sqlite_path if self.store_backend == "sqlite" else None,
                "design_documents_paths": self.design_documents_paths,
                "log_level": self.log_level,
            },
        )


def setup_logging(settings: Settings) -> None:
    """Configure root logging from settings.

    Args:
        settings: Effective settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

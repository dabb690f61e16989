"""
Settings — runtime configuration.

    settings = Settings.from_env()          # INKWELL_* variables
    settings = Settings(bulk_limit=20)      # explicit
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "INKWELL_"


class Settings(BaseModel):
    """
    Frozen configuration shared by every service.

    Note: pydantic coerces env strings ("50", "true") into typed values.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    database_url: str = "sqlite+aiosqlite:///inkwell.db"
    bulk_limit: int = Field(default=50, ge=1)
    max_external_id_length: int = Field(default=128, ge=8)
    gateway_timeout_seconds: float = Field(default=15.0, gt=0)
    refund_gateway_to_wallet: bool = False
    sqlite_busy_timeout: float = Field(default=30.0, gt=0)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from INKWELL_* variables, ignoring unknown ones."""
        env = os.environ if environ is None else environ
        data = {
            key[len(ENV_PREFIX):].lower(): value
            for key, value in env.items()
            if key.startswith(ENV_PREFIX)
        }
        return cls.model_validate(data)


def configure_logging(settings: Settings) -> None:
    """Attach a stream handler to the `inkwell` logger namespace."""
    logger = logging.getLogger("inkwell")
    logger.setLevel(settings.log_level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(handler)


__all__ = ("Settings", "configure_logging", "ENV_PREFIX")

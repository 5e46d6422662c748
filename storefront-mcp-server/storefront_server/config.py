"""Settings loaded from environment variables."""

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _default_history_file() -> str:
    return str(Path.home() / ".storefront_orders.json")


class Settings(BaseModel):
    """Runtime settings for the storefront server."""

    data_url: Optional[str] = Field(None, description="Base URL of the data service")
    data_key: Optional[str] = Field(None, description="API key for the data service")
    history_file: str = Field(
        default_factory=_default_history_file, description="Where placed order ids are kept"
    )
    timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    display_places: int = Field(default=2, ge=0, description="Decimal places shown to customers")
    default_currency: str = Field(default="USD", description="Currency of an empty cart")

    @property
    def is_configured(self) -> bool:
        return bool(self.data_url and self.data_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Environment variable mapping:
        - STOREFRONT_DATA_URL → data_url
        - STOREFRONT_DATA_KEY → data_key
        - STOREFRONT_HISTORY_FILE → history_file
        - STOREFRONT_TIMEOUT → timeout
        - STOREFRONT_DISPLAY_PLACES → display_places
        - STOREFRONT_DEFAULT_CURRENCY → default_currency
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        mapping = {
            "STOREFRONT_DATA_URL": "data_url",
            "STOREFRONT_DATA_KEY": "data_key",
            "STOREFRONT_HISTORY_FILE": "history_file",
            "STOREFRONT_TIMEOUT": "timeout",
            "STOREFRONT_DISPLAY_PLACES": "display_places",
            "STOREFRONT_DEFAULT_CURRENCY": "default_currency",
        }
        for env_name, field_name in mapping.items():
            value = env.get(env_name)
            if value:
                values[field_name] = value

        settings = cls(**values)
        if not settings.is_configured:
            logger.warning(
                "No data service configured (STOREFRONT_DATA_URL, STOREFRONT_DATA_KEY)"
            )
        return settings

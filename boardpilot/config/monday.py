"""monday.com API configuration read from the environment."""

import os
from typing import Optional

from pydantic import BaseModel


MONDAY_API_URL = "https://api.monday.com/v2"
MONDAY_API_VERSION = "2024-01"


class MondayConfig(BaseModel):
    """Connection settings for the monday.com GraphQL endpoint."""

    api_token: Optional[str] = None
    api_url: str = MONDAY_API_URL
    api_version: str = MONDAY_API_VERSION
    request_timeout: float = 15.0

    @classmethod
    def from_env(cls) -> "MondayConfig":
        timeout_raw = os.getenv("MONDAY_REQUEST_TIMEOUT")
        try:
            timeout = float(timeout_raw) if timeout_raw else 15.0
        except ValueError:
            timeout = 15.0
        return cls(
            api_token=os.getenv("MONDAY_API_TOKEN"),
            api_url=os.getenv("MONDAY_API_URL") or MONDAY_API_URL,
            api_version=os.getenv("MONDAY_API_VERSION") or MONDAY_API_VERSION,
            request_timeout=timeout,
        )

"""
Outbound HTTP client settings.
Clients are built per integration and closed by their owner.
"""

import httpx
from typing import Optional, Dict, Any

from src.infra.config.settings import Settings, get_settings

# Count lookups drive a real browser page, so reads are slow but connects are not
CONNECT_TIMEOUT_SECONDS = 5.0


class HTTPClientConfig:
    """Client options for each outbound integration"""

    MAX_CONNECTIONS = 4
    MAX_KEEPALIVE_CONNECTIONS = 2

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def read_timeout(self, integration: str) -> float:
        if integration == "profile_counts":
            return self.settings.PROFILE_COUNT_TIMEOUT_SECONDS
        return 30.0

    def headers(self) -> Dict[str, str]:
        return {
            "User-Agent": f"{self.settings.APP_NAME}/{self.settings.APP_VERSION}",
            "Accept": "application/json",
        }

    def client_options(self, integration: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Keyword arguments for httpx.AsyncClient (NOT the client itself).

        Args:
            integration: Integration name used to pick the read timeout
            timeout: Override read timeout (optional)
        """
        return {
            "timeout": httpx.Timeout(
                timeout or self.read_timeout(integration),
                connect=CONNECT_TIMEOUT_SECONDS,
            ),
            "limits": httpx.Limits(
                max_connections=self.MAX_CONNECTIONS,
                max_keepalive_connections=self.MAX_KEEPALIVE_CONNECTIONS,
            ),
            "headers": self.headers(),
            "follow_redirects": False,
        }


def create_client(integration: str, settings: Optional[Settings] = None, **kwargs) -> httpx.AsyncClient:
    """
    Build an AsyncClient for one integration.
    WARNING: the caller owns the client and must close it.
    """
    options = HTTPClientConfig(settings).client_options(integration)
    options.update(kwargs)
    return httpx.AsyncClient(**options)

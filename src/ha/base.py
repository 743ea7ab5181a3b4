"""Base HA client with HTTP request handling.

Provides the core HTTP client functionality shared by every per-connection
Home Assistant client: a pooled ``httpx.AsyncClient``, bearer auth and
uniform error mapping.
"""

import time
from typing import Any, cast

import httpx
import structlog
from pydantic import BaseModel, Field

from src.exceptions import HAClientError

logger = structlog.get_logger(__name__)


class HAClientConfig(BaseModel):
    """Configuration for HA client."""

    ha_url: str = Field(..., description="Home Assistant base URL")
    ha_token: str = Field(..., description="Home Assistant long-lived access token")
    timeout: float = Field(default=30, description="Request timeout in seconds")


class BaseHAClient:
    """Base HTTP client for Home Assistant API.

    Handles connection pooling and HTTP requests. Domain-specific
    functionality is added via mixins.
    """

    def __init__(self, config: HAClientConfig):
        """Initialize base HA client.

        Args:
            config: URL, token and timeout of the target instance
        """
        self.config = config
        self._http_client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self.config.ha_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.ha_token}",
            "Content-Type": "application/json",
        }

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create a shared httpx.AsyncClient with connection pooling."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.config.timeout,
                limits=httpx.Limits(
                    max_keepalive_connections=10,
                    max_connections=50,
                ),
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client and release connections."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(
        self,
        method: str,
        path: str,
        json: dict | None = None,
        params: dict | None = None,
    ) -> Any:
        """Make a request to HA.

        Args:
            method: HTTP method
            path: API path (without base URL)
            json: JSON body
            params: Query parameters

        Returns:
            Response JSON, ``{}`` for an empty body, or None on 404

        Raises:
            HAClientError: On any other status, connection failure or timeout
        """
        start_time = time.perf_counter()
        client = self._get_http_client()
        url = f"{self.base_url}{path}"

        try:
            response = await client.request(
                method,
                url,
                headers=self._headers(),
                json=json,
                params=params,
            )
        except httpx.ConnectError as e:
            raise HAClientError(f"{self.base_url}: Connection failed", "request") from e
        except httpx.TimeoutException as e:
            raise HAClientError(f"{self.base_url}: Timeout", "request") from e
        except httpx.HTTPError as e:
            raise HAClientError(f"{self.base_url}: {type(e).__name__}", "request") from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            "ha_request",
            method=method,
            path=path,
            status=response.status_code,
            duration_ms=round(duration_ms, 1),
        )

        if response.status_code in (200, 201):
            return response.json() if response.content else {}
        if response.status_code == 404:
            return None
        raise HAClientError(
            f"HTTP {response.status_code} from {path}",
            "request",
            {"body": response.text[:500]},
            status_code=response.status_code,
        )

    async def get_config(self) -> dict[str, Any]:
        """Get the instance configuration (``/api/config``)."""
        data = await self._request("GET", "/api/config")
        if data is None:
            raise HAClientError("Config endpoint not found", "get_config", status_code=404)
        return cast("dict[str, Any]", data)

    async def get_version(self) -> str:
        """Get Home Assistant version.

        Returns:
            Version string (e.g., "2024.1.0"), or "unknown"
        """
        return extract_version(await self.get_config())

    async def call_service(
        self,
        domain: str,
        service: str,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """Call a Home Assistant service (``POST /api/services/{domain}/{service}``)."""
        return await self._request("POST", f"/api/services/{domain}/{service}", json=data or {})


def extract_version(config: dict[str, Any]) -> str:
    """Read the HA version from a ``/api/config`` payload."""
    version = config.get("version")
    if version:
        return str(version)
    version_info = config.get("version_info") or {}
    if isinstance(version_info, dict) and version_info.get("version"):
        return str(version_info["version"])
    return "unknown"

import httpx
import logging
from typing import Optional, Dict, Any

from psicochat.config import get_settings
from psicochat.exceptions import NetworkError, RemoteError
from psicochat.session import SessionContext

logger = logging.getLogger(__name__)


def unwrap(payload: Any) -> Any:
    """The API answers either `{"data": ...}` or the bare payload."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class ApiClient:
    """Client for the consultation API (JSON over HTTP, bearer token auth)"""

    def __init__(
        self,
        session: SessionContext,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.session = session
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.transport = transport
        self.timeout = httpx.Timeout(settings.http_timeout_seconds)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=self.timeout)

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> Any:
        # Raises NotAuthenticatedError before anything goes on the wire
        headers = self.session.auth_headers()
        url = f"{self.base_url}{path}"

        logger.debug(f"{method} {url}")
        try:
            async with self._client() as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    data=data,
                    files=files,
                    headers=headers,
                )
        except httpx.TransportError as e:
            logger.error(f"API error ({method} {url}): {e}")
            raise NetworkError(f"Could not reach {url}: {e}") from e

        if response.is_error:
            logger.error(f"API error ({method} {url}): HTTP {response.status_code} {response.text}")
            raise RemoteError(
                f"HTTP {response.status_code}: {response.text}",
                remote_status=response.status_code,
                body=response.text,
            )

        if not response.content:
            return None
        try:
            return unwrap(response.json())
        except ValueError as e:
            raise RemoteError("Invalid JSON response from server", remote_status=response.status_code) from e

    async def get(self, path: str = "", params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str = "", body: Any = None) -> Any:
        return await self.request("POST", path, json=body)

    async def put(self, path: str = "", body: Any = None) -> Any:
        return await self.request("PUT", path, json=body)

    async def delete(self, path: str = "") -> Any:
        return await self.request("DELETE", path)

    async def post_form(self, path: str, data: Dict[str, Any], files: Dict[str, Any]) -> Any:
        """Multipart upload; httpx sets the boundary itself."""
        return await self.request("POST", path, data=data, files=files)

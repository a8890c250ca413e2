import json
from typing import Any, Dict, Optional

import aiohttp
from loguru import logger

from cloud_api_client.exceptions import TransportError
from cloud_api_client.models import ClientConfig, ErrorResponse


class HttpTransport:
    """JSON over HTTP against the control plane, one lazily created session per transport"""

    def __init__(self, config: ClientConfig):
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.logger = logger
        self._session: Optional[aiohttp.ClientSession] = None

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json"}
        if self.config.access_key:
            headers["x-api-key"] = self.config.access_key
        if self.config.secret_key:
            headers["x-api-secret-key"] = self.config.secret_key
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(
        self, method: str, path: str, body: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Sends one request and returns the decoded JSON body"""
        url = f"{self.base_url}{path}"
        session = self._get_session()

        try:
            async with session.request(method, url, json=body) as response:
                if response.status >= 400:
                    error = _error_from_body(response.status, response.reason, await response.text())
                    self.logger.error(
                        f"HTTP error {response.status} at {method} {url}: {error.description}"
                    )
                    raise TransportError(method, path, response.status, error)

                if response.content_length == 0:
                    return {}
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            self.logger.error(f"Request {method} {url} failed: {e}")
            raise

    async def get(self, path: str) -> Any:
        return await self.request("GET", path)

    async def post(self, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("POST", path, body)

    async def put(self, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("PUT", path, body)

    async def delete(self, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("DELETE", path, body)


def _error_from_body(status: int, reason: Optional[str], text: str) -> ErrorResponse:
    """Builds a structured error from whatever the control plane sent back"""
    try:
        payload = json.loads(text) if text else {}
    except ValueError:
        payload = {}

    if isinstance(payload, dict):
        nested = payload.get("error")
        if isinstance(nested, dict):
            payload = nested
        return ErrorResponse(
            type=payload.get("type") or reason,
            status=str(payload.get("status") or f"{status} {reason or ''}".strip()),
            description=payload.get("description") or payload.get("message") or text or reason,
        )
    return ErrorResponse(type=reason, status=str(status), description=text or reason)

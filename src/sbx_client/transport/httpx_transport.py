# src/sbx_client/transport/httpx_transport.py

import logging
from typing import Any, Dict, Optional

import httpx

from sbx_client.base.exceptions import TransportError
from sbx_client.base.interfaces import Transport

DEFAULT_TIMEOUT = 150.0


def normalize_base_url(url: Optional[str]) -> str:
    """Strips surrounding whitespace and one trailing slash."""
    if url is None or not url.strip():
        return ""
    url = url.strip()
    return url[:-1] if url.endswith("/") else url


class HttpxTransport(Transport):
    """
    Transport implementation using `httpx.AsyncClient`.

    Every request carries the JSON content type, the `App-Key` header and a
    bearer token. An already configured client may be injected (for example
    one built on `httpx.MockTransport`); its lifecycle then stays with the
    caller unless `owns_client=True`.
    """

    def __init__(
        self,
        base_url: str,
        app_key: str,
        token: str,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
        owns_client: Optional[bool] = None,
    ):
        self._base_url = normalize_base_url(base_url)
        self._app_key = app_key
        self._token = token
        self._timeout = timeout
        if client is None:
            client = httpx.AsyncClient(timeout=httpx.Timeout(timeout))
            owns_client = True if owns_client is None else owns_client
        self._client = client
        self._owns_client = bool(owns_client)
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._logger.debug(f"Transport created for '{self._base_url}'.")

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "App-Key": self._app_key or "",
            "Authorization": f"Bearer {self._token or ''}",
        }

    def update_credentials(
        self, app_key: Optional[str] = None, token: Optional[str] = None
    ) -> None:
        if app_key is not None:
            self._app_key = app_key
        if token is not None:
            self._token = token
        self._logger.debug("Transport credentials updated.")

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        clean_params = (
            {k: v for k, v in params.items() if v is not None} if params else None
        )
        try:
            return await self._client.request(
                method,
                self._url(path),
                json=json,
                params=clean_params,
                headers=self.headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            self._logger.warning(f"{method} {path} timed out: {e}")
            raise TransportError(f"Request to {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            self._logger.warning(f"{method} {path} failed: {e}")
            raise TransportError(f"Request to {path} failed: {e}") from e

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        response = await self._request(method, path, json=json, params=params)
        try:
            payload = response.json()
        except ValueError as e:
            status = response.status_code
            if response.is_success and not response.content:
                return {}
            raise TransportError(
                f"{method} {path} returned HTTP {status} with a non-JSON body.",
                status_code=status,
            ) from e
        if not response.is_success:
            self._logger.info(
                f"{method} {path} returned HTTP {response.status_code}; passing JSON body through."
            )
        return payload

    async def download(
        self, path: str, *, params: Optional[Dict[str, Any]] = None
    ) -> bytes:
        response = await self._request("GET", path, params=params)
        if not response.is_success:
            raise TransportError(
                f"GET {path} returned HTTP {response.status_code}.",
                status_code=response.status_code,
            )
        return response.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

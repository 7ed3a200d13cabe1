# src/sbx_client/base/interfaces.py

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class Transport(ABC):
    """
    Seam between the SBX service and the network.

    A transport sends one request and returns the parsed JSON body. It raises
    `TransportError` when no JSON body can be produced (connection errors,
    timeouts, non-2xx responses with a non-JSON body). A non-2xx response
    with a JSON body is returned as parsed so that server-reported failures
    (`{"success": false, "error": ...}`) reach the caller unchanged.
    """

    @abstractmethod
    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body.

        Args:
            method: HTTP method, e.g. "GET" or "POST".
            path: Endpoint path relative to the base URL, e.g. "/api/data/v1/row/find".
            json: Optional JSON body.
            params: Optional query string parameters. None values are dropped.

        Returns:
            The decoded JSON payload (usually a dict).

        Raises:
            TransportError: If the request fails or the body is not JSON.
        """
        pass

    @abstractmethod
    async def download(
        self, path: str, *, params: Optional[Dict[str, Any]] = None
    ) -> bytes:
        """
        Fetch a raw body with GET.

        Raises:
            TransportError: If the request fails or returns a non-2xx status.
        """
        pass

    def update_credentials(
        self, app_key: Optional[str] = None, token: Optional[str] = None
    ) -> None:
        """Replace the credentials sent with every request. No-op by default."""
        return None

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""
        return None

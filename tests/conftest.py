# tests/conftest.py
import logging
from typing import Any, ClassVar, Dict, List, Optional

import pytest

from sbx_client.base.exceptions import TransportError
from sbx_client.base.interfaces import Transport
from sbx_client.base.model import SbxEntity
from sbx_client.service import SBXService

TEST_DOMAIN = 96


# --- Logger Fixture ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_sbx_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


# --- Fake Transport ---


class FakeTransport(Transport):
    """
    Records every request and answers from a queue.

    Queued items are returned in order; an exception instance is raised
    instead of returned. When the queue is empty `default` is returned.
    """

    def __init__(self, responses: Optional[List[Any]] = None, default: Any = None):
        self.responses: List[Any] = list(responses or [])
        self.default = default
        self.calls: List[Dict[str, Any]] = []
        self.downloads: Dict[str, bytes] = {}
        self.credentials: Dict[str, Optional[str]] = {"app_key": None, "token": None}
        self.closed = False

    def queue(self, *responses: Any) -> "FakeTransport":
        self.responses.extend(responses)
        return self

    async def send(self, method, path, *, json=None, params=None):
        self.calls.append(
            {"method": method, "path": path, "json": json, "params": params}
        )
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response

    async def download(self, path, *, params=None):
        self.calls.append(
            {"method": "GET", "path": path, "json": None, "params": params}
        )
        key = (params or {}).get("key")
        if key not in self.downloads:
            raise TransportError(f"GET {path} returned HTTP 404.", status_code=404)
        return self.downloads[key]

    def update_credentials(self, app_key=None, token=None):
        if app_key is not None:
            self.credentials["app_key"] = app_key
        if token is not None:
            self.credentials["token"] = token

    async def aclose(self):
        self.closed = True

    @property
    def paths(self) -> List[str]:
        return [call["path"] for call in self.calls]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def service(transport: FakeTransport) -> SBXService:
    return SBXService(
        transport,
        domain=TEST_DOMAIN,
        app_key="test-app-key",
        base_url="https://sbx.test",
    )


# --- Test Entities ---


class InventoryHistory(SbxEntity):
    """Inventory snapshot row used across the tests."""

    sbx_model: ClassVar[str] = "inventory_history"

    masterlist: Optional[str] = None
    week: Optional[int] = None
    price: Optional[float] = None
    quantity: Optional[int] = None


class Unregistered(SbxEntity):
    name: Optional[str] = None


def find_page(
    rows: List[Dict[str, Any]],
    total_pages: Optional[int] = None,
    row_count: Optional[int] = None,
    fetched_results: Optional[Dict[str, Dict[str, Any]]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Builds a successful find payload."""
    payload: Dict[str, Any] = {"success": True, "results": rows}
    if total_pages is not None:
        payload["total_pages"] = total_pages
    if row_count is not None:
        payload["row_count"] = row_count
    if fetched_results is not None:
        payload["fetched_results"] = fetched_results
    payload.update(extra)
    return payload


def inventory_row(key: str, week: int = 1, **fields: Any) -> Dict[str, Any]:
    row = {
        "_KEY": key,
        "masterlist": f"ml-{key}",
        "week": week,
        "price": 12.5,
        "quantity": 3,
    }
    row.update(fields)
    return row

# src/sbx_client/config.py

"""
Settings and service factories.

Settings are read from `SBX_*` environment variables (and an optional
`.env` file) with pydantic-settings:

    SBX_APP_KEY, SBX_TOKEN, SBX_DOMAIN, SBX_BASE_URL, SBX_DEBUG, SBX_TIMEOUT

    sbx = from_env()
    sbx = with_token(user_token)
    sbx = multidomain("https://sbxcloud.com")
"""

import logging
from typing import Optional

import httpx
from pydantic_settings import BaseSettings, SettingsConfigDict

from sbx_client.base.exceptions import SBXException
from sbx_client.service import SBXService
from sbx_client.transport.httpx_transport import (
    DEFAULT_TIMEOUT,
    HttpxTransport,
    normalize_base_url,
)

log = logging.getLogger(__name__)

ENV_PREFIX = "SBX_"


class SBXSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        extra="ignore",
    )

    app_key: Optional[str] = None
    token: Optional[str] = None
    domain: Optional[int] = None
    base_url: Optional[str] = None
    debug: bool = False
    timeout: float = DEFAULT_TIMEOUT


def _require(settings: SBXSettings, name: str):
    value = getattr(settings, name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise SBXException(
            f"Required environment variable not set: {ENV_PREFIX}{name.upper()}"
        )
    return value


def build_service(
    app_key: Optional[str],
    token: Optional[str],
    domain: int,
    base_url: Optional[str],
    debug: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
    client: Optional[httpx.AsyncClient] = None,
) -> SBXService:
    """
    Builds a service backed by `HttpxTransport`.

    Empty credentials are accepted (multi-domain services set them later);
    missing ones are not.

    Raises:
        SBXException: If `app_key`, `token` or `base_url` is None.
    """
    if app_key is None:
        raise SBXException("app_key is required")
    if token is None:
        raise SBXException("token is required")
    if base_url is None:
        raise SBXException("base_url is required")

    base_url = normalize_base_url(base_url)
    transport = HttpxTransport(base_url, app_key, token, timeout=timeout, client=client)
    return SBXService(
        transport, domain=domain, app_key=app_key, base_url=base_url, debug=debug
    )


def from_settings(
    settings: SBXSettings, client: Optional[httpx.AsyncClient] = None
) -> SBXService:
    """Builds a service from settings; every credential must be set."""
    return build_service(
        app_key=_require(settings, "app_key"),
        token=_require(settings, "token"),
        domain=_require(settings, "domain"),
        base_url=_require(settings, "base_url"),
        debug=settings.debug,
        timeout=settings.timeout,
        client=client,
    )


def from_env(client: Optional[httpx.AsyncClient] = None) -> SBXService:
    """
    Builds a service from `SBX_APP_KEY`, `SBX_TOKEN`, `SBX_DOMAIN` and `SBX_BASE_URL`.

    Raises:
        SBXException: If any of them is not set.
    """
    log.debug("Building SBX service from environment.")
    return from_settings(SBXSettings(), client=client)


def with_token(token: str, client: Optional[httpx.AsyncClient] = None) -> SBXService:
    """Builds a service with a caller-supplied token (e.g. a user session)."""
    settings = SBXSettings()
    return build_service(
        app_key=_require(settings, "app_key"),
        token=token,
        domain=_require(settings, "domain"),
        base_url=_require(settings, "base_url"),
        debug=settings.debug,
        timeout=settings.timeout,
        client=client,
    )


def with_app_key_and_token(
    app_key: str, token: str, client: Optional[httpx.AsyncClient] = None
) -> SBXService:
    settings = SBXSettings()
    return build_service(
        app_key=app_key,
        token=token,
        domain=_require(settings, "domain"),
        base_url=_require(settings, "base_url"),
        debug=settings.debug,
        timeout=settings.timeout,
        client=client,
    )


def with_custom(
    app_key: str,
    token: str,
    domain: int,
    base_url: str,
    debug: bool = False,
    client: Optional[httpx.AsyncClient] = None,
) -> SBXService:
    return build_service(app_key, token, domain, base_url, debug=debug, client=client)


def multidomain(base_url: str, client: Optional[httpx.AsyncClient] = None) -> SBXService:
    """
    Builds a service with empty credentials and domain 0.

    Call `SBXService.set_multidomain_credentials()` before each tenant's calls.
    """
    return build_service("", "", 0, base_url, client=client)

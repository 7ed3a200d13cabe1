from .httpx_transport import DEFAULT_TIMEOUT, HttpxTransport, normalize_base_url

__all__ = ["DEFAULT_TIMEOUT", "HttpxTransport", "normalize_base_url"]

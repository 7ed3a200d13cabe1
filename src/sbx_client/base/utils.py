import base64
import logging
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterator, List, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MIME_TYPES = {
    "pdf": "application/pdf",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "txt": "text/plain",
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "js": "application/javascript",
    "json": "application/json",
    "xml": "application/xml",
    "zip": "application/zip",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
DEFAULT_MIME_TYPE = "application/octet-stream"


def prepare_for_wire(data: Any) -> Any:
    """
    Recursively convert Pydantic models, dataclasses, and special types to JSON-compatible values.

    It handles:
    - Pydantic BaseModel instances (dumped by alias in JSON mode)
    - Python dataclasses
    - Enums (their value)
    - datetime/date (ISO 8601 strings)
    - Dictionaries (processing values recursively)
    - Lists, tuples and sets (processing each item into a list)

    Args:
        data: The data to convert

    Returns:
        The converted data, ready to be sent as JSON
    """
    if data is None:
        return None

    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_wire(asdict(data))

    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        return prepare_for_wire(data.model_dump(mode="json", by_alias=True))

    if isinstance(data, Enum):
        return data.value

    if isinstance(data, (datetime, date)):
        return data.isoformat()

    if isinstance(data, dict):
        return {k: prepare_for_wire(v) for k, v in data.items()}

    if isinstance(data, (list, tuple, set, frozenset)):
        return [prepare_for_wire(item) for item in data]

    return data


def partition(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yields consecutive chunks of at most `size` items."""
    if size <= 0:
        raise ValueError("Chunk size must be a positive integer.")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def decode_base64_content(content: str) -> bytes:
    """Decodes base64 content, accepting a `data:<mime>;base64,` prefix."""
    if "," in content:
        content = content[content.index(",") + 1 :]
    return base64.b64decode(content, validate=True)


def detect_mime_type(file_name: str, content: str) -> str:
    """MIME type from a data URL prefix, otherwise from the file extension."""
    if content.startswith("data:") and ";" in content:
        return content[len("data:") : content.index(";")]
    extension = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
    mime_type = _MIME_TYPES.get(extension, DEFAULT_MIME_TYPE)
    logger.debug(f"Detected MIME type '{mime_type}' for '{file_name}'")
    return mime_type


def encode_base64_content(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")

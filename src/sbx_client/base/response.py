# src/sbx_client/base/response.py

"""
Response payloads returned by the SBX Cloud API.

Server payloads are decoded into pydantic models that ignore unknown keys.
`FindResponse` is a plain frozen dataclass because the auto-paginator builds
synthetic instances of it on the client side and its rows are typed by the
caller, not by the schema.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class FieldType(Enum):
    """Field types of a model property as reported by the server."""

    STRING = "STRING"
    REFERENCE = "REFERENCE"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    TEXT = "TEXT"
    FLOAT = "FLOAT"
    INT = "INT"
    JSON = "JSON"
    STATIC = "STATIC"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SBXProperty(_Payload):
    """A single field descriptor of a model schema."""

    id: Optional[int] = None
    name: Optional[str] = None
    type: Optional[FieldType] = None
    reference_model: Any = None
    reference_model_id: Optional[int] = None
    reference_type_name: Optional[str] = None
    default_value: Optional[str] = None
    required: Optional[bool] = None


class SBXModel(_Payload):
    id: Optional[int] = None
    name: Optional[str] = None
    label: Optional[str] = None
    properties: List[SBXProperty] = Field(default_factory=list)


class SBXConfig(_Payload):
    """Application configuration returned by the app config endpoint."""

    models: List[SBXModel] = Field(default_factory=list)
    properties: Dict[str, Any] = Field(default_factory=dict)


class SBXMeta(_Payload):
    """Read-only row metadata sent by the server under `_META`."""

    created_time: Optional[datetime] = None
    update_time: Optional[datetime] = None
    model_id: Optional[int] = None
    model_name: Optional[str] = None
    domain: Optional[int] = None


class Membership(_Payload):
    domain_id: Optional[int] = None
    domain: Optional[str] = None
    role: Optional[str] = None


class SBXUser(_Payload):
    id: Optional[int] = None
    name: Optional[str] = None
    code: Optional[str] = None
    email: Optional[str] = None
    login: Optional[str] = None
    role: Optional[str] = None
    domain: Optional[str] = None
    domain_id: Optional[int] = None
    membership_role: Optional[str] = None
    member_of: Optional[List[Membership]] = None
    home_folder_key: Optional[str] = None


class SBXUserResponse(_Payload):
    success: bool = False
    token: Optional[str] = None
    user: Optional[SBXUser] = None
    error: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def failure(
        cls, error: Optional[str], message: Optional[str] = None
    ) -> "SBXUserResponse":
        return cls(success=False, error=error, message=message)

    @property
    def error_message(self) -> Optional[str]:
        return self.error if self.error is not None else self.message


class SBXResponse(_Payload):
    """Generic response of the write, auth, file and email endpoints."""

    success: bool = False
    error: Optional[str] = None
    message: Optional[str] = None
    keys: Optional[List[str]] = None
    item: Any = None
    items: Optional[List[Any]] = None

    @classmethod
    def ok(cls, keys: Optional[List[str]] = None) -> "SBXResponse":
        return cls(success=True, keys=keys)

    @classmethod
    def failure(
        cls, error: Optional[str], message: Optional[str] = None
    ) -> "SBXResponse":
        return cls(success=False, error=error, message=message)

    @property
    def error_message(self) -> Optional[str]:
        """Returns `error` when set, otherwise `message`."""
        return self.error if self.error is not None else self.message


class Folder(_Payload):
    key: Optional[str] = None
    name: Optional[str] = None
    parent_key: Optional[str] = None
    path: Optional[str] = None
    key_path: Optional[str] = None
    row_key_id: Optional[str] = None
    row_model: Optional[str] = None


class FolderContent(_Payload):
    id: Optional[int] = None
    key: Optional[str] = None
    name: Optional[str] = None
    mimetype: Optional[str] = None
    size: Optional[int] = None
    owner_login: Optional[str] = None
    updated: Optional[str] = None


@dataclass(frozen=True)
class FindResponse(Generic[T]):
    """
    Result of a find call.

    For a single page the fields mirror the server payload. For the merged
    response produced by `SBXService.find_all`, `row_count` is the size of
    the merged result list and `total_pages` is the last page's value.
    """

    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    total_pages: Optional[int] = None
    row_count: Optional[int] = None
    results: Optional[List[T]] = None
    fetched_results: Optional[Dict[str, Dict[str, Any]]] = None
    model: Optional[List[SBXProperty]] = None

    @classmethod
    def failure(
        cls, error: Optional[str], message: Optional[str] = None
    ) -> "FindResponse[T]":
        """Creates a failed response carrying no data."""
        return cls(success=False, error=error, message=message)

    @property
    def error_message(self) -> Optional[str]:
        """Returns `error` when set, otherwise `message`."""
        return self.error if self.error is not None else self.message

    def has_more_pages(self, current_page: int) -> bool:
        """True when the server reports more pages after `current_page`."""
        return self.total_pages is not None and current_page < self.total_pages

    def __repr__(self) -> str:
        parts = [f"success={self.success!r}"]
        if self.error is not None:
            parts.append(f"error={self.error!r}")
        if self.message is not None:
            parts.append(f"message={self.message!r}")
        if self.total_pages is not None:
            parts.append(f"total_pages={self.total_pages!r}")
        if self.row_count is not None:
            parts.append(f"row_count={self.row_count!r}")
        if self.results is not None:
            parts.append(f"results=<{len(self.results)} rows>")
        if self.fetched_results is not None:
            parts.append(f"fetched_results={sorted(self.fetched_results)!r}")
        return f"FindResponse({', '.join(parts)})"

# src/sbx_client/base/model.py

from typing import Any, ClassVar, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ModelRegistrationError
from .response import SBXMeta

T = TypeVar("T")

KEY_FIELD = "_KEY"
META_FIELD = "_META"


class SbxEntity(BaseModel):
    """
    Base class for typed SBX rows.

    Subclasses declare the remote model they map to with a class variable:

        class Contact(SbxEntity):
            sbx_model: ClassVar[str] = "contact"
            name: str
            email: Optional[str] = None

    `key` and `meta` are read from / written to the `_KEY` and `_META`
    members of the row payload.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    sbx_model: ClassVar[Optional[str]] = None

    key: Optional[str] = Field(default=None, alias=KEY_FIELD)
    meta: Optional[SBXMeta] = Field(default=None, alias=META_FIELD)


def is_registered(entity_type: Any) -> bool:
    """Checks whether a type declares an SBX model name."""
    return isinstance(getattr(entity_type, "sbx_model", None), str)


def get_model_name(entity_type: Any) -> str:
    """
    Returns the model name declared by `entity_type`.

    Raises:
        ModelRegistrationError: If the type declares no model name.
    """
    name = getattr(entity_type, "sbx_model", None)
    if not isinstance(name, str) or not name:
        type_name = getattr(entity_type, "__name__", repr(entity_type))
        raise ModelRegistrationError(
            f"Type {type_name} does not declare an SBX model name "
            "(set `sbx_model: ClassVar[str]`)."
        )
    return name


def entity_to_row(entity: Any) -> Dict[str, Any]:
    """
    Convert an entity into a row payload for create/update calls.

    Pydantic models are dumped by alias in JSON mode with None values dropped,
    so fields the caller did not set are not sent as null. Plain dicts are
    copied as they are; explicit None values in a dict are kept so a field
    can be cleared. Read-only metadata is removed in both cases.
    """
    if isinstance(entity, BaseModel):
        row = entity.model_dump(mode="json", by_alias=True, exclude_none=True)
    elif isinstance(entity, dict):
        row = dict(entity)
    else:
        raise TypeError(
            f"Cannot convert {type(entity).__name__} into a row; "
            "expected a pydantic model or a dict."
        )
    return clean_for_upsert(row)


def clean_for_upsert(row: Dict[str, Any]) -> Dict[str, Any]:
    """Drops the read-only `_META`/`meta` members from a row."""
    return {k: v for k, v in row.items() if k not in (META_FIELD, "meta")}


def row_to_entity(row: Any, entity_type: Optional[Type[T]] = None) -> Any:
    """Decode one result row into `entity_type` (raw row if no type is given)."""
    if entity_type is None or entity_type is dict:
        return row
    if isinstance(entity_type, type) and issubclass(entity_type, BaseModel):
        return entity_type.model_validate(row)
    raise TypeError(
        f"Cannot decode rows into {entity_type!r}; "
        "use a pydantic model (e.g. an SbxEntity subclass) or dict."
    )

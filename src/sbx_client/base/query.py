# src/sbx_client/base/query.py
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (
    Any,
    Dict,
    Generic,
    Iterable,
    List,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from .model import get_model_name
from .utils import prepare_for_wire

# --- Setup Logging ---
log = logging.getLogger(__name__)

# --- Generic Type Variables ---
T = TypeVar("T")


# --- Operator Enums ---
class Operation(Enum):
    """Comparison operators understood by the find endpoint (value = wire symbol)."""

    # Comparison
    EQUAL = "="
    NOT_EQUAL = "!="
    GREATER_THAN = ">"
    GREATER_OR_EQUAL = ">="
    LESS_THAN = "<"
    LESS_OR_EQUAL = "<="
    # Pattern
    LIKE = "LIKE"
    # Membership
    IN = "IN"
    NOT_IN = "NOT IN"
    # Null checks
    IS = "IS"
    IS_NOT = "IS NOT"


class AndOr(Enum):
    """Logical connective of a group or of an expression inside a group."""

    AND = "AND"
    OR = "OR"


# --- Condition Model ---
@dataclass(frozen=True)
class LogicalExpression:
    """A single filter: `field <operation> value`, joined to its predecessor by `and_or`."""

    and_or: AndOr
    field: str
    operation: Operation
    value: Any = None

    @classmethod
    def and_(cls, field: str, operation: Operation, value: Any) -> "LogicalExpression":
        return cls(AndOr.AND, field, operation, value)

    @classmethod
    def or_(cls, field: str, operation: Operation, value: Any) -> "LogicalExpression":
        return cls(AndOr.OR, field, operation, value)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "ANDOR": self.and_or.value,
            "FIELD": self.field,
            "OP": self.operation.value,
            "VAL": prepare_for_wire(self.value),
        }


@dataclass(frozen=True)
class LogicalGroup:
    """
    An ordered, immutable sequence of expressions. `and_or` tells how the
    group is combined with the group before it; it has no effect on the
    first group.
    """

    and_or: AndOr
    expressions: Tuple[LogicalExpression, ...] = ()

    @classmethod
    def and_(cls) -> "LogicalGroup":
        return cls(AndOr.AND)

    @classmethod
    def or_(cls) -> "LogicalGroup":
        return cls(AndOr.OR)

    def add_expression(self, expression: LogicalExpression) -> "LogicalGroup":
        """Returns a new group with `expression` appended."""
        return replace(self, expressions=self.expressions + (expression,))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "ANDOR": self.and_or.value,
            "GROUP": [expr.to_payload() for expr in self.expressions],
        }


@dataclass
class _GroupBuffer:
    """Mutable group accumulated by `FindQuery`; frozen on compile."""

    and_or: AndOr
    expressions: List[LogicalExpression] = field(default_factory=list)

    def freeze(self) -> LogicalGroup:
        return LogicalGroup(self.and_or, tuple(self.expressions))


# --- Where Clause (tagged union) ---
@dataclass(frozen=True)
class WhereClause:
    """Base of the two where-clause variants, `Conditions` and `Keys`."""


@dataclass(frozen=True)
class Conditions(WhereClause):
    groups: Tuple[LogicalGroup, ...]


@dataclass(frozen=True)
class Keys(WhereClause):
    keys: Tuple[str, ...]


def where_to_payload(where: WhereClause) -> Union[List[Dict[str, Any]], Dict[str, Any]]:
    """Serializes a where clause: a list of groups, or `{"keys": [...]}`."""
    if isinstance(where, Conditions):
        return [group.to_payload() for group in where.groups]
    if isinstance(where, Keys):
        return {"keys": list(where.keys)}
    raise TypeError(f"Unsupported where clause type: {type(where).__name__}")


# --- Find Request ---
@dataclass(frozen=True)
class FindRequest:
    """Immutable payload of a find call, produced by `FindQuery.compile()`."""

    row_model: str
    domain: Optional[int] = None
    where: Optional[WhereClause] = None
    page: Optional[int] = None
    size: Optional[int] = None
    fetch: Optional[Tuple[str, ...]] = None
    rfetch: Optional[Tuple[str, ...]] = None
    autowire: Optional[Tuple[str, ...]] = None

    def with_domain(self, domain: Optional[int]) -> "FindRequest":
        return replace(self, domain=domain)

    def to_payload(self) -> Dict[str, Any]:
        """Builds the JSON body; members without a value are left out."""
        payload: Dict[str, Any] = {"row_model": self.row_model}
        if self.domain is not None:
            payload["domain"] = self.domain
        if self.where is not None:
            payload["where"] = where_to_payload(self.where)
        if self.page is not None:
            payload["page"] = self.page
        if self.size is not None:
            payload["size"] = self.size
        if self.fetch is not None:
            payload["fetch"] = list(self.fetch)
        if self.rfetch is not None:
            payload["rfetch"] = list(self.rfetch)
        if self.autowire is not None:
            payload["autowire"] = list(self.autowire)
        return payload

    def __repr__(self) -> str:
        parts = [f"row_model={self.row_model!r}"]
        if self.domain is not None:
            parts.append(f"domain={self.domain!r}")
        if self.where is not None:
            parts.append(f"where={self.where!r}")
        for name in ("page", "size", "fetch", "rfetch", "autowire"):
            value = getattr(self, name)
            if value is not None:
                parts.append(f"{name}={value!r}")
        return f"FindRequest({', '.join(parts)})"


def _as_list(values: Tuple[Any, ...]) -> List[Any]:
    """Accepts either varargs or a single iterable (not a string)."""
    if len(values) == 1 and isinstance(values[0], Iterable) and not isinstance(
        values[0], (str, bytes, dict)
    ):
        return list(values[0])
    return list(values)


def _as_tuple(values: Tuple[Any, ...]) -> Tuple[Any, ...]:
    """Like `_as_list`, frozen so compiled expressions stay hashable."""
    return tuple(_as_list(values))


# --- Query Builder ---
class FindQuery(Generic[T]):
    """
    Builds find requests using a fluent API. Every method returns the same
    builder; `compile()` returns an immutable `FindRequest` and leaves the
    builder usable, so the same conditions can be compiled again for other
    pages.

        query = (
            FindQuery.from_model(Contact)
            .new_group_with_and()
            .and_where_is_equal_to("status", "ACTIVE")
            .and_where_is_greater_than("age", 18)
            .new_group_with_or()
            .or_where_contains("name", "John")
            .set_page_size(50)
        )
    """

    _model: str
    _entity_type: Optional[Type[T]]
    _groups: List[_GroupBuffer]
    _current_group: Optional[_GroupBuffer]
    _keys: Optional[List[str]]
    _options: Dict[str, Any]
    _logger: logging.Logger

    def __init__(self, model: str, entity_type: Optional[Type[T]] = None):
        self._logger = log
        self._model = model
        self._entity_type = entity_type
        self._groups = []
        self._current_group = None
        self._keys = None
        self._options = {
            "page": None,
            "size": None,
            "fetch": None,
            "rfetch": None,
            "autowire": None,
        }
        self._logger.debug(f"Initialized FindQuery for model '{model}'.")

    @classmethod
    def from_model(cls, model: Union[str, Type[T]]) -> "FindQuery[T]":
        """
        Creates a query from a model name, or from a type declaring `sbx_model`.

        Raises:
            ModelRegistrationError: If a type is given that declares no model name.
        """
        if isinstance(model, str):
            return cls(model)
        return cls(get_model_name(model), model)

    # --- Accessors ---

    @property
    def model(self) -> str:
        return self._model

    @property
    def entity_type(self) -> Optional[Type[T]]:
        return self._entity_type

    @property
    def page(self) -> Optional[int]:
        return self._options["page"]

    @property
    def page_size(self) -> Optional[int]:
        return self._options["size"]

    # --- Groups ---

    def new_group_with_and(self) -> "FindQuery[T]":
        """Starts a new group combined with the previous one using AND."""
        return self._new_group(_GroupBuffer(AndOr.AND))

    def new_group_with_or(self) -> "FindQuery[T]":
        """Starts a new group combined with the previous one using OR."""
        return self._new_group(_GroupBuffer(AndOr.OR))

    def _new_group(self, group: _GroupBuffer) -> "FindQuery[T]":
        self._current_group = group
        self._groups.append(group)
        self._logger.debug(
            f"Started {group.and_or.value} group #{len(self._groups)} on '{self._model}'."
        )
        return self

    def add_expression(
        self, and_or: AndOr, field_name: str, operation: Operation, value: Any = None
    ) -> "FindQuery[T]":
        """Appends an expression to the current group, opening an AND group if needed."""
        if self._current_group is None:
            self.new_group_with_and()
        expression = LogicalExpression(and_or, field_name, operation, value)
        self._current_group.expressions.append(expression)
        self._logger.debug(f"Added expression: {expression!r}")
        return self

    # --- AND conditions ---

    def and_where_is_equal_to(self, field_name: str, value: Any) -> "FindQuery[T]":
        return self.add_expression(AndOr.AND, field_name, Operation.EQUAL, value)

    def and_where_is_not_equal_to(self, field_name: str, value: Any) -> "FindQuery[T]":
        return self.add_expression(AndOr.AND, field_name, Operation.NOT_EQUAL, value)

    def and_where_is_null(self, field_name: str) -> "FindQuery[T]":
        return self.add_expression(AndOr.AND, field_name, Operation.IS, None)

    def and_where_is_not_null(self, field_name: str) -> "FindQuery[T]":
        return self.add_expression(AndOr.AND, field_name, Operation.IS_NOT, None)

    def and_where_is_greater_than(self, field_name: str, value: Any) -> "FindQuery[T]":
        return self.add_expression(AndOr.AND, field_name, Operation.GREATER_THAN, value)

    def and_where_is_greater_or_equal_to(
        self, field_name: str, value: Any
    ) -> "FindQuery[T]":
        return self.add_expression(
            AndOr.AND, field_name, Operation.GREATER_OR_EQUAL, value
        )

    def and_where_is_less_than(self, field_name: str, value: Any) -> "FindQuery[T]":
        return self.add_expression(AndOr.AND, field_name, Operation.LESS_THAN, value)

    def and_where_is_less_or_equal_to(
        self, field_name: str, value: Any
    ) -> "FindQuery[T]":
        return self.add_expression(AndOr.AND, field_name, Operation.LESS_OR_EQUAL, value)

    def and_where_starts_with(self, field_name: str, value: str) -> "FindQuery[T]":
        """field LIKE 'value%'"""
        return self.add_expression(AndOr.AND, field_name, Operation.LIKE, f"{value}%")

    def and_where_ends_with(self, field_name: str, value: str) -> "FindQuery[T]":
        """field LIKE '%value'"""
        return self.add_expression(AndOr.AND, field_name, Operation.LIKE, f"%{value}")

    def and_where_contains(self, field_name: str, value: str) -> "FindQuery[T]":
        """field LIKE '%value%'; any '%' in `value` is removed first."""
        return self.add_expression(
            AndOr.AND, field_name, Operation.LIKE, _contains_pattern(value)
        )

    def and_where_is_in(self, field_name: str, *values: Any) -> "FindQuery[T]":
        return self.add_expression(AndOr.AND, field_name, Operation.IN, _as_tuple(values))

    def and_where_is_not_in(self, field_name: str, *values: Any) -> "FindQuery[T]":
        return self.add_expression(
            AndOr.AND, field_name, Operation.NOT_IN, _as_tuple(values)
        )

    # --- OR conditions ---

    def or_where_is_equal_to(self, field_name: str, value: Any) -> "FindQuery[T]":
        return self.add_expression(AndOr.OR, field_name, Operation.EQUAL, value)

    def or_where_is_not_equal_to(self, field_name: str, value: Any) -> "FindQuery[T]":
        return self.add_expression(AndOr.OR, field_name, Operation.NOT_EQUAL, value)

    def or_where_is_null(self, field_name: str) -> "FindQuery[T]":
        return self.add_expression(AndOr.OR, field_name, Operation.IS, None)

    def or_where_is_not_null(self, field_name: str) -> "FindQuery[T]":
        return self.add_expression(AndOr.OR, field_name, Operation.IS_NOT, None)

    def or_where_is_greater_than(self, field_name: str, value: Any) -> "FindQuery[T]":
        return self.add_expression(AndOr.OR, field_name, Operation.GREATER_THAN, value)

    def or_where_is_greater_or_equal_to(
        self, field_name: str, value: Any
    ) -> "FindQuery[T]":
        return self.add_expression(
            AndOr.OR, field_name, Operation.GREATER_OR_EQUAL, value
        )

    def or_where_is_less_than(self, field_name: str, value: Any) -> "FindQuery[T]":
        return self.add_expression(AndOr.OR, field_name, Operation.LESS_THAN, value)

    def or_where_is_less_or_equal_to(
        self, field_name: str, value: Any
    ) -> "FindQuery[T]":
        return self.add_expression(AndOr.OR, field_name, Operation.LESS_OR_EQUAL, value)

    def or_where_starts_with(self, field_name: str, value: str) -> "FindQuery[T]":
        return self.add_expression(AndOr.OR, field_name, Operation.LIKE, f"{value}%")

    def or_where_ends_with(self, field_name: str, value: str) -> "FindQuery[T]":
        return self.add_expression(AndOr.OR, field_name, Operation.LIKE, f"%{value}")

    def or_where_contains(self, field_name: str, value: str) -> "FindQuery[T]":
        return self.add_expression(
            AndOr.OR, field_name, Operation.LIKE, _contains_pattern(value)
        )

    def or_where_is_in(self, field_name: str, *values: Any) -> "FindQuery[T]":
        return self.add_expression(AndOr.OR, field_name, Operation.IN, _as_tuple(values))

    def or_where_is_not_in(self, field_name: str, *values: Any) -> "FindQuery[T]":
        return self.add_expression(
            AndOr.OR, field_name, Operation.NOT_IN, _as_tuple(values)
        )

    # --- Key-based query ---

    def where_with_keys(self, *keys: str) -> "FindQuery[T]":
        """
        Queries by primary keys. When keys are set they replace every
        condition group in the compiled request.
        """
        self._keys = [str(k) for k in _as_list(keys)]
        self._logger.debug(f"Key lookup set on '{self._model}': {len(self._keys)} keys")
        return self

    # --- Fetch related ---

    def fetch_models(self, *models: str) -> "FindQuery[T]":
        """Fetches forward-referenced models alongside the results."""
        self._options["fetch"] = _as_list(models)
        return self

    def fetch_referencing_models(self, *models: str) -> "FindQuery[T]":
        """Fetches models that reference the queried model."""
        self._options["rfetch"] = _as_list(models)
        return self

    def set_autowire(self, *fields: str) -> "FindQuery[T]":
        """Sets the reference fields the server should resolve into full rows."""
        self._options["autowire"] = _as_list(fields)
        return self

    # --- Pagination ---

    def set_page(self, page: int) -> "FindQuery[T]":
        """Sets the 1-based page number."""
        self._options["page"] = page
        return self

    def set_page_size(self, page_size: int) -> "FindQuery[T]":
        self._options["size"] = page_size
        return self

    # --- Build ---

    def compile(self) -> FindRequest:
        """Compiles the current state into a new `FindRequest` (domain left unset)."""
        where: Optional[WhereClause]
        if self._keys:
            where = Keys(tuple(self._keys))
            if self._groups:
                self._logger.debug(
                    f"Keys set on '{self._model}'; dropping {len(self._groups)} condition groups."
                )
        elif self._groups:
            where = Conditions(tuple(group.freeze() for group in self._groups))
        else:
            where = None

        request = FindRequest(
            row_model=self._model,
            where=where,
            page=self._options["page"],
            size=self._options["size"],
            fetch=_frozen(self._options["fetch"]),
            rfetch=_frozen(self._options["rfetch"]),
            autowire=_frozen(self._options["autowire"]),
        )
        self._logger.debug(f"Compiled find request: {request!r}")
        return request

    def __repr__(self) -> str:
        return (
            f"FindQuery(model={self._model!r}, groups={len(self._groups)}, "
            f"keys={self._keys!r}, options={self._options!r})"
        )


def _contains_pattern(value: str) -> str:
    return f"%{value.replace('%', '')}%"


def _frozen(values: Optional[List[str]]) -> Optional[Tuple[str, ...]]:
    return tuple(values) if values is not None else None

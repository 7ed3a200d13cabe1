# src/sbx_client/repository.py

import logging
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Generic,
    Iterable,
    List,
    Optional,
    Type,
    TypeVar,
)

from sbx_client.base.exceptions import ObjectNotFoundException, SbxRepositoryException
from sbx_client.base.model import get_model_name
from sbx_client.base.query import FindQuery
from sbx_client.base.response import FindResponse

if TYPE_CHECKING:
    from sbx_client.service import SBXService

T = TypeVar("T")


def _keys_of(values: Iterable[Any]) -> List[str]:
    values = list(values)
    if len(values) == 1 and isinstance(values[0], (list, tuple, set, frozenset)):
        values = list(values[0])
    return [str(v) for v in values]


class SbxRepository(Generic[T]):
    """
    Typed access to one SBX model.

    Reads return empty results when the server rejects the query (the
    failure is logged); writes raise `SbxRepositoryException`.
    """

    def __init__(self, service: "SBXService", entity_type: Type[T]):
        self._service = service
        self._entity_type = entity_type
        self._model_name = get_model_name(entity_type)
        self._logger = logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{self._model_name}]"
        )

    @property
    def entity_type(self) -> Type[T]:
        return self._entity_type

    @property
    def model_name(self) -> str:
        return self._model_name

    def _new_query(self) -> FindQuery[T]:
        return FindQuery(self._model_name, self._entity_type)

    def _results(self, response: FindResponse[T], operation: str) -> List[T]:
        if not response.success:
            self._logger.warning(
                f"{operation} on '{self._model_name}' failed: {response.error_message}"
            )
            return []
        return list(response.results or [])

    # --- Find Operations ---

    async def find_by_id(self, key: str) -> Optional[T]:
        response = await self._service.find(self._new_query().where_with_keys(key))
        results = self._results(response, "find_by_id")
        return results[0] if results else None

    async def get(self, key: str) -> T:
        """
        Retrieves an entity by key.

        Raises:
            ObjectNotFoundException: If no row has the given key.
        """
        entity = await self.find_by_id(key)
        if entity is None:
            raise ObjectNotFoundException(
                f"{self._entity_type.__name__} with key '{key}' not found"
            )
        return entity

    async def find_by_ids(self, *keys: str) -> List[T]:
        key_list = _keys_of(keys)
        if not key_list:
            return []
        response = await self._service.find(
            self._new_query().where_with_keys(key_list)
        )
        return self._results(response, "find_by_ids")

    async def find_all(self) -> List[T]:
        """Fetches every row of the model, all pages."""
        response = await self._service.find_all(self._new_query())
        return self._results(response, "find_all")

    async def find_page(self, page: int, page_size: int) -> FindResponse[T]:
        return await self._service.find(
            self._new_query().set_page(page).set_page_size(page_size)
        )

    async def find_where(self, conditions: Callable[[FindQuery[T]], Any]) -> List[T]:
        """
        Fetches every row matching the conditions applied by `conditions`.

            await repo.find_where(lambda q: q.and_where_is_equal_to("status", "OPEN"))
        """
        query = self._new_query()
        conditions(query)
        response = await self._service.find_all(query)
        return self._results(response, "find_where")

    async def exists_by_id(self, key: str) -> bool:
        return await self.find_by_id(key) is not None

    async def count(self) -> int:
        response = await self._service.find(
            self._new_query().set_page(1).set_page_size(1)
        )
        if response.success and response.row_count is not None:
            return response.row_count
        return 0

    # --- Save Operations ---

    async def save(self, entity: T) -> str:
        """
        Creates the entity when it has no key, otherwise updates it.

        Returns:
            The key of the saved row.

        Raises:
            SbxRepositoryException: If the server rejects the write.
        """
        key = getattr(entity, "key", None)
        if key is None:
            response = await self._service.create(self._model_name, [entity])
            if response.success and response.keys:
                self._logger.debug(f"Created '{self._model_name}' row {response.keys[0]}")
                return response.keys[0]
        else:
            response = await self._service.update(self._model_name, [entity])
            if response.success:
                self._logger.debug(f"Updated '{self._model_name}' row {key}")
                return key
        raise SbxRepositoryException(f"Save failed: {response.error_message}")

    async def save_all(self, entities: Iterable[T]) -> List[str]:
        """
        Creates entities without a key and updates the rest, in two batches.

        Returns:
            Keys of the created rows followed by keys of the updated rows.

        Raises:
            SbxRepositoryException: If the server rejects either batch.
        """
        to_insert: List[T] = []
        to_update: List[T] = []
        for entity in entities:
            if getattr(entity, "key", None) is None:
                to_insert.append(entity)
            else:
                to_update.append(entity)

        saved_keys: List[str] = []
        if to_insert:
            response = await self._service.create(self._model_name, to_insert)
            if not response.success:
                raise SbxRepositoryException(f"Save failed: {response.error_message}")
            saved_keys.extend(response.keys or [])
        if to_update:
            response = await self._service.update(self._model_name, to_update)
            if not response.success:
                raise SbxRepositoryException(f"Save failed: {response.error_message}")
            saved_keys.extend(e.key for e in to_update)

        self._logger.debug(
            f"Saved {len(saved_keys)} '{self._model_name}' rows "
            f"({len(to_insert)} created, {len(to_update)} updated)"
        )
        return saved_keys

    # --- Delete Operations ---

    async def delete(self, entity: T) -> None:
        key = getattr(entity, "key", None)
        if key is None:
            raise SbxRepositoryException("Cannot delete entity without key")
        await self.delete_by_id(key)

    async def delete_by_id(self, key: str) -> None:
        response = await self._service.delete(self._model_name, key)
        if not response.success:
            raise SbxRepositoryException(f"Delete failed: {response.error_message}")

    async def delete_by_ids(self, *keys: str) -> None:
        key_list = _keys_of(keys)
        if not key_list:
            return
        response = await self._service.delete(self._model_name, key_list)
        if not response.success:
            raise SbxRepositoryException(f"Delete failed: {response.error_message}")

    async def delete_all(self, entities: Iterable[T]) -> None:
        """Deletes the given entities; entities without a key are skipped."""
        keys = [e.key for e in entities if getattr(e, "key", None) is not None]
        await self.delete_by_ids(keys)

    # --- Query Builder ---

    def query(self) -> "RepositoryQuery[T]":
        return RepositoryQuery(self._service, self._entity_type, self._model_name)


class RepositoryQuery(Generic[T]):
    """
    Fluent query bound to a repository's service and entity type.

        active = await (
            repo.query()
            .where_equals("status", "ACTIVE")
            .fetch("customer")
            .list()
        )
    """

    def __init__(self, service: "SBXService", entity_type: Type[T], model_name: str):
        self._service = service
        self._entity_type = entity_type
        self._query: FindQuery[T] = FindQuery(model_name, entity_type)

    @property
    def find_query(self) -> FindQuery[T]:
        return self._query

    # --- Conditions ---

    def where(self, conditions: Callable[[FindQuery[T]], Any]) -> "RepositoryQuery[T]":
        conditions(self._query)
        return self

    def where_equals(self, field_name: str, value: Any) -> "RepositoryQuery[T]":
        self._query.and_where_is_equal_to(field_name, value)
        return self

    def where_keys(self, *keys: str) -> "RepositoryQuery[T]":
        self._query.where_with_keys(*keys)
        return self

    # --- Fetch Related ---

    def fetch(self, *models: str) -> "RepositoryQuery[T]":
        self._query.fetch_models(*models)
        return self

    def fetch_referencing(self, *models: str) -> "RepositoryQuery[T]":
        self._query.fetch_referencing_models(*models)
        return self

    def autowire(self, *fields: str) -> "RepositoryQuery[T]":
        self._query.set_autowire(*fields)
        return self

    # --- Pagination ---

    def page(self, page: int, page_size: Optional[int] = None) -> "RepositoryQuery[T]":
        self._query.set_page(page)
        if page_size is not None:
            self._query.set_page_size(page_size)
        return self

    def page_size(self, size: int) -> "RepositoryQuery[T]":
        self._query.set_page_size(size)
        return self

    # --- Execution ---

    async def execute(self) -> FindResponse[T]:
        """Runs the query for its current page."""
        return await self._service.find(self._query, self._entity_type)

    async def list(self) -> List[T]:
        """All matching rows across every page."""
        response = await self._service.find_all(self._query, self._entity_type)
        return list(response.results or []) if response.success else []

    async def list_page(self) -> List[T]:
        response = await self.execute()
        return list(response.results or []) if response.success else []

    async def first(self) -> Optional[T]:
        response = await self._service.find_one(self._query, self._entity_type)
        if response.success and response.results:
            return response.results[0]
        return None

    async def first_or_raise(self) -> T:
        """
        Raises:
            ObjectNotFoundException: If nothing matches the query.
        """
        entity = await self.first()
        if entity is None:
            raise ObjectNotFoundException("No entity found matching query")
        return entity

    async def count(self) -> int:
        response = await self._service.find_one(self._query, self._entity_type)
        if response.success and response.row_count is not None:
            return response.row_count
        return 0

    async def exists(self) -> bool:
        return await self.count() > 0

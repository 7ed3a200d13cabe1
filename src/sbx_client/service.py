# src/sbx_client/service.py

"""
SBX Cloud service.

`SBXService` executes find requests (single page or auto-paginated) and
wraps the row, auth, file, folder, email, cloud-script and config endpoints.
Every call is one awaited request/response (or, for `find_all` and chunked
writes, a strictly sequential series of them). Business-level failures are
returned as responses with `success=False`; the only calls that raise are
those whose result has no failure representation (`download_file`,
`run_cloud_script`, `load_config`).
"""

import logging
from dataclasses import dataclass, replace
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    List,
    Optional,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel, TypeAdapter

from sbx_client.base.exceptions import SBXException
from sbx_client.base.interfaces import Transport
from sbx_client.base.model import entity_to_row, get_model_name, row_to_entity
from sbx_client.base.query import FindQuery, FindRequest
from sbx_client.base.response import (
    FindResponse,
    Folder,
    FolderContent,
    SBXConfig,
    SBXProperty,
    SBXResponse,
    SBXUserResponse,
)
from sbx_client.base.utils import (
    decode_base64_content,
    encode_base64_content,
    detect_mime_type,
    partition,
    prepare_for_wire,
)

if TYPE_CHECKING:
    from sbx_client.repository import SbxRepository

T = TypeVar("T")
R = TypeVar("R", bound=BaseModel)

DEFAULT_CHUNK_SIZE = 100

# --- Endpoints ---
FIND_PATH = "/api/data/v1/row/find"
CREATE_PATH = "/api/data/v1/row"
UPDATE_PATH = "/api/data/v1/row/update"
DELETE_PATH = "/api/data/v1/row/delete"
LOGIN_PATH = "/api/user/v1/login"
VALIDATE_PATH = "/api/user/v1/validate"
CHANGE_PASSWORD_PATH = "/api/user/v1/password/change"
PASSWORD_REQUEST_PATH = "/api/user/v1/password/request"
PASSWORD_RESET_PATH = "/api/user/v1/password"
USER_EXISTS_PATH = "/api/user/v1/user/exist"
UPLOAD_PATH = "/api/content/v1/upload"
DOWNLOAD_PATH = "/api/content/v1/download"
DELETE_FILE_PATH = "/api/content/v1/delete"
FOLDER_CREATE_PATH = "/api/content/v1/folder/create"
FOLDER_DELETE_PATH = "/api/content/v1/folder/delete"
FOLDER_LIST_PATH = "/api/content/v1/folder/list"
FOLDER_RENAME_PATH = "/api/content/v1/folder/rename"
EMAIL_PATH = "/api/email/v1/send"
EMAIL_V2_PATH = "/api/email/v2/send"
CLOUDSCRIPT_PATH = "/api/cloudscript/v1/run"
CLOUDSCRIPT_TEST_PATH = "/api/cloudscript/v1/run/test"
APP_CONFIG_PATH = "/api/domain/v1/app/config"


@dataclass
class EmailParams:
    """Parameters of the send-email endpoints. `from_` is sent as `from`."""

    to: Optional[List[str]] = None
    from_: Optional[str] = None
    cc: Optional[List[str]] = None
    bcc: Optional[List[str]] = None
    subject: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    template_key: Optional[str] = None
    template: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "from": self.from_,
            "to": self.to,
            "cc": self.cc,
            "bcc": self.bcc,
            "subject": self.subject,
            "data": prepare_for_wire(self.data),
            "template_key": self.template_key,
            "template": self.template,
        }
        return {k: v for k, v in payload.items() if v is not None}


def _as_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _flatten(items: Iterable[Any]) -> List[Any]:
    """Accepts varargs or a single list/tuple of items."""
    items = list(items)
    if len(items) == 1 and isinstance(items[0], (list, tuple)):
        return list(items[0])
    return items


def _with_folder_item(response: SBXResponse) -> SBXResponse:
    """Decodes a folder returned in `item` as `Folder`."""
    if response.success and isinstance(response.item, dict):
        return response.model_copy(update={"item": Folder.model_validate(response.item)})
    return response


class SBXService:
    """
    Client for the SBX Cloud API.

    Requests go through a `Transport`; use `sbx_client.config` factories to
    build a service backed by `HttpxTransport` from settings or environment.
    """

    def __init__(
        self,
        transport: Transport,
        domain: int = 0,
        app_key: str = "",
        base_url: str = "",
        debug: bool = False,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if not isinstance(transport, Transport):
            raise TypeError("transport must be an instance of Transport")
        self._transport = transport
        self._domain = domain
        self._app_key = app_key
        self._base_url = base_url
        self._debug = debug
        self._chunk_size = chunk_size
        self._config: Optional[SBXConfig] = None
        self._logger = logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[domain={domain}]"
        )
        self._logger.info(
            f"SBX service created for domain {domain} "
            f"(base url: '{base_url}', debug: {debug})."
        )

    # --- Accessors ---

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def domain(self) -> int:
        return self._domain

    @property
    def app_key(self) -> str:
        return self._app_key

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def debug(self) -> bool:
        return self._debug

    @debug.setter
    def debug(self, value: bool) -> None:
        self._debug = value

    def _trace(self, message: str) -> None:
        if self._debug:
            self._logger.info(message)
        else:
            self._logger.debug(message)

    # --- Repository Factory ---

    def repository(self, entity_type: Type[T]) -> "SbxRepository[T]":
        """
        Creates a typed repository for an entity type declaring `sbx_model`.

        Raises:
            ModelRegistrationError: If the type declares no model name.
        """
        from sbx_client.repository import SbxRepository

        return SbxRepository(self, entity_type)

    # --- Find ---

    async def find(
        self,
        query: Union[FindQuery[T], FindRequest],
        entity_type: Optional[Type[T]] = None,
    ) -> FindResponse[T]:
        """
        Run a single find call.

        Args:
            query: A `FindQuery` (compiled here) or an already compiled `FindRequest`.
            entity_type: Row type. Defaults to the query's own entity type;
                         rows stay plain dicts when neither is set.

        Returns:
            The page as a `FindResponse`. Transport and decoding errors are
            returned as a failed response, never raised.
        """
        if isinstance(query, FindQuery):
            if entity_type is None:
                entity_type = query.entity_type
            request = query.compile()
        elif isinstance(query, FindRequest):
            request = query
        else:
            raise TypeError(
                f"find() requires a FindQuery or FindRequest, got {type(query).__name__}"
            )

        request = request.with_domain(self._domain)
        self._trace(f"SBX find: {request!r}")

        try:
            raw = await self._transport.send("POST", FIND_PATH, json=request.to_payload())
            return self._map_find_response(raw, entity_type)
        except Exception as e:
            self._logger.error(f"Find operation failed: {e}", exc_info=True)
            return FindResponse.failure(str(e))

    def _map_find_response(
        self, raw: Any, entity_type: Optional[Type[T]]
    ) -> FindResponse[T]:
        if raw is None:
            return FindResponse.failure("Empty response")
        if not isinstance(raw, dict):
            return FindResponse.failure(
                f"Unexpected find response payload: {type(raw).__name__}"
            )

        error = _as_text(raw.get("error"))
        message = _as_text(raw.get("message"))
        if raw.get("success") is not True:
            self._logger.warning(
                f"Find rejected by server: {error if error is not None else message}"
            )
            return FindResponse.failure(error, message)

        results = None
        raw_results = raw.get("results")
        if isinstance(raw_results, list):
            results = [row_to_entity(row, entity_type) for row in raw_results]

        fetched_results = None
        raw_fetched = raw.get("fetched_results")
        if isinstance(raw_fetched, dict):
            fetched_results = {
                str(model_name): dict(rows)
                for model_name, rows in raw_fetched.items()
                if isinstance(rows, dict)
            }

        model = None
        raw_model = raw.get("model")
        if isinstance(raw_model, list):
            model = [SBXProperty.model_validate(item) for item in raw_model]

        return FindResponse(
            success=True,
            error=error,
            message=message,
            total_pages=_as_int(raw.get("total_pages")),
            row_count=_as_int(raw.get("row_count")),
            results=results,
            fetched_results=fetched_results,
            model=model,
        )

    async def find_one(
        self,
        query: Union[FindQuery[T], FindRequest],
        entity_type: Optional[Type[T]] = None,
    ) -> FindResponse[T]:
        """Runs `query` with a page size of 1; the builder itself is left as is."""
        if isinstance(query, FindQuery):
            if entity_type is None:
                entity_type = query.entity_type
            query = query.compile()
        if isinstance(query, FindRequest):
            query = replace(query, size=1)
        return await self.find(query, entity_type)

    async def find_model(self, entity_type: Type[T]) -> FindResponse[T]:
        """Finds the first page of rows of a type declaring `sbx_model`."""
        return await self.find(FindQuery.from_model(entity_type), entity_type)

    async def find_all(
        self, query: FindQuery[T], entity_type: Optional[Type[T]] = None
    ) -> FindResponse[T]:
        """
        Fetch every page of `query` and merge them into one response.

        Pages are requested one after another starting at page 1; the query's
        page is overwritten on each iteration. Fetching continues while the
        page just fetched is lower than the `total_pages` that page reports;
        a page without `total_pages` ends the loop.

        The first failed page is returned as it is and nothing fetched
        before it is reported. `fetched_results` of all pages are merged per
        related model; a related row seen again on a later page replaces the
        earlier copy.
        """
        if not isinstance(query, FindQuery):
            raise TypeError(
                f"find_all() requires a FindQuery, got {type(query).__name__}"
            )

        all_results: List[T] = []
        all_fetched: Dict[str, Dict[str, Any]] = {}
        current_page = 1

        while True:
            query.set_page(current_page)
            response = await self.find(query, entity_type)

            if not response.success:
                self._logger.warning(
                    f"find_all on '{query.model}' aborted at page {current_page}: "
                    f"{response.error_message}"
                )
                return response

            if response.results:
                all_results.extend(response.results)

            if response.fetched_results:
                for model_name, rows in response.fetched_results.items():
                    all_fetched.setdefault(model_name, {}).update(rows)

            if not response.has_more_pages(current_page):
                break
            current_page += 1

        self._trace(
            f"find_all on '{query.model}' fetched {current_page} page(s), "
            f"{len(all_results)} row(s)."
        )
        return FindResponse(
            success=True,
            total_pages=response.total_pages,
            row_count=len(all_results),
            results=all_results,
            fetched_results=all_fetched or None,
            model=response.model,
        )

    # --- Rows ---

    async def create(
        self, model: str, rows: Union[Dict[str, Any], List[Dict[str, Any]]]
    ) -> SBXResponse:
        """Creates one row or a list of rows; the response carries the new keys."""
        return await self._upsert(CREATE_PATH, model, rows, is_create=True)

    async def update(
        self, model: str, rows: Union[Dict[str, Any], List[Dict[str, Any]]]
    ) -> SBXResponse:
        """Updates one row or a list of rows (each row must carry `_KEY`)."""
        return await self._upsert(UPDATE_PATH, model, rows, is_create=False)

    async def create_entities(self, *entities: Any) -> SBXResponse:
        """Creates entities; the model name comes from the first entity's type."""
        items = _flatten(entities)
        if not items:
            return SBXResponse.failure("No entities provided")
        model = get_model_name(type(items[0]))
        return await self.create(model, [entity_to_row(e) for e in items])

    async def update_entities(self, *entities: Any) -> SBXResponse:
        """Updates entities; the model name comes from the first entity's type."""
        items = _flatten(entities)
        if not items:
            return SBXResponse.failure("No entities provided")
        model = get_model_name(type(items[0]))
        return await self.update(model, [entity_to_row(e) for e in items])

    async def _upsert(
        self,
        path: str,
        model: str,
        rows: Union[Dict[str, Any], List[Dict[str, Any]]],
        is_create: bool,
    ) -> SBXResponse:
        if isinstance(rows, dict):
            rows = [rows]
        self._trace(
            f"SBX {'create' if is_create else 'update'}: model={model}, rows={len(rows)}"
        )

        try:
            cleaned = [entity_to_row(row) for row in rows]
            all_keys: List[str] = []

            for chunk in partition(cleaned, self._chunk_size):
                payload = {"row_model": model, "domain": self._domain, "rows": chunk}
                raw = await self._transport.send("POST", path, json=payload)
                response = self._to_response(raw, "Upsert operation failed")
                if not response.success:
                    return response
                if response.keys:
                    all_keys.extend(response.keys)

            return SBXResponse.ok(all_keys)
        except Exception as e:
            self._logger.error(f"Upsert operation failed: {e}", exc_info=True)
            return SBXResponse.failure(str(e))

    async def delete(self, model: str, keys: Union[str, List[str]]) -> SBXResponse:
        """Deletes rows by key, in chunks; stops at the first failing chunk."""
        if isinstance(keys, str):
            keys = [keys]
        self._trace(f"SBX delete: model={model}, keys={len(keys)}")

        try:
            for chunk in partition(list(keys), self._chunk_size):
                payload = {"row_model": model, "domain": self._domain, "keys": chunk}
                raw = await self._transport.send("POST", DELETE_PATH, json=payload)
                response = self._to_response(raw, "Delete operation failed")
                if not response.success:
                    return response
            return SBXResponse.ok()
        except Exception as e:
            self._logger.error(f"Delete operation failed: {e}", exc_info=True)
            return SBXResponse.failure(str(e))

    async def delete_entity(self, entity: Any) -> SBXResponse:
        if getattr(entity, "key", None) is None:
            return SBXResponse.failure("Entity has no key")
        return await self.delete(get_model_name(type(entity)), entity.key)

    async def delete_keys(self, entity_type: Type[Any], *keys: str) -> SBXResponse:
        return await self.delete(get_model_name(entity_type), _flatten(keys))

    def _to_response(
        self,
        raw: Any,
        empty_error: str,
        response_type: Type[R] = SBXResponse,
    ) -> R:
        if not isinstance(raw, dict):
            return response_type.failure(empty_error)
        return response_type.model_validate(raw)

    async def _call(
        self,
        action: str,
        method: str,
        path: str,
        *,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        response_type: Type[R] = SBXResponse,
    ) -> R:
        """One request whose errors are folded into a failed `response_type`."""
        try:
            raw = await self._transport.send(method, path, json=json, params=params)
            return self._to_response(raw, f"{action} failed: empty response", response_type)
        except Exception as e:
            self._logger.error(f"{action} failed: {e}", exc_info=True)
            return response_type.failure(str(e))

    # --- Authentication ---

    async def login(self, login: str, password: str) -> SBXUserResponse:
        self._trace(f"SBX login: {login}")
        return await self._call(
            "Login",
            "POST",
            LOGIN_PATH,
            json={"login": login, "password": password},
            params={"domain": self._domain},
            response_type=SBXUserResponse,
        )

    async def validate_session(self) -> SBXUserResponse:
        """Validates the current session token."""
        self._trace("SBX validate session")
        return await self._call(
            "Session validation",
            "GET",
            VALIDATE_PATH,
            params={"domain": self._domain},
            response_type=SBXUserResponse,
        )

    async def change_password(
        self, current_password: str, new_password: str, user_id: int
    ) -> SBXResponse:
        self._trace(f"SBX change password for user: {user_id}")
        return await self._call(
            "Change password",
            "POST",
            CHANGE_PASSWORD_PATH,
            params={
                "domain": self._domain,
                "current": current_password,
                "password": new_password,
                "user_id": user_id,
            },
        )

    async def send_password_reset_request(
        self, email: str, subject: str, template_key: str
    ) -> SBXResponse:
        self._trace(f"SBX send password reset request: {email}")
        return await self._call(
            "Send password reset request",
            "GET",
            PASSWORD_REQUEST_PATH,
            params={
                "domain": self._domain,
                "user_email": email,
                "subject": subject,
                "email_template": template_key,
            },
        )

    async def reset_password(
        self, user_id: int, code: str, new_password: str
    ) -> SBXResponse:
        """Completes a password reset using the emailed code."""
        self._trace(f"SBX reset password for user: {user_id}")
        return await self._call(
            "Reset password",
            "POST",
            PASSWORD_RESET_PATH,
            params={
                "domain": self._domain,
                "user_id": user_id,
                "code": code,
                "password": new_password,
            },
        )

    async def check_email_available(self, email: str) -> SBXResponse:
        self._trace(f"SBX check email available: {email}")
        return await self._call(
            "Check email available",
            "GET",
            USER_EXISTS_PATH,
            params={"domain": self._domain, "email": email},
        )

    # --- Files ---

    async def upload_file(
        self, file_name: str, file_content: str, folder_key: Optional[str] = None
    ) -> SBXResponse:
        """
        Uploads a file.

        Args:
            file_name: Name of the file; its extension is used to pick the
                       MIME type when `file_content` is not a data URL.
            file_content: Base64 content, optionally prefixed `data:<mime>;base64,`.
            folder_key: Optional folder to upload into.
        """
        self._trace(f"SBX upload file: {file_name}")
        try:
            data = decode_base64_content(file_content)
            mime_type = detect_mime_type(file_name, file_content)
        except ValueError as e:
            self._logger.error(f"Upload file failed: {e}", exc_info=True)
            return SBXResponse.failure(str(e))

        body: Dict[str, Any] = {
            "file_name": file_name,
            "file": encode_base64_content(data),
            "mimetype": mime_type,
        }
        if folder_key is not None:
            body["folder"] = folder_key
        return await self._call("Upload file", "POST", UPLOAD_PATH, json=body)

    async def download_file(self, key: str) -> bytes:
        """
        Downloads a file by key.

        Raises:
            TransportError: If the file cannot be downloaded.
        """
        self._trace(f"SBX download file: {key}")
        return await self._transport.download(DOWNLOAD_PATH, params={"key": key})

    async def delete_file(self, key: str) -> SBXResponse:
        self._trace(f"SBX delete file: {key}")
        return await self._call(
            "Delete file", "GET", DELETE_FILE_PATH, params={"key": key}
        )

    # --- Folders ---

    async def create_folder(
        self, name: str, parent_key: Optional[str] = None
    ) -> SBXResponse:
        self._trace(f"SBX create folder: {name} in {parent_key}")
        response = await self._call(
            "Create folder",
            "GET",
            FOLDER_CREATE_PATH,
            params={"name": name, "parent_key": parent_key},
        )
        return _with_folder_item(response)

    async def delete_folder(self, key: str) -> SBXResponse:
        self._trace(f"SBX delete folder: {key}")
        return await self._call(
            "Delete folder", "GET", FOLDER_DELETE_PATH, params={"key": key}
        )

    async def list_folder(self, key: str) -> SBXResponse:
        """Lists a folder; `items` (and `item`) are decoded as `FolderContent`."""
        self._trace(f"SBX list folder: {key}")
        response = await self._call(
            "List folder", "GET", FOLDER_LIST_PATH, params={"key": key}
        )
        if not response.success:
            return response
        update: Dict[str, Any] = {}
        if response.items is not None:
            update["items"] = [
                FolderContent.model_validate(i) if isinstance(i, dict) else i
                for i in response.items
            ]
        if isinstance(response.item, dict):
            update["item"] = FolderContent.model_validate(response.item)
        return response.model_copy(update=update) if update else response

    async def rename_folder(self, key: str, new_name: str) -> SBXResponse:
        self._trace(f"SBX rename folder: {key} to {new_name}")
        response = await self._call(
            "Rename folder",
            "GET",
            FOLDER_RENAME_PATH,
            params={"key": key, "name": new_name},
        )
        return _with_folder_item(response)

    # --- Email ---

    async def send_email(self, params: EmailParams) -> SBXResponse:
        self._trace(f"SBX send email to: {params.to}")
        return await self._call(
            "Send email", "POST", EMAIL_PATH, json=params.to_payload()
        )

    async def send_email_v2(self, params: EmailParams) -> SBXResponse:
        self._trace(f"SBX send email V2 to: {params.to}")
        return await self._call(
            "Send email V2", "POST", EMAIL_V2_PATH, json=params.to_payload()
        )

    # --- Cloud Scripts ---

    async def run_cloud_script(
        self,
        key: str,
        params: Optional[Dict[str, Any]] = None,
        test: bool = False,
        result_type: Optional[Type[T]] = None,
    ) -> Any:
        """
        Executes a cloud script.

        The `response` member of the payload is returned when present,
        otherwise the whole payload. With `result_type` the value is
        validated into that type.

        Raises:
            TransportError: If the request fails.
            pydantic.ValidationError: If the value does not fit `result_type`.
        """
        self._trace(f"SBX run cloud script: {key} (test={test})")
        body: Dict[str, Any] = {"key": key}
        if params:
            body["params"] = prepare_for_wire(params)

        path = CLOUDSCRIPT_TEST_PATH if test else CLOUDSCRIPT_PATH
        raw = await self._transport.send("POST", path, json=body)

        value = raw.get("response") if isinstance(raw, dict) and "response" in raw else raw
        if result_type is None:
            return value
        return TypeAdapter(result_type).validate_python(value)

    # --- Configuration ---

    async def load_config(self) -> SBXConfig:
        """
        Loads and caches the application configuration.

        Raises:
            TransportError: If the request fails.
        """
        self._trace("SBX load config")
        raw = await self._transport.send("GET", APP_CONFIG_PATH)
        self._config = SBXConfig.model_validate(raw or {})
        self._logger.info(
            f"Loaded app config with {len(self._config.models)} model(s)."
        )
        return self._config

    @property
    def config(self) -> SBXConfig:
        """
        The configuration cached by `load_config()`.

        Raises:
            SBXException: If the configuration has not been loaded.
        """
        if self._config is None:
            raise SBXException("Configuration not loaded. Call load_config() first.")
        return self._config

    # --- Multi-domain Support ---

    def set_multidomain_credentials(self, domain: int, app_key: str, token: str) -> None:
        """Switches domain and credentials for later calls."""
        self._domain = domain
        self._app_key = app_key
        self._transport.update_credentials(app_key=app_key, token=token)
        self._logger.info(f"Switched to domain {domain}.")

    def set_token(self, token: str) -> None:
        self._transport.update_credentials(token=token)

    # --- Lifecycle ---

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self) -> "SBXService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

# tests/test_service.py

import base64
from typing import Dict, List

import pytest
from pydantic import BaseModel

from sbx_client.base.exceptions import ModelRegistrationError, SBXException, TransportError
from sbx_client.base.response import Folder, FolderContent, SBXConfig
from sbx_client.service import (
    CHANGE_PASSWORD_PATH,
    CLOUDSCRIPT_PATH,
    CLOUDSCRIPT_TEST_PATH,
    CREATE_PATH,
    DELETE_PATH,
    EMAIL_PATH,
    EMAIL_V2_PATH,
    FOLDER_LIST_PATH,
    LOGIN_PATH,
    UPDATE_PATH,
    UPLOAD_PATH,
    EmailParams,
    SBXService,
)
from tests.conftest import TEST_DOMAIN, FakeTransport, InventoryHistory, Unregistered


def _rows(count: int) -> List[Dict[str, int]]:
    return [{"week": i} for i in range(count)]


# --- Construction ---


def test_service_requires_transport():
    with pytest.raises(TypeError):
        SBXService(object())


def test_service_accessors(service):
    assert service.domain == TEST_DOMAIN
    assert service.app_key == "test-app-key"
    assert service.base_url == "https://sbx.test"
    assert service.debug is False


async def test_service_context_manager_closes_transport(transport):
    async with SBXService(transport) as sbx:
        assert sbx.transport is transport
    assert transport.closed is True


# --- Create / update ---


async def test_create_single_row(service, transport):
    transport.queue({"success": True, "keys": ["k1"]})
    response = await service.create("inventory_history", {"week": 1})

    assert response.success is True
    assert response.keys == ["k1"]
    assert transport.calls[0]["path"] == CREATE_PATH
    assert transport.calls[0]["json"] == {
        "row_model": "inventory_history",
        "domain": TEST_DOMAIN,
        "rows": [{"week": 1}],
    }


async def test_create_strips_meta(service, transport):
    transport.queue({"success": True, "keys": ["k1"]})
    await service.create("contact", [{"name": "a", "_META": {"domain": 1}, "meta": {}}])
    assert transport.calls[0]["json"]["rows"] == [{"name": "a"}]


async def test_create_chunks_rows(service, transport):
    transport.queue(
        {"success": True, "keys": [f"a{i}" for i in range(100)]},
        {"success": True, "keys": [f"b{i}" for i in range(100)]},
        {"success": True, "keys": ["c0", "c1", "c2"]},
    )
    response = await service.create("contact", _rows(203))

    assert [len(c["json"]["rows"]) for c in transport.calls] == [100, 100, 3]
    assert response.success is True
    assert len(response.keys) == 203
    assert response.keys[0] == "a0"
    assert response.keys[-1] == "c2"


async def test_create_stops_at_first_failed_chunk(service, transport):
    transport.queue(
        {"success": True, "keys": ["a"]},
        {"success": False, "error": "quota exceeded"},
    )
    response = await service.create("contact", _rows(250))

    assert response.success is False
    assert response.error == "quota exceeded"
    assert len(transport.calls) == 2


async def test_create_transport_error_is_failure(service, transport):
    transport.queue(TransportError("connection refused"))
    response = await service.create("contact", {"week": 1})
    assert response.success is False
    assert response.error == "connection refused"


async def test_update_uses_update_endpoint(service, transport):
    transport.queue({"success": True})
    response = await service.update("contact", [{"_KEY": "k1", "week": 2}])

    assert response.success is True
    assert response.keys == []
    assert transport.calls[0]["path"] == UPDATE_PATH


async def test_create_entities_uses_declared_model(service, transport):
    transport.queue({"success": True, "keys": ["k1", "k2"]})
    response = await service.create_entities(
        InventoryHistory(masterlist="a", week=1),
        InventoryHistory(masterlist="b", week=2),
    )

    assert response.keys == ["k1", "k2"]
    sent = transport.calls[0]["json"]
    assert sent["row_model"] == "inventory_history"
    assert sent["rows"] == [{"masterlist": "a", "week": 1}, {"masterlist": "b", "week": 2}]


async def test_update_entities_accepts_a_list(service, transport):
    transport.queue({"success": True})
    entity = InventoryHistory(key="k1", week=5)
    await service.update_entities([entity])
    assert transport.calls[0]["json"]["rows"] == [{"_KEY": "k1", "week": 5}]


async def test_create_entities_without_entities(service, transport):
    response = await service.create_entities()
    assert response.success is False
    assert response.error == "No entities provided"
    assert transport.calls == []


async def test_create_entities_requires_declared_model(service):
    with pytest.raises(ModelRegistrationError):
        await service.create_entities(Unregistered(name="x"))


# --- Delete ---


async def test_delete_chunks_keys(service, transport):
    transport.queue({"success": True}, {"success": True})
    keys = [f"k{i}" for i in range(150)]

    response = await service.delete("contact", keys)

    assert response.success is True
    assert [c["path"] for c in transport.calls] == [DELETE_PATH, DELETE_PATH]
    assert transport.calls[0]["json"]["keys"] == keys[:100]
    assert transport.calls[1]["json"]["keys"] == keys[100:]
    assert transport.calls[0]["json"]["domain"] == TEST_DOMAIN


async def test_delete_single_key(service, transport):
    transport.queue({"success": True})
    await service.delete("contact", "k1")
    assert transport.calls[0]["json"] == {
        "row_model": "contact",
        "domain": TEST_DOMAIN,
        "keys": ["k1"],
    }


async def test_delete_failure(service, transport):
    transport.queue({"success": False, "error": "not allowed"})
    response = await service.delete("contact", ["k1"])
    assert response.error_message == "not allowed"


async def test_delete_entity_without_key(service, transport):
    response = await service.delete_entity(InventoryHistory(week=1))
    assert response.error == "Entity has no key"
    assert transport.calls == []


async def test_delete_entity_and_keys(service, transport):
    transport.queue({"success": True}, {"success": True})
    await service.delete_entity(InventoryHistory(key="k1"))
    await service.delete_keys(InventoryHistory, "k2", "k3")

    assert transport.calls[0]["json"]["keys"] == ["k1"]
    assert transport.calls[1]["json"]["row_model"] == "inventory_history"
    assert transport.calls[1]["json"]["keys"] == ["k2", "k3"]


# --- Authentication ---


async def test_login(service, transport):
    transport.queue(
        {
            "success": True,
            "token": "jwt",
            "user": {"id": 7, "login": "ana", "member_of": [{"domain_id": 96, "role": "ADMIN"}]},
        }
    )
    response = await service.login("ana", "secret")

    assert response.success is True
    assert response.token == "jwt"
    assert response.user.id == 7
    assert response.user.member_of[0].role == "ADMIN"
    call = transport.calls[0]
    assert call["method"] == "POST"
    assert call["path"] == LOGIN_PATH
    assert call["params"] == {"domain": TEST_DOMAIN}
    assert call["json"] == {"login": "ana", "password": "secret"}


async def test_login_failure(service, transport):
    transport.queue({"success": False, "error": "Invalid credentials"})
    response = await service.login("ana", "wrong")
    assert response.success is False
    assert response.error_message == "Invalid credentials"


async def test_validate_session_transport_error(service, transport):
    transport.queue(TransportError("timed out"))
    response = await service.validate_session()
    assert response.success is False
    assert response.error == "timed out"


async def test_change_password_params(service, transport):
    transport.queue({"success": True})
    await service.change_password("old", "new", 7)
    call = transport.calls[0]
    assert call["path"] == CHANGE_PASSWORD_PATH
    assert call["params"] == {
        "domain": TEST_DOMAIN,
        "current": "old",
        "password": "new",
        "user_id": 7,
    }


async def test_password_reset_flow(service, transport):
    transport.queue({"success": True}, {"success": True})
    await service.send_password_reset_request("a@b.c", "Reset", "tpl-1")
    await service.reset_password(7, "1234", "new")

    assert transport.calls[0]["method"] == "GET"
    assert transport.calls[0]["params"]["user_email"] == "a@b.c"
    assert transport.calls[0]["params"]["email_template"] == "tpl-1"
    assert transport.calls[1]["method"] == "POST"
    assert transport.calls[1]["params"]["code"] == "1234"


async def test_check_email_available(service, transport):
    transport.queue({"success": True})
    response = await service.check_email_available("a@b.c")
    assert response.success is True
    assert transport.calls[0]["params"] == {"domain": TEST_DOMAIN, "email": "a@b.c"}


# --- Files and folders ---


async def test_upload_file_with_data_url(service, transport):
    transport.queue({"success": True, "item": {"key": "f1"}})
    content = "data:image/png;base64," + base64.b64encode(b"png-bytes").decode()

    response = await service.upload_file("logo.png", content, folder_key="folder-1")

    assert response.success is True
    body = transport.calls[0]["json"]
    assert transport.calls[0]["path"] == UPLOAD_PATH
    assert body["file_name"] == "logo.png"
    assert body["mimetype"] == "image/png"
    assert base64.b64decode(body["file"]) == b"png-bytes"
    assert body["folder"] == "folder-1"


async def test_upload_file_detects_mime_from_extension(service, transport):
    transport.queue({"success": True})
    await service.upload_file("report.PDF", base64.b64encode(b"%PDF").decode())
    body = transport.calls[0]["json"]
    assert body["mimetype"] == "application/pdf"
    assert "folder" not in body


async def test_upload_file_unknown_extension(service, transport):
    transport.queue({"success": True})
    await service.upload_file("blob", base64.b64encode(b"x").decode())
    assert transport.calls[0]["json"]["mimetype"] == "application/octet-stream"


async def test_upload_file_invalid_base64(service, transport):
    response = await service.upload_file("a.txt", "***")
    assert response.success is False
    assert transport.calls == []


async def test_download_file(service, transport):
    transport.downloads["f1"] = b"content"
    assert await service.download_file("f1") == b"content"
    with pytest.raises(TransportError):
        await service.download_file("missing")


async def test_list_folder_decodes_contents(service, transport):
    transport.queue(
        {
            "success": True,
            "items": [
                {"key": "a", "name": "a.txt", "mimetype": "text/plain", "size": 3},
                {"key": "b", "name": "b.png"},
            ],
        }
    )
    response = await service.list_folder("root")

    assert transport.calls[0]["path"] == FOLDER_LIST_PATH
    assert all(isinstance(i, FolderContent) for i in response.items)
    assert response.items[0].size == 3


async def test_folder_operations(service, transport):
    transport.queue({"success": True}, {"success": True}, {"success": True}, {"success": True})
    await service.create_folder("docs")
    await service.create_folder("sub", parent_key="docs-key")
    await service.rename_folder("docs-key", "papers")
    await service.delete_folder("docs-key")

    assert transport.calls[0]["params"] == {"name": "docs", "parent_key": None}
    assert transport.calls[1]["params"] == {"name": "sub", "parent_key": "docs-key"}
    assert transport.calls[2]["params"] == {"key": "docs-key", "name": "papers"}
    assert transport.calls[3]["params"] == {"key": "docs-key"}


async def test_create_and_rename_folder_decode_folder(service, transport):
    transport.queue(
        {"success": True, "item": {"key": "f1", "name": "docs", "parent_key": None}},
        {"success": True, "item": {"key": "f1", "name": "papers", "path": "/papers"}},
        {"success": False, "error": "Folder exists"},
    )
    created = await service.create_folder("docs")
    renamed = await service.rename_folder("f1", "papers")
    failed = await service.create_folder("docs")

    assert isinstance(created.item, Folder)
    assert created.item.key == "f1"
    assert created.item.name == "docs"
    assert isinstance(renamed.item, Folder)
    assert renamed.item.path == "/papers"
    assert failed.success is False
    assert failed.item is None


async def test_delete_file(service, transport):
    transport.queue({"success": True})
    response = await service.delete_file("f1")
    assert response.success is True
    assert transport.calls[0]["params"] == {"key": "f1"}


# --- Email ---


def test_email_params_payload():
    params = EmailParams(
        to=["a@b.c"],
        from_="noreply@sbx.test",
        subject="Hi",
        template_key="tpl",
        data={"name": "Ana"},
    )
    assert params.to_payload() == {
        "from": "noreply@sbx.test",
        "to": ["a@b.c"],
        "subject": "Hi",
        "data": {"name": "Ana"},
        "template_key": "tpl",
    }


async def test_send_email_versions(service, transport):
    transport.queue({"success": True}, {"success": True})
    params = EmailParams(to=["a@b.c"], subject="Hi")

    await service.send_email(params)
    await service.send_email_v2(params)

    assert transport.paths == [EMAIL_PATH, EMAIL_V2_PATH]
    assert transport.calls[0]["json"] == {"to": ["a@b.c"], "subject": "Hi"}


# --- Cloud scripts ---


class ScriptResult(BaseModel):
    total: int
    status: str


async def test_run_cloud_script_unwraps_response(service, transport):
    transport.queue({"success": True, "response": {"total": 3, "status": "ok"}})
    result = await service.run_cloud_script("script-1", {"week": 2})

    assert result == {"total": 3, "status": "ok"}
    assert transport.calls[0]["path"] == CLOUDSCRIPT_PATH
    assert transport.calls[0]["json"] == {"key": "script-1", "params": {"week": 2}}


async def test_run_cloud_script_typed_result(service, transport):
    transport.queue({"response": {"total": 3, "status": "ok"}})
    result = await service.run_cloud_script("script-1", result_type=ScriptResult)
    assert result == ScriptResult(total=3, status="ok")
    assert transport.calls[0]["json"] == {"key": "script-1"}


async def test_run_cloud_script_test_mode_without_envelope(service, transport):
    transport.queue({"total": 1, "status": "dry"})
    result = await service.run_cloud_script("script-1", test=True)
    assert result == {"total": 1, "status": "dry"}
    assert transport.calls[0]["path"] == CLOUDSCRIPT_TEST_PATH


async def test_run_cloud_script_propagates_transport_errors(service, transport):
    transport.queue(TransportError("boom"))
    with pytest.raises(TransportError):
        await service.run_cloud_script("script-1")


# --- Configuration ---


async def test_config_before_load_raises(service):
    with pytest.raises(SBXException, match="Configuration not loaded"):
        service.config


async def test_load_config(service, transport):
    transport.queue({"models": [{"id": 1, "name": "contact", "properties": []}]})
    config = await service.load_config()

    assert isinstance(config, SBXConfig)
    assert service.config is config
    assert config.models[0].name == "contact"


# --- Multi-domain ---


async def test_set_multidomain_credentials(service, transport):
    service.set_multidomain_credentials(12, "other-key", "other-token")

    assert service.domain == 12
    assert service.app_key == "other-key"
    assert transport.credentials == {"app_key": "other-key", "token": "other-token"}

    transport.queue({"success": True})
    await service.delete("contact", "k1")
    assert transport.calls[0]["json"]["domain"] == 12


def test_set_token(service, transport):
    service.set_token("fresh")
    assert transport.credentials["token"] == "fresh"


async def test_chunk_size_is_configurable():
    transport = FakeTransport(default={"success": True, "keys": []})
    sbx = SBXService(transport, chunk_size=2)
    await sbx.create("contact", _rows(5))
    assert [len(c["json"]["rows"]) for c in transport.calls] == [2, 2, 1]

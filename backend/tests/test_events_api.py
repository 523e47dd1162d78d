"""活动接口测试

测试场景：
1. 创建、查看、修改、删除活动
2. 重复 ID 409，保留 ID 400
3. 访客设置约束（访客下载需要访客密码，下载和上传不能都关闭）
4. 认证：无访客密码时访客凭证 403，管理员 200；连续失败后 429
"""
from eventdrop.core.config import settings

from conftest import ADMIN_AUTH, ADMIN_PASSWORD, GUEST_AUTH, GUEST_PASSWORD, basic_auth


def _payload(**overrides) -> dict:
    payload = {
        "name": "Summer Party",
        "eventId": "party",
        "adminPassword": ADMIN_PASSWORD,
        "adminPasswordConfirm": ADMIN_PASSWORD,
    }
    payload.update(overrides)
    return payload


class TestCreateEvent:
    def test_create_returns_admin_view(self, client):
        response = client.post("/api/events", json=_payload(eventId="  Party  ", description=""))
        assert response.status_code == 200
        body = response.json()
        assert body["eventId"] == "party"
        assert body["accessLevel"] == "admin"
        assert body["secured"] is False
        assert body["allowGuestDownload"] is False
        assert body["allowGuestUpload"] is True
        assert body["description"] == ""
        assert "auth" not in body
        assert "adminPasswordHash" not in response.text

    def test_project_file_written(self, client, data_dirs):
        client.post("/api/events", json=_payload(guestPassword=GUEST_PASSWORD))
        project = data_dirs["data_root"] / "party" / "project.json"
        assert project.is_file()
        text = project.read_text("utf-8")
        assert ADMIN_PASSWORD not in text
        assert GUEST_PASSWORD not in text

    def test_duplicate_id_conflicts(self, client, create_event):
        create_event()
        response = client.post("/api/events", json=_payload(name="Other"))
        assert response.status_code == 409
        assert response.json()["errorKey"] == "EVENT_ID_TAKEN"

    def test_reserved_id_rejected(self, client):
        response = client.post("/api/events", json=_payload(eventId="api"))
        assert response.status_code == 400
        body = response.json()
        assert body["errorKey"] == "INVALID_EVENT_ID"
        assert body["property"] == "eventId"

    def test_short_admin_password(self, client):
        response = client.post("/api/events", json=_payload(adminPassword="short", adminPasswordConfirm="short"))
        assert response.status_code == 400
        body = response.json()
        assert body["errorKey"] == "INVALID_INPUT"
        assert body["property"] == "adminPassword"
        assert body["additionalParams"]["MIN_REQUIRED"] == 8

    def test_admin_password_confirm_mismatch(self, client):
        response = client.post("/api/events", json=_payload(adminPasswordConfirm="longpass2"))
        assert response.status_code == 400
        assert response.json()["property"] == "adminPasswordConfirm"

    def test_short_guest_password(self, client):
        response = client.post("/api/events", json=_payload(guestPassword="abc"))
        assert response.status_code == 400
        body = response.json()
        assert body["property"] == "guestPassword"
        assert body["additionalParams"]["MIN_REQUIRED"] == 4

    def test_guest_download_needs_guest_password(self, client):
        response = client.post("/api/events", json=_payload(allowGuestDownload=True))
        assert response.status_code == 400
        assert response.json()["property"] == "allowGuestDownload"

    def test_guest_access_cannot_be_fully_disabled(self, client):
        response = client.post("/api/events", json=_payload(allowGuestUpload=False))
        assert response.status_code == 400
        assert response.json()["property"] == "allowGuestUpload"

    def test_invalid_mime_type(self, client):
        response = client.post("/api/events", json=_payload(allowedMimeTypes=["not a mime"]))
        assert response.status_code == 400

    def test_creation_disabled(self, client):
        settings.allow_event_creation = False
        response = client.post("/api/events", json=_payload())
        assert response.status_code == 403
        assert response.json()["errorKey"] == "EVENT_CREATION_DISABLED"


class TestReadEvent:
    def test_guest_credentials_forbidden_without_guest_password(self, client, create_event):
        create_event(event_id="ev1")

        guest = client.get("/api/events/ev1", headers=basic_auth("guest", "x"))
        assert guest.status_code == 403
        assert guest.json()["errorKey"] == "AUTHORIZATION_REQUIRED"

        admin = client.get("/api/events/ev1", headers=ADMIN_AUTH)
        assert admin.status_code == 200
        assert admin.json()["accessLevel"] == "admin"
        assert admin.json()["name"] == "Summer Party"

    def test_unsecured_event_is_visible_to_anonymous_guests(self, client, create_event):
        create_event()
        response = client.get("/api/events/party")
        assert response.status_code == 200
        assert response.json()["accessLevel"] == "guest"

    def test_secured_event_requires_credentials(self, client, create_event):
        create_event(guest_password=GUEST_PASSWORD)
        response = client.get("/api/events/party")
        assert response.status_code == 401
        assert response.json()["eventId"] == "party"

        guest = client.get("/api/events/party", headers=GUEST_AUTH)
        assert guest.status_code == 200
        assert guest.json()["accessLevel"] == "guest"
        assert guest.json()["secured"] is True

    def test_wrong_admin_password(self, client, create_event):
        create_event()
        response = client.get("/api/events/party", headers=basic_auth("admin", "wrong-password"))
        assert response.status_code == 401

    def test_missing_event(self, client):
        response = client.get("/api/events/nothing-here", headers=ADMIN_AUTH)
        assert response.status_code == 404
        assert response.json()["errorKey"] == "EVENT_NOT_FOUND"

    def test_invalid_event_id(self, client):
        response = client.get("/api/events/no_underscores", headers=ADMIN_AUTH)
        assert response.status_code == 400
        assert response.json()["errorKey"] == "INVALID_EVENT_ID"

    def test_lockout_after_repeated_failures(self, client, create_event):
        create_event()
        settings.auth_rate_limit_max_attempts = 3
        for _ in range(3):
            response = client.get("/api/events/party", headers=basic_auth("admin", "wrong-password"))
            assert response.status_code == 401

        blocked = client.get("/api/events/party", headers=ADMIN_AUTH)
        assert blocked.status_code == 429
        assert int(blocked.headers["Retry-After"]) > 0
        body = blocked.json()
        assert body["errorKey"] == "RATE_LIMITED"
        assert body["additionalParams"]["RETRY_AFTER_SECONDS"] > 0


class TestAvailability:
    def test_available_then_taken(self, client, create_event):
        assert client.get("/api/events/party/availability").json() == {"eventId": "party", "available": True}
        create_event()
        assert client.get("/api/events/party/availability").json()["available"] is False

    def test_reserved(self, client):
        response = client.get("/api/events/admin/availability")
        assert response.status_code == 400
        assert response.json()["errorKey"] == "INVALID_EVENT_ID"


class TestUpdateEvent:
    def test_partial_update(self, client, create_event):
        create_event(guest_password=GUEST_PASSWORD)
        response = client.patch(
            "/api/events/party",
            headers=ADMIN_AUTH,
            json={"name": "Renamed", "allowGuestDownload": True, "allowedMimeTypes": ["image/*"]},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["name"] == "Renamed"
        assert body["allowGuestDownload"] is True
        assert body["allowedMimeTypes"] == ["image/*"]
        assert body["allowGuestUpload"] is True

    def test_clearing_guest_password_disables_downloads(self, client, create_event):
        create_event(guest_password=GUEST_PASSWORD, allowGuestDownload=True)
        response = client.patch("/api/events/party", headers=ADMIN_AUTH, json={"guestPassword": ""})
        assert response.status_code == 200
        body = response.json()
        assert body["secured"] is False
        assert body["allowGuestDownload"] is False

        # the old guest password no longer works
        assert client.get("/api/events/party", headers=GUEST_AUTH).status_code == 403

    def test_invariant_checked_on_update(self, client, create_event):
        create_event()
        response = client.patch("/api/events/party", headers=ADMIN_AUTH, json={"allowGuestUpload": False})
        assert response.status_code == 400
        assert response.json()["property"] == "allowGuestUpload"

    def test_guest_cannot_update(self, client, create_event):
        create_event(guest_password=GUEST_PASSWORD)
        response = client.patch("/api/events/party", headers=GUEST_AUTH, json={"name": "Mine"})
        assert response.status_code == 403


class TestDeleteEvent:
    def test_delete(self, client, create_event, data_dirs):
        create_event()
        response = client.delete("/api/events/party", headers=ADMIN_AUTH)
        assert response.status_code == 200
        assert response.json()["ok"] is True
        assert not (data_dirs["data_root"] / "party").exists()

        missing = client.get("/api/events/party", headers=ADMIN_AUTH)
        assert missing.status_code == 404

    def test_guest_cannot_delete(self, client, create_event):
        create_event()
        assert client.delete("/api/events/party").status_code == 401


def test_app_config(client):
    response = client.get("/api/config")
    assert response.status_code == 200
    body = response.json()
    assert body["allowEventCreation"] is True
    assert "allowedDomains" in body
    assert "supportSubdomain" in body

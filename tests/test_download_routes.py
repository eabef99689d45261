from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from sqlalchemy.exc import OperationalError

from app.models import DownloadHistory
from app.services import entitlement

from conftest import T0, add_admin, add_history, add_tokens, auth_headers, credits_of, make_token


class TestAuthentication:
    def test_missing_token(self, client):
        response = client.get("/api/check-download-entitlement")
        assert response.status_code == 401
        assert response.json()["error"] == "missing_token"

    def test_literal_null_token_is_missing(self, client):
        response = client.post("/api/consume-download-token", headers={"Authorization": "Bearer null"})
        assert response.status_code == 401
        assert response.json()["error"] == "missing_token"

    def test_wrong_secret(self, client):
        token = make_token("u1", secret="not-the-project-secret-0123456789abcdef")
        response = client.get("/api/check-download-entitlement", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["error"] == "auth_failed"

    def test_expired_token(self, client):
        token = make_token("u1", expires_in=-60)
        response = client.get("/api/get-download-history", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["error"] == "auth_failed"
        assert response.json()["code"] == "unauthorized"

    def test_history_without_token_is_unauthorized(self, client):
        response = client.get("/api/get-download-history")
        assert response.status_code == 401
        assert response.json() == {
            "error": "missing_token",
            "message": "Missing authorization token",
            "code": "unauthorized",
        }

    def test_auth_not_configured(self, client, settings):
        settings.supabase_jwt_secret = ""
        settings.supabase_url = ""
        response = client.get("/api/check-download-entitlement", headers=auth_headers("u1"))
        assert response.status_code == 500
        assert response.json()["error"] == "server_config"


class TestMethods:
    def test_unlisted_method_returns_405_with_allow(self, client):
        response = client.get("/api/consume-download-token")
        assert response.status_code == 405
        assert "POST" in response.headers["allow"]

    def test_check_accepts_get_and_post(self, client, db_session):
        add_tokens(db_session, "u1", 1)
        assert client.get("/api/check-download-entitlement", headers=auth_headers("u1")).status_code == 200
        assert client.post("/api/check-download-entitlement", headers=auth_headers("u1")).status_code == 200
        response = client.delete("/api/check-download-entitlement", headers=auth_headers("u1"))
        assert response.status_code == 405
        assert "GET" in response.headers["allow"]


class TestCheckRoute:
    def test_not_entitled(self, client):
        response = client.get("/api/check-download-entitlement", headers=auth_headers("u1", "u1@example.com"))
        assert response.status_code == 403
        body = response.json()
        assert body["allowed"] is False
        assert body["remaining"] == 0
        assert body["error"] == "no_entitlement"

    def test_entitled(self, client, db_session):
        add_tokens(db_session, "u1", 2)
        response = client.get("/api/check-download-entitlement", headers=auth_headers("u1"))
        assert response.status_code == 200
        assert response.json() == {"allowed": True, "remaining": 2, "admin": False}

    def test_admin(self, client, db_session):
        add_admin(db_session, "owner@example.com")
        response = client.get("/api/check-download-entitlement", headers=auth_headers("a1", "owner@example.com"))
        assert response.status_code == 200
        assert response.json() == {"allowed": True, "remaining": None, "admin": True}

    def test_db_error_is_500(self, client):
        def boom(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("down"))

        with patch.object(entitlement, "count_credits", side_effect=boom):
            response = client.get("/api/check-download-entitlement", headers=auth_headers("u1"))
        assert response.status_code == 500
        assert response.json()["error"] == "db_error"


class TestConsumeRoute:
    def test_consume_then_run_out(self, client, db_session):
        add_tokens(db_session, "u1", 1)

        response = client.post("/api/consume-download-token", headers=auth_headers("u1"))
        assert response.status_code == 200
        assert response.json() == {"consumed": True, "allowed": True, "remaining": 0, "admin": False}

        response = client.post("/api/consume-download-token", headers=auth_headers("u1"))
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "no_tokens_left"
        assert body["consumed"] is False
        assert body["allowed"] is False

    def test_admin_consume_keeps_credits(self, client, db_session):
        add_admin(db_session, "owner@example.com")
        add_tokens(db_session, "a1", 1)
        response = client.post("/api/consume-download-token", headers=auth_headers("a1", "owner@example.com"))
        assert response.status_code == 200
        assert response.json()["admin"] is True
        assert response.json()["remaining"] is None
        assert credits_of(db_session, "a1") == 1

    def test_purchase_consume_check_flow(self, client, db_session):
        add_tokens(db_session, "u1", 2)
        client.post("/api/consume-download-token", headers=auth_headers("u1"))
        response = client.get("/api/check-download-entitlement", headers=auth_headers("u1"))
        assert response.json()["remaining"] == 1


class TestHistoryRoutes:
    def test_history_newest_first_and_only_own(self, client, db_session):
        add_history(db_session, "u1", None, storage_path=None, file_name="old.wav", created_at=T0)
        add_history(db_session, "u1", None, storage_path=None, file_name="new.wav", created_at=T0 + timedelta(days=1))
        add_history(db_session, "u2", None, storage_path=None, file_name="theirs.wav", created_at=T0)

        response = client.get("/api/get-download-history", headers=auth_headers("u1"))

        assert response.status_code == 200
        names = [item["file_name"] for item in response.json()["history"]]
        assert names == ["new.wav", "old.wav"]

    def test_history_is_capped_at_100(self, client, db_session):
        for i in range(105):
            db_session.add(DownloadHistory(user_id="u1", file_name=f"{i}.wav", mastering_target="spotify",
                                           created_at=T0 + timedelta(minutes=i)))
        db_session.commit()

        response = client.get("/api/get-download-history", headers=auth_headers("u1"))

        history = response.json()["history"]
        assert len(history) == 100
        assert history[0]["file_name"] == "104.wav"

    def test_history_post_not_allowed(self, client):
        response = client.post("/api/get-download-history", headers=auth_headers("u1"))
        assert response.status_code == 405

    def test_record_download_with_storage_sets_window(self, client, db_session, settings):
        before = datetime.now(timezone.utc)
        response = client.post(
            "/api/record-download",
            headers=auth_headers("u1"),
            json={"file_name": "song.wav", "mastering_target": "spotify", "amount_cents": 500,
                  "storage_path": "u1/song.wav"},
        )
        assert response.status_code == 201
        record = db_session.get(DownloadHistory, response.json()["id"])
        assert record.user_id == "u1"
        expires = record.expires_at.replace(tzinfo=timezone.utc) if record.expires_at.tzinfo is None else record.expires_at
        assert expires - before >= timedelta(days=settings.redownload_days) - timedelta(seconds=5)

    def test_record_download_without_storage_has_no_window(self, client, db_session):
        response = client.post(
            "/api/record-download",
            headers=auth_headers("u1"),
            json={"file_name": "song.wav", "mastering_target": "apple_music"},
        )
        assert response.status_code == 201
        assert response.json()["expires_at"] is None

    def test_record_download_validates_body(self, client):
        response = client.post("/api/record-download", headers=auth_headers("u1"), json={"file_name": ""})
        assert response.status_code == 422

    @pytest.mark.parametrize("storage_path", [
        "victim-user/secret-master.wav",
        "u1/../victim-user/secret-master.wav",
        "u10/song.wav",
    ])
    def test_record_download_rejects_foreign_storage_path(self, client, db_session, storage, storage_path):
        storage.objects[storage_path] = b"RIFF-victim-audio"
        response = client.post(
            "/api/record-download",
            headers=auth_headers("u1"),
            json={"file_name": "song.wav", "mastering_target": "spotify", "storage_path": storage_path},
        )
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"
        assert db_session.query(DownloadHistory).count() == 0
        assert storage.calls == []

    def test_legacy_foreign_path_is_not_served(self, client, db_session, storage):
        storage.objects["victim-user/secret-master.wav"] = b"RIFF-victim-audio"
        history_id = add_history(
            db_session, "u1", datetime.now(timezone.utc) + timedelta(days=1),
            storage_path="victim-user/secret-master.wav",
        )
        response = client.get(f"/api/re-download?history_id={history_id}&stream=1", headers=auth_headers("u1"))
        assert response.status_code == 403
        assert storage.calls == []

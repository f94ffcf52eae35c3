import base64
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

import main
from services.auth import create_access_token
from services.media_service import LocalMediaGateway
from fakes import FakeEmbedder, FakeOracle


@pytest.fixture
def client(session_factory, tmp_path):
    gateway = LocalMediaGateway(str(tmp_path / "media"))
    main.app.dependency_overrides[main.get_session_factory] = lambda: session_factory
    main.app.dependency_overrides[main.get_embedder] = lambda: FakeEmbedder(default=[1.0, 0.0])
    main.app.dependency_overrides[main.get_oracle] = lambda: FakeOracle(pick_reply="1", mood="温柔")
    main.app.dependency_overrides[main.get_media_gateway] = lambda: gateway
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def _auth(user_id):
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def _upload(client, admin_id, data=b"ID3 voice", content_type="audio/mpeg"):
    body = {"filename": "hello.mp3", "content_type": content_type,
            "data": base64.b64encode(data).decode()}
    return client.post("/media/upload", json=body, headers=_auth(admin_id))


def test_requires_valid_token(client):
    assert client.get("/bottles").status_code == 422
    assert client.get("/bottles", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_submit_journal_opens_bottle(client, make_user, make_bottle):
    user_id = make_user()
    bottle_id = make_bottle("晚风", user_id, embedding=[1.0, 0.0])

    resp = client.post("/journal/submit", json={"entry": "今天下班很早"}, headers=_auth(user_id))

    assert resp.status_code == 200
    data = resp.json()
    assert data["bottle_id"] == bottle_id
    assert data["content"]["blocks"][0]["type"] == "text"
    assert "opened_at" in data

    again = client.post("/journal/submit", json={"entry": "又来一篇"}, headers=_auth(user_id)).json()
    assert "bottle_id" not in again
    assert again["journal_id"] != data["journal_id"]


def test_blank_entry_is_rejected(client, make_user):
    resp = client.post("/journal/submit", json={"entry": "   "}, headers=_auth(make_user()))
    assert resp.status_code == 422


def test_open_bottle_errors(client, make_user, make_bottle):
    owner = make_user()
    other = make_user()
    bottle_id = make_bottle("瓶", owner)

    assert client.post("/bottles/open", json={"bottle_id": 404, "entry": "日记"},
                       headers=_auth(owner)).status_code == 404
    assert client.post("/bottles/open", json={"bottle_id": bottle_id, "entry": "日记"},
                       headers=_auth(other)).status_code == 403

    ok = client.post("/bottles/open", json={"bottle_id": bottle_id, "entry": "日记"}, headers=_auth(owner))
    assert ok.status_code == 200
    assert ok.json()["name"] == "瓶"

    again = client.post("/bottles/open", json={"bottle_id": bottle_id, "entry": "再开"}, headers=_auth(owner))
    assert again.status_code == 409
    assert again.json()["reason"] == "already_opened"


def test_admin_creates_and_lists_bottles(client, make_user):
    admin_id = make_user(is_admin=True)
    viewer_id = make_user()
    body = {
        "name": "小纸条",
        "content": {"blocks": [{"type": "voice", "url": "/media/v1", "duration": 12.5}]},
        "assigned_viewer_id": viewer_id,
    }

    assert client.post("/admin/bottles", json=body, headers=_auth(viewer_id)).status_code == 403

    created = client.post("/admin/bottles", json=body, headers=_auth(admin_id))
    assert created.status_code == 200
    assert created.json()["bottle"]["mood"] == "温柔"

    listing = client.get("/bottles", headers=_auth(viewer_id)).json()
    assert listing["unopened_count"] == 1
    assert client.get("/bottles", headers=_auth(admin_id)).json()["total_count"] == 1

    bottle_id = created.json()["bottle"]["id"]
    assert client.get(f"/bottles/{bottle_id}", headers=_auth(viewer_id)).status_code == 403


def test_invalid_block_is_rejected(client, make_user):
    admin_id = make_user(is_admin=True)
    body = {
        "name": "坏瓶子",
        "content": {"blocks": [{"type": "gif", "url": "/x"}]},
        "assigned_viewer_id": admin_id,
    }
    assert client.post("/admin/bottles", json=body, headers=_auth(admin_id)).status_code == 422


def test_journal_list_and_delete(client, make_user):
    user_id = make_user()
    other = make_user()
    journal_id = client.post("/journal/submit", json={"entry": "没有瓶子"}, headers=_auth(user_id)).json()["journal_id"]

    listing = client.get("/journal/list", headers=_auth(user_id)).json()
    assert listing["total"] == 1

    assert client.delete(f"/journal/{journal_id}", headers=_auth(other)).status_code == 403
    assert client.delete(f"/journal/{journal_id}", headers=_auth(user_id)).status_code == 200
    assert client.delete(f"/journal/{journal_id}", headers=_auth(user_id)).status_code == 404


def test_media_access_flow(client, make_user):
    admin_id = make_user(is_admin=True)
    viewer_id = make_user()

    uploaded = _upload(client, admin_id)
    assert uploaded.status_code == 200
    media_id = uploaded.json()["media"]["id"]

    denied = client.get(f"/media/{media_id}", headers=_auth(viewer_id))
    assert denied.status_code == 403
    assert denied.json()["reason"] == "no access granted"

    granted = client.post(f"/media/{media_id}/grant-access", json={"user_id": viewer_id, "max_views": 1},
                          headers=_auth(admin_id))
    assert granted.status_code == 200
    assert granted.json()["access_count"] == 0
    assert granted.json()["max_views"] == 1

    resp = client.get(f"/media/{media_id}", headers=_auth(viewer_id))
    assert resp.status_code == 200
    assert resp.content == b"ID3 voice"
    assert resp.headers["content-type"].startswith("audio/mpeg")
    assert resp.headers["cache-control"] == "private"
    assert resp.headers["content-disposition"] == "inline"

    gone = client.get(f"/media/{media_id}", headers=_auth(viewer_id))
    assert gone.status_code == 410
    assert gone.json()["reason"] == "maximum views exceeded"

    grants = client.get(f"/media/{media_id}/access", headers=_auth(admin_id)).json()
    assert [g["user_id"] for g in grants] == [admin_id, viewer_id]

    assert client.delete(f"/media/{media_id}/grant-access/{viewer_id}", headers=_auth(admin_id)).status_code == 200
    assert client.get(f"/media/{media_id}", headers=_auth(viewer_id)).status_code == 403


def test_media_upload_and_grant_validation(client, make_user):
    admin_id = make_user(is_admin=True)
    viewer_id = make_user()

    assert _upload(client, viewer_id).status_code == 403
    assert _upload(client, admin_id, content_type="text/plain").status_code == 400
    bad = client.post("/media/upload", json={"filename": "a.mp3", "content_type": "audio/mpeg", "data": "%%%"},
                      headers=_auth(admin_id))
    assert bad.status_code == 400

    assert client.get("/media/missing", headers=_auth(admin_id)).status_code == 404
    media_id = _upload(client, admin_id).json()["media"]["id"]
    zero = client.post(f"/media/{media_id}/grant-access", json={"user_id": viewer_id, "max_views": 0},
                       headers=_auth(admin_id))
    assert zero.status_code == 422


def test_expired_token_is_rejected(client, make_user):
    token = create_access_token(make_user(), expire_minutes=-1)
    assert client.get("/bottles", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_auth_me_reports_identity_and_role(client, make_user):
    admin_id = make_user(is_admin=True, email="curator@example.com")
    viewer_id = make_user(email="reader@example.com")

    assert client.get("/auth/me", headers=_auth(admin_id)).json() == {
        "id": admin_id, "email": "curator@example.com", "is_admin": True,
    }
    assert client.get("/auth/me", headers=_auth(viewer_id)).json()["is_admin"] is False
    assert client.get("/auth/me", headers=_auth(9999)).status_code == 401


def test_admin_lists_users_by_email(client, make_user):
    admin_id = make_user(is_admin=True, email="mia@example.com")
    zoe = make_user(email="zoe@example.com")
    amy = make_user(email="amy@example.com")

    assert client.get("/users", headers=_auth(zoe)).status_code == 403

    users = client.get("/users", headers=_auth(admin_id)).json()["users"]
    assert [u["id"] for u in users] == [amy, admin_id, zoe]
    assert users[1] == {"id": admin_id, "email": "mia@example.com", "is_admin": True}

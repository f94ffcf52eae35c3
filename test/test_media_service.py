import io

import pytest
from PIL import Image

from database_models import MediaObject
from services.access_grants import AccessGrantStore, MAX_VIEWS_EXCEEDED
from services.errors import AccessGoneError, ForbiddenError, InternalError, NotFoundError, ValidationError
from services.media_service import LocalMediaGateway, MediaService, generate_storage_key


def _png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color=(200, 120, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def gateway(tmp_path):
    return LocalMediaGateway(str(tmp_path / "media"))


@pytest.fixture
def service(session_factory, clock, gateway):
    return MediaService(AccessGrantStore(session_factory, clock=clock), gateway, session_factory, max_bytes=1024)


def test_upload_grants_uploader_and_hides_storage_key(service, make_user):
    admin_id = make_user(is_admin=True)
    media = service.upload(admin_id, _png_bytes(), "photo.png", "image/png")

    assert "storage_key" not in media
    assert media["content_type"] == "image/png"

    payload = service.fetch(media["id"], admin_id)
    assert payload.data == _png_bytes()
    assert payload.content_type == "image/png"


def test_upload_validation(service, make_user):
    admin_id = make_user(is_admin=True)
    with pytest.raises(ValidationError):
        service.upload(admin_id, b"", "empty.png", "image/png")
    with pytest.raises(ValidationError):
        service.upload(admin_id, b"x" * 2048, "big.mp3", "audio/mpeg")
    with pytest.raises(ValidationError):
        service.upload(admin_id, b"%PDF", "doc.pdf", "application/pdf")
    with pytest.raises(ValidationError):
        service.upload(admin_id, b"not an image", "fake.png", "image/png")


def test_fetch_respects_grants(service, make_user):
    admin_id = make_user(is_admin=True)
    viewer_id = make_user()
    media_id = service.upload(admin_id, b"ID3 voice", "hello.mp3", "audio/mpeg")["id"]

    with pytest.raises(ForbiddenError):
        service.fetch(media_id, viewer_id)

    service.grants.grant(media_id, viewer_id, max_views=1)
    assert service.fetch(media_id, viewer_id).data == b"ID3 voice"

    with pytest.raises(AccessGoneError) as exc:
        service.fetch(media_id, viewer_id)
    assert exc.value.reason == MAX_VIEWS_EXCEEDED


def test_fetch_unknown_media(service, make_user):
    with pytest.raises(NotFoundError):
        service.fetch("missing", make_user())


def test_gateway_rejects_paths_outside_base(gateway):
    with pytest.raises(ValidationError):
        gateway.put("../escape.bin", b"x")


def test_storage_key_keeps_extension():
    assert generate_storage_key("Clip.MP4").endswith(".mp4")
    assert generate_storage_key("noext").endswith(".bin")


class BrokenGrantStore(AccessGrantStore):
    def grant(self, media_id, user_id, max_views=None, expires_at=None):
        raise InternalError("授权写入失败")


def test_failed_uploader_grant_rolls_back_upload(session_factory, clock, gateway, tmp_path, make_user):
    service = MediaService(BrokenGrantStore(session_factory, clock=clock), gateway, session_factory)

    with pytest.raises(InternalError):
        service.upload(make_user(is_admin=True), b"ID3 voice", "hello.mp3", "audio/mpeg")

    db = session_factory()
    try:
        assert db.query(MediaObject).count() == 0
    finally:
        db.close()
    assert [p for p in (tmp_path / "media").rglob("*") if p.is_file()] == []

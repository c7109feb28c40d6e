import os

import pytest

from mailer import Mailer, MailError
from storage import MAX_IMAGE_SIZE, check_upload, UploadRejected


def test_upload_stores_file(client, settings, student, auth_headers):
    res = client.post(
        "/api/upload",
        files={"file": ("My Photo.png", b"\x89PNG data", "image/png")},
        data={"bucket": "avatars", "folder": "profile"},
        headers=auth_headers(student),
    )
    assert res.status_code == 201
    body = res.json()
    assert body["bucket"] == "avatars"
    assert body["path"].startswith("profile/")
    assert body["path"].endswith("_My_Photo.png")
    assert body["url"] == f"/static/avatars/{body['path']}"
    assert os.path.exists(os.path.join(settings.upload_dir, "avatars", body["path"]))


def test_upload_too_large(client, student, auth_headers):
    big = b"0" * (MAX_IMAGE_SIZE + 1)
    res = client.post("/api/upload", files={"file": ("big.jpg", big, "image/jpeg")}, headers=auth_headers(student))
    assert res.status_code == 413


def test_upload_disallowed_type(client, student, auth_headers):
    res = client.post(
        "/api/upload",
        files={"file": ("run.sh", b"echo", "application/x-sh")},
        headers=auth_headers(student),
    )
    assert res.status_code == 400


def test_upload_without_file(client, student, auth_headers):
    res = client.post("/api/upload", data={"bucket": "uploads"}, headers=auth_headers(student))
    assert res.status_code == 400


def test_upload_requires_session(client):
    res = client.post("/api/upload", files={"file": ("a.png", b"x", "image/png")})
    assert res.status_code == 401


def test_video_limit_is_larger():
    check_upload("clip.mp4", "video/mp4", MAX_IMAGE_SIZE + 1)
    with pytest.raises(UploadRejected) as err:
        check_upload("pic.png", "image/png", MAX_IMAGE_SIZE + 1)
    assert err.value.status_code == 413


def test_test_email_console(client, admin, student, auth_headers):
    assert client.post("/api/test-email", json={"to": "x@example.com"}, headers=auth_headers(student)).status_code == 403
    res = client.post("/api/test-email", json={"to": "x@example.com"}, headers=auth_headers(admin))
    assert res.json() == {"success": True, "provider": "console"}


def test_resend_without_key_fails(settings):
    mailer = Mailer(settings.model_copy(update={"email_provider": "resend"}))
    with pytest.raises(MailError):
        mailer.send("x@example.com", "s", "<p>b</p>")


def test_meta_endpoints(client):
    assert client.get("/").status_code == 200
    status = client.get("/api/test-connection").json()
    assert status["connection_status"] == "Connected"
    assert "DATABASE_URL" in status["missing_settings"]
    assert "BoardPost" in client.get("/schema").json()

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import create_access_token, hash_password
from config import Settings, get_settings
from database import Store, get_store
from main import app


@pytest.fixture
def settings(tmp_path):
    return Settings(upload_dir=str(tmp_path / "uploads"), jwt_secret="test-secret")


@pytest.fixture
def store():
    return Store(mongomock.MongoClient()["edu_test"])


@pytest.fixture
def client(store, settings):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(store):
    def _make(role="student", email=None, name="Tester", password="secret123", **extra):
        doc = {
            "email": email or f"{role}-{len(store.select('users'))}@example.com",
            "name": name,
            "role": role,
            "password_hash": hash_password(password),
            "is_active": True,
            "email_verified": False,
        }
        doc.update(extra)
        return store.insert("users", doc)
    return _make


@pytest.fixture
def auth_headers(settings):
    def _headers(user):
        token = create_access_token({"sub": user["_id"], "role": user["role"]}, settings)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def admin(make_user):
    return make_user("admin", email="admin@example.com", name="Admin")


@pytest.fixture
def student(make_user):
    return make_user("student", email="student@example.com", name="Kim", class_level="A")


@pytest.fixture
def post(store, student):
    return store.insert("board_posts", {
        "_id": "p1",
        "title": "Hello",
        "content": "First post",
        "author_id": student["_id"],
        "type": "free",
        "category": "general",
        "is_pinned": False,
        "likes": 0,
        "comments_count": 3,
        "views": 0,
    })

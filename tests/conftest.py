import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
from database import create_document, ensure_indexes, get_db, to_object_id
from main import app

PASSWORD = "secret123"
PASSWORD_HASH = auth.hash_password(PASSWORD)


@pytest.fixture()
def db():
    database = mongomock.MongoClient()["safestay_test"]
    ensure_indexes(database)
    return database


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make(role: str = "student", name: str = None, **fields) -> dict:
        counter["n"] += 1
        n = counter["n"]
        doc = {
            "name": name or f"{role.title()} {n}",
            "email": f"{role}{n}@example.com",
            "role": role,
            "password": PASSWORD_HASH,
            "isBanned": False,
            "isVerified": False,
        }
        doc.update(fields)
        user_id = create_document("user", doc, db)
        return db["user"].find_one({"_id": to_object_id(user_id)})

    return _make


@pytest.fixture()
def student(make_user):
    return make_user("student")


@pytest.fixture()
def other_student(make_user):
    return make_user("student")


@pytest.fixture()
def owner(make_user):
    return make_user("owner")


@pytest.fixture()
def admin_user(make_user):
    return make_user("admin")


def bearer(user: dict) -> dict:
    return {"Authorization": f"Bearer {auth.create_token(str(user['_id']), user['role'])}"}


@pytest.fixture()
def headers():
    return bearer

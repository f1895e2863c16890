# tests/conftest.py
# Banco SQLite e bucket temporários; as variáveis precisam existir antes de
# importar database/storage/main.
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="registro-contratos-")
os.environ["APP_DB_URL"] = f"sqlite:///{_TMP}/test.db"
os.environ["APP_STORAGE_DIR"] = os.path.join(_TMP, "storage")
os.environ["RUNTIME_DIR"] = os.path.join(_TMP, "runtime")
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient

from database import Base, SessionLocal, engine
import models  # noqa: F401
from auth_models import User, grant_role
from security import hash_password
from storage import BUCKET_DOCUMENTOS, Bucket, get_bucket

ADMIN_USER = "admin"
ADMIN_PASS = "Admin@123"


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def bucket(tmp_path):
    return Bucket(BUCKET_DOCUMENTOS, root=tmp_path)


def criar_usuario(db, username, senha, papel=None):
    user = User(username=username, password_hash=hash_password(senha), is_active=True)
    db.add(user)
    db.flush()
    if papel:
        grant_role(db, user, papel)
    db.commit()
    return user


@pytest.fixture
def client(bucket):
    from main import app

    app.dependency_overrides[get_bucket] = lambda: bucket
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client, db_session):
    criar_usuario(db_session, ADMIN_USER, ADMIN_PASS, papel="admin")
    r = client.post(
        "/auth",
        data={"username": ADMIN_USER, "password": ADMIN_PASS, "next": "/admin/contratos"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    return client

from __future__ import annotations

import os

os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"

import pytest  # noqa: E402

from vaultlog.infra.db import create_schema, drop_schema  # noqa: E402
from vaultlog.infra.repository import ClientRepository, UserRepository  # noqa: E402


@pytest.fixture
def database():
    create_schema()
    yield
    drop_schema()


@pytest.fixture
def user(database):
    return UserRepository().create_user(
        {"email": "manager@vaultlog.test", "name": "Manager", "role": "MANAGER"}
    )


@pytest.fixture
def admin(database):
    return UserRepository().create_user(
        {"email": "admin@vaultlog.test", "name": "Admin", "role": "ADMIN"}
    )


@pytest.fixture
def staff(database):
    return UserRepository().create_user(
        {"email": "staff@vaultlog.test", "name": "Staff", "role": "STAFF"}
    )


@pytest.fixture
def client_record(database):
    return ClientRepository().create_client({"name": "Acme Ltd"})

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DATABASE_WRITE_URL"] = "sqlite://"
os.environ["DATABASE_READ_URL"] = "sqlite://"
os.environ["AUTOMATION_CALLBACK_SECRET"] = "test-callback-secret"
os.environ["OPENROUTER_API_KEY"] = ""
os.environ["N8N_RAG_UPLOAD_DOCUMENT_WEBHOOK_URL"] = ""
os.environ["N8N_RAG_REMOVE_DOCUMENT_WEBHOOK_URL"] = ""

import pytest
from starlette.testclient import TestClient

from funnel_cms import models
from funnel_cms.core import cache_tags
from funnel_cms.core.db_read_write import WriteSessionLocal, write_engine
from funnel_cms.db import Base
from funnel_cms.deps import get_current_user
from funnel_cms.main import app


@pytest.fixture()
def db_session():
    """Fresh in-memory schema per test, shared with the app through StaticPool."""
    Base.metadata.drop_all(bind=write_engine)
    Base.metadata.create_all(bind=write_engine)
    cache_tags.clear()
    session = WriteSessionLocal()
    yield session
    session.close()


@pytest.fixture()
def admin_user(db_session):
    user = models.User(
        email="editor@example.com",
        hashed_password="not-used",
        role=models.UserRole.admin,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    db_session.expunge(user)
    return user


@pytest.fixture()
def client(db_session, admin_user):
    """
    Provides a TestClient with authentication replaced by a stored admin user.
    The database is the real in-memory schema so routes run their own queries.
    """
    app.dependency_overrides[get_current_user] = lambda: admin_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def anonymous_client(db_session):
    with TestClient(app) as test_client:
        yield test_client

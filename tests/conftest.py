# tests/conftest.py
import pathlib, pytest
from dotenv import load_dotenv

# Before any concisely import: config and the engine read the environment once
load_dotenv(pathlib.Path(__file__).parent / ".env.test", override=True)

@pytest.fixture(autouse=True)
def _fresh_db():
    from concisely.store import reset_db
    reset_db()

@pytest.fixture()
def session():
    from concisely.store import get_session
    with get_session() as s:
        yield s

@pytest.fixture()
def client():
    from fastapi.testclient import TestClient
    from concisely.main import app
    return TestClient(app)

@pytest.fixture()
def auth():
    return {"X-API-Key": "test-key"}

@pytest.fixture()
def make_user(session):
    from concisely.models import User

    def _make(email="ada@example.com", **kw):
        kw.setdefault("name", email.split("@")[0].title())
        kw.setdefault("topics", ["quantum computing"])
        user = User(email=email, **kw)
        session.add(user); session.commit(); session.refresh(user)
        return user
    return _make

@pytest.fixture()
def make_summary(session):
    from concisely.models import Summary

    def _make(user_id, url="https://example.com/a", **kw):
        kw.setdefault("title", "A story")
        kw.setdefault("summary", "Short summary.")
        kw.setdefault("source_type", "article")
        summary = Summary(user_id=user_id, source_url=url, **kw)
        session.add(summary); session.commit(); session.refresh(summary)
        return summary
    return _make

import pytest
from fastapi.testclient import TestClient

from moviedb.core.config import get_settings
from moviedb.main import app, get_supabase_client
from moviedb.services.supabase import SupabaseClient

from tests.fakes import ADMIN_EMAIL, ANON_KEY, JWT_SECRET, PASSWORD, SUPABASE_URL, FakeSupabase


@pytest.fixture(autouse=True)
def supabase_env(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", SUPABASE_URL)
    monkeypatch.setenv("SUPABASE_ANON_KEY", ANON_KEY)
    monkeypatch.setenv("SUPABASE_JWT_SECRET", JWT_SECRET)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def backend():
    return FakeSupabase()


@pytest.fixture
def supabase_client(backend):
    return SupabaseClient(transport=backend.transport())


@pytest.fixture
def client(supabase_client):
    app.dependency_overrides[get_supabase_client] = lambda: supabase_client
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def unlocked_client(client):
    client.cookies.set("siteUnlocked", "true")
    return client


@pytest.fixture
def admin_client(unlocked_client):
    response = unlocked_client.post(
        "/admin-login",
        data={"email": ADMIN_EMAIL, "password": PASSWORD},
        follow_redirects=False,
    )
    assert response.status_code == 303
    return unlocked_client

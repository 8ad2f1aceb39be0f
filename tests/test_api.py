import httpx
import pytest
import pytest_asyncio
from fastapi import Request
from fastapi.testclient import TestClient

from dmmcache.api.dependencies import get_gateway, get_real_debrid
from dmmcache.debrid.models import UserResponse
from dmmcache.utils.network_manager import ApiCredential, UpstreamResult

from conftest import make_record


@pytest_asyncio.fixture
async def api(app, store):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def auth_params(problem):
    problem_key, solution = problem
    return {"dmmProblemKey": problem_key, "solution": solution}


@pytest.mark.asyncio
async def test_health(api):
    response = await api.get("/health")
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_movie_miss_then_processing(api, store, problem):
    params = {"imdbId": "tt1877830", **auth_params(problem)}

    first = await api.get("/api/torrents/movie", params=params)
    assert first.status_code == 204
    assert first.headers["status"] == "requested"

    await store.save("processing:tt1877830", [])
    second = await api.get("/api/torrents/movie", params=params)
    assert second.status_code == 204
    assert second.headers["status"] == "processing"


@pytest.mark.asyncio
async def test_movie_hit_returns_sorted_results(api, store, problem):
    await store.save("movie:tt1877830", [make_record("a", 1), make_record("b", 4)])

    response = await api.get(
        "/api/torrents/movie",
        params={"imdbId": "tt1877830", "minSize": "2", **auth_params(problem)},
    )

    assert response.status_code == 200
    assert response.headers["cache-control"].startswith("no-store")
    results = response.json()["results"]
    assert [result["hash"] for result in results] == ["b" * 40]
    assert results[0]["files"][0]["name"] == "file0.mkv"


@pytest.mark.asyncio
async def test_tv_requires_season(api, problem):
    response = await api.get(
        "/api/torrents/tv", params={"imdbId": "tt0944947", **auth_params(problem)}
    )

    assert response.status_code == 400
    assert response.json()["errorMessage"] == 'Missing "seasonNum" query parameter'


@pytest.mark.asyncio
async def test_auth_failures(api, problem):
    missing = await api.get("/api/torrents/movie", params={"imdbId": "tt1877830"})
    wrong = await api.get(
        "/api/torrents/movie",
        params={"imdbId": "tt1877830", "dmmProblemKey": problem[0], "solution": "00"},
    )

    assert missing.status_code == 403
    assert missing.json() == {
        "error": "Authentication error",
        "errorMessage": "Authentication not provided",
    }
    assert wrong.status_code == 403


@pytest.mark.asyncio
async def test_query_rate_limit(api, problem):
    params = {"imdbId": "tt1877830", **auth_params(problem)}
    headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}

    for _ in range(30):
        response = await api.get("/api/torrents/movie", params=params, headers=headers)
        assert response.status_code == 204

    limited = await api.get("/api/torrents/movie", params=params, headers=headers)
    other = await api.get(
        "/api/torrents/movie", params=params, headers={"X-Forwarded-For": "203.0.113.8"}
    )

    assert limited.status_code == 429
    assert limited.json()["retryAfter"] == 60
    assert limited.headers["retry-after"] == "60"
    assert other.status_code == 204


@pytest.mark.asyncio
async def test_availability_check(api, store, problem):
    await store.save("movie:tt1877830", [make_record("a", 1, 2)])

    response = await api.post(
        "/api/availability/check",
        json={"hashes": ["a" * 40, "b" * 40], **auth_params(problem)},
    )

    assert response.status_code == 200
    assert response.headers["x-ratelimit-limit"] == "30"
    assert response.headers["x-ratelimit-remaining"] == "29"
    available = response.json()["available"]
    assert [match["hash"] for match in available] == ["a" * 40]
    assert len(available[0]["files"]) == 2


@pytest.mark.asyncio
async def test_availability_check_validation(api, problem):
    empty = await api.post(
        "/api/availability/check", json={"hashes": [], **auth_params(problem)}
    )
    bad_hash = await api.post(
        "/api/availability/check", json={"hashes": ["xyz"], **auth_params(problem)}
    )
    too_many = await api.post(
        "/api/availability/check",
        json={"hashes": ["a" * 40] * 101, **auth_params(problem)},
    )
    no_auth = await api.post("/api/availability/check", json={"hashes": ["xyz"]})

    assert empty.json() == {"available": []}
    assert bad_hash.status_code == 400
    assert bad_hash.json()["hash"] == "xyz"
    assert too_many.status_code == 400
    assert no_auth.status_code == 403


@pytest.mark.asyncio
async def test_dbsize(api, store):
    await store.save("movie:tt1877830", [make_record("a", 1)])
    await store.save("requested:tt0944947", [])

    response = await api.get("/api/dbsize")

    assert response.json() == {"contentSize": 1, "processing": 0, "requested": 1}


def test_dbsize_degrades_when_unconfigured(app, components):
    components.store.configured = False

    response = TestClient(app).get("/api/dbsize")

    assert response.status_code == 200
    body = response.json()
    assert body["contentSize"] == 0
    assert "warning" in body


def test_unconfigured_store_serves_empty_results(app, components, problem):
    components.store.configured = False

    response = TestClient(app).get(
        "/api/torrents/movie", params={"imdbId": "tt1877830", **auth_params(problem)}
    )

    assert response.status_code == 200
    assert response.json()["results"] == []
    assert "warning" in response.json()


def test_unexpected_store_failure_is_a_500(app, components, problem):
    class BrokenGateway:
        async def query(self, query, identity):
            raise RuntimeError("disk on fire")

    app.dependency_overrides[get_gateway] = lambda: BrokenGateway()

    response = TestClient(app, raise_server_exceptions=False).get(
        "/api/torrents/movie", params={"imdbId": "tt1877830", **auth_params(problem)}
    )

    assert response.status_code == 500
    assert response.json()["error"] == "Internal Server Error"


class FakeRealDebrid:
    def __init__(self, credential=None, refreshed=None):
        self.credential = credential
        self.refreshed = refreshed

    async def get_user(self):
        user = UserResponse(id=1, username="dmm", type="premium")
        return UpstreamResult(user, updated_credential=self.refreshed)

    async def get_time_iso(self):
        return "2024-01-01T00:00:00+01:00"


def test_realdebrid_user_requires_bearer(app):
    app.dependency_overrides[get_real_debrid] = lambda: FakeRealDebrid()

    response = TestClient(app).get("/api/realdebrid/user")

    assert response.status_code == 401
    assert response.json()["error"] == "Missing access token"


def test_realdebrid_user_echoes_refreshed_token(app):
    refreshed = ApiCredential("fresh", "refresh-2", expires_at=2_000_000_000)
    app.dependency_overrides[get_real_debrid] = lambda: FakeRealDebrid(
        ApiCredential("stale", "refresh-1"), refreshed
    )

    response = TestClient(app).get("/api/realdebrid/user")

    assert response.status_code == 200
    assert response.json()["username"] == "dmm"
    assert response.headers["x-access-token"] == "fresh"
    assert response.headers["x-refresh-token"] == "refresh-2"
    assert response.headers["x-token-expires-at"] == "2000000000"


def test_realdebrid_time_needs_no_token(app):
    app.dependency_overrides[get_real_debrid] = lambda: FakeRealDebrid()

    response = TestClient(app).get("/api/realdebrid/time")

    assert response.json() == {"time": "2024-01-01T00:00:00+01:00"}


def test_real_debrid_dependency_reads_request_headers(app):
    captured = {}

    @app.get("/whoami")
    async def whoami(request: Request):
        captured["client"] = get_real_debrid(request)
        return {}

    TestClient(app).get(
        "/whoami",
        headers={
            "Authorization": "Bearer abc",
            "X-Refresh-Token": "def",
            "X-Client-Id": "cid",
            "X-Client-Secret": "secret",
        },
    )

    client = captured["client"]
    assert client.credential == ApiCredential("abc", "def")
    assert client.client_id == "cid"
    assert client.client_secret == "secret"


@pytest.mark.asyncio
async def test_oversized_min_size_is_a_400(api, problem):
    response = await api.get(
        "/api/torrents/movie",
        params={"imdbId": "tt1877830", "minSize": "99999999999", **auth_params(problem)},
    )

    assert response.status_code == 400
    assert response.json()["minSize"] == "99999999999"


@pytest.mark.asyncio
async def test_non_ascii_solution_is_a_403(api, problem):
    response = await api.get(
        "/api/torrents/movie",
        params={"imdbId": "tt1877830", "dmmProblemKey": problem[0], "solution": "é" * 64},
    )

    assert response.status_code == 403

"""
Shared fixtures.

Store-backed tests run against a temporary sqlite file. API tests either
override dependencies on the app (``app.dependency_overrides``) or drive the
full stack in-process through ``httpx.ASGITransport``.
"""
import pytest
import pytest_asyncio

from dmmcache.api.app import create_app
from dmmcache.api.dependencies import build_components
from dmmcache.core.database import setup_database, teardown_database
from dmmcache.core.models import AppSettings
from dmmcache.services.models import ScrapedFile, ScrapedRecord

TEST_SALT = "test-salt"

GB = 1024**3


def make_record(hash_char: str, *sizes_gb, title=None, trusted=False) -> ScrapedRecord:
    return ScrapedRecord(
        hash=hash_char * 40,
        title=title or f"Release {hash_char}",
        files=[
            ScrapedFile(name=f"file{index}.mkv", size=int(size * GB))
            for index, size in enumerate(sizes_gb)
        ],
        trusted=trusted,
    )


@pytest.fixture
def test_settings(tmp_path):
    return AppSettings(
        _env_file=None,
        DATABASE_TYPE="sqlite",
        DATABASE_PATH=str(tmp_path / "dmmcache.db"),
        STORE_PAGE_SIZE=2,
        DMM_PROBLEM_SALT=TEST_SALT,
        RATE_LIMIT_MAX_REQUESTS=30,
        RATE_LIMIT_WINDOW=60,
    )


@pytest.fixture
def components(test_settings):
    return build_components(test_settings)


@pytest_asyncio.fixture
async def store(components, test_settings):
    await setup_database(components.database, test_settings)
    yield components.store
    await teardown_database(components.database)


@pytest.fixture
def problem(components):
    """A valid (dmmProblemKey, solution) pair for the test salt."""
    return components.authenticator.generate_problem()


@pytest.fixture
def app(components):
    return create_app(components.settings, components)

"""
Shared fixtures for RSS ntfy tests.

Provides common test fixtures for use across all test modules.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from rss_ntfy.config import AppConfig
from rss_ntfy.http_client import HttpClient
from rss_ntfy.rss_parser import FeedSnapshot
from rss_ntfy.storage import Storage


# Path to test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

NTFY_SERVER = "https://ntfy.example.com"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep RSS_NTFY_* variables from the host out of the tests."""
    for name in (
        "RSS_NTFY_SERVER",
        "RSS_NTFY_STATE_DIR",
        "RSS_NTFY_PRIORITY",
        "RSS_NTFY_TOPIC",
        "RSS_NTFY_PROXY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def sample_rss_content(fixtures_dir: Path) -> str:
    """Return contents of the sample RSS feed."""
    return (fixtures_dir / "sample_rss.xml").read_text(encoding="utf-8")


@pytest.fixture
def sample_atom_content(fixtures_dir: Path) -> str:
    """Return contents of the sample Atom feed."""
    return (fixtures_dir / "sample_atom.xml").read_text(encoding="utf-8")


@pytest.fixture
def sample_page_content(fixtures_dir: Path) -> str:
    """Return contents of the sample HTML page advertising a feed."""
    return (fixtures_dir / "sample_page.html").read_text(encoding="utf-8")


@pytest.fixture
def sample_config_path(fixtures_dir: Path) -> Path:
    """Return path to sample config file."""
    return fixtures_dir / "sample_config.yaml"


@pytest.fixture
def sample_snapshot() -> FeedSnapshot:
    """
    Create a sample feed snapshot.

    Returns
    -------
    FeedSnapshot
        The first entry of the sample Atom feed.
    """
    return FeedSnapshot(
        feed_title="Example Blog",
        entry_title="Hello World",
        entry_link="https://ex.com/1",
        kind="atom",
    )


@pytest.fixture
def storage(tmp_path: Path) -> Storage:
    """Create an initialized storage under a temporary directory."""
    store = Storage(tmp_path / "state")
    store.initialize()
    return store


@pytest_asyncio.fixture
async def http_client() -> AsyncGenerator[HttpClient, None]:
    """
    Create an HTTP client that does not retry.

    Yields
    ------
    HttpClient
        A client closed after the test.
    """
    client = HttpClient(max_retries=1)
    yield client
    await client.close()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Create an app configuration pointing at a temporary state dir."""
    return AppConfig(
        server=NTFY_SERVER,
        state_dir=str(tmp_path / "state"),
        max_retries=1,
    )

"""
Unit tests for feed location discovery.
"""

import pytest
from aioresponses import aioresponses

from rss_ntfy.errors import NoFeedDiscovered, TooManyHops, TransportError
from rss_ntfy.http_client import HttpClient
from rss_ntfy.locator import FeedLocator, absolutize, find_feed_link, is_feed_content


class TestIsFeedContent:
    """Tests for feed detection."""

    @pytest.mark.parametrize(
        "content",
        [
            '<?xml version="1.0"?><rss/>',
            '<rss version="2.0"><channel/></rss>',
            '\n\n  <?xml version="1.0"?>',
            '\ufeff<?xml version="1.0"?>',
            '<feed xmlns="http://www.w3.org/2005/Atom"></feed>',
        ],
    )
    def test_feeds(self, content: str) -> None:
        """Test documents recognized as feeds."""
        assert is_feed_content(content) is True

    @pytest.mark.parametrize(
        "content",
        ["<!DOCTYPE html><html></html>", "<html><head></head></html>", ""],
    )
    def test_pages(self, content: str) -> None:
        """Test documents recognized as pages."""
        assert is_feed_content(content) is False


class TestFindFeedLink:
    """Tests for <link> discovery."""

    def test_sample_page(self, sample_page_content: str) -> None:
        """Test that the Atom link in the head is found."""
        assert find_feed_link(sample_page_content) == "/feed.atom"

    def test_rss_type(self) -> None:
        """Test RSS link type."""
        page = '<html><head><link type="application/rss+xml" href="https://ex.com/rss"></head></html>'

        assert find_feed_link(page) == "https://ex.com/rss"

    def test_ignores_body_links(self) -> None:
        """Test that links after </head> are not considered."""
        page = '<html><head></head><body><link type="application/rss+xml" href="/x"></body></html>'

        assert find_feed_link(page) is None

    def test_ignores_other_types(self) -> None:
        """Test that stylesheet links are skipped."""
        page = '<head><link rel="stylesheet" type="text/css" href="/s.css"></head>'

        assert find_feed_link(page) is None

    def test_attribute_order_and_quotes(self) -> None:
        """Test href before type and single quotes."""
        page = "<HEAD><LINK href='/feed' rel='alternate' type='application/atom+xml'/></HEAD>"

        assert find_feed_link(page) == "/feed"


class TestAbsolutize:
    """Tests for resolving discovered hrefs."""

    def test_absolute(self) -> None:
        """Test that absolute URLs are kept."""
        assert absolutize("https://ex.com/blog", "http://feeds.ex.org/a") == "http://feeds.ex.org/a"

    def test_root_relative(self) -> None:
        """Test that /path gets scheme and host."""
        assert absolutize("https://ex.com/blog/post", "/feed.xml") == "https://ex.com/feed.xml"

    def test_protocol_relative(self) -> None:
        """Test that //host/path gets the scheme."""
        assert absolutize("https://ex.com/blog", "//cdn.ex.com/feed") == "https://cdn.ex.com/feed"

    def test_relative(self) -> None:
        """Test that relative paths are appended to the page URL."""
        assert absolutize("https://ex.com/blog", "feed.xml") == "https://ex.com/blog/feed.xml"
        assert absolutize("https://ex.com/blog/", "feed.xml") == "https://ex.com/blog/feed.xml"


class TestFeedLocatorResolve:
    """Tests for FeedLocator.resolve."""

    async def test_direct_feed(
        self, http_client: HttpClient, sample_rss_content: str
    ) -> None:
        """Test that a feed URL resolves to itself."""
        locator = FeedLocator(http_client)

        with aioresponses() as m:
            m.get("https://ex.com/rss.xml", body=sample_rss_content)

            resolved = await locator.resolve("https://ex.com/rss.xml")

        assert resolved.url == "https://ex.com/rss.xml"
        assert resolved.content == sample_rss_content
        assert resolved.hops == 0

    async def test_discovery(
        self,
        http_client: HttpClient,
        sample_page_content: str,
        sample_atom_content: str,
    ) -> None:
        """Test that an HTML page leads to its advertised feed."""
        locator = FeedLocator(http_client)

        with aioresponses() as m:
            m.get("https://ex.com/blog", body=sample_page_content)
            m.get("https://ex.com/feed.atom", body=sample_atom_content)

            resolved = await locator.resolve("https://ex.com/blog")

        assert resolved.url == "https://ex.com/feed.atom"
        assert resolved.content == sample_atom_content
        assert resolved.hops == 1

    async def test_page_without_feed(self, http_client: HttpClient) -> None:
        """Test that a page without feed link raises NoFeedDiscovered."""
        locator = FeedLocator(http_client)

        with aioresponses() as m:
            m.get("https://ex.com/", body="<html><head></head></html>")

            with pytest.raises(NoFeedDiscovered) as exc_info:
                await locator.resolve("https://ex.com/")

        assert exc_info.value.fallback_url == "https://ex.com/"

    async def test_discovered_page_is_not_a_feed(self, http_client: HttpClient) -> None:
        """Test that a discovered URL serving plain HTML fails."""
        locator = FeedLocator(http_client)

        with aioresponses() as m:
            m.get(
                "https://ex.com/",
                body='<head><link type="application/rss+xml" href="/feed"></head>',
            )
            m.get("https://ex.com/feed", body="<html><head></head></html>")

            with pytest.raises(NoFeedDiscovered) as exc_info:
                await locator.resolve("https://ex.com/")

        assert exc_info.value.fallback_url == "https://ex.com/"

    async def test_discovery_loop_is_bounded(self, http_client: HttpClient) -> None:
        """Test that pages pointing at each other do not loop forever."""
        locator = FeedLocator(http_client, max_hops=2)
        page_a = '<head><link type="application/rss+xml" href="https://ex.com/b"></head>'
        page_b = '<head><link type="application/rss+xml" href="https://ex.com/a"></head>'

        with aioresponses() as m:
            m.get("https://ex.com/a", body=page_a, repeat=True)
            m.get("https://ex.com/b", body=page_b, repeat=True)

            with pytest.raises(TooManyHops) as exc_info:
                await locator.resolve("https://ex.com/a")

        assert isinstance(exc_info.value, NoFeedDiscovered)
        assert exc_info.value.fallback_url == "https://ex.com/a"

    async def test_unreachable_discovered_feed(self, http_client: HttpClient) -> None:
        """Test that a failing discovered URL falls back to the input URL."""
        locator = FeedLocator(http_client)

        with aioresponses() as m:
            m.get(
                "https://ex.com/",
                body='<head><link type="application/rss+xml" href="/feed"></head>',
            )
            m.get("https://ex.com/feed", status=404)

            with pytest.raises(NoFeedDiscovered) as exc_info:
                await locator.resolve("https://ex.com/")

        assert exc_info.value.fallback_url == "https://ex.com/"
        assert isinstance(exc_info.value.__cause__, TransportError)

    async def test_unreachable_input(self, http_client: HttpClient) -> None:
        """Test that a failing input URL raises TransportError."""
        locator = FeedLocator(http_client)

        with aioresponses() as m:
            m.get("https://ex.com/rss", status=500)

            with pytest.raises(TransportError):
                await locator.resolve("https://ex.com/rss")

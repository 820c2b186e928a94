"""Tests for web/video/image discovery."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from wachat.services.search import (
    deep_search,
    extract_image_urls,
    parse_ddg_results,
    perform_research,
    placeholder_images,
    search_web_images,
)

DDG_HTML = """
<html><body>
  <div class="result"><a class="result__a" href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fpython.org%2F&rut=x">Welcome to <b>Python</b></a></div>
  <div class="result"><a class="result__a" href="https://docs.python.org/3/">Python Docs</a></div>
  <div class="result"><a class="result__a">No link</a></div>
</body></html>
"""


def _mock_client(*responses):
    client = AsyncMock()
    client.get = AsyncMock(side_effect=list(responses))
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


def _response(status=200, text="", json_data=None):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.json = MagicMock(return_value=json_data or {})
    return resp


class TestParsers:
    def test_parse_ddg_results(self):
        results = parse_ddg_results(DDG_HTML)
        assert results == [
            {"title": "Welcome to Python", "url": "https://python.org/"},
            {"title": "Python Docs", "url": "https://docs.python.org/3/"},
        ]

    def test_parse_ddg_results_limit(self):
        assert len(parse_ddg_results(DDG_HTML, limit=1)) == 1

    def test_extract_image_urls_filters_and_dedupes(self):
        html = (
            '"https://cdn.example.com/a.jpg" "https://cdn.example.com/a.jpg" '
            '"https://www.gstatic.com/x.png" "https://cdn.example.com/site-logo.png" '
            '"https://img.example.org/b.webp?w=200"'
        )
        assert extract_image_urls(html, 10) == [
            "https://cdn.example.com/a.jpg",
            "https://img.example.org/b.webp",
        ]

    def test_placeholder_images(self):
        urls = placeholder_images("red cars!", 9)
        assert len(urls) == 5
        assert all(u.startswith("https://loremflickr.com/1280/720/red%20cars?lock=") for u in urls)
        assert len(placeholder_images("x", 0)) == 1


class TestDeepSearch:
    @pytest.mark.asyncio
    async def test_video_search_restricts_to_youtube(self):
        client = _mock_client(_response(text=DDG_HTML))
        with patch("httpx.AsyncClient", return_value=client):
            results = await deep_search("lofi", "video")
        assert client.get.await_args.kwargs["params"] == {"q": "lofi site:youtube.com"}
        assert results[0]["url"] == "https://python.org/"

    @pytest.mark.asyncio
    async def test_http_error_status_returns_empty(self):
        client = _mock_client(_response(status=503))
        with patch("httpx.AsyncClient", return_value=client):
            assert await deep_search("anything") == []

    @pytest.mark.asyncio
    async def test_network_error_returns_empty(self):
        client = _mock_client(httpx.ConnectError("down"))
        with patch("httpx.AsyncClient", return_value=client):
            assert await deep_search("anything") == []


class TestImageSearch:
    @pytest.mark.asyncio
    async def test_google_results_used_first(self):
        client = _mock_client(_response(text='"https://cdn.example.com/cat1.jpg" "https://cdn.example.com/cat2.png"'))
        with patch("httpx.AsyncClient", return_value=client):
            urls = await search_web_images("cats", 1)
        assert urls == ["https://cdn.example.com/cat1.jpg"]

    @pytest.mark.asyncio
    async def test_duckduckgo_fallback(self):
        client = _mock_client(
            _response(text="<html>nothing here</html>"),
            _response(text="<script>vqd='4-12345';</script>"),
            _response(json_data={"results": [{"image": "https://ddg.example/cat.jpg"}, {"title": "no image"}]}),
        )
        with patch("httpx.AsyncClient", return_value=client):
            urls = await search_web_images("cats", 2)
        assert urls == ["https://ddg.example/cat.jpg"]
        assert client.get.await_args.kwargs["params"]["vqd"] == "4-12345"

    @pytest.mark.asyncio
    async def test_placeholder_when_everything_fails(self):
        client = _mock_client(httpx.ConnectError("offline"))
        with patch("httpx.AsyncClient", return_value=client):
            urls = await search_web_images("red cars", 3)
        assert len(urls) == 1
        assert urls[0].startswith("https://loremflickr.com/1280/720/red%20cars?lock=")


@pytest.mark.asyncio
async def test_perform_research_gathers_all():
    with patch("wachat.services.search.deep_search", new_callable=AsyncMock) as mock_search, \
         patch("wachat.services.search.search_web_images", new_callable=AsyncMock) as mock_images:
        mock_search.side_effect = [[{"title": "w", "url": "u"}], [{"title": "v", "url": "y"}]]
        mock_images.return_value = ["i1", "i2", "i3"]
        result = await perform_research("mars")

    assert result == {
        "query": "mars",
        "web": [{"title": "w", "url": "u"}],
        "video": [{"title": "v", "url": "y"}],
        "images": ["i1", "i2", "i3"],
    }
    mock_images.assert_awaited_once_with("mars", 3)

"""Audio/video download for a text query.

The query is resolved to a YouTube video with yt-dlp (search only, no
download), then a chain of public converter APIs is tried in order until one
hands back a link that actually serves the file.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
import yt_dlp

from ..errors import DownloadError

logger = logging.getLogger("wachat.services.downloads")

_API_TIMEOUT = 30
_MEDIA_TIMEOUT = 180


def _maher(data: dict) -> Optional[str]:
    if data.get("status") == 200:
        return (data.get("result") or {}).get("link")
    return None


def _bk9(data: dict) -> Optional[str]:
    if data.get("status"):
        return ((data.get("BK9") or {}).get("download") or {}).get("url")
    return None


def _top_level_url(data: dict) -> Optional[str]:
    return data.get("url")


def _data_dl(data: dict) -> Optional[str]:
    return (data.get("data") or {}).get("dl")


@dataclass
class Provider:
    name: str
    endpoint: str
    extract: Callable[[dict], Optional[str]]
    # POST body builder; GET with ?url=<video> when None
    body: Optional[Callable[[str], dict]] = None


AUDIO_PROVIDERS = [
    Provider("maher-zubair", "https://api.maher-zubair.tech/download/ytmp3", _maher),
    Provider("bk9", "https://bk9.fun/download/youtube", _bk9),
    Provider("ryzendesu", "https://api.ryzendesu.vip/api/downloader/ytmp3", _top_level_url),
    Provider("siputzx", "https://api.siputzx.my.id/api/d/ytmp3", _data_dl),
    Provider("agatz", "https://api.agatz.xyz/api/ytmp3", _data_dl),
    Provider("cobalt", "https://api.cobalt.tools/", _top_level_url,
             body=lambda url: {"url": url, "isAudioOnly": True}),
]

VIDEO_PROVIDERS = [
    Provider("bk9", "https://bk9.fun/download/youtube", _bk9),
    Provider("maher-zubair", "https://api.maher-zubair.tech/download/ytmp4", _maher),
    Provider("siputzx", "https://api.siputzx.my.id/api/d/ytmp4", _data_dl),
    Provider("agatz", "https://api.agatz.xyz/api/ytmp4", _data_dl),
    Provider("cobalt", "https://api.cobalt.tools/", _top_level_url,
             body=lambda url: {"url": url}),
]


def _search_youtube(query: str) -> Optional[dict]:
    opts = {
        "quiet": True,
        "no_warnings": True,
        "noplaylist": True,
        "extract_flat": "in_playlist",
        "default_search": "ytsearch",
    }
    with yt_dlp.YoutubeDL(opts) as ydl:
        info = ydl.extract_info(f"ytsearch1:{query}", download=False)
    entries = (info or {}).get("entries") or []
    return entries[0] if entries else None


async def find_video(query: str) -> dict:
    """Top YouTube match for ``query`` as ``{title, url}``."""
    loop = asyncio.get_running_loop()
    try:
        entry = await loop.run_in_executor(None, _search_youtube, query)
    except yt_dlp.utils.DownloadError as e:
        raise DownloadError(f"YouTube search failed: {e}") from e
    if not entry:
        raise DownloadError(f"No video found for: {query}")

    url = entry.get("webpage_url") or entry.get("url") or ""
    if not url.startswith("http"):
        url = f"https://www.youtube.com/watch?v={entry.get('id') or url}"
    return {"title": entry.get("title") or query, "url": url}


async def fetch_bytes(url: str, client: Optional[httpx.AsyncClient] = None) -> Optional[bytes]:
    """GET ``url``; the body on HTTP 200, otherwise None."""
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=_MEDIA_TIMEOUT, follow_redirects=True) as own:
                resp = await own.get(url)
        else:
            resp = await client.get(url)
    except httpx.HTTPError as e:
        logger.warning(f"Fetch failed for {url[:120]}: {e}")
        return None
    if resp.status_code != 200:
        logger.warning(f"Fetch {url[:120]} returned HTTP {resp.status_code}")
        return None
    return resp.content


async def _try_provider(client: httpx.AsyncClient, provider: Provider, video_url: str) -> Optional[bytes]:
    if provider.body is not None:
        resp = await client.post(
            provider.endpoint,
            json=provider.body(video_url),
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            timeout=_API_TIMEOUT,
        )
    else:
        resp = await client.get(provider.endpoint, params={"url": video_url}, timeout=_API_TIMEOUT)
    if resp.status_code != 200:
        return None
    link = provider.extract(resp.json())
    if not link:
        return None
    return await fetch_bytes(link, client)


async def run_chain(providers: list[Provider], video_url: str) -> bytes:
    """Try each provider in order; the first file that downloads wins."""
    async with httpx.AsyncClient(timeout=_MEDIA_TIMEOUT, follow_redirects=True) as client:
        for provider in providers:
            logger.info(f"Trying download provider {provider.name}...")
            try:
                data = await _try_provider(client, provider, video_url)
            except (httpx.HTTPError, ValueError, AttributeError) as e:
                logger.warning(f"Provider {provider.name} failed: {e}")
                continue
            if data:
                logger.info(f"Provider {provider.name} delivered {len(data)} bytes")
                return data
    raise DownloadError(f"All {len(providers)} providers failed for {video_url}")


async def fetch_audio(query: str) -> bytes:
    video = await find_video(query)
    logger.info(f"Audio target: {video['title']} ({video['url']})")
    return await run_chain(AUDIO_PROVIDERS, video["url"])


async def fetch_video(query: str) -> bytes:
    video = await find_video(query)
    logger.info(f"Video target: {video['title']} ({video['url']})")
    return await run_chain(VIDEO_PROVIDERS, video["url"])

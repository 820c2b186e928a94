"""Web, video and image discovery by scraping public search pages.

All of this is best-effort: the endpoints are undocumented and change
without notice, so every function degrades to an empty (or placeholder)
result instead of raising.
"""

import asyncio
import logging
import random
import re
from urllib.parse import parse_qs, quote, urlparse

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger("wachat.services.search")

MAX_RESULTS = 5

_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

_IMAGE_URL_RE = re.compile(r"""(https?://[^"'\s]+\.(?:jpg|jpeg|png|webp|gif|bmp|svg))(?:\?[^"'\s]*)?""", re.IGNORECASE)
_IMAGE_URL_BLOCKLIST = ("google", "gstatic", "encrypted", "favicon", "logo")
_VQD_RE = re.compile(r"""vqd=["'](.*?)["']""")


def _unwrap_ddg_link(href: str) -> str:
    """DuckDuckGo wraps result links as ``//duckduckgo.com/l/?uddg=<url>``."""
    if "uddg=" not in href:
        return href
    target = parse_qs(urlparse(href).query).get("uddg")
    return target[0] if target else href


def parse_ddg_results(html: str, limit: int = MAX_RESULTS) -> list[dict]:
    soup = BeautifulSoup(html, "html.parser")
    results = []
    for a in soup.select("a.result__a"):
        href = a.get("href")
        if not href:
            continue
        results.append({"title": a.get_text(" ", strip=True), "url": _unwrap_ddg_link(href)})
        if len(results) >= limit:
            break
    return results


async def deep_search(query: str, type: str = "web") -> list[dict]:
    """Top DuckDuckGo results as ``[{title, url}]`` (YouTube-only for video)."""
    q = f"{query} site:youtube.com" if type == "video" else query
    logger.info(f"Deep search ({type}): {query}")
    try:
        async with httpx.AsyncClient(timeout=20, follow_redirects=True) as client:
            resp = await client.get(
                "https://html.duckduckgo.com/html/",
                params={"q": q},
                headers={"User-Agent": _USER_AGENTS[0]},
            )
        if resp.status_code != 200:
            logger.warning(f"Deep search failed: HTTP {resp.status_code}")
            return []
        return parse_ddg_results(resp.text)
    except Exception as e:
        logger.error(f"Deep search error: {e}")
        return []


def extract_image_urls(html: str, limit: int) -> list[str]:
    """Pull direct image links out of a Google Images result page."""
    urls: list[str] = []
    for match in _IMAGE_URL_RE.finditer(html):
        url = match.group(1)
        if any(bad in url for bad in _IMAGE_URL_BLOCKLIST) or url in urls:
            continue
        urls.append(url)
        if len(urls) >= limit:
            break
    return urls


def placeholder_images(query: str, count: int = 1) -> list[str]:
    """Random-lock loremflickr URLs for the query (1 to 5 of them)."""
    safe_query = re.sub(r"[^\w\s]", "", query or "random").strip() or "random"
    count = min(max(1, count), 5)
    return [
        f"https://loremflickr.com/1280/720/{quote(safe_query)}?lock={random.randint(0, 999999)}"
        for _ in range(count)
    ]


async def search_web_images(query: str, count: int = 1) -> list[str]:
    """Image URLs for the query: Google Images, then DuckDuckGo, then a placeholder."""
    ua = random.choice(_USER_AGENTS)
    logger.info(f"Image search: {query} (count={count})")

    try:
        async with httpx.AsyncClient(timeout=20, follow_redirects=True) as client:
            resp = await client.get(
                "https://www.google.com/search",
                params={"q": query, "tbm": "isch", "sclient": "img"},
                headers={"User-Agent": ua, "Referer": "https://www.google.com/"},
            )
            found = extract_image_urls(resp.text, count * 5)
            if found:
                return found[:count]

            logger.warning("Google image results empty, trying DuckDuckGo...")
            resp = await client.get(
                "https://duckduckgo.com/",
                params={"q": query, "iax": "images", "ia": "images"},
                headers={"User-Agent": ua},
            )
            vqd = _VQD_RE.search(resp.text)
            if vqd:
                resp = await client.get(
                    "https://duckduckgo.com/i.js",
                    params={"q": query, "o": "json", "vqd": vqd.group(1), "f": ",,,,,", "p": "1"},
                    headers={"User-Agent": ua},
                )
                if resp.status_code == 200:
                    images = [r["image"] for r in resp.json().get("results", []) if r.get("image")]
                    if images:
                        return images[:count]
    except Exception as e:
        logger.error(f"Image discovery failed: {e}")

    return placeholder_images(query, 1)


async def perform_research(query: str) -> dict:
    """Web results, video results and three images, gathered concurrently."""
    web, video, images = await asyncio.gather(
        deep_search(query, "web"),
        deep_search(query, "video"),
        search_web_images(query, 3),
    )
    return {"query": query, "web": web, "video": video, "images": images}

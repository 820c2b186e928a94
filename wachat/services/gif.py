"""Reaction GIF lookup with source fallbacks."""

import logging

import httpx

logger = logging.getLogger("wachat.services.gif")

GIF_CATEGORIES = [
    "smile", "wave", "happy", "dance", "laugh", "hug", "wink", "pat",
    "bonk", "yeet", "bully", "slap", "kill", "cringe", "cuddle", "cry",
]
# waifu.pics has no endpoint for these
_CATEGORY_ALIASES = {"laugh": "smile", "cringe": "smug"}

FALLBACK_GIF = (
    "https://media.giphy.com/media/v1.Y2lkPTc5MGI3NjExNHJqZ3RreXQ0Z3RqZ3RreXQ0Z3RqZ3RreXQ0Z3RqZ3RreXQ0"
    "Z3ImZXA9djFfZ2lmc19zZWFyY2gmY3Q9Zw/3o7TKP9ln2DrM3hAS4/giphy.gif"
)


def pick_category(query: str) -> str:
    q = (query or "happy").lower()
    category = next((c for c in GIF_CATEGORIES if c in q), "smile")
    return _CATEGORY_ALIASES.get(category, category)


async def get_gif(query: str) -> str:
    """Return a GIF URL for the query. Always returns something."""
    category = pick_category(query)
    sources = [
        ("waifu.pics", f"https://api.waifu.pics/sfw/{category}"),
        ("otakugif", f"https://api.otakugif.xyz/gif?reaction={category}"),
    ]
    logger.info(f"GIF lookup: category={category}")

    async with httpx.AsyncClient(timeout=15, follow_redirects=True) as client:
        for name, url in sources:
            try:
                resp = await client.get(url)
                if resp.status_code == 200:
                    gif_url = resp.json().get("url")
                    if gif_url:
                        return gif_url
                logger.warning(f"GIF source {name} returned {resp.status_code}")
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"GIF source {name} failed: {e}")

    return FALLBACK_GIF

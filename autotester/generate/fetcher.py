"""
Fetch a documentation page and reduce it to plain visible text.

``fetch_page_content`` never raises: every failure is logged and turned
into ``None`` so generation can fall back to a URL-only prompt.
"""

import asyncio
import logging
import random
import re
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from autotester.config import FETCH_MAX_BYTES, FETCH_MAX_CHARS, FETCH_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# One is picked at random per request
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/96.0.4664.110 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/96.0.4664.45 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/97.0.4692.71 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.1 Safari/605.1.15",
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:108.0) Gecko/20100101 Firefox/108.0",
]

BLOCKED_CONTENT_TYPES = ("application/pdf", "audio", "video", "image", "binary", "octet-stream")

NOISE_TAGS = ["script", "style", "noscript", "iframe", "head", "header", "footer", "nav"]

_WHITESPACE = re.compile(r"\s+")


def is_blocked_content_type(content_type: str) -> bool:
    ct = (content_type or "").lower()
    return any(marker in ct for marker in BLOCKED_CONTENT_TYPES)


def declared_length(headers: httpx.Headers) -> Optional[int]:
    raw = headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def extract_visible_text(html: str, max_chars: int = FETCH_MAX_CHARS) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(NOISE_TAGS):
        # children of an already removed <head> or <nav> come back decomposed
        if not tag.decomposed:
            tag.decompose()
    root = soup.body or soup
    text = _WHITESPACE.sub(" ", root.get_text(" ")).strip()
    return text[:max_chars]


async def _read_capped(response: httpx.Response, max_bytes: int) -> Optional[bytes]:
    chunks = []
    size = 0
    async for chunk in response.aiter_bytes():
        size += len(chunk)
        if size > max_bytes:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


async def _download_html(
    client: httpx.AsyncClient,
    url: str,
    headers: dict,
    timeout: float,
    max_bytes: int,
) -> Optional[str]:
    async with client.stream("GET", url, headers=headers, timeout=timeout) as response:
        if not response.is_success:
            logger.info(
                "Doc fetch skipped (bad status %s) %s", response.status_code, url
            )
            return None

        content_type = response.headers.get("content-type", "")
        if is_blocked_content_type(content_type):
            logger.info("Doc fetch skipped (%s) %s", content_type, url)
            return None

        length = declared_length(response.headers)
        if length is not None and length > max_bytes:
            logger.info("Doc fetch skipped (file too large: %d bytes) %s", length, url)
            return None

        body = await _read_capped(response, max_bytes)
        if body is None:
            logger.info("Doc fetch skipped (body exceeded %d bytes) %s", max_bytes, url)
            return None
        return body.decode(response.encoding or "utf-8", errors="replace")


async def fetch_page_content(
    url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = FETCH_TIMEOUT_SECONDS,
    max_bytes: int = FETCH_MAX_BYTES,
    max_chars: int = FETCH_MAX_CHARS,
) -> Optional[str]:
    headers = {"User-Agent": random.choice(USER_AGENTS)}
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(follow_redirects=True)
    try:
        # one deadline for the whole exchange; httpx timeouts are per read
        html = await asyncio.wait_for(
            _download_html(client, url, headers, timeout, max_bytes), timeout
        )
        if html is None:
            return None
        content = extract_visible_text(html, max_chars)
    except (httpx.TimeoutException, asyncio.TimeoutError):
        logger.info("Doc fetch timed out %s", url)
        return None
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("Doc fetch failed to fetch %s: %s", url, e)
        return None
    except Exception as e:
        logger.error("Doc fetch error %s: %s", url, e)
        return None
    finally:
        if owns_client:
            await client.aclose()

    if not content:
        logger.info("Doc fetch found no visible text %s", url)
        return None
    return content

import asyncio
import logging

import httpx
from bs4 import BeautifulSoup
from readability import Document
from readability.readability import Unparseable

from .utils import html_to_text

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; RSS-Flow/1.0)"
DEFAULT_TIMEOUT = 15.0
READABILITY_CHAR_THRESHOLD = 500  # chars of text readability must find to be trusted
MIN_HTML_LENGTH = 100

NOISE_SELECTOR = (
    "script, style, nav, header, footer, aside, iframe, "
    ".ad, .ads, .advertisement, .social-share, .comments"
)


def _densest_container(soup: BeautifulSoup):
    """Pick the main content node: semantic containers first, then the
    div holding the most paragraph text."""
    for selector in ("article", "main", "[role=main]"):
        node = soup.select_one(selector)
        if node is not None:
            return node

    best, best_length = None, 0
    for div in soup.find_all("div"):
        length = sum(len(p.get_text()) for p in div.find_all("p"))
        if length > best_length:
            best, best_length = div, length
    return best


def extract_main_content(
    html: str, readability_char_threshold: int = READABILITY_CHAR_THRESHOLD
) -> str | None:
    """Extract the main article HTML from a full page. Returns None if
    nothing usable is found."""
    soup = BeautifulSoup(html, "lxml")
    for node in soup.select(NOISE_SELECTOR):
        node.decompose()

    summary = ""
    try:
        summary = Document(str(soup)).summary(html_partial=True)
    except (Unparseable, ValueError):
        logger.debug("Readability could not parse page")

    if len(html_to_text(summary)) >= readability_char_threshold:
        content = summary
    else:
        node = _densest_container(soup)
        content = node.decode_contents() if node is not None else summary

    if not content or len(content) < MIN_HTML_LENGTH:
        return None
    return content


async def extract_full_article(
    url: str,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    readability_char_threshold: int = READABILITY_CHAR_THRESHOLD,
) -> str | None:
    """Fetch an article page and extract its main content HTML.
    Returns None on failure."""
    if not url:
        return None

    if client is None:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        ) as own_client:
            return await extract_full_article(url, own_client, timeout, readability_char_threshold)

    try:
        response = await asyncio.wait_for(client.get(url, timeout=timeout), timeout)
        response.raise_for_status()
    except asyncio.TimeoutError:
        logger.debug("Timed out fetching article %s", url)
        return None
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.debug("Failed to fetch article %s: %s", url, e)
        return None

    content_type = response.headers.get("content-type", "")
    if "html" not in content_type:
        logger.debug("Skipping non-HTML article %s (%s)", url, content_type)
        return None

    content = await asyncio.to_thread(
        extract_main_content, response.text, readability_char_threshold
    )
    if content is None:
        logger.debug("No extractable content at %s", url)
    return content

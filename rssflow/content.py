"""Resolve the best available body for a single article.

Feed content is used when it is substantial; otherwise the article page is
fetched and its main content extracted, falling back to longer feed content
and finally to whatever excerpt the feed carries. The result is always
sanitized.
"""

import logging
from dataclasses import dataclass

import httpx

from .config import get_setting
from .crawler import extract_full_article
from .fetcher import (
    DEFAULT_TIMEOUT,
    FeedFetchError,
    entry_content_html,
    entry_guid,
    fetch_feed_entries,
    make_client,
)
from .sanitize import sanitize_html
from .utils import html_to_text

logger = logging.getLogger(__name__)


@dataclass
class ContentThresholds:
    excerpt_threshold: int = 1000
    min_extracted_length: int = 200
    min_content_length: int = 500
    readability_char_threshold: int = 500
    extract_timeout: float = 15.0
    feed_timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_config(cls, config: dict) -> "ContentThresholds":
        return cls(
            excerpt_threshold=get_setting(config, "content.excerpt_threshold"),
            min_extracted_length=get_setting(config, "content.min_extracted_length"),
            min_content_length=get_setting(config, "content.min_content_length"),
            readability_char_threshold=get_setting(config, "content.readability_char_threshold"),
            extract_timeout=get_setting(config, "content.extract_timeout"),
            feed_timeout=get_setting(config, "fetcher.timeout"),
        )


async def choose_content(
    entry, thresholds: ContentThresholds, client: httpx.AsyncClient | None = None
) -> str:
    """Walk the fallback chain for one feed entry. Returns unsanitized HTML."""
    feed_content = entry_content_html(entry)

    text_length = len(html_to_text(feed_content))
    if text_length > thresholds.excerpt_threshold:
        logger.debug("Using feed content (%d chars)", text_length)
        return feed_content

    link = (entry.get("link") or "").strip()
    extracted = await extract_full_article(
        link,
        client,
        timeout=thresholds.extract_timeout,
        readability_char_threshold=thresholds.readability_char_threshold,
    )
    if extracted and len(html_to_text(extracted)) >= thresholds.min_extracted_length:
        logger.debug("Using extracted content from %s", link)
        return extracted

    if len(feed_content) > thresholds.min_content_length:
        logger.debug("Extraction failed, using feed content")
    # Shorter feed content is the excerpt; "" when the feed carries none
    return feed_content


async def resolve_content(
    feed_url: str,
    guid: str,
    feed_id: str = "",
    thresholds: ContentThresholds | None = None,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Return sanitized HTML for an article, or "" if nothing is available."""
    thresholds = thresholds or ContentThresholds()

    if client is None:
        async with make_client(thresholds.feed_timeout) as own_client:
            return await resolve_content(feed_url, guid, feed_id, thresholds, own_client)

    try:
        feed = await fetch_feed_entries(feed_url, client, thresholds.feed_timeout)
    except FeedFetchError as e:
        logger.warning("Cannot resolve content for %s: %s", guid, e)
        return ""

    entry = next(
        (e for e in feed.entries if entry_guid(e, feed_id, feed_url) == guid),
        None,
    )
    if entry is None:
        logger.info("Article %s not found in %s", guid, feed_url)
        return ""

    return sanitize_html(await choose_content(entry, thresholds, client))

import asyncio
import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

import feedparser
import httpx

from .utils import html_to_lines, html_to_text

logger = logging.getLogger(__name__)

USER_AGENT = "RSS-Flow/1.0"
DEFAULT_TIMEOUT = 10.0  # seconds
UNTITLED = "Untitled"
TITLE_SNIPPET_LENGTH = 60

IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)


class FeedFetchError(Exception):
    """Raised when a feed cannot be downloaded or parsed."""


@dataclass
class Feed:
    id: str
    url: str
    name: str
    category: str
    color: str
    view: str | None = None


@dataclass
class Article:
    guid: str
    title: str
    link: str
    pub_date: datetime
    content: str
    feed_name: str
    feed_url: str
    category: str
    category_color: str
    image_url: str | None = None
    view: str | None = None


@dataclass
class FeedMetadata:
    name: str
    description: str | None = None


def make_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=timeout,
        headers={"User-Agent": USER_AGENT},
    )


def entry_content_html(entry) -> str:
    """Full HTML body of an entry: content blocks, else summary."""
    blocks = [c.get("value", "") for c in entry.get("content", []) if c.get("value")]
    if blocks:
        return "\n".join(blocks)
    return entry.get("summary", "") or entry.get("description", "") or ""


def entry_excerpt(entry) -> str:
    """Plain-text snippet shown in the river, one line per paragraph."""
    return html_to_lines(entry.get("summary", "") or entry_content_html(entry))


def entry_published(entry) -> datetime | None:
    for field in ("published_parsed", "updated_parsed", "created_parsed"):
        parsed = entry.get(field)
        if not parsed:
            continue
        try:
            return datetime(*parsed[:6], tzinfo=timezone.utc)
        except (ValueError, TypeError):
            continue
    return None


def entry_guid(entry, feed_id: str = "", feed_url: str = "") -> str:
    """Stable identifier: feed GUID, then link, then title, then a content hash."""
    for key in ("id", "link", "title"):
        value = (entry.get(key) or "").strip()
        if value:
            return value

    seed = "|".join([
        feed_url,
        entry.get("published", "") or entry.get("updated", "") or "",
        entry_content_html(entry),
    ])
    digest = hashlib.sha1(seed.encode("utf-8")).hexdigest()[:16]
    return f"{feed_id}-{digest}"


def entry_title(entry, excerpt: str = "") -> str:
    title = html_to_text(entry.get("title", ""))
    if title:
        return title
    excerpt = " ".join(excerpt.split())
    if excerpt:
        snippet = excerpt[:TITLE_SNIPPET_LENGTH].rstrip()
        if len(excerpt) > TITLE_SNIPPET_LENGTH:
            snippet += "..."
        return f'"{snippet}"'
    return UNTITLED


def entry_image(entry) -> str | None:
    for media in entry.get("media_content", []) + entry.get("media_thumbnail", []):
        url = media.get("url")
        if url and media.get("medium", "image") == "image":
            return url

    for enclosure in entry.get("enclosures", []):
        if enclosure.get("type", "").startswith("image/") and enclosure.get("href"):
            return enclosure["href"]

    match = IMG_SRC_RE.search(entry_content_html(entry))
    if match:
        return match.group(1)
    return None


def to_article(entry, feed: Feed, now: datetime | None = None) -> Article:
    excerpt = entry_excerpt(entry)
    published = entry_published(entry) or now or datetime.now(timezone.utc)
    return Article(
        guid=entry_guid(entry, feed.id, feed.url),
        title=entry_title(entry, excerpt),
        link=(entry.get("link") or "").strip(),
        pub_date=published,
        content=excerpt,
        feed_name=feed.name,
        feed_url=feed.url,
        category=feed.category,
        category_color=feed.color,
        image_url=entry_image(entry),
        view=feed.view,
    )


async def fetch_feed_entries(
    url: str, client: httpx.AsyncClient | None = None, timeout: float = DEFAULT_TIMEOUT
) -> feedparser.FeedParserDict:
    """Download and parse a feed. Raises FeedFetchError on any failure."""
    if client is None:
        async with make_client(timeout) as own_client:
            return await fetch_feed_entries(url, own_client, timeout)

    # httpx's timeout applies per read; bound the whole download as well
    try:
        response = await asyncio.wait_for(client.get(url, timeout=timeout), timeout)
        response.raise_for_status()
    except (httpx.TimeoutException, asyncio.TimeoutError) as e:
        raise FeedFetchError(f"Timeout fetching {url}") from e
    except httpx.HTTPStatusError as e:
        raise FeedFetchError(f"HTTP {e.response.status_code} from {url}") from e
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise FeedFetchError(f"Network error fetching {url}: {e}") from e

    # feedparser is synchronous; keep the event loop free for the other feeds
    feed = await asyncio.to_thread(feedparser.parse, response.content)

    if feed.bozo and not feed.entries:
        raise FeedFetchError(f"Malformed feed {url}: {feed.get('bozo_exception')}")
    return feed


async def fetch_feed_metadata(url: str, timeout: float = DEFAULT_TIMEOUT) -> FeedMetadata:
    """Fetch a feed's title and description. Raises FeedFetchError."""
    feed = await fetch_feed_entries(url, timeout=timeout)
    return FeedMetadata(
        name=(feed.feed.get("title") or "").strip() or url,
        description=feed.feed.get("subtitle") or None,
    )


async def fetch_feed(
    feed: Feed,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    now: datetime | None = None,
) -> list[Article]:
    """Fetch one feed as Articles. Any failure yields an empty list."""
    try:
        parsed = await fetch_feed_entries(feed.url, client, timeout)
    except FeedFetchError as e:
        logger.warning("Skipping feed %s: %s", feed.name, e)
        return []

    articles = [to_article(entry, feed, now) for entry in parsed.entries]
    logger.info("Fetched %d articles from %s", len(articles), feed.name)
    return articles


async def aggregate(
    feeds: list[Feed],
    timeout: float = DEFAULT_TIMEOUT,
    client: httpx.AsyncClient | None = None,
    now: datetime | None = None,
) -> list[Article]:
    """Fetch all feeds concurrently and return their articles newest first."""
    if not feeds:
        return []

    if client is None:
        async with make_client(timeout) as own_client:
            return await aggregate(feeds, timeout, own_client, now)

    results = await asyncio.gather(
        *(fetch_feed(feed, client, timeout, now) for feed in feeds),
        return_exceptions=True,
    )

    articles = []
    for feed, result in zip(feeds, results):
        if isinstance(result, BaseException):
            logger.error("Unexpected error fetching %s: %r", feed.url, result)
            continue
        articles.extend(result)

    # Stable sort: equal timestamps keep feed order, then entry order
    articles.sort(key=lambda a: a.pub_date, reverse=True)
    logger.info("Aggregated %d articles from %d feeds", len(articles), len(feeds))
    return articles


def aggregate_sync(feeds: list[Feed], timeout: float = DEFAULT_TIMEOUT) -> list[Article]:
    return asyncio.run(aggregate(feeds, timeout))

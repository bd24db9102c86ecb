"""Feed configuration actions.

Input is validated and duplicate URLs are rejected before any network call;
problems surface as FeedConfigError with a message fit to show the user.
"""

import asyncio
import logging
import random
import re
import sqlite3
import string
import time
from urllib.parse import urlparse

from .db import Database
from .fetcher import Feed, FeedFetchError, fetch_feed_metadata

logger = logging.getLogger(__name__)

COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
DEFAULT_COLOR = "#6b7280"


class FeedConfigError(ValueError):
    """Invalid feed configuration input."""


def new_feed_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"feed-{int(time.time() * 1000)}-{suffix}"


def validate_url(url: str) -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise FeedConfigError(f"Invalid feed URL: {url or '(empty)'}")
    return url


def validate_category(category: str) -> str:
    category = (category or "").strip()
    if not category:
        raise FeedConfigError("Category is required")
    return category


def validate_color(color: str | None) -> str:
    color = (color or DEFAULT_COLOR).strip()
    if not COLOR_RE.match(color):
        raise FeedConfigError(f"Invalid color {color!r}, expected #rrggbb")
    return color


def add_feed(
    db: Database,
    url: str,
    category: str,
    color: str | None = None,
    view: str | None = None,
    name: str | None = None,
) -> Feed:
    """Subscribe to a feed. The name is taken from the feed unless given."""
    url = validate_url(url)
    category = validate_category(category)
    color = validate_color(color)

    if db.get_feed_by_url(url):
        raise FeedConfigError(f"Feed already exists: {url}")

    if not name:
        try:
            metadata = asyncio.run(fetch_feed_metadata(url))
        except FeedFetchError as e:
            raise FeedConfigError(f"Failed to fetch feed: {e}") from e
        name = metadata.name

    feed = Feed(
        id=new_feed_id(),
        url=url,
        name=name.strip(),
        category=category,
        color=color,
        view=(view or "").strip() or None,
    )
    try:
        db.add_feed(feed)
    except sqlite3.IntegrityError as e:
        raise FeedConfigError(f"Feed already exists: {url}") from e

    logger.info("Added feed %s (%s)", feed.name, feed.url)
    return feed


def update_feed(db: Database, feed_id: str, **updates) -> Feed:
    """Change a feed's url, name, category, color or view."""
    if "url" in updates:
        updates["url"] = validate_url(updates["url"])
        existing = db.get_feed_by_url(updates["url"])
        if existing and existing.id != feed_id:
            raise FeedConfigError(f"Feed already exists: {updates['url']}")
    if "category" in updates:
        updates["category"] = validate_category(updates["category"])
    if "color" in updates:
        updates["color"] = validate_color(updates["color"])
    if "name" in updates:
        updates["name"] = (updates["name"] or "").strip()
        if not updates["name"]:
            raise FeedConfigError("Feed name cannot be empty")
    if "view" in updates:
        updates["view"] = (updates["view"] or "").strip() or None

    try:
        db.update_feed(feed_id, **updates)
    except KeyError:
        raise FeedConfigError(f"Feed not found: {feed_id}") from None

    logger.info("Updated feed %s: %s", feed_id, ", ".join(sorted(updates)))
    return db.get_feed(feed_id)


def rename_feed(db: Database, feed_id: str, name: str) -> Feed:
    return update_feed(db, feed_id, name=name)


def delete_feed(db: Database, feed_id: str):
    if not db.delete_feed(feed_id):
        raise FeedConfigError(f"Feed not found: {feed_id}")
    logger.info("Deleted feed %s", feed_id)


def find_feed(db: Database, ident: str) -> Feed:
    """Look a feed up by id or URL."""
    feed = db.get_feed(ident) or db.get_feed_by_url(ident.strip())
    if feed is None:
        raise FeedConfigError(f"Feed not found: {ident}")
    return feed

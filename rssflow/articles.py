import asyncio
import logging
import sqlite3
from datetime import datetime

from .db import Database
from .fetcher import DEFAULT_TIMEOUT, Article, aggregate
from .filter import filter_by_window
from .interleave import interleave, max_consecutive_for

logger = logging.getLogger(__name__)


async def build_river(
    db: Database,
    time_range: str = "24h",
    max_consecutive: int | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    now: datetime | None = None,
    client=None,
) -> list[Article]:
    """Aggregate every configured feed, keep the time window, balance feeds."""
    feeds = db.get_feeds()
    if not feeds:
        return []

    articles = await aggregate(feeds, timeout=timeout, client=client, now=now)
    articles = filter_by_window(articles, time_range, now=now)

    if max_consecutive is None:
        max_consecutive = max_consecutive_for(time_range)
    return interleave(articles, max_consecutive)


def fetch_river(
    db: Database,
    time_range: str = "24h",
    max_consecutive: int | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[Article]:
    try:
        return asyncio.run(build_river(db, time_range, max_consecutive, timeout))
    except ValueError:
        raise
    except Exception:
        logger.exception("Failed to build river")
        return []


def get_unread(articles: list[Article], read: set[str]) -> list[Article]:
    return [a for a in articles if a.guid not in read]


def mark_read(db: Database, guid: str) -> bool:
    try:
        db.mark_read(guid)
        return True
    except sqlite3.Error:
        logger.exception("Failed to mark %s as read", guid)
        return False


def mark_unread(db: Database, guid: str) -> bool:
    try:
        db.mark_unread(guid)
        return True
    except sqlite3.Error:
        logger.exception("Failed to mark %s as unread", guid)
        return False


def mark_all_read(db: Database, guids: list[str]) -> bool:
    if not guids:
        return True
    try:
        db.mark_many_read(guids)
        return True
    except sqlite3.Error:
        logger.exception("Failed to mark %d articles as read", len(guids))
        return False


def get_read_articles(db: Database) -> set[str]:
    try:
        return db.get_read_articles()
    except sqlite3.Error:
        logger.exception("Failed to load read articles")
        return set()

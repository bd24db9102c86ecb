import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from rssflow.db import Database
from rssflow.fetcher import Feed


def make_feed(feed_id="feed-1", url="https://example.com/feed", name="Example"):
    return Feed(id=feed_id, url=url, name=name, category="Tech", color="#112233")


def _make_db():
    db = Database(":memory:")
    db.init_tables()
    return db


def test_init_tables():
    db = Database(":memory:")
    db.init_tables()
    # Should not raise on second call
    db.init_tables()
    db.close()


def test_add_and_get_feed():
    db = _make_db()
    db.add_feed(make_feed())

    feeds = db.get_feeds()
    assert feeds == [make_feed()]
    assert db.get_feed("feed-1") == make_feed()
    assert db.get_feed_by_url("https://example.com/feed").id == "feed-1"
    assert db.get_feed("nope") is None
    db.close()


def test_duplicate_url_rejected():
    db = _make_db()
    db.add_feed(make_feed())
    with pytest.raises(sqlite3.IntegrityError):
        db.add_feed(make_feed(feed_id="feed-2"))
    assert len(db.get_feeds()) == 1
    db.close()


def test_update_feed():
    db = _make_db()
    db.add_feed(make_feed())

    db.update_feed("feed-1", name="Renamed", view="morning")
    feed = db.get_feed("feed-1")
    assert feed.name == "Renamed"
    assert feed.view == "morning"
    assert feed.category == "Tech"

    with pytest.raises(KeyError):
        db.update_feed("missing", name="x")
    db.close()


def test_delete_feed():
    db = _make_db()
    db.add_feed(make_feed())
    assert db.delete_feed("feed-1")
    assert not db.delete_feed("feed-1")
    assert db.get_feeds() == []
    db.close()


def test_read_state():
    db = _make_db()
    assert db.get_read_articles() == set()

    db.mark_read("a")
    db.mark_read("a")
    db.mark_many_read(["b", "c"])
    assert db.get_read_articles() == {"a", "b", "c"}

    db.mark_unread("b")
    db.mark_unread("not-there")
    assert db.get_read_articles() == {"a", "c"}
    db.close()


def test_cache_ttl():
    db = _make_db()
    now = datetime(2026, 10, 17, tzinfo=timezone.utc)

    db.cache_set("summary:x", "text", ttl_seconds=60, now=now)
    assert db.cache_get("summary:x", now=now + timedelta(seconds=30)) == "text"
    assert db.cache_get("summary:x", now=now + timedelta(seconds=61)) is None
    # Expired entries are removed
    assert db.cache_get("summary:x", now=now) is None

    db.cache_set("forever", "value")
    assert db.cache_get("forever", now=now + timedelta(days=10_000)) == "value"
    db.close()


def test_stats():
    db = _make_db()
    db.add_feed(make_feed())
    db.add_feed(Feed(id="feed-2", url="https://b.example.com/feed", name="B", category="Art", color="#000000"))
    db.mark_many_read(["x", "y"])
    db.cache_set("k", "v")

    stats = db.get_stats()
    assert stats == {"feeds": 2, "categories": 2, "read": 2, "cached": 1}
    db.close()

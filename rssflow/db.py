import sqlite3
from datetime import datetime, timedelta, timezone

from .fetcher import Feed


class Database:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA busy_timeout=5000")

    def init_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS feeds (
                id          TEXT PRIMARY KEY,
                url         TEXT UNIQUE NOT NULL,
                name        TEXT NOT NULL,
                category    TEXT NOT NULL DEFAULT '',
                color       TEXT NOT NULL DEFAULT '',
                view        TEXT,
                created_at  TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS read_articles (
                guid        TEXT PRIMARY KEY,
                read_at     TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS ai_cache (
                key         TEXT PRIMARY KEY,
                value       TEXT NOT NULL,
                expires_at  TEXT
            );
        """)
        self.conn.commit()
        self._migrate()

    def _migrate(self):
        """Run schema migrations for existing DBs."""
        # Migrate: add view column if missing
        feed_cols = [row[1] for row in self.conn.execute("PRAGMA table_info(feeds)")]
        if "view" not in feed_cols:
            self.conn.execute("ALTER TABLE feeds ADD COLUMN view TEXT")
            self.conn.commit()

    # --- Feed methods ---

    @staticmethod
    def _row_to_feed(row) -> Feed:
        return Feed(
            id=row["id"],
            url=row["url"],
            name=row["name"],
            category=row["category"],
            color=row["color"],
            view=row["view"],
        )

    def get_feeds(self) -> list[Feed]:
        rows = self.conn.execute("SELECT * FROM feeds ORDER BY created_at, id").fetchall()
        return [self._row_to_feed(r) for r in rows]

    def get_feed(self, feed_id: str) -> Feed | None:
        row = self.conn.execute("SELECT * FROM feeds WHERE id = ?", (feed_id,)).fetchone()
        return self._row_to_feed(row) if row else None

    def get_feed_by_url(self, url: str) -> Feed | None:
        row = self.conn.execute("SELECT * FROM feeds WHERE url = ?", (url,)).fetchone()
        return self._row_to_feed(row) if row else None

    def add_feed(self, feed: Feed):
        """Insert a feed. Raises sqlite3.IntegrityError on a duplicate URL."""
        now = datetime.now(timezone.utc).isoformat()
        self.conn.execute(
            """INSERT INTO feeds (id, url, name, category, color, view, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (feed.id, feed.url, feed.name, feed.category, feed.color, feed.view, now),
        )
        self.conn.commit()

    def update_feed(self, feed_id: str, **updates):
        """Update feed columns. Raises KeyError if the feed does not exist."""
        allowed = ("url", "name", "category", "color", "view")
        sets, vals = [], []
        for key in allowed:
            if key in updates:
                sets.append(f"{key} = ?")
                vals.append(updates[key])
        if self.get_feed(feed_id) is None:
            raise KeyError(feed_id)
        if not sets:
            return
        vals.append(feed_id)
        self.conn.execute(f"UPDATE feeds SET {', '.join(sets)} WHERE id = ?", vals)
        self.conn.commit()

    def delete_feed(self, feed_id: str) -> bool:
        cursor = self.conn.execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    # --- Read-state methods ---

    def mark_read(self, guid: str):
        self.mark_many_read([guid])

    def mark_many_read(self, guids: list[str]):
        now = datetime.now(timezone.utc).isoformat()
        self.conn.executemany(
            "INSERT OR IGNORE INTO read_articles (guid, read_at) VALUES (?, ?)",
            [(g, now) for g in guids],
        )
        self.conn.commit()

    def mark_unread(self, guid: str):
        self.conn.execute("DELETE FROM read_articles WHERE guid = ?", (guid,))
        self.conn.commit()

    def get_read_articles(self) -> set[str]:
        rows = self.conn.execute("SELECT guid FROM read_articles").fetchall()
        return {r["guid"] for r in rows}

    # --- AI cache methods ---

    def cache_get(self, key: str, now: datetime | None = None) -> str | None:
        now = now or datetime.now(timezone.utc)
        row = self.conn.execute(
            "SELECT value, expires_at FROM ai_cache WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        if row["expires_at"] and datetime.fromisoformat(row["expires_at"]) <= now:
            self.conn.execute("DELETE FROM ai_cache WHERE key = ?", (key,))
            self.conn.commit()
            return None
        return row["value"]

    def cache_set(self, key: str, value: str, ttl_seconds: int | None = None,
                  now: datetime | None = None):
        now = now or datetime.now(timezone.utc)
        expires = (now + timedelta(seconds=ttl_seconds)).isoformat() if ttl_seconds else None
        self.conn.execute(
            "INSERT OR REPLACE INTO ai_cache (key, value, expires_at) VALUES (?, ?, ?)",
            (key, value, expires),
        )
        self.conn.commit()

    def get_stats(self) -> dict:
        feeds = self.conn.execute("SELECT COUNT(*) FROM feeds").fetchone()[0]
        categories = self.conn.execute(
            "SELECT COUNT(DISTINCT category) FROM feeds"
        ).fetchone()[0]
        read = self.conn.execute("SELECT COUNT(*) FROM read_articles").fetchone()[0]
        cached = self.conn.execute("SELECT COUNT(*) FROM ai_cache").fetchone()[0]
        return {
            "feeds": feeds,
            "categories": categories,
            "read": read,
            "cached": cached,
        }

    def close(self):
        self.conn.close()

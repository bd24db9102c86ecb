import json
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from rssflow.db import Database
from rssflow.fetcher import Article
from rssflow.summarizer import (
    AIUnavailableError,
    _parse_quotes,
    extract_quotes,
    generate_digest,
    make_client,
    prepare_input,
    summarize_article,
)


class FakeClient:
    def __init__(self, reply: str):
        self.reply = reply
        self.calls = []
        self.messages = SimpleNamespace(create=self._create)

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(content=[SimpleNamespace(text=self.reply)])


def _make_db():
    db = Database(":memory:")
    db.init_tables()
    return db


def test_prepare_input_strips_and_truncates():
    assert prepare_input("<p>Hello <b>world</b></p>") == "Hello world"
    assert prepare_input("x" * 20, max_chars=10) == "x" * 10 + "..."


def test_summarize_uses_cache():
    db = _make_db()
    client = FakeClient("  A short summary.  ")

    first = summarize_article(client, db, "guid-1", "<p>Article body</p>")
    second = summarize_article(client, db, "guid-1", "<p>Article body</p>")

    assert first == second == "A short summary."
    assert len(client.calls) == 1
    assert "Article body" in client.calls[0]["messages"][0]["content"]
    assert "<p>" not in client.calls[0]["messages"][0]["content"]
    db.close()


def test_extract_quotes_json():
    db = _make_db()
    reply = "Here you go:\n" + json.dumps(["First quote", "Second quote", "Third", "Fourth"])
    client = FakeClient(reply)

    quotes = extract_quotes(client, db, "guid-1", "body")

    assert quotes == ["First quote", "Second quote", "Third"]
    assert extract_quotes(client, db, "guid-1", "body") == quotes
    assert len(client.calls) == 1
    db.close()


def test_parse_quotes_fallback_lines():
    text = '- "One passage"\n\n> Another passage\n'
    assert _parse_quotes(text, 3, 500) == ["One passage", "Another passage"]


def test_parse_quotes_limits_length():
    assert _parse_quotes(json.dumps(["y" * 20]), 3, 5) == ["yyyyy"]


def test_generate_digest():
    client = FakeClient("Mostly about databases.")
    articles = [
        Article(
            guid="1", title="Postgres 19 released", link="", pub_date=datetime.now(timezone.utc),
            content="", feed_name="DB Weekly", feed_url="", category="", category_color="",
        ),
        Article(
            guid="2", title="  ", link="", pub_date=datetime.now(timezone.utc),
            content="", feed_name="Misc", feed_url="", category="", category_color="",
        ),
    ]

    assert generate_digest(client, articles) == "Mostly about databases."
    prompt = client.calls[0]["messages"][0]["content"]
    assert "- Postgres 19 released (DB Weekly)" in prompt
    assert "- Untitled (Misc)" in prompt


def test_generate_digest_empty():
    client = FakeClient("unused")
    assert generate_digest(client, []) == ""
    assert client.calls == []


def test_make_client_requires_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(AIUnavailableError):
        make_client()


def test_input_limit_is_configurable():
    db = _make_db()
    client = FakeClient("Summary.")

    summarize_article(client, db, "guid-9", "y" * 100, max_input_chars=10)

    prompt = client.calls[0]["messages"][0]["content"]
    assert "y" * 10 + "..." in prompt
    assert "y" * 11 not in prompt
    db.close()

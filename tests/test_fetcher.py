import asyncio
import time
from datetime import datetime, timezone

import httpx

from rssflow.fetcher import Feed, aggregate, fetch_feed, fetch_feed_metadata

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def rss(items: str, title: str = "Example Feed") -> bytes:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>{title}</title>
    <link>https://example.com/</link>
    <description>An example feed</description>
    {items}
  </channel>
</rss>""".encode("utf-8")


def item(guid="", link="", title="", description="", pub_date="Sat, 17 Oct 2026 10:00:00 GMT", extra=""):
    parts = []
    if guid:
        parts.append(f'<guid isPermaLink="false">{guid}</guid>')
    if link:
        parts.append(f"<link>{link}</link>")
    if title:
        parts.append(f"<title>{title}</title>")
    if description:
        parts.append(f"<description>{description}</description>")
    if pub_date:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    parts.append(extra)
    return f"<item>{''.join(parts)}</item>"


def make_feed(url="https://a.example.com/feed", name="Feed A", feed_id="feed-a"):
    return Feed(id=feed_id, url=url, name=name, category="Tech", color="#ff0000", view="main")


def run_with(handler, coro_factory):
    async def runner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await coro_factory(client)
    return asyncio.run(runner())


def serve(routes: dict):
    def handler(request: httpx.Request) -> httpx.Response:
        body = routes.get(str(request.url))
        if body is None:
            return httpx.Response(404)
        if isinstance(body, Exception):
            raise body
        return httpx.Response(200, content=body, headers={"content-type": "application/rss+xml"})
    return handler


def test_fetch_feed_normalizes_items():
    feed = make_feed()
    xml = rss(item(
        guid="guid-1",
        link="https://a.example.com/1",
        title="Hello &amp; welcome",
        description="&lt;p&gt;First &lt;b&gt;post&lt;/b&gt;&lt;/p&gt;",
        extra='<enclosure url="https://a.example.com/1.jpg" type="image/jpeg" length="1" />',
    ))
    articles = run_with(serve({feed.url: xml}), lambda c: fetch_feed(feed, c, now=NOW))

    assert len(articles) == 1
    a = articles[0]
    assert a.guid == "guid-1"
    assert a.title == "Hello & welcome"
    assert a.link == "https://a.example.com/1"
    assert a.content == "First post"
    assert a.pub_date == datetime(2026, 10, 17, 10, 0, tzinfo=timezone.utc)
    assert a.feed_name == "Feed A"
    assert a.feed_url == feed.url
    assert a.category == "Tech"
    assert a.category_color == "#ff0000"
    assert a.view == "main"
    assert a.image_url == "https://a.example.com/1.jpg"


def test_guid_precedence():
    feed = make_feed()
    xml = rss(
        item(guid="g1", link="https://a.example.com/1", title="One")
        + item(link="https://a.example.com/2", title="Two")
        + item(title="Three")
    )
    articles = run_with(serve({feed.url: xml}), lambda c: fetch_feed(feed, c, now=NOW))
    assert [a.guid for a in articles] == ["g1", "https://a.example.com/2", "Three"]


def test_synthesized_guid_is_stable():
    feed = make_feed()
    xml = rss(item(description="Just some words"))

    first = run_with(serve({feed.url: xml}), lambda c: fetch_feed(feed, c, now=NOW))
    second = run_with(serve({feed.url: xml}), lambda c: fetch_feed(feed, c, now=NOW))

    assert first[0].guid == second[0].guid
    assert first[0].guid.startswith("feed-a-")


def test_title_falls_back_to_quoted_content():
    feed = make_feed()
    long_text = "word " * 30
    xml = rss(
        item(guid="1", description="Short note")
        + item(guid="2", description=long_text)
        + item(guid="3")
    )
    articles = run_with(serve({feed.url: xml}), lambda c: fetch_feed(feed, c, now=NOW))

    assert articles[0].title == '"Short note"'
    assert articles[1].title.startswith('"word word')
    assert articles[1].title.endswith('..."')
    assert articles[2].title == "Untitled"


def test_missing_date_uses_now():
    feed = make_feed()
    xml = rss(item(guid="1", title="No date", pub_date=""))
    articles = run_with(serve({feed.url: xml}), lambda c: fetch_feed(feed, c, now=NOW))
    assert articles[0].pub_date == NOW


def test_fetch_feed_http_error_returns_empty():
    feed = make_feed()
    articles = run_with(serve({}), lambda c: fetch_feed(feed, c))
    assert articles == []


def test_fetch_feed_timeout_returns_empty():
    feed = make_feed()
    handler = serve({feed.url: httpx.ConnectTimeout("timed out")})
    articles = run_with(handler, lambda c: fetch_feed(feed, c))
    assert articles == []


def test_fetch_feed_malformed_returns_empty():
    feed = make_feed()
    articles = run_with(serve({feed.url: b"this is not xml at all <<<"}), lambda c: fetch_feed(feed, c))
    assert articles == []


def test_aggregate_merges_and_sorts_newest_first():
    a = make_feed()
    b = make_feed(url="https://b.example.com/feed", name="Feed B", feed_id="feed-b")
    routes = {
        a.url: rss(
            item(guid="a1", title="A1", pub_date="Sat, 17 Oct 2026 11:00:00 GMT")
            + item(guid="a2", title="A2", pub_date="Sat, 17 Oct 2026 08:00:00 GMT")
        ),
        b.url: rss(item(guid="b1", title="B1", pub_date="Sat, 17 Oct 2026 09:00:00 GMT")),
    }
    articles = run_with(serve(routes), lambda c: aggregate([a, b], client=c, now=NOW))

    assert [x.guid for x in articles] == ["a1", "b1", "a2"]
    assert articles[1].feed_name == "Feed B"


def test_aggregate_isolates_failing_feed():
    good = make_feed()
    down = make_feed(url="https://down.example.com/feed", name="Down", feed_id="feed-down")
    slow = make_feed(url="https://slow.example.com/feed", name="Slow", feed_id="feed-slow")
    routes = {
        good.url: rss(item(guid="ok", title="OK")),
        slow.url: httpx.ReadTimeout("slow"),
    }
    articles = run_with(serve(routes), lambda c: aggregate([down, good, slow], client=c, now=NOW))
    assert [x.guid for x in articles] == ["ok"]


def test_aggregate_no_feeds():
    assert asyncio.run(aggregate([])) == []


def test_fetch_feed_metadata(monkeypatch):
    url = "https://a.example.com/feed"
    transport = httpx.MockTransport(serve({url: rss("", title="Example Blog")}))
    real_client = httpx.AsyncClient

    def patched_client(*args, **kwargs):
        kwargs["transport"] = transport
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", patched_client)
    metadata = asyncio.run(fetch_feed_metadata(url))
    assert metadata.name == "Example Blog"
    assert metadata.description == "An example feed"


def test_excerpt_keeps_paragraph_lines():
    feed = make_feed()
    xml = rss(item(guid="1", title="Two paragraphs", description="&lt;p&gt;One&lt;/p&gt;&lt;p&gt;Two&lt;/p&gt;"))
    articles = run_with(serve({feed.url: xml}), lambda c: fetch_feed(feed, c, now=NOW))
    assert articles[0].content == "One\nTwo"


def test_fetch_feed_malformed_url_returns_empty():
    feed = make_feed(url="http://[::1/broken")
    articles = run_with(serve({}), lambda c: fetch_feed(feed, c))
    assert articles == []


def delayed(routes: dict, delays: dict):
    async def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        await asyncio.sleep(delays.get(url, 0))
        return httpx.Response(200, content=routes[url], headers={"content-type": "application/rss+xml"})
    return handler


def test_fetch_feed_stalled_server_is_cut_off():
    feed = make_feed()
    handler = delayed({feed.url: rss(item(guid="late", title="Late"))}, {feed.url: 30})

    start = time.perf_counter()
    articles = run_with(handler, lambda c: fetch_feed(feed, c, timeout=0.2))

    assert articles == []
    assert time.perf_counter() - start < 5


def test_aggregate_fetches_feeds_concurrently():
    feeds = [
        make_feed(url=f"https://f{i}.example.com/feed", name=f"Feed {i}", feed_id=f"feed-{i}")
        for i in range(5)
    ]
    routes = {f.url: rss(item(guid=f.id, title=f.name)) for f in feeds}
    handler = delayed(routes, {f.url: 0.5 for f in feeds})

    start = time.perf_counter()
    articles = run_with(handler, lambda c: aggregate(feeds, client=c, now=NOW))
    elapsed = time.perf_counter() - start

    assert sorted(a.guid for a in articles) == sorted(f.id for f in feeds)
    # Sequential fetching would take 2.5s
    assert elapsed < 1.5


def test_aggregate_slow_feed_does_not_hold_back_others():
    fast = [make_feed(url=f"https://f{i}.example.com/feed", feed_id=f"feed-{i}") for i in range(3)]
    slow = make_feed(url="https://slow.example.com/feed", name="Slow", feed_id="feed-slow")
    routes = {f.url: rss(item(guid=f.id, title=f.id)) for f in fast + [slow]}
    handler = delayed(routes, {slow.url: 30})

    start = time.perf_counter()
    articles = run_with(handler, lambda c: aggregate(fast + [slow], timeout=0.5, client=c, now=NOW))

    assert time.perf_counter() - start < 5
    assert sorted(a.guid for a in articles) == ["feed-0", "feed-1", "feed-2"]

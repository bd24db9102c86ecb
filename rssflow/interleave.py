"""Balance the river so no single feed occupies a long run of slots.

The input is already sorted newest first. Walking it in order, whenever the
next article would extend a run of ``max_consecutive`` articles from one feed,
the first later article from a different feed is pulled forward in its place
and the displaced article is retried on the next step. When every remaining
article belongs to the same feed the run is allowed to continue.
"""

from collections.abc import Callable

from .fetcher import Article

FEED_MAX_CONSECUTIVE = 2

# Max consecutive articles per feed for each river time range
FEED_VELOCITY_THRESHOLDS = {"24h": 1, "3d": 2, "7d": 3}


def feed_key(article: Article) -> str:
    return article.feed_url or article.feed_name


def max_consecutive_for(time_range: str) -> int:
    return FEED_VELOCITY_THRESHOLDS.get(time_range, FEED_MAX_CONSECUTIVE)


def interleave(
    articles: list[Article],
    max_consecutive: int = FEED_MAX_CONSECUTIVE,
    key: Callable[[Article], str] = feed_key,
) -> list[Article]:
    """Reorder articles so at most max_consecutive in a row share a feed.

    Returns a new list holding exactly the input articles. An article is only
    ever moved ahead of newer ones to break a run; starvation (nothing but
    one feed left) is accepted as is.
    """
    if max_consecutive < 1:
        raise ValueError("max_consecutive must be at least 1")
    if len(articles) <= max_consecutive:
        return list(articles)

    result: list[Article] = []
    remaining = list(articles)

    while remaining:
        candidate = remaining[0]
        recent = result[-max_consecutive:]
        run_feed = key(recent[0]) if len(recent) == max_consecutive else None

        blocked = (
            run_feed is not None
            and key(candidate) == run_feed
            and all(key(a) == run_feed for a in recent)
        )
        if not blocked:
            result.append(remaining.pop(0))
            continue

        swap = next(
            (i for i in range(1, len(remaining)) if key(remaining[i]) != run_feed),
            None,
        )
        if swap is None:
            result.append(remaining.pop(0))
        else:
            result.append(remaining.pop(swap))

    return result

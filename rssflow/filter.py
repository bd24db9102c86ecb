from datetime import datetime, timedelta, timezone

from .fetcher import Article

TIME_RANGES = {
    "24h": timedelta(hours=24),
    "3d": timedelta(days=3),
    "7d": timedelta(days=7),
}


def resolve_horizon(horizon: str | timedelta) -> timedelta:
    """Turn a time range label ("24h", "3d", "7d") into a timedelta."""
    if isinstance(horizon, timedelta):
        return horizon
    try:
        return TIME_RANGES[horizon]
    except KeyError:
        raise ValueError(
            f"Unknown time range {horizon!r}, expected one of {', '.join(TIME_RANGES)}"
        ) from None


def filter_by_window(
    articles: list[Article], horizon: str | timedelta, now: datetime | None = None
) -> list[Article]:
    """Keep articles published at or after now - horizon."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - resolve_horizon(horizon)
    return [a for a in articles if a.pub_date >= cutoff]

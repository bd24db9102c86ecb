from datetime import datetime, timezone
from email.utils import format_datetime

from .fetcher import Feed

OPML_TITLE = "RSS Flow Subscriptions"
UNCATEGORIZED = "Uncategorized"


def escape_xml(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def group_by_category(feeds: list[Feed]) -> list[tuple[str, list[Feed]]]:
    """Group feeds by exact category text.

    Categories are ordered case-insensitively and feeds by name; labels that
    differ only in case stay separate groups.
    """
    groups: dict[str, list[Feed]] = {}
    for feed in feeds:
        groups.setdefault(feed.category or UNCATEGORIZED, []).append(feed)

    ordered = sorted(groups, key=lambda c: (c.lower(), c))
    return [
        (category, sorted(groups[category], key=lambda f: f.name.lower()))
        for category in ordered
    ]


def export_opml(feeds: list[Feed], now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)

    outlines = []
    for category, category_feeds in group_by_category(feeds):
        feed_outlines = "\n".join(
            f'      <outline type="rss" text="{escape_xml(f.name)}" '
            f'title="{escape_xml(f.name)}" xmlUrl="{escape_xml(f.url)}" />'
            for f in category_feeds
        )
        outlines.append(
            f'    <outline text="{escape_xml(category)}">\n{feed_outlines}\n    </outline>'
        )

    body = "\n".join(outlines)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<opml version="2.0">\n'
        "  <head>\n"
        f"    <title>{OPML_TITLE}</title>\n"
        f"    <dateCreated>{format_datetime(now.astimezone(timezone.utc), usegmt=True)}</dateCreated>\n"
        "  </head>\n"
        "  <body>\n"
        f"{body}\n"
        "  </body>\n"
        "</opml>\n"
    )

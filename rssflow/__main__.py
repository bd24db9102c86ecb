import argparse
import asyncio
import logging
import logging.handlers
import sys
from pathlib import Path

from .articles import (
    fetch_river,
    get_read_articles,
    get_unread,
    mark_all_read,
    mark_unread,
)
from .config import get_setting, load_config, merge_defaults
from .content import ContentThresholds, resolve_content
from .db import Database
from .feeds import add_feed, delete_feed, find_feed, rename_feed, update_feed
from .filter import TIME_RANGES
from .opml import export_opml
from .summarizer import AIUnavailableError, extract_quotes, generate_digest, make_client, summarize_article
from .utils import format_relative_time, truncate_content

logger = logging.getLogger("rssflow")

DEFAULT_CONFIG = "config.yaml"


def setup_logging(config: dict):
    """Configure logging with console and optional file output."""
    log_config = config.get("logging", {})
    level_name = log_config.get("level", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.setLevel(level)

    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    # File handler (with rotation)
    log_file = log_config.get("file")
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        max_bytes = log_config.get("max_bytes", 5 * 1024 * 1024)  # 5MB
        backup_count = log_config.get("backup_count", 3)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
        )
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)


def _river(db: Database, config: dict, time_range: str | None, max_consecutive: int | None = None):
    time_range = time_range or get_setting(config, "river.time_range")
    if max_consecutive is None:
        max_consecutive = get_setting(config, "river.max_consecutive")
    return fetch_river(
        db,
        time_range=time_range,
        max_consecutive=max_consecutive,
        timeout=get_setting(config, "fetcher.timeout"),
    )


def cmd_river(db: Database, config: dict, args):
    articles = _river(db, config, args.range, args.max_consecutive)
    read = get_read_articles(db)
    if args.unread:
        articles = get_unread(articles, read)

    if not articles:
        print("No articles.")
        return

    for a in articles:
        marker = " " if a.guid in read else "*"
        print(f"{marker} [{a.category}] {a.title}")
        print(f"    {a.feed_name} · {format_relative_time(a.pub_date)} · {a.link}")
        if args.lines:
            excerpt = truncate_content(a.content, args.lines)
            if excerpt:
                print(f"    {excerpt}")
        print(f"    guid: {a.guid}")
    print(f"\n{len(articles)} articles ({sum(1 for a in articles if a.guid not in read)} unread)")


def cmd_read(db: Database, args):
    if mark_all_read(db, args.guids):
        print(f"Marked {len(args.guids)} article(s) as read")
    else:
        print("Failed to mark articles as read")


def cmd_unread(db: Database, args):
    if mark_unread(db, args.guid):
        print(f"Marked as unread: {args.guid}")
    else:
        print("Failed to mark article as unread")


def cmd_read_all(db: Database, config: dict, args):
    articles = _river(db, config, args.range)
    read = get_read_articles(db)
    guids = [a.guid for a in get_unread(articles, read)]
    if mark_all_read(db, guids):
        print(f"Marked {len(guids)} article(s) as read")
    else:
        print("Failed to mark articles as read")


def cmd_feeds(db: Database, args):
    sub = args.feeds_command

    if sub == "list" or sub is None:
        feeds = db.get_feeds()
        if not feeds:
            print("No feeds configured.")
            return
        print(f"Feeds ({len(feeds)}):")
        for f in feeds:
            view = f" view={f.view}" if f.view else ""
            print(f"  {f.id}  [{f.category} {f.color}]{view}  {f.name}  <{f.url}>")

    elif sub == "add":
        feed = add_feed(db, args.url, args.category, args.color, view=args.view, name=args.name)
        print(f"Added feed: {feed.name} ({feed.id})")

    elif sub == "update":
        feed = find_feed(db, args.feed)
        updates = {
            key: getattr(args, key)
            for key in ("url", "category", "color", "view")
            if getattr(args, key) is not None
        }
        if not updates:
            print("Nothing to update.")
            return
        feed = update_feed(db, feed.id, **updates)
        print(f"Updated feed: {feed.name} ({feed.id})")

    elif sub == "rename":
        feed = find_feed(db, args.feed)
        feed = rename_feed(db, feed.id, args.name)
        print(f"Renamed feed {feed.id} to {feed.name}")

    elif sub == "remove":
        feed = find_feed(db, args.feed)
        delete_feed(db, feed.id)
        print(f"Removed feed: {feed.name}")


def _resolve(db: Database, config: dict, feed_ident: str, guid: str) -> str:
    feed = find_feed(db, feed_ident)
    thresholds = ContentThresholds.from_config(config)
    return asyncio.run(resolve_content(feed.url, guid, feed.id, thresholds))


def cmd_content(db: Database, config: dict, args):
    content = _resolve(db, config, args.feed, args.guid)
    print(content or "No content available.")


def cmd_summarize(db: Database, config: dict, args):
    content = _resolve(db, config, args.feed, args.guid)
    if not content:
        print("No content available.")
        return
    summary = summarize_article(
        make_client(), db, args.guid, content,
        model=get_setting(config, "ai.model"),
        ttl_seconds=get_setting(config, "ai.cache_ttl_seconds"),
        max_input_chars=get_setting(config, "ai.max_input_chars"),
    )
    print(summary)


def cmd_quotes(db: Database, config: dict, args):
    content = _resolve(db, config, args.feed, args.guid)
    if not content:
        print("No content available.")
        return
    quotes = extract_quotes(
        make_client(), db, args.guid, content,
        model=get_setting(config, "ai.model"),
        max_quotes=get_setting(config, "ai.max_quotes"),
        max_length=get_setting(config, "ai.max_quote_length"),
        ttl_seconds=get_setting(config, "ai.cache_ttl_seconds"),
        max_input_chars=get_setting(config, "ai.max_input_chars"),
    )
    for quote in quotes:
        print(f"> {quote}\n")


def cmd_digest(db: Database, config: dict, args):
    articles = get_unread(_river(db, config, args.range), get_read_articles(db))
    if not articles:
        print("No unread articles.")
        return
    print(generate_digest(
        make_client(), articles,
        model=get_setting(config, "ai.model"),
        max_input_chars=get_setting(config, "ai.max_input_chars"),
    ))


def cmd_export_opml(db: Database, args):
    opml = export_opml(db.get_feeds())
    if args.output:
        Path(args.output).write_text(opml, encoding="utf-8")
        print(f"Exported to {args.output}")
    else:
        print(opml, end="")


def cmd_status(db: Database):
    stats = db.get_stats()
    print(f"Feeds:        {stats['feeds']}")
    print(f"Categories:   {stats['categories']}")
    print(f"Read:         {stats['read']}")
    print(f"AI cache:     {stats['cached']}")


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rssflow",
        description="Personal RSS river reader",
    )
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG, help="Path to config.yaml")
    subparsers = parser.add_subparsers(dest="command")
    ranges = list(TIME_RANGES)

    river_parser = subparsers.add_parser("river", help="Show the merged river of articles")
    river_parser.add_argument("-r", "--range", choices=ranges, help="Time window")
    river_parser.add_argument("-m", "--max-consecutive", type=positive_int,
                              help="Max articles in a row per feed")
    river_parser.add_argument("-u", "--unread", action="store_true", help="Only unread articles")
    river_parser.add_argument("-l", "--lines", type=int, choices=[0, 1, 2, 3], default=1,
                              help="Excerpt lines per article")

    read_parser = subparsers.add_parser("read", help="Mark articles as read")
    read_parser.add_argument("guids", nargs="+", help="Article guids")
    unread_parser = subparsers.add_parser("unread", help="Mark an article as unread")
    unread_parser.add_argument("guid", help="Article guid")
    read_all_parser = subparsers.add_parser("read-all", help="Mark every article in the river as read")
    read_all_parser.add_argument("-r", "--range", choices=ranges, help="Time window")

    # Feed management
    feeds_parser = subparsers.add_parser("feeds", help="Manage feeds")
    feeds_sub = feeds_parser.add_subparsers(dest="feeds_command")
    feeds_sub.add_parser("list", help="List all feeds")
    add_parser = feeds_sub.add_parser("add", help="Add a feed")
    add_parser.add_argument("url", help="Feed URL")
    add_parser.add_argument("category", help="Category label")
    add_parser.add_argument("--color", help="Category color (#rrggbb)")
    add_parser.add_argument("--view", help="View group")
    add_parser.add_argument("--name", help="Display name (default: feed title)")
    update_parser = feeds_sub.add_parser("update", help="Update a feed")
    update_parser.add_argument("feed", help="Feed id or URL")
    update_parser.add_argument("--url", help="New feed URL")
    update_parser.add_argument("--category", help="New category")
    update_parser.add_argument("--color", help="New color (#rrggbb)")
    update_parser.add_argument("--view", help="New view group (empty to clear)")
    rename_parser = feeds_sub.add_parser("rename", help="Rename a feed")
    rename_parser.add_argument("feed", help="Feed id or URL")
    rename_parser.add_argument("name", help="New display name")
    remove_parser = feeds_sub.add_parser("remove", help="Remove a feed")
    remove_parser.add_argument("feed", help="Feed id or URL")

    for name, help_text in (
        ("content", "Show an article's full content"),
        ("summarize", "AI summary of an article"),
        ("quotes", "AI-picked quotes from an article"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("feed", help="Feed id or URL")
        p.add_argument("guid", help="Article guid")

    digest_parser = subparsers.add_parser("digest", help="AI digest of unread articles")
    digest_parser.add_argument("-r", "--range", choices=ranges, help="Time window")

    opml_parser = subparsers.add_parser("export-opml", help="Export feeds as OPML")
    opml_parser.add_argument("-o", "--output", help="Output file (default: stdout)")

    subparsers.add_parser("status", help="Show database statistics")
    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config_found = True
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        if args.config != DEFAULT_CONFIG:
            raise
        config, config_found = {}, False
    config = merge_defaults(config)
    setup_logging(config)
    if not config_found:
        logger.debug("No %s found, using defaults", DEFAULT_CONFIG)
    db = Database(get_setting(config, "db_path"))
    db.init_tables()

    commands = {
        "river": lambda: cmd_river(db, config, args),
        "read": lambda: cmd_read(db, args),
        "unread": lambda: cmd_unread(db, args),
        "read-all": lambda: cmd_read_all(db, config, args),
        "feeds": lambda: cmd_feeds(db, args),
        "content": lambda: cmd_content(db, config, args),
        "summarize": lambda: cmd_summarize(db, config, args),
        "quotes": lambda: cmd_quotes(db, config, args),
        "digest": lambda: cmd_digest(db, config, args),
        "export-opml": lambda: cmd_export_opml(db, args),
        "status": lambda: cmd_status(db),
    }

    try:
        commands[args.command]()
    except (ValueError, AIUnavailableError) as e:  # FeedConfigError is a ValueError
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()

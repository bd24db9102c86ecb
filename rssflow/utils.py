import html
import re
from datetime import datetime, timezone

TAG_RE = re.compile(r"<[^>]+>")
WHITESPACE_RE = re.compile(r"\s+")
LINE_BREAK_RE = re.compile(
    r"<(?:br|/p|/div|/li|/h[1-6]|/blockquote|/tr)\b[^>]*>", re.IGNORECASE
)

# Character caps for the 1/2/3 line excerpt modes
CONTENT_TRUNCATE_CHARS = {1: 200, 2: 400, 3: 600}


def html_to_text(content: str) -> str:
    """Strip tags and entities, collapsing whitespace."""
    if not content:
        return ""
    text = TAG_RE.sub(" ", content)
    text = html.unescape(text)
    return WHITESPACE_RE.sub(" ", text).strip()


def html_to_lines(content: str) -> str:
    """Like html_to_text, but keeps one line per paragraph or line break."""
    if not content:
        return ""
    text = LINE_BREAK_RE.sub("\n", content)
    text = html.unescape(TAG_RE.sub(" ", text))
    lines = (WHITESPACE_RE.sub(" ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def truncate_content(content: str, lines: int) -> str:
    """Reduce content to its first `lines` non-blank lines, capped in length."""
    if not content:
        return ""

    text_only = TAG_RE.sub("", content)
    content_lines = [line for line in text_only.split("\n") if line.strip()]
    truncated = " ".join(content_lines[:lines])

    max_length = CONTENT_TRUNCATE_CHARS.get(lines, CONTENT_TRUNCATE_CHARS[3])
    if len(truncated) > max_length:
        return truncated[:max_length] + "..."
    return truncated


def format_relative_time(date: datetime, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    diff_min = int((now - date).total_seconds() // 60)
    diff_hour = diff_min // 60
    diff_day = diff_hour // 24

    if diff_min < 1:
        return "just now"
    if diff_min < 60:
        return f"{diff_min}m ago"
    if diff_hour < 24:
        return f"{diff_hour}h ago"
    if diff_day < 7:
        return f"{diff_day}d ago"
    return date.strftime("%Y-%m-%d")

import re
from urllib.parse import urlparse

from bleach.html5lib_shim import Filter
from bleach.sanitizer import Cleaner

# Covers what readability and typical feeds produce; everything else is stripped
ALLOWED_TAGS = frozenset([
    # Block
    "p", "div", "section", "article", "main", "header", "footer",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "ul", "ol", "li", "dl", "dt", "dd",
    "blockquote", "pre", "code", "hr", "br",
    "figure", "figcaption",
    "table", "thead", "tbody", "tfoot", "tr", "th", "td", "caption",
    # Inline
    "a", "strong", "b", "em", "i", "u", "s", "strike", "del", "ins",
    "abbr", "acronym", "cite", "q", "time", "mark", "small", "sub", "sup",
    "span", "img",
])

ALLOWED_ATTRIBUTES = {
    "a": ["href", "title", "rel", "target"],
    "img": ["src", "alt", "title", "width", "height", "loading"],
    "td": ["colspan", "rowspan"],
    "th": ["colspan", "rowspan", "scope"],
    "abbr": ["title"],
    "acronym": ["title"],
    "time": ["datetime"],
    "*": ["class"],
}

ALLOWED_PROTOCOLS = frozenset(["http", "https", "mailto"])
IMAGE_PROTOCOLS = frozenset(["", "http", "https"])

# bleach keeps the text of stripped elements; drop script/style bodies first
SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)


def _allow_attribute(tag: str, name: str, value: str) -> bool:
    if name in ALLOWED_ATTRIBUTES["*"]:
        return True
    if name not in ALLOWED_ATTRIBUTES.get(tag, ()):
        return False
    if tag == "img" and name == "src":
        return urlparse(value.strip()).scheme.lower() in IMAGE_PROTOCOLS
    return True


class LinkHardeningFilter(Filter):
    """Open every existing link in a new context without leaking opener or
    referrer. Unlike bleach's LinkifyFilter, no new links are created."""

    def __iter__(self):
        for token in super().__iter__():
            if token["type"] == "StartTag" and token["name"] == "a":
                attrs = dict(token["data"])
                attrs[(None, "rel")] = "noopener noreferrer"
                attrs[(None, "target")] = "_blank"
                token["data"] = attrs
            yield token


_cleaner = Cleaner(
    tags=ALLOWED_TAGS,
    attributes=_allow_attribute,
    protocols=ALLOWED_PROTOCOLS,
    strip=True,
    strip_comments=True,
    filters=[LinkHardeningFilter],
)


def sanitize_html(dirty: str) -> str:
    """Sanitize untrusted feed or page HTML before it is rendered."""
    if not dirty:
        return ""
    return _cleaner.clean(SCRIPT_STYLE_RE.sub("", dirty))

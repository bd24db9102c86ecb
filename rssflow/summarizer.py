import json
import logging
import os

from anthropic import Anthropic

from .db import Database
from .fetcher import Article
from .utils import html_to_text

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-3-5-haiku-20241022"
MAX_INPUT_CHARS = 15000  # roughly 3000 words
CACHE_TTL_SECONDS = 60 * 60 * 24 * 90
MAX_QUOTES = 3
MAX_QUOTE_LENGTH = 500

SUMMARY_PROMPT = """\
Summarize the following article in 2-3 concise sentences. \
Focus on the main points and key takeaways:

{content}"""

QUOTES_PROMPT = """\
Pick up to {max_quotes} short passages from the article below that best capture \
its argument. Copy each passage verbatim, at most {max_length} characters each.

Answer with a JSON array of strings and nothing else.

{content}"""

DIGEST_PROMPT = """\
Below are the titles of articles I have not read yet, with their sources.
Write one short paragraph describing the main themes and anything that stands out.

{articles}"""


class AIUnavailableError(RuntimeError):
    """Raised when no Anthropic API key is configured."""


def make_client() -> Anthropic:
    if not os.environ.get("ANTHROPIC_API_KEY"):
        raise AIUnavailableError("AI summarization not configured")
    return Anthropic()


def prepare_input(content: str, max_chars: int = MAX_INPUT_CHARS) -> str:
    """Strip HTML and limit length to avoid excessive token usage."""
    text = html_to_text(content)
    if len(text) > max_chars:
        return text[:max_chars] + "..."
    return text


def _complete(client: Anthropic, prompt: str, model: str, max_tokens: int = 512) -> str:
    response = client.messages.create(
        model=model,
        max_tokens=max_tokens,
        messages=[{"role": "user", "content": prompt}],
    )
    return response.content[0].text.strip()


def summarize_article(
    client: Anthropic,
    db: Database,
    guid: str,
    content: str,
    model: str = DEFAULT_MODEL,
    ttl_seconds: int = CACHE_TTL_SECONDS,
    max_input_chars: int = MAX_INPUT_CHARS,
) -> str:
    """Summarize an article, reusing a cached summary when present."""
    cache_key = f"summary:{guid}"
    cached = db.cache_get(cache_key)
    if cached:
        logger.info("Using cached summary for %s", guid)
        return cached

    text = prepare_input(content, max_input_chars)
    logger.info("Generating summary for %s (%d chars)", guid, len(text))
    summary = _complete(client, SUMMARY_PROMPT.format(content=text), model)

    db.cache_set(cache_key, summary, ttl_seconds)
    return summary


def _parse_quotes(text: str, max_quotes: int, max_length: int) -> list[str]:
    """Parse the model's JSON list; fall back to one quote per line."""
    start, end = text.find("["), text.rfind("]")
    quotes = None
    if start != -1 and end > start:
        try:
            quotes = json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            quotes = None
    if not isinstance(quotes, list):
        quotes = [line.strip().lstrip("-*> ").strip() for line in text.splitlines()]

    cleaned = []
    for quote in quotes:
        if not isinstance(quote, str):
            continue
        quote = quote.strip().strip('"').strip()
        if quote:
            cleaned.append(quote[:max_length])
    return cleaned[:max_quotes]


def extract_quotes(
    client: Anthropic,
    db: Database,
    guid: str,
    content: str,
    model: str = DEFAULT_MODEL,
    max_quotes: int = MAX_QUOTES,
    max_length: int = MAX_QUOTE_LENGTH,
    ttl_seconds: int = CACHE_TTL_SECONDS,
    max_input_chars: int = MAX_INPUT_CHARS,
) -> list[str]:
    cache_key = f"quotes:{guid}"
    cached = db.cache_get(cache_key)
    if cached:
        return json.loads(cached)

    prompt = QUOTES_PROMPT.format(
        max_quotes=max_quotes,
        max_length=max_length,
        content=prepare_input(content, max_input_chars),
    )
    quotes = _parse_quotes(_complete(client, prompt, model, max_tokens=1024), max_quotes, max_length)

    db.cache_set(cache_key, json.dumps(quotes), ttl_seconds)
    return quotes


def generate_digest(
    client: Anthropic,
    articles: list[Article],
    model: str = DEFAULT_MODEL,
    max_input_chars: int = MAX_INPUT_CHARS,
) -> str:
    """One-paragraph abstract of the given (unread) articles."""
    if not articles:
        return ""
    lines = [f"- {(a.title or '').strip() or 'Untitled'} ({a.feed_name})" for a in articles]
    text = "\n".join(lines)[:max_input_chars]
    logger.info("Generating digest for %d articles", len(articles))
    return _complete(client, DIGEST_PROMPT.format(articles=text), model)

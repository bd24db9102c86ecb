import copy
from pathlib import Path

import yaml
from dotenv import load_dotenv

DEFAULTS = {
    "db_path": "rssflow.db",
    "fetcher": {
        "timeout": 10.0,  # seconds before aborting a feed fetch
    },
    "content": {
        "excerpt_threshold": 1000,  # chars below which feed content is treated as an excerpt
        "min_content_length": 500,  # chars below which feed content is not used directly
        "readability_char_threshold": 500,
        "min_extracted_length": 200,  # minimum extracted length to consider valid
        "extract_timeout": 15.0,
    },
    "river": {
        "time_range": "24h",
        "max_consecutive": None,  # None: pick per time range
    },
    "ai": {
        "model": "claude-3-5-haiku-20241022",
        "max_input_chars": 15000,
        "cache_ttl_seconds": 60 * 60 * 24 * 90,  # 90 days
        "max_quotes": 3,
        "max_quote_length": 500,
    },
    "logging": {
        "level": "INFO",
    },
}


def load_config(config_path: str = "config.yaml") -> dict:
    """Load configuration from YAML file and .env."""
    load_dotenv()

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        return yaml.safe_load(f) or {}


def merge_defaults(config: dict) -> dict:
    """Return config with DEFAULTS filled in for any missing keys."""
    merged = copy.deepcopy(DEFAULTS)
    for key, value in (config or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def get_setting(config: dict, dotted: str, default=None):
    """Look up "section.key" in config, falling back to DEFAULTS."""
    for source in (config or {}, DEFAULTS):
        node = source
        for part in dotted.split("."):
            if not isinstance(node, dict) or part not in node:
                break
            node = node[part]
        else:
            if node is not None:
                return node
    return default

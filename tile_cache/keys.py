"""
Cache key derivation.

Keys are built from an explicit field order, never from iterating a
filters mapping, so two queries with the same values produce the same
key however their filters were assembled.
"""

import hashlib
import re
from typing import Any, Mapping, Optional, Union

from market_signals.models import QueryContext


KEY_PREFIX = "pmf.v2"
MAX_IDEA_KEY_LENGTH = 100
IDEA_DIGEST_LENGTH = 12

KEY_FIELDS = ("tile_type", "idea_text", "industry", "geography")

_FIELD_ALIASES = {
    "tile_type": ("tile_type", "tileType"),
    "idea_text": ("idea_text", "ideaText", "idea"),
    "industry": ("industry",),
    "geography": ("geography", "geo"),
}

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_idea(idea_text: Optional[str]) -> str:
    """
    Trimmed, lower-cased, whitespace to underscores.

    Ideas longer than 100 chars keep a 100-char prefix followed by a
    digest of the full text, so distinct long ideas never share a key.
    """
    if not idea_text:
        return ""
    idea = _WHITESPACE_RE.sub("_", idea_text.strip().lower())
    if len(idea) <= MAX_IDEA_KEY_LENGTH:
        return idea
    digest = hashlib.sha1(idea.encode("utf-8")).hexdigest()[:IDEA_DIGEST_LENGTH]
    return f"{idea[:MAX_IDEA_KEY_LENGTH]}~{digest}"


def _field(filters: Mapping[str, Any], name: str) -> str:
    for alias in _FIELD_ALIASES[name]:
        value = filters.get(alias)
        if value:
            return str(value).strip()
    return ""


def derive_key(
    filters: Union[QueryContext, Mapping[str, Any]],
    prefix: str = KEY_PREFIX,
) -> str:
    """
    Deterministic key for one tile query.

    Layout: ``{prefix}.{tile_type}:{idea}:{industry}:{geography}``.
    Accepts a QueryContext or a plain mapping (snake or camel case).
    """
    if isinstance(filters, QueryContext):
        filters = filters.to_dict()

    tile_type = _field(filters, "tile_type")
    idea = normalize_idea(_field(filters, "idea_text"))
    industry = _field(filters, "industry").lower()
    geography = _field(filters, "geography").lower()

    return f"{prefix}.{tile_type}:{idea}:{industry}:{geography}"

"""Token-efficient tabular encoding of posts for prompts.

Posts are rendered as one header followed by one row per post::

    posts[2]{d,l,b}:
      2025-01-27,14,"Earnings beat, guidance raised"
      2025-01-26,3,"Loading up before the call"

Short keys (d=date, l=likes, b=body) and dropped author handles keep the
per-post overhead to a few tokens.
"""

import re
from collections.abc import Sequence

from socialpulse.processing.models import Post

_HTML_TAG = re.compile(r"<[^>]*>")
_URL = re.compile(r"https?://\S+|www\.\S+")
_WHITESPACE = re.compile(r"\s+")


def clean_text(text: str | None) -> str:
    """Remove HTML tags and URLs, then collapse whitespace."""
    if not text:
        return ""
    text = _HTML_TAG.sub("", text)
    text = _URL.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def compact_row(post: Post) -> str:
    return f"{post.created_at.date().isoformat()},{post.likes_count},{_quote(clean_text(post.body))}"


def encode_posts(posts: Sequence[Post], name: str = "posts") -> str:
    """Encode posts as a compact table with a ``name[N]{d,l,b}:`` header."""
    lines = [f"{name}[{len(posts)}]{{d,l,b}}:"]
    lines.extend(f"  {compact_row(p)}" for p in posts)
    return "\n".join(lines)

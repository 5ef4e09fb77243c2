"""Utility helper functions."""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

from utils.errors import InvalidURLError

_LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "[::1]", "0.0.0.0"}
_CRITERIA_SEPARATOR = re.compile(r"\n[ \t]*\n")
_CODE_FENCE = re.compile(r"```(?:json)?")


def normalize_url(raw: str) -> str:
    """Return an absolute http(s) URL for *raw*, inferring the scheme if needed.

    A bare host gets ``https://`` unless it looks local (``localhost``,
    a loopback address or an explicit port), in which case ``http://`` is used.
    """
    url = (raw or "").strip()
    if not url:
        raise InvalidURLError("empty URL provided")

    if "://" not in url:
        host = url.split("/", 1)[0].lower()
        hostname = host.split(":", 1)[0]
        local = hostname in _LOOPBACK_HOSTS or "localhost" in hostname or ":" in host
        url = ("http://" if local else "https://") + url

    try:
        parsed = urlparse(url)
        parsed.port  # raises ValueError for a malformed port
    except ValueError as exc:
        raise InvalidURLError(f"invalid URL {raw!r}: {exc}") from exc

    if parsed.scheme not in ("http", "https"):
        raise InvalidURLError(f"unsupported URL scheme {parsed.scheme!r} in {raw!r}")
    if not parsed.hostname:
        raise InvalidURLError(f"URL has no host: {raw!r}")
    return url


def resolve_link(base_url: str, href: str) -> Optional[str]:
    """Resolve *href* against *base_url* and strip its fragment.

    Returns ``None`` for non-http(s) links and for pure same-page fragments.
    """
    href = (href or "").strip()
    if not href or href.startswith("#"):
        return None
    try:
        absolute = urljoin(base_url, href)
        parsed = urlparse(absolute)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return None
    return canonical_url(absolute)


def canonical_url(url: str) -> str:
    """Strip the fragment of *url* and give an empty path a trailing ``/``."""
    url = urldefrag(url)[0]
    parsed = urlparse(url)
    if not parsed.path:
        url = parsed._replace(path="/").geturl()
    return url


def path_segments(url: str) -> int:
    """Number of path segments in *url* (``/a/b/`` has two)."""
    trimmed = urlparse(url).path.strip("/")
    if not trimmed:
        return 0
    return trimmed.count("/") + 1


def same_host(url_a: str, url_b: str) -> bool:
    return urlparse(url_a).netloc.lower() == urlparse(url_b).netloc.lower()


def split_criteria(blob: str) -> List[str]:
    """Split an analyzer criteria blob on blank lines into individual criteria."""
    if not blob or not blob.strip():
        return []
    parts = _CRITERIA_SEPARATOR.split(blob.strip())
    return [part.strip() for part in parts if part.strip()]


def strip_code_fences(raw: str) -> str:
    """Remove Markdown code fences a model sometimes wraps JSON in."""
    return _CODE_FENCE.sub("", raw).strip()


def truncate(text: str, limit: int) -> str:
    """Keep the last *limit* characters of *text* (test output tails matter most)."""
    if limit <= 0 or len(text) <= limit:
        return text
    return "…" + text[-limit:]

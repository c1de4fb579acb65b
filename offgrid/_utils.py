from __future__ import annotations

import typing as tp
from email.utils import formatdate
from pathlib import Path
from typing import AsyncIterator, Iterable
from urllib.parse import urldefrag, urljoin, urlsplit

T = tp.TypeVar("T")


async def make_async_iterator(
    iterable: Iterable[bytes],
) -> AsyncIterator[bytes]:
    for item in iterable:
        yield item


def filter_mapping(mapping: tp.Mapping[str, T], keys_to_exclude: tp.Iterable[str]) -> tp.Dict[str, T]:
    """
    Filter out specified keys from a string-keyed mapping using case-insensitive comparison.

    Example:
    ```python
        original = {'a': 1, 'B': 2, 'c': 3}
        filtered = filter_mapping(original, ['b'])
        # filtered will be {'a': 1, 'c': 3}
    ```
    """
    exclude_set = {k.lower() for k in keys_to_exclude}
    return {k: v for k, v in mapping.items() if k.lower() not in exclude_set}


def normalized_url(url: str) -> str:
    """Drop the fragment; it never reaches the network and must not split cache keys."""
    return urldefrag(url)[0]


def generate_key(method: str, url: str) -> str:
    """
    Build the identity under which a response is stored.

    Examples:
        >>> generate_key("get", "https://seva.app/index.html#top")
        'GET https://seva.app/index.html'
    """
    return f"{method.upper()} {normalized_url(url)}"


def resolve_url(origin: str, path_or_url: str) -> str:
    return urljoin(origin.rstrip("/") + "/", path_or_url)


def url_scheme(url: str) -> str:
    return urlsplit(url).scheme.lower()


def url_hostname(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


def path_extension(url: str) -> str:
    """
    Return the lower-cased extension of the last path segment, or an empty string.

    Examples:
        >>> path_extension("https://cdn.example.com/dist/leaflet.CSS?v=1")
        'css'
        >>> path_extension("https://seva.app/donations")
        ''
    """
    segment = urlsplit(url).path.rsplit("/", 1)[-1]
    if "." not in segment:
        return ""
    return segment.rsplit(".", 1)[-1].lower()


def ensure_cache_dict(base_path: Path | None = None) -> Path:
    _base_path = base_path if base_path is not None else Path(".cache/offgrid")
    _gitignore_file = _base_path / ".gitignore"

    _base_path.mkdir(parents=True, exist_ok=True)

    if not _gitignore_file.is_file():
        with open(_gitignore_file, "w", encoding="utf-8") as f:
            f.write("# Automatically created by Offgrid\n*")
    return _base_path


def generate_http_date() -> str:
    """
    Generate a Date header value for HTTP responses.
    Returns date in RFC 1123 format (required by HTTP/1.1).
    """
    return formatdate(timeval=None, localtime=False, usegmt=True)

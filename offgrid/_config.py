from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Literal, Optional, Tuple

HostMatch = Literal["exact", "domain", "substring"]

STORE_CLASSES: Tuple[str, ...] = ("shared", "images", "maps", "runtime")


def store_name(generation: str, store_class: str) -> str:
    if store_class not in STORE_CLASSES:
        raise ValueError(f"Unknown store class: {store_class!r}")
    if store_class == "shared":
        return generation
    return f"{generation}-{store_class}"


def generation_store_names(generation: str) -> FrozenSet[str]:
    """Every store name owned by ``generation``, one per store class."""
    return frozenset(store_name(generation, store_class) for store_class in STORE_CLASSES)


def _default_extension_strategies() -> Dict[str, List[str]]:
    return {
        "cache_first": ["css", "js", "woff2", "woff", "ttf", "svg", "png", "jpg", "jpeg", "gif", "webp", "ico"],
        "network_first": ["html", "json"],
        "network_only": ["api"],
    }


@dataclass
class CacheConfig:
    """
    Configuration of one deployment of the offline cache.

    Attributes:
    ----------
    generation : str
        Version label of this deployment. Stores are namespaced by it and every
        store of another generation is deleted on activation.

        Examples:
        --------
        >>> config = CacheConfig(generation="seva-v2")
        >>> config.store_name("images")
        'seva-v2-images'

    origin : str
        Origin the application is served from. Relative asset paths and the
        application shell are resolved against it.

    critical_assets : list[str]
        Assets that must be fetched successfully for installation to succeed.

    optional_assets : list[str]
        Assets fetched on a best-effort basis after the critical ones.

    shell_path : str
        The application shell document served to navigations that cannot
        reach the network and have no stored copy of their own.

    host_match : "exact" | "domain" | "substring"
        How request hosts are compared with the host lists below.

        - exact: the hostname must equal a listed host.
        - domain: equal, or a subdomain of a listed host (default).
        - substring: the listed host appears anywhere in the hostname.

    namespace : str | None
        When set, activation only considers stores whose name starts with it,
        leaving stores owned by other applications alone.
    """

    generation: str = "seva-v2.1"
    """Version label of the current deployment."""

    origin: str = "http://localhost"
    """Origin used to resolve relative asset paths."""

    critical_assets: List[str] = field(
        default_factory=lambda: ["/", "/index.html", "/manifest.json", "/site.webmanifest"]
    )
    """Assets whose population failure aborts installation."""

    optional_assets: List[str] = field(
        default_factory=lambda: [
            "https://cdn.tailwindcss.com",
            "https://unpkg.com/leaflet@1.9.4/dist/leaflet.css",
            "https://unpkg.com/leaflet@1.9.4/dist/leaflet.js",
            "https://cdn.jsdelivr.net/npm/@supabase/supabase-js@2",
        ]
    )
    """Assets populated best-effort; individual failures are only logged."""

    shell_path: str = "/index.html"
    """Document returned to offline navigations."""

    always_fresh_hosts: List[str] = field(default_factory=lambda: ["supabase.co"])
    """API hosts that bypass the cache entirely."""

    map_tile_hosts: List[str] = field(
        default_factory=lambda: ["tile.openstreetmap.org", "basemaps.cartocdn.com", "tile.opentopomap.org"]
    )
    """Map tile providers, cached in the maps store."""

    script_cdn_hosts: List[str] = field(
        default_factory=lambda: ["unpkg.com", "cdn.jsdelivr.net", "cdn.tailwindcss.com", "cdnjs.cloudflare.com"]
    )
    """Script and UI library CDNs, cached in the shared store."""

    extension_strategies: Dict[str, List[str]] = field(default_factory=_default_extension_strategies)
    """Extension table keyed by strategy name."""

    host_match: HostMatch = "domain"
    """Granularity of host comparisons."""

    namespace: Optional[str] = None
    """Restricts activation cleanup to stores with this prefix."""

    skip_waiting: bool = True
    """Promote a freshly installed generation without waiting for old instances."""

    def store_name(self, store_class: str) -> str:
        return store_name(self.generation, store_class)

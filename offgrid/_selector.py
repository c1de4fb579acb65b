from __future__ import annotations

import logging
import typing as tp
from dataclasses import dataclass
from enum import Enum

from offgrid._config import CacheConfig, HostMatch
from offgrid._core.models import Request
from offgrid._utils import path_extension, url_hostname, url_scheme

logger = logging.getLogger("offgrid.selector")

Predicate = tp.Callable[[Request], bool]


class Strategy(str, Enum):
    CACHE_FIRST = "cache_first"
    NETWORK_FIRST = "network_first"
    NETWORK_FALLBACK = "network_fallback"
    NETWORK_ONLY = "network_only"


# Store class used when a strategy is picked through the extension table.
EXTENSION_STORE_CLASSES: tp.Dict[Strategy, tp.Optional[str]] = {
    Strategy.CACHE_FIRST: "shared",
    Strategy.NETWORK_FIRST: "runtime",
    Strategy.NETWORK_FALLBACK: "runtime",
    Strategy.NETWORK_ONLY: None,
}


@dataclass(frozen=True)
class Route:
    name: str
    predicate: Predicate
    strategy: Strategy
    store_class: tp.Optional[str]


@dataclass(frozen=True)
class ExclusionRule:
    name: str
    predicate: Predicate


def host_matches(hostname: str, patterns: tp.Iterable[str], mode: HostMatch = "domain") -> bool:
    """
    Compare a hostname against a list of hosts.

    Examples:
        >>> host_matches("a.tile.openstreetmap.org", ["tile.openstreetmap.org"])
        True
        >>> host_matches("eviltile.openstreetmap.org", ["tile.openstreetmap.org"])
        False
        >>> host_matches("xyz.supabase.co", ["supabase"], mode="substring")
        True
    """
    hostname = hostname.lower()
    patterns = [pattern.lower() for pattern in patterns]
    if hostname in patterns:
        return True
    if mode == "domain":
        return any(hostname.endswith(f".{pattern}") for pattern in patterns)
    if mode == "substring":
        return any(pattern in hostname for pattern in patterns)
    return False


def default_exclusions(config: CacheConfig) -> tp.Tuple[ExclusionRule, ...]:
    return (
        ExclusionRule("non-http-scheme", lambda request: url_scheme(request.url) not in ("http", "https")),
        ExclusionRule("non-retrieval-method", lambda request: request.method.upper() != "GET"),
        ExclusionRule(
            "always-fresh-host",
            lambda request: host_matches(url_hostname(request.url), config.always_fresh_hosts, config.host_match),
        ),
    )


def _extension_route(strategy: Strategy, extensions: tp.Iterable[str]) -> Route:
    extension_set = frozenset(extension.lower().lstrip(".") for extension in extensions)
    return Route(
        name=f"extension:{strategy.value}",
        predicate=lambda request: path_extension(request.url) in extension_set,
        strategy=strategy,
        store_class=EXTENSION_STORE_CLASSES[strategy],
    )


def default_routes(config: CacheConfig) -> tp.Tuple[Route, ...]:
    routes = [
        Route("image-destination", lambda request: request.destination == "image", Strategy.CACHE_FIRST, "images"),
        Route(
            "map-tiles",
            lambda request: host_matches(url_hostname(request.url), config.map_tile_hosts, config.host_match),
            Strategy.CACHE_FIRST,
            "maps",
        ),
        Route(
            "script-cdn",
            lambda request: host_matches(url_hostname(request.url), config.script_cdn_hosts, config.host_match),
            Strategy.CACHE_FIRST,
            "shared",
        ),
    ]
    for strategy_name, extensions in config.extension_strategies.items():
        routes.append(_extension_route(Strategy(strategy_name), extensions))
    routes.append(Route("default", lambda request: True, Strategy.NETWORK_FALLBACK, "runtime"))
    return tuple(routes)


class StrategySelector:
    """
    Classifies requests with an ordered table of routes; the first matching route wins.

    Args:
        config: Supplies the host lists and the extension table for the default tables.
        routes: Replaces the default route table. It should end with a catch-all route.
        exclusions: Replaces the default exclusion rules.
    """

    def __init__(
        self,
        config: CacheConfig,
        routes: tp.Optional[tp.Sequence[Route]] = None,
        exclusions: tp.Optional[tp.Sequence[ExclusionRule]] = None,
    ) -> None:
        self.config = config
        self.routes = tuple(routes) if routes is not None else default_routes(config)
        self.exclusions = tuple(exclusions) if exclusions is not None else default_exclusions(config)

    def excluded_by(self, request: Request) -> tp.Optional[ExclusionRule]:
        for rule in self.exclusions:
            if rule.predicate(request):
                return rule
        return None

    def select(self, request: Request) -> Route:
        for route in self.routes:
            if route.predicate(request):
                logger.debug(f"Route {route.name} selected {route.strategy.value} for {request.url}")
                return route
        raise LookupError(f"No route matches {request.method} {request.url}")

    def store_name(self, route: Route) -> tp.Optional[str]:
        if route.store_class is None:
            return None
        return self.config.store_name(route.store_class)

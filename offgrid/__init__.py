from offgrid._core._headers import Headers as Headers
from offgrid._core.models import (
    Record as Record,
    Request as Request,
    RequestMetadata as RequestMetadata,
    RequestSender as RequestSender,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
)
from offgrid._core._storages._async_base import AsyncBaseStorage as AsyncBaseStorage
from offgrid._core._storages._async_memory import AsyncInMemoryStorage as AsyncInMemoryStorage
from offgrid._core._storages._async_sqlite import AsyncSqliteStorage as AsyncSqliteStorage
from offgrid._exceptions import (
    InstallError as InstallError,
    LifecycleError as LifecycleError,
    NetworkError as NetworkError,
    OffgridError as OffgridError,
    PopulationError as PopulationError,
    StorageError as StorageError,
)
from offgrid._config import CacheConfig as CacheConfig
from offgrid._registry import Store as Store, StoreRegistry as StoreRegistry
from offgrid._clients import Client as Client, Clients as Clients, QueueClient as QueueClient
from offgrid._selector import (
    ExclusionRule as ExclusionRule,
    Route as Route,
    Strategy as Strategy,
    StrategySelector as StrategySelector,
    host_matches as host_matches,
)
from offgrid._strategies import (
    AsyncFetchStrategy as AsyncFetchStrategy,
    CacheFirst as CacheFirst,
    NetworkFirst as NetworkFirst,
    NetworkOnly as NetworkOnly,
    NetworkWithFallback as NetworkWithFallback,
)
from offgrid._lifecycle import LifecycleManager as LifecycleManager, LifecycleState as LifecycleState
from offgrid._push import Notification as Notification, parse_push_payload as parse_push_payload
from offgrid._worker import AsyncCacheWorker as AsyncCacheWorker

__version__ = "0.1.0"

__all__ = (
    ## Models
    "Headers",
    "Record",
    "Request",
    "RequestMetadata",
    "RequestSender",
    "Response",
    "ResponseMetadata",
    ## Storages
    "AsyncBaseStorage",
    "AsyncInMemoryStorage",
    "AsyncSqliteStorage",
    ## Errors
    "OffgridError",
    "NetworkError",
    "StorageError",
    "PopulationError",
    "LifecycleError",
    "InstallError",
    ## Engine
    "CacheConfig",
    "Store",
    "StoreRegistry",
    "Strategy",
    "Route",
    "ExclusionRule",
    "StrategySelector",
    "host_matches",
    "AsyncFetchStrategy",
    "CacheFirst",
    "NetworkFirst",
    "NetworkWithFallback",
    "NetworkOnly",
    "LifecycleManager",
    "LifecycleState",
    "AsyncCacheWorker",
    ## Clients and push
    "Client",
    "Clients",
    "QueueClient",
    "Notification",
    "parse_push_payload",
)

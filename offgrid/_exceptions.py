from __future__ import annotations

__all__ = (
    "OffgridError",
    "NetworkError",
    "StorageError",
    "PopulationError",
    "LifecycleError",
    "InstallError",
)


class OffgridError(Exception): ...


class NetworkError(OffgridError): ...


class StorageError(OffgridError): ...


class PopulationError(OffgridError):
    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class LifecycleError(OffgridError): ...


class InstallError(LifecycleError): ...

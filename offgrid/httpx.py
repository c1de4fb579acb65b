try:
    import httpx  # noqa: F401
except ImportError as e:
    raise ImportError(
        "httpx is required to use offgrid.httpx module. "
        "Please install offgrid with the 'httpx' extra, "
        "e.g., 'pip install offgrid[httpx]'."
    ) from e


from ._async_httpx import AsyncCacheClient as AsyncCacheClient, AsyncCacheTransport as AsyncCacheTransport

__all__ = ("AsyncCacheClient", "AsyncCacheTransport")

from __future__ import annotations

import logging
from typing import Optional

import msgpack
from typing_extensions import cast

from offgrid._core._headers import Headers
from offgrid._core.models import Record

logger = logging.getLogger("offgrid.storages")

# Bumped whenever the packed layout changes; older payloads read as absent.
PACKING_VERSION = 1


def pack(value: Record, /) -> bytes:
    return cast(
        bytes,
        msgpack.packb(
            {
                "version": PACKING_VERSION,
                "method": value.method,
                "url": value.url,
                "status_code": value.status_code,
                "headers": value.headers.multi_items(),
                "body": value.body,
                "created_at": value.created_at,
            }
        ),
    )


def unpack(value: Optional[bytes], /) -> Optional[Record]:
    """
    Decode a packed record.

    Returns None for anything that cannot be decoded so a corrupt entry behaves
    like a cache miss instead of failing the request.
    """
    if value is None:
        return None
    try:
        data = msgpack.unpackb(value)
        if data.get("version") != PACKING_VERSION:
            return None
        return Record(
            method=data["method"],
            url=data["url"],
            status_code=data["status_code"],
            headers=Headers.from_pairs((k, v) for k, v in data["headers"]),
            body=data["body"],
            created_at=data["created_at"],
        )
    except Exception:
        logger.warning("Discarding a stored record that could not be decoded", exc_info=True)
        return None

from offgrid._core._headers import Headers as Headers
from offgrid._core.models import (
    Record as Record,
    Request as Request,
    RequestMetadata as RequestMetadata,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
)

__all__ = (
    "Headers",
    "Record",
    "Request",
    "RequestMetadata",
    "Response",
    "ResponseMetadata",
)

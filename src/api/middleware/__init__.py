"""HTTP middleware: CORS and request correlation."""

from src.api.middleware.cors import CORS_HEADERS, CorsMiddleware
from src.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware

__all__ = [
    "CORS_HEADERS",
    "CorsMiddleware",
    "REQUEST_ID_HEADER",
    "RequestIdMiddleware",
]

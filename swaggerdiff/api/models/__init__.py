"""API models for swagger-diff."""

from .errors import APIError, ErrorCode, ErrorResponse, error_response
from .schemas import (
    ApiDiffRequest,
    ApiResult,
    CompareResult,
    ComparisonType,
    VersionsResult,
)

__all__ = [
    "ApiDiffRequest",
    "ApiResult",
    "CompareResult",
    "ComparisonType",
    "VersionsResult",
    "APIError",
    "ErrorCode",
    "ErrorResponse",
    "error_response",
]

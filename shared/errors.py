"""
Shared error handling for the Eventboard Listings Layer.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ListingsException(Exception):
    """Base exception for listings services."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(ListingsException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(ListingsException):
    """Requested record does not exist."""

    status_code = 404

    def __init__(self, resource: str, record_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource.title()} not found",
            {"resource": resource, "id": record_id}
        )


class StoreError(ListingsException):
    """Document store failures (connectivity, malformed predicate)."""

    status_code = 500

    def __init__(self, message: str = "Store error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_ERROR", message, details)


class QueryFailedError(ListingsException):
    """A list request could not be answered from the store."""

    status_code = 500

    def __init__(self, entity: str, details: Optional[Dict[str, Any]] = None):
        self.entity = entity
        super().__init__("QUERY_FAILED", "Query failed", {"entity": entity, **(details or {})})


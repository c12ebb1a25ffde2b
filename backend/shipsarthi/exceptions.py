"""
Shipsarthi - Custom Exception Hierarchy

Provides structured, typed exceptions with error codes for consistent
error handling across the webhook pipeline, the tracking reconciler and
the rate card engine.

Usage:
    from shipsarthi.exceptions import NotFoundError, ValidationError

    raise NotFoundError("Tracking record", waybill)
    raise ValidationError("Shipment.AWB is required", field="Shipment.AWB")
"""
from typing import Any, Dict, Optional


class ShipsarthiException(Exception):
    """
    Base exception for all Shipsarthi errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "VALIDATION_ERROR")
        status_code: HTTP status code to return
        details: Additional context for debugging
    """

    error_code: str = "SHIPSARTHI_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# 400 Bad Request Errors
# ===================


class ValidationError(ShipsarthiException):
    """Raised when an inbound payload fails validation (rejected before enqueue)."""

    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details=details)


# ===================
# 404 Not Found Errors
# ===================


class NotFoundError(ShipsarthiException):
    """Raised when a resource is not found."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Any = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} {resource_id} not found"
        super().__init__(message, details=details)


# ===================
# 409 Conflict Errors
# ===================


class DuplicateEventError(ShipsarthiException):
    """
    Raised when a webhook event was already processed.

    Callers treat this as success: the carrier gets a 2xx with duplicate=true.
    """

    error_code = "DUPLICATE_EVENT"
    status_code = 409

    def __init__(
        self,
        message: str = "Event already processed",
        *,
        dedup_key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if dedup_key:
            details["dedup_key"] = dedup_key
        super().__init__(message, details=details)


# ===================
# 500 Internal Server Errors
# ===================


class ConfigurationError(ShipsarthiException):
    """Raised when required configuration (e.g. a rate card tier) is missing."""

    error_code = "CONFIGURATION_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str = "Configuration error",
        *,
        setting: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if setting:
            details["setting"] = setting
        super().__init__(message, details=details)


# ===================
# 502 Carrier Errors
# ===================


class CarrierError(ShipsarthiException):
    """Raised when a call to the shipping carrier fails."""

    error_code = "CARRIER_ERROR"
    status_code = 502

    def __init__(
        self,
        message: str = "Carrier request failed",
        *,
        carrier: str = "Delhivery",
        carrier_status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["carrier"] = carrier
        if carrier_status_code is not None:
            details["carrier_status_code"] = carrier_status_code
        self.carrier_status_code = carrier_status_code
        super().__init__(f"{carrier}: {message}", details=details)


class TransientCarrierError(CarrierError):
    """Network failure, timeout, throttling or 5xx. Retry on the next pass."""

    error_code = "CARRIER_UNAVAILABLE"


class CarrierDataError(CarrierError):
    """Carrier answered but the body was malformed or rejected the request."""

    error_code = "CARRIER_DATA_ERROR"


# ===================
# 503 Service Unavailable Errors
# ===================


class QueueFullError(ShipsarthiException):
    """Raised when the webhook queue is at capacity. Carrier should retry."""

    error_code = "QUEUE_FULL"
    status_code = 503

    def __init__(
        self,
        message: str = "Webhook queue is full, retry later",
        *,
        retry_after: int = 30,
        queue_size: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["retry_after"] = retry_after
        if queue_size is not None:
            details["queue_size"] = queue_size
        self.retry_after = retry_after
        super().__init__(message, details=details)

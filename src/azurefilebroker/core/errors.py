"""Error handling module for azurefilebroker.

This module defines error codes, exception classes, and response models.

Error Response Format:
{
    "error": {
        "code": "INSTANCE_NOT_FOUND",
        "message": "instance does not exist"
    }
}

Usage:
    from azurefilebroker.core.errors import InstanceNotFoundError, PolicyViolationError

    # Raise with default message
    raise InstanceNotFoundError()

    # Raise with custom message
    raise PolicyViolationError("The file share 'data' may not be created")
"""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes."""

    MISSING_PARAMETERS = "MISSING_PARAMETERS"
    INVALID_PARAMETERS = "INVALID_PARAMETERS"
    RAW_PARAMS_INVALID = "RAW_PARAMS_INVALID"
    APP_GUID_NOT_PROVIDED = "APP_GUID_NOT_PROVIDED"
    INVALID_MOUNT_OPTIONS = "INVALID_MOUNT_OPTIONS"
    INSTANCE_NOT_FOUND = "INSTANCE_NOT_FOUND"
    BINDING_NOT_FOUND = "BINDING_NOT_FOUND"
    FILE_SHARE_NOT_FOUND = "FILE_SHARE_NOT_FOUND"
    INSTANCE_ALREADY_EXISTS = "INSTANCE_ALREADY_EXISTS"
    BINDING_ALREADY_EXISTS = "BINDING_ALREADY_EXISTS"
    POLICY_VIOLATION = "POLICY_VIOLATION"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    LOCK_TIMEOUT = "LOCK_TIMEOUT"
    STORE_ERROR = "STORE_ERROR"
    UNRECOGNIZED_OPERATION = "UNRECOGNIZED_OPERATION"


class ErrorDetail(BaseModel):
    """Error detail containing code and message."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error response format."""

    error: ErrorDetail


class BrokerError(Exception):
    """Base exception for azurefilebroker.

    All broker specific exceptions inherit from this class so the protocol
    adapter can translate them into OSB responses in one place.

    Attributes:
        code: The error code from ErrorCode enum
        message: Human-readable error message
        status_code: HTTP status code the protocol adapter should return
    """

    def __init__(self, code: ErrorCode, message: str, status_code: int) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert exception to ErrorResponse model."""
        return ErrorResponse(
            error=ErrorDetail(code=self.code.value, message=self.message)
        )


class MissingParametersError(BrokerError):
    """400 Bad Request - Required parameters are absent."""

    def __init__(self, message: str = "Missing required parameters") -> None:
        super().__init__(ErrorCode.MISSING_PARAMETERS, message, 400)


class InvalidParametersError(BrokerError):
    """400 Bad Request - Parameters are present but not acceptable."""

    def __init__(self, message: str = "Invalid parameters") -> None:
        super().__init__(ErrorCode.INVALID_PARAMETERS, message, 400)


class RawParamsInvalidError(BrokerError):
    """400 Bad Request - Raw parameters could not be decoded."""

    def __init__(
        self, message: str = "The format of the parameters is not valid JSON"
    ) -> None:
        super().__init__(ErrorCode.RAW_PARAMS_INVALID, message, 400)


class AppGuidNotProvidedError(BrokerError):
    """422 Unprocessable Entity - Bind request without an application."""

    def __init__(
        self, message: str = "app_guid is a required field but was not provided"
    ) -> None:
        super().__init__(ErrorCode.APP_GUID_NOT_PROVIDED, message, 422)


class InvalidMountOptionsError(BrokerError):
    """400 Bad Request - Bind requested mount options the broker forbids."""

    def __init__(self, message: str = "Not allowed options") -> None:
        super().__init__(ErrorCode.INVALID_MOUNT_OPTIONS, message, 400)


class InstanceNotFoundError(BrokerError):
    """410 Gone - Service instance does not exist."""

    def __init__(self, message: str = "instance does not exist") -> None:
        super().__init__(ErrorCode.INSTANCE_NOT_FOUND, message, 410)


class BindingNotFoundError(BrokerError):
    """410 Gone - Service binding does not exist."""

    def __init__(self, message: str = "binding does not exist") -> None:
        super().__init__(ErrorCode.BINDING_NOT_FOUND, message, 410)


class FileShareNotFoundError(BrokerError):
    """404 Not Found - File share record does not exist."""

    def __init__(self, message: str = "file share does not exist") -> None:
        super().__init__(ErrorCode.FILE_SHARE_NOT_FOUND, message, 404)


class InstanceAlreadyExistsError(BrokerError):
    """409 Conflict - Service instance id is already provisioned."""

    def __init__(self, message: str = "instance already exists") -> None:
        super().__init__(ErrorCode.INSTANCE_ALREADY_EXISTS, message, 409)


class BindingAlreadyExistsError(BrokerError):
    """409 Conflict - Service binding id is already bound."""

    def __init__(self, message: str = "binding already exists") -> None:
        super().__init__(ErrorCode.BINDING_ALREADY_EXISTS, message, 409)


class PolicyViolationError(BrokerError):
    """403 Forbidden - The administrator does not allow the operation."""

    def __init__(self, message: str = "Operation not allowed by broker policy") -> None:
        super().__init__(ErrorCode.POLICY_VIOLATION, message, 403)


class UpstreamError(BrokerError):
    """502 Bad Gateway - Azure call failed."""

    def __init__(self, message: str = "Azure storage service unavailable") -> None:
        super().__init__(ErrorCode.UPSTREAM_ERROR, message, 502)


class LockTimeoutError(BrokerError):
    """503 Service Unavailable - Advisory lock not acquired in time."""

    def __init__(self, lock_name: str, timeout: int) -> None:
        self.lock_name = lock_name
        self.timeout = timeout
        super().__init__(
            ErrorCode.LOCK_TIMEOUT,
            f"Cannot get the lock {lock_name!r} for update in {timeout} seconds",
            503,
        )


class StoreError(BrokerError):
    """500 Internal Server Error - Persistent store failure."""

    def __init__(self, message: str = "Broker state store failure") -> None:
        super().__init__(ErrorCode.STORE_ERROR, message, 500)


class UnrecognizedOperationError(BrokerError):
    """400 Bad Request - last_operation polled with unknown operation data."""

    def __init__(self, message: str = "unrecognized operationData") -> None:
        super().__init__(ErrorCode.UNRECOGNIZED_OPERATION, message, 400)

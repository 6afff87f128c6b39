"""Structured error types for VersionKV."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of failure kinds raised by the versioned store."""

    EMPTY_KEY = "EmptyKey"
    INVALID_INIT = "InvalidInit"
    INVALID_PAYLOAD = "InvalidPayload"
    MISSING_KEY = "MissingKey"
    NO_VERSION = "NoVersion"
    ALREADY_REGISTERED = "AlreadyRegistered"
    REGISTRATION_WRITE_FAILED = "RegistrationWriteFailed"
    INITIAL_POPULATION_FAILED = "InitialPopulationFailed"
    METADATA_WRITE_FAILED = "MetadataWriteFailed"
    PAYLOAD_WRITE_FAILED = "PayloadWriteFailed"
    FETCH_FAILED = "FetchFailed"
    DECODE_FAILED = "DecodeFailed"
    GATEWAY_TIMEOUT = "GatewayTimeout"


class VersionKVError(Exception):
    """Base error for all VersionKV errors.

    Every error carries its ``kind`` and a ``context`` dict with the operation,
    key and version involved, plus the wrapped cause when there is one.
    """

    kind: ErrorKind

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        key: str | None = None,
        version: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.context: dict[str, Any] = {
            "operation": operation,
            "key": key,
            "version": version,
            "cause": cause,
        }
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def operation(self) -> str | None:
        return self.context["operation"]

    @property
    def key(self) -> str | None:
        return self.context["key"]

    @property
    def version(self) -> str | None:
        return self.context["version"]

    def __str__(self) -> str:
        return f"{self.kind.value}: {super().__str__()}"


class EmptyKeyError(VersionKVError):
    """Raised when an operation is given an empty key."""

    kind = ErrorKind.EMPTY_KEY


class InvalidInitError(VersionKVError):
    """Raised when init=True is requested without an initial object."""

    kind = ErrorKind.INVALID_INIT


class InvalidPayloadError(VersionKVError):
    """Raised when a payload is not a JSON object or fails validation."""

    kind = ErrorKind.INVALID_PAYLOAD


class MissingKeyError(VersionKVError):
    """Raised when neither a key nor a version id is supplied to a read."""

    kind = ErrorKind.MISSING_KEY


class NoVersionError(VersionKVError):
    """Raised when a key has no resolvable version."""

    kind = ErrorKind.NO_VERSION


class AlreadyRegisteredError(VersionKVError):
    """Raised by strict registration when the key is already live."""

    kind = ErrorKind.ALREADY_REGISTERED


class RegistrationWriteFailedError(VersionKVError):
    kind = ErrorKind.REGISTRATION_WRITE_FAILED


class InitialPopulationFailedError(VersionKVError):
    """Raised when registration succeeded but the initial set did not."""

    kind = ErrorKind.INITIAL_POPULATION_FAILED


class MetadataWriteFailedError(VersionKVError):
    kind = ErrorKind.METADATA_WRITE_FAILED


class PayloadWriteFailedError(VersionKVError):
    kind = ErrorKind.PAYLOAD_WRITE_FAILED


class FetchFailedError(VersionKVError):
    kind = ErrorKind.FETCH_FAILED


class DecodeFailedError(VersionKVError):
    """Raised when a stored payload does not decode to a JSON object."""

    kind = ErrorKind.DECODE_FAILED


class GatewayTimeoutError(VersionKVError):
    """Raised when a gateway call exceeds its deadline."""

    kind = ErrorKind.GATEWAY_TIMEOUT


class StorageBackendError(Exception):
    """Raised by gateway adapters when backend storage operations fail."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage backend error during {operation}: {detail}")


class StorageTimeoutError(StorageBackendError):
    """Raised by gateway adapters when an in-flight call is interrupted by its deadline."""

    def __init__(self, operation: str, timeout_s: float) -> None:
        self.timeout_s = timeout_s
        super().__init__(operation, f"deadline of {timeout_s:g}s exceeded")

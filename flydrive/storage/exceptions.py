"""
Storage-specific exceptions.

Every driver translates its native errors into one of these classes, so
callers can drive recovery from ``error.kind`` without knowing which
backend is behind a disk.
"""
from enum import Enum


class StorageErrorKind(str, Enum):
    FILE_NOT_FOUND = "file_not_found"
    PERMISSION_MISSING = "permission_missing"
    AUTHORIZATION_REQUIRED = "authorization_required"
    NO_SUCH_BUCKET = "no_such_bucket"
    WRONG_KEY_PATH = "wrong_key_path"
    INVALID_INPUT = "invalid_input"
    METHOD_NOT_SUPPORTED = "method_not_supported"
    UNKNOWN = "unknown"
    INVALID_CONFIG = "invalid_config"
    DRIVER_NOT_SUPPORTED = "driver_not_supported"


class StorageError(Exception):
    """Base exception for storage operations."""

    kind: StorageErrorKind = StorageErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        location: str | None = None,
        cause: BaseException | None = None,
    ):
        self.location = location
        self.cause = cause
        super().__init__(message)


class FileNotFoundError(StorageError):
    """Raised when the requested file does not exist in the backend."""

    kind = StorageErrorKind.FILE_NOT_FOUND

    def __init__(self, location: str, cause: BaseException | None = None):
        super().__init__(f"File not found: {location}", location, cause)


class PermissionMissingError(StorageError):
    """Raised when the backend denies access to a file."""

    kind = StorageErrorKind.PERMISSION_MISSING

    def __init__(self, location: str, cause: BaseException | None = None):
        super().__init__(
            f"Missing permission to access file: {location}", location, cause
        )


class AuthorizationRequiredError(StorageError):
    """Raised when the backend rejects the credentials entirely."""

    kind = StorageErrorKind.AUTHORIZATION_REQUIRED

    def __init__(self, location: str, cause: BaseException | None = None):
        super().__init__(
            f"Unauthorized to access file: {location}", location, cause
        )


class NoSuchBucketError(StorageError):
    """Raised when the bucket or container itself does not exist."""

    kind = StorageErrorKind.NO_SUCH_BUCKET

    def __init__(self, bucket: str, cause: BaseException | None = None):
        self.bucket = bucket
        super().__init__(f"Bucket does not exist: {bucket}", bucket, cause)


class WrongKeyPathError(StorageError):
    """Raised when the credentials key file cannot be found."""

    kind = StorageErrorKind.WRONG_KEY_PATH

    def __init__(self, location: str, cause: BaseException | None = None):
        super().__init__(
            f"Credentials key file does not exist: {location}", location, cause
        )


class InvalidInputError(StorageError):
    """Raised when a caller passes an argument the driver cannot handle."""

    kind = StorageErrorKind.INVALID_INPUT

    def __init__(self, argument: str, method: str, message: str):
        self.argument = argument
        self.method = method
        super().__init__(f"Invalid {argument} for {method}: {message}")


class MethodNotSupportedError(StorageError):
    """Raised when a driver does not implement an operation."""

    kind = StorageErrorKind.METHOD_NOT_SUPPORTED

    def __init__(self, method: str, driver: str):
        self.method = method
        self.driver = driver
        super().__init__(f"Method {method} is not supported for the driver {driver}")


class UnknownStorageError(StorageError):
    """Raised for native errors that have no dedicated kind."""

    kind = StorageErrorKind.UNKNOWN

    def __init__(
        self,
        code: str | None,
        location: str | None = None,
        cause: BaseException | None = None,
    ):
        self.code = code
        super().__init__(
            f"Error {code} while handling file: {location}", location, cause
        )


class InvalidConfigError(StorageError):
    """Raised when the storage manager configuration is incomplete."""

    kind = StorageErrorKind.INVALID_CONFIG

    def __init__(self, message: str):
        super().__init__(f"E_INVALID_CONFIG: {message}")


class DriverNotSupportedError(StorageError):
    """Raised when a disk asks for a driver that is not registered."""

    kind = StorageErrorKind.DRIVER_NOT_SUPPORTED

    def __init__(self, driver: str):
        self.driver = driver
        super().__init__(f"Driver {driver} is not supported")

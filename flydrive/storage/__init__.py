"""
Storage abstraction layer for file operations.

This package provides one async interface over the local filesystem and
cloud object stores (S3, Google Cloud Storage, Azure Blob Storage).
Cloud drivers live in their own modules so their SDKs are only imported
when used.
"""

from flydrive.storage.exceptions import (
    AuthorizationRequiredError,
    DriverNotSupportedError,
    FileNotFoundError,
    InvalidConfigError,
    InvalidInputError,
    MethodNotSupportedError,
    NoSuchBucketError,
    PermissionMissingError,
    StorageError,
    StorageErrorKind,
    UnknownStorageError,
    WrongKeyPathError,
)
from flydrive.storage.base import StorageBackend
from flydrive.storage.local import LocalStorageBackend

__all__ = [
    "StorageBackend",
    "LocalStorageBackend",
    "StorageError",
    "StorageErrorKind",
    "FileNotFoundError",
    "PermissionMissingError",
    "AuthorizationRequiredError",
    "NoSuchBucketError",
    "WrongKeyPathError",
    "InvalidInputError",
    "MethodNotSupportedError",
    "UnknownStorageError",
    "InvalidConfigError",
    "DriverNotSupportedError",
]

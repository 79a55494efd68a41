"""
flydrive: one async file-storage API over the local filesystem, S3,
Google Cloud Storage and Azure Blob Storage.
"""

from flydrive.storage import LocalStorageBackend, StorageBackend, StorageError
from flydrive.manager import StorageManager, get_storage

__all__ = [
    "StorageBackend",
    "LocalStorageBackend",
    "StorageError",
    "StorageManager",
    "get_storage",
]

"""
Base class for storage backends.

This module defines the contract every driver implements. Operations a
driver does not override raise MethodNotSupportedError, so an unsupported
call is always explicit and never a silent no-op.
"""
from abc import ABC
from typing import Any, AsyncIterator

from flydrive.schemas.responses import (
    ContentResponse,
    DeleteResponse,
    ExistsResponse,
    FileListEntry,
    Response,
    SignedUrlResponse,
    StatResponse,
)
from flydrive.storage.exceptions import MethodNotSupportedError

# Content accepted by put(): bytes-like buffer, text, or a byte stream
# (async iterable of bytes or a readable binary file object).
Content = Any


class StorageBackend(ABC):
    """
    Base class for storage backends.

    Drivers hold only an immutable handle to their backend (root directory,
    bucket, container client), so one instance can serve concurrent calls
    without locking.
    """

    def _unsupported(self, method: str) -> MethodNotSupportedError:
        return MethodNotSupportedError(method, type(self).__name__)

    def driver(self) -> Any:
        """Return the wrapped native client."""
        raise self._unsupported("driver")

    async def exists(self, location: str) -> ExistsResponse:
        """
        Check if a file exists.

        Args:
            location: File location relative to the disk root

        Returns:
            ExistsResponse with exists=False for a missing file

        Raises:
            StorageError: For access or connectivity failures only
        """
        raise self._unsupported("exists")

    async def get(self, location: str, encoding: str = "utf-8") -> ContentResponse[str]:
        """
        Read a file as text.

        Args:
            location: File location relative to the disk root
            encoding: Text encoding used to decode the content

        Returns:
            ContentResponse with the decoded text

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        response = await self.get_buffer(location)
        return ContentResponse[str](
            content=response.content.decode(encoding), raw=response.raw
        )

    async def get_buffer(self, location: str) -> ContentResponse[bytes]:
        """
        Read a whole file into memory.

        Args:
            location: File location relative to the disk root

        Returns:
            ContentResponse with the file bytes

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        raise self._unsupported("get_buffer")

    def get_stream(self, location: str) -> AsyncIterator[bytes]:
        """
        Return a lazy stream over the file's chunks.

        Nothing is checked when the stream is created; a missing file or
        any other backend failure is raised while iterating. The native
        handle is closed once the stream is drained, fails, or is closed
        with ``aclose()``.

        Args:
            location: File location relative to the disk root

        Returns:
            Async iterator yielding bytes chunks
        """
        raise self._unsupported("get_stream")

    async def put(self, location: str, content: Content) -> Response:
        """
        Create or replace a file, creating missing directories on the fly.

        Args:
            location: File location relative to the disk root
            content: bytes, str, async byte iterable or binary file object

        Returns:
            Response with the backend's native result

        Raises:
            InvalidInputError: If content is not one of the supported shapes
            StorageError: If the write fails; no partial file is left behind
        """
        raise self._unsupported("put")

    async def append(self, location: str, content: Content) -> Response:
        """Append content to a file, creating it when missing."""
        raise self._unsupported("append")

    async def prepend(self, location: str, content: str | bytes) -> Response:
        """Prepend content to a file, creating it when missing."""
        raise self._unsupported("prepend")

    async def copy(self, src: str, dest: str) -> Response:
        """
        Copy a file to another location.

        Object stores copy server-side; bytes never pass through the client.

        Raises:
            FileNotFoundError: If src doesn't exist
        """
        raise self._unsupported("copy")

    async def move(self, src: str, dest: str) -> Response:
        """
        Move a file to another location.

        This is ``copy`` followed by ``delete`` of src and is NOT atomic: if
        the delete fails, the file exists at both locations and the delete
        error is raised.

        Returns:
            Response whose raw holds the copy and delete results
        """
        copied = await self.copy(src, dest)
        deleted = await self.delete(src)
        return Response(raw={"copy": copied.raw, "delete": deleted.raw})

    async def delete(self, location: str) -> DeleteResponse:
        """
        Delete a file.

        Returns:
            DeleteResponse whose was_deleted is True/False when the backend
            reports the outcome and None when it cannot. Whether a missing
            file yields was_deleted=False or raises FileNotFoundError is
            documented per driver.
        """
        raise self._unsupported("delete")

    async def get_stat(self, location: str) -> StatResponse:
        """
        Return the file size in bytes and its modification time.

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        raise self._unsupported("get_stat")

    async def get_signed_url(self, location: str, expiry: int = 900) -> SignedUrlResponse:
        """
        Return a time-limited read URL.

        Args:
            location: File location relative to the bucket
            expiry: Validity in seconds (default 15 minutes)
        """
        raise self._unsupported("get_signed_url")

    def get_url(self, location: str) -> str:
        """Build the public URL of a file without any network call."""
        raise self._unsupported("get_url")

    def flat_list(self, prefix: str = "") -> AsyncIterator[FileListEntry]:
        """
        List every file whose location starts with prefix.

        Pages are requested from the backend only as the consumer asks for
        more entries, so abandoning the iteration stops the listing.

        Args:
            prefix: Location prefix; "" lists the whole disk

        Returns:
            Async iterator of FileListEntry
        """
        raise self._unsupported("flat_list")

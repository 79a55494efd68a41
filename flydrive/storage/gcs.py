"""
Google Cloud Storage implementation.

Wraps one google-cloud-storage Bucket. The client library is blocking, so
calls are awaited through asyncio.to_thread.
"""
import asyncio
import errno
from datetime import timedelta
from typing import Any, AsyncIterator

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage
from google.cloud.storage.exceptions import InvalidResponse

from flydrive.config import settings
from flydrive.logging_config import setup_logging
from flydrive.schemas.responses import (
    ContentResponse,
    DeleteResponse,
    ExistsResponse,
    FileListEntry,
    Response,
    SignedUrlResponse,
    StatResponse,
)
from flydrive.storage.base import Content, StorageBackend
from flydrive.storage.exceptions import (
    AuthorizationRequiredError,
    FileNotFoundError,
    InvalidConfigError,
    PermissionMissingError,
    StorageError,
    UnknownStorageError,
    WrongKeyPathError,
)
from flydrive.utils.streams import iter_content

logger = setup_logging()

LIST_PAGE_SIZE = 1000

# RetryError derives from GoogleAPIError only; upload writers raise InvalidResponse
_NATIVE_ERRORS = (GoogleAPIError, GoogleAuthError, InvalidResponse)


def handle_error(err: Exception, location: str) -> StorageError:
    """
    Translate a Google API error into the storage error taxonomy.

    Args:
        err: Error raised by the GCS client
        location: Object name (or key file path) the caller was using

    Returns:
        The matching StorageError (never raises)
    """
    code = getattr(err, "code", None)
    if isinstance(err, InvalidResponse):
        code = getattr(err.response, "status_code", None)

    if isinstance(err, OSError) and err.errno == errno.ENOENT:
        return WrongKeyPathError(location, err)
    if isinstance(err, GoogleAuthError):
        return AuthorizationRequiredError(location, err)
    if code == 401:
        return AuthorizationRequiredError(location, err)
    if code == 403:
        return PermissionMissingError(location, err)
    if code == 404:
        return FileNotFoundError(location, err)

    return UnknownStorageError(str(code) if code is not None else type(err).__name__, location, err)


def _discard_writer(writer: Any) -> None:
    # BlobWriter.close(), also run by __del__, uploads what is buffered and
    # finalizes the object; it skips the upload once the buffer is closed
    writer._buffer.close()


class GCSStorageBackend(StorageBackend):
    """Google Cloud Storage bound to one bucket."""

    def __init__(self, bucket: Any):
        """
        Initialize GCS storage backend.

        Args:
            bucket: google.cloud.storage.Bucket handle
        """
        self.bucket = bucket

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "GCSStorageBackend":
        """
        Build a driver from a disk config.

        Recognized keys: bucket (required), key_filename (service account
        JSON; ambient credentials are used when omitted), project.

        Raises:
            WrongKeyPathError: If key_filename does not exist
        """
        if not config.get("bucket"):
            raise InvalidConfigError("Make sure to define bucket for gcs disk")

        key_filename = config.get("key_filename")
        try:
            if key_filename:
                client = storage.Client.from_service_account_json(
                    key_filename, project=config.get("project")
                )
            else:
                client = storage.Client(project=config.get("project"))
        except OSError as err:
            raise handle_error(err, key_filename or "") from err

        logger.info(f"GCS storage initialized with bucket: {config['bucket']}")
        return cls(client.bucket(config["bucket"]))

    def with_bucket(self, name: str) -> "GCSStorageBackend":
        """Return a new driver on the same client bound to another bucket."""
        return type(self)(self.bucket.client.bucket(name))

    def driver(self) -> Any:
        return self.bucket

    def _blob(self, location: str) -> Any:
        return self.bucket.blob(location)

    async def exists(self, location: str) -> ExistsResponse:
        try:
            result = await asyncio.to_thread(self._blob(location).exists)
        except _NATIVE_ERRORS as err:
            raise handle_error(err, location) from err

        return ExistsResponse(exists=result, raw=result)

    async def get_buffer(self, location: str) -> ContentResponse[bytes]:
        try:
            content = await asyncio.to_thread(self._blob(location).download_as_bytes)
        except _NATIVE_ERRORS as err:
            raise handle_error(err, location) from err

        return ContentResponse[bytes](content=content, raw=content)

    def get_stream(self, location: str) -> AsyncIterator[bytes]:
        return self._read_chunks(location)

    async def _read_chunks(self, location: str) -> AsyncIterator[bytes]:
        blob = self._blob(location)

        try:
            reader = await asyncio.to_thread(
                blob.open, "rb", chunk_size=settings.STREAM_CHUNK_SIZE
            )
        except _NATIVE_ERRORS as err:
            raise handle_error(err, location) from err

        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(reader.read, settings.STREAM_CHUNK_SIZE)
                except _NATIVE_ERRORS as err:
                    raise handle_error(err, location) from err
                if not chunk:
                    break
                yield chunk
        finally:
            reader.close()

    async def put(self, location: str, content: Content) -> Response:
        data = iter_content(content, "put")
        blob = self._blob(location)

        if isinstance(data, bytes):
            try:
                result = await asyncio.to_thread(blob.upload_from_string, data)
            except _NATIVE_ERRORS as err:
                raise handle_error(err, location) from err

            logger.info(f"Uploaded {location} ({len(data)} bytes)")
            return Response(raw=result)

        return await self._put_stream(location, blob, data)

    async def _put_stream(self, location: str, blob: Any, stream: AsyncIterator[bytes]) -> Response:
        """
        Pipe a stream into a resumable upload.

        The object is only committed when the writer is closed after the
        last chunk. On failure the writer is discarded instead, so the
        upload session is never finalized and no partial object appears.
        """
        writer = None

        try:
            writer = await asyncio.to_thread(blob.open, "wb")
            async for chunk in stream:
                await asyncio.to_thread(writer.write, chunk)
            await asyncio.to_thread(writer.close)
        except Exception as err:
            if writer is not None:
                _discard_writer(writer)
            if isinstance(err, _NATIVE_ERRORS):
                raise handle_error(err, location) from err
            raise

        logger.info(f"Uploaded stream to {location}")
        return Response(raw=None)

    async def copy(self, src: str, dest: str) -> Response:
        try:
            result = await asyncio.to_thread(
                self.bucket.copy_blob, self._blob(src), self.bucket, dest
            )
        except _NATIVE_ERRORS as err:
            raise handle_error(err, src) from err

        logger.info(f"Copied {src} to {dest}")
        return Response(raw=result)

    async def delete(self, location: str) -> DeleteResponse:
        """
        Delete an object.

        A missing object is reported as was_deleted=False, not raised.
        """
        try:
            result = await asyncio.to_thread(self._blob(location).delete)
        except NotFound as err:
            return DeleteResponse(was_deleted=False, raw=err)
        except _NATIVE_ERRORS as err:
            raise handle_error(err, location) from err

        logger.info(f"Deleted {location}")
        return DeleteResponse(was_deleted=True, raw=result)

    async def get_stat(self, location: str) -> StatResponse:
        blob = self._blob(location)

        try:
            await asyncio.to_thread(blob.reload)
        except _NATIVE_ERRORS as err:
            raise handle_error(err, location) from err

        return StatResponse(size=int(blob.size), modified=blob.updated, raw=blob)

    async def get_signed_url(self, location: str, expiry: int = 900) -> SignedUrlResponse:
        try:
            url = await asyncio.to_thread(
                self._blob(location).generate_signed_url,
                version="v4",
                expiration=timedelta(seconds=expiry),
                method="GET",
            )
        except _NATIVE_ERRORS as err:
            raise handle_error(err, location) from err

        return SignedUrlResponse(signed_url=url, raw=url)

    def get_url(self, location: str) -> str:
        # Neither existence nor visibility of the object is checked
        return f"https://storage.cloud.google.com/{self.bucket.name}/{location}"

    def flat_list(self, prefix: str = "") -> AsyncIterator[FileListEntry]:
        return self._list_pages(prefix)

    async def _list_pages(self, prefix: str) -> AsyncIterator[FileListEntry]:
        pages = self.bucket.list_blobs(prefix=prefix, page_size=LIST_PAGE_SIZE).pages

        while True:
            try:
                page = await asyncio.to_thread(next, pages, None)
            except _NATIVE_ERRORS as err:
                raise handle_error(err, prefix) from err
            if page is None:
                break

            for blob in page:
                yield FileListEntry(path=blob.name)

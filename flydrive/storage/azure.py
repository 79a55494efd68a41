"""
Azure Blob Storage implementation.

Wraps one azure-storage-blob ContainerClient. The synchronous client is
used and every call is awaited through asyncio.to_thread.
"""
import asyncio
import base64
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.storage.blob import (
    BlobBlock,
    BlobSasPermissions,
    BlobServiceClient,
    generate_blob_sas,
)

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
    MethodNotSupportedError,
    NoSuchBucketError,
    PermissionMissingError,
    StorageError,
    UnknownStorageError,
)
from flydrive.utils.streams import iter_content

logger = setup_logging()

BLOCK_SIZE = 4 * 1024 * 1024  # 4MB
LIST_PAGE_SIZE = 1000

_PERMISSION_CODES = {"AuthorizationFailure", "AuthorizationPermissionMismatch"}


def handle_error(err: AzureError, location: str, container: str) -> StorageError:
    """
    Translate an Azure error into the storage error taxonomy.

    The storage error code (x-ms-error-code) wins over the HTTP status.

    Args:
        err: Error raised by the blob client
        location: Blob name the caller was operating on
        container: Container bound to the driver

    Returns:
        The matching StorageError (never raises)
    """
    error_code = getattr(err, "error_code", None)
    status_code = getattr(err, "status_code", None)

    if error_code == "BlobNotFound":
        return FileNotFoundError(location, err)
    if error_code == "ContainerNotFound":
        return NoSuchBucketError(container, err)
    if error_code == "AuthenticationFailed" or isinstance(err, ClientAuthenticationError):
        return AuthorizationRequiredError(location, err)
    if error_code in _PERMISSION_CODES:
        return PermissionMissingError(location, err)
    if error_code is None and status_code == 404:
        return FileNotFoundError(location, err)

    code = error_code or (str(status_code) if status_code else type(err).__name__)
    return UnknownStorageError(str(code), location, err)


def _block_id(index: int) -> str:
    # Every block id of a blob must have the same length
    return base64.b64encode(f"{index:08d}".encode()).decode()


class AzureBlobStorageBackend(StorageBackend):
    """Azure block blobs inside one container."""

    def __init__(self, container_client: Any):
        """
        Initialize Azure storage backend.

        Args:
            container_client: azure.storage.blob.ContainerClient
        """
        self.container_client = container_client

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "AzureBlobStorageBackend":
        """Build a driver from a disk config with container and connection_string."""
        if not config.get("container"):
            raise InvalidConfigError("Make sure to define container for azure disk")
        if not config.get("connection_string"):
            raise InvalidConfigError("Make sure to define connection_string for azure disk")

        service = BlobServiceClient.from_connection_string(config["connection_string"])
        logger.info(f"Azure storage initialized with container: {config['container']}")
        return cls(service.get_container_client(config["container"]))

    def driver(self) -> Any:
        return self.container_client

    @property
    def container(self) -> str:
        return self.container_client.container_name

    def _blob(self, location: str) -> Any:
        return self.container_client.get_blob_client(location)

    def _error(self, err: AzureError, location: str) -> StorageError:
        return handle_error(err, location, self.container)

    async def exists(self, location: str) -> ExistsResponse:
        try:
            result = await asyncio.to_thread(self._blob(location).exists)
        except AzureError as err:
            raise self._error(err, location) from err

        return ExistsResponse(exists=result, raw=result)

    async def get_buffer(self, location: str) -> ContentResponse[bytes]:
        try:
            downloader = await asyncio.to_thread(self._blob(location).download_blob)
            content = await asyncio.to_thread(downloader.readall)
        except AzureError as err:
            raise self._error(err, location) from err

        return ContentResponse[bytes](content=content, raw=downloader)

    def get_stream(self, location: str) -> AsyncIterator[bytes]:
        return self._read_chunks(location)

    async def _read_chunks(self, location: str) -> AsyncIterator[bytes]:
        try:
            downloader = await asyncio.to_thread(self._blob(location).download_blob)
        except AzureError as err:
            raise self._error(err, location) from err

        chunks = downloader.chunks()
        while True:
            try:
                chunk = await asyncio.to_thread(next, chunks, None)
            except AzureError as err:
                raise self._error(err, location) from err
            if chunk is None:
                break
            yield chunk

    async def put(self, location: str, content: Content) -> Response:
        data = iter_content(content, "put")
        blob = self._blob(location)

        if isinstance(data, bytes):
            try:
                result = await asyncio.to_thread(blob.upload_blob, data, overwrite=True)
            except AzureError as err:
                raise self._error(err, location) from err

            logger.info(f"Uploaded {location} ({len(data)} bytes)")
            return Response(raw=result)

        return await self._put_stream(location, blob, data)

    async def _put_stream(self, location: str, blob: Any, stream: AsyncIterator[bytes]) -> Response:
        """
        Stage the stream as 4MB blocks and commit them once it ends.

        Staged blocks are invisible until commit_block_list, so a failure
        on either side leaves the existing blob untouched; uncommitted
        blocks are garbage collected by Azure.
        """
        blocks: list[BlobBlock] = []
        buffer = bytearray()

        async def stage(data: bytes) -> None:
            block_id = _block_id(len(blocks))
            await asyncio.to_thread(blob.stage_block, block_id, data)
            blocks.append(BlobBlock(block_id=block_id))

        try:
            async for chunk in stream:
                buffer.extend(chunk)
                while len(buffer) >= BLOCK_SIZE:
                    await stage(bytes(buffer[:BLOCK_SIZE]))
                    del buffer[:BLOCK_SIZE]

            if buffer:
                await stage(bytes(buffer))

            # An empty block list commits an empty blob
            result = await asyncio.to_thread(blob.commit_block_list, blocks)
        except AzureError as err:
            raise self._error(err, location) from err

        logger.info(f"Uploaded stream to {location} ({len(blocks)} blocks)")
        return Response(raw=result)

    async def copy(self, src: str, dest: str) -> Response:
        """Server-side copy from a read-only signed URL of src."""
        source = await self.get_signed_url(src)

        try:
            result = await asyncio.to_thread(
                self._blob(dest).start_copy_from_url, source.signed_url, requires_sync=True
            )
        except AzureError as err:
            raise self._error(err, src) from err

        logger.info(f"Copied {src} to {dest}")
        return Response(raw=result)

    async def delete(self, location: str) -> DeleteResponse:
        """
        Delete a blob.

        A missing blob is reported as was_deleted=False, not raised.
        """
        try:
            result = await asyncio.to_thread(self._blob(location).delete_blob)
        except AzureError as err:
            error = self._error(err, location)
            if isinstance(error, FileNotFoundError):
                return DeleteResponse(was_deleted=False, raw=err)
            raise error from err

        logger.info(f"Deleted {location}")
        return DeleteResponse(was_deleted=True, raw=result)

    async def get_stat(self, location: str) -> StatResponse:
        try:
            properties = await asyncio.to_thread(self._blob(location).get_blob_properties)
        except AzureError as err:
            raise self._error(err, location) from err

        return StatResponse(
            size=properties.size,
            modified=properties.last_modified,
            raw=properties,
        )

    async def get_signed_url(self, location: str, expiry: int = 900) -> SignedUrlResponse:
        """
        Append a read-only SAS token to the blob URL.

        The token is signed locally with the account key, so the container
        client must have been built with a shared key credential.

        Raises:
            MethodNotSupportedError: If no account key is available
        """
        account_key = getattr(self.container_client.credential, "account_key", None)
        if not account_key:
            raise MethodNotSupportedError(
                "get_signed_url without a shared key credential", type(self).__name__
            )

        starts_on = datetime.now(timezone.utc)
        token = generate_blob_sas(
            account_name=self.container_client.account_name,
            container_name=self.container,
            blob_name=location,
            account_key=account_key,
            permission=BlobSasPermissions(read=True),
            start=starts_on,
            expiry=starts_on + timedelta(seconds=expiry),
        )

        return SignedUrlResponse(signed_url=f"{self._blob(location).url}?{token}", raw=token)

    def get_url(self, location: str) -> str:
        return self._blob(location).url

    def flat_list(self, prefix: str = "") -> AsyncIterator[FileListEntry]:
        return self._list_pages(prefix)

    async def _list_pages(self, prefix: str) -> AsyncIterator[FileListEntry]:
        pages = self.container_client.list_blobs(
            name_starts_with=prefix, results_per_page=LIST_PAGE_SIZE
        ).by_page()

        while True:
            try:
                page = await asyncio.to_thread(next, pages, None)
            except AzureError as err:
                raise self._error(err, prefix) from err
            if page is None:
                break

            for blob in page:
                yield FileListEntry(path=blob.name)

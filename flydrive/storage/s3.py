"""
S3-compatible storage implementation.

Uses boto3 to talk to AWS S3 or any S3-compatible endpoint (MinIO, R2...).
boto3 is blocking, so every client call is awaited through
asyncio.to_thread to keep the event loop free.
"""
import asyncio
from typing import Any, AsyncIterator

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

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
    NoSuchBucketError,
    PermissionMissingError,
    StorageError,
    UnknownStorageError,
)
from flydrive.utils.streams import iter_content

logger = setup_logging()

# S3 requires at least 5MB for every multipart part but the last one
MULTIPART_PART_SIZE = 8 * 1024 * 1024  # 8MB
LIST_PAGE_SIZE = 1000

_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}
_PERMISSION_CODES = {"AllAccessDisabled", "AccessDenied", "403"}
_AUTHORIZATION_CODES = {"InvalidAccessKeyId", "SignatureDoesNotMatch", "InvalidToken", "ExpiredToken"}


def handle_error(err: Exception, location: str, bucket: str) -> StorageError:
    """
    Translate a botocore error into the storage error taxonomy.

    Args:
        err: Error raised by the boto3 client
        location: Key the caller was operating on
        bucket: Bucket bound to the driver

    Returns:
        The matching StorageError (never raises)
    """
    if isinstance(err, NoCredentialsError):
        return AuthorizationRequiredError(location, err)

    if isinstance(err, ClientError):
        code = str(err.response.get("Error", {}).get("Code", ""))

        if code == "NoSuchBucket":
            return NoSuchBucketError(bucket, err)
        if code in _NOT_FOUND_CODES:
            return FileNotFoundError(location, err)
        if code in _PERMISSION_CODES:
            return PermissionMissingError(location, err)
        if code in _AUTHORIZATION_CODES:
            return AuthorizationRequiredError(location, err)
        return UnknownStorageError(code or None, location, err)

    return UnknownStorageError(type(err).__name__, location, err)


def _is_missing(err: ClientError) -> bool:
    status = err.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    code = str(err.response.get("Error", {}).get("Code", ""))
    return status == 404 or code in _NOT_FOUND_CODES


class S3StorageBackend(StorageBackend):
    """
    S3 storage bound to one bucket.

    Switching buckets produces a new driver through with_bucket() instead
    of mutating this one, so instances handed out earlier keep their bucket.
    """

    def __init__(self, client: Any, bucket: str):
        """
        Initialize S3 storage backend.

        Args:
            client: boto3 S3 client
            bucket: Bucket name
        """
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "S3StorageBackend":
        """
        Build a driver and its boto3 client from a disk config.

        Recognized keys: bucket (required), key, secret, region, endpoint.
        """
        if not config.get("bucket"):
            raise InvalidConfigError("Make sure to define bucket for s3 disk")

        client = boto3.client(
            "s3",
            aws_access_key_id=config.get("key"),
            aws_secret_access_key=config.get("secret"),
            region_name=config.get("region"),
            endpoint_url=config.get("endpoint"),
            config=Config(signature_version="s3v4"),
        )
        logger.info(f"S3 storage initialized with bucket: {config['bucket']}")
        return cls(client, config["bucket"])

    def with_bucket(self, bucket: str) -> "S3StorageBackend":
        """Return a new driver on the same client bound to another bucket."""
        return type(self)(self.client, bucket)

    def driver(self) -> Any:
        return self.client

    def _error(self, err: Exception, location: str) -> StorageError:
        return handle_error(err, location, self.bucket)

    async def exists(self, location: str) -> ExistsResponse:
        try:
            result = await asyncio.to_thread(
                self.client.head_object, Bucket=self.bucket, Key=location
            )
        except ClientError as err:
            if _is_missing(err):
                return ExistsResponse(exists=False, raw=err.response)
            raise self._error(err, location) from err
        except BotoCoreError as err:
            raise self._error(err, location) from err

        return ExistsResponse(exists=True, raw=result)

    async def get_buffer(self, location: str) -> ContentResponse[bytes]:
        try:
            result = await asyncio.to_thread(
                self.client.get_object, Bucket=self.bucket, Key=location
            )
            body = result["Body"]
            try:
                content = await asyncio.to_thread(body.read)
            finally:
                body.close()
        except (ClientError, BotoCoreError) as err:
            raise self._error(err, location) from err

        return ContentResponse[bytes](content=content, raw=result)

    def get_stream(self, location: str) -> AsyncIterator[bytes]:
        return self._read_chunks(location)

    async def _read_chunks(self, location: str) -> AsyncIterator[bytes]:
        try:
            result = await asyncio.to_thread(
                self.client.get_object, Bucket=self.bucket, Key=location
            )
        except (ClientError, BotoCoreError) as err:
            raise self._error(err, location) from err

        body = result["Body"]
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(body.read, settings.STREAM_CHUNK_SIZE)
                except (ClientError, BotoCoreError) as err:
                    raise self._error(err, location) from err
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def put(self, location: str, content: Content) -> Response:
        data = iter_content(content, "put")

        if isinstance(data, bytes):
            try:
                result = await asyncio.to_thread(
                    self.client.put_object, Bucket=self.bucket, Key=location, Body=data
                )
            except (ClientError, BotoCoreError) as err:
                raise self._error(err, location) from err

            logger.info(f"Uploaded {location} ({len(data)} bytes)")
            return Response(raw=result)

        return await self._put_stream(location, data)

    async def _put_stream(self, location: str, stream: AsyncIterator[bytes]) -> Response:
        """
        Upload a stream with a multipart upload, one part per 8MB.

        A stream that ends before filling the first part is sent with a
        single put_object. If either the source stream or S3 fails, the
        multipart upload is aborted so no partial object is left behind.
        """
        upload_id = None
        parts: list[dict[str, Any]] = []
        buffer = bytearray()

        try:
            async for chunk in stream:
                buffer.extend(chunk)

                while len(buffer) >= MULTIPART_PART_SIZE:
                    if upload_id is None:
                        created = await asyncio.to_thread(
                            self.client.create_multipart_upload,
                            Bucket=self.bucket,
                            Key=location,
                        )
                        upload_id = created["UploadId"]

                    part = bytes(buffer[:MULTIPART_PART_SIZE])
                    del buffer[:MULTIPART_PART_SIZE]
                    parts.append(await self._upload_part(location, upload_id, len(parts) + 1, part))

            if upload_id is None:
                result = await asyncio.to_thread(
                    self.client.put_object,
                    Bucket=self.bucket,
                    Key=location,
                    Body=bytes(buffer),
                )
            else:
                if buffer:
                    parts.append(
                        await self._upload_part(location, upload_id, len(parts) + 1, bytes(buffer))
                    )
                result = await asyncio.to_thread(
                    self.client.complete_multipart_upload,
                    Bucket=self.bucket,
                    Key=location,
                    UploadId=upload_id,
                    MultipartUpload={"Parts": parts},
                )

        except Exception as err:
            if upload_id is not None:
                await self._abort_upload(location, upload_id)
            if isinstance(err, (ClientError, BotoCoreError)):
                raise self._error(err, location) from err
            raise

        logger.info(f"Uploaded stream to {location} ({max(len(parts), 1)} parts)")
        return Response(raw=result)

    async def _upload_part(
        self, location: str, upload_id: str, part_number: int, body: bytes
    ) -> dict[str, Any]:
        result = await asyncio.to_thread(
            self.client.upload_part,
            Bucket=self.bucket,
            Key=location,
            UploadId=upload_id,
            PartNumber=part_number,
            Body=body,
        )
        return {"ETag": result["ETag"], "PartNumber": part_number}

    async def _abort_upload(self, location: str, upload_id: str) -> None:
        try:
            await asyncio.to_thread(
                self.client.abort_multipart_upload,
                Bucket=self.bucket,
                Key=location,
                UploadId=upload_id,
            )
        except (ClientError, BotoCoreError) as err:
            logger.error(f"Failed to abort multipart upload {upload_id} for {location}: {err}")

    async def copy(self, src: str, dest: str) -> Response:
        try:
            result = await asyncio.to_thread(
                self.client.copy_object,
                Bucket=self.bucket,
                Key=dest,
                CopySource={"Bucket": self.bucket, "Key": src},
            )
        except (ClientError, BotoCoreError) as err:
            raise self._error(err, src) from err

        logger.info(f"Copied {src} to {dest}")
        return Response(raw=result)

    async def delete(self, location: str) -> DeleteResponse:
        """
        Delete an object.

        S3 answers a delete the same way whether or not the key existed, so
        was_deleted is always None and a missing key is not an error.
        """
        try:
            result = await asyncio.to_thread(
                self.client.delete_object, Bucket=self.bucket, Key=location
            )
        except (ClientError, BotoCoreError) as err:
            raise self._error(err, location) from err

        logger.info(f"Deleted {location}")
        return DeleteResponse(was_deleted=None, raw=result)

    async def get_stat(self, location: str) -> StatResponse:
        try:
            result = await asyncio.to_thread(
                self.client.head_object, Bucket=self.bucket, Key=location
            )
        except (ClientError, BotoCoreError) as err:
            raise self._error(err, location) from err

        return StatResponse(
            size=result["ContentLength"],
            modified=result["LastModified"],
            raw=result,
        )

    async def get_signed_url(self, location: str, expiry: int = 900) -> SignedUrlResponse:
        # Presigning is computed locally, no request is sent
        try:
            url = self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": location},
                ExpiresIn=expiry,
            )
        except (ClientError, BotoCoreError) as err:
            raise self._error(err, location) from err

        return SignedUrlResponse(signed_url=url, raw=url)

    def get_url(self, location: str) -> str:
        endpoint = self.client.meta.endpoint_url.rstrip("/")

        if endpoint.startswith("https://s3.") and endpoint.endswith("amazonaws.com"):
            return f"https://{self.bucket}.s3.amazonaws.com/{location}"

        return f"{endpoint}/{self.bucket}/{location}"

    def flat_list(self, prefix: str = "") -> AsyncIterator[FileListEntry]:
        return self._list_pages(prefix)

    async def _list_pages(self, prefix: str) -> AsyncIterator[FileListEntry]:
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Prefix": prefix,
            "MaxKeys": LIST_PAGE_SIZE,
        }

        while True:
            try:
                response = await asyncio.to_thread(self.client.list_objects_v2, **params)
            except (ClientError, BotoCoreError) as err:
                raise self._error(err, prefix) from err

            for item in response.get("Contents", []):
                yield FileListEntry(path=item["Key"])

            if not response.get("IsTruncated"):
                break
            params["ContinuationToken"] = response["NextContinuationToken"]

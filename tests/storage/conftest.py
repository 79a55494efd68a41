"""
Conftest for storage tests - in-memory stand-ins for the cloud SDK clients.

The fakes only implement the calls the drivers make and raise the SDKs'
own exception types, so error translation is exercised for real.
"""
import io
from datetime import datetime, timezone
from types import SimpleNamespace
from urllib.parse import urlparse

import pytest
from azure.core.exceptions import ResourceNotFoundError
from botocore.exceptions import ClientError
from botocore.response import StreamingBody
from google.api_core.exceptions import NotFound

from flydrive.storage.azure import AzureBlobStorageBackend
from flydrive.storage.gcs import GCSStorageBackend
from flydrive.storage.s3 import S3StorageBackend

MODIFIED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def s3_error(code: str, status: int, operation: str) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} error"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class FakeS3Client:
    """Subset of the boto3 S3 client backed by a dict per bucket."""

    def __init__(self, endpoint_url="https://s3.us-east-1.amazonaws.com"):
        self.buckets = {"test-bucket": {}}
        self.meta = SimpleNamespace(endpoint_url=endpoint_url)
        self.calls = []
        self.uploads = {}
        self.aborted = []
        self.errors = {}

    def _record(self, name, **kwargs):
        self.calls.append(name)
        if name in self.errors:
            raise self.errors[name]
        bucket = kwargs.get("Bucket")
        if bucket is not None and bucket not in self.buckets:
            raise s3_error("NoSuchBucket", 404, name)
        return self.buckets.get(bucket)

    def head_object(self, Bucket, Key):
        objects = self._record("head_object", Bucket=Bucket)
        if Key not in objects:
            raise s3_error("404", 404, "HeadObject")
        return {"ContentLength": len(objects[Key]), "LastModified": MODIFIED}

    def get_object(self, Bucket, Key):
        objects = self._record("get_object", Bucket=Bucket)
        if Key not in objects:
            raise s3_error("NoSuchKey", 404, "GetObject")
        data = objects[Key]
        return {"Body": StreamingBody(io.BytesIO(data), len(data)), "ContentLength": len(data)}

    def put_object(self, Bucket, Key, Body):
        objects = self._record("put_object", Bucket=Bucket)
        objects[Key] = bytes(Body)
        return {"ETag": '"etag"'}

    def create_multipart_upload(self, Bucket, Key):
        self._record("create_multipart_upload", Bucket=Bucket)
        upload_id = f"upload-{len(self.uploads) + 1}"
        self.uploads[upload_id] = {}
        return {"UploadId": upload_id}

    def upload_part(self, Bucket, Key, UploadId, PartNumber, Body):
        self._record("upload_part", Bucket=Bucket)
        self.uploads[UploadId][PartNumber] = bytes(Body)
        return {"ETag": f'"part-{PartNumber}"'}

    def complete_multipart_upload(self, Bucket, Key, UploadId, MultipartUpload):
        objects = self._record("complete_multipart_upload", Bucket=Bucket)
        parts = self.uploads.pop(UploadId)
        numbers = [part["PartNumber"] for part in MultipartUpload["Parts"]]
        objects[Key] = b"".join(parts[number] for number in numbers)
        return {"Key": Key}

    def abort_multipart_upload(self, Bucket, Key, UploadId):
        self._record("abort_multipart_upload", Bucket=Bucket)
        self.uploads.pop(UploadId, None)
        self.aborted.append(UploadId)
        return {}

    def copy_object(self, Bucket, Key, CopySource):
        objects = self._record("copy_object", Bucket=Bucket)
        source = self.buckets[CopySource["Bucket"]]
        if CopySource["Key"] not in source:
            raise s3_error("NoSuchKey", 404, "CopyObject")
        objects[Key] = source[CopySource["Key"]]
        return {"CopyObjectResult": {}}

    def delete_object(self, Bucket, Key):
        objects = self._record("delete_object", Bucket=Bucket)
        objects.pop(Key, None)
        return {"ResponseMetadata": {"HTTPStatusCode": 204}}

    def list_objects_v2(self, Bucket, Prefix, MaxKeys, ContinuationToken=None):
        objects = self._record("list_objects_v2", Bucket=Bucket)
        keys = sorted(key for key in objects if key.startswith(Prefix))
        start = int(ContinuationToken or 0)
        page = keys[start:start + MaxKeys]
        response = {"Contents": [{"Key": key} for key in page]}
        if start + MaxKeys < len(keys):
            response["IsTruncated"] = True
            response["NextContinuationToken"] = str(start + MaxKeys)
        else:
            response["IsTruncated"] = False
        return response

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return (
            f"{self.meta.endpoint_url}/{Params['Bucket']}/{Params['Key']}"
            f"?X-Amz-Expires={ExpiresIn}&method={ClientMethod}"
        )


class FakeGCSWriter(io.BufferedIOBase):
    """
    Mirrors google.cloud.storage.fileio.BlobWriter: close() commits the
    buffered bytes unless the buffer is already closed, and IOBase runs
    close() again when the writer is garbage collected.
    """

    def __init__(self, blob):
        self.blob = blob
        self._buffer = io.BytesIO()
        self.commits = []

    @property
    def closed(self):
        return self._buffer.closed

    def writable(self):
        return True

    def write(self, data):
        if self.blob.bucket.write_error is not None:
            raise self.blob.bucket.write_error
        return self._buffer.write(data)

    def close(self):
        if not self._buffer.closed:
            data = self._buffer.getvalue()
            self.commits.append(data)
            self.blob.bucket.objects[self.blob.name] = data
        self._buffer.close()


class FakeGCSBlob:
    """Subset of google.cloud.storage.Blob."""

    def __init__(self, bucket, name):
        self.bucket = bucket
        self.name = name
        self.size = None
        self.updated = None

    def _data(self):
        if self.name not in self.bucket.objects:
            raise NotFound(f"No such object: {self.bucket.name}/{self.name}")
        return self.bucket.objects[self.name]

    def exists(self):
        return self.name in self.bucket.objects

    def download_as_bytes(self):
        return self._data()

    def open(self, mode, chunk_size=None):
        if mode == "rb":
            return io.BytesIO(self._data())
        writer = FakeGCSWriter(self)
        self.bucket.writers.append(writer)
        return writer

    def upload_from_string(self, data):
        self.bucket.objects[self.name] = bytes(data)

    def delete(self):
        self._data()
        del self.bucket.objects[self.name]

    def reload(self):
        self.size = len(self._data())
        self.updated = MODIFIED

    def generate_signed_url(self, version, expiration, method):
        seconds = int(expiration.total_seconds())
        return (
            f"https://storage.googleapis.com/{self.bucket.name}/{self.name}"
            f"?X-Goog-Expires={seconds}&X-Goog-Algorithm={version}"
        )


class FakeGCSBucket:
    """Subset of google.cloud.storage.Bucket."""

    def __init__(self, name="test-bucket", client=None):
        self.name = name
        self.client = client or SimpleNamespace(bucket=lambda other: FakeGCSBucket(other))
        self.objects = {}
        self.writers = []
        self.write_error = None
        self.pages_fetched = 0

    def blob(self, name):
        return FakeGCSBlob(self, name)

    def copy_blob(self, blob, destination_bucket, new_name):
        destination_bucket.objects[new_name] = blob._data()
        return destination_bucket.blob(new_name)

    def list_blobs(self, prefix, page_size):
        return SimpleNamespace(pages=self._pages(prefix, page_size))

    def _pages(self, prefix, page_size):
        names = sorted(name for name in self.objects if name.startswith(prefix))
        for start in range(0, len(names), page_size):
            self.pages_fetched += 1
            yield [SimpleNamespace(name=name) for name in names[start:start + page_size]]


def azure_error(error_code, status_code, message="Azure error"):
    err = ResourceNotFoundError(message)
    err.error_code = error_code
    err.status_code = status_code
    return err


class FakeAzureDownloader:
    def __init__(self, data, chunk_size):
        self.data = data
        self.chunk_size = chunk_size

    def readall(self):
        return self.data

    def chunks(self):
        for start in range(0, len(self.data), self.chunk_size):
            yield self.data[start:start + self.chunk_size]


class FakeAzureBlobClient:
    """Subset of azure.storage.blob.BlobClient."""

    def __init__(self, container, name):
        self.container = container
        self.blob_name = name
        self.url = (
            f"https://{container.account_name}.blob.core.windows.net/"
            f"{container.container_name}/{name}"
        )

    def _data(self):
        if self.blob_name not in self.container.objects:
            raise azure_error("BlobNotFound", 404, "The specified blob does not exist.")
        return self.container.objects[self.blob_name]

    def exists(self):
        return self.blob_name in self.container.objects

    def download_blob(self):
        return FakeAzureDownloader(self._data(), chunk_size=4)

    def upload_blob(self, data, overwrite=False):
        self.container.objects[self.blob_name] = bytes(data)
        return {"etag": "etag"}

    def stage_block(self, block_id, data):
        self.container.staged[(self.blob_name, block_id)] = bytes(data)

    def commit_block_list(self, blocks):
        staged = self.container.staged
        self.container.committed_blocks.append([block.id for block in blocks])
        self.container.objects[self.blob_name] = b"".join(
            staged.pop((self.blob_name, block.id)) for block in blocks
        )
        return {"etag": "etag"}

    def start_copy_from_url(self, source_url, requires_sync=False):
        self.container.copy_sources.append(source_url)
        path = urlparse(source_url).path
        source_name = path.split(f"/{self.container.container_name}/", 1)[1]
        source = self.container.get_blob_client(source_name)
        self.container.objects[self.blob_name] = source._data()
        return {"copy_status": "success"}

    def delete_blob(self):
        self._data()
        del self.container.objects[self.blob_name]

    def get_blob_properties(self):
        return SimpleNamespace(size=len(self._data()), last_modified=MODIFIED)


class FakeAzureContainerClient:
    """Subset of azure.storage.blob.ContainerClient."""

    def __init__(self, account_key="c2VjcmV0LWtleQ=="):
        self.account_name = "testaccount"
        self.container_name = "test-container"
        self.credential = SimpleNamespace(account_name=self.account_name, account_key=account_key)
        self.objects = {}
        self.staged = {}
        self.committed_blocks = []
        self.copy_sources = []
        self.pages_fetched = 0

    def get_blob_client(self, name):
        return FakeAzureBlobClient(self, name)

    def list_blobs(self, name_starts_with, results_per_page):
        return SimpleNamespace(by_page=lambda: self._pages(name_starts_with, results_per_page))

    def _pages(self, prefix, page_size):
        names = sorted(name for name in self.objects if name.startswith(prefix))
        for start in range(0, len(names), page_size):
            self.pages_fetched += 1
            yield iter([SimpleNamespace(name=name) for name in names[start:start + page_size]])


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def s3_storage(s3_client):
    return S3StorageBackend(s3_client, "test-bucket")


@pytest.fixture
def gcs_bucket():
    return FakeGCSBucket()


@pytest.fixture
def gcs_storage(gcs_bucket):
    return GCSStorageBackend(gcs_bucket)


@pytest.fixture
def azure_container():
    return FakeAzureContainerClient()


@pytest.fixture
def azure_storage(azure_container):
    return AzureBlobStorageBackend(azure_container)

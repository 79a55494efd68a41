"""
Local filesystem storage implementation.

This module provides a local filesystem implementation of the storage backend
with async file operations. Every location is resolved under the configured
root directory and can never address a path outside of it.
"""
import errno
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import aiofiles
import aiofiles.os

from flydrive.config import settings
from flydrive.logging_config import setup_logging
from flydrive.schemas.responses import (
    ContentResponse,
    DeleteResponse,
    ExistsResponse,
    FileListEntry,
    Response,
    StatResponse,
)
from flydrive.storage.base import Content, StorageBackend
from flydrive.storage.exceptions import (
    FileNotFoundError,
    InvalidInputError,
    PermissionMissingError,
    StorageError,
    UnknownStorageError,
)
from flydrive.utils.streams import iter_content

logger = setup_logging()

_copy_file = aiofiles.os.wrap(shutil.copy2)

_MISSING_ERRNOS = (errno.ENOENT, errno.ENOTDIR)


def handle_error(err: OSError, location: str) -> StorageError:
    """
    Translate an OS error into the storage error taxonomy.

    Args:
        err: Error raised by a filesystem call
        location: Location the caller was operating on

    Returns:
        The matching StorageError (never raises)
    """
    if err.errno == errno.ENOENT:
        return FileNotFoundError(location, err)
    if err.errno in (errno.EPERM, errno.EACCES):
        return PermissionMissingError(location, err)

    code = errno.errorcode.get(err.errno) if err.errno else None
    return UnknownStorageError(code or type(err).__name__, location, err)


class LocalStorageBackend(StorageBackend):
    """
    Local filesystem storage with async operations.

    Locations are normalized lexically before use: a leading "/" or any
    number of ".." segments are clamped to the root, so
    "../../../file" and "/file" both resolve to <root>/file.
    """

    def __init__(self, root: str):
        """
        Initialize local storage backend.

        Args:
            root: Root directory of the disk (resolved to an absolute path)
        """
        self.root = Path(root).resolve()
        logger.info(f"Local storage initialized at {self.root}")

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "LocalStorageBackend":
        # An empty root means the current working directory
        return cls(root=config.get("root") or ".")

    def driver(self) -> Any:
        return aiofiles

    def _full_path(self, location: str) -> str:
        """
        Resolve a location to an absolute path under the root.

        A trailing "/" is kept so that directory prefixes stay distinct
        from file-name prefixes in flat_list().
        """
        # normpath of an absolute path drops every ".." that would climb above "/"
        normalized = os.path.normpath("/" + location).lstrip("/")
        full_path = os.path.join(str(self.root), normalized) if normalized else str(self.root)

        if (not normalized or location.endswith("/")) and not full_path.endswith(os.sep):
            full_path += os.sep

        return full_path

    def _relative(self, full_path: str) -> str:
        return Path(os.path.relpath(full_path, self.root)).as_posix()

    async def exists(self, location: str) -> ExistsResponse:
        full_path = self._full_path(location)

        try:
            result = await aiofiles.os.stat(full_path)
        except OSError as err:
            if err.errno in _MISSING_ERRNOS:
                return ExistsResponse(exists=False, raw=err)
            raise handle_error(err, location) from err

        return ExistsResponse(exists=True, raw=result)

    async def get_buffer(self, location: str) -> ContentResponse[bytes]:
        full_path = self._full_path(location)

        try:
            async with aiofiles.open(full_path, "rb") as f:
                content = await f.read()
        except OSError as err:
            raise handle_error(err, location) from err

        return ContentResponse[bytes](content=content, raw=content)

    def get_stream(self, location: str) -> AsyncIterator[bytes]:
        return self._read_chunks(location)

    async def _read_chunks(self, location: str) -> AsyncIterator[bytes]:
        full_path = self._full_path(location)

        try:
            async with aiofiles.open(full_path, "rb") as f:
                while True:
                    chunk = await f.read(settings.STREAM_CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk
        except OSError as err:
            raise handle_error(err, location) from err

    async def put(self, location: str, content: Content) -> Response:
        return await self._write(location, content, "put", "wb")

    async def append(self, location: str, content: Content) -> Response:
        return await self._write(location, content, "append", "ab")

    async def prepend(self, location: str, content: str | bytes) -> Response:
        data = iter_content(content, "prepend")
        if not isinstance(data, bytes):
            raise InvalidInputError(
                "content", "prepend", "only bytes and strings are supported"
            )

        try:
            current = (await self.get_buffer(location)).content
        except FileNotFoundError:
            current = b""

        return await self.put(location, data + current)

    async def _write(self, location: str, content: Content, method: str, mode: str) -> Response:
        """
        Write content to disk, streaming it chunk by chunk when needed.

        Any failure, from the source stream or from the file itself, goes
        through the same path: the partial file is removed (unless
        appending) and the error is raised once.
        """
        data = iter_content(content, method)
        full_path = self._full_path(location)

        try:
            await aiofiles.os.makedirs(os.path.dirname(full_path), exist_ok=True)

            async with aiofiles.open(full_path, mode) as f:
                if isinstance(data, bytes):
                    written = await f.write(data)
                else:
                    written = 0
                    async for chunk in data:
                        written += await f.write(chunk)

        except Exception as err:
            if mode == "wb":
                await self._remove_partial(full_path)
            if isinstance(err, OSError):
                raise handle_error(err, location) from err
            raise

        logger.info(f"Wrote {written} bytes to {location}")
        return Response(raw=written)

    async def _remove_partial(self, full_path: str) -> None:
        try:
            await aiofiles.os.remove(full_path)
        except OSError as err:
            if err.errno not in _MISSING_ERRNOS:
                logger.error(f"Failed to remove partial file {full_path}: {err}")

    async def copy(self, src: str, dest: str) -> Response:
        src_path = self._full_path(src)
        dest_path = self._full_path(dest)

        try:
            await aiofiles.os.makedirs(os.path.dirname(dest_path), exist_ok=True)
            result = await _copy_file(src_path, dest_path)
        except OSError as err:
            raise handle_error(err, src) from err

        logger.info(f"Copied {src} to {dest}")
        return Response(raw=result)

    async def delete(self, location: str) -> DeleteResponse:
        """
        Delete a file and prune the directories it leaves empty.

        Parent directories up to the root are removed once the file was
        their last entry, so exists() on such a directory turns False even
        if it was created on purpose.

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        full_path = self._full_path(location)

        try:
            await aiofiles.os.remove(full_path)
        except OSError as err:
            raise handle_error(err, location) from err

        await self._prune_empty_directories(os.path.dirname(full_path))

        logger.info(f"Deleted {location}")
        return DeleteResponse(was_deleted=True, raw=None)

    async def _prune_empty_directories(self, directory: str) -> None:
        root = str(self.root)

        while directory != root and directory.startswith(root + os.sep):
            try:
                await aiofiles.os.rmdir(directory)
            except OSError:
                # Not empty, or already removed by a concurrent delete
                break
            directory = os.path.dirname(directory)

    async def get_stat(self, location: str) -> StatResponse:
        full_path = self._full_path(location)

        try:
            stat = await aiofiles.os.stat(full_path)
        except OSError as err:
            raise handle_error(err, location) from err

        return StatResponse(
            size=stat.st_size,
            modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            raw=stat,
        )

    def flat_list(self, prefix: str = "") -> AsyncIterator[FileListEntry]:
        return self._flat_list_absolute(self._full_path(prefix))

    async def _flat_list_absolute(self, prefix: str) -> AsyncIterator[FileListEntry]:
        """
        Walk the tree depth-first below the directory containing prefix.

        Only entries whose absolute path starts with prefix are kept, so
        "dir/" lists the directory while "dir/ab" matches files and
        subdirectories starting with "ab".
        """
        directory = prefix if prefix.endswith(os.sep) else os.path.dirname(prefix)

        try:
            with await aiofiles.os.scandir(directory) as entries:
                children = [(entry.name, entry.is_dir(), entry.is_file()) for entry in entries]
        except OSError as err:
            if err.errno in _MISSING_ERRNOS:
                return
            raise handle_error(err, self._relative(directory)) from err

        for name, is_dir, is_file in children:
            path = os.path.join(directory, name)
            if not path.startswith(prefix):
                continue

            if is_dir:
                async for entry in self._flat_list_absolute(path + os.sep):
                    yield entry
            elif is_file:
                yield FileListEntry(path=self._relative(path))

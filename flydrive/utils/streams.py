"""Helpers for the three content shapes accepted by ``put``."""
import asyncio
from typing import Any, AsyncIterable, AsyncIterator

from flydrive.config import settings
from flydrive.storage.exceptions import InvalidInputError


def iter_content(content: Any, method: str) -> bytes | AsyncIterator[bytes]:
    """
    Normalize ``put`` content.

    Args:
        content: bytes-like buffer, text, async byte iterable or binary file
        method: Operation name used in the InvalidInputError message

    Returns:
        The whole payload as bytes for buffers and text, otherwise an async
        iterator over the stream's chunks

    Raises:
        InvalidInputError: If content is none of the supported shapes
    """
    if isinstance(content, str):
        return content.encode("utf-8")

    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content)

    if hasattr(content, "__aiter__"):
        return _iter_async(content, method)

    if callable(getattr(content, "read", None)):
        return _iter_file(content, method)

    raise InvalidInputError(
        "content", method, "only bytes, byte streams and strings are supported"
    )


async def _iter_async(stream: AsyncIterable[Any], method: str) -> AsyncIterator[bytes]:
    async for chunk in stream:
        yield _as_bytes(chunk, method)


async def _iter_file(file: Any, method: str) -> AsyncIterator[bytes]:
    while True:
        chunk = await asyncio.to_thread(file.read, settings.STREAM_CHUNK_SIZE)
        if not chunk:
            break
        yield _as_bytes(chunk, method)


def _as_bytes(chunk: Any, method: str) -> bytes:
    if isinstance(chunk, (bytes, bytearray, memoryview)):
        return bytes(chunk)
    raise InvalidInputError(
        "content", method, f"byte streams must yield bytes, got {type(chunk).__name__}"
    )


async def stream_to_bytes(stream: AsyncIterable[bytes]) -> bytes:
    """Drain an async byte stream into memory."""
    chunks = []
    async for chunk in stream:
        chunks.append(chunk)
    return b"".join(chunks)


async def stream_to_string(stream: AsyncIterable[bytes], encoding: str = "utf-8") -> str:
    """Drain an async byte stream and decode it."""
    return (await stream_to_bytes(stream)).decode(encoding)

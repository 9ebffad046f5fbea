"""Streaming tar.gz extraction.

Hosting providers wrap every archive in a single top-level directory
(`<repo>-<ref>/`). That component is stripped from each entry so plugin
files land directly in the plugin's directory.

Decompression and unpacking are blocking, so they run in a worker thread
that pulls chunks from a small bounded queue filled by the download. Only a
handful of chunks per plugin are ever held in memory.
"""

import asyncio
import logging
import tarfile
from collections.abc import AsyncIterator
from pathlib import Path

from .exceptions import ExtractError

logger = logging.getLogger(__name__)

QUEUE_SIZE = 8

_END = object()
_ABORT = object()


class _StreamAborted(Exception):
    """The download feeding the extraction failed."""


class _ChunkReader:
    """Blocking file-like reader over an asyncio queue of byte chunks.

    Used from the extraction worker thread only. Each read waits on the
    event loop for the next chunk.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
        self._loop = loop
        self._queue = queue
        self._buffer = b""
        self._eof = False

    def _next_chunk(self) -> None:
        item = asyncio.run_coroutine_threadsafe(self._queue.get(), self._loop).result()
        if item is _ABORT:
            raise _StreamAborted()
        if item is _END:
            self._eof = True
        else:
            self._buffer = item

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            chunks = [self._buffer]
            self._buffer = b""
            while not self._eof:
                self._next_chunk()
                chunks.append(self._buffer)
                self._buffer = b""
            return b"".join(chunks)

        while not self._buffer and not self._eof:
            self._next_chunk()

        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data


def _strip_leading_component(member: tarfile.TarInfo) -> tarfile.TarInfo | None:
    """Return the member relocated one level up, or None for the wrapper itself.

    Raises:
        ExtractError: For absolute paths or `..` segments
    """
    if member.name.startswith("/"):
        raise ExtractError(f"Refusing absolute path in archive: {member.name}", context={"entry": member.name})

    parts = [p for p in member.name.split("/") if p not in ("", ".")]
    if ".." in parts:
        raise ExtractError(f"Refusing path traversal in archive: {member.name}", context={"entry": member.name})
    if len(parts) < 2:
        return None

    changes = {"name": "/".join(parts[1:])}
    if member.islnk():
        link_parts = [p for p in member.linkname.split("/") if p not in ("", ".")]
        if ".." in link_parts or len(link_parts) < 2:
            raise ExtractError(
                f"Refusing hard link outside the plugin: {member.name} -> {member.linkname}",
                context={"entry": member.name},
            )
        changes["linkname"] = "/".join(link_parts[1:])

    return member.replace(**changes, deep=False)


def _unpack(reader: _ChunkReader, target_dir: Path) -> int:
    """Unpack a gzip-compressed tar stream into target_dir. Runs in a worker thread."""
    count = 0
    try:
        with tarfile.open(fileobj=reader, mode="r|gz") as archive:
            for member in archive:
                relocated = _strip_leading_component(member)
                if relocated is None:
                    continue
                archive.extract(relocated, target_dir, filter="data")
                count += 1
    except (ExtractError, _StreamAborted):
        raise
    except tarfile.FilterError as e:
        raise ExtractError(f"Rejected archive entry: {e}", context={"target_dir": str(target_dir)}) from e
    except Exception as e:
        raise ExtractError(f"Failed to extract archive: {e}", context={"target_dir": str(target_dir)}) from e

    return count


async def _feed(queue: asyncio.Queue, item: object, worker: asyncio.Future) -> bool:
    """Queue an item for the worker. Returns False if the worker has stopped."""
    if worker.done():
        return False

    put = asyncio.ensure_future(queue.put(item))
    await asyncio.wait({put, worker}, return_when=asyncio.FIRST_COMPLETED)
    if not put.done():
        put.cancel()
        return False
    return True


def _abort(queue: asyncio.Queue) -> None:
    while not queue.empty():
        queue.get_nowait()
    queue.put_nowait(_ABORT)


async def extract(chunks: AsyncIterator[bytes], target_dir: Path) -> None:
    """
    Unpack a tar.gz byte stream into target_dir, stripping the wrapper directory.

    Extraction proceeds while the stream is still downloading. Entries that
    would escape target_dir (absolute paths, `..`, outside links) and special
    files are rejected. Partial output is left in place on failure.

    Args:
        chunks: Async iterator over the compressed archive bytes
        target_dir: Directory to unpack into (must exist)

    Raises:
        ExtractError: On corrupt gzip/tar data, a rejected entry, or a
            filesystem write failure
        Exception: Errors raised by `chunks` itself propagate unchanged

    Example:
        >>> async with fetch(client, url) as chunks:
        ...     await extract(chunks, Path("plugins/vim-surround"))
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
    reader = _ChunkReader(loop, queue)
    worker = asyncio.ensure_future(asyncio.to_thread(_unpack, reader, target_dir))

    try:
        async for chunk in chunks:
            if chunk and not await _feed(queue, chunk, worker):
                break
        await _feed(queue, _END, worker)
    except BaseException:
        # Download failed or the install was cancelled: stop the worker first
        _abort(queue)
        try:
            await worker
        except _StreamAborted:
            pass
        except ExtractError as e:
            logger.debug(f"Extraction into {target_dir} also failed: {e}")
        raise

    count = await worker
    logger.debug(f"Extracted {count} entries into {target_dir}")

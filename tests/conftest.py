"""Shared fixtures: in-memory archives and a mocked network."""

import io
import tarfile

import httpx
import pytest
from strand.fetcher import build_client


def _build_tarball(files: dict[str, bytes | None], prefix: str = "vim-surround-master/") -> bytes:
    """Build a tar.gz in memory. A value of None adds a directory entry."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        if prefix:
            wrapper = tarfile.TarInfo(prefix.rstrip("/"))
            wrapper.type = tarfile.DIRTYPE
            wrapper.mode = 0o755
            tar.addfile(wrapper)

        for name, data in files.items():
            info = tarfile.TarInfo(prefix + name)
            if data is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                info.size = len(data)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(data))

    return buffer.getvalue()


async def _chunked(data: bytes, size: int = 512):
    for start in range(0, len(data), size):
        yield data[start : start + size]


@pytest.fixture
def make_tarball():
    """Factory for gzip-compressed tar archives wrapped in one top-level directory."""
    return _build_tarball


@pytest.fixture
def chunked():
    """Turn bytes into an async iterator of small chunks."""
    return _chunked


@pytest.fixture
def mock_client():
    """Factory for an HTTP client whose requests are answered by a handler."""

    def factory(handler) -> httpx.AsyncClient:
        return build_client(transport=httpx.MockTransport(handler))

    return factory

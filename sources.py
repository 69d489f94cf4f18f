# sources.py
import os
from typing import Protocol, runtime_checkable


@runtime_checkable
class ByteSource(Protocol):
    """Anything the uploader can read byte ranges from."""

    def size(self) -> int: ...

    def read_range(self, offset: int, length: int) -> bytes: ...


def _check_range(offset: int, length: int, total: int):
    if offset < 0 or length < 0 or offset + length > total:
        raise ValueError(f"Range [{offset}, {offset + length}) outside source of {total} B")


class LocalFileSource:
    """Byte ranges from a file on disk. Size is fixed when the source is opened."""

    def __init__(self, path):
        self.path = os.path.abspath(path)
        self._size = os.path.getsize(self.path)
        self._f = open(self.path, 'rb')

    def size(self) -> int:
        return self._size

    def read_range(self, offset: int, length: int) -> bytes:
        _check_range(offset, length, self._size)
        self._f.seek(offset)
        data = self._f.read(length)
        if len(data) != length:
            # file shrank underneath us
            raise IOError(f"Short read from {self.path}: wanted {length} B at {offset}, got {len(data)} B")
        return data

    def close(self):
        self._f.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class BytesSource:
    """In-memory source, mostly for small payloads and tests."""

    def __init__(self, data: bytes):
        self._data = bytes(data)

    def size(self) -> int:
        return len(self._data)

    def read_range(self, offset: int, length: int) -> bytes:
        _check_range(offset, length, len(self._data))
        return self._data[offset:offset + length]

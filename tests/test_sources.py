"""Tests for byte sources."""

import pytest

from sources import ByteSource, BytesSource, LocalFileSource


def test_local_file_source_reads_ranges(tmp_path):
    path = tmp_path / "data.bin"
    path.write_bytes(b"0123456789")

    with LocalFileSource(str(path)) as src:
        assert isinstance(src, ByteSource)
        assert src.size() == 10
        assert src.read_range(6, 4) == b"6789"
        assert src.read_range(0, 3) == b"012"
        assert src.read_range(10, 0) == b""


def test_local_file_source_rejects_out_of_range(tmp_path):
    path = tmp_path / "data.bin"
    path.write_bytes(b"abc")

    with LocalFileSource(path) as src:
        with pytest.raises(ValueError):
            src.read_range(2, 5)
        with pytest.raises(ValueError):
            src.read_range(-1, 1)


def test_local_file_source_detects_truncation(tmp_path):
    path = tmp_path / "data.bin"
    path.write_bytes(b"0123456789")

    with LocalFileSource(path) as src:
        path.write_bytes(b"012")
        with pytest.raises(IOError):
            src.read_range(0, 10)


def test_bytes_source():
    src = BytesSource(bytearray(b"hello"))

    assert isinstance(src, ByteSource)
    assert src.size() == 5
    assert src.read_range(1, 3) == b"ell"
    with pytest.raises(ValueError):
        src.read_range(4, 2)

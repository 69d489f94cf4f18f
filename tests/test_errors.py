"""Smoke tests for upload exceptions."""

import pytest

from errors import (
    ConflictUnrecoverable,
    NetworkError,
    SessionCreationError,
    TransferError,
    UploadCancelled,
    UploadError,
)


def test_upload_error_hierarchy():
    for cls in (SessionCreationError, TransferError, ConflictUnrecoverable, NetworkError, UploadCancelled):
        assert issubclass(cls, UploadError)


def test_conflict_carries_both_offsets():
    err = ConflictUnrecoverable(server_offset=-1, local_offset=4096)

    assert err.server_offset == -1
    assert err.local_offset == 4096
    assert "4096" in str(err)


def test_exceptions_can_be_caught_as_base():
    with pytest.raises(UploadError):
        raise TransferError("boom", status=500, offset=0)

    with pytest.raises(UploadError):
        raise UploadCancelled(12)

# errors.py
"""Failure types raised by the resumable uploader."""


class UploadError(Exception):
    """Base class for every upload failure."""


class SessionCreationError(UploadError):
    """The server refused to open an upload session (anything but 201)."""

    def __init__(self, message, status=None, body=""):
        super().__init__(message)
        self.status = status
        self.body = body


class TransferError(UploadError):
    """A chunk PATCH came back with a status other than 204 or 409."""

    def __init__(self, message, status=None, offset=None, body=""):
        super().__init__(message)
        self.status = status
        self.offset = offset
        self.body = body


class ConflictUnrecoverable(UploadError):
    """Server offset is not ahead of local progress after a 409."""

    def __init__(self, server_offset: int, local_offset: int):
        super().__init__(
            f"Offset conflict at {local_offset}: server reports {server_offset}"
        )
        self.server_offset = server_offset
        self.local_offset = local_offset


class NetworkError(UploadError):
    """Transport-level failure (connection reset, timeout, DNS...)."""


class UploadCancelled(UploadError):
    """The caller asked to stop; progress is not kept."""

    def __init__(self, committed_offset: int = 0):
        super().__init__(f"Upload cancelled at offset {committed_offset}")
        self.committed_offset = committed_offset

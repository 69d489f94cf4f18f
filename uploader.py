import os
import time
import base64
import mimetypes
from collections import namedtuple
from dataclasses import dataclass, field
from urllib.parse import urljoin

from errors import (
    ConflictUnrecoverable,
    NetworkError,
    SessionCreationError,
    TransferError,
    UploadCancelled,
    UploadError,
)
from sources import LocalFileSource

TUS_VERSION = "1.0.0"
DEFAULT_CHUNK_SIZE = 6 * 1024 * 1024  # 6 MiB
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0
_STOP_POLL = 0.1  # seconds between should_stop checks while backing off

CHUNK_OK = "ok"
CHUNK_CONFLICT = "conflict"

ChunkWindow = namedtuple("ChunkWindow", ["start", "length"])


@dataclass
class UploadSession:
    location: str
    total_size: int
    fingerprint: str
    metadata: dict = field(default_factory=dict)
    committed_offset: int = 0

    @property
    def complete(self) -> bool:
        return self.committed_offset == self.total_size

    def advance_to(self, offset: int):
        """Move the committed offset forward. It never goes back and never passes total_size."""
        if offset < self.committed_offset:
            raise ValueError(f"Refusing to move offset back from {self.committed_offset} to {offset}")
        if offset > self.total_size:
            raise ValueError(f"Offset {offset} exceeds total size {self.total_size}")
        self.committed_offset = offset


@dataclass
class UploadResult:
    path: str
    size: int = 0


@dataclass
class BatchReport:
    uploaded: list = field(default_factory=list)
    failed: list = field(default_factory=list)  # (local_path, exception)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and not self.cancelled


def encode_metadata(meta: dict) -> str:
    """
    Render the Upload-Metadata header: comma-joined "key base64(value)" pairs
    in mapping order. Keys with a missing or empty value are left out.
    """
    pairs = []
    for key, value in meta.items():
        if not value:
            continue
        encoded = base64.b64encode(value.encode("utf-8")).decode("ascii")
        pairs.append(f"{key} {encoded}")
    return ",".join(pairs)


def fingerprint_for(target_path: str, size: int) -> str:
    return f"tus-{target_path}-{size}"


def next_window(committed_offset: int, total_size: int, chunk_size: int) -> ChunkWindow:
    """Next byte range to send; the last one is clipped to what is left."""
    return ChunkWindow(committed_offset, min(chunk_size, total_size - committed_offset))


def _emit_progress(progress_fn, uploaded, total, speed=0.0, eta=0.0):
    if not progress_fn:
        return
    try:
        progress_fn(float(uploaded), float(total), float(speed), float(eta))
    except TypeError:
        progress_fn(float(uploaded), float(total))


def _check_stop(should_stop, committed_offset):
    if callable(should_stop) and should_stop():
        raise UploadCancelled(committed_offset)


def _wait(delay, should_stop, committed_offset):
    """Sleep for `delay` seconds, bailing out early if a stop is requested."""
    steps = max(1, int(round(delay / _STOP_POLL)))
    for _ in range(steps):
        _check_stop(should_stop, committed_offset)
        time.sleep(delay / steps)
    _check_stop(should_stop, committed_offset)


def create_upload_session(transport, endpoint, total_size, metadata_header, log_fn=None) -> str:
    """
    Open a tus upload at <endpoint>/upload/resumable and return the absolute
    URL of the new upload resource. Single shot: any status but 201 is fatal.
    """
    tus_url = f"{endpoint.rstrip('/')}/upload/resumable"
    r = transport.request("POST", tus_url, headers={
        "Tus-Resumable": TUS_VERSION,
        "Upload-Length": str(int(total_size)),
        "Upload-Metadata": metadata_header,
    })
    if r.status_code != 201:
        raise SessionCreationError(
            f"Failed to create upload session: {r.status_code} {r.text}",
            status=r.status_code, body=r.text,
        )
    location = r.headers.get("Location")
    if not location:
        raise SessionCreationError("No Location header in upload session response", status=r.status_code, body=r.text)
    # relative locations hang off the tus endpoint
    location = urljoin(tus_url + "/", location)
    if log_fn:
        log_fn("Upload session created")
    return location


def query_server_offset(transport, location) -> int:
    """
    Ask the server how many bytes it holds for this upload (HEAD).
    Returns -1 when the answer is unusable: non-2xx, missing or garbled Upload-Offset.
    """
    r = transport.request("HEAD", location, headers={"Tus-Resumable": TUS_VERSION})
    if not 200 <= r.status_code < 300:
        return -1
    raw = r.headers.get("Upload-Offset")
    try:
        return int(raw.strip())
    except (AttributeError, ValueError):
        return -1


def transfer_chunk(transport, location, offset, data, max_attempts=DEFAULT_MAX_ATTEMPTS,
                   retry_delay=DEFAULT_RETRY_DELAY, log_fn=None, should_stop=None) -> str:
    """
    PATCH one window, retrying up to max_attempts times with a fixed delay.

    Returns CHUNK_OK on 204 and CHUNK_CONFLICT on 409 (never retried here).
    Any other status or a transport failure counts as a failed attempt; once
    the budget is spent the last TransferError / NetworkError is raised as is.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    headers = {
        "Tus-Resumable": TUS_VERSION,
        "Upload-Offset": str(int(offset)),
        "Content-Type": "application/offset+octet-stream",
    }
    last_error = None
    for attempt in range(1, max_attempts + 1):
        _check_stop(should_stop, offset)
        try:
            resp = transport.request("PATCH", location, headers=headers, data=data)
        except NetworkError as ex:
            last_error = ex
        else:
            if resp.status_code == 204:
                return CHUNK_OK
            if resp.status_code == 409:
                return CHUNK_CONFLICT
            last_error = TransferError(
                f"Upload failed at offset {offset}: {resp.status_code}",
                status=resp.status_code, offset=offset, body=resp.text[:200],
            )
        if attempt < max_attempts:
            if log_fn:
                log_fn(f"Chunk at {int(offset)} B failed ({last_error}); retry {attempt}/{max_attempts - 1} in {retry_delay}s")
            _wait(retry_delay, should_stop, offset)
    raise last_error


def upload_file(source, bucket, object_name, transport, endpoint, content_type=None, upsert=False,
                chunk_size=DEFAULT_CHUNK_SIZE, max_attempts=DEFAULT_MAX_ATTEMPTS, retry_delay=DEFAULT_RETRY_DELAY,
                progress_fn=None, log_fn=None, should_stop=None) -> UploadResult:
    """
    Upload one source to <bucket>/<object_name> through the tus endpoint.

    `source` is a path or anything with size() / read_range(offset, length).
    Chunks go out one at a time. A 409 is reconciled with a HEAD: if the
    server is ahead we skip to its offset, otherwise ConflictUnrecoverable.
    Nothing is persisted; a stopped or failed upload starts over next time.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    if isinstance(source, (str, os.PathLike)):
        with LocalFileSource(source) as src:
            return upload_file(src, bucket, object_name, transport, endpoint, content_type=content_type,
                               upsert=upsert, chunk_size=chunk_size, max_attempts=max_attempts,
                               retry_delay=retry_delay, progress_fn=progress_fn, log_fn=log_fn,
                               should_stop=should_stop)

    total_size = int(source.size())
    target_path = f"{bucket}/{object_name}"
    metadata = {
        "bucketName": bucket,
        "objectName": object_name,
        "contentType": content_type,
        "upsert": "true" if upsert else "false",
    }

    _check_stop(should_stop, 0)
    location = create_upload_session(transport, endpoint, total_size, encode_metadata(metadata), log_fn=log_fn)
    session = UploadSession(
        location=location,
        total_size=total_size,
        fingerprint=fingerprint_for(target_path, total_size),
        metadata=metadata,
    )
    _emit_progress(progress_fn, 0, total_size, 0.0, 0.0)
    if log_fn and total_size:
        log_fn(f"Chunk size {int(chunk_size)} B")

    start_time = time.time()
    while not session.complete:
        _check_stop(should_stop, session.committed_offset)
        window = next_window(session.committed_offset, total_size, chunk_size)
        data = source.read_range(window.start, window.length)
        outcome = transfer_chunk(transport, location, window.start, data, max_attempts=max_attempts,
                                 retry_delay=retry_delay, log_fn=log_fn, should_stop=should_stop)
        if outcome == CHUNK_CONFLICT:
            _check_stop(should_stop, session.committed_offset)
            server_offset = query_server_offset(transport, location)
            if server_offset <= session.committed_offset or server_offset > total_size:
                raise ConflictUnrecoverable(server_offset, session.committed_offset)
            if log_fn:
                log_fn(f"Offset conflict at {int(session.committed_offset)} B. Realigning to server position {server_offset} B.")
            session.advance_to(server_offset)
        else:
            session.advance_to(window.start + window.length)

        elapsed = max(1e-6, time.time() - start_time)
        speed = session.committed_offset / elapsed
        eta = (total_size - session.committed_offset) / speed if speed > 0 else 0.0
        _emit_progress(progress_fn, session.committed_offset, total_size, speed, eta)

    if log_fn:
        log_fn(f"Uploaded {target_path} ({int(total_size)} B)")
    return UploadResult(path=target_path, size=total_size)


def _is_hidden(name: str) -> bool:
    return name.startswith('.') or name.startswith('._') or name == 'Icon\r'


def _normalize_remote_path(base, rel_path):
    """
    Join remote_base and a relative path into an object name with forward slashes.
    """
    if base:
        path = f"{base.rstrip('/')}/{rel_path.lstrip('/')}"
    else:
        path = rel_path.lstrip('/')
    return path.replace("\\", "/")


def upload_items(file_list, bucket, transport, endpoint, base_dir="", remote_base="", upsert=False,
                 chunk_size=DEFAULT_CHUNK_SIZE, max_attempts=DEFAULT_MAX_ATTEMPTS, retry_delay=DEFAULT_RETRY_DELAY,
                 progress_cb=None, log_cb=None, should_stop=None) -> BatchReport:
    """
    Upload several files one after another. A failed file is recorded and the
    batch moves on; a stop request ends the batch.
    """
    # keep the last component of base_dir as the remote root
    if base_dir:
        base_dir = os.path.abspath(base_dir)
        top_level_name = os.path.basename(base_dir.rstrip(os.sep))
    else:
        top_level_name = ""

    report = BatchReport()
    abs_file_list = []
    total_bytes = 0
    for file_path in file_list:
        abs_path = os.path.abspath(file_path)
        if _is_hidden(os.path.basename(abs_path)):
            continue
        try:
            size = os.path.getsize(abs_path)
        except OSError as ex:
            if log_cb:
                log_cb(f"Skipping unreadable file {abs_path}: {ex}")
            report.failed.append((abs_path, ex))
            continue
        abs_file_list.append((abs_path, size))
        total_bytes += size

    if log_cb:
        log_cb(f"Found {len(abs_file_list)} files, total {int(total_bytes)} B")

    completed_bytes = 0
    last_overall = [0.0]
    start_time = time.time()

    for abs_path, size in abs_file_list:
        if callable(should_stop) and should_stop():
            if log_cb:
                log_cb("Stop requested by user. Halting before next file.")
            report.cancelled = True
            break

        rel = os.path.relpath(abs_path, base_dir) if base_dir else os.path.basename(abs_path)
        rel = os.path.join(top_level_name, rel)
        object_name = _normalize_remote_path(remote_base, rel)
        content_type = mimetypes.guess_type(abs_path)[0] or "application/octet-stream"

        if log_cb:
            log_cb(f"Uploading {rel} ({int(size)} B)")

        def pf(uploaded_bytes, file_size, speed=0.0, eta=0.0):
            overall = min(completed_bytes + uploaded_bytes, total_bytes)
            # never report less than before, even after a skip-ahead
            overall = max(overall, last_overall[0])
            last_overall[0] = overall
            overall_eta = (total_bytes - overall) / speed if speed else 0.0
            _emit_progress(progress_cb, overall, total_bytes, speed, overall_eta)

        try:
            result = upload_file(abs_path, bucket, object_name, transport, endpoint, content_type=content_type,
                                 upsert=upsert, chunk_size=chunk_size, max_attempts=max_attempts,
                                 retry_delay=retry_delay, progress_fn=pf, log_fn=log_cb, should_stop=should_stop)
        except UploadCancelled:
            if log_cb:
                log_cb("Stopped during file upload. Progress on this file is discarded.")
            report.cancelled = True
            break
        except (UploadError, OSError) as ex:
            if log_cb:
                log_cb(f"Failed {rel}: {ex}")
            report.failed.append((abs_path, ex))
            continue

        report.uploaded.append(result)
        completed_bytes += size
        _emit_progress(progress_cb, max(completed_bytes, last_overall[0]), total_bytes, 0.0, 0.0)

    if log_cb:
        duration = time.time() - start_time
        if report.ok:
            log_cb(f"All files uploaded ({int(total_bytes)} B in {duration:.1f}s)")
        else:
            log_cb(f"Upload incomplete: {len(report.uploaded)} done, {len(report.failed)} failed")
    return report

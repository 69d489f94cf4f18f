# transport.py
import threading
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from errors import NetworkError

DEFAULT_TIMEOUT = (10, 120)  # (connect, read) seconds; one chunk may take a while


def _build_session(pool_size: int) -> requests.Session:
    """Create a requests.Session with connection pooling.

    urllib3 never retries on its own: every request goes on the wire exactly
    once, and the uploader's per-chunk budget decides what gets sent again.
    """
    s = requests.Session()
    retry = Retry(total=0, raise_on_status=False)
    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool_size, pool_maxsize=pool_size, pool_block=True)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    s.headers.update({"Connection": "keep-alive"})
    return s


class Transport:
    """Shared HTTP capability with a hard cap on requests in flight.

    Create one per process and hand it to every upload call. Each thread gets
    its own pooled session; the semaphore bounds concurrency across all of them.
    """

    def __init__(self, base_headers=None, max_concurrent=4, timeout=DEFAULT_TIMEOUT, session_factory=None):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.base_headers = dict(base_headers or {})
        self.timeout = timeout
        self.max_concurrent = max_concurrent
        self._limiter = threading.BoundedSemaphore(max_concurrent)
        self._session_factory = session_factory or (lambda: _build_session(max_concurrent))
        self._tls = threading.local()

    def _get_session(self):
        s = getattr(self._tls, "session", None)
        if s is None:
            s = self._session_factory()
            self._tls.session = s
        return s

    def reset_session(self):
        """Close and clear the current thread's session so a fresh one is created next time."""
        s = getattr(self._tls, "session", None)
        if s is not None:
            try:
                s.close()
            finally:
                self._tls.session = None

    def request(self, method: str, url: str, headers=None, data=None) -> requests.Response:
        merged = dict(self.base_headers)
        if headers:
            merged.update(headers)
        with self._limiter:
            session = self._get_session()
            try:
                return session.request(method, url, headers=merged, data=data, timeout=self.timeout)
            except requests.RequestException as ex:
                # stale pooled connections are a common cause; start clean next time
                self.reset_session()
                raise NetworkError(f"{method} {url} failed: {ex}") from ex

    def close(self):
        self.reset_session()

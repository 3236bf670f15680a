"""
services/http_session.py – Cookie-keeping HTTP session with manual redirects.

Archive hosts bounce downloads through several mirrors and hand out session
cookies on the way, so redirects are walked by hand: every hop gets the
browser-like headers and a Referer pointing at the previous host, and cookies
collected on any hop stay in the client's jar for later requests.
"""

import logging
import threading
from typing import Optional
from urllib.parse import urljoin, urlparse

import httpx

from services.exceptions import TooManyRedirectsError

logger = logging.getLogger(__name__)

# ── Configuration ────────────────────────────────────────────────────────────
MAX_REDIRECTS: int = 10
CONNECT_TIMEOUT: float = 30.0
READ_TIMEOUT: float = 120.0

USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
PAGE_ACCEPT: str = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/avif,image/webp,*/*;q=0.8"
)


class ArchiveSession:
    """
    One HTTP client shared by the catalogue loader and the downloader.

    Parameters
    ----------
    base_url  : Catalogue URL; visited by initialize() to collect cookies and
                used as the Referer of first-hop requests.
    transport : Optional httpx transport (tests pass an httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        max_redirects: int = MAX_REDIRECTS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_redirects = max_redirects
        self._initialized = False
        self._init_lock = threading.Lock()
        self._client = httpx.Client(
            follow_redirects=False,
            timeout=httpx.Timeout(
                connect=CONNECT_TIMEOUT, read=READ_TIMEOUT, write=None, pool=None
            ),
            headers={
                "User-Agent": USER_AGENT,
                "Accept-Language": "en-US,en;q=0.9",
            },
            transport=transport,
        )

    # ── Session handshake ─────────────────────────────────────────────────────

    def initialize(self) -> None:
        """
        Visit the catalogue page once so the host issues its session cookies.

        Failures are logged, not raised.  The download retry loop calls this
        again after an auth failure.
        """
        with self._init_lock:
            if self._initialized:
                return
            logger.info("Initializing session with %s", self.base_url)
            try:
                response = self.send(self.base_url, is_download=False)
                response.close()
            except (httpx.HTTPError, TooManyRedirectsError) as exc:
                logger.warning("Could not initialize session: %s", exc)
                return
            self._initialized = True
            logger.debug("Session initialized.")

    def invalidate(self) -> None:
        """Forget the handshake so the next initialize() performs a new one."""
        with self._init_lock:
            self._initialized = False

    # ── Requests ──────────────────────────────────────────────────────────────

    def send(
        self,
        url: str,
        *,
        is_download: bool,
        range_start: int = 0,
    ) -> httpx.Response:
        """
        GET *url*, following up to ``max_redirects`` hops manually.

        The returned response is streamed; callers must close it (or use it
        as a context manager).  A 3xx without a Location header is returned
        as-is.

        Raises
        ------
        TooManyRedirectsError when the hop limit is exceeded.
        httpx.TransportError on network failures.
        """
        current_url = url
        previous_host: Optional[str] = None

        for _hop in range(self.max_redirects):
            request = self._client.build_request(
                "GET",
                current_url,
                headers=self._headers(is_download, previous_host, range_start),
            )
            response = self._client.send(request, stream=True)

            location = response.headers.get("location")
            if not (300 <= response.status_code < 400) or not location:
                return response

            response.close()
            previous_host = urlparse(current_url).netloc
            current_url = urljoin(current_url, location)
            logger.debug("Redirect %d → %s", response.status_code, current_url)

        raise TooManyRedirectsError(url, self.max_redirects)

    def get_text(self, url: str) -> httpx.Response:
        """Fetch a page or JSON document fully into memory."""
        response = self.send(url, is_download=False)
        try:
            response.read()
        finally:
            response.close()
        return response

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ArchiveSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Private helpers ───────────────────────────────────────────────────────

    def _headers(
        self, is_download: bool, previous_host: Optional[str], range_start: int
    ) -> dict:
        headers = {
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "same-origin" if previous_host is None else "cross-site",
            "Sec-Fetch-User": "?1",
            "Upgrade-Insecure-Requests": "1",
            "Cache-Control": "no-cache",
        }
        if is_download:
            headers["Accept"] = "*/*"
            # Range offsets count raw bytes.
            headers["Accept-Encoding"] = "identity"
        else:
            headers["Accept"] = PAGE_ACCEPT

        if previous_host is not None:
            headers["Referer"] = f"https://{previous_host}/"
        else:
            headers["Referer"] = self.base_url + "/"

        if range_start > 0:
            headers["Range"] = f"bytes={range_start}-"
        return headers

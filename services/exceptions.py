"""
services/exceptions.py – Structured custom exception hierarchy for romstream.

All service-level errors derive from ROMStreamError so callers can catch
broadly or specifically depending on context.  Only CatalogFetchError and
EmulatorNotFoundError end a session; everything else is confined to the
preparation attempt or play session that raised it.
"""


class ROMStreamError(Exception):
    """Base class for all romstream exceptions."""


class CatalogFetchError(ROMStreamError):
    """Raised when the remote catalogue cannot be fetched or parsed."""


class DownloadError(ROMStreamError):
    """Raised when a file download fails or is interrupted."""


class TooManyRedirectsError(DownloadError):
    """Raised when a request exceeds the redirect hop limit."""

    def __init__(self, url: str, hops: int) -> None:
        self.url = url
        self.hops = hops
        super().__init__(f"Too many redirects ({hops}) while requesting {url}")


class DownloadAuthError(DownloadError):
    """
    Raised when the server keeps answering 401/403 after the session has been
    re-initialised for every retry.

    Attributes
    ----------
    status_code : Last HTTP status seen.
    attempts    : Number of attempts made.
    """

    def __init__(self, status_code: int, attempts: int) -> None:
        self.status_code = status_code
        self.attempts = attempts
        super().__init__(
            f"Download not authorised (HTTP {status_code}) after {attempts} attempts."
        )


class DownloadCancelledError(DownloadError):
    """Raised when a download stops because the session is shutting down."""


class ExtractionError(ROMStreamError):
    """Raised when archive extraction fails or the helper tool is unusable."""


class StorageError(ROMStreamError):
    """Raised on filesystem errors while staging or caching games."""


class InsufficientDiskSpaceError(StorageError):
    """
    Raised when the target drive does not have enough free space.

    Attributes
    ----------
    required_bytes  : How many bytes the operation needs.
    available_bytes : How many bytes are currently free.
    """

    def __init__(self, required_bytes: int, available_bytes: int) -> None:
        self.required_bytes = required_bytes
        self.available_bytes = available_bytes
        super().__init__(
            f"Insufficient disk space: need {required_bytes:,} bytes, "
            f"have {available_bytes:,} bytes free."
        )


class EmulatorNotFoundError(ROMStreamError):
    """Raised when the configured emulator executable does not exist."""


class EmulatorLaunchError(ROMStreamError):
    """Raised when the emulator process cannot be started."""

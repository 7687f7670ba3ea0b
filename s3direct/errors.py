"""Error taxonomy for direct-to-S3 uploads.

Every failure surfaced by the signer, the transport adapter, or the
multipart orchestrator is an ``UploadError``:

- InvalidInput: caller error, detected before any network call
- Canceled: cancellation observed before or during a network call
- NetworkFailure: the transport could not complete the exchange
- ServerError: non-2xx response (or an error document in a 200 body)
- ProtocolError: response could not be parsed into the expected shape

No error is retried here; retry policy belongs to the caller.
"""

from typing import Optional


class UploadError(Exception):
    """Base class for all upload errors."""


class InvalidInput(UploadError, ValueError):
    """Raised for bad arguments. Never sent over the wire."""


class Canceled(UploadError):
    """Raised when the cancellation token was signaled."""

    def __init__(self, message: str = "Operation canceled"):
        super().__init__(message)


class NetworkFailure(UploadError):
    """Raised when the transport could not complete the exchange."""


class ServerError(UploadError):
    """Raised for a non-2xx response from the object store.

    Carries the status code and raw body for caller inspection.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        body: bytes = b"",
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.code = code

    @property
    def text(self) -> str:
        """Body decoded as UTF-8, undecodable bytes replaced."""
        return self.body.decode("utf-8", errors="replace")


class ProtocolError(UploadError):
    """Raised when a response is missing an expected element."""

    def __init__(self, message: str, body: bytes = b""):
        super().__init__(message)
        self.body = body

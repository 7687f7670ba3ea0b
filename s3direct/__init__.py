"""
Direct-to-S3 multipart uploads with client-side SigV4 signing.

Signs every request locally from temporary credentials, drives the
initiate / upload part / complete / abort lifecycle with cooperative
cancellation, and hashes content incrementally.
"""

__version__ = "1.0.0"

from s3direct.cancellation import CancellationSource, CancellationToken
from s3direct.errors import (
    Canceled,
    InvalidInput,
    NetworkFailure,
    ProtocolError,
    ServerError,
    UploadError,
)
from s3direct.hasher import IncrementalHasher
from s3direct.models import Credentials, SessionState, UploadedPart
from s3direct.multipart import MultipartUpload, Uploader
from s3direct.transport import HttpxTransport, Transport

__all__ = [
    "__version__",
    "Canceled",
    "CancellationSource",
    "CancellationToken",
    "Credentials",
    "HttpxTransport",
    "IncrementalHasher",
    "InvalidInput",
    "MultipartUpload",
    "NetworkFailure",
    "ProtocolError",
    "ServerError",
    "SessionState",
    "Transport",
    "UploadError",
    "UploadedPart",
    "Uploader",
]

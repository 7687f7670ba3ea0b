"""Data models for direct-to-S3 multipart uploads."""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from s3direct.errors import InvalidInput

# Part numbers accepted by the multipart protocol
MIN_PART_NUMBER = 1
MAX_PART_NUMBER = 10000

ADDRESSING_STYLES = ("path", "virtual")


class SessionState(Enum):
    """Lifecycle state of a multipart upload."""

    UNINITIATED = "uninitiated"
    INITIATING = "initiating"
    ACTIVE = "active"
    COMPLETING = "completing"
    COMPLETED = "completed"
    ABORTING = "aborting"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ABORTED)


class ResultStatus(Enum):
    """Outcome of a whole-file upload."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(frozen=True)
class Credentials:
    """Temporary credentials and endpoint for one client instance.

    Immutable; build a new instance when credentials change.
    """

    access_key_id: str
    secret_access_key: str
    session_token: Optional[str]
    region: str
    endpoint_url: str

    def __post_init__(self):
        for name in ("access_key_id", "secret_access_key", "region", "endpoint_url"):
            if not getattr(self, name):
                raise InvalidInput(f"Credentials field '{name}' must not be empty")

    def __repr__(self) -> str:
        return (
            f"Credentials(access_key_id={self.access_key_id!r}, "
            f"region={self.region!r}, endpoint_url={self.endpoint_url!r})"
        )


@dataclass(frozen=True)
class SigningContext:
    """Per-request signing inputs. Never reused across requests."""

    timestamp: datetime
    region: str
    service: str = "s3"

    @property
    def amz_date(self) -> str:
        return self.timestamp.strftime("%Y%m%dT%H%M%SZ")

    @property
    def datestamp(self) -> str:
        return self.timestamp.strftime("%Y%m%d")

    @property
    def credential_scope(self) -> str:
        return f"{self.datestamp}/{self.region}/{self.service}/aws4_request"


@dataclass(frozen=True)
class CanonicalRequest:
    """Normalized request representation used as signing input."""

    method: str
    uri: str
    query: str
    headers: str
    signed_headers: str
    payload_hash: str

    def __str__(self) -> str:
        return "\n".join([
            self.method,
            self.uri,
            self.query,
            self.headers,
            self.signed_headers,
            self.payload_hash,
        ])


@dataclass(frozen=True, order=True)
class UploadedPart:
    """A part accepted by the server. ETag is stored without quotes."""

    part_number: int
    etag: str


@dataclass
class UploadSession:
    """Server-side multipart upload tracked by an ``Uploader``.

    The part set is the only mutable shared state; callers read it through
    ``parts()`` and never mutate it directly.
    """

    upload_id: str
    bucket: str
    key: str
    state: SessionState = SessionState.ACTIVE
    _parts: dict[int, UploadedPart] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def record_part(self, part: UploadedPart) -> None:
        """Record a part. A duplicate part number replaces the earlier ETag."""
        with self._lock:
            self._parts[part.part_number] = part

    def finish(self, state: SessionState) -> None:
        """Move to a terminal state and release the recorded parts."""
        with self._lock:
            self.state = state
            self._parts.clear()

    def parts(self) -> list[UploadedPart]:
        """Recorded parts in ascending part number order."""
        with self._lock:
            return sorted(self._parts.values())


@dataclass(frozen=True)
class ProfileConfig:
    """Configuration for one S3-compatible endpoint profile."""

    key: str
    endpoint_url: str
    aws_access_key_id: str
    aws_secret_access_key: str
    region_name: str
    aws_session_token: Optional[str] = None
    addressing_style: str = "path"
    bucket_name: Optional[str] = None
    enabled: bool = True

    def credentials(self) -> Credentials:
        return Credentials(
            access_key_id=self.aws_access_key_id,
            secret_access_key=self.aws_secret_access_key,
            session_token=self.aws_session_token or None,
            region=self.region_name,
            endpoint_url=self.endpoint_url,
        )


@dataclass
class UploadResult:
    """Result of uploading one file."""

    bucket: str
    key: str
    status: ResultStatus
    upload_id: Optional[str] = None
    location: Optional[str] = None
    parts: list[UploadedPart] = field(default_factory=list)
    size: int = 0
    sha256: Optional[str] = None
    md5: Optional[str] = None
    duration_seconds: float = 0.0
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "bucket": self.bucket,
            "key": self.key,
            "status": self.status.value,
            "upload_id": self.upload_id,
            "location": self.location,
            "parts": [
                {"part_number": p.part_number, "etag": p.etag} for p in self.parts
            ],
            "size": self.size,
            "sha256": self.sha256,
            "md5": self.md5,
            "duration_seconds": self.duration_seconds,
            "error_message": self.error_message,
        }

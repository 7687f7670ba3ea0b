"""Multipart upload lifecycle management.

Handles the complete lifecycle of S3 multipart uploads, signing every
request locally from the client's credentials:
- Initiate upload
- Upload parts (concurrently, in any order)
- Track uploaded parts and their ETags
- Complete or abort upload

``Uploader`` is the stateless-per-call operation surface keyed by upload
id; ``MultipartUpload`` is a handle for one object that follows the whole
lifecycle and aborts on error when used as an async context manager.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Union

import httpx

from s3direct import messages
from s3direct.cancellation import CancellationToken, ensure_token
from s3direct.errors import (
    Canceled,
    InvalidInput,
    NetworkFailure,
    ProtocolError,
    ServerError,
)
from s3direct.models import (
    ADDRESSING_STYLES,
    MAX_PART_NUMBER,
    MIN_PART_NUMBER,
    Credentials,
    SessionState,
    UploadedPart,
    UploadSession,
)
from s3direct.signing import canonical_query_string, canonical_uri, sha256_hex, sign_headers
from s3direct.transport import SignedRequest, Transport, TransportResponse

logger = logging.getLogger(__name__)

ManifestEntry = Union[UploadedPart, tuple[int, str]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_part_number(part_number: int) -> None:
    """Reject part numbers outside [1, 10000]."""
    if (
        isinstance(part_number, bool)
        or not isinstance(part_number, int)
        or not MIN_PART_NUMBER <= part_number <= MAX_PART_NUMBER
    ):
        raise InvalidInput(
            f"Part number must be an integer in [{MIN_PART_NUMBER}, "
            f"{MAX_PART_NUMBER}], got {part_number!r}"
        )


def _validate_target(bucket: str, key: str) -> None:
    if not bucket:
        raise InvalidInput("Bucket must not be empty")
    if not key or not key.lstrip("/"):
        raise InvalidInput("Object key must not be empty")


class Uploader:
    """Signs and sends multipart upload requests for one set of credentials.

    Holds no lock around network calls; ``upload_part`` may run
    concurrently for different part numbers of the same upload. Each
    instance is independent of every other.
    """

    def __init__(
        self,
        credentials: Credentials,
        transport: Transport,
        addressing_style: str = "path",
        strict_manifest: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the uploader. No network call is made.

        Args:
            credentials: Temporary credentials, region and endpoint
            transport: Adapter that performs the HTTP exchange
            addressing_style: "path" (/bucket/key) or "virtual" (bucket.host/key)
            strict_manifest: Check completion manifests against recorded parts
            clock: Returns the current time; captured once per request
        """
        if addressing_style not in ADDRESSING_STYLES:
            raise InvalidInput(f"Unknown addressing style: {addressing_style!r}")

        try:
            endpoint = httpx.URL(credentials.endpoint_url)
        except httpx.InvalidURL as e:
            raise InvalidInput(f"Invalid endpoint URL: {e}") from e
        if endpoint.scheme not in ("http", "https") or not endpoint.host:
            raise InvalidInput(
                f"Endpoint must be an http(s) URL: {credentials.endpoint_url!r}"
            )

        self.credentials = credentials
        self.transport = transport
        self.addressing_style = addressing_style
        self.strict_manifest = strict_manifest
        self._clock = clock
        self._scheme = endpoint.scheme
        self._host = endpoint.host
        self._port = endpoint.port
        self._path_prefix = endpoint.path.rstrip("/")
        self._sessions: dict[str, UploadSession] = {}

    def session(self, upload_id: str) -> Optional[UploadSession]:
        """Return the tracked session for ``upload_id``, if any."""
        return self._sessions.get(upload_id)

    def object_url(self, bucket: str, key: str) -> str:
        """Public URL of an object, as used for the completion location."""
        authority, path = self._target(bucket, key)
        return f"{self._scheme}://{authority}{canonical_uri(path)}"

    def _target(self, bucket: str, key: str) -> tuple[str, str]:
        """Return (authority, raw path) for the configured addressing style."""
        key = key.lstrip("/")
        host = self._host
        if self.addressing_style == "virtual":
            host = f"{bucket}.{host}"
            path = f"{self._path_prefix}/{key}"
        else:
            path = f"{self._path_prefix}/{bucket}/{key}"
        authority = host if self._port is None else f"{host}:{self._port}"
        return authority, path

    def build_request(
        self,
        method: str,
        bucket: str,
        key: str,
        query: dict[str, str],
        body: bytes = b"",
        headers: Optional[dict[str, str]] = None,
    ) -> SignedRequest:
        """Build and sign a request. The clock is read exactly once."""
        authority, path = self._target(bucket, key)
        signed = sign_headers(
            self.credentials,
            method,
            path,
            query,
            {"host": authority, **(headers or {})},
            payload_hash=sha256_hex(body),
            timestamp=self._clock(),
        )
        query_string = canonical_query_string(query)
        url = f"{self._scheme}://{authority}{canonical_uri(path)}"
        if query_string:
            url = f"{url}?{query_string}"
        return SignedRequest(method=method, url=url, headers=signed, body=body)

    async def _send(
        self,
        request: SignedRequest,
        token: CancellationToken,
        operation: str,
        error_in_body: bool = False,
    ) -> TransportResponse:
        """Send a request; non-2xx responses raise ServerError.

        With ``error_in_body`` a 2xx response carrying an S3 error document
        is an error too, as CompleteMultipartUpload can fail after sending 200.
        """
        logger.debug("Sending %s: %s %s", operation, request.method, request.url)
        response = await self.transport.send(request, token)
        logger.debug("%s answered %d", operation, response.status_code)
        error = messages.parse_error(response.body)
        if not response.ok or (error is not None and error_in_body):
            code, message = error or (None, "")
            raise ServerError(
                f"{operation} failed with status {response.status_code}"
                + (f" ({code}: {message})" if code else ""),
                status_code=response.status_code,
                body=response.body,
                code=code or None,
            )
        return response

    def _active_session(self, bucket: str, key: str, upload_id: str) -> UploadSession:
        session = self._sessions.get(upload_id)
        if session is None:
            raise InvalidInput(f"Unknown upload id: {upload_id!r}")
        if (session.bucket, session.key) != (bucket, key):
            raise InvalidInput(
                f"Upload {upload_id!r} belongs to {session.bucket}/{session.key}"
            )
        if session.state != SessionState.ACTIVE:
            raise InvalidInput(
                f"Upload {upload_id!r} is {session.state.value}, not active"
            )
        return session

    async def initiate_upload(
        self,
        bucket: str,
        key: str,
        token: Optional[CancellationToken] = None,
    ) -> str:
        """Initiate a new multipart upload.

        Returns:
            The server-assigned upload id.

        Raises:
            InvalidInput: Empty bucket or key.
            Canceled: Token signaled before or during the call.
            ServerError: Non-2xx response, not retried.
        """
        _validate_target(bucket, key)
        token = ensure_token(token)
        token.raise_if_canceled()

        request = self.build_request("POST", bucket, key, {"uploads": ""})
        response = await self._send(request, token, "initiate")
        upload_id = messages.parse_upload_id(response.body)

        self._sessions[upload_id] = UploadSession(
            upload_id=upload_id, bucket=bucket, key=key.lstrip("/")
        )
        logger.info("Initiated upload %s for %s/%s", upload_id, bucket, key)
        return upload_id

    async def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        data: bytes,
        token: Optional[CancellationToken] = None,
    ) -> str:
        """Upload one part and record its ETag.

        Returns:
            The part's ETag, quotes stripped.

        Raises:
            InvalidInput: Bad part number, unknown or inactive upload.
            Canceled: Token signaled before or during the call.
            ServerError: Non-2xx response; the session stays active.
            NetworkFailure, ProtocolError: The session becomes failed.
        """
        validate_part_number(part_number)
        _validate_target(bucket, key)
        session = self._active_session(bucket, key.lstrip("/"), upload_id)
        token = ensure_token(token)
        token.raise_if_canceled()

        data = bytes(data)
        request = self.build_request(
            "PUT",
            bucket,
            key,
            {"partNumber": str(part_number), "uploadId": upload_id},
            body=data,
        )
        try:
            response = await self._send(request, token, "upload part")
            etag = response.headers.get("ETag")
            if not etag:
                raise ProtocolError(
                    f"No ETag in upload part {part_number} response", response.body
                )
        except (NetworkFailure, ProtocolError):
            session.state = SessionState.FAILED
            raise

        part = UploadedPart(part_number=part_number, etag=messages.strip_etag(etag))
        session.record_part(part)
        logger.debug(
            "Uploaded part %d (%d bytes) of %s", part_number, len(data), upload_id
        )
        return part.etag

    def _resolve_manifest(
        self,
        session: UploadSession,
        parts: Optional[Iterable[ManifestEntry]],
    ) -> list[UploadedPart]:
        recorded = session.parts()
        if parts is None:
            manifest = recorded
        else:
            manifest = []
            for entry in parts:
                if isinstance(entry, UploadedPart):
                    part_number, etag = entry.part_number, entry.etag
                else:
                    part_number, etag = entry
                validate_part_number(part_number)
                manifest.append(
                    UploadedPart(part_number=part_number, etag=messages.strip_etag(etag))
                )

        if not manifest:
            raise InvalidInput("Cannot complete an upload with no parts")

        numbers = [p.part_number for p in manifest]
        if len(set(numbers)) != len(numbers):
            raise InvalidInput("Manifest contains duplicate part numbers")

        if self.strict_manifest and parts is not None:
            if sorted(manifest) != recorded:
                raise InvalidInput(
                    "Manifest does not match parts recorded for upload "
                    f"{session.upload_id!r}"
                )
        return sorted(manifest)

    async def complete_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: Optional[Iterable[ManifestEntry]] = None,
        token: Optional[CancellationToken] = None,
    ) -> str:
        """Complete the multipart upload.

        Args:
            parts: (part number, ETag) manifest; defaults to the parts
                   recorded by this uploader

        Returns:
            The final object location.

        Raises:
            InvalidInput: Unknown or inactive upload, or a bad manifest.
            Canceled: Token signaled before or during the call.
            ServerError: Non-2xx or error document; the session stays active.
            NetworkFailure: The session becomes failed.

        A 2xx answer whose body cannot be read still completes the upload;
        the object URL stands in for the missing location.
        """
        _validate_target(bucket, key)
        session = self._active_session(bucket, key.lstrip("/"), upload_id)
        manifest = self._resolve_manifest(session, parts)
        token = ensure_token(token)
        token.raise_if_canceled()

        body = messages.build_complete_body(manifest)
        request = self.build_request(
            "POST",
            bucket,
            key,
            {"uploadId": upload_id},
            body=body,
            headers={"content-type": "application/xml"},
        )

        session.state = SessionState.COMPLETING
        try:
            response = await self._send(request, token, "complete", error_in_body=True)
        except NetworkFailure:
            session.state = SessionState.FAILED
            raise
        except BaseException:
            # Includes task cancellation; the upload may be completed again
            session.state = SessionState.ACTIVE
            raise

        try:
            location = messages.parse_complete_location(response.body)
        except ProtocolError:
            logger.warning(
                "Unreadable completion response for upload %s", upload_id, exc_info=True
            )
            location = None

        session.finish(SessionState.COMPLETED)
        logger.info(
            "Completed upload %s (%d parts) for %s/%s",
            upload_id,
            len(manifest),
            bucket,
            key,
        )
        return location or self.object_url(bucket, key)

    async def abort_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        token: Optional[CancellationToken] = None,
    ) -> bool:
        """Abort the multipart upload, releasing storage held by its parts.

        Idempotent: aborting an upload that is already aborted or
        completed is a no-op, as is a server reply of NoSuchUpload.

        Returns:
            True if the upload was aborted by this call, False for a no-op.
        """
        _validate_target(bucket, key)
        if not upload_id:
            raise InvalidInput("Upload id must not be empty")

        session = self._sessions.get(upload_id)
        if session is not None and (
            session.state.is_terminal or session.state == SessionState.ABORTING
        ):
            logger.info("Upload %s already %s", upload_id, session.state.value)
            return False

        token = ensure_token(token)
        token.raise_if_canceled()

        request = self.build_request("DELETE", bucket, key, {"uploadId": upload_id})
        previous = session.state if session is not None else None
        if session is not None:
            session.state = SessionState.ABORTING

        try:
            await self._send(request, token, "abort")
        except ServerError as e:
            if e.status_code == 404 and e.code in (None, "NoSuchUpload"):
                if session is not None:
                    session.finish(SessionState.ABORTED)
                logger.info("Upload %s not found on server", upload_id)
                return False
            if session is not None:
                session.state = previous
            raise
        except NetworkFailure:
            if session is not None:
                session.state = SessionState.FAILED
            raise
        except BaseException:
            # Canceled or task cancellation; the abort must stay retryable
            if session is not None:
                session.state = previous
            raise

        if session is not None:
            session.finish(SessionState.ABORTED)
        logger.warning("Aborted upload %s for %s/%s", upload_id, bucket, key)
        return True


class MultipartUpload:
    """Manages the lifecycle of one multipart upload.

    This class handles:
    - Initiating the upload for a fixed bucket and key
    - Uploading parts and tracking their ETags
    - Completing or aborting the upload

    Can be used as an async context manager for automatic abort on errors.
    """

    def __init__(self, uploader: Uploader, bucket: str, key: str):
        """Initialize the multipart upload handle.

        Args:
            uploader: Uploader that signs and sends the requests
            bucket: Target bucket
            key: Target object key
        """
        _validate_target(bucket, key)
        self.uploader = uploader
        self.bucket = bucket
        self.key = key
        self.upload_id: Optional[str] = None
        self._state = SessionState.UNINITIATED
        self._final_parts: list[UploadedPart] = []

    @property
    def state(self) -> SessionState:
        session = self.uploader.session(self.upload_id) if self.upload_id else None
        return session.state if session is not None else self._state

    async def initiate(self, token: Optional[CancellationToken] = None) -> str:
        """Initiate the upload.

        Raises:
            RuntimeError: If the upload was already initiated.
        """
        if self.upload_id is not None or self._state != SessionState.UNINITIATED:
            raise RuntimeError("Upload already initiated")

        self._state = SessionState.INITIATING
        try:
            self.upload_id = await self.uploader.initiate_upload(
                self.bucket, self.key, token
            )
        except (Canceled, InvalidInput):
            self._state = SessionState.UNINITIATED
            raise
        except Exception:
            self._state = SessionState.FAILED
            raise
        return self.upload_id

    def _require_upload_id(self) -> str:
        if self.upload_id is None:
            raise RuntimeError("Upload not initiated")
        return self.upload_id

    async def upload_part(
        self,
        part_number: int,
        data: bytes,
        token: Optional[CancellationToken] = None,
    ) -> str:
        return await self.uploader.upload_part(
            self.bucket, self.key, self._require_upload_id(), part_number, data, token
        )

    async def complete(
        self,
        parts: Optional[Iterable[ManifestEntry]] = None,
        token: Optional[CancellationToken] = None,
    ) -> str:
        self._final_parts = self.get_uploaded_parts()
        return await self.uploader.complete_upload(
            self.bucket, self.key, self._require_upload_id(), parts, token
        )

    async def abort(self, token: Optional[CancellationToken] = None) -> bool:
        """Abort the upload.

        Safe to call even if upload was not initiated or already aborted.
        """
        if self.upload_id is None:
            return False
        self._final_parts = self.get_uploaded_parts()
        return await self.uploader.abort_upload(
            self.bucket, self.key, self.upload_id, token
        )

    def get_uploaded_parts(self) -> list[UploadedPart]:
        """Get a copy of the uploaded parts list.

        Once the upload is completed or aborted the uploader no longer
        holds its parts; the list seen just before then is returned.
        """
        session = self.uploader.session(self.upload_id) if self.upload_id else None
        if session is None:
            return []
        if session.state.is_terminal:
            return list(self._final_parts)
        return session.parts()

    async def __aenter__(self) -> "MultipartUpload":
        """Enter context manager - initiates upload unless already initiated."""
        if self.upload_id is None:
            await self.initiate()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Exit context manager - aborts on exception."""
        if exc_type is not None and not self.state.is_terminal:
            try:
                await self.abort()
            except Exception:
                logger.warning(
                    "Abort of upload %s failed", self.upload_id, exc_info=True
                )
        return False  # Don't suppress exceptions

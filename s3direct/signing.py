"""AWS Signature Version 4 request signing for S3-compatible stores.

Builds the canonical request and derives the signature directly from raw
credentials, so no trusted backend has to re-sign each request:

1. Canonical query string: encode keys/values, sort by key
2. Canonical headers: lower-case names, trim values, sort by name
3. Canonical request: METHOD, URI, QUERY, HEADERS, SIGNED_HEADERS, HASH
4. String-to-sign: algorithm, timestamp, credential scope, HASH(request)
5. Signing key: HMAC chain over date, region, service, "aws4_request"
6. Signature: HMAC(signing key, string-to-sign) as lowercase hex

All functions are pure; the timestamp is an explicit input so results
are reproducible against fixed test vectors.
"""

import hashlib
import hmac
import re
import urllib.parse
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Union

from s3direct.errors import InvalidInput
from s3direct.models import CanonicalRequest, Credentials, SigningContext

ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "s3"

HEADER_DATE = "x-amz-date"
HEADER_CONTENT_SHA256 = "x-amz-content-sha256"
HEADER_SECURITY_TOKEN = "x-amz-security-token"

EMPTY_PAYLOAD_SHA256 = hashlib.sha256(b"").hexdigest()

# Characters never percent-encoded (RFC 3986 unreserved)
_UNRESERVED = "-_.~"

_SCOPE_COMPONENT_RE = re.compile(r"^[a-z0-9-]+$")
_WHITESPACE_RUN_RE = re.compile(r"\s+")

QueryParams = Union[Mapping[str, Optional[str]], Iterable[tuple[str, Optional[str]]]]


@dataclass(frozen=True)
class Signature:
    """Signature and the ``Authorization`` header value built from it."""

    signature: str
    signed_headers: str
    credential_scope: str
    authorization: str


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _hmac_sha256(key: bytes, data: str) -> bytes:
    return hmac.new(key, data.encode("utf-8"), hashlib.sha256).digest()


def uri_encode(value: str, encode_slash: bool = True) -> str:
    """Percent-encode a value using the SigV4 rules.

    Unreserved characters are kept; everything else, including UTF-8
    multi-byte sequences, becomes %XX with uppercase hex.
    """
    safe = _UNRESERVED if encode_slash else _UNRESERVED + "/"
    return urllib.parse.quote(value, safe=safe)


def canonical_uri(path: str) -> str:
    """Encode a raw (unencoded) request path once, preserving '/'."""
    if not path:
        return "/"
    if not path.startswith("/"):
        path = "/" + path
    return uri_encode(path, encode_slash=False)


def canonical_query_string(params: Optional[QueryParams]) -> str:
    """Build the canonical query string.

    Parameters without a value render as ``key=``. Entries are sorted
    by encoded key, then encoded value.
    """
    if not params:
        return ""
    items = params.items() if isinstance(params, Mapping) else params
    encoded = sorted(
        (uri_encode(str(k)), uri_encode("" if v is None else str(v)))
        for k, v in items
    )
    return "&".join(f"{k}={v}" for k, v in encoded)


def _normalize_header_value(value: str) -> str:
    return _WHITESPACE_RUN_RE.sub(" ", str(value).strip())


def canonical_headers(headers: Mapping[str, str]) -> tuple[str, str]:
    """Build the canonical header block and the signed header list.

    Returns:
        Tuple of (canonical headers, each line ``name:value\\n``;
        semicolon-joined signed header names).
    """
    merged: dict[str, list[str]] = {}
    for name, value in headers.items():
        merged.setdefault(name.strip().lower(), []).append(
            _normalize_header_value(value)
        )

    names = sorted(merged)
    block = "".join(f"{name}:{','.join(merged[name])}\n" for name in names)
    return block, ";".join(names)


def build_canonical_request(
    method: str,
    path: str,
    query: Optional[QueryParams],
    headers: Mapping[str, str],
    payload_hash: str,
) -> CanonicalRequest:
    """Build the canonical request for a raw path, query and header map."""
    if not method:
        raise InvalidInput("HTTP method must not be empty")
    header_block, signed_headers = canonical_headers(headers)
    return CanonicalRequest(
        method=method.upper(),
        uri=canonical_uri(path),
        query=canonical_query_string(query),
        headers=header_block,
        signed_headers=signed_headers,
        payload_hash=payload_hash,
    )


def signing_context(
    timestamp: datetime,
    region: str,
    service: str = SERVICE,
) -> SigningContext:
    """Validate inputs and build the context for one signing attempt.

    Naive timestamps are treated as UTC; sub-second precision is dropped.
    """
    for label, value in (("region", region), ("service", service)):
        if not value or not _SCOPE_COMPONENT_RE.match(value):
            raise InvalidInput(f"Malformed {label}: {value!r}")

    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    else:
        timestamp = timestamp.astimezone(timezone.utc)

    return SigningContext(
        timestamp=timestamp.replace(microsecond=0),
        region=region,
        service=service,
    )


def string_to_sign(context: SigningContext, request: CanonicalRequest) -> str:
    return "\n".join([
        ALGORITHM,
        context.amz_date,
        context.credential_scope,
        sha256_hex(str(request).encode("utf-8")),
    ])


def derive_signing_key(
    secret_access_key: str,
    datestamp: str,
    region: str,
    service: str = SERVICE,
) -> bytes:
    k_date = _hmac_sha256(f"AWS4{secret_access_key}".encode("utf-8"), datestamp)
    k_region = _hmac_sha256(k_date, region)
    k_service = _hmac_sha256(k_region, service)
    return _hmac_sha256(k_service, "aws4_request")


def sign(
    credentials: Credentials,
    context: SigningContext,
    request: CanonicalRequest,
) -> Signature:
    """Sign a canonical request.

    Args:
        credentials: Access key id and secret used for the key chain.
        context: Timestamp, region and service for this attempt.
        request: The canonical request to sign.

    Returns:
        Signature with the hex digest and the ``Authorization`` value.
    """
    key = derive_signing_key(
        credentials.secret_access_key,
        context.datestamp,
        context.region,
        context.service,
    )
    signature = hmac.new(
        key,
        string_to_sign(context, request).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    authorization = (
        f"{ALGORITHM} "
        f"Credential={credentials.access_key_id}/{context.credential_scope}, "
        f"SignedHeaders={request.signed_headers}, "
        f"Signature={signature}"
    )
    return Signature(
        signature=signature,
        signed_headers=request.signed_headers,
        credential_scope=context.credential_scope,
        authorization=authorization,
    )


def sign_headers(
    credentials: Credentials,
    method: str,
    path: str,
    query: Optional[QueryParams],
    headers: Mapping[str, str],
    payload_hash: str,
    timestamp: datetime,
    service: str = SERVICE,
) -> dict[str, str]:
    """Return a copy of ``headers`` with the SigV4 headers added.

    Adds ``x-amz-date``, ``x-amz-content-sha256``, ``x-amz-security-token``
    (only when the credentials carry one) and ``Authorization``. All of
    them except ``Authorization`` are signed. ``headers`` must already
    contain ``host``.
    """
    context = signing_context(timestamp, credentials.region, service)

    signed = {name.lower(): value for name, value in headers.items()}
    if "host" not in signed:
        raise InvalidInput("Header 'host' is required for signing")
    signed[HEADER_DATE] = context.amz_date
    signed[HEADER_CONTENT_SHA256] = payload_hash
    if credentials.session_token:
        signed[HEADER_SECURITY_TOKEN] = credentials.session_token

    request = build_canonical_request(method, path, query, signed, payload_hash)
    signed["Authorization"] = sign(credentials, context, request).authorization
    return signed

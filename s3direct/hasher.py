"""Incremental content hashing.

Maintains SHA-256 and MD5 digests over the same byte stream without
buffering it. Finalizing reads a digest from a copy of the running state,
so it can be called any number of times and interleaved with updates.
"""

import base64
import hashlib
from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]


class IncrementalHasher:
    """Running SHA-256 and MD5 accumulators.

    There is no reset; start a new instance for a new stream.
    """

    def __init__(self):
        self._sha256 = hashlib.sha256()
        # Used as a content checksum, not for security
        self._md5 = hashlib.md5(usedforsecurity=False)
        self._size = 0

    @property
    def size(self) -> int:
        """Total number of bytes fed so far."""
        return self._size

    def update(self, data: BytesLike) -> None:
        """Feed the next chunk of the stream into both digests."""
        self._sha256.update(data)
        self._md5.update(data)
        self._size += memoryview(data).nbytes

    def finalize_sha256(self) -> str:
        """Hex SHA-256 of the bytes seen so far."""
        return self._sha256.copy().hexdigest()

    def finalize_md5(self) -> str:
        """Hex MD5 of the bytes seen so far."""
        return self._md5.copy().hexdigest()

    def md5_base64(self) -> str:
        """Base64 MD5 of the bytes seen so far, as used by Content-MD5."""
        return base64.b64encode(self._md5.copy().digest()).decode("ascii")

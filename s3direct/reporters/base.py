"""Base reporter interface."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from s3direct.models import UploadResult


class Reporter(ABC):
    """Abstract base class for upload progress reporters."""

    @abstractmethod
    def on_upload_start(self, bucket: str, key: str, size: int, part_count: int) -> None:
        """Called before the upload is initiated."""
        pass

    @abstractmethod
    def on_part_complete(self, part_number: int, size: int, etag: str) -> None:
        """Called when a part has been accepted by the server."""
        pass

    @abstractmethod
    def on_upload_complete(self, result: "UploadResult") -> None:
        """Called when the upload has completed, failed or been canceled."""
        pass


class CompositeReporter(Reporter):
    """Reporter that delegates to multiple reporters.

    Allows using both ConsoleReporter and JsonReporter simultaneously.
    """

    def __init__(self, reporters: list[Reporter]):
        self._reporters = reporters

    def on_upload_start(self, bucket: str, key: str, size: int, part_count: int) -> None:
        for reporter in self._reporters:
            reporter.on_upload_start(bucket, key, size, part_count)

    def on_part_complete(self, part_number: int, size: int, etag: str) -> None:
        for reporter in self._reporters:
            reporter.on_part_complete(part_number, size, etag)

    def on_upload_complete(self, result: "UploadResult") -> None:
        for reporter in self._reporters:
            reporter.on_upload_complete(result)

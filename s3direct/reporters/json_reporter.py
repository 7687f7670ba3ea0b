"""JSON reporter for structured output.

Writes the final upload result as JSON, for scripts that drive uploads
and need the upload id, location and digests afterwards.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from s3direct.models import UploadResult
from s3direct.reporters.base import Reporter


class JsonReporter(Reporter):
    """JSON reporter for structured output.

    Args:
        output_path: Optional file path to write JSON output
    """

    def __init__(self, output_path: Optional[str] = None):
        self.output_path = output_path

    def on_upload_start(self, bucket: str, key: str, size: int, part_count: int) -> None:
        """No-op for JSON reporter."""
        pass

    def on_part_complete(self, part_number: int, size: int, etag: str) -> None:
        """No-op - data comes from the final result."""
        pass

    def on_upload_complete(self, result: UploadResult) -> dict:
        """Generates and outputs JSON data.

        Returns:
            The generated JSON data as a dictionary
        """
        output = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "upload": result.to_dict(),
        }

        if self.output_path:
            self._write_to_file(output)

        return output

    def _write_to_file(self, output: dict) -> None:
        path = Path(self.output_path)

        # Create parent directories if needed
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(output, f, indent=2)

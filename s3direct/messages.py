"""XML request bodies and response parsing for the multipart API.

S3-compatible stores may or may not namespace their response documents
(``http://s3.amazonaws.com/doc/2006-03-01/``), so lookups match on the
local tag name only.
"""

from typing import Iterable, Optional
from xml.etree import ElementTree as ET

from s3direct.errors import ProtocolError
from s3direct.models import UploadedPart


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _parse(body: bytes, context: str) -> ET.Element:
    try:
        return ET.fromstring(body)
    except ET.ParseError as e:
        raise ProtocolError(f"Malformed XML in {context} response: {e}", body) from e


def findtext(element: ET.Element, name: str) -> Optional[str]:
    """Text of the first descendant named ``name``, ignoring namespaces."""
    for child in element.iter():
        if _local_name(child.tag) == name:
            return (child.text or "").strip()
    return None


def strip_etag(etag: str) -> str:
    """Remove the surrounding quotes servers put around ETags."""
    return etag.strip().strip('"')


def build_complete_body(parts: Iterable[UploadedPart]) -> bytes:
    """Serialize parts, ascending by part number, into the completion body."""
    root = ET.Element("CompleteMultipartUpload")
    for part in sorted(parts):
        tag = ET.SubElement(root, "Part")
        ET.SubElement(tag, "PartNumber").text = str(part.part_number)
        ET.SubElement(tag, "ETag").text = f'"{part.etag}"'
    return ET.tostring(root)


def parse_upload_id(body: bytes) -> str:
    """Extract the upload id from an InitiateMultipartUploadResult."""
    upload_id = findtext(_parse(body, "initiate"), "UploadId")
    if not upload_id:
        raise ProtocolError("UploadId not found in initiate response", body)
    return upload_id


def parse_error(body: bytes) -> Optional[tuple[str, str]]:
    """Return (code, message) if ``body`` is an S3 ``<Error>`` document."""
    if not body or not body.lstrip().startswith(b"<"):
        return None
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None
    if _local_name(root.tag) != "Error":
        return None
    return findtext(root, "Code") or "", findtext(root, "Message") or ""


def parse_complete_location(body: bytes) -> Optional[str]:
    """Extract ``Location`` from a CompleteMultipartUploadResult, if any.

    Some stores answer with an empty body; that is not an error.
    """
    if not body.strip():
        return None
    return findtext(_parse(body, "complete"), "Location") or None

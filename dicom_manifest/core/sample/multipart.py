"""multipart/related unwrapping for WADO-RS responses.

Servers disagree on framing details: the boundary may be quoted, part
headers may end in CRLF CRLF or in bare LF LF, and the body may or may not be
followed by a line terminator before the next boundary. Only the first part
is of interest here.
"""

import re

from dicom_manifest.utils.logger import get_logger

logger = get_logger(__name__)

_BOUNDARY_RE = re.compile(r"boundary=[\"']?([^\"';\s]+)[\"']?", re.IGNORECASE)


def is_multipart(content_type: str | None) -> bool:
    return bool(content_type) and "multipart" in content_type.lower()


def parse_boundary(content_type: str | None) -> str | None:
    """Boundary token of a multipart content type, without quotes."""
    if not content_type:
        return None
    match = _BOUNDARY_RE.search(content_type)
    return match.group(1) if match else None


def _skip_line_terminator(data: bytes, index: int) -> int:
    if data[index : index + 2] == b"\r\n":
        return index + 2
    if data[index : index + 1] == b"\n":
        return index + 1
    return index


def _find_body_start(data: bytes, headers_start: int) -> int:
    # A blank line right away means the part has no headers
    empty_headers = _skip_line_terminator(data, headers_start)
    if empty_headers != headers_start:
        return empty_headers

    candidates = []
    crlf = data.find(b"\r\n\r\n", headers_start)
    if crlf >= 0:
        candidates.append(crlf + 4)
    lf = data.find(b"\n\n", headers_start)
    if lf >= 0:
        candidates.append(lf + 2)
    return min(candidates) if candidates else headers_start


def extract_first_part_from_multipart(data: bytes, content_type: str) -> bytes | None:
    """Return the body of the first part of a multipart payload.

    Args:
        data: Raw response body
        content_type: Value of the response Content-Type header

    Returns:
        The first part's bytes, excluding part headers, boundary lines and a
        single line terminator before the next boundary; None when no
        boundary is declared or the part is empty.

    """
    boundary = parse_boundary(content_type)
    if not boundary:
        logger.warning("multipart_boundary_missing", content_type=content_type)
        return None

    marker = b"--" + boundary.encode("latin-1")

    first = data.find(marker)
    headers_start = first + len(marker) if first >= 0 else 0
    headers_start = _skip_line_terminator(data, headers_start)

    body_start = _find_body_start(data, headers_start)

    body_end = len(data)
    next_marker = data.find(marker, body_start)
    if next_marker >= 0:
        body_end = next_marker
        if data[body_end - 2 : body_end] == b"\r\n" and body_end - 2 >= body_start:
            body_end -= 2
        elif data[body_end - 1 : body_end] == b"\n" and body_end - 1 >= body_start:
            body_end -= 1

    if body_end <= body_start:
        logger.warning("multipart_part_empty", boundary=boundary, size=len(data))
        return None

    logger.debug(
        "multipart_part_extracted",
        boundary=boundary,
        header_bytes=body_start - headers_start,
        size=body_end - body_start,
    )
    return data[body_start:body_end]

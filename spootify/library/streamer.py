"""
Byte-range streaming of local tracks.
Browsers' audio elements seek with Range requests, so partial responses must
follow HTTP semantics exactly: 200 for whole files, 206 with Content-Range for
slices, 416 for ranges outside the file.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple

from werkzeug.datastructures import ContentRange, Range
from werkzeug.http import parse_range_header
from werkzeug.wsgi import FileWrapper, LimitedStream

from spootify.errors import NotFound, RangeNotSatisfiable
from spootify.library.metadata import content_type_for


CHUNK_SIZE = 64 * 1024


def _is_reversed(header):
    """``bytes=500-100``: werkzeug rejects it like garbage, but it is a 416"""
    units, _, ranges = header.partition("=")
    if units.strip().lower() != "bytes":
        return False
    first, _, last = ranges.split(",")[0].partition("-")
    first, last = first.strip(), last.strip()
    return first.isdigit() and last.isdigit() and int(first) > int(last)


def resolve_range(header, file_size) -> Optional[Tuple[int, int]]:
    """
    Inclusive ``(start, end)`` offsets for the first byte range of a ``Range``
    header, clamped to the file.

    Returns None when there is no usable byte range (absent or malformed
    headers, other units) so the whole file is served. Raises
    RangeNotSatisfiable when the range lies outside the file.
    """
    if not header:
        return None

    parsed = parse_range_header(header)
    if parsed is None:
        if _is_reversed(header):
            raise RangeNotSatisfiable(file_size)
        return None
    if parsed.units != "bytes":
        return None

    start, stop = parsed.ranges[0]
    if stop is None and start < 0:
        # Suffix range longer than the file: the whole file
        start = max(0, file_size + start)

    span = Range("bytes", [(start, stop)]).range_for_length(file_size)
    if span is None:
        raise RangeNotSatisfiable(file_size)
    return span[0], span[1] - 1


def read_file_range(file_path, start, length, chunk_size=CHUNK_SIZE) -> Iterator[bytes]:
    """Yield exactly `length` bytes starting at `start`; the handle lives only for this generator"""
    with open(file_path, "rb") as f:
        f.seek(start)
        yield from FileWrapper(LimitedStream(f, length), chunk_size)


@dataclass
class StreamResult:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Iterator[bytes] = field(default_factory=lambda: iter(()))
    content_length: int = 0


class RangeStreamer:
    def __init__(self, catalog, chunk_size=CHUNK_SIZE):
        self.catalog = catalog
        self.chunk_size = chunk_size

    def open(self, track_id, range_header=None):
        """Build the response for a stream request (NotFound / RangeNotSatisfiable on failure)"""
        track = self.catalog.find(track_id)
        file_path = track.file_path
        if not os.path.isfile(file_path):
            raise NotFound("File not found")

        file_size = os.path.getsize(file_path)
        content_type = content_type_for(file_path)
        byte_range = resolve_range(range_header, file_size)

        if byte_range is None:
            return StreamResult(
                status=200,
                headers={
                    "Content-Length": str(file_size),
                    "Content-Type": content_type,
                    "Accept-Ranges": "bytes",
                },
                body=read_file_range(file_path, 0, file_size, self.chunk_size),
                content_length=file_size,
            )

        start, end = byte_range
        length = end - start + 1
        return StreamResult(
            status=206,
            headers={
                "Content-Range": ContentRange("bytes", start, end + 1, file_size).to_header(),
                "Accept-Ranges": "bytes",
                "Content-Length": str(length),
                "Content-Type": content_type,
            },
            body=read_file_range(file_path, start, length, self.chunk_size),
            content_length=length,
        )

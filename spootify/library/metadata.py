"""
Audio metadata extraction for the local library.
Reads tags and duration with mutagen.
"""

import os

import mutagen
from mutagen import File as MutagenFile

from spootify.errors import MetadataExtractionError


SUPPORTED_MIME_TYPES = ("audio/mpeg", "audio/mp3", "audio/wav", "audio/flac", "audio/ogg")

CONTENT_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
}

UNKNOWN_ARTIST = "Unknown artist"
UNKNOWN_ALBUM = "Unknown album"


def is_supported_mimetype(mimetype):
    """Upload gate: only the audio types the embedded player can handle"""
    if not mimetype:
        return False
    return mimetype.split(";")[0].strip().lower() in SUPPORTED_MIME_TYPES


def content_type_for(path):
    ext = os.path.splitext(path)[1].lower()
    return CONTENT_TYPES.get(ext, "audio/mpeg")


def _first_tag(tags, key):
    if not tags:
        return None
    value = tags.get(key)
    if not value:
        return None
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    value = str(value).strip() if value is not None else None
    return value or None


def read_audio_metadata(file_path, display_name=None):
    """
    Extract title, artist, album and duration from an audio file.

    Args:
        file_path: Path to the audio file
        display_name: Name used as the title fallback (defaults to the file name)

    Returns:
        dict with title, artist, album and duration_ms

    Raises:
        MetadataExtractionError: the file is not a readable audio file
    """
    try:
        audio = MutagenFile(file_path, easy=True)
    except (mutagen.MutagenError, OSError) as e:
        raise MetadataExtractionError(f"Could not read metadata from {os.path.basename(file_path)}: {e}")

    if audio is None:
        raise MetadataExtractionError(f"Not a recognised audio file: {os.path.basename(file_path)}")

    tags = audio.tags
    length = getattr(audio.info, "length", 0) or 0
    fallback_title = os.path.splitext(display_name or os.path.basename(file_path))[0]

    return {
        "title": _first_tag(tags, "title") or fallback_title,
        "artist": _first_tag(tags, "artist") or UNKNOWN_ARTIST,
        "album": _first_tag(tags, "album") or UNKNOWN_ALBUM,
        "duration_ms": max(0, int(length * 1000)),
    }

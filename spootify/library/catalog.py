"""
Local music catalog for Spootify Web.
In-memory registry of uploaded audio files, rebuilt from disk at startup.
"""

import logging
import os
import random
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from werkzeug.utils import secure_filename

from spootify.errors import (
    DeletionFailed,
    FileTooLarge,
    MetadataExtractionError,
    NotFound,
    UnsupportedFormat,
)
from spootify.library.metadata import is_supported_mimetype, read_audio_metadata
from spootify.player.models import TrackKind


logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 50 * 1024 * 1024


def generate_track_id():
    return f"local_{uuid.uuid4().hex}"


def _utcnow():
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LocalTrack:
    id: str
    title: str
    artist: str
    album: str
    duration_ms: int
    file_path: str
    file_name: str
    added_at: str = field(default_factory=_utcnow)

    kind = TrackKind.LOCAL

    @property
    def key(self):
        return f"local:{self.id}"

    @property
    def name(self):
        return self.title

    @property
    def artist_names(self):
        return self.artist

    def to_dict(self):
        """Library listing shape"""
        return {
            "id": self.id,
            "name": self.title,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration": self.duration_ms,
            "fileName": self.file_name,
            "type": self.kind.value,
            "addedAt": self.added_at,
        }

    def to_detail(self):
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration": self.duration_ms,
            "type": self.kind.value,
            "addedAt": self.added_at,
        }


class LocalCatalog:
    """
    Ordered collection of LocalTrack entries.

    Writers (scan, add, remove) hold the lock; readers get a snapshot of the
    list, so a rescan swaps the whole list in one step.
    """

    def __init__(self, directory, extractor=read_audio_metadata, max_file_size=MAX_FILE_SIZE):
        self.directory = directory
        self.extractor = extractor
        self.max_file_size = max_file_size
        self._tracks = []
        self._lock = threading.RLock()

    def __len__(self):
        return len(self._tracks)

    def __iter__(self):
        return iter(self.list())

    def list(self):
        with self._lock:
            return list(self._tracks)

    def scan(self, directory=None):
        """Rebuild the catalog from the files in the music directory"""
        directory = directory or self.directory
        os.makedirs(directory, exist_ok=True)

        tracks = []
        for file_name in sorted(os.listdir(directory)):
            file_path = os.path.join(directory, file_name)
            if not os.path.isfile(file_path):
                continue
            try:
                metadata = self.extractor(file_path)
            except MetadataExtractionError as e:
                logger.warning("Skipping %s: %s", file_name, e)
                continue
            tracks.append(self._build_track(file_path, file_name, metadata))

        with self._lock:
            self.directory = directory
            self._tracks = tracks

        logger.info("📚 Local library loaded: %d tracks from %s", len(tracks), directory)
        return list(tracks)

    def add(self, file_path, mimetype, original_filename=None, metadata=None):
        """
        Register an audio file that is already on disk.

        The MIME gate runs before any metadata extraction is attempted.
        """
        if not is_supported_mimetype(mimetype):
            raise UnsupportedFormat()

        if metadata is None:
            metadata = self.extractor(file_path)

        track = self._build_track(file_path, original_filename or os.path.basename(file_path), metadata)
        with self._lock:
            self._tracks.append(track)

        logger.info("Added local track %s (%s - %s)", track.id, track.artist, track.title)
        return track

    def save_upload(self, upload):
        """Store an uploaded werkzeug FileStorage in the music directory and add it"""
        original_name = upload.filename or "upload"
        if not is_supported_mimetype(upload.mimetype):
            raise UnsupportedFormat()

        os.makedirs(self.directory, exist_ok=True)
        unique_prefix = f"{int(time.time() * 1000)}-{random.randint(0, 10 ** 9)}"
        stored_name = f"{unique_prefix}-{secure_filename(original_name) or 'track'}"
        file_path = os.path.join(self.directory, stored_name)
        upload.save(file_path)

        try:
            if os.path.getsize(file_path) > self.max_file_size:
                raise FileTooLarge(f"{original_name} is larger than {self.max_file_size // (1024 * 1024)} MB")
            metadata = self.extractor(file_path)
        except (FileTooLarge, MetadataExtractionError):
            self._discard(file_path)
            raise

        return self.add(file_path, upload.mimetype, original_filename=original_name, metadata=metadata)

    def find(self, track_id):
        with self._lock:
            for track in self._tracks:
                if track.id == track_id:
                    return track
        raise NotFound()

    def remove(self, track_id):
        """Delete the catalog entry and its file; the entry stays if the file cannot be removed"""
        with self._lock:
            track = self.find(track_id)
            try:
                os.remove(track.file_path)
            except FileNotFoundError:
                logger.warning("File for %s was already gone: %s", track_id, track.file_path)
            except OSError as e:
                logger.error("Could not delete %s: %s", track.file_path, e)
                raise DeletionFailed(f"Could not delete {track.file_name}")
            self._tracks.remove(track)

        logger.info("Removed local track %s", track_id)
        return track

    def search(self, query):
        """Case-insensitive substring match over title, artist and album"""
        tracks = self.list()
        query = (query or "").strip().lower()
        if not query:
            return tracks
        return [
            track for track in tracks
            if query in f"{track.title} {track.artist} {track.album}".lower()
        ]

    def index_of(self, track_id):
        for index, track in enumerate(self.list()):
            if track.id == track_id:
                return index
        raise NotFound()

    def _build_track(self, file_path, file_name, metadata):
        return LocalTrack(
            id=generate_track_id(),
            title=metadata.get("title") or os.path.splitext(file_name)[0],
            artist=metadata.get("artist") or "Unknown artist",
            album=metadata.get("album") or "Unknown album",
            duration_ms=max(0, int(metadata.get("duration_ms") or 0)),
            file_path=file_path,
            file_name=file_name,
        )

    @staticmethod
    def _discard(file_path):
        try:
            os.remove(file_path)
        except OSError as e:
            logger.warning("Could not clean up %s: %s", file_path, e)

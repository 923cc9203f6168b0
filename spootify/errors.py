"""
Exception types for Spootify Web.
Local library failures and Spotify Web API failures are kept apart so that
callers can branch on the exact cause (401 vs 404 vs anything else).
"""


class SpootifyError(Exception):
    """Base class for local library errors"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class NotFound(SpootifyError):
    """Track not found"""

    status_code = 404
    code = "NOT_FOUND"


class UnsupportedFormat(SpootifyError):
    """Unsupported file type. Use MP3, WAV, FLAC or OGG."""

    status_code = 415
    code = "UNSUPPORTED_FORMAT"


class FileTooLarge(SpootifyError):
    """File exceeds the upload size limit"""

    status_code = 413
    code = "FILE_TOO_LARGE"


class MetadataExtractionError(SpootifyError):
    """Could not read audio metadata"""

    status_code = 500
    code = "METADATA_ERROR"


class DeletionFailed(SpootifyError):
    """Could not delete the track file"""

    status_code = 500
    code = "DELETION_FAILED"


class RangeNotSatisfiable(SpootifyError):
    """Requested range is outside the file"""

    status_code = 416
    code = "RANGE_NOT_SATISFIABLE"

    def __init__(self, file_size, message=None):
        super().__init__(message)
        self.file_size = file_size


class ConfigurationError(SpootifyError):
    """Spotify client ID is missing. Set SPOTIFY_CLIENT_ID or create an app on https://developer.spotify.com/dashboard"""

    status_code = 500
    code = "CONFIGURATION_ERROR"


class SpotifyAPIError(Exception):
    """Non-success answer (or no answer) from the Spotify Web API"""

    default_message = "Spotify request failed. Try again in a moment."
    code = "SPOTIFY_ERROR"

    def __init__(self, status=None, message=None, payload=None):
        super().__init__(message or self.default_message)
        self.status = status
        self.message = message or self.default_message
        self.payload = payload

    @property
    def http_status(self):
        """Status to answer our own clients with"""
        return self.status if self.status and self.status < 500 else 500


class Unauthorized(SpotifyAPIError):
    default_message = "Session expired. Sign in to Spotify again."
    code = "UNAUTHORIZED"

    def __init__(self, message=None, payload=None):
        super().__init__(401, message, payload)


class Forbidden(SpotifyAPIError):
    default_message = "Access denied. Check your Spotify permissions."
    code = "ACCESS_DENIED"

    def __init__(self, message=None, payload=None):
        super().__init__(403, message, payload)


class NoActiveDevice(SpotifyAPIError):
    default_message = "No active device found. Open Spotify on a device."
    code = "NO_ACTIVE_DEVICE"

    def __init__(self, message=None, payload=None):
        super().__init__(404, message, payload)


class BadRequest(SpotifyAPIError):
    default_message = "Invalid request. Make sure Spotify is open and a device is active."
    code = "BAD_REQUEST"

    def __init__(self, message=None, payload=None):
        super().__init__(400, message, payload)


class RemoteServiceError(SpotifyAPIError):
    default_message = "Spotify is not responding. Try again in a moment."
    code = "REMOTE_SERVICE_ERROR"


def error_for_status(status, message=None, payload=None):
    """Map a Spotify HTTP status to the matching exception"""
    if status == 400:
        return BadRequest(message, payload)
    if status == 401:
        return Unauthorized(message, payload)
    if status == 403:
        return Forbidden(message, payload)
    if status == 404:
        return NoActiveDevice(message, payload)
    return RemoteServiceError(status, message, payload)

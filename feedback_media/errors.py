"""Error taxonomy for the media pipeline and its HTTP surfaces.

Caller-facing errors carry an HTTP status and are rendered by the app's
error handler. Stage failures carry the ``error_code`` persisted on the
media record when an item fails.
"""


class MediaError(Exception):
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


# caller-facing

class ValidationError(MediaError):
    status_code = 400


class NotFoundError(MediaError):
    status_code = 404


class AuthorizationError(MediaError):
    status_code = 401


class UnauthorizedError(AuthorizationError):
    status_code = 401


class ForbiddenError(AuthorizationError):
    status_code = 403


class GoneError(MediaError):
    status_code = 410


class UpstreamError(MediaError):
    status_code = 502


# retryable stage failures: the item goes to ``failed`` and is retried with backoff

class StageFailure(MediaError):
    error_code = 'processing_error'


class StorageUnavailable(StageFailure):
    error_code = 'storage_unavailable'


class StorageObjectNotFound(StorageUnavailable):
    """The key resolved to nothing; still retryable, uploads can lag."""


class TranscriptionFailed(StageFailure):
    error_code = 'transcription_failed'


class UnsupportedFormat(StageFailure):
    error_code = 'unsupported_format'


# non-blocking stage failures: the item still reaches ``ready``

class NormalizationDegraded(MediaError):
    pass


class SentimentUnavailable(MediaError):
    pass


# infrastructure: fails the whole invocation

class StoreUnavailable(MediaError):
    status_code = 503

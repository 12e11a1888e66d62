"""Operator-facing operations on media: retry, status, moderation, download."""
from sqlalchemy import update

from ..extensions import db
from ..errors import (
    ValidationError, NotFoundError, GoneError, UpstreamError, StorageUnavailable,
)
from ..models.base import utcnow
from ..models.media import FeedbackMedia, MEDIA_TYPES, UPLOADED, DELETED, MODERATION_STATUSES
from . import owners, storage

# cleared on the media row by a retry; retry_count deliberately survives
RETRY_CLEARED_FIELDS = (
    'error_code',
    'error_detail',
    'transcript_text',
    'transcript_confidence',
    'original_language',
    'language_confidence',
    'normalized_text',
    'normalized_language',
    'sentiment',
    'last_error_at',
    'claim_token',
)


def require_media(media_id):
    if not media_id:
        raise ValidationError('Missing id')
    media = db.session.get(FeedbackMedia, str(media_id))
    if media is None:
        raise NotFoundError('Not found')
    return media


def retry_media(media_id):
    """Put one record back in the queue, skipping its backoff.

    Media and owner are reset in one transaction. Calling it on a record that
    is already ``uploaded`` just clears the fields again.
    """
    media = require_media(media_id)
    if media.status == DELETED:
        raise GoneError('Media has been deleted')
    if media.media_type not in MEDIA_TYPES:
        raise ValidationError('Invalid media type')

    ref = owners.OwnerRef.of(media)
    values = {k: None for k in RETRY_CLEARED_FIELDS}
    values.update(status=UPLOADED, updated_at=utcnow())
    db.session.execute(
        update(FeedbackMedia)
        .where(FeedbackMedia.id == media.id, FeedbackMedia.status != DELETED)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    owners.reset_owner(ref, commit=False)
    db.session.commit()
    return db.session.get(FeedbackMedia, media.id)


def _iso(dt):
    return dt.isoformat() if dt else None


def media_status_summary(media):
    if media is None:
        return None
    return {
        'status': media.status,
        'errorCode': media.error_code,
        'retryCount': media.retry_count,
        'lastAttemptAt': _iso(media.last_attempt_at),
        'lastErrorAt': _iso(media.last_error_at),
    }


def _current_media(owner_ref, media_type):
    rows = (
        FeedbackMedia.query
        .filter_by(owner_type=owner_ref.owner_type, owner_id=owner_ref.owner_id, media_type=media_type)
        .order_by(FeedbackMedia.created_at.desc())
        .all()
    )
    live = [m for m in rows if m.status != DELETED]
    if live:
        return live[0]
    return rows[0] if rows else None


def get_processing_status(owner_type, owner_id):
    """Operational metadata only: never transcript or any other content."""
    ref = owners.OwnerRef(owner_type, str(owner_id))
    owner = owners.require_owner(ref)
    out = {
        'ownerType': ref.owner_type,
        'ownerId': ref.owner_id,
        'processingStatus': owner.processing_status,
    }
    for media_type in MEDIA_TYPES:
        out[media_type] = media_status_summary(_current_media(ref, media_type))
    return out


def moderate_media(media_id, moderation_status, note=None):
    if moderation_status != 'visible' and moderation_status not in MODERATION_STATUSES:
        raise ValidationError('Invalid moderationStatus')
    media = require_media(media_id)
    if note is not None:
        note = str(note).strip()[:1000]
    media.moderation_status = None if moderation_status == 'visible' else moderation_status
    media.moderation_note = note
    media.moderated_at = utcnow()
    db.session.add(media)
    db.session.commit()
    return media


def guess_extension_from_mime(mime_type):
    m = (mime_type or '').lower()
    if 'webm' in m:
        return 'webm'
    if 'ogg' in m:
        return 'ogg'
    if 'mp4' in m:
        return 'mp4'
    if 'mpeg' in m:
        return 'mp3'
    if 'wav' in m:
        return 'wav'
    return 'bin'


def open_download(media_id):
    """Return ``(media, stored_object, content_type)`` for the proxy download."""
    media = require_media(media_id)
    if media.status == DELETED:
        raise GoneError('Gone')
    try:
        stored = storage.resolve(media.storage_key, media.storage_provider)
    except StorageUnavailable as e:
        raise UpstreamError('Failed to fetch media from storage') from e
    content_type = stored.content_type or media.mime_type or 'application/octet-stream'
    return media, stored, content_type

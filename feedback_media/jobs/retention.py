from datetime import timedelta

from flask import current_app, has_app_context
from sqlalchemy import update

from ..extensions import db
from ..errors import StorageUnavailable
from ..models.base import utcnow
from ..models.media import FeedbackMedia, AUDIO, MEDIA_TYPES, READY, DELETED
from ..services import storage


def _retention_days(media_type):
    key = 'AUDIO_MEDIA_RETENTION_DAYS' if media_type == AUDIO else 'VIDEO_MEDIA_RETENTION_DAYS'
    default = 30 if media_type == AUDIO else 7
    days = current_app.config.get(key, default)
    return days if days is not None and days >= 0 else default


def _candidates(media_type, cutoff, limit):
    q = FeedbackMedia.query.filter(
        FeedbackMedia.media_type == media_type,
        FeedbackMedia.created_at < cutoff,
        FeedbackMedia.deleted_at.is_(None),
        FeedbackMedia.status != DELETED,
    )
    if media_type == AUDIO:
        # audio is only dropped once its transcript is safely stored
        q = q.filter(FeedbackMedia.status == READY, FeedbackMedia.transcript_text.isnot(None))
    return q.order_by(FeedbackMedia.created_at.asc()).limit(limit).all()


def cleanup_old_media(media_type, limit=50, now=None):
    """Delete raw media objects past their retention window.

    The row stays (status ``deleted``) so transcripts and analytics survive.
    A retention of 0 days disables cleanup for that media type.
    """
    now = now or utcnow()
    retention_days = _retention_days(media_type)
    if retention_days == 0:
        return {'deleted': 0, 'skipped': 0, 'message': 'Retention disabled (0 days)'}

    cutoff = now - timedelta(days=retention_days)
    candidates = _candidates(media_type, cutoff, limit)

    deleted = 0
    skipped = 0
    results = []
    for row in candidates:
        media_id = row.id
        try:
            storage.delete_object(row.storage_key, row.storage_provider)
        except StorageUnavailable as e:
            current_app.logger.warning('Retention delete failed for media %s: %s', media_id, e)
            skipped += 1
            results.append({'id': media_id, 'ok': False, 'error': str(e)})
            continue

        db.session.execute(
            update(FeedbackMedia)
            .where(FeedbackMedia.id == media_id, FeedbackMedia.status != DELETED)
            .values(
                status=DELETED,
                claim_token=None,
                deleted_at=now,
                retention_reason=f'auto_retention_{media_type}_{retention_days}d',
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        deleted += 1
        results.append({'id': media_id, 'ok': True})

    current_app.logger.info('Retention %s: scanned=%d deleted=%d skipped=%d', media_type, len(candidates), deleted, skipped)
    return {
        'retentionDays': retention_days,
        'cutoff': cutoff.isoformat(),
        'scanned': len(candidates),
        'deleted': deleted,
        'skipped': skipped,
        'results': results,
    }


def cleanup_feedback_media(limit=50):
    """Job entrypoint running audio and video retention in an app context."""
    if not has_app_context():
        from feedback_media import create_app
        app = create_app()
        with app.app_context():
            return cleanup_feedback_media(limit)
    return {media_type: cleanup_old_media(media_type, limit) for media_type in MEDIA_TYPES}

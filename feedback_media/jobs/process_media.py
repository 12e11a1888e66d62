"""Media processing batches: transcription -> normalization -> sentiment -> owner.

One invocation handles one media type. Items are claimed atomically up
front and then drained in claim order; a failure in one item is recorded on
that item and never aborts the batch. Only a store outage while claiming
escapes as an exception.
"""
from dataclasses import dataclass, field
import time
from typing import Any, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import (
    MediaError, StageFailure, StorageUnavailable, TranscriptionFailed,
    NormalizationDegraded, SentimentUnavailable, StoreUnavailable,
)
from ..models.base import utcnow
from ..models.media import AUDIO, VIDEO, MEDIA_TYPES
from ..models.owners import DERIVED_FIELDS
from ..services import media_store, owners, storage, transcription, normalization, sentiment
from ..services.normalization import NormalizationResult

# audio results replace the owner's analytics; video only fills them when
# nothing else (typed text, audio) has yet
OVERWRITE_OWNER_ANALYTICS = {AUDIO: True, VIDEO: False}


@dataclass
class BatchResult:
    media_type: str
    processed: int = 0
    succeeded: list = field(default_factory=list)
    failed: list = field(default_factory=list)
    partial: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    released: list = field(default_factory=list)
    reconciled: list = field(default_factory=list)

    def add_failure(self, media_id, error_code, error_detail):
        self.failed.append({'id': media_id, 'errorCode': error_code, 'errorDetail': error_detail})

    def to_dict(self):
        return {
            'processed': self.processed,
            'succeeded': list(self.succeeded),
            'failed': list(self.failed),
            'partial': list(self.partial),
            'skipped': list(self.skipped),
            'released': list(self.released),
            'reconciled': list(self.reconciled),
        }


@dataclass
class StageOutcome:
    value: Any
    degraded: bool = False
    reason: Optional[str] = None


def with_fallback(stage, media_id, fn, fallback, expected=(MediaError,)):
    """Run an optional enrichment stage, substituting ``fallback`` on any error."""
    try:
        return StageOutcome(fn())
    except expected as e:
        current_app.logger.warning('%s degraded for media %s: %s', stage, media_id, e)
        return StageOutcome(fallback, True, str(e))
    except Exception as e:
        current_app.logger.exception('%s crashed for media %s, using fallback', stage, media_id)
        return StageOutcome(fallback, True, str(e))


def run_transcription(media_id, media_type, storage_key, storage_provider, mime_type):
    stored = storage.resolve(storage_key, storage_provider)
    try:
        data = stored.read()
    except Exception as e:
        raise StorageUnavailable(f'failed reading media: {e}') from e
    finally:
        stored.close()
    current_app.logger.info('Transcribing %s media %s (%d bytes)', media_type, media_id, len(data or b''))
    return transcription.transcribe(data, media_type, mime_type=mime_type or stored.content_type)


def _record_failure(result, media_id, token, error_code, error_detail, now):
    try:
        written = media_store.record_failure(media_id, token, error_code, error_detail, now=now or utcnow())
    except StoreUnavailable as e:
        current_app.logger.exception('Could not record failure for media %s', media_id)
        result.add_failure(media_id, 'persist_failed', f'{error_code}: {error_detail} ({e})')
        return
    if not written:
        current_app.logger.warning('Media %s no longer claimed, dropping failure %s', media_id, error_code)
        result.skipped.append(media_id)
        return
    current_app.logger.warning('Media %s failed: %s', media_id, error_code)
    result.add_failure(media_id, error_code, error_detail)


def derive(transcript, normalized, sentiment_label):
    return {
        'transcript_text': transcript.text,
        'transcript_confidence': transcript.confidence,
        'original_language': transcript.language or normalized.original_language,
        'language_confidence': transcript.language_confidence,
        'normalized_text': normalized.normalized_text,
        'normalized_language': normalized.normalized_language,
        'sentiment': sentiment_label,
    }


def propagate(result, media_id, owner_ref, media_type, derived):
    try:
        owners.propagate_results(
            owner_ref, derived, only_if_empty=not OVERWRITE_OWNER_ANALYTICS.get(media_type, True),
        )
    except (MediaError, SQLAlchemyError) as e:
        db.session.rollback()
        current_app.logger.exception('Owner update failed for media %s', media_id)
        result.partial.append({'id': media_id, 'errorCode': 'owner_update_failed', 'errorDetail': str(e)})
        return False
    return True


def process_item(media, result, now=None):
    # read everything up front: the row can change under us once we commit
    media_id = media.id
    token = media.claim_token
    media_type = media.media_type
    owner_ref = owners.OwnerRef(media.owner_type, str(media.owner_id))
    result.processed += 1

    try:
        transcript = run_transcription(media_id, media_type, media.storage_key, media.storage_provider, media.mime_type)
    except StageFailure as e:
        _record_failure(result, media_id, token, e.error_code, e.message, now)
        return
    except Exception as e:
        current_app.logger.exception('Unexpected transcription error for media %s', media_id)
        _record_failure(result, media_id, token, TranscriptionFailed.error_code, str(e), now)
        return

    fallback = NormalizationResult(transcript.text, transcript.language, transcript.language)
    normalized = with_fallback(
        'normalization', media_id,
        lambda: normalization.normalize(transcript.text, source_language=transcript.language),
        fallback, expected=(NormalizationDegraded,),
    ).value

    label = with_fallback(
        'sentiment', media_id,
        lambda: sentiment.score(normalized.normalized_text).sentiment,
        None, expected=(SentimentUnavailable,),
    ).value

    derived = derive(transcript, normalized, label)
    try:
        committed = media_store.commit_ready(media_id, token, derived, now=now)
    except StoreUnavailable as e:
        current_app.logger.exception('Could not commit media %s', media_id)
        result.add_failure(media_id, 'persist_failed', str(e))
        return
    if not committed:
        current_app.logger.warning('Media %s no longer claimed, dropping result', media_id)
        result.skipped.append(media_id)
        return

    if propagate(result, media_id, owner_ref, media_type, derived):
        result.succeeded.append(media_id)


def reconcile_owners(media_type, limit, result):
    """Re-propagate ready media whose owner write was lost."""
    try:
        stale = owners.stale_owner_media(media_type, limit)
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreUnavailable(f'media store unavailable: {e}') from e
    for media in stale:
        derived = {k: getattr(media, k) for k in DERIVED_FIELDS}
        media_id = media.id
        if propagate(result, media_id, owners.OwnerRef.of(media), media.media_type, derived):
            result.reconciled.append(media_id)


def process_pending_media(media_type, limit=None, now=None, deadline_seconds=None, policy=None):
    """Run one batch for ``media_type`` and return its ``BatchResult``.

    ``now`` and ``policy`` are injectable for deterministic runs. Raises
    ``StoreUnavailable`` only when the claim itself cannot reach the store.
    """
    cfg = current_app.config
    if limit is None:
        limit = cfg.get('MEDIA_AUDIO_BATCH_LIMIT', 10) if media_type == AUDIO else cfg.get('MEDIA_VIDEO_BATCH_LIMIT', 5)
    if deadline_seconds is None:
        deadline_seconds = cfg.get('MEDIA_BATCH_DEADLINE_SECONDS', 0)

    result = BatchResult(media_type=media_type)
    started = time.monotonic()

    reconcile_owners(media_type, limit, result)
    claimed = media_store.claim_eligible(media_type, limit, now=now, policy=policy)

    for idx, media in enumerate(claimed):
        if deadline_seconds and time.monotonic() - started >= deadline_seconds:
            # hand unstarted claims back instead of leaving them to the lease sweep
            for rest in claimed[idx:]:
                try:
                    if media_store.release_claim(rest.id, rest.claim_token):
                        result.released.append(rest.id)
                except StoreUnavailable:
                    current_app.logger.exception('Could not release media %s', rest.id)
            current_app.logger.warning('Deadline reached, released %d %s claims', len(result.released), media_type)
            break
        process_item(media, result, now=now)

    current_app.logger.info(
        'Processed %s batch: processed=%d succeeded=%d failed=%d partial=%d skipped=%d',
        media_type, result.processed, len(result.succeeded), len(result.failed),
        len(result.partial), len(result.skipped),
    )
    return result


def run_scheduled_batch(audio_limit=None, video_limit=None, now=None):
    """Audio then video, as separate batches, the way the scheduler calls it."""
    audio = process_pending_media(AUDIO, audio_limit, now=now)
    video = process_pending_media(VIDEO, video_limit, now=now)
    return {'audio': audio.to_dict(), 'video': video.to_dict()}


def process_media_batch(media_type, limit=None):
    """Public job entrypoint: ensures execution inside a Flask app context
    so RQ workers can call it without setting one up.
    """
    if media_type not in MEDIA_TYPES:
        raise ValueError(f'unknown media type: {media_type}')
    if has_app_context():
        return process_pending_media(media_type, limit).to_dict()
    # lazy import to avoid circular imports at module import time
    from feedback_media import create_app
    app = create_app()
    with app.app_context():
        return process_pending_media(media_type, limit).to_dict()

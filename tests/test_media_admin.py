from datetime import timedelta

import pytest

from feedback_media.extensions import db
from feedback_media.errors import ValidationError, NotFoundError, GoneError, UpstreamError
from feedback_media.models.media import FeedbackMedia, VIDEO, UPLOADED, READY, FAILED, DELETED
from feedback_media.models.owners import SurveyResponse, DERIVED_FIELDS, OWNER_PROCESSING, OWNER_READY
from feedback_media.services import media_admin

from conftest import T0


def test_retry_resets_failed_record_and_owner(app, make_owner, make_media):
    owner = make_owner(processing_status=OWNER_READY, transcript_text='old', normalized_text='old', sentiment='neutral')
    m = make_media(owner, status=FAILED, retry_count=2, error_code='storage_unavailable',
                   error_detail='bucket down', last_error_at=T0, last_attempt_at=T0)

    media_admin.retry_media(m.id)

    db.session.expire_all()
    m = db.session.get(FeedbackMedia, m.id)
    assert m.status == UPLOADED
    assert m.error_code is None
    assert m.error_detail is None
    assert m.last_error_at is None
    assert m.retry_count == 2
    o = db.session.get(SurveyResponse, owner.id)
    assert o.processing_status == OWNER_PROCESSING
    assert all(getattr(o, f) is None for f in DERIVED_FIELDS)


def test_retry_makes_record_immediately_eligible(app, make_owner, make_media):
    from feedback_media.services.media_store import is_eligible, RetryPolicy
    m = make_media(make_owner(), status=FAILED, retry_count=2, error_code='x', last_error_at=T0)
    media_admin.retry_media(m.id)
    assert is_eligible(db.session.get(FeedbackMedia, m.id), T0, RetryPolicy())


def test_retry_unknown_media(app):
    with pytest.raises(NotFoundError):
        media_admin.retry_media('does-not-exist')
    with pytest.raises(ValidationError):
        media_admin.retry_media('')


def test_retry_deleted_media_is_gone(app, make_owner, make_media):
    m = make_media(make_owner(), status=DELETED, deleted_at=T0)
    with pytest.raises(GoneError):
        media_admin.retry_media(m.id)
    assert db.session.get(FeedbackMedia, m.id).status == DELETED


def test_status_for_owner_without_media(app):
    owner = SurveyResponse(survey_id='s1', product_id='p1')
    db.session.add(owner)
    db.session.commit()

    out = media_admin.get_processing_status('survey_response', owner.id)

    assert out == {
        'ownerType': 'survey_response',
        'ownerId': owner.id,
        'processingStatus': OWNER_READY,
        'audio': None,
        'video': None,
    }


def test_status_reports_operational_fields_only(app, make_owner, make_media):
    owner = make_owner()
    make_media(owner, status=READY, transcript_text='secret words', normalized_text='secret words',
               sentiment='positive', last_attempt_at=T0)
    make_media(owner, media_type=VIDEO, status=FAILED, retry_count=1, error_code='transcription_failed',
               error_detail='upstream said no', last_error_at=T0)

    out = media_admin.get_processing_status('survey_response', owner.id)

    assert out['processingStatus'] == OWNER_PROCESSING
    assert out['audio'] == {
        'status': READY, 'errorCode': None, 'retryCount': 0,
        'lastAttemptAt': T0.isoformat(), 'lastErrorAt': None,
    }
    assert out['video']['status'] == FAILED
    assert out['video']['errorCode'] == 'transcription_failed'
    assert out['video']['retryCount'] == 1
    assert 'secret words' not in repr(out)
    assert 'upstream said no' not in repr(out)


def test_status_prefers_live_record_over_deleted(app, make_owner, make_media):
    owner = make_owner()
    make_media(owner, status=DELETED, storage_key='old.webm', created_at=T0 + timedelta(days=1))
    make_media(owner, status=UPLOADED, storage_key='new.webm', created_at=T0)

    out = media_admin.get_processing_status('survey_response', owner.id)

    assert out['audio']['status'] == UPLOADED


def test_status_unknown_owner(app):
    with pytest.raises(NotFoundError):
        media_admin.get_processing_status('survey_response', 'missing')
    with pytest.raises(ValidationError):
        media_admin.get_processing_status('purchase', 'x')


def test_moderation_sets_and_clears(app, make_owner, make_media):
    m = make_media(make_owner())

    media_admin.moderate_media(m.id, 'hidden', '  spam  ')
    m = db.session.get(FeedbackMedia, m.id)
    assert m.moderation_status == 'hidden'
    assert m.moderation_note == 'spam'
    assert m.moderated_at is not None

    media_admin.moderate_media(m.id, 'visible')
    assert db.session.get(FeedbackMedia, m.id).moderation_status is None

    with pytest.raises(ValidationError):
        media_admin.moderate_media(m.id, 'burn')


def test_open_download_streams_local_object(app, make_owner, make_media, tmp_path):
    (tmp_path / 'clips').mkdir()
    (tmp_path / 'clips' / 'a.ogg').write_bytes(b'OggS-data')
    m = make_media(make_owner(), storage_key='clips/a.ogg', mime_type='audio/ogg')

    media, stored, content_type = media_admin.open_download(m.id)

    assert media.id == m.id
    assert b''.join(stored.iter_chunks()) == b'OggS-data'
    assert content_type


def test_open_download_errors(app, make_owner, make_media):
    gone = make_media(make_owner(), status=DELETED)
    missing = make_media(make_owner(), storage_key='nowhere/x.webm')

    with pytest.raises(GoneError):
        media_admin.open_download(gone.id)
    with pytest.raises(UpstreamError):
        media_admin.open_download(missing.id)
    with pytest.raises(NotFoundError):
        media_admin.open_download('nope')


def test_extension_guess():
    assert media_admin.guess_extension_from_mime('audio/webm;codecs=opus') == 'webm'
    assert media_admin.guess_extension_from_mime('audio/mpeg') == 'mp3'
    assert media_admin.guess_extension_from_mime(None) == 'bin'

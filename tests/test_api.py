from feedback_media.extensions import db
from feedback_media.errors import StoreUnavailable
from feedback_media.jobs import process_media
from feedback_media.models.media import FeedbackMedia, AUDIO, VIDEO, UPLOADED, READY, FAILED, DELETED
from feedback_media.services import normalization
from feedback_media.services.normalization import NormalizationResult

from conftest import T0

AUTH = {'Authorization': 'Bearer test-cron-secret'}


def test_cron_requires_secret(client):
    assert client.get('/api/cron/process-feedback-media').status_code == 401
    r = client.get('/api/cron/process-feedback-media', headers={'Authorization': 'Bearer wrong'})
    assert r.status_code == 401
    assert r.get_json() == {'error': 'Unauthorized'}


def test_cron_open_when_no_secret_configured(app, client):
    app.config['CRON_SECRET'] = None
    r = client.get('/api/cron/process-feedback-media')
    assert r.status_code == 200
    assert r.get_json()['success'] is True


def test_cron_rejects_bad_limits(client):
    for qs in ('audio_limit=0', 'audio_limit=-1', 'audio_limit=abc', 'video_limit=51', 'video_limit=2.5'):
        r = client.get(f'/api/cron/process-feedback-media?{qs}', headers=AUTH)
        assert r.status_code == 400, qs
        assert 'error' in r.get_json()


def test_cron_processes_audio_then_video(app, client, make_owner, make_media, fake_storage, fake_transcribe, monkeypatch):
    monkeypatch.setattr(normalization, 'normalize',
                        lambda text, source_language=None, target_language=None: NormalizationResult('I love it', 'en', 'es'))
    a = make_media(make_owner())
    v = make_media(make_owner('feedback'), media_type=VIDEO)

    r = client.get('/api/cron/process-feedback-media?audio_limit=5&video_limit=5', headers=AUTH)

    assert r.status_code == 200
    body = r.get_json()
    assert body['success'] is True
    assert body['timestamp']
    assert body['audio']['succeeded'] == [a.id]
    assert body['video']['succeeded'] == [v.id]
    assert body['audio']['failed'] == []


def test_cron_reports_item_failures_in_body(client, make_owner, make_media, fake_storage, fake_transcribe):
    m = make_media(make_owner())
    fake_storage['error'] = process_media.StorageUnavailable('down')

    r = client.get('/api/cron/process-feedback-media', headers=AUTH)

    assert r.status_code == 200
    assert r.get_json()['audio']['failed'] == [
        {'id': m.id, 'errorCode': 'storage_unavailable', 'errorDetail': 'down'},
    ]


def test_cron_store_outage_is_500(client, monkeypatch):
    def down(*args, **kwargs):
        raise StoreUnavailable('media store unavailable')

    monkeypatch.setattr(process_media.media_store, 'claim_eligible', down)
    r = client.get('/api/cron/process-feedback-media', headers=AUTH)
    assert r.status_code == 500
    assert r.get_json()['success'] is False


def test_retry_requires_brand(client, consumer_client, make_owner, make_media):
    m = make_media(make_owner(), status=FAILED, retry_count=1, error_code='x', last_error_at=T0)
    assert client.post(f'/api/dashboard/feedback-media/{m.id}/retry').status_code == 401
    assert consumer_client.post(f'/api/dashboard/feedback-media/{m.id}/retry').status_code == 403


def test_retry_endpoint(brand_client, make_owner, make_media):
    m = make_media(make_owner(), status=FAILED, retry_count=1, error_code='x', last_error_at=T0)

    r = brand_client.post(f'/api/dashboard/feedback-media/{m.id}/retry')

    assert r.status_code == 200
    assert r.get_json() == {'success': True, 'id': m.id, 'status': UPLOADED}
    assert brand_client.post('/api/dashboard/feedback-media/missing/retry').status_code == 404


def test_retry_deleted_is_410(brand_client, make_owner, make_media):
    m = make_media(make_owner(), status=DELETED)
    assert brand_client.post(f'/api/dashboard/feedback-media/{m.id}/retry').status_code == 410


def test_download_proxies_bytes(brand_client, make_owner, make_media, tmp_path):
    (tmp_path / 'a.webm').write_bytes(b'webm-bytes')
    m = make_media(make_owner(), storage_key='a.webm', mime_type='audio/webm')

    r = brand_client.get(f'/api/dashboard/feedback-media/{m.id}/download')

    assert r.status_code == 200
    assert r.data == b'webm-bytes'
    assert r.headers['Content-Disposition'] == f'inline; filename="feedback-media-{m.id}.webm"'
    assert r.headers['Cache-Control'] == 'no-store'


def test_download_errors(brand_client, client, make_owner, make_media):
    gone = make_media(make_owner(), status=DELETED)
    missing = make_media(make_owner(), storage_key='missing.webm')

    assert client.get(f'/api/dashboard/feedback-media/{gone.id}/download').status_code == 401
    assert brand_client.get(f'/api/dashboard/feedback-media/{gone.id}/download').status_code == 410
    assert brand_client.get(f'/api/dashboard/feedback-media/{missing.id}/download').status_code == 502


def test_moderate_endpoint(brand_client, make_owner, make_media):
    m = make_media(make_owner())

    r = brand_client.post(f'/api/dashboard/feedback-media/{m.id}/moderate',
                          json={'moderationStatus': 'flagged', 'moderationNote': 'check this'})
    assert r.status_code == 200
    assert db.session.get(FeedbackMedia, m.id).moderation_status == 'flagged'

    bad = brand_client.post(f'/api/dashboard/feedback-media/{m.id}/moderate', json={'moderationStatus': 'nuke'})
    assert bad.status_code == 400


def test_process_now_runs_inline_without_redis(brand_client, make_owner, make_media, fake_storage, fake_transcribe):
    m = make_media(make_owner())

    r = brand_client.post('/api/dashboard/feedback-media/process-now')

    assert r.status_code == 200
    body = r.get_json()
    assert body['success'] is True
    assert body[AUDIO]['succeeded'] == [m.id]
    db.session.expire_all()
    assert db.session.get(FeedbackMedia, m.id).status == READY


def test_process_now_disabled(app, brand_client):
    app.config['ALLOW_MANUAL_MEDIA_PROCESSING'] = False
    assert brand_client.post('/api/dashboard/feedback-media/process-now').status_code == 403


def test_media_status_endpoint(client, make_owner, make_media):
    owner = make_owner('feedback')
    make_media(owner, status=FAILED, retry_count=1, error_code='transcription_failed', last_error_at=T0)

    r = client.get(f'/api/media-status/feedback/{owner.id}')

    assert r.status_code == 200
    body = r.get_json()
    assert body['processingStatus'] == 'processing'
    assert body['audio']['errorCode'] == 'transcription_failed'
    assert body['video'] is None
    assert client.get('/api/media-status/feedback/missing').status_code == 404
    assert client.get(f'/api/media-status/purchase/{owner.id}').status_code == 400


def test_cleanup_endpoint(client):
    r = client.get('/api/cron/cleanup-feedback-media', headers=AUTH)
    assert r.status_code == 200
    body = r.get_json()
    assert body['success'] is True
    assert body['audio']['deleted'] == 0
    assert body['video']['deleted'] == 0


def test_each_client_is_seen_as_its_own_user(client, brand_client, consumer_client, make_owner, make_media):
    m = make_media(make_owner(), status=FAILED, retry_count=1, error_code='x', last_error_at=T0)
    url = f'/api/dashboard/feedback-media/{m.id}/retry'

    assert client.post(url).status_code == 401
    assert consumer_client.post(url).status_code == 403
    assert brand_client.post(url).status_code == 200
    assert client.post(url).status_code == 401

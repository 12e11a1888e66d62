import os
import sys
from datetime import datetime

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from flask import g
from flask_login import FlaskLoginClient

from feedback_media import create_app
from feedback_media.extensions import db
from feedback_media.models.media import FeedbackMedia, AUDIO, UPLOADED
from feedback_media.models.owners import SurveyResponse, Feedback, OWNER_PROCESSING
from feedback_media.models.user import User
from feedback_media.services import storage, transcription
from feedback_media.services.transcription import TranscriptionResult

T0 = datetime(2026, 1, 1, 12, 0, 0)


@pytest.fixture
def app(tmp_path):
    app = create_app('config.TestConfig')
    app.config['LOCAL_STORAGE_DIR'] = str(tmp_path)
    app.test_client_class = FlaskLoginClient

    @app.teardown_request
    def forget_login_user(exc):
        # requests share the fixture's app context, and with it g
        g.pop('_login_user', None)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def brand_user(app):
    u = User(email='brand@example.com', role='brand')
    u.set_password('pw')
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def brand_client(app, brand_user):
    return app.test_client(user=brand_user)


@pytest.fixture
def consumer_client(app):
    u = User(email='consumer@example.com', role='consumer')
    u.set_password('pw')
    db.session.add(u)
    db.session.commit()
    return app.test_client(user=u)


@pytest.fixture
def make_owner(app):
    def _make(kind='survey_response', processing_status=OWNER_PROCESSING, **fields):
        if kind == 'feedback':
            owner = Feedback(product_id='p1', feedback_text=fields.pop('feedback_text', ''), processing_status=processing_status, **fields)
        else:
            owner = SurveyResponse(survey_id='s1', product_id='p1', processing_status=processing_status, **fields)
        db.session.add(owner)
        db.session.commit()
        return owner
    return _make


@pytest.fixture
def make_media(app):
    def _make(owner, media_type=AUDIO, status=UPLOADED, created_at=T0, **fields):
        owner_type = 'feedback' if isinstance(owner, Feedback) else 'survey_response'
        fields.setdefault('storage_provider', 'local')
        fields.setdefault('storage_key', f'{owner.id}/{media_type}.webm')
        media = FeedbackMedia(
            owner_type=owner_type,
            owner_id=owner.id,
            media_type=media_type,
            status=status,
            created_at=created_at,
            updated_at=created_at,
            **fields,
        )
        db.session.add(media)
        db.session.commit()
        return media
    return _make


class FakeStored:
    def __init__(self, data=b'fake-bytes', content_type='audio/webm'):
        self.data = data
        self.content_type = content_type
        self.closed = False

    def read(self):
        return self.data

    def iter_chunks(self, chunk_size=4):
        for i in range(0, len(self.data), chunk_size):
            yield self.data[i:i + chunk_size]
        self.close()

    def close(self):
        self.closed = True


@pytest.fixture
def fake_storage(monkeypatch):
    """storage.resolve returns fixed bytes; set ``.error`` to make it raise."""
    state = {'error': None, 'calls': []}

    def fake_resolve(storage_key, provider=None):
        state['calls'].append(storage_key)
        if state['error'] is not None:
            raise state['error']
        return FakeStored()

    monkeypatch.setattr(storage, 'resolve', fake_resolve)
    return state


@pytest.fixture
def fake_transcribe(monkeypatch):
    """transcription.transcribe returns a Spanish transcript unless ``.error`` is set."""
    state = {
        'error': None,
        'result': TranscriptionResult('me encanta este producto', 0.93, 'es', 0.88),
        'calls': 0,
    }

    def fake(audio_bytes, media_type, mime_type=None, filename=None):
        state['calls'] += 1
        if state['error'] is not None:
            raise state['error']
        return state['result']

    monkeypatch.setattr(transcription, 'transcribe', fake)
    return state

import os
import sys

# ensure project root is on sys.path so `import feedback_media` works when running this script
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from feedback_media import create_app
from feedback_media.extensions import db
from feedback_media.models.media import AUDIO
from feedback_media.models.owners import Feedback
from feedback_media.services import media_store, owners
from feedback_media.jobs.process_media import process_pending_media

# Registers a local audio file against a fresh feedback row and runs one audio
# batch synchronously. Needs DEEPGRAM_API_KEY for a real transcript; without
# it the item ends up failed with transcription_failed.

SAMPLE = sys.argv[1] if len(sys.argv) > 1 else None

app = create_app()
with app.app_context():
    db.create_all()
    if not SAMPLE:
        local_dir = app.config.get('LOCAL_STORAGE_DIR', 'local_storage')
        os.makedirs(local_dir, exist_ok=True)
        SAMPLE = os.path.join(local_dir, 'smoke_test.wav')
        with open(SAMPLE, 'wb') as f:
            f.write(b"RIFF....")

    fb = Feedback(product_id='smoke-test', feedback_text='')
    db.session.add(fb)
    db.session.commit()

    media = media_store.register_upload(
        owners.feedback_ref(fb.id), AUDIO, 'local',
        f"file://{os.path.abspath(SAMPLE)}", mime_type='audio/wav',
    )
    print('registered', media)

    result = process_pending_media(AUDIO, limit=1)
    print('batch:', result.to_dict())

    db.session.expire_all()
    print('media:', db.session.get(type(media), media.id))
    print('owner:', db.session.get(Feedback, fb.id), db.session.get(Feedback, fb.id).sentiment)

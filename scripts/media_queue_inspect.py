#!/usr/bin/env python3
"""Print the media queue by type and status, plus the oldest stuck claims.

Run from project root: python scripts/media_queue_inspect.py
"""
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sqlalchemy import func

from feedback_media import create_app
from feedback_media.extensions import db
from feedback_media.models.media import FeedbackMedia, PROCESSING, FAILED


def main():
    app = create_app()
    with app.app_context():
        rows = (
            db.session.query(FeedbackMedia.media_type, FeedbackMedia.status, func.count(FeedbackMedia.id))
            .group_by(FeedbackMedia.media_type, FeedbackMedia.status)
            .order_by(FeedbackMedia.media_type, FeedbackMedia.status)
            .all()
        )
        for media_type, status, count in rows:
            print(f'{media_type:6} {status:11} {count}')

        print('\nin flight:')
        for m in FeedbackMedia.query.filter_by(status=PROCESSING).order_by(FeedbackMedia.last_attempt_at).limit(20):
            print(' ', m.id, m.media_type, 'since', m.last_attempt_at)

        print('\nrecent failures:')
        for m in FeedbackMedia.query.filter_by(status=FAILED).order_by(FeedbackMedia.last_error_at.desc()).limit(20):
            print(' ', m.id, m.media_type, m.error_code, f'retries={m.retry_count}', (m.error_detail or '')[:80])


if __name__ == '__main__':
    main()

"""RQ worker for the media queue.

  python scripts/run_rq_worker.py            # long-running, with scheduler
  python scripts/run_rq_worker.py --burst    # drain the queue and exit

The worker reuses the Redis connection set up by ``create_app`` so it talks
to the same queue the dashboard enqueues on, and runs inside the app context
so jobs can use ``current_app`` and the SQLAlchemy session.
"""
import argparse
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from rq import Worker

from feedback_media import create_app
from feedback_media.extensions import rq


def main(argv=None):
    parser = argparse.ArgumentParser(description='media queue worker')
    parser.add_argument('--burst', action='store_true', help='exit once the queue is empty')
    args = parser.parse_args(argv)

    app = create_app()
    if rq.queue is None:
        sys.exit('REDIS_URL is not set or Redis is unreachable; media jobs run inline, nothing to work on')

    with app.app_context():
        worker = Worker([rq.queue], connection=rq.redis)
        app.logger.info('media worker %s listening on %s', os.getpid(), rq.queue.name)
        worker.work(
            burst=args.burst,
            with_scheduler=not args.burst,
            logging_level=app.config.get('LOG_LEVEL', 'INFO'),
        )


if __name__ == '__main__':
    main()

#!/usr/bin/env python3
"""Run one scheduled media batch (and optionally retention) from the shell.

Same work as the cron endpoint, for hosts that schedule with crontab:

  python scripts/process_media.py --audio-limit 10 --video-limit 5
  python scripts/process_media.py --cleanup
"""
import argparse
import json
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from feedback_media import create_app
from feedback_media.jobs.process_media import run_scheduled_batch
from feedback_media.jobs.retention import cleanup_feedback_media


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('--audio-limit', type=int, default=None)
    parser.add_argument('--video-limit', type=int, default=None)
    parser.add_argument('--cleanup', action='store_true', help='run media retention instead of processing')
    parser.add_argument('--cleanup-limit', type=int, default=50)
    args = parser.parse_args(argv)

    app = create_app()
    with app.app_context():
        if args.cleanup:
            out = cleanup_feedback_media(args.cleanup_limit)
        else:
            out = run_scheduled_batch(args.audio_limit, args.video_limit)
    print(json.dumps(out, indent=2, default=str))


if __name__ == '__main__':
    main()

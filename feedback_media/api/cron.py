# feedback_media/api/cron.py
from datetime import datetime, timezone
from flask import Blueprint, jsonify, request, current_app
from ..errors import StoreUnavailable, ValidationError
from ..jobs.process_media import process_pending_media
from ..jobs.retention import cleanup_feedback_media
from ..models.media import AUDIO, VIDEO
from ..utils.decorators import cron_secret_required

bp = Blueprint("cron", __name__)


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def parse_limit(name, default):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
    ceiling = current_app.config.get("MEDIA_MAX_BATCH_LIMIT", 50)
    if value < 1 or value > ceiling:
        raise ValidationError(f"{name} must be between 1 and {ceiling}")
    return value


@bp.route("/api/cron/process-feedback-media", methods=["GET", "POST"])
@cron_secret_required
def process_feedback_media():
    """Scheduler trigger: audio batch, then video batch (STT -> translate -> sentiment)."""
    audio_limit = parse_limit("audio_limit", current_app.config.get("MEDIA_AUDIO_BATCH_LIMIT", 10))
    video_limit = parse_limit("video_limit", current_app.config.get("MEDIA_VIDEO_BATCH_LIMIT", 5))
    try:
        audio = process_pending_media(AUDIO, audio_limit).to_dict()
        video = process_pending_media(VIDEO, video_limit).to_dict()
    except StoreUnavailable as e:
        current_app.logger.exception("[ProcessFeedbackMediaCron] store unavailable")
        return jsonify({"success": False, "error": e.message, "timestamp": _now_iso()}), 500

    return jsonify({"success": True, "timestamp": _now_iso(), "audio": audio, "video": video})


@bp.route("/api/cron/cleanup-feedback-media", methods=["GET", "POST"])
@cron_secret_required
def cleanup_media():
    """Retention: drop raw media objects past their window, keep the analytics."""
    limit = parse_limit("limit", 50)
    result = cleanup_feedback_media(limit)
    return jsonify({"success": True, "timestamp": _now_iso(), **result})

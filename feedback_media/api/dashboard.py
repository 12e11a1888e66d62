# feedback_media/api/dashboard.py
from flask import Blueprint, jsonify, request, current_app, Response, stream_with_context
from ..errors import ForbiddenError, ValidationError
from ..extensions import rq
from ..jobs.process_media import process_media_batch
from ..models.media import AUDIO, VIDEO
from ..services import media_admin
from ..utils.decorators import role_required

bp = Blueprint("dashboard", __name__)


@bp.post("/api/dashboard/feedback-media/<media_id>/retry")
@role_required("brand")
def retry(media_id):
    """Re-queue media: clears errors and derived fields, owner back to processing."""
    media = media_admin.retry_media(media_id)
    current_app.logger.info("Media %s re-queued by operator (retry_count=%s)", media.id, media.retry_count)
    return jsonify({"success": True, "id": media.id, "status": media.status})


@bp.get("/api/dashboard/feedback-media/<media_id>/download")
@role_required("brand")
def download(media_id):
    # proxy the bytes so the raw storage location never reaches the browser
    media, stored, content_type = media_admin.open_download(media_id)
    ext = media_admin.guess_extension_from_mime(content_type)
    headers = {
        "Content-Disposition": f'inline; filename="feedback-media-{media.id}.{ext}"',
        "Cache-Control": "no-store",
    }
    return Response(stream_with_context(stored.iter_chunks()), status=200, content_type=content_type, headers=headers)


@bp.post("/api/dashboard/feedback-media/<media_id>/moderate")
@role_required("brand")
def moderate(media_id):
    """Hide/flag media in the dashboard. Does not delete anything."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON body")
    media_admin.moderate_media(media_id, body.get("moderationStatus"), body.get("moderationNote"))
    return jsonify({"success": True})


@bp.post("/api/dashboard/feedback-media/process-now")
@role_required("brand")
def process_now():
    """Manual trigger for debugging without waiting for the scheduler."""
    if not current_app.config.get("ALLOW_MANUAL_MEDIA_PROCESSING"):
        raise ForbiddenError("Manual processing is disabled")

    out = {"success": True}
    for media_type, limit_key in ((AUDIO, "MEDIA_AUDIO_BATCH_LIMIT"), (VIDEO, "MEDIA_VIDEO_BATCH_LIMIT")):
        job = rq.enqueue(process_media_batch, media_type, current_app.config.get(limit_key), job_timeout=600)
        if isinstance(job, dict):
            # ran inline (no Redis)
            out[media_type] = job
        else:
            out[media_type] = {"queued": True, "jobId": getattr(job, "id", None)}
    return jsonify(out)

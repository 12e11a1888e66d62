# feedback_media/api/status.py
from flask import Blueprint, jsonify
from ..services.media_admin import get_processing_status

bp = Blueprint("status", __name__)


@bp.get("/api/media-status/<owner_type>/<owner_id>")
def media_status(owner_type, owner_id):
    """Public, read-only processing state for one owner. No content fields."""
    return jsonify(get_processing_status(owner_type, owner_id))

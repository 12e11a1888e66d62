from ..extensions import db
from .base import TimestampMixin, new_id

OWNER_SURVEY_RESPONSE = "survey_response"
OWNER_FEEDBACK = "feedback"
OWNER_TYPES = (OWNER_SURVEY_RESPONSE, OWNER_FEEDBACK)

AUDIO = "audio"
VIDEO = "video"
MEDIA_TYPES = (AUDIO, VIDEO)

# lifecycle: uploaded -> processing -> ready | failed; deleted is terminal and
# only produced by retention/administrative actions
UPLOADED = "uploaded"
PROCESSING = "processing"
READY = "ready"
FAILED = "failed"
DELETED = "deleted"
STATUSES = (UPLOADED, PROCESSING, READY, FAILED, DELETED)

MODERATION_STATUSES = ("hidden", "flagged")


class FeedbackMedia(db.Model, TimestampMixin):
    __tablename__ = "feedback_media"

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    # owner is one of two unrelated tables, so no foreign key
    owner_type = db.Column(db.String(32), nullable=False)
    owner_id = db.Column(db.String(64), nullable=False)

    media_type = db.Column(db.String(10), nullable=False)
    storage_provider = db.Column(db.String(32), nullable=False)
    storage_key = db.Column(db.Text, nullable=False)
    mime_type = db.Column(db.String(100))
    size_bytes = db.Column(db.Integer)
    duration_ms = db.Column(db.Integer)

    status = db.Column(db.String(20), default=UPLOADED, server_default=UPLOADED, nullable=False)
    claim_token = db.Column(db.String(36))

    # derived
    transcript_text = db.Column(db.Text)
    transcript_confidence = db.Column(db.Float)
    original_language = db.Column(db.String(16))
    language_confidence = db.Column(db.Float)
    normalized_text = db.Column(db.Text)
    normalized_language = db.Column(db.String(16))
    sentiment = db.Column(db.String(16))

    error_code = db.Column(db.String(64))
    error_detail = db.Column(db.Text)
    retry_count = db.Column(db.Integer, default=0, server_default="0", nullable=False)
    last_attempt_at = db.Column(db.DateTime)
    last_error_at = db.Column(db.DateTime)

    # moderation (dashboard visibility only)
    moderation_status = db.Column(db.String(20))
    moderation_note = db.Column(db.Text)
    moderated_at = db.Column(db.DateTime)

    # retention
    deleted_at = db.Column(db.DateTime)
    retention_reason = db.Column(db.String(64))

    __table_args__ = (
        db.Index("idx_feedback_media_owner", "owner_type", "owner_id"),
        db.Index("idx_feedback_media_queue", "media_type", "status", "created_at"),
        db.Index(
            "uq_feedback_media_live_owner_media",
            "owner_id", "media_type",
            unique=True,
            postgresql_where=db.text("status != 'deleted'"),
            sqlite_where=db.text("status != 'deleted'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<FeedbackMedia id={self.id} {self.media_type} status={self.status} retries={self.retry_count}>"

from ..extensions import db
from .base import TimestampMixin, new_id

OWNER_PROCESSING = "processing"
OWNER_READY = "ready"

# fields the media pipeline mirrors onto the owning record
DERIVED_FIELDS = (
    "transcript_text",
    "transcript_confidence",
    "original_language",
    "language_confidence",
    "normalized_text",
    "normalized_language",
    "sentiment",
)


class OwnerAnalyticsMixin:
    # processing: media attached and not yet transcribed, ready: nothing pending
    processing_status = db.Column(db.String(20), default=OWNER_READY, server_default=OWNER_READY, nullable=False)
    modality_primary = db.Column(db.String(20), default="text", server_default="text", nullable=False)
    transcript_text = db.Column(db.Text)
    transcript_confidence = db.Column(db.Float)
    original_language = db.Column(db.String(16))
    language_confidence = db.Column(db.Float)
    normalized_text = db.Column(db.Text)
    normalized_language = db.Column(db.String(16))
    sentiment = db.Column(db.String(16))  # positive/neutral/negative

    def has_analytics(self):
        return bool(
            (self.normalized_text or "").strip()
            or (self.transcript_text or "").strip()
            or self.sentiment
            or self.normalized_language
            or self.original_language
        )


class SurveyResponse(db.Model, OwnerAnalyticsMixin, TimestampMixin):
    __tablename__ = "survey_responses"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    survey_id = db.Column(db.String(64), nullable=False)
    product_id = db.Column(db.String(64), nullable=False)
    answers = db.Column(db.JSON)
    nps_score = db.Column(db.Integer)

    def __repr__(self) -> str:
        return f"<SurveyResponse id={self.id} status={self.processing_status}>"


class Feedback(db.Model, OwnerAnalyticsMixin, TimestampMixin):
    __tablename__ = "feedback"
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    product_id = db.Column(db.String(64), nullable=False)
    feedback_text = db.Column(db.Text, nullable=False, default="")
    rating = db.Column(db.Integer)  # 1-5
    status = db.Column(db.String(20), default="new", nullable=False)  # new/reviewed/addressed

    def __repr__(self) -> str:
        return f"<Feedback id={self.id} status={self.processing_status}>"

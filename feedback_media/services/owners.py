"""Owner records (survey responses and feedback entries) that media enriches.

A media row points at its owner with ``(owner_type, owner_id)``. The type tag
is resolved through ``OWNER_MODELS`` instead of a polymorphic foreign key.
Every write here is a single UPDATE so the pipeline stays the only writer of
the mirrored analytics fields.
"""
from dataclasses import dataclass

from sqlalchemy import update, exists, select
from sqlalchemy.orm import aliased

from ..extensions import db
from ..errors import ValidationError, NotFoundError
from ..models.media import (
    FeedbackMedia, OWNER_SURVEY_RESPONSE, OWNER_FEEDBACK, READY, DELETED,
)
from ..models.owners import (
    SurveyResponse, Feedback, DERIVED_FIELDS, OWNER_PROCESSING, OWNER_READY,
)

OWNER_MODELS = {
    OWNER_SURVEY_RESPONSE: SurveyResponse,
    OWNER_FEEDBACK: Feedback,
}


@dataclass(frozen=True)
class OwnerRef:
    owner_type: str
    owner_id: str

    def __post_init__(self):
        if self.owner_type not in OWNER_MODELS:
            raise ValidationError(f"Unknown owner type: {self.owner_type!r}")
        if not self.owner_id:
            raise ValidationError("Missing owner id")

    @classmethod
    def of(cls, media):
        return cls(media.owner_type, str(media.owner_id))

    @property
    def model(self):
        return OWNER_MODELS[self.owner_type]


def survey_response_ref(owner_id):
    return OwnerRef(OWNER_SURVEY_RESPONSE, str(owner_id))


def feedback_ref(owner_id):
    return OwnerRef(OWNER_FEEDBACK, str(owner_id))


def get_owner(ref):
    return db.session.get(ref.model, ref.owner_id)


def require_owner(ref):
    owner = get_owner(ref)
    if owner is None:
        raise NotFoundError(f"{ref.owner_type} {ref.owner_id} not found")
    return owner


def _update_owner(ref, values):
    model = ref.model
    res = db.session.execute(
        update(model).where(model.id == ref.owner_id).values(**values)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


def set_processing_status(ref, status, commit=True):
    n = _update_owner(ref, {"processing_status": status})
    if commit:
        db.session.commit()
    return n == 1


def propagate_results(ref, derived, only_if_empty=False):
    """Mirror derived fields onto the owner and mark it ready.

    With ``only_if_empty`` the analytics fields are only written when the
    owner has none yet (video must not clobber typed text or audio results);
    the status still flips to ready. Raises ``NotFoundError`` when the owner
    row does not exist. Re-running with the same ``derived`` gives the same
    owner state.
    """
    values = {"processing_status": OWNER_READY}
    if only_if_empty:
        owner = require_owner(ref)
        if not owner.has_analytics():
            values.update({k: derived.get(k) for k in DERIVED_FIELDS})
    else:
        values.update({k: derived.get(k) for k in DERIVED_FIELDS})

    if _update_owner(ref, values) != 1:
        db.session.rollback()
        raise NotFoundError(f"{ref.owner_type} {ref.owner_id} not found")
    db.session.commit()


def reset_owner_values():
    values = {k: None for k in DERIVED_FIELDS}
    values["processing_status"] = OWNER_PROCESSING
    return values


def reset_owner(ref, commit=True):
    """Null the mirrored analytics and put the owner back to processing."""
    n = _update_owner(ref, reset_owner_values())
    if commit:
        db.session.commit()
    return n == 1


def stale_owner_media(media_type, limit):
    """Ready media whose owner is still ``processing`` with nothing else pending.

    These are commits where the media row landed but the owner write did not;
    re-propagating them is how a later run reconciles the owner.
    """
    out = []
    for owner_type, model in OWNER_MODELS.items():
        other = aliased(FeedbackMedia)
        pending_sibling = exists(
            select(other.id).where(
                other.owner_type == FeedbackMedia.owner_type,
                other.owner_id == FeedbackMedia.owner_id,
                other.id != FeedbackMedia.id,
                other.status.notin_((READY, DELETED)),
            )
        )
        rows = (
            FeedbackMedia.query
            .join(model, model.id == FeedbackMedia.owner_id)
            .filter(
                FeedbackMedia.owner_type == owner_type,
                FeedbackMedia.media_type == media_type,
                FeedbackMedia.status == READY,
                model.processing_status == OWNER_PROCESSING,
                ~pending_sibling,
            )
            .order_by(FeedbackMedia.updated_at.asc())
            .limit(limit)
            .all()
        )
        out.extend(rows)
    return out[:limit]

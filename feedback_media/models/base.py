from datetime import datetime, timezone
from ..extensions import db


def utcnow():
    """Naive UTC timestamp, matching how the columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id():
    from uuid import uuid4
    return str(uuid4())


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=utcnow, server_default=db.func.now(), nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, server_default=db.func.now(), onupdate=utcnow, nullable=False)

"""Durable media queue: eligibility, atomic claims and result persistence.

Claims are conditional UPDATEs keyed on the state the claimer observed
(``status`` and ``retry_count``), so when two invocations race for the same
row exactly one UPDATE matches. A claimed row sits in ``processing`` with
``last_attempt_at`` as its lease; leases older than
``MEDIA_PROCESSING_TIMEOUT_SECONDS`` are swept back to ``failed``.

The clock and the retry policy are parameters so the selection is a pure
function of stored state, which is what the tests drive.
"""
from dataclasses import dataclass
from datetime import timedelta
from uuid import uuid4

from flask import current_app
from sqlalchemy import update, or_, and_, case
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import StoreUnavailable, ValidationError
from ..models.base import utcnow
from ..models.media import (
    FeedbackMedia, MEDIA_TYPES, UPLOADED, PROCESSING, READY, FAILED, DELETED,
)
from ..models.owners import OWNER_PROCESSING
from . import owners


@dataclass(frozen=True)
class RetryPolicy:
    base_seconds: int = 60
    max_seconds: int = 60 * 256
    max_retries: int = 3  # 0 = no cap
    lease_seconds: int = 15 * 60

    @classmethod
    def from_config(cls, config=None):
        cfg = config if config is not None else current_app.config
        return cls(
            base_seconds=max(1, int(cfg.get('MEDIA_RETRY_BACKOFF_BASE_SECONDS', 60))),
            max_seconds=int(cfg.get('MEDIA_RETRY_BACKOFF_MAX_SECONDS', 60 * 256)),
            max_retries=max(0, int(cfg.get('MEDIA_MAX_RETRIES', 3))),
            lease_seconds=int(cfg.get('MEDIA_PROCESSING_TIMEOUT_SECONDS', 15 * 60)),
        )

    def exhausted(self, retry_count):
        return bool(self.max_retries) and retry_count >= self.max_retries


def backoff_seconds(retry_count, policy=None):
    """Delay before a record that failed ``retry_count`` times is eligible again.

    0 for the first attempt, then ``base * 2**(n-1)`` capped at ``max_seconds``.
    """
    policy = policy or RetryPolicy()
    if retry_count is None or retry_count <= 0:
        return 0
    # cap the exponent too so huge retry counts don't build huge ints
    exp = min(retry_count - 1, 32)
    return min(policy.base_seconds * (2 ** exp), max(policy.max_seconds, policy.base_seconds))


def eligible_at(media, policy=None):
    if media.last_error_at is None:
        return None
    return media.last_error_at + timedelta(seconds=backoff_seconds(media.retry_count, policy))


def is_eligible(media, now, policy=None):
    """Pure eligibility predicate mirrored by ``_eligibility_clause``."""
    policy = policy or RetryPolicy()
    if media.status == UPLOADED:
        return True
    if media.status != FAILED:
        return False
    if policy.exhausted(media.retry_count or 0):
        return False
    at = eligible_at(media, policy)
    return at is None or now >= at


def _saturation_level(policy):
    # smallest retry count whose backoff already sits at the cap
    n = 1
    while backoff_seconds(n, policy) < policy.max_seconds and n < 64:
        n += 1
    return n


def _eligibility_clause(now, policy):
    """SQL form of ``is_eligible``: one OR branch per distinct backoff step."""
    failed_branches = [FeedbackMedia.last_error_at.is_(None)]
    top = _saturation_level(policy)
    for n in range(1, top):
        failed_branches.append(and_(
            FeedbackMedia.retry_count == n,
            FeedbackMedia.last_error_at <= now - timedelta(seconds=backoff_seconds(n, policy)),
        ))
    failed_branches.append(and_(
        FeedbackMedia.retry_count >= top,
        FeedbackMedia.last_error_at <= now - timedelta(seconds=backoff_seconds(top, policy)),
    ))
    failed = and_(FeedbackMedia.status == FAILED, or_(*failed_branches))
    if policy.max_retries:
        failed = and_(failed, FeedbackMedia.retry_count < policy.max_retries)
    return or_(FeedbackMedia.status == UPLOADED, failed)


def _check_media_type(media_type):
    if media_type not in MEDIA_TYPES:
        raise ValidationError(f"Unknown media type: {media_type!r}")


def sweep_expired_claims(media_type, now=None, policy=None):
    """Turn claims whose lease ran out into failed attempts.

    A worker that died mid-item never committed; that attempt counts as a
    failure so the usual backoff applies. Returns the number of rows swept.
    """
    now = now or utcnow()
    policy = policy or RetryPolicy.from_config()
    cutoff = now - timedelta(seconds=policy.lease_seconds)
    res = db.session.execute(
        update(FeedbackMedia)
        .where(
            FeedbackMedia.media_type == media_type,
            FeedbackMedia.status == PROCESSING,
            or_(FeedbackMedia.last_attempt_at.is_(None), FeedbackMedia.last_attempt_at < cutoff),
        )
        .values(
            status=FAILED,
            claim_token=None,
            error_code='processing_timeout',
            error_detail=f'Processing exceeded timeout ({policy.lease_seconds}s). Re-queued with backoff.',
            retry_count=FeedbackMedia.retry_count + 1,
            last_error_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if res.rowcount:
        current_app.logger.warning('Swept %d expired %s claims back to failed', res.rowcount, media_type)
    return res.rowcount


def try_claim(media_id, seen_status, seen_retry_count, now=None):
    """Atomically move one row from the observed state to ``processing``.

    Returns the claim token, or None when another worker got there first or
    the row changed since it was read.
    """
    now = now or utcnow()
    token = str(uuid4())
    res = db.session.execute(
        update(FeedbackMedia)
        .where(
            FeedbackMedia.id == media_id,
            FeedbackMedia.status == seen_status,
            FeedbackMedia.retry_count == seen_retry_count,
        )
        .values(status=PROCESSING, claim_token=token, last_attempt_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return token if res.rowcount == 1 else None


def claim_eligible(media_type, limit, now=None, policy=None):
    """Claim up to ``limit`` eligible records of one media type, oldest first.

    Returned rows are in ``processing`` and carry their ``claim_token``.
    Raises ``StoreUnavailable`` if the store cannot be reached.
    """
    _check_media_type(media_type)
    if limit <= 0:
        return []
    now = now or utcnow()
    policy = policy or RetryPolicy.from_config()
    try:
        sweep_expired_claims(media_type, now, policy)
        candidates = (
            db.session.query(FeedbackMedia.id, FeedbackMedia.status, FeedbackMedia.retry_count)
            .filter(FeedbackMedia.media_type == media_type, _eligibility_clause(now, policy))
            .order_by(FeedbackMedia.created_at.asc(), FeedbackMedia.id.asc())
            .limit(limit * 2)
            .all()
        )
        claimed_ids = []
        for media_id, status, retry_count in candidates:
            if try_claim(media_id, status, retry_count, now):
                claimed_ids.append(media_id)
            if len(claimed_ids) >= limit:
                break
        if not claimed_ids:
            return []
        rows = FeedbackMedia.query.filter(FeedbackMedia.id.in_(claimed_ids)).all()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreUnavailable(f'media store unavailable: {e}') from e

    by_id = {m.id: m for m in rows}
    current_app.logger.info('Claimed %d/%d eligible %s records', len(claimed_ids), len(candidates), media_type)
    return [by_id[i] for i in claimed_ids if i in by_id]


def persist_result(media_id, claim_token, fields):
    """Write stage output for a claimed record.

    Applies only while the row is still ours (same claim token, still
    ``processing``). Returns False when the row was deleted, re-queued or
    reclaimed in the meantime, which is a no-op rather than an error.
    Raises ``StoreUnavailable`` on infrastructure errors.
    """
    values = dict(fields)
    values.setdefault('updated_at', utcnow())
    values['claim_token'] = None
    try:
        res = db.session.execute(
            update(FeedbackMedia)
            .where(
                FeedbackMedia.id == media_id,
                FeedbackMedia.claim_token == claim_token,
                FeedbackMedia.status == PROCESSING,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreUnavailable(f'could not persist media {media_id}: {e}') from e
    return res.rowcount == 1


def commit_ready(media_id, claim_token, derived, now=None):
    fields = dict(derived)
    fields.update(status=READY, error_code=None, error_detail=None, updated_at=now or utcnow())
    return persist_result(media_id, claim_token, fields)


def record_failure(media_id, claim_token, error_code, error_detail, now=None):
    now = now or utcnow()
    return persist_result(media_id, claim_token, {
        'status': FAILED,
        'error_code': error_code,
        'error_detail': (error_detail or '')[:2000],
        'retry_count': FeedbackMedia.retry_count + 1,
        'last_error_at': now,
        'updated_at': now,
    })


def release_claim(media_id, claim_token):
    """Hand an unstarted claim back: failed rows keep their error, others go to uploaded."""
    try:
        res = db.session.execute(
            update(FeedbackMedia)
            .where(
                FeedbackMedia.id == media_id,
                FeedbackMedia.claim_token == claim_token,
                FeedbackMedia.status == PROCESSING,
            )
            .values(
                status=case((FeedbackMedia.error_code.is_(None), UPLOADED), else_=FAILED),
                claim_token=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreUnavailable(f'could not release media {media_id}: {e}') from e
    return res.rowcount == 1


def get_media(media_id):
    return db.session.get(FeedbackMedia, media_id)


def live_media_for(owner_id, media_type):
    return (
        FeedbackMedia.query
        .filter(
            FeedbackMedia.owner_id == str(owner_id),
            FeedbackMedia.media_type == media_type,
            FeedbackMedia.status != DELETED,
        )
        .first()
    )


def register_upload(owner_ref, media_type, storage_provider, storage_key,
                    mime_type=None, size_bytes=None, duration_ms=None):
    """Record a finished upload as ``uploaded`` and flag the owner as processing.

    Idempotent on ``(owner_type, owner_id, storage_key)``. A second live
    record for the same owner and media type is rejected.
    """
    _check_media_type(media_type)
    if not storage_key:
        raise ValidationError("Missing storage key")

    existing = FeedbackMedia.query.filter_by(
        owner_type=owner_ref.owner_type, owner_id=owner_ref.owner_id, storage_key=storage_key,
    ).first()
    if existing is not None:
        return existing

    if live_media_for(owner_ref.owner_id, media_type) is not None:
        raise ValidationError(f"{owner_ref.owner_type} {owner_ref.owner_id} already has {media_type} media")

    owners.require_owner(owner_ref)
    media = FeedbackMedia(
        owner_type=owner_ref.owner_type,
        owner_id=owner_ref.owner_id,
        media_type=media_type,
        storage_provider=storage_provider,
        storage_key=storage_key,
        mime_type=mime_type,
        size_bytes=size_bytes,
        duration_ms=duration_ms,
        status=UPLOADED,
        retry_count=0,
    )
    db.session.add(media)
    owners.set_processing_status(owner_ref, OWNER_PROCESSING, commit=False)
    db.session.commit()
    return media

"""Bounded HTTP calls to upstream AI services.

Every call carries a timeout. 429 and 5xx responses and network errors are
retried a small number of times with exponential backoff and jitter,
honouring ``Retry-After`` up to ``MAX_WAIT_SECONDS`` so a slow upstream
cannot hold a batch for long. The pipeline's own backoff handles anything
longer than that.
"""
import random
import time

import requests
from flask import current_app

MAX_WAIT_SECONDS = 5.0


class UpstreamHTTPError(Exception):
    def __init__(self, message, status=None, body=None):
        super().__init__(message)
        self.status = status
        self.body = body


def _retry_after(resp, default):
    ra = resp.headers.get('Retry-After') if resp is not None else None
    if not ra:
        return default
    try:
        return float(ra)
    except ValueError:
        # sometimes Retry-After is an HTTP-date; fallback to backoff
        return default


def post_with_retry(url, *, headers=None, json=None, data=None, params=None,
                    timeout=30, max_attempts=2, sleep=time.sleep):
    """POST and return the decoded JSON body.

    Raises ``UpstreamHTTPError`` carrying the final status and body when the
    call keeps failing or fails with a non-retryable status.
    """
    backoff = 1.0
    last_error = None
    for attempt in range(1, max_attempts + 1):
        try:
            r = requests.post(url, headers=headers, json=json, data=data, params=params, timeout=timeout)
        except requests.exceptions.RequestException as e:
            last_error = UpstreamHTTPError(f'network error: {e}')
            current_app.logger.warning('POST %s network error, attempt %d/%d', url, attempt, max_attempts)
            if attempt < max_attempts:
                sleep(min(backoff, MAX_WAIT_SECONDS) + random.uniform(0, 0.5))
                backoff *= 2
            continue

        if r.status_code == 429 or 500 <= r.status_code < 600:
            body = (r.text or '')[:1000]
            last_error = UpstreamHTTPError(f'upstream returned {r.status_code}', status=r.status_code, body=body)
            # an exhausted quota will not recover within this batch
            if r.status_code == 429 and 'insufficient_quota' in body:
                break
            current_app.logger.warning('POST %s returned %s, attempt %d/%d', url, r.status_code, attempt, max_attempts)
            if attempt < max_attempts:
                sleep(min(_retry_after(r, backoff), MAX_WAIT_SECONDS) + random.uniform(0, 0.5))
                backoff *= 2
            continue

        if not r.ok:
            raise UpstreamHTTPError(f'upstream returned {r.status_code}', status=r.status_code, body=(r.text or '')[:1000])

        try:
            return r.json()
        except ValueError as e:
            raise UpstreamHTTPError(f'invalid JSON from upstream: {e}', status=r.status_code) from e

    raise last_error or UpstreamHTTPError('upstream call failed')

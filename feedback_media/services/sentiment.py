"""Sentiment label for normalized feedback text.

Two backends: a keyword model that needs no upstream (default), and the
OpenAI Responses API when ``SENTIMENT_BACKEND=openai``.
"""
from dataclasses import dataclass
import json
import re

from flask import current_app

from ..errors import SentimentUnavailable
from .http import post_with_retry, UpstreamHTTPError
from .normalization import OPENAI_RESPONSES_URL, extract_output_text

POSITIVE = 'positive'
NEUTRAL = 'neutral'
NEGATIVE = 'negative'
LABELS = (POSITIVE, NEUTRAL, NEGATIVE)

POSITIVE_KEYWORDS = [
    'love', 'great', 'excellent', 'amazing', 'awesome', 'fantastic', 'wonderful',
    'good', 'best', 'perfect', 'happy', 'satisfied', 'pleased', 'impressed',
    'helpful', 'easy', 'fast', 'quality', 'recommend', 'useful', 'nice',
    'enjoyed', 'brilliant', 'outstanding', 'superb', 'exceptional',
]

NEGATIVE_KEYWORDS = [
    'hate', 'bad', 'terrible', 'awful', 'horrible', 'poor', 'worst',
    'disappointing', 'frustrated', 'angry', 'annoyed', 'difficult', 'slow',
    'complicated', 'broken', 'useless', 'waste', 'problem', 'issue',
    'confusing', 'unclear', 'unhappy', 'dissatisfied', 'failed',
]


@dataclass
class SentimentResult:
    sentiment: str
    score: float = 0.0  # -1 .. 1
    confidence: float = 0.0


def keyword_sentiment(text):
    if not text or not text.strip():
        return SentimentResult(NEUTRAL, 0.0, 0.0)

    words = text.lower().split()
    positive = sum(1 for w in words if any(kw in w for kw in POSITIVE_KEYWORDS))
    negative = sum(1 for w in words if any(kw in w for kw in NEGATIVE_KEYWORDS))

    total = positive + negative
    score = 0.0 if total == 0 else (positive - negative) / max(total, len(words) / 10)
    if score > 0.1:
        label = POSITIVE
    elif score < -0.1:
        label = NEGATIVE
    else:
        label = NEUTRAL
    confidence = 0.3 if total == 0 else min(total / 5, 1.0)
    return SentimentResult(label, score, confidence)


def _openai_sentiment(text):
    api_key = current_app.config.get('OPENAI_API_KEY')
    if not api_key:
        raise SentimentUnavailable('OPENAI_API_KEY is not set')
    prompt = (
        'Analyze the sentiment of the following customer feedback. Respond with only a JSON object: '
        '{"sentiment": "positive"|"negative"|"neutral", "score": -1 to 1, "confidence": 0 to 1}\n--\n'
        + text
    )
    body = {
        'model': current_app.config.get('OPENAI_MODEL', 'gpt-4o-mini'),
        'input': prompt,
        'max_output_tokens': 100,
        'temperature': 0,
    }
    headers = {'Authorization': f'Bearer {api_key}', 'Content-Type': 'application/json'}
    try:
        jr = post_with_retry(OPENAI_RESPONSES_URL, headers=headers, json=body, timeout=30)
    except UpstreamHTTPError as e:
        raise SentimentUnavailable(f'sentiment request failed: {e}') from e

    m = re.search(r"\{[\s\S]*\}", extract_output_text(jr or {}))
    try:
        data = json.loads(m.group(0)) if m else {}
    except ValueError as e:
        raise SentimentUnavailable(f'unparsable sentiment response: {e}') from e
    label = (data.get('sentiment') or '').lower()
    if label not in LABELS:
        raise SentimentUnavailable(f'unexpected sentiment label: {label!r}')
    try:
        return SentimentResult(label, float(data.get('score') or 0.0), float(data.get('confidence') or 0.0))
    except (TypeError, ValueError):
        return SentimentResult(label)


def score(text):
    """Classify ``text``. Raises ``SentimentUnavailable`` when the backend fails."""
    backend = current_app.config.get('SENTIMENT_BACKEND', 'keyword')
    if backend == 'openai':
        return _openai_sentiment(text)
    if backend == 'keyword':
        return keyword_sentiment(text)
    raise SentimentUnavailable(f'unknown sentiment backend: {backend}')

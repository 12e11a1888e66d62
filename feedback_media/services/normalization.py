"""Language detection and translation into the common analytics language.

Uses the OpenAI Responses HTTP API through ``requests``, the same way the
rest of the service talks to upstream models.
"""
from dataclasses import dataclass
import json
import re
from typing import Optional

from flask import current_app

from ..errors import NormalizationDegraded
from .http import post_with_retry, UpstreamHTTPError

OPENAI_RESPONSES_URL = 'https://api.openai.com/v1/responses'


@dataclass
class NormalizationResult:
    normalized_text: str
    normalized_language: str
    original_language: Optional[str] = None


def _same_language(a, b):
    if not a or not b:
        return False
    return a.split('-')[0].lower() == b.split('-')[0].lower()


def extract_output_text(jr):
    """Text of a Responses API body (``output_text`` or the ``output`` parts)."""
    text = jr.get('output_text') or ''
    if text:
        return text
    parts = []
    for item in jr.get('output') or []:
        if isinstance(item, dict):
            for c in item.get('content', []):
                if isinstance(c, dict) and 'text' in c:
                    parts.append(c['text'])
                elif isinstance(c, str):
                    parts.append(c)
        elif isinstance(item, str):
            parts.append(item)
    return '\n'.join(parts)


def _prompt(text, target):
    return "\n".join([
        "Detect the language of the customer feedback below and translate it.",
        f"- Translate into language code '{target}'. If it is already in that language, return it unchanged.",
        "- Respond with a JSON object only: {\"language\": \"<ISO 639-1 code of the input>\", \"translation\": \"<text>\"}",
        "--",
        text,
    ])


def normalize(text, source_language=None, target_language=None):
    """Translate ``text`` into the normalized language.

    Raises ``NormalizationDegraded`` on any failure; callers fall back to the
    untranslated transcript.
    """
    target = target_language or current_app.config.get('NORMALIZED_LANGUAGE', 'en')
    if not (text or '').strip():
        raise NormalizationDegraded('nothing to normalize')

    # no round-trip when the transcript already is in the target language
    if _same_language(source_language, target):
        return NormalizationResult(text, target, source_language)

    api_key = current_app.config.get('OPENAI_API_KEY')
    if not api_key:
        raise NormalizationDegraded('OPENAI_API_KEY is not set')

    body = {
        'model': current_app.config.get('OPENAI_MODEL', 'gpt-4o-mini'),
        'input': _prompt(text, target),
        'max_output_tokens': 2000,
        'temperature': 0,
    }
    headers = {'Authorization': f'Bearer {api_key}', 'Content-Type': 'application/json'}
    try:
        jr = post_with_retry(OPENAI_RESPONSES_URL, headers=headers, json=body, timeout=30)
    except UpstreamHTTPError as e:
        raise NormalizationDegraded(f'translation request failed: {e}') from e

    out = extract_output_text(jr or {})
    m = re.search(r"\{[\s\S]*\}", out)
    try:
        data = json.loads(m.group(0)) if m else {}
    except ValueError as e:
        raise NormalizationDegraded(f'unparsable translation response: {e}') from e

    translated = (data.get('translation') or '').strip()
    if not translated:
        raise NormalizationDegraded('translation response was empty')
    return NormalizationResult(
        normalized_text=translated,
        normalized_language=target,
        original_language=data.get('language') or source_language,
    )

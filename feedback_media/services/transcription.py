"""Speech-to-text for one audio/video object via the Deepgram REST API."""
from dataclasses import dataclass
import mimetypes
from typing import Optional

from flask import current_app

from ..errors import TranscriptionFailed, UnsupportedFormat
from .http import post_with_retry, UpstreamHTTPError

DEEPGRAM_URL = 'https://api.deepgram.com/v1/listen'

# containers Deepgram accepts for both audio and video uploads
SUPPORTED_MIME_PREFIXES = ('audio/', 'video/')
DEFAULT_MIME = {'audio': 'audio/webm', 'video': 'video/webm'}
# what object stores report for uploads made without a type
GENERIC_MIMES = ('application/octet-stream', 'binary/octet-stream')


@dataclass
class TranscriptionResult:
    text: str
    confidence: Optional[float] = None
    language: Optional[str] = None
    language_confidence: Optional[float] = None


def _content_type(media_type, mime_type=None, filename=None):
    content_type = (mime_type or '').split(';')[0].strip().lower()
    if content_type in GENERIC_MIMES:
        content_type = ''
    if not content_type and filename:
        content_type = (mimetypes.guess_type(filename)[0] or '').lower()
    if not content_type or content_type in GENERIC_MIMES:
        content_type = DEFAULT_MIME.get(media_type, 'application/octet-stream')
    if not content_type.startswith(SUPPORTED_MIME_PREFIXES):
        raise UnsupportedFormat(f'unsupported media format: {content_type}')
    return content_type


def parse_deepgram_response(jr):
    """Pull text, confidences and detected language out of a Deepgram body."""
    try:
        channel = (jr.get('results', {}).get('channels') or [{}])[0]
        alt = (channel.get('alternatives') or [{}])[0]
    except (AttributeError, IndexError, TypeError):
        channel, alt = {}, {}
    text = (alt.get('transcript') or '').strip()
    if not text and jr.get('utterances'):
        text = ' '.join((u.get('transcript') or '').strip() for u in jr['utterances']).strip()
    return TranscriptionResult(
        text=text,
        confidence=alt.get('confidence'),
        language=channel.get('detected_language') or jr.get('metadata', {}).get('language'),
        language_confidence=channel.get('language_confidence'),
    )


def transcribe(audio_bytes, media_type, mime_type=None, filename=None):
    """Transcribe raw media bytes in their original language.

    Raises ``UnsupportedFormat`` for content Deepgram cannot decode and
    ``TranscriptionFailed`` for everything else, including an empty
    transcript.
    """
    content_type = _content_type(media_type, mime_type, filename)
    if not audio_bytes:
        raise UnsupportedFormat('media object is empty')

    dg_key = current_app.config.get('DEEPGRAM_API_KEY')
    if not dg_key:
        raise TranscriptionFailed('DEEPGRAM_API_KEY is not set')

    params = {
        'punctuate': 'true',
        'smart_format': 'true',
        'detect_language': 'true',
    }
    model = current_app.config.get('DEEPGRAM_MODEL')
    if model:
        params['model'] = model
    headers = {
        'Authorization': f'Token {dg_key}',
        'Content-Type': content_type,
    }

    try:
        jr = post_with_retry(
            DEEPGRAM_URL, headers=headers, data=audio_bytes, params=params,
            timeout=current_app.config.get('MEDIA_HTTP_TIMEOUT_SECONDS', 60),
        )
    except UpstreamHTTPError as e:
        body = (e.body or '').lower()
        if e.status == 415 or (e.status == 400 and ('unsupported' in body or 'corrupt' in body)):
            raise UnsupportedFormat(f'Deepgram rejected media: {e.status} {e.body or ""}'.strip()) from e
        raise TranscriptionFailed(f'Deepgram transcription failed: {e}') from e

    result = parse_deepgram_response(jr or {})
    if not result.text:
        raise TranscriptionFailed('Transcription returned empty text')
    return result

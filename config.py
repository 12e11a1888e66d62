import os
from dotenv import load_dotenv
load_dotenv()


def _int(name, default):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///feedback_media.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # object storage
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
    LOCAL_STORAGE_DIR = os.getenv("LOCAL_STORAGE_DIR", "./storage")
    S3_ENDPOINT = os.getenv("S3_ENDPOINT")
    S3_REGION = os.getenv("S3_REGION")
    S3_BUCKET = os.getenv("S3_BUCKET")
    S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")
    S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")

    # upstream services
    DEEPGRAM_API_KEY = os.getenv("DEEPGRAM_API_KEY")
    DEEPGRAM_MODEL = os.getenv("DEEPGRAM_MODEL", "nova-2")
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    NORMALIZED_LANGUAGE = os.getenv("NORMALIZED_LANGUAGE", "en")
    SENTIMENT_BACKEND = os.getenv("SENTIMENT_BACKEND", "keyword")
    MEDIA_HTTP_TIMEOUT_SECONDS = _int("MEDIA_HTTP_TIMEOUT_SECONDS", 60)

    # scheduler / triggers
    CRON_SECRET = os.getenv("CRON_SECRET")
    ALLOW_MANUAL_MEDIA_PROCESSING = os.getenv("ALLOW_MANUAL_MEDIA_PROCESSING", "false").lower() == "true"

    # retry / claim policy
    MEDIA_MAX_RETRIES = _int("MEDIA_MAX_RETRIES", 3)  # 0 disables the cap
    MEDIA_RETRY_BACKOFF_BASE_SECONDS = _int("MEDIA_RETRY_BACKOFF_BASE_SECONDS", 60)
    MEDIA_RETRY_BACKOFF_MAX_SECONDS = _int("MEDIA_RETRY_BACKOFF_MAX_SECONDS", 60 * 256)
    MEDIA_PROCESSING_TIMEOUT_SECONDS = _int("MEDIA_PROCESSING_TIMEOUT_SECONDS", 15 * 60)
    MEDIA_BATCH_DEADLINE_SECONDS = _int("MEDIA_BATCH_DEADLINE_SECONDS", 240)
    MEDIA_AUDIO_BATCH_LIMIT = _int("MEDIA_AUDIO_BATCH_LIMIT", 10)
    MEDIA_VIDEO_BATCH_LIMIT = _int("MEDIA_VIDEO_BATCH_LIMIT", 5)
    MEDIA_MAX_BATCH_LIMIT = _int("MEDIA_MAX_BATCH_LIMIT", 50)

    # retention
    AUDIO_MEDIA_RETENTION_DAYS = _int("AUDIO_MEDIA_RETENTION_DAYS", 30)
    VIDEO_MEDIA_RETENTION_DAYS = _int("VIDEO_MEDIA_RETENTION_DAYS", 7)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    REDIS_URL = None
    CRON_SECRET = "test-cron-secret"
    DEEPGRAM_API_KEY = "test-deepgram"
    OPENAI_API_KEY = None
    SENTIMENT_BACKEND = "keyword"
    ALLOW_MANUAL_MEDIA_PROCESSING = True
    MEDIA_MAX_RETRIES = 3
    MEDIA_RETRY_BACKOFF_BASE_SECONDS = 60
    MEDIA_RETRY_BACKOFF_MAX_SECONDS = 60 * 256
    MEDIA_PROCESSING_TIMEOUT_SECONDS = 900
    MEDIA_BATCH_DEADLINE_SECONDS = 0  # no deadline in tests

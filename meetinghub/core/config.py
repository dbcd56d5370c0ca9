import os
from dotenv import load_dotenv


load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./meetinghub.db")
DB_SSL_CA_PATH = os.getenv("DB_SSL_CA_PATH")

# -----------------------------
# Auth
# -----------------------------
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 360))

ADMIN_NAME = os.getenv("ADMIN_NAME", "Administrator")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

# -----------------------------
# Mail
# -----------------------------
MAIL_USERNAME = os.getenv("MAIL_USERNAME", "")
MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
MAIL_FROM = os.getenv("MAIL_FROM", "noreply@example.com")
MAIL_PORT = int(os.getenv("MAIL_PORT", 587))
MAIL_SERVER = os.getenv("MAIL_SERVER", "localhost")
MAIL_STARTTLS = _env_bool("MAIL_STARTTLS", "True")
MAIL_SSL_TLS = _env_bool("MAIL_SSL_TLS", "False")
MAIL_FROM_NAME = os.getenv("MAIL_FROM_NAME", "MeetingHub")
USE_CREDENTIALS = _env_bool("USE_CREDENTIALS", "True")
SUPPRESS_SEND = _env_bool("MAIL_SUPPRESS_SEND", "False")

# -----------------------------
# Object storage (MinIO)
# -----------------------------
MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "localhost:9000")
MINIO_ACCESS_KEY = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
MINIO_SECRET_KEY = os.getenv("MINIO_SECRET_KEY", "minioadmin")
MINIO_SECURE = _env_bool("MINIO_SECURE", "False")
# Host used when signing URLs handed out to browsers; defaults to the internal endpoint.
MINIO_PUBLIC_ENDPOINT = os.getenv("MINIO_PUBLIC_ENDPOINT", "")
MINIO_PUBLIC_SECURE = _env_bool("MINIO_PUBLIC_SECURE", "True")
MINIO_REGION = os.getenv("MINIO_REGION", "us-east-1")
MINIO_PROFILE_BUCKET = os.getenv("MINIO_PROFILE_BUCKET", "profile-pictures")
MINIO_MEETING_BUCKET = os.getenv("MINIO_MEETING_BUCKET", "meeting-files")

MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", 50 * 1024 * 1024))
COMPRESSION_FILE_SIZE_LIMIT = int(os.getenv("COMPRESSION_FILE_SIZE_LIMIT", 10 * 1024 * 1024))

# -----------------------------
# Background jobs
# -----------------------------
REMINDER_OFFSET_MINUTES = int(os.getenv("REMINDER_OFFSET_MINUTES", 15))
REMINDER_MISFIRE_GRACE_SECONDS = int(os.getenv("REMINDER_MISFIRE_GRACE_SECONDS", 600))
REMINDER_RETRY_ATTEMPTS = int(os.getenv("REMINDER_RETRY_ATTEMPTS", 3))

CLEANUP_THRESHOLD_DAYS = float(os.getenv("CLEANUP_THRESHOLD_DAYS", 30))
CLEANUP_INTERVAL_MINUTES = int(os.getenv("CLEANUP_INTERVAL_MINUTES", 60 * 24))

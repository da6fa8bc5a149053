import os


def _optional_int(name: str, default: str | None = None) -> int | None:
    value = os.getenv(name, default)
    if value is None or value == "":
        return None
    return int(value)


class Settings:
    SECRET_KEY: str = os.getenv("SECRET_KEY", "your-secret-key")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./skieshare.db")
    DATABASE_ECHO: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    MINIO_ENDPOINT: str = os.getenv("MINIO_ENDPOINT", "minio:9000")
    MINIO_ACCESS_KEY: str = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
    MINIO_SECRET_KEY: str = os.getenv("MINIO_SECRET_KEY", "minioadmin")
    MINIO_BUCKET: str = os.getenv("MINIO_BUCKET", "skieshare")
    MINIO_SECURE: bool = os.getenv("MINIO_SECURE", "false").lower() == "true"

    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "")

    # Profiles
    DEFAULT_STORAGE_LIMIT: int = 6442450944
    DEFAULT_DAILY_UPLOAD_LIMIT: int | None = _optional_int("DEFAULT_DAILY_UPLOAD_LIMIT", "100")
    TIER_MAX_FILE_SIZE: dict = {
        "free": 512 * 1024 * 1024,
        "basic": 2 * 1024 * 1024 * 1024,
        "pro": 10 * 1024 * 1024 * 1024,
    }
    # None means files are kept until they expire on their own
    TIER_RETENTION_HOURS: dict = {
        "free": 48,
        "basic": 48,
        "pro": None,
    }
    UNLIMITED_TIERS: set = {"pro"}
    # files of a lapsed pro subscription are kept this long after it ends
    PRO_LAPSE_GRACE_DAYS: int = int(os.getenv("PRO_LAPSE_GRACE_DAYS", "35"))

    # Sharing
    SHARE_CODE_LENGTH: int = 8
    SHARE_CODE_MAX_ATTEMPTS: int = int(os.getenv("SHARE_CODE_MAX_ATTEMPTS", "10"))
    INVITE_EXPIRE_DAYS: int = 7

    # Email
    EMAIL_ENABLED: bool = os.getenv("EMAIL_ENABLED", "false").lower() == "true"
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "no-reply@skieshare.app")
    EMAIL_FROM_NAME: str = os.getenv("EMAIL_FROM_NAME", "SkieShare")
    SENDGRID_API_KEY: str | None = os.getenv("SENDGRID_API_KEY")

    CLEANUP_ENABLED: bool = os.getenv("CLEANUP_ENABLED", "true").lower() == "true"

settings = Settings()

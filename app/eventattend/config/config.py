import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """
    Settings read straight from environment variables.
    """
    # Database
    DATABASE_URL: str = os.environ.get("DATABASE_URL")
    DB_POOL_MIN_SIZE: int = int(os.environ.get("DB_POOL_MIN_SIZE", 5))
    DB_POOL_MAX_SIZE: int = int(os.environ.get("DB_POOL_MAX_SIZE", 20))

    # Redis
    APPLICATION_REDIS_URL: str = os.environ.get("APPLICATION_REDIS_URL")
    RATE_LIMITER_REDIS_URL: str = os.environ.get("RATE_LIMITER_REDIS_URL", "memory://")
    NOTIFICATION_CHANNEL_PREFIX: str = os.environ.get("NOTIFICATION_CHANNEL_PREFIX", "eventattend")

    # Events and scheduling
    SUPER_ADMIN_ROLE_ID: int = int(os.environ.get("SUPER_ADMIN_ROLE_ID", 4))
    STUDENT_ROLE_ID: int = int(os.environ.get("STUDENT_ROLE_ID", 1))
    ARCHIVE_SWEEP_HOUR: int = int(os.environ.get("ARCHIVE_SWEEP_HOUR", 0))
    ARCHIVE_SWEEP_MINUTE: int = int(os.environ.get("ARCHIVE_SWEEP_MINUTE", 0))

    # Logging
    LOG_DIR: str = os.environ.get("LOG_DIR", "logs")
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

# Single importable settings instance
settings = Config()

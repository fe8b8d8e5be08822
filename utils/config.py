import os
from dotenv import load_dotenv


load_dotenv(override=True)


def _split_csv(env_name: str, default: str = "") -> list[str]:
    raw = os.getenv(env_name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class AppConfig:
    """Application settings read from the environment (and .env)"""

    # Database
    POSTGRES_USER = os.getenv("POSTGRES_USER")
    POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD")
    POSTGRES_DB = os.getenv("POSTGRES_DB")
    POSTGRES_HOST = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")

    # Text generation
    LLM_MODEL = os.getenv("LLM_MODEL", "openai:gpt-4.1")
    LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.2"))

    # Logging
    LOG_FILE = os.getenv("LOG_FILE", "logs/app.log")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))

    # HTTP
    SLOW_REQUEST_THRESHOLD_MS = float(os.getenv("SLOW_REQUEST_THRESHOLD_MS", "1000"))
    STATS_LOG_INTERVAL_S = int(os.getenv("STATS_LOG_INTERVAL_S", "300"))  # 5 minutes
    CORS_ORIGINS = _split_csv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:5173,http://localhost:8080",
    )

    # Scheduling
    DEFAULT_START_TIME = os.getenv("DEFAULT_START_TIME", "09:00")

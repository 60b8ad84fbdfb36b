from dotenv import load_dotenv
import os

from .constants import DEFAULT_VIEWPORT_HEIGHT, DEFAULT_VIEWPORT_WIDTH

load_dotenv()  # Loads variables from .env file


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Manages process-wide settings loaded from environment variables.

    Per-pool settings are passed as ``CrawlerOptions`` instead.
    """
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE")

    # JSON lines file receiving the timing ledger of every finished job
    DIAGNOSTICS_LOG_PATH = os.getenv("DIAGNOSTICS_LOG_PATH")

    HEADLESS = _env_bool("HEADLESS", True)
    DEFAULT_VIEWPORT_WIDTH = int(os.getenv("DEFAULT_VIEWPORT_WIDTH", str(DEFAULT_VIEWPORT_WIDTH)))
    DEFAULT_VIEWPORT_HEIGHT = int(os.getenv("DEFAULT_VIEWPORT_HEIGHT", str(DEFAULT_VIEWPORT_HEIGHT)))

    # Comma-separated proxy URLs used when none are given on the command line
    PROXY_URLS = [u.strip() for u in os.getenv("PROXY_URLS", "").split(",") if u.strip()]


settings = Settings()

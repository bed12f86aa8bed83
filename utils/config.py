"""Environment-driven settings for the bot process."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class Settings:
    """Runtime configuration resolved once at startup.

    Attributes:
        telegram_token: Bot API token used for every Telegram call.
        kie_api_key: Bearer token for the Kie.ai generation API.
        database_dir: Directory holding the SQLite session database.
        default_lang: Locale used when a user has not picked one.
        models_file: Path to the static model catalog JSON.
        locales_dir: Directory containing `<lang>.json` translation files.
        telegram_mode: `polling` (getUpdates loop) or `webhook`.
        webhook_secret: Path secret the webhook route must be called with.
        kie_base_url: Base URL of the Kie.ai REST API.
        log_level: Root logging level name.
    """

    telegram_token: str
    kie_api_key: str
    database_dir: Path
    default_lang: str = "en"
    models_file: Path = BASE_DIR / "models.json"
    locales_dir: Path = BASE_DIR / "locales"
    telegram_mode: str = "polling"
    webhook_secret: str = ""
    kie_base_url: str = "https://api.kie.ai/api/v1"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and `.env` if present).

        Raises:
            RuntimeError: If a required variable is missing or the mode is unknown.
        """
        load_dotenv()

        telegram_token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
        kie_api_key = os.getenv("KIE_API_KEY", "").strip()
        database_dir = os.getenv("DATABASE_DIR", "").strip()

        if not telegram_token:
            raise RuntimeError("TELEGRAM_BOT_TOKEN environment variable is not set")
        if not kie_api_key:
            raise RuntimeError("KIE_API_KEY environment variable is not set")
        if not database_dir:
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite database file will be stored."
            )

        telegram_mode = os.getenv("TELEGRAM_MODE", "polling").strip().lower()
        if telegram_mode not in ("polling", "webhook"):
            raise RuntimeError(f"Unsupported TELEGRAM_MODE: {telegram_mode!r}")

        webhook_secret = os.getenv("WEBHOOK_SECRET", "").strip()
        if telegram_mode == "webhook" and not webhook_secret:
            raise RuntimeError("WEBHOOK_SECRET is required when TELEGRAM_MODE=webhook")

        return cls(
            telegram_token=telegram_token,
            kie_api_key=kie_api_key,
            database_dir=Path(database_dir).expanduser(),
            default_lang=os.getenv("DEFAULT_LANG", "en").strip() or "en",
            models_file=Path(os.getenv("MODELS_FILE", str(BASE_DIR / "models.json"))),
            locales_dir=Path(os.getenv("LOCALES_DIR", str(BASE_DIR / "locales"))),
            telegram_mode=telegram_mode,
            webhook_secret=webhook_secret,
            kie_base_url=os.getenv("KIE_BASE_URL", "https://api.kie.ai/api/v1").rstrip("/"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

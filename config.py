"""Runtime configuration for the budget tracker.

Values come from the environment (optionally via a ``.env`` file).
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from errors import ConfigurationError

DEFAULT_APP_ID = "default-app-id"
STORE_BACKENDS = ("sql", "firestore")


@dataclass
class Settings:
    app_id: str = DEFAULT_APP_ID
    firebase_api_key: Optional[str] = None
    firebase_project_id: Optional[str] = None
    initial_auth_token: Optional[str] = None
    store_backend: str = "sql"
    database_url: str = "sqlite:///budget_tracker.db"
    local_storage_path: Path = Path.home() / ".budget_tracker" / "local_storage.json"
    link_api_base: Optional[str] = None
    link_api_timeout: Optional[float] = None
    plaid_client_id: Optional[str] = None
    plaid_secret: Optional[str] = None
    plaid_env: str = "sandbox"
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @property
    def bank_link_enabled(self) -> bool:
        """Variant 2: bank linking is on when a link API base URL is set."""
        return bool(self.link_api_base)

    def validate(self) -> None:
        if self.store_backend not in STORE_BACKENDS:
            raise ConfigurationError(
                f"Unknown STORE_BACKEND '{self.store_backend}'. Use one of: {', '.join(STORE_BACKENDS)}"
            )
        if self.store_backend == "firestore" and not self.firebase_project_id:
            raise ConfigurationError("FIREBASE_PROJECT_ID is required for the firestore backend")
        if not self.database_url and self.store_backend == "sql":
            raise ConfigurationError("DATABASE_URL is required for the sql backend")


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Read settings from the environment, loading ``.env`` first if present."""
    load_dotenv(env_file)

    defaults = Settings()
    timeout = _blank_to_none(os.getenv("LINK_API_TIMEOUT"))
    try:
        link_timeout = float(timeout) if timeout else None
    except ValueError:
        raise ConfigurationError(f"LINK_API_TIMEOUT must be a number, got '{timeout}'")

    storage_path = _blank_to_none(os.getenv("LOCAL_STORAGE_PATH"))
    log_file = _blank_to_none(os.getenv("LOG_FILE"))

    settings = Settings(
        app_id=_blank_to_none(os.getenv("APP_ID")) or DEFAULT_APP_ID,
        firebase_api_key=_blank_to_none(os.getenv("FIREBASE_API_KEY")),
        firebase_project_id=_blank_to_none(os.getenv("FIREBASE_PROJECT_ID")),
        initial_auth_token=_blank_to_none(os.getenv("INITIAL_AUTH_TOKEN")),
        store_backend=(os.getenv("STORE_BACKEND") or defaults.store_backend).strip().lower(),
        database_url=os.getenv("DATABASE_URL", defaults.database_url),
        local_storage_path=Path(storage_path) if storage_path else defaults.local_storage_path,
        link_api_base=_blank_to_none(os.getenv("LINK_API_BASE")),
        link_api_timeout=link_timeout,
        plaid_client_id=_blank_to_none(os.getenv("PLAID_CLIENT_ID")),
        plaid_secret=_blank_to_none(os.getenv("PLAID_SECRET")),
        plaid_env=os.getenv("PLAID_ENV", defaults.plaid_env),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        log_file=Path(log_file) if log_file else None,
    )
    settings.validate()
    return settings

"""
Application configuration with Docker secrets support.

Secrets are read using the _read_secret() pattern:
  1. Direct env var (e.g., APP_SECRET_KEY)
  2. File-based env var (e.g., APP_SECRET_KEY_FILE → reads file path)
  3. Raises ValueError if neither is set
"""

import os
import logging

logger = logging.getLogger(__name__)


def _read_secret(env_var: str, file_env_var: str | None = None) -> str:
    """Read a secret from env var or Docker secrets file.

    Args:
        env_var: Direct environment variable name (e.g., SMTP_PASSWORD)
        file_env_var: File path env var name (e.g., SMTP_PASSWORD_FILE).
                      If None, defaults to env_var + '_FILE'.

    Returns:
        The secret value.

    Raises:
        ValueError: If neither source provides a value.
    """
    if file_env_var is None:
        file_env_var = f"{env_var}_FILE"

    # Priority 1: Direct env var
    value = os.environ.get(env_var)
    if value:
        return value

    # Priority 2: File-based (Docker secrets pattern)
    file_path = os.environ.get(file_env_var)
    if file_path:
        try:
            with open(file_path, "r") as f:
                value = f.read().strip()
            if value:
                return value
        except FileNotFoundError:
            logger.error(f"Secret file not found: {file_path} (from {file_env_var})")
        except PermissionError:
            logger.error(f"Permission denied reading: {file_path} (from {file_env_var})")

    raise ValueError(
        f"Secret not configured. Set {env_var} env var or {file_env_var} pointing to a file."
    )


def _split_csv(value: str) -> list[str]:
    return [item.strip().rstrip("/") for item in value.split(",") if item.strip()]


class Settings:
    """Application settings loaded from environment and Docker secrets."""

    def __init__(self):
        # Stores
        self.database_url = self._build_database_url()
        self.redis_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
        self.redis_timeout = float(os.environ.get("REDIS_TIMEOUT_SECONDS", "10"))

        # Secrets (loaded lazily on first access via properties)
        self._app_secret_key: str | None = None
        self._smtp_password: str | None = None

        # Public config
        self.environment = os.environ.get("APP_ENV", "development")
        self.public_base_url = os.environ.get("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/")
        self.allowed_origins = _split_csv(
            os.environ.get("ALLOWED_ORIGINS", f"{self.public_base_url},http://localhost:3000")
        )

        # Email transport
        self.smtp_host = os.environ.get("SMTP_HOST", "smtp.gmail.com")
        self.smtp_port = int(os.environ.get("SMTP_PORT", "587"))
        self.smtp_username = os.environ.get("SMTP_USERNAME", "")
        self.email_from = os.environ.get("EMAIL_FROM", self.smtp_username or "no-reply@localhost")
        self.smtp_timeout = float(os.environ.get("SMTP_TIMEOUT_SECONDS", "30"))

        # Blob fetches
        self.http_timeout = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30"))

        # Replay protection for the retrieval proxy
        self.token_max_age_seconds = int(os.environ.get("TOKEN_MAX_AGE_SECONDS", "900"))
        self.proxy_link_max_age_seconds = int(os.environ.get("PROXY_LINK_MAX_AGE_SECONDS", "300"))
        self.proxy_clock_skew_seconds = int(os.environ.get("PROXY_CLOCK_SKEW_SECONDS", "30"))

        # Rate limiting
        self.rate_limit_backend = os.environ.get("RATE_LIMIT_BACKEND", "memory")
        self.rate_limit_window_seconds = int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", "60"))
        self.view_rate_limit = int(os.environ.get("VIEW_RATE_LIMIT", "20"))
        self.download_rate_limit = int(os.environ.get("DOWNLOAD_RATE_LIMIT", "5"))
        self.notify_rate_limit = int(os.environ.get("NOTIFY_RATE_LIMIT", "10"))

    def _build_database_url(self) -> str:
        """Build async database URL with password from secrets."""
        base_url = os.environ.get(
            "DATABASE_URL", "postgresql+asyncpg://pdfculture@postgres:5432/pdfculture"
        )
        try:
            password = _read_secret("POSTGRES_PASSWORD")
            # Insert password into URL: postgresql+asyncpg://user@host → user:pass@host
            if "://" in base_url and "@" in base_url:
                scheme_user, rest = base_url.split("@", 1)
                if ":" not in scheme_user.split("://")[1]:
                    # No password in URL yet, add it
                    base_url = f"{scheme_user}:{password}@{rest}"
        except ValueError:
            logger.warning("POSTGRES_PASSWORD not set, using DATABASE_URL as-is")
        return base_url

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def app_secret_key(self) -> str:
        if self._app_secret_key is None:
            self._app_secret_key = _read_secret("APP_SECRET_KEY")
        return self._app_secret_key

    @property
    def smtp_password(self) -> str:
        if self._smtp_password is None:
            self._smtp_password = _read_secret("SMTP_PASSWORD")
        return self._smtp_password


settings = Settings()

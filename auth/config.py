"""
Environment-driven configuration for the auth system.

Resolved once at process start by create_app() and handed to the
components that need it (AuthManager, GoogleOAuthClient, DatabaseManager).
"""

import os
from pathlib import Path
from typing import List, Optional

import dotenv
from loguru import logger


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    value = (os.getenv(name, "") or "").strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


def _parse_csv(value: str) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


class AuthConfig:
    """Configuration for JWT issuance, the identity store and Google OAuth"""

    def __init__(self, env_file: str = ".env"):
        if Path(env_file).exists():
            dotenv.load_dotenv(env_file)

        self.jwt_secret = os.getenv("JWT_SECRET")
        if not self.jwt_secret:
            raise ValueError("JWT_SECRET environment variable not set. Cannot initialize auth system.")
        if len(self.jwt_secret) < 32:
            logger.warning("JWT_SECRET is less than 32 bytes - use a stronger secret!")

        self.jwt_algorithm = "HS256"
        self.jwt_expiry = int(os.getenv("JWT_EXPIRY_SECONDS", "86400"))

        # Identity store
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./raptor.db")
        self.db_echo = _env_bool("DB_ECHO", False)
        self.bcrypt_rounds = int(os.getenv("BCRYPT_ROUNDS", "12"))

        # Routing
        base_path = os.getenv("API_BASE_PATH", "/api/auth").strip().strip("/")
        self.api_base_path = f"/{base_path}" if base_path else ""

        # Google OAuth
        self.google_client_id = (os.getenv("GOOGLE_CLIENT_ID", "") or "").strip() or None
        self.google_client_secret = (os.getenv("GOOGLE_CLIENT_SECRET", "") or "").strip() or None
        self.google_callback_url = os.getenv(
            "GOOGLE_CALLBACK_URL",
            "http://localhost:8000/api/auth/google/callback"
        )
        # Secure cookies when the callback is served over https, unless overridden.
        self.cookie_secure = _env_bool(
            "AUTH_COOKIE_SECURE",
            self.google_callback_url.startswith("https://")
        )

        # Bootstrap admin (only used when the users table is empty)
        self.admin_initial_username = (os.getenv("ADMIN_INITIAL_USERNAME", "") or "").strip() or None
        self.admin_initial_password = os.getenv("ADMIN_INITIAL_PASSWORD") or None

        self.cors_origins = _parse_csv(os.getenv("CORS_ORIGINS", "http://localhost:3000"))
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        logger.info(
            f"Auth config loaded: base_path={self.api_base_path}, "
            f"jwt_expiry={self.jwt_expiry}s, google_enabled={self.google_enabled}"
        )

    @property
    def google_enabled(self) -> bool:
        """Google OAuth is enabled when both client credentials are set."""
        return bool(self.google_client_id and self.google_client_secret)

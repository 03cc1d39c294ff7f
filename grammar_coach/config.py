"""Configuration settings for the Grammar Coach service."""

import os
import logging
from dataclasses import dataclass
from typing import Final, List, Mapping, Optional

from grammar_coach.utils.error_handler import ConfigError

# Debug flag: 1 = debug mode (verbose logging), 0 = production mode
DEBUG: Final[int] = int(os.environ.get("COACH_DEBUG", "0"))

# --- Logging Configuration ---
LOGGER_NAME: Final[str] = "GrammarCoach"
LOG_LEVEL = logging.DEBUG if DEBUG else logging.INFO
# Structured log format: timestamp, level, logger, module.function:line, message
LOG_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(module)s.%(funcName)s:%(lineno)d | %(message)s'
# Empty string disables the file handler
LOG_FILE: Final[str] = os.environ.get("COACH_LOG_FILE", os.path.join("logs", "grammar_coach.log"))

# --- Google API Settings ---
SHEETS_SCOPES: Final[List[str]] = [
    "https://www.googleapis.com/auth/spreadsheets",
]
DEFAULT_SHEET_NAME: Final[str] = "Responses"

# Fixed column order of the results sheet. Existing sheets missing any of
# these get the missing headers appended before the first write.
COL_ID: Final[str] = "ID"
COL_TIMESTAMP: Final[str] = "日時"
COL_NAME: Final[str] = "氏名"
COL_EMAIL: Final[str] = "Email"
COL_GRADE: Final[str] = "学年"
COL_TARGET: Final[str] = "志望校"
COL_EXPLANATION: Final[str] = "生徒の説明"
COL_GRADED_TEXT: Final[str] = "AI添削"
COL_USER_ID: Final[str] = "ユーザーID"
SHEET_COLUMNS: Final[List[str]] = [
    COL_ID, COL_TIMESTAMP, COL_NAME, COL_EMAIL, COL_GRADE,
    COL_TARGET, COL_EXPLANATION, COL_GRADED_TEXT, COL_USER_ID,
]
TIMESTAMP_FORMAT: Final[str] = "%Y/%m/%d %H:%M:%S"

# --- Gemini AI Settings ---
DEFAULT_GEMINI_MODEL: Final[str] = "gemini-2.5-flash"
# Seconds; the grading call is never retried
DEFAULT_GRADING_TIMEOUT: Final[float] = 30.0

# --- Notification Settings ---
LINE_PUSH_ENDPOINT: Final[str] = "https://api.line.me/v2/bot/message/push"
LINE_TIMEOUT: Final[float] = 10.0
PUSH_SUMMARY_LENGTH: Final[int] = 80
SMTP_TIMEOUT: Final[float] = 20.0
DEFAULT_SMTP_HOST: Final[str] = "smtp.gmail.com"
DEFAULT_SMTP_PORT: Final[int] = 587
SMTP_SSL_PORT: Final[int] = 465
DEFAULT_SENDER_NAME: Final[str] = "AI英語予備校"

DEFAULT_TIMEZONE: Final[str] = "Asia/Tokyo"


def _first_env(env: Mapping[str, str], *names: str, default: str = "") -> str:
    """Returns the first non-empty value among several environment variable names."""
    for name in names:
        value = env.get(name)
        if value:
            return value.strip()
    return default


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once at start-up and passed to each component.

    Only the Gemini key is mandatory. Every other credential group is
    optional; when it is missing the stage it feeds becomes a no-op.
    """

    gemini_api_key: str
    gemini_model: str = DEFAULT_GEMINI_MODEL
    grading_timeout: float = DEFAULT_GRADING_TIMEOUT

    spreadsheet_id: str = ""
    service_account_email: str = ""
    private_key: str = ""
    sheet_name: str = DEFAULT_SHEET_NAME

    line_channel_token: str = ""

    smtp_host: str = DEFAULT_SMTP_HOST
    smtp_port: int = DEFAULT_SMTP_PORT
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_ssl: bool = False
    sender_name: str = DEFAULT_SENDER_NAME

    public_base_url: str = ""
    liff_id: str = ""
    timezone: str = DEFAULT_TIMEZONE

    @property
    def store_configured(self) -> bool:
        return bool(self.spreadsheet_id and self.service_account_email and self.private_key)

    @property
    def push_configured(self) -> bool:
        return bool(self.line_channel_token)

    @property
    def mail_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

    @property
    def mail_implicit_tls(self) -> bool:
        return self.smtp_use_ssl or self.smtp_port == SMTP_SSL_PORT

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Builds settings from environment variables.

        Both the current variable names and the names used by the earlier
        Node deployment are accepted, the current ones taking precedence.

        Raises:
            ConfigError: If GEMINI_API_KEY is missing or a numeric value is malformed.
        """
        env = os.environ if env is None else env

        api_key = _first_env(env, "GEMINI_API_KEY")
        if not api_key:
            raise ConfigError("Missing required environment variable: GEMINI_API_KEY")

        try:
            grading_timeout = float(_first_env(env, "GRADING_TIMEOUT", default=str(DEFAULT_GRADING_TIMEOUT)))
            smtp_port = int(_first_env(env, "SMTP_PORT", default=str(DEFAULT_SMTP_PORT)))
        except ValueError as e:
            raise ConfigError(f"Invalid numeric configuration value: {e}") from e

        # Keys pasted into .env files usually carry escaped newlines
        private_key = _first_env(env, "GOOGLE_PRIVATE_KEY").replace("\\n", "\n")

        return cls(
            gemini_api_key=api_key,
            gemini_model=_first_env(env, "GEMINI_MODEL", default=DEFAULT_GEMINI_MODEL),
            grading_timeout=grading_timeout,
            spreadsheet_id=_first_env(env, "GOOGLE_SPREADSHEET_ID", "GOOGLE_SHEET_ID"),
            service_account_email=_first_env(env, "GOOGLE_SERVICE_ACCOUNT_EMAIL"),
            private_key=private_key,
            sheet_name=_first_env(env, "GOOGLE_SHEET_NAME", default=DEFAULT_SHEET_NAME),
            line_channel_token=_first_env(env, "LINE_CHANNEL_ACCESS_TOKEN"),
            smtp_host=_first_env(env, "SMTP_HOST", default=DEFAULT_SMTP_HOST),
            smtp_port=smtp_port,
            smtp_user=_first_env(env, "SMTP_USER", "SENDER_EMAIL"),
            smtp_password=_first_env(env, "SMTP_PASSWORD", "SENDER_PASSWORD"),
            smtp_use_ssl=_env_flag(_first_env(env, "SMTP_USE_SSL")),
            sender_name=_first_env(env, "SMTP_SENDER_NAME", default=DEFAULT_SENDER_NAME),
            public_base_url=_first_env(env, "PUBLIC_BASE_URL", "NEXT_PUBLIC_BASE_URL").rstrip("/"),
            liff_id=_first_env(env, "LIFF_ID", "NEXT_PUBLIC_LIFF_ID"),
            timezone=_first_env(env, "COACH_TIMEZONE", default=DEFAULT_TIMEZONE),
        )

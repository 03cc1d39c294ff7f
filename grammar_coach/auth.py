"""Builds Google service-account credentials for the results spreadsheet."""

from typing import Any, Dict, List, Optional

from google.oauth2 import service_account

from grammar_coach import config
from grammar_coach.config import Settings
from grammar_coach.utils.logger import get_logger
from grammar_coach.utils.error_handler import AuthenticationError, ConfigError

logger = get_logger()

TOKEN_URI = "https://oauth2.googleapis.com/token"

def get_service_account_credentials(
    settings: Settings,
    scopes: Optional[List[str]] = None
) -> service_account.Credentials:
    """Gets Google API credentials for the configured service account.

    No token is fetched here; the credentials refresh themselves on the
    first authorized request.

    Args:
        settings: Application settings holding the account email and private key.
        scopes: OAuth scopes to request. Defaults to `config.SHEETS_SCOPES`.

    Returns:
        service_account.Credentials: Credentials ready to hand to `build_service`.

    Raises:
        ConfigError: If the account email or private key is not configured.
        AuthenticationError: If the key material cannot be parsed.
    """
    if not settings.service_account_email or not settings.private_key:
        raise ConfigError("Service account email and private key must both be set to use the spreadsheet.")

    info: Dict[str, Any] = {
        "type": "service_account",
        "client_email": settings.service_account_email,
        "private_key": settings.private_key,
        "token_uri": TOKEN_URI,
    }
    try:
        creds = service_account.Credentials.from_service_account_info(
            info, scopes=scopes or config.SHEETS_SCOPES
        )
    except (ValueError, KeyError) as e:
        logger.error(f"Could not load service account key for {settings.service_account_email}: {e}", exc_info=config.DEBUG)
        raise AuthenticationError(f"Invalid service account key material: {e}") from e

    logger.debug(f"Loaded service account credentials for {settings.service_account_email}")
    return creds

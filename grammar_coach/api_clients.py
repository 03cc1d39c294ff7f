"""Google API client construction and error translation."""

import httplib2
from google.auth import exceptions as google_auth_exceptions
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError
from google.auth.credentials import Credentials

from grammar_coach import config
from grammar_coach.utils.logger import get_logger
from grammar_coach.utils.error_handler import APIError, AuthenticationError, BaseCoachException

logger = get_logger()

AUTH_STATUS_CODES = (401, 403)
# Failures below the HTTP layer: token refresh, DNS, sockets, timeouts
TRANSPORT_ERRORS = (google_auth_exceptions.GoogleAuthError, httplib2.HttpLib2Error, OSError)

# (service, version, service account) -> built client
_service_cache: dict[tuple[str, str, str], Resource] = {}

def translate_http_error(e: HttpError, action: str, service_name: str) -> BaseCoachException:
    """Maps a googleapiclient HttpError to the application's error types.

    401/403 become AuthenticationError, anything else APIError carrying the
    HTTP status.
    """
    status = e.resp.status
    if status in AUTH_STATUS_CODES:
        return AuthenticationError(
            f"Access denied while trying to {action} ({status}). "
            "Check that the service account has access to the resource."
        )
    return APIError(f"Failed to {action}: HTTP {status}", status_code=status, service=service_name)

def translate_transport_error(e: Exception, action: str, service_name: str) -> BaseCoachException:
    """Maps a failure from TRANSPORT_ERRORS to the application's error types.

    A rejected token refresh (revoked or malformed service-account key)
    becomes AuthenticationError. Network failures become APIError without
    a status code.
    """
    if isinstance(e, google_auth_exceptions.RefreshError):
        return AuthenticationError(f"Service account token refresh failed while trying to {action}: {e}")
    return APIError(f"Failed to {action}: {type(e).__name__}: {e}", service=service_name)

def build_service(service_name: str, version: str, credentials: Credentials) -> Resource:
    """Returns a Google API client, building it on first use.

    Clients are cached per service, version and service account. Service
    account credentials fetch their token lazily, so they need not be
    valid yet.

    Raises:
        AuthenticationError: If no credentials are given or the API rejects them.
        APIError: If the discovery document cannot be loaded.
    """
    if credentials is None:
        raise AuthenticationError(f"No credentials provided for service '{service_name}'.")

    cache_key = (service_name, version, getattr(credentials, "service_account_email", "") or "")
    cached = _service_cache.get(cache_key)
    if cached is not None:
        logger.debug(f"Reusing {service_name} {version} client.")
        return cached

    try:
        # The file-based discovery cache only works with oauth2client
        service = build(service_name, version, credentials=credentials, cache_discovery=False)
    except HttpError as e:
        logger.error(f"Building {service_name} {version} failed: {e.resp.status} {e.content}", exc_info=config.DEBUG)
        raise translate_http_error(e, f"build the {service_name} client", service_name) from e
    except Exception as e:
        logger.error(f"Unexpected error building {service_name} {version}: {e}", exc_info=config.DEBUG)
        raise APIError(f"Unexpected error building service '{service_name}': {e}", service=service_name) from e

    logger.info(f"Built {service_name} {version} client.")
    _service_cache[cache_key] = service
    return service

def clear_service_cache() -> None:
    _service_cache.clear()

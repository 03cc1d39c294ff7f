"""Wrapper for the LINE Messaging API push endpoint."""

import uuid
from typing import Any, Dict, Optional

import requests

from grammar_coach import config
from grammar_coach.config import Settings
from grammar_coach.utils.logger import get_logger
from grammar_coach.utils.error_handler import APIError, AuthenticationError, ConfigError
from grammar_coach.utils.retry import retry_on_exception

logger = get_logger()

RETRYABLE_LINE_ERRORS = (requests.ConnectionError, requests.Timeout)
# LINE rejects text messages longer than this
MAX_TEXT_LENGTH = 5000

class LineMessagingService:
    """Pushes text messages to a LINE user on behalf of the channel."""

    SERVICE_NAME = 'line'

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        """Initializes the LineMessagingService.

        Args:
            settings: Application settings holding the channel access token.
            session: HTTP session to send requests with, mainly for tests.

        Raises:
            ConfigError: If no channel access token is configured.
        """
        if not settings.line_channel_token:
            raise ConfigError("LINE_CHANNEL_ACCESS_TOKEN is not set.")
        self._token = settings.line_channel_token
        self.session = session or requests.Session()

    def push_text(self, user_id: str, text: str) -> Dict[str, Any]:
        """Sends a single text message to `user_id`.

        Every attempt carries the same X-Line-Retry-Key, so a retry after a
        timeout cannot deliver the message twice.

        Raises:
            ValueError: If `user_id` or `text` is empty.
            AuthenticationError: If LINE rejects the channel token (401/403).
            APIError: For any other non-2xx response.
        """
        if not user_id:
            raise ValueError("A LINE user id is required to push a message.")
        if not text:
            raise ValueError("Refusing to push an empty LINE message.")

        payload = {"to": user_id, "messages": [{"type": "text", "text": text[:MAX_TEXT_LENGTH]}]}
        result = self._post_push(payload, str(uuid.uuid4()))
        logger.info(f"Pushed LINE message ({len(text)} chars) to user {user_id[:8]}...")
        return result

    @retry_on_exception(exceptions=RETRYABLE_LINE_ERRORS, max_attempts=2, initial_delay=0.5)
    def _post_push(self, payload: Dict[str, Any], retry_key: str) -> Dict[str, Any]:
        response = self.session.post(
            config.LINE_PUSH_ENDPOINT,
            json=payload,
            headers={"Authorization": f"Bearer {self._token}", "X-Line-Retry-Key": retry_key},
            timeout=config.LINE_TIMEOUT,
        )
        if response.status_code == 409:
            # An earlier attempt with this retry key was already accepted
            logger.info(f"LINE already accepted push with retry key {retry_key}.")
            return {}
        if response.status_code in (401, 403):
            logger.error(f"LINE rejected the channel access token ({response.status_code}).")
            raise AuthenticationError(f"LINE push unauthorized ({response.status_code}). Check LINE_CHANNEL_ACCESS_TOKEN.")
        if not response.ok:
            logger.error(f"LINE push failed: {response.status_code} {response.text}")
            raise APIError(
                f"LINE push failed: {response.text[:200]}",
                status_code=response.status_code,
                service=self.SERVICE_NAME
            )
        return response.json() if response.content else {}

"""Tests for the Gemini, LINE and SMTP wrappers."""

from dataclasses import replace
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests
import smtplib
from google.api_core import exceptions as google_api_exceptions

from grammar_coach import config
from grammar_coach.config import Settings
from grammar_coach.services import gemini_ai
from grammar_coach.services.gemini_ai import GeminiClient
from grammar_coach.services.line_api import LineMessagingService
from grammar_coach.services.mail_api import MailService
from grammar_coach.utils.error_handler import APIError, AuthenticationError, ConfigError, GradingError
from tests.conftest import FakeResponse


def _gemini_response(*texts: str, finish_reason: int = 1) -> SimpleNamespace:
    parts = [SimpleNamespace(text=t) for t in texts]
    candidate = SimpleNamespace(
        content=SimpleNamespace(parts=parts), finish_reason=finish_reason, safety_ratings=[]
    )
    return SimpleNamespace(candidates=[candidate], prompt_feedback=None)


@pytest.fixture
def gemini_model() -> MagicMock:
    model = MagicMock()
    model.model_name = "models/test"
    model.generate_content.return_value = _gemini_response("## 得点\n", "80点\n")
    return model


class TestGeminiClient:
    """Tests for GeminiClient."""

    def test_returns_joined_text_and_passes_timeout(self, settings: Settings, gemini_model: MagicMock) -> None:
        client = GeminiClient(settings, model=gemini_model)

        assert client.generate_feedback("prompt") == "## 得点\n80点"
        gemini_model.generate_content.assert_called_once_with(
            "prompt", request_options={"timeout": settings.grading_timeout}
        )

    def test_configures_sdk_from_settings(self, settings: Settings, monkeypatch: pytest.MonkeyPatch) -> None:
        configure = MagicMock()
        model_cls = MagicMock()
        monkeypatch.setattr(gemini_ai.genai, "configure", configure)
        monkeypatch.setattr(gemini_ai.genai, "GenerativeModel", model_cls)

        GeminiClient(settings)

        configure.assert_called_once_with(api_key="test-gemini-key")
        model_cls.assert_called_once_with(config.DEFAULT_GEMINI_MODEL)

    def test_missing_key(self, settings: Settings) -> None:
        with pytest.raises(ConfigError):
            GeminiClient(replace(settings, gemini_api_key=""))

    @pytest.mark.parametrize("error,match", [
        (google_api_exceptions.ResourceExhausted("quota"), "rate limit"),
        (google_api_exceptions.PermissionDenied("key"), "Permission denied"),
        (google_api_exceptions.DeadlineExceeded("slow"), "did not answer"),
        (google_api_exceptions.InternalServerError("boom"), "Gemini API error"),
        (ConnectionError("reset"), "Unexpected error"),
    ])
    def test_failures_become_grading_errors(
        self, settings: Settings, gemini_model: MagicMock, error: Exception, match: str
    ) -> None:
        gemini_model.generate_content.side_effect = error

        with pytest.raises(GradingError, match=match):
            GeminiClient(settings, model=gemini_model).generate_feedback("prompt")

        assert gemini_model.generate_content.call_count == 1

    def test_no_candidates(self, settings: Settings, gemini_model: MagicMock) -> None:
        gemini_model.generate_content.return_value = SimpleNamespace(candidates=[], prompt_feedback="blocked")

        with pytest.raises(GradingError, match="no candidates"):
            GeminiClient(settings, model=gemini_model).generate_feedback("prompt")

    def test_blank_text(self, settings: Settings, gemini_model: MagicMock) -> None:
        gemini_model.generate_content.return_value = _gemini_response("  \n")

        with pytest.raises(GradingError, match="empty"):
            GeminiClient(settings, model=gemini_model).generate_feedback("prompt")

    def test_empty_prompt_is_refused(self, settings: Settings, gemini_model: MagicMock) -> None:
        with pytest.raises(GradingError):
            GeminiClient(settings, model=gemini_model).generate_feedback("   ")
        gemini_model.generate_content.assert_not_called()


class TestLineMessagingService:
    """Tests for LineMessagingService."""

    def test_push_payload(self, line_service: LineMessagingService, line_session: MagicMock) -> None:
        line_service.push_text("U1", "hello")

        line_session.post.assert_called_once()
        args, kwargs = line_session.post.call_args
        assert args[0] == config.LINE_PUSH_ENDPOINT
        assert kwargs["json"] == {"to": "U1", "messages": [{"type": "text", "text": "hello"}]}
        assert kwargs["headers"]["Authorization"] == "Bearer line-token"
        assert kwargs["timeout"] == config.LINE_TIMEOUT

    def test_requires_token(self, settings: Settings) -> None:
        with pytest.raises(ConfigError):
            LineMessagingService(replace(settings, line_channel_token=""))

    @pytest.mark.parametrize("user_id,text", [("", "hi"), ("U1", "")])
    def test_rejects_empty_input(self, line_service: LineMessagingService, user_id: str, text: str) -> None:
        with pytest.raises(ValueError):
            line_service.push_text(user_id, text)

    def test_unauthorized(self, line_service: LineMessagingService, line_session: MagicMock) -> None:
        line_session.post.return_value = FakeResponse(401, b'{"message":"Authentication failed"}')

        with pytest.raises(AuthenticationError):
            line_service.push_text("U1", "hi")

    def test_server_error(self, line_service: LineMessagingService, line_session: MagicMock) -> None:
        line_session.post.return_value = FakeResponse(500, b"oops")

        with pytest.raises(APIError) as exc_info:
            line_service.push_text("U1", "hi")
        assert exc_info.value.status_code == 500

    def test_connection_errors_are_retried_once(
        self, line_service: LineMessagingService, line_session: MagicMock
    ) -> None:
        line_session.post.side_effect = [requests.ConnectionError("reset"), FakeResponse(200)]

        line_service.push_text("U1", "hi")

        assert line_session.post.call_count == 2

    def test_timeout_retry_reuses_retry_key(
        self, line_service: LineMessagingService, line_session: MagicMock
    ) -> None:
        line_session.post.side_effect = [requests.ReadTimeout("slow"), FakeResponse(200)]

        line_service.push_text("U1", "hi")

        keys = [c.kwargs["headers"]["X-Line-Retry-Key"] for c in line_session.post.call_args_list]
        assert len(keys) == 2
        assert keys[0] == keys[1]

    def test_each_push_gets_its_own_retry_key(
        self, line_service: LineMessagingService, line_session: MagicMock
    ) -> None:
        line_service.push_text("U1", "one")
        line_service.push_text("U1", "two")

        keys = {c.kwargs["headers"]["X-Line-Retry-Key"] for c in line_session.post.call_args_list}
        assert len(keys) == 2

    def test_already_accepted_is_not_an_error(
        self, line_service: LineMessagingService, line_session: MagicMock
    ) -> None:
        line_session.post.side_effect = [requests.ReadTimeout("slow"), FakeResponse(409, b'{"message":"conflict"}')]

        assert line_service.push_text("U1", "hi") == {}
        assert line_session.post.call_count == 2


class TestMailService:
    """Tests for MailService."""

    def test_starttls_on_submission_port(self, mail_service: MailService, fake_smtp: type) -> None:
        mail_service.send_email("aya@example.com", "件名", "<p>html</p>", "text")

        server = fake_smtp.instances[0]
        assert (server.host, server.port) == (config.DEFAULT_SMTP_HOST, 587)
        assert server.started_tls
        assert not server.implicit_tls
        assert server.logged_in == ("coach@example.com", "app-password")
        message = server.sent[0]
        assert message["To"] == "aya@example.com"
        assert message["Subject"] == "件名"
        assert "coach@example.com" in message["From"]
        assert message.get_body(preferencelist=("plain",)).get_content().strip() == "text"
        assert "<p>html</p>" in message.get_body(preferencelist=("html",)).get_content()

    def test_implicit_tls_on_secure_port(self, settings: Settings, fake_smtp: type) -> None:
        MailService(replace(settings, smtp_port=465)).send_email("aya@example.com", "s", "<p>h</p>", "t")

        server = fake_smtp.instances[0]
        assert server.implicit_tls
        assert not server.started_tls

    def test_requires_relay_credentials(self, settings: Settings) -> None:
        with pytest.raises(ConfigError):
            MailService(replace(settings, smtp_password=""))

    def test_invalid_recipient(self, mail_service: MailService) -> None:
        with pytest.raises(ValueError):
            mail_service.send_email("not-an-address", "s", "h", "t")

    def test_auth_failure(self, mail_service: MailService, fake_smtp: type) -> None:
        fake_smtp.fail_with = smtplib.SMTPAuthenticationError(535, b"bad credentials")

        with pytest.raises(AuthenticationError):
            mail_service.send_email("aya@example.com", "s", "h", "t")

    def test_relay_failure(self, mail_service: MailService, fake_smtp: type) -> None:
        fake_smtp.fail_with = smtplib.SMTPServerDisconnected("gone")

        with pytest.raises(APIError):
            mail_service.send_email("aya@example.com", "s", "h", "t")

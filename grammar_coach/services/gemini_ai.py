"""Wrapper for Google Gemini API interactions."""

from typing import Any, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_api_exceptions

from grammar_coach import config
from grammar_coach.config import Settings
from grammar_coach.utils.logger import get_logger
from grammar_coach.utils.error_handler import ConfigError, GradingError

logger = get_logger()

class GeminiClient:
    """Sends grading prompts to the Gemini API and returns the raw text response.

    A call is made exactly once per prompt. Any failure is raised as
    `GradingError`; retrying is left to the caller (who does not).
    """

    def __init__(self, settings: Settings, model: Optional[Any] = None):
        """Initializes the GeminiClient.

        Args:
            settings: Application settings holding the API key, model name and timeout.
            model: Pre-built generative model, mainly for tests. Built from
                settings when omitted.

        Raises:
            ConfigError: If the API key is not provided.
        """
        logger.debug("Initializing GeminiClient...")
        self.timeout = settings.grading_timeout
        if model is not None:
            self.model = model
            return
        if not settings.gemini_api_key:
            logger.critical("Gemini API Key is missing. Check environment variables.")
            raise ConfigError("GEMINI_API_KEY not found or provided.")
        try:
            genai.configure(api_key=settings.gemini_api_key)
            self.model = genai.GenerativeModel(settings.gemini_model)
            logger.info(f"GeminiClient initialized successfully with model: {settings.gemini_model}")
        except Exception as e:
             logger.critical(f"Failed to configure Gemini API: {e}", exc_info=config.DEBUG)
             raise ConfigError(f"Failed to configure Gemini API: {e}") from e

    def generate_feedback(self, prompt: str) -> str:
        """Generates graded feedback for a fully built prompt.

        Args:
            prompt: The grading instruction including the student's explanation.

        Returns:
            The generated markdown feedback, stripped of surrounding whitespace.

        Raises:
            GradingError: On transport, authentication, quota or safety
                failures, and when the response carries no text.
        """
        if not prompt or not prompt.strip():
            raise GradingError("Refusing to send an empty prompt to Gemini.")

        logger.info(f"Generating Gemini feedback using model {getattr(self.model, 'model_name', 'unknown')}...")
        if config.DEBUG:
            logger.debug(f"Generated prompt (first 500 chars):\n{prompt[:500]}...")

        try:
            response = self.model.generate_content(
                prompt,
                request_options={"timeout": self.timeout},
            )
        except google_api_exceptions.GoogleAPIError as e:
            logger.error(f"Gemini API error during feedback generation: {e}", exc_info=config.DEBUG)
            if isinstance(e, google_api_exceptions.PermissionDenied):
                 raise GradingError("Permission denied calling Gemini API (403). Check API key/permissions.") from e
            if isinstance(e, google_api_exceptions.ResourceExhausted):
                 raise GradingError("Gemini API rate limit exceeded (429). Please try again later.") from e
            if isinstance(e, google_api_exceptions.DeadlineExceeded):
                 raise GradingError(f"Gemini API did not answer within {self.timeout:.0f}s.") from e
            if isinstance(e, google_api_exceptions.InvalidArgument):
                 raise GradingError(f"Invalid request sent to Gemini API (400): {e}") from e
            raise GradingError(f"Gemini API error: {e}") from e
        except Exception as e:
            logger.error(f"Unexpected error during Gemini feedback generation: {e}", exc_info=config.DEBUG)
            raise GradingError(f"Unexpected error generating feedback: {e}") from e

        return self._extract_text(response)

    def _extract_text(self, response: Any) -> str:
        """Pulls the text of the first candidate out of a Gemini response."""
        if not response.candidates:
            logger.error("Gemini response missing candidates. Potential safety block or other issue.")
            try:
                logger.error(f"Prompt Feedback: {response.prompt_feedback}")
            except (ValueError, AttributeError):
                logger.error("Could not access prompt feedback details.")
            raise GradingError("Failed to generate feedback: Response was empty or blocked (no candidates).")

        candidate = response.candidates[0]
        parts = candidate.content.parts if candidate.content else None
        if not parts:
            if getattr(candidate, "finish_reason", None) == genai.protos.Candidate.FinishReason.SAFETY:
                logger.error(f"Feedback generation stopped due to safety. Ratings: {candidate.safety_ratings}")
                raise GradingError("Feedback generation blocked due to safety settings.")
            logger.error(f"Unexpected Gemini response structure or empty parts: {candidate}")
            raise GradingError("Failed to parse feedback: Unexpected response structure or empty parts.")

        feedback_text = "".join(getattr(part, "text", "") for part in parts).strip()
        if not feedback_text:
            logger.warning(f"Gemini returned empty feedback. Finish Reason: {getattr(candidate, 'finish_reason', None)}")
            raise GradingError("Gemini returned empty feedback text.")

        logger.info(f"Successfully generated Gemini feedback ({len(feedback_text)} chars).")
        return feedback_text

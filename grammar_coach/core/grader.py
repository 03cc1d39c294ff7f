"""Core logic: grading one submission and fanning the result out to storage and notifications."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol
from urllib.parse import quote

from grammar_coach import config
from grammar_coach.config import Settings
from grammar_coach.core.prompt import ANONYMOUS, build_grading_prompt
from grammar_coach.core.rendering import render_feedback_email, render_feedback_email_text
from grammar_coach.core.results import ResultStore, extract_score, new_record_id
from grammar_coach.core.submission import Submission
from grammar_coach.services.gemini_ai import GeminiClient
from grammar_coach.services.line_api import LineMessagingService
from grammar_coach.services.mail_api import MailService
from grammar_coach.utils.logger import get_logger
from grammar_coach.utils.error_handler import BaseCoachException, GradingError

logger = get_logger()


class FeedbackGenerator(Protocol):
    def generate_feedback(self, prompt: str) -> str: ...


class PipelineState(str, Enum):
    BUILDING = "building"
    GRADING = "grading"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    DONE = "done"
    FAILED = "failed"


class StageStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StageResult:
    """Outcome of one best-effort stage. Inspected for logging only."""

    stage: str
    status: StageStatus
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is StageStatus.OK


@dataclass
class GradingOutcome:
    submission: Submission
    graded_text: str
    record_id: Optional[str] = None
    detail_url: Optional[str] = None
    stages: List[StageResult] = field(default_factory=list)
    state: PipelineState = PipelineState.DONE

    def stage(self, name: str) -> Optional[StageResult]:
        return next((s for s in self.stages if s.stage == name), None)


def skipped(stage: str, reason: str) -> StageResult:
    logger.info(f"Skipping {stage}: {reason}")
    return StageResult(stage, StageStatus.SKIPPED, reason)


def run_best_effort(stage: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> StageResult:
    """Runs a non-fatal stage, converting any exception into a failed StageResult.

    Known application errors are logged without a traceback outside DEBUG
    mode; anything else is logged with one.
    """
    try:
        func(*args, **kwargs)
    except BaseCoachException as e:
        logger.error(f"{stage} failed, continuing: {e}", exc_info=config.DEBUG)
        return StageResult(stage, StageStatus.FAILED, str(e))
    except Exception as e:
        logger.error(f"Unexpected error in {stage}, continuing: {e}", exc_info=True)
        return StageResult(stage, StageStatus.FAILED, f"{type(e).__name__}: {e}")
    return StageResult(stage, StageStatus.OK)


class SubmissionPipeline:
    """Grades a submission, then persists and notifies on a best-effort basis.

    Stages run strictly in order: grading, persisting, push notification,
    email. Only grading may fail the submission; the other stages are
    skipped when their collaborator is not configured and never raise.
    """

    STAGE_PERSIST = "persist"
    STAGE_PUSH = "push"
    STAGE_EMAIL = "email"

    def __init__(
        self,
        grader: FeedbackGenerator,
        store: Optional[ResultStore] = None,
        push: Optional[LineMessagingService] = None,
        mailer: Optional[MailService] = None,
        public_base_url: str = "",
        summary_length: int = config.PUSH_SUMMARY_LENGTH,
    ):
        self.grader = grader
        self.store = store
        self.push = push
        self.mailer = mailer
        self.public_base_url = public_base_url.rstrip("/")
        self.summary_length = summary_length
        logger.info(
            "SubmissionPipeline initialized: store=%s, push=%s, email=%s",
            bool(store), bool(push), bool(mailer)
        )

    @classmethod
    def from_settings(cls, settings: Settings, grader: Optional[FeedbackGenerator] = None) -> "SubmissionPipeline":
        """Wires the pipeline from settings.

        A collaborator that is unconfigured, or cannot be built, is left out
        and its stage becomes a no-op. The grader is mandatory.
        """
        grader = grader or GeminiClient(settings)

        store = push = mailer = None
        if settings.store_configured:
            try:
                store = ResultStore.from_settings(settings)
            except BaseCoachException as e:
                logger.error(f"Result store unavailable, submissions will not be saved: {e}")
        else:
            logger.warning("Spreadsheet not configured; submissions will not be saved.")
        if settings.push_configured:
            push = LineMessagingService(settings)
        else:
            logger.warning("LINE_CHANNEL_ACCESS_TOKEN not set; push notifications disabled.")
        if settings.mail_configured:
            mailer = MailService(settings)
        else:
            logger.warning("SMTP relay not configured; feedback emails disabled.")

        return cls(grader, store, push, mailer, public_base_url=settings.public_base_url)

    def detail_url(self, record_id: Optional[str]) -> Optional[str]:
        if record_id and self.public_base_url:
            return f"{self.public_base_url}/result/{record_id}"
        return None

    def history_url(self, user_id: str) -> Optional[str]:
        if self.public_base_url:
            return f"{self.public_base_url}/history?userId={quote(user_id, safe='')}"
        return None

    def build_push_message(self, submission: Submission, graded_text: str, link: Optional[str]) -> str:
        """Short LINE summary: greeting, score if found, truncated feedback and a link."""
        name = submission.name or ANONYMOUS
        lines = [f"🎓 {name}さん、添削完了！", "", "📝 採点結果速報"]
        score = extract_score(graded_text)
        if score is not None:
            lines.append(f"得点: {score}点")
        summary = graded_text[:self.summary_length]
        if len(graded_text) > self.summary_length:
            summary += "..."
        lines.append(summary)
        lines.append("")
        if link:
            lines += ["▼ 詳しい解説はこちら", link]
        else:
            lines.append("▼ 詳しい解説はメールで送りました！必ず確認してください。")
        lines.append("（AI予備校講師より）")
        return "\n".join(lines)

    def grade(self, submission: Submission) -> str:
        """Runs the grading call once. Any failure is raised as GradingError."""
        prompt = build_grading_prompt(submission)
        try:
            return self.grader.generate_feedback(prompt)
        except GradingError:
            raise
        except Exception as e:
            raise GradingError(f"Unexpected error generating feedback: {e}") from e

    def process(self, submission: Submission) -> GradingOutcome:
        """Runs the whole pipeline for one submission.

        Returns:
            The outcome with the graded text and per-stage results.

        Raises:
            GradingError: If grading fails. Nothing is stored or sent in that case.
        """
        logger.info(f"Processing submission from '{submission.name or ANONYMOUS}' ({len(submission.explanation)} chars).")

        try:
            graded_text = self.grade(submission)
        except GradingError as e:
            logger.error(f"Grading failed, submission aborted: {e}", exc_info=config.DEBUG)
            raise

        outcome = GradingOutcome(submission=submission, graded_text=graded_text, state=PipelineState.GRADING)

        outcome.state = PipelineState.PERSISTING
        record_id = new_record_id()
        if self.store is None:
            persist = skipped(self.STAGE_PERSIST, "result store not configured")
        else:
            persist = run_best_effort(self.STAGE_PERSIST, self.store.save, submission, graded_text, record_id)
        outcome.stages.append(persist)
        if persist.ok:
            outcome.record_id = record_id
            outcome.detail_url = self.detail_url(record_id)

        outcome.state = PipelineState.NOTIFYING
        outcome.stages.append(self._notify_push(submission, graded_text, outcome.detail_url))
        outcome.stages.append(self._notify_email(submission, graded_text, outcome.detail_url))

        outcome.state = PipelineState.DONE
        failed = [s.stage for s in outcome.stages if s.status is StageStatus.FAILED]
        if failed:
            logger.warning(f"Submission graded; best-effort stages failed: {', '.join(failed)}")
        else:
            logger.info("Submission graded and delivered.")
        return outcome

    def _notify_push(self, submission: Submission, graded_text: str, detail_url: Optional[str]) -> StageResult:
        if not submission.user_id:
            return skipped(self.STAGE_PUSH, "no LINE user id on submission")
        if self.push is None:
            return skipped(self.STAGE_PUSH, "LINE messaging not configured")
        link = detail_url or self.history_url(submission.user_id)
        message = self.build_push_message(submission, graded_text, link)
        return run_best_effort(self.STAGE_PUSH, self.push.push_text, submission.user_id, message)

    def _notify_email(self, submission: Submission, graded_text: str, detail_url: Optional[str]) -> StageResult:
        if not submission.email:
            return skipped(self.STAGE_EMAIL, "no email address on submission")
        if self.mailer is None:
            return skipped(self.STAGE_EMAIL, "SMTP relay not configured")
        name = submission.name or ANONYMOUS
        return run_best_effort(
            self.STAGE_EMAIL,
            self.mailer.send_email,
            submission.email,
            f"【採点完了】{name}さんの仮定法説明について",
            render_feedback_email(name, graded_text, detail_url),
            render_feedback_email_text(name, graded_text, detail_url),
        )

"""Stored grading results: writing records, the history projection and the detail lookup."""

import re
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from grammar_coach import config
from grammar_coach.config import Settings
from grammar_coach.core.submission import Submission
from grammar_coach.services.sheets_api import SheetsService
from grammar_coach.utils.logger import get_logger
from grammar_coach.utils.error_handler import ConfigError, RecordNotFoundError, SubmissionValidationError

logger = get_logger()

_SCORE_WITH_UNIT = re.compile(r"(?<!\d)(\d{1,3})\s*点")
_SCORE_LABELLED = re.compile(r"(?:採点|得点)[^\n\d]*(\d{1,3})(?!\d)")

_TIMESTAMP_FORMATS = (config.TIMESTAMP_FORMAT, "%Y/%m/%d %H:%M", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S")


def extract_score(text: str) -> Optional[int]:
    """Best-effort score lookup in free-form graded text.

    Prefers a number directly followed by 点, then the first number on a
    line labelled 採点/得点. Returns None when neither matches or the
    number is out of the 0-100 range.
    """
    if not text:
        return None
    for pattern in (_SCORE_WITH_UNIT, _SCORE_LABELLED):
        for match in pattern.finditer(text):
            score = int(match.group(1))
            # "100点満点" states the scale, not the score
            if score == 100 and text[match.end():match.end() + 2] == "満点":
                continue
            if 0 <= score <= 100:
                return score
    return None


def parse_timestamp(value: str) -> Optional[datetime]:
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt)
        except (ValueError, AttributeError):
            continue
    return None


def new_record_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class HistoryEntry:
    date: str
    explanation: str
    advice: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class StoredResult:
    """One stored record as shown on the detail view."""

    id: str
    date: str
    name: str
    email: str
    grade: str
    target: str
    explanation: str
    advice: str

    @property
    def score(self) -> Optional[int]:
        return extract_score(self.advice)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = asdict(self)
        data["score"] = self.score
        return data


class ResultStore:
    """Append-only record keeping on top of the results sheet."""

    def __init__(self, sheets: SheetsService, timezone: str = config.DEFAULT_TIMEZONE):
        self.sheets = sheets
        self.tz = ZoneInfo(timezone)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResultStore":
        """Builds a store backed by the configured spreadsheet.

        Raises:
            ConfigError: If the spreadsheet or service account is not configured.
        """
        if not settings.store_configured:
            raise ConfigError("Spreadsheet storage is not configured.")
        return cls(SheetsService(settings), settings.timezone)

    def now(self) -> str:
        return datetime.now(self.tz).strftime(config.TIMESTAMP_FORMAT)

    def save(self, submission: Submission, graded_text: str, record_id: str) -> Dict[str, str]:
        """Appends one row for a graded submission and returns what was written."""
        record = {
            config.COL_ID: record_id,
            config.COL_TIMESTAMP: self.now(),
            config.COL_NAME: submission.name,
            config.COL_EMAIL: submission.email,
            config.COL_GRADE: submission.grade,
            config.COL_TARGET: submission.target,
            config.COL_EXPLANATION: submission.explanation,
            config.COL_GRADED_TEXT: graded_text,
            config.COL_USER_ID: submission.user_id or "",
        }
        self.sheets.append_record(record)
        return record

    def history_for(self, user_id: str) -> List[HistoryEntry]:
        """Returns every record of `user_id`, newest first.

        Rows whose timestamp cannot be parsed sort as oldest; rows with
        equal timestamps keep later-appended rows first.

        Raises:
            SubmissionValidationError: If `user_id` is blank.
            APIError / AuthenticationError: If the sheet cannot be read.
        """
        if not user_id or not user_id.strip():
            raise SubmissionValidationError("userId is required.", fields=["userId"])
        user_id = user_id.strip()

        matching = [
            (index, record) for index, record in enumerate(self.sheets.list_records())
            if record.get(config.COL_USER_ID, "").strip() == user_id
        ]
        matching.sort(
            key=lambda item: (parse_timestamp(item[1].get(config.COL_TIMESTAMP, "")) or datetime.min, item[0]),
            reverse=True,
        )
        logger.info(f"Found {len(matching)} history entries for user {user_id[:8]}...")
        return [
            HistoryEntry(
                date=record.get(config.COL_TIMESTAMP, ""),
                explanation=record.get(config.COL_EXPLANATION, ""),
                advice=record.get(config.COL_GRADED_TEXT, ""),
            )
            for _, record in matching
        ]

    def get(self, record_id: str) -> StoredResult:
        """Looks up one record by id.

        Raises:
            RecordNotFoundError: If no row carries `record_id`.
        """
        if record_id:
            for record in self.sheets.list_records():
                if record.get(config.COL_ID, "") == record_id:
                    return StoredResult(
                        id=record_id,
                        date=record.get(config.COL_TIMESTAMP, ""),
                        name=record.get(config.COL_NAME, ""),
                        email=record.get(config.COL_EMAIL, ""),
                        grade=record.get(config.COL_GRADE, ""),
                        target=record.get(config.COL_TARGET, ""),
                        explanation=record.get(config.COL_EXPLANATION, ""),
                        advice=record.get(config.COL_GRADED_TEXT, ""),
                    )
        raise RecordNotFoundError(f"No result with id '{record_id}'.")

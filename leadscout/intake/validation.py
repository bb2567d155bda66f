"""Caller-input validation for the exposed operations."""

import re
import uuid
from typing import Optional, Tuple

from ..common.config import SessionConfig
from ..common.errors import ValidationError

UUID_V4_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_session_id(session_id: Optional[str]) -> bool:
    return isinstance(session_id, str) and bool(UUID_V4_PATTERN.match(session_id))


def validate_session_id(session_id: Optional[str]) -> str:
    """Require a well-formed UUID v4 session id."""
    if session_id is None or (isinstance(session_id, str) and not session_id.strip()):
        raise ValidationError("Session ID is required", code="MISSING_SESSION_ID")
    if not is_valid_session_id(session_id):
        raise ValidationError("Invalid session ID format", code="INVALID_SESSION_ID")
    return session_id


def validate_question_answer(
    session_id: Optional[str],
    question: Optional[str],
    answer: Optional[str],
    limits: SessionConfig,
) -> Tuple[str, str, str]:
    """
    Validate an appendAnswer request.

    Returns:
        (session_id, question, answer) with a generated id when none was
        supplied and both texts trimmed.
    """
    if question is None or answer is None:
        raise ValidationError(
            "Both question and answer are required", code="MISSING_REQUIRED_FIELDS"
        )
    if not isinstance(question, str) or not isinstance(answer, str):
        raise ValidationError(
            "Question and answer must be strings", code="MISSING_REQUIRED_FIELDS"
        )

    question = question.strip()
    answer = answer.strip()

    if not question:
        raise ValidationError("Question cannot be empty", code="EMPTY_QUESTION")
    if not answer:
        raise ValidationError("Answer cannot be empty", code="EMPTY_ANSWER")
    if len(question) > limits.max_question_chars:
        raise ValidationError(
            f"Question too long (max {limits.max_question_chars} characters)",
            code="QUESTION_TOO_LONG",
        )
    if len(answer) > limits.max_answer_chars:
        raise ValidationError(
            f"Answer too long (max {limits.max_answer_chars} characters)",
            code="ANSWER_TOO_LONG",
        )

    if session_id is None or (isinstance(session_id, str) and not session_id.strip()):
        session_id = str(uuid.uuid4())
    elif not is_valid_session_id(session_id):
        raise ValidationError("Invalid session ID format", code="INVALID_SESSION_ID")

    return session_id, question, answer

"""
Question Bank: JSON loader and grader for the terminal front end.

Accepts either a bare JSON list of questions or ``{"questions": [...]}``.
Answers are matched case-insensitively after trimming whitespace; when a
question lists options, the 1-based option number is accepted too.
"""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from quizflow.machine import GradeResult


class BankQuestion(BaseModel):
    """A single question loaded from a bank file."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    prompt: str = Field(min_length=1)
    answer: str = Field(min_length=1)
    options: tuple[str, ...] = ()
    explanation: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        # Banks often number questions
        return str(value) if isinstance(value, int) else value


class QuestionBank(BaseModel):
    """Ordered collection of questions with unique ids."""

    questions: list[BankQuestion] = Field(min_length=1)

    @field_validator("questions")
    @classmethod
    def _unique_ids(cls, questions: list[BankQuestion]) -> list[BankQuestion]:
        seen: set[str] = set()
        for question in questions:
            if question.id in seen:
                raise ValueError(f"duplicate question id: {question.id!r}")
            seen.add(question.id)
        return questions


class BankLoadError(Exception):
    """Raised when a bank file cannot be read or does not validate."""
    pass


def load_bank(path: Path) -> QuestionBank:
    """Load and validate a question bank file."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise BankLoadError(f"Cannot read {path}: {exc}") from exc

    if isinstance(raw, list):
        raw = {"questions": raw}

    try:
        bank = QuestionBank.model_validate(raw)
    except ValidationError as exc:
        raise BankLoadError(f"Invalid question bank {path}:\n{exc}") from exc

    logger.debug("Loaded {} questions from {}", len(bank.questions), path)
    return bank


def normalize(text: str) -> str:
    return " ".join(text.split()).lower()


def question_id(question: BankQuestion) -> str:
    return question.id


def grade_answer(question: BankQuestion, response: str) -> GradeResult:
    """Exact-match grading (case and whitespace insensitive)."""
    given = normalize(response)
    expected = normalize(question.answer)

    if question.options and given.isdigit():
        choice = int(given) - 1
        if 0 <= choice < len(question.options):
            given = normalize(question.options[choice])

    return GradeResult(correct=given == expected, payload=response)

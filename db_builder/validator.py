import logging
from typing import List

from sqlalchemy.orm import Session

from certprep.config import ExamConfig
from certprep.models import QuestionRecord

logger = logging.getLogger(__name__)


def question_problems(q: QuestionRecord, exam: ExamConfig) -> List[str]:
    """
    Integrity checks for one question. Returns a list of problems (empty = OK).
    """
    problems: List[str] = []
    opts = q.options if isinstance(q.options, list) else []
    option_ids = [str(o.get("id")) for o in opts if isinstance(o, dict)]
    correct = q.correct_answers if isinstance(q.correct_answers, list) else []

    if len(option_ids) < 2:
        problems.append("needs at least 2 options")
    if len(option_ids) != len(set(option_ids)):
        problems.append("duplicate option ids")
    if not correct:
        problems.append("no correct answers")
    stray = sorted(set(correct) - set(option_ids))
    if stray:
        problems.append(f"correct answers not among options: {stray}")
    if exam.domain(q.domain) is None:
        problems.append(f"unknown domain {q.domain!r}")
    if q.question_type not in ("single", "multi"):
        problems.append(f"invalid question_type {q.question_type!r}")
    elif q.question_type == "single" and len(set(correct)) != 1:
        problems.append("single-select question must have exactly 1 correct answer")
    if q.question_text and "�" in q.question_text:
        problems.append("contains replacement character; fix encoding")
    return problems


def validate_question_bank(db: Session, exam: ExamConfig) -> int:
    """
    Validate every question row; raises ValueError listing all problems.
    Returns the number of questions checked.
    """
    rows = db.query(QuestionRecord).all()
    errors: List[str] = []
    for q in rows:
        for p in question_problems(q, exam):
            errors.append(f"- id={q.id}: {p}")

    if errors:
        raise ValueError("question bank validation failed:\n" + "\n".join(errors))

    logger.info("[validate] %d questions OK", len(rows))
    return len(rows)

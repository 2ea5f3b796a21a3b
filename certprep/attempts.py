import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from certprep.config import ExamConfig
from certprep.errors import InvalidRequest, NotFound, UpstreamFailure
from certprep.grading import GradedAnswer
from certprep.models import TestAnswer, TestAttempt, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptResults:
    score: int
    correct_count: int
    domain_scores: Dict[str, Dict[str, int]]
    is_pass: bool
    time_remaining_seconds: int


class AttemptManager:
    """
    Owns the open -> completed transition of a test attempt.

    There is no in-process lock: exclusivity comes from the conditional
    UPDATE in complete(), so independent workers sharing one database still
    see exactly one winner per attempt.
    """

    def __init__(self, db: Session, exam: ExamConfig):
        self.db = db
        self.exam = exam

    def create(self, owner: str, total_questions: Optional[int] = None, mode: str = "practice") -> TestAttempt:
        total = self.exam.total_questions if total_questions is None else total_questions
        if total < 1:
            raise InvalidRequest("total_questions must be at least 1")
        attempt = TestAttempt(user_id=owner, mode=mode or "practice", total_questions=total)
        try:
            self.db.add(attempt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("failed to create attempt for %s: %s", owner, e)
            raise UpstreamFailure("Failed to create test attempt")
        self.db.refresh(attempt)
        logger.info("attempt %s created (owner=%s, mode=%s, total=%d)", attempt.id, owner, attempt.mode, total)
        return attempt

    def get_open(self, attempt_id: str, owner: str) -> TestAttempt:
        attempt = (
            self.db.query(TestAttempt)
            .filter(
                TestAttempt.id == attempt_id,
                TestAttempt.user_id == owner,
                TestAttempt.completed_at.is_(None),
            )
            .first()
        )
        if attempt is None:
            raise NotFound()
        return attempt

    def complete(
        self,
        attempt_id: str,
        owner: str,
        results: AttemptResults,
        answers: Sequence[GradedAnswer] = (),
    ) -> None:
        """
        Flip the attempt to completed and write its answer records, in one
        transaction. Either both land or the attempt stays open.
        """
        now = utcnow()
        stmt = (
            update(TestAttempt)
            .where(
                TestAttempt.id == attempt_id,
                TestAttempt.user_id == owner,
                TestAttempt.completed_at.is_(None),
            )
            .values(
                completed_at=now,
                score=results.score,
                correct_count=results.correct_count,
                domain_scores=results.domain_scores,
                is_pass=results.is_pass,
                time_remaining_seconds=results.time_remaining_seconds,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            claimed = self.db.execute(stmt).rowcount
            if claimed != 1:
                self.db.rollback()
                raise NotFound()

            self.db.add_all([
                TestAnswer(
                    attempt_id=attempt_id,
                    question_id=a.question_id,
                    user_answers=list(a.user_answers),
                    is_correct=a.is_correct,
                    is_flagged=a.is_flagged,
                    answered_at=now if a.user_answers else None,
                )
                for a in answers
            ])
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("failed to complete attempt %s: %s", attempt_id, e)
            raise UpstreamFailure("Failed to save test results")

    def get_completed(self, attempt_id: str, owner: str) -> TestAttempt:
        attempt = (
            self.db.query(TestAttempt)
            .filter(
                TestAttempt.id == attempt_id,
                TestAttempt.user_id == owner,
                TestAttempt.completed_at.is_not(None),
            )
            .first()
        )
        if attempt is None:
            raise NotFound("Test attempt not found")
        return attempt

    def answers_for(self, attempt_id: str) -> List[TestAnswer]:
        return (
            self.db.query(TestAnswer)
            .filter(TestAnswer.attempt_id == attempt_id)
            .order_by(TestAnswer.id)
            .all()
        )

    def history(self, owner: str, mode: Optional[str] = None) -> List[TestAttempt]:
        query = self.db.query(TestAttempt).filter(
            TestAttempt.user_id == owner,
            TestAttempt.completed_at.is_not(None),
        )
        if mode:
            query = query.filter(TestAttempt.mode == mode)
        return query.order_by(TestAttempt.completed_at.desc()).all()

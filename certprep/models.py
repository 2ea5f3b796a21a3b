import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from certprep.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuestionRecord(Base):
    """
    Authoritative question row. correct_answers / explanation never leave the
    server through this class; see questions.py for the two read paths.
    """
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=_new_id)
    domain = Column(String, index=True, nullable=False)
    question_text = Column(Text, nullable=False)
    question_type = Column(String, nullable=False, default="single")  # 'single' | 'multi'
    options = Column(JSON, nullable=False)  # [{"id": "A", "text": "..."}]
    correct_answers = Column(JSON, nullable=False)  # ["A", "C"]
    explanation = Column(Text, nullable=True)


class TestAttempt(Base):
    __tablename__ = "test_attempts"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String, index=True, nullable=False)
    mode = Column(String, index=True, nullable=False, default="practice")
    total_questions = Column(Integer, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # 아래 필드는 completed 전환 시 한 번에 채워짐
    completed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    score = Column(Integer, nullable=True)
    correct_count = Column(Integer, nullable=True)
    domain_scores = Column(JSON, nullable=True)
    is_pass = Column(Boolean, nullable=True)
    time_remaining_seconds = Column(Integer, nullable=True)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class TestAnswer(Base):
    __tablename__ = "test_answers"
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_test_answers_attempt_question"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    attempt_id = Column(String(36), ForeignKey("test_attempts.id"), index=True, nullable=False)
    question_id = Column(String, nullable=False)
    user_answers = Column(JSON, nullable=False)
    is_correct = Column(Boolean, nullable=False)
    is_flagged = Column(Boolean, nullable=False, default=False)
    answered_at = Column(DateTime(timezone=True), nullable=True)

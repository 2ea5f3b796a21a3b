from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Question projections ---
class QuestionOption(BaseModel):
    id: str
    text: str


class PublicQuestion(BaseModel):
    """What an in-progress client may see. No correct_answers, no explanation."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    domain: str
    question_text: str
    question_type: str
    options: List[QuestionOption]


# --- Submission ---
class AnswerInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    question_id: str = Field(min_length=1)
    user_answers: List[str] = Field(default_factory=list)
    is_flagged: bool = False


class SubmitTestRequest(BaseModel):
    attempt_id: str = Field(min_length=1)
    answers: List[AnswerInput]
    time_remaining_seconds: int = Field(default=0, ge=0)


class DomainScore(BaseModel):
    correct: int
    total: int


class SubmitTestResponse(BaseModel):
    score: int = Field(ge=0)
    correct_count: int
    total_questions: int
    domain_scores: Dict[str, DomainScore]
    is_pass: bool


# --- Per-question grading (practice review) ---
class CheckAnswerRequest(BaseModel):
    question_id: str = Field(min_length=1)
    user_answers: List[str]


class CheckAnswerResponse(BaseModel):
    is_correct: bool
    correct_answers: List[str]
    explanation: Optional[str] = None


# --- Attempts ---
class CreateAttemptRequest(BaseModel):
    mode: str = "practice"
    total_questions: Optional[int] = Field(default=None, ge=1)


class AttemptSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    mode: str
    total_questions: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    score: Optional[int] = None
    correct_count: Optional[int] = None
    domain_scores: Optional[Dict[str, DomainScore]] = None
    is_pass: Optional[bool] = None
    time_remaining_seconds: Optional[int] = None


class ReviewedAnswer(BaseModel):
    question_id: str
    user_answers: List[str]
    is_correct: bool
    is_flagged: bool
    answered_at: Optional[datetime] = None
    # 채점 후에만 공개
    correct_answers: List[str] = Field(default_factory=list)
    explanation: Optional[str] = None


class AttemptReview(BaseModel):
    attempt: AttemptSummary
    answers: List[ReviewedAnswer]


# --- Config ---
class DomainInfo(BaseModel):
    id: str
    name: str
    weight: float
    question_count: int


class ExamConfigOut(BaseModel):
    domains: List[DomainInfo]
    max_score: int
    passing_score: int
    total_questions: int
    time_limit_minutes: int


class ErrorBody(BaseModel):
    error: str

import logging
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import sessionmaker

from certprep import schemas
from certprep.attempts import AttemptManager, AttemptResults
from certprep.auth import verify_bearer
from certprep.config import ExamConfig, Settings
from certprep.errors import InvalidRequest, NotFound
from certprep.grading import evaluate, grade_submission
from certprep.questions import QuestionStore
from certprep.scoring import score_tallies

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def parse_payload(model: Type[M], payload: Any) -> M:
    """
    Raw JSON body -> pydantic model. Anything structurally off is an
    InvalidRequest, so malformed input never reaches grading.
    """
    if not isinstance(payload, dict):
        raise InvalidRequest()
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        logger.info("invalid %s: %d error(s)", model.__name__, e.error_count())
        raise InvalidRequest()


class SubmissionService:
    """
    Entry point for grading.

    submit():        auth -> validate -> open attempt -> authoritative questions
                     -> grade each answer -> score once -> complete + persist
    check_answer():  single-question grading for practice review
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        question_store: QuestionStore,
        exam: ExamConfig,
        settings: Settings,
    ):
        self.session_factory = session_factory
        self.questions = question_store
        self.exam = exam
        self.settings = settings

    def authenticate(self, authorization: Optional[str]) -> str:
        return verify_bearer(authorization, self.settings.jwt_secret, self.settings.jwt_audience)

    def submit(self, authorization: Optional[str], payload: Any) -> schemas.SubmitTestResponse:
        user_id = self.authenticate(authorization)
        req = parse_payload(schemas.SubmitTestRequest, payload)

        question_ids = [a.question_id for a in req.answers]
        if len(question_ids) != len(set(question_ids)):
            raise InvalidRequest("Duplicate question_id in answers")

        with self.session_factory() as db:
            manager = AttemptManager(db, self.exam)
            try:
                manager.get_open(req.attempt_id, user_id)
            except NotFound:
                logger.warning("submit rejected: attempt %s not open for %s", req.attempt_id, user_id)
                raise
            # 조회 트랜잭션을 닫아 두고 채점 (sqlite 잠금 방지)
            db.rollback()

            questions = self.questions.fetch_trusted(question_ids)
            missing = len(set(question_ids) - set(questions))
            if missing:
                logger.warning("attempt %s: %d answer(s) reference unknown questions", req.attempt_id, missing)

            outcome = grade_submission(questions, req.answers)
            result = score_tallies(outcome.domain_tallies, self.exam)

            try:
                manager.complete(
                    req.attempt_id,
                    user_id,
                    AttemptResults(
                        score=result.score,
                        correct_count=outcome.correct_count,
                        domain_scores=outcome.domain_scores,
                        is_pass=result.is_pass,
                        time_remaining_seconds=req.time_remaining_seconds,
                    ),
                    outcome.answers,
                )
            except NotFound:
                logger.warning("submit rejected: attempt %s was completed concurrently", req.attempt_id)
                raise

        logger.info(
            "attempt %s completed: score=%d correct=%d/%d pass=%s",
            req.attempt_id, result.score, outcome.correct_count, len(req.answers), result.is_pass,
        )
        return schemas.SubmitTestResponse(
            score=result.score,
            correct_count=outcome.correct_count,
            total_questions=len(req.answers),
            domain_scores=outcome.domain_scores,
            is_pass=result.is_pass,
        )

    def check_answer(self, authorization: Optional[str], payload: Any) -> schemas.CheckAnswerResponse:
        self.authenticate(authorization)
        req = parse_payload(schemas.CheckAnswerRequest, payload)

        q = self.questions.get_trusted(req.question_id)
        if q is None:
            raise NotFound("Question not found")

        return schemas.CheckAnswerResponse(
            is_correct=evaluate(q.correct_answers, req.user_answers),
            correct_answers=list(q.correct_answers),
            explanation=q.explanation,
        )

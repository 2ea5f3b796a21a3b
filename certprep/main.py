import json
import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from certprep import schemas
from certprep.attempts import AttemptManager
from certprep.config import DEFAULT_EXAM, ExamConfig, Settings
from certprep.database import get_session_local, init_schema
from certprep.errors import InvalidRequest, ServiceError
from certprep.questions import QuestionStore
from certprep.submission import SubmissionService
from db_builder.question_loader import seed_question_bank
from db_builder.validator import validate_question_bank


# -------------------------------------------------
# Logger 설정
# -------------------------------------------------
logger = logging.getLogger("certprep")
if not logger.handlers:
    _h = logging.StreamHandler()
    _h.setFormatter(logging.Formatter('[%(levelname)s] %(message)s'))
    logger.addHandler(_h)
logger.setLevel(logging.INFO)


# -------------------------------------------------
# 요청 단위 의존성
# -------------------------------------------------
def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_service(request: Request) -> SubmissionService:
    return request.app.state.service


def current_user(request: Request) -> str:
    return request.app.state.service.authenticate(request.headers.get("Authorization"))


async def _read_json_body(request: Request):
    raw = await request.body()
    if not raw:
        raise InvalidRequest()
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequest()


def _prepare_db_on_startup(settings: Settings, exam: ExamConfig, session_factory):
    """
    1. 테이블 생성
    2. questions 가 비어 있으면 question_dir 의 CSV/JSON 으로 채움
    3. 문제 은행 검증, 문제가 있으면 서버 기동 중단
    """
    init_schema(settings.database_url)
    with session_factory() as db:
        seed_question_bank(db, settings.question_dir, exam)
        validate_question_bank(db, exam)


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": InvalidRequest.default_message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


# -------------------------------------------------
# FastAPI 앱 / CORS / UTF-8 미들웨어
# -------------------------------------------------
def create_app(settings: Optional[Settings] = None, exam: ExamConfig = DEFAULT_EXAM) -> FastAPI:
    settings = settings or Settings.from_env()
    logger.setLevel(settings.log_level)

    app = FastAPI(title="certprep")
    session_factory = get_session_local(settings.database_url)
    app.state.settings = settings
    app.state.exam = exam
    app.state.session_factory = session_factory
    app.state.service = SubmissionService(
        session_factory,
        QuestionStore(session_factory, settings.request_timeout),
        exam,
        settings,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def ensure_utf8_json(request: Request, call_next):
        """
        모든 JSON 응답에 charset=utf-8을 붙여서 브라우저가 Latin-1로 잘못 디코딩하지 않게 방지
        """
        response = await call_next(request)
        ct = response.headers.get("content-type", "")
        if ct.startswith("application/json") and "charset" not in ct.lower():
            response.headers["content-type"] = "application/json; charset=utf-8"
        return response

    _install_error_handlers(app)

    @app.on_event("startup")
    def on_startup():
        if settings.jwt_secret is None:
            logger.warning("[startup] CERTPREP_JWT_SECRET not set; every authenticated call will get 401")
        _prepare_db_on_startup(settings, exam, session_factory)

    # -------------------------------------------------
    # API 라우팅
    # -------------------------------------------------
    @app.get("/api/config/exam", response_model=schemas.ExamConfigOut)
    def get_exam_config():
        counts = exam.question_counts()
        return schemas.ExamConfigOut(
            domains=[
                schemas.DomainInfo(id=d.id, name=d.name, weight=d.weight, question_count=counts[d.id])
                for d in exam.domains
            ],
            max_score=exam.max_score,
            passing_score=exam.passing_score,
            total_questions=exam.total_questions,
            time_limit_minutes=exam.time_limit_minutes,
        )

    @app.get("/api/questions", response_model=List[schemas.PublicQuestion])
    def read_questions(
        domain: Optional[List[str]] = Query(None),
        user_id: str = Depends(current_user),
        db: Session = Depends(get_db),
        service: SubmissionService = Depends(get_service),
    ):
        """
        문제 목록 (정답/해설 제외). `?domain=1.0&domain=3.0` 으로 도메인 필터.
        """
        return service.questions.list_public(db, domain)

    @app.get("/api/practice-set", response_model=List[schemas.PublicQuestion])
    def practice_set(
        user_id: str = Depends(current_user),
        db: Session = Depends(get_db),
        service: SubmissionService = Depends(get_service),
    ):
        """
        도메인 가중치대로 뽑은 모의고사 문항 세트.
        """
        return service.questions.select_practice_set(db, exam)

    @app.post("/api/attempts", response_model=schemas.AttemptSummary, status_code=201)
    def create_attempt(
        payload: Optional[schemas.CreateAttemptRequest] = None,
        user_id: str = Depends(current_user),
        db: Session = Depends(get_db),
    ):
        payload = payload or schemas.CreateAttemptRequest()
        attempt = AttemptManager(db, exam).create(user_id, payload.total_questions, payload.mode)
        return schemas.AttemptSummary.model_validate(attempt)

    @app.get("/api/attempts", response_model=List[schemas.AttemptSummary])
    def list_attempts(
        mode: Optional[str] = None,
        user_id: str = Depends(current_user),
        db: Session = Depends(get_db),
    ):
        """
        완료된 응시 기록 (최신순). 점수 추이 화면용.
        """
        return [schemas.AttemptSummary.model_validate(a) for a in AttemptManager(db, exam).history(user_id, mode)]

    @app.get("/api/attempts/{attempt_id}", response_model=schemas.AttemptReview)
    def review_attempt(
        attempt_id: str,
        user_id: str = Depends(current_user),
        db: Session = Depends(get_db),
        service: SubmissionService = Depends(get_service),
    ):
        """
        완료된 응시의 결과 + 문항별 피드백. 진행 중인 응시는 404 (정답 노출 방지).
        """
        manager = AttemptManager(db, exam)
        attempt = manager.get_completed(attempt_id, user_id)
        rows = manager.answers_for(attempt.id)
        questions = service.questions.fetch_trusted([r.question_id for r in rows])

        answers = []
        for r in rows:
            q = questions.get(r.question_id)
            answers.append(schemas.ReviewedAnswer(
                question_id=r.question_id,
                user_answers=list(r.user_answers or []),
                is_correct=r.is_correct,
                is_flagged=r.is_flagged,
                answered_at=r.answered_at,
                correct_answers=list(q.correct_answers) if q else [],
                explanation=q.explanation if q else None,
            ))
        return schemas.AttemptReview(attempt=schemas.AttemptSummary.model_validate(attempt), answers=answers)

    @app.post("/api/submit-test", response_model=schemas.SubmitTestResponse)
    async def submit_test(request: Request):
        """
        응시 답안 일괄 제출 -> 서버 채점 -> 점수 저장 (응시당 1회).

        curl -H "Authorization: Bearer $TOKEN" -H "Content-Type: application/json" \
             -d '{"attempt_id":"...","answers":[{"question_id":"q1","user_answers":["A"],"is_flagged":false}],"time_remaining_seconds":120}' \
             http://localhost:8000/api/submit-test
        """
        service: SubmissionService = request.app.state.service
        authorization = request.headers.get("Authorization")
        # 인증을 본문 파싱보다 먼저
        service.authenticate(authorization)
        payload = await _read_json_body(request)
        return await run_in_threadpool(service.submit, authorization, payload)

    @app.post("/api/check-answer", response_model=schemas.CheckAnswerResponse)
    async def check_answer(request: Request):
        """
        단일 문항 즉시 채점 (학습 모드).
        """
        service: SubmissionService = request.app.state.service
        authorization = request.headers.get("Authorization")
        service.authenticate(authorization)
        payload = await _read_json_body(request)
        return await run_in_threadpool(service.check_answer, authorization, payload)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("certprep.main:app", host="0.0.0.0", port=8000, reload=True)

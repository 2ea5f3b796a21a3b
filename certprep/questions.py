import logging
import random
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from certprep import schemas
from certprep.config import ExamConfig
from certprep.errors import UpstreamFailure
from certprep.models import QuestionRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TrustedQuestion:
    """
    Server-only view of a question, correct answers included.
    Only QuestionStore.fetch_trusted() hands these out.
    """
    id: str
    domain: str
    question_type: str
    correct_answers: Tuple[str, ...]
    explanation: Optional[str] = None


def _to_trusted(row: QuestionRecord) -> TrustedQuestion:
    return TrustedQuestion(
        id=row.id,
        domain=row.domain,
        question_type=row.question_type,
        correct_answers=tuple(row.correct_answers or []),
        explanation=row.explanation,
    )


def _to_public(row: QuestionRecord) -> schemas.PublicQuestion:
    opts = row.options if isinstance(row.options, list) else []
    return schemas.PublicQuestion(
        id=row.id,
        domain=row.domain,
        question_text=row.question_text,
        question_type=row.question_type,
        options=[schemas.QuestionOption(id=str(o.get("id")), text=o.get("text") or "") for o in opts],
    )


def run_with_timeout(fn: Callable[[], T], timeout_seconds: float, what: str) -> T:
    """
    Run `fn` on a worker thread and wait at most `timeout_seconds`.
    Timeouts and database errors both surface as UpstreamFailure.
    """
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        fut = executor.submit(fn)
        return fut.result(timeout=timeout_seconds)
    except FuturesTimeout:
        logger.warning("%s timed out after %.1fs", what, timeout_seconds)
        raise UpstreamFailure(f"Timed out while loading {what}")
    except SQLAlchemyError as e:
        logger.error("%s failed: %s", what, e)
        raise UpstreamFailure(f"Failed to fetch {what}")
    finally:
        # 느린 쿼리는 뒤에서 끝나게 두고 요청은 바로 반환
        executor.shutdown(wait=False)


class QuestionStore:
    def __init__(self, session_factory: sessionmaker, timeout_seconds: float = 10.0):
        self._session_factory = session_factory
        self._timeout = timeout_seconds

    # --- trusted path (server-side grading only) ---
    def fetch_trusted(self, question_ids: Iterable[str]) -> Dict[str, TrustedQuestion]:
        ids = sorted(set(question_ids))
        if not ids:
            return {}

        def _load() -> Dict[str, TrustedQuestion]:
            with self._session_factory() as db:
                rows = db.query(QuestionRecord).filter(QuestionRecord.id.in_(ids)).all()
                return {r.id: _to_trusted(r) for r in rows}

        return run_with_timeout(_load, self._timeout, "questions")

    def get_trusted(self, question_id: str) -> Optional[TrustedQuestion]:
        return self.fetch_trusted([question_id]).get(question_id)

    # --- public path ---
    def list_public(self, db: Session, domains: Optional[Sequence[str]] = None) -> List[schemas.PublicQuestion]:
        query = db.query(QuestionRecord)
        if domains:
            query = query.filter(QuestionRecord.domain.in_(list(domains)))
        return [_to_public(r) for r in query.order_by(QuestionRecord.domain, QuestionRecord.id).all()]

    def select_practice_set(
        self,
        db: Session,
        exam: ExamConfig,
        rng: Optional[random.Random] = None,
    ) -> List[schemas.PublicQuestion]:
        """
        Domain-weighted random draw for a full practice test.

        Each domain contributes `exam.question_counts()[domain]` questions;
        if a domain pool is short the gap is filled from whatever is left.
        """
        rng = rng or random.Random()
        pool = self.list_public(db)

        by_domain: Dict[str, List[schemas.PublicQuestion]] = {}
        for q in pool:
            by_domain.setdefault(q.domain, []).append(q)

        selected: List[schemas.PublicQuestion] = []
        for domain_id, count in exam.question_counts().items():
            candidates = list(by_domain.get(domain_id, []))
            rng.shuffle(candidates)
            selected.extend(candidates[:count])

        if len(selected) < exam.total_questions:
            used = {q.id for q in selected}
            remaining = [q for q in pool if q.id not in used]
            rng.shuffle(remaining)
            selected.extend(remaining[: exam.total_questions - len(selected)])

        selected = selected[: exam.total_questions]
        rng.shuffle(selected)
        return selected

import csv
import io
import json
import logging
import re
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from certprep.config import ExamConfig
from certprep.models import QuestionRecord

logger = logging.getLogger(__name__)

BATCH_SIZE = 50

# "A. text" 형식의 보기 (여러 줄 가능)
OPTION_PAT = re.compile(r"([A-F])\.\s+([\s\S]*?)(?=(?:\n[A-F]\.\s)|$)")
DOMAIN_PAT = re.compile(r"^(\d+\.\d+)")

ALLOWED_TYPES = {"single", "multi"}


def parse_options(choices_text: str) -> List[dict]:
    return [
        {"id": m.group(1), "text": m.group(2).strip()}
        for m in OPTION_PAT.finditer(choices_text or "")
    ]


def parse_correct_answers(answer_text: str) -> List[str]:
    # "B" 또는 "A, B, C"
    return [a.strip() for a in (answer_text or "").split(",") if a.strip()]


def map_domain(domain_text: str) -> str:
    s = (domain_text or "").strip()
    m = DOMAIN_PAT.match(s)
    return m.group(1) if m else s


def map_question_type(type_text: str) -> str:
    return "multi" if "select" in (type_text or "").lower() else "single"


def normalize_options(raw) -> List[dict]:
    """
    Accepts [{"id"|"key": ..., "text": ...}] and returns [{"id", "text"}].
    """
    options: List[dict] = []
    for o in raw or []:
        if not isinstance(o, dict):
            continue
        oid = o.get("id", o.get("key"))
        if oid is None:
            continue
        options.append({"id": str(oid), "text": str(o.get("text") or "")})
    return options


def _is_usable(q: dict) -> bool:
    return bool(
        q.get("question_text")
        and len(q.get("options") or []) >= 2
        and len(q.get("correct_answers") or []) >= 1
        and q.get("domain")
    )


def parse_questions_csv(text: str) -> List[dict]:
    """
    Exported question bank CSV -> question dicts.

    Columns: Question, Choices, Correct Answer(s), Difficulty, Domain,
    Explanation, Question Type, Source URL. The header row is skipped and
    rows that cannot be graded are dropped with a warning.
    """
    reader = csv.reader(io.StringIO(text))
    rows = [r for r in reader if len(r) > 1]
    questions: List[dict] = []
    for lineno, row in enumerate(rows[1:], start=2):
        row = [c.strip() for c in row] + [""] * (8 - len(row))
        question_text, choices, correct, _difficulty, domain, explanation, qtype, _source = row[:8]
        q = {
            "question_text": question_text,
            "options": parse_options(choices),
            "correct_answers": parse_correct_answers(correct),
            "domain": map_domain(domain),
            "explanation": explanation or None,
            "question_type": map_question_type(qtype),
        }
        if not _is_usable(q):
            logger.warning("[skip] row %d: missing text/options/answers/domain", lineno)
            continue
        questions.append(q)
    return questions


def load_questions_csv(path: Path) -> List[dict]:
    # BOM 허용
    with path.open("r", encoding="utf-8-sig", newline="") as f:
        return parse_questions_csv(f.read())


def load_questions_json(path: Path) -> List[dict]:
    with path.open("r", encoding="utf-8-sig") as f:
        data = json.load(f)
    if not isinstance(data, list):
        logger.warning("%s is not a list; wrapping as single-item list", path.name)
        data = [data]

    questions: List[dict] = []
    for item in data:
        if not isinstance(item, dict):
            logger.warning("[skip] non-object item in %s", path.name)
            continue
        q = {
            "id": str(item["id"]) if item.get("id") is not None else None,
            "question_text": item.get("question_text", ""),
            "options": normalize_options(item.get("options")),
            "correct_answers": [str(a) for a in item.get("correct_answers") or []],
            "domain": map_domain(str(item.get("domain", ""))),
            "explanation": item.get("explanation"),
            "question_type": (item.get("question_type") or "single").lower(),
        }
        if q["question_type"] not in ALLOWED_TYPES:
            logger.warning("[skip] %s id=%s invalid question_type: %s", path.name, q["id"], q["question_type"])
            continue
        if not _is_usable(q):
            logger.warning("[skip] %s id=%s missing text/options/answers/domain", path.name, q["id"])
            continue
        questions.append(q)
    return questions


def insert_questions(db: Session, questions: Iterable[dict]) -> int:
    inserted = 0
    batch: List[QuestionRecord] = []
    for q in questions:
        record = QuestionRecord(**{k: v for k, v in q.items() if not (k == "id" and not v)})
        batch.append(record)
        if len(batch) >= BATCH_SIZE:
            db.add_all(batch)
            db.commit()
            inserted += len(batch)
            batch = []
    if batch:
        db.add_all(batch)
        db.commit()
        inserted += len(batch)
    return inserted


def seed_question_bank(db: Session, directory: Path, exam: Optional[ExamConfig] = None) -> int:
    """
    Load data/*.csv and data/*.json into an empty questions table.
    Does nothing if the table already has rows or the directory is missing.
    """
    if db.query(QuestionRecord).count() > 0:
        logger.info("[seed] question bank already populated; skipping")
        return 0
    if not directory.is_dir():
        logger.info("[seed] no question directory at %s; skipping", directory)
        return 0

    collected: List[dict] = []
    for path in sorted(directory.rglob("*")):
        try:
            if path.suffix.lower() == ".csv":
                items = load_questions_csv(path)
            elif path.suffix.lower() == ".json":
                items = load_questions_json(path)
            else:
                continue
        except (OSError, ValueError) as e:
            logger.error("[seed] failed to load %s: %s", path, e)
            continue
        logger.info("[seed] loaded %s (%d questions)", path.name, len(items))
        collected.extend(items)

    if exam is not None:
        known = set(exam.domain_ids)
        unknown = [q for q in collected if q["domain"] not in known]
        for q in unknown:
            logger.warning("[seed] skip question with unknown domain %r", q["domain"])
        collected = [q for q in collected if q["domain"] in known]

    count = insert_questions(db, collected)
    logger.info("[seed] inserted %d questions", count)
    return count


if __name__ == "__main__":
    from certprep.config import DEFAULT_EXAM, Settings
    from certprep.database import get_session_local, init_schema

    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    settings = Settings.from_env()
    directory = Path(sys.argv[1]) if len(sys.argv) > 1 else settings.question_dir
    init_schema(settings.database_url)
    with get_session_local(settings.database_url)() as session:
        seed_question_bank(session, directory, DEFAULT_EXAM)

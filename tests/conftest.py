import json
import time

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from certprep.config import DEFAULT_EXAM, Settings
from certprep.database import dispose_engine, get_session_local, init_schema
from certprep.main import create_app
from db_builder.question_loader import seed_question_bank

SECRET = "test-secret"
AUDIENCE = "authenticated"


# Common test fixtures
SAMPLE_QUESTIONS = [
    {"id": "q1", "domain": "1.0", "question_type": "single", "question_text": "Which layer stores data?",
     "options": [{"id": "A", "text": "Storage"}, {"id": "B", "text": "Compute"}],
     "correct_answers": ["A"], "explanation": "Storage layer."},
    {"id": "q2", "domain": "1.0", "question_type": "multi", "question_text": "Pick two editions.",
     "options": [{"id": "A", "text": "Standard"}, {"id": "B", "text": "Tiny"}, {"id": "C", "text": "Enterprise"}],
     "correct_answers": ["A", "C"], "explanation": None},
    {"id": "q3", "domain": "2.0", "question_type": "single", "question_text": "Which role is top level?",
     "options": [{"id": "A", "text": "PUBLIC"}, {"id": "B", "text": "ORGADMIN"}],
     "correct_answers": ["B"], "explanation": "ORGADMIN."},
    {"id": "q4", "domain": "3.0", "question_type": "single", "question_text": "Bulk load command?",
     "options": [{"id": "A", "text": "LOAD"}, {"id": "B", "text": "PUT"}, {"id": "C", "text": "GET"},
                 {"id": "D", "text": "COPY INTO"}],
     "correct_answers": ["D"], "explanation": None},
    {"id": "q5", "domain": "4.0", "question_type": "single", "question_text": "Result cache lifetime?",
     "options": [{"id": "A", "text": "24 hours"}, {"id": "B", "text": "1 hour"}],
     "correct_answers": ["A"], "explanation": None},
    {"id": "q6", "domain": "5.0", "question_type": "single", "question_text": "Sharing object?",
     "options": [{"id": "A", "text": "Stage"}, {"id": "B", "text": "Share"}],
     "correct_answers": ["B"], "explanation": "Shares."},
]

ALL_CORRECT = {"q1": ["A"], "q2": ["A", "C"], "q3": ["B"], "q4": ["D"], "q5": ["A"], "q6": ["B"]}


def make_token(sub="alice", secret=SECRET, audience=AUDIENCE, expires_in=3600):
    claims = {"sub": sub, "exp": int(time.time()) + expires_in}
    if audience:
        claims["aud"] = audience
    return jwt.encode(claims, secret, algorithm="HS256")


def bearer(sub="alice"):
    return {"Authorization": f"Bearer {make_token(sub)}"}


@pytest.fixture
def question_dir(tmp_path):
    d = tmp_path / "data"
    d.mkdir()
    (d / "questions.json").write_text(json.dumps(SAMPLE_QUESTIONS), encoding="utf-8")
    return d


@pytest.fixture
def settings(tmp_path, question_dir):
    s = Settings(
        database_url=f"sqlite:///{tmp_path / 'certprep.db'}",
        jwt_secret=SECRET,
        jwt_audience=AUDIENCE,
        request_timeout=5.0,
        cors_origins=("http://localhost:5173",),
        question_dir=question_dir,
    )
    yield s
    dispose_engine(s.database_url)


@pytest.fixture
def session_factory(settings):
    init_schema(settings.database_url)
    factory = get_session_local(settings.database_url)
    with factory() as db:
        seed_question_bank(db, settings.question_dir, DEFAULT_EXAM)
    return factory


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def new_attempt(client):
    def _create(sub="alice", total_questions=6):
        resp = client.post("/api/attempts", json={"total_questions": total_questions}, headers=bearer(sub))
        assert resp.status_code == 201
        return resp.json()["id"]
    return _create

from conftest import ALL_CORRECT, bearer


def _answers(picks, flagged=()):
    return [
        {"question_id": qid, "user_answers": list(ans), "is_flagged": qid in flagged}
        for qid, ans in picks.items()
    ]


def _submit(client, attempt_id, picks, sub="alice", time_remaining=300):
    body = {"attempt_id": attempt_id, "answers": _answers(picks), "time_remaining_seconds": time_remaining}
    return client.post("/api/submit-test", json=body, headers=bearer(sub))


# ─────────────────────────────────────────────────────────────────────────
# submit-test
# ─────────────────────────────────────────────────────────────────────────

def test_submit_all_correct_scores_max(client, new_attempt):
    attempt_id = new_attempt()
    resp = _submit(client, attempt_id, ALL_CORRECT)

    assert resp.status_code == 200
    body = resp.json()
    assert body["score"] == 1000
    assert body["correct_count"] == 6
    assert body["total_questions"] == 6
    assert body["is_pass"] is True
    assert body["domain_scores"]["1.0"] == {"correct": 2, "total": 2}
    assert resp.headers["content-type"] == "application/json; charset=utf-8"


def test_submit_partial_multi_select_gets_no_credit(client, new_attempt):
    picks = dict(ALL_CORRECT, q2=["A"])
    resp = _submit(client, new_attempt(), picks)

    body = resp.json()
    assert body["correct_count"] == 5
    assert body["domain_scores"]["1.0"] == {"correct": 1, "total": 2}
    # 1.0 loses half of 0.31 -> 845
    assert body["score"] == 845


def test_submit_all_wrong_scores_zero(client, new_attempt):
    picks = {qid: [] for qid in ALL_CORRECT}
    body = _submit(client, new_attempt(), picks).json()
    assert body["score"] == 0
    assert body["correct_count"] == 0
    assert body["is_pass"] is False


def test_unknown_question_graded_incorrect_but_counted(client, new_attempt):
    picks = dict(ALL_CORRECT, ghost=["A"])
    body = _submit(client, new_attempt(), picks).json()

    assert body["total_questions"] == 7
    assert body["correct_count"] == 6
    assert sum(d["total"] for d in body["domain_scores"].values()) == 6
    assert body["score"] == 1000


def test_resubmission_is_not_found_and_keeps_score(client, new_attempt):
    attempt_id = new_attempt()
    first = _submit(client, attempt_id, ALL_CORRECT)
    assert first.status_code == 200

    again = _submit(client, attempt_id, {qid: [] for qid in ALL_CORRECT})
    assert again.status_code == 404
    assert again.json() == {"error": "Test attempt not found or already completed"}

    review = client.get(f"/api/attempts/{attempt_id}", headers=bearer())
    assert review.json()["attempt"]["score"] == 1000


def test_submitting_someone_elses_attempt_is_not_found(client, new_attempt):
    attempt_id = new_attempt("alice")
    resp = _submit(client, attempt_id, ALL_CORRECT, sub="mallory")
    assert resp.status_code == 404

    # 여전히 alice 가 제출 가능
    assert _submit(client, attempt_id, ALL_CORRECT).status_code == 200


def test_submit_without_credentials_is_401(client, new_attempt):
    attempt_id = new_attempt()
    body = {"attempt_id": attempt_id, "answers": [], "time_remaining_seconds": 0}

    assert client.post("/api/submit-test", json=body).status_code == 401
    bad = client.post("/api/submit-test", json=body, headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 401
    assert bad.json() == {"error": "Unauthorized"}


def test_auth_is_checked_before_body(client):
    resp = client.post("/api/submit-test", content=b"{not json", headers={"Content-Type": "application/json"})
    assert resp.status_code == 401


def test_malformed_bodies_are_400_and_leave_attempt_open(client, new_attempt):
    attempt_id = new_attempt()
    bad_bodies = [
        {"answers": []},
        {"attempt_id": "", "answers": []},
        {"attempt_id": attempt_id, "answers": "q1"},
        {"attempt_id": attempt_id, "answers": [{"question_id": "q1", "user_answers": "A"}]},
        {"attempt_id": attempt_id, "answers": [{"user_answers": ["A"]}]},
        {"attempt_id": attempt_id, "answers": [], "time_remaining_seconds": -5},
        {"attempt_id": attempt_id, "answers": _answers({"q1": ["A"]}) * 2},
        ["not", "an", "object"],
    ]
    for body in bad_bodies:
        resp = client.post("/api/submit-test", json=body, headers=bearer())
        assert resp.status_code == 400, body
        assert "error" in resp.json()

    raw = client.post("/api/submit-test", content=b"{oops", headers=dict(bearer(), **{"Content-Type": "application/json"}))
    assert raw.status_code == 400

    assert _submit(client, attempt_id, ALL_CORRECT).status_code == 200


def test_submit_unknown_attempt_is_404(client):
    assert _submit(client, "no-such-attempt", ALL_CORRECT).status_code == 404


# ─────────────────────────────────────────────────────────────────────────
# check-answer
# ─────────────────────────────────────────────────────────────────────────

def test_check_answer_reveals_after_grading(client):
    resp = client.post("/api/check-answer", json={"question_id": "q2", "user_answers": ["C", "A"]}, headers=bearer())
    assert resp.status_code == 200
    assert resp.json() == {"is_correct": True, "correct_answers": ["A", "C"], "explanation": None}

    wrong = client.post("/api/check-answer", json={"question_id": "q1", "user_answers": ["B"]}, headers=bearer())
    assert wrong.json()["is_correct"] is False
    assert wrong.json()["explanation"] == "Storage layer."


def test_check_answer_errors(client):
    assert client.post("/api/check-answer", json={"question_id": "q1", "user_answers": ["A"]}).status_code == 401
    assert client.post("/api/check-answer", json={"question_id": "q1"}, headers=bearer()).status_code == 400
    missing = client.post("/api/check-answer", json={"question_id": "zzz", "user_answers": []}, headers=bearer())
    assert missing.status_code == 404


# ─────────────────────────────────────────────────────────────────────────
# questions / attempts / config
# ─────────────────────────────────────────────────────────────────────────

def test_public_questions_hide_answers(client):
    resp = client.get("/api/questions", headers=bearer())
    assert resp.status_code == 200
    questions = resp.json()
    assert len(questions) == 6
    for q in questions:
        assert "correct_answers" not in q
        assert "explanation" not in q

    only_one = client.get("/api/questions", params={"domain": "1.0"}, headers=bearer()).json()
    assert {q["id"] for q in only_one} == {"q1", "q2"}

    assert client.get("/api/questions").status_code == 401


def test_practice_set_draws_from_every_domain(client):
    questions = client.get("/api/practice-set", headers=bearer()).json()
    assert {q["id"] for q in questions} == set(ALL_CORRECT)
    assert all("correct_answers" not in q for q in questions)


def test_review_is_hidden_until_completed(client, new_attempt):
    attempt_id = new_attempt()
    assert client.get(f"/api/attempts/{attempt_id}", headers=bearer()).status_code == 404

    _submit(client, attempt_id, dict(ALL_CORRECT, q3=["A"]))
    review = client.get(f"/api/attempts/{attempt_id}", headers=bearer()).json()

    assert review["attempt"]["completed_at"] is not None
    assert review["attempt"]["time_remaining_seconds"] == 300
    by_id = {a["question_id"]: a for a in review["answers"]}
    assert by_id["q3"]["is_correct"] is False
    assert by_id["q3"]["correct_answers"] == ["B"]
    assert by_id["q3"]["explanation"] == "ORGADMIN."

    assert client.get(f"/api/attempts/{attempt_id}", headers=bearer("mallory")).status_code == 404


def test_history_lists_completed_attempts(client, new_attempt):
    done = new_attempt()
    new_attempt()
    _submit(client, done, ALL_CORRECT)

    history = client.get("/api/attempts", headers=bearer()).json()
    assert [a["id"] for a in history] == [done]
    assert client.get("/api/attempts", headers=bearer("bob")).json() == []


def test_create_attempt_defaults_to_full_exam(client):
    resp = client.post("/api/attempts", headers=bearer())
    assert resp.status_code == 201
    body = resp.json()
    assert body["total_questions"] == 100
    assert body["mode"] == "practice"
    assert body["completed_at"] is None


def test_exam_config_is_served_from_one_source(client):
    body = client.get("/api/config/exam").json()
    assert body["max_score"] == 1000
    assert body["passing_score"] == 750
    assert [d["id"] for d in body["domains"]] == ["1.0", "2.0", "3.0", "4.0", "5.0"]
    assert body["domains"][0]["weight"] == 0.31
    assert body["domains"][0]["question_count"] == 31

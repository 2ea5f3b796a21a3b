from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

from certprep.questions import TrustedQuestion
from certprep.schemas import AnswerInput
from certprep.scoring import DomainTally


def evaluate(correct_answers: Iterable[str], user_answers: Iterable[str]) -> bool:
    """
    All-or-nothing 채점: 선택한 보기 집합 == 정답 집합 일 때만 정답.
    순서 무관, 중복 선택은 한 번으로 취급. 정답이 비어 있는 문항(데이터 오류)은 항상 오답.
    """
    expected = set(correct_answers)
    if not expected:
        return False
    return set(user_answers) == expected


@dataclass(frozen=True)
class GradedAnswer:
    question_id: str
    user_answers: List[str]
    is_flagged: bool
    is_correct: bool
    domain: str | None


@dataclass
class GradingOutcome:
    answers: List[GradedAnswer] = field(default_factory=list)
    domain_tallies: Dict[str, DomainTally] = field(default_factory=dict)
    correct_count: int = 0

    @property
    def domain_scores(self) -> Dict[str, Dict[str, int]]:
        return {d: t.as_dict() for d, t in self.domain_tallies.items()}


def grade_submission(
    questions_by_id: Mapping[str, TrustedQuestion],
    answers: Iterable[AnswerInput],
) -> GradingOutcome:
    """
    Grade every submitted answer against the authoritative questions.

    An answer whose question id is not in `questions_by_id` is recorded as
    incorrect and is not counted in any domain tally.
    """
    outcome = GradingOutcome()
    for ans in answers:
        q = questions_by_id.get(ans.question_id)
        if q is None:
            is_correct = False
            domain = None
        else:
            is_correct = evaluate(q.correct_answers, ans.user_answers)
            domain = q.domain
            outcome.domain_tallies.setdefault(domain, DomainTally()).record(is_correct)
            if is_correct:
                outcome.correct_count += 1

        outcome.answers.append(GradedAnswer(
            question_id=ans.question_id,
            user_answers=list(ans.user_answers),
            is_flagged=ans.is_flagged,
            is_correct=is_correct,
            domain=domain,
        ))
    return outcome

import math
from dataclasses import dataclass
from typing import Dict, Mapping

from certprep.config import ExamConfig


@dataclass
class DomainTally:
    correct: int = 0
    total: int = 0

    def record(self, is_correct: bool) -> None:
        self.total += 1
        if is_correct:
            self.correct += 1

    @property
    def accuracy(self) -> float:
        return self.correct / self.total if self.total else 0.0

    def as_dict(self) -> Dict[str, int]:
        return {"correct": self.correct, "total": self.total}


@dataclass(frozen=True)
class ScoreResult:
    score: int
    is_pass: bool


def round_half_up(value: float) -> int:
    # JS Math.round 과 동일 (음수 점수는 나오지 않음)
    return int(math.floor(value + 0.5))


def scaled_score(
    domain_tallies: Mapping[str, DomainTally],
    domain_weights: Mapping[str, float],
    max_score: int,
) -> int:
    """
    Weighted accuracy scaled to `max_score`.

    - accuracy per domain = correct / total
    - domains with no graded questions add nothing; their weight is lost,
      the remaining weights are NOT renormalised
    - tallies for domains missing from `domain_weights` are ignored
    - the sum runs in `domain_weights` order, so the result does not depend
      on the order the questions were graded in
    """
    weighted = 0.0
    for domain_id, weight in domain_weights.items():
        tally = domain_tallies.get(domain_id)
        if tally is None or tally.total <= 0:
            continue
        weighted += tally.accuracy * weight
    return round_half_up(weighted * max_score)


def is_passing(score: int, passing_score: int) -> bool:
    return score >= passing_score


def score_tallies(domain_tallies: Mapping[str, DomainTally], exam: ExamConfig) -> ScoreResult:
    score = scaled_score(domain_tallies, exam.weights, exam.max_score)
    return ScoreResult(score=score, is_pass=is_passing(score, exam.passing_score))

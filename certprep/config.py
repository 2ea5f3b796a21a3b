import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

# 프로젝트 루트 (certprep/config.py 기준으로 ..)
BASE_DIR = Path(__file__).resolve().parents[1]


@dataclass(frozen=True)
class Domain:
    id: str
    name: str
    weight: float


@dataclass(frozen=True)
class ExamConfig:
    """
    Exam blueprint shared by scoring, attempt creation and the client.
    One instance is built at startup and passed around; nothing else
    should hold its own copy of the weight table.
    """
    domains: Tuple[Domain, ...]
    max_score: int = 1000
    passing_score: int = 750
    total_questions: int = 100
    time_limit_minutes: int = 115

    def __post_init__(self):
        ids = [d.id for d in self.domains]
        if len(ids) != len(set(ids)):
            raise ValueError(f"duplicate domain ids: {ids}")
        for d in self.domains:
            if d.weight < 0:
                raise ValueError(f"domain {d.id} has negative weight {d.weight}")
        if not 0 < self.passing_score <= self.max_score:
            raise ValueError(
                f"passing_score must be in (0, {self.max_score}], got {self.passing_score}"
            )
        if self.total_questions < 1:
            raise ValueError("total_questions must be positive")

    @property
    def domain_ids(self) -> Tuple[str, ...]:
        return tuple(d.id for d in self.domains)

    @property
    def weights(self) -> Dict[str, float]:
        return {d.id: d.weight for d in self.domains}

    def domain(self, domain_id: str) -> Optional[Domain]:
        for d in self.domains:
            if d.id == domain_id:
                return d
        return None

    def question_counts(self) -> Dict[str, int]:
        """Questions drawn per domain for a full practice test."""
        return {d.id: int(round(d.weight * self.total_questions)) for d in self.domains}


DEFAULT_EXAM = ExamConfig(
    domains=(
        Domain("1.0", "Snowflake AI Data Cloud Features & Architecture", 0.31),
        Domain("2.0", "Account Management and Data Governance", 0.20),
        Domain("3.0", "Data Loading, Unloading, and Connectivity", 0.18),
        Domain("4.0", "Performance Optimization, Querying, and Transformation", 0.21),
        Domain("5.0", "Data Collaboration", 0.10),
    ),
)


def _split_csv(value: str) -> Tuple[str, ...]:
    return tuple(p.strip() for p in value.split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: Optional[str] = None
    jwt_audience: Optional[str] = "authenticated"
    request_timeout: float = 10.0
    cors_origins: Tuple[str, ...] = field(default_factory=tuple)
    question_dir: Path = BASE_DIR / "data"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        storage_dir = Path(os.getenv("STORAGE_DIR", BASE_DIR / "storage"))
        default_url = f"sqlite:///{storage_dir / 'certprep.db'}"
        return cls(
            database_url=os.getenv("DATABASE_URL", default_url),
            jwt_secret=os.getenv("CERTPREP_JWT_SECRET") or None,
            # 빈 문자열이면 aud 검사 생략
            jwt_audience=os.getenv("CERTPREP_JWT_AUDIENCE", "authenticated") or None,
            request_timeout=float(os.getenv("CERTPREP_REQUEST_TIMEOUT") or 10.0),
            cors_origins=_split_csv(
                os.getenv(
                    "CERTPREP_CORS_ORIGINS",
                    "http://localhost:5173,http://127.0.0.1:5173",
                )
            ),
            question_dir=Path(os.getenv("CERTPREP_QUESTION_DIR", BASE_DIR / "data")),
            log_level=(os.getenv("CERTPREP_LOG_LEVEL") or "INFO").upper(),
        )

from pathlib import Path
from typing import Dict

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()

# --- URL 별 engine / sessionmaker 캐시 ---
_ENGINE_CACHE: Dict[str, Engine] = {}
_SESSION_CACHE: Dict[str, sessionmaker] = {}


def _enable_sqlite_foreign_keys(dbapi_conn, _record):
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def _ensure_sqlite_dir(url: str) -> None:
    """
    sqlite:///path/to/file.db 이면 상위 폴더를 미리 만들어 둔다.
    """
    prefix = "sqlite:///"
    if url.startswith(prefix) and url != "sqlite://":
        db_file = url[len(prefix):]
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)


def get_engine(database_url: str) -> Engine:
    eng = _ENGINE_CACHE.get(database_url)
    if eng is None:
        if database_url.startswith("sqlite"):
            _ensure_sqlite_dir(database_url)
            # 여러 요청 스레드에서 같은 파일을 쓰므로 busy timeout 을 넉넉히
            eng = create_engine(
                database_url,
                connect_args={"check_same_thread": False, "timeout": 30},
            )
            event.listen(eng, "connect", _enable_sqlite_foreign_keys)
        else:
            eng = create_engine(database_url, pool_pre_ping=True)
        _ENGINE_CACHE[database_url] = eng
    return eng


def get_session_local(database_url: str) -> sessionmaker:
    """
    Returns the sessionmaker bound to `database_url`, creating it once.
    """
    sess = _SESSION_CACHE.get(database_url)
    if sess is None:
        sess = sessionmaker(autocommit=False, autoflush=False, bind=get_engine(database_url))
        _SESSION_CACHE[database_url] = sess
    return sess


def init_schema(database_url: str) -> None:
    # models 를 import 해야 Base.metadata 에 테이블이 등록됨
    from certprep import models  # noqa: F401

    Base.metadata.create_all(bind=get_engine(database_url))


def dispose_engine(database_url: str) -> None:
    eng = _ENGINE_CACHE.pop(database_url, None)
    _SESSION_CACHE.pop(database_url, None)
    if eng is not None:
        eng.dispose()

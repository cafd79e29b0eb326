import functools
import logging
import os
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    """Build the connection URL from environment variables."""
    url = os.getenv("DATABASE_URL")
    if url:
        # Prefer an explicit psycopg2 driver for generic postgres URLs
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+psycopg2://", 1)
        elif url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+psycopg2://", 1)
        return url

    user = os.getenv("DB_USER", "postgres")
    password = os.getenv("DB_PASSWORD", "")
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    db_name = os.getenv("DB_NAME", "atom")
    sslmode = os.getenv("DB_SSLMODE", "")

    auth = f"{user}:{password}" if password else user
    base_url = f"postgresql+psycopg2://{auth}@{host}:{port}/{db_name}"

    # Required by hosted databases such as Neon or Supabase
    if sslmode:
        base_url += f"?sslmode={sslmode}"
    return base_url


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid {name}, using {default}")
        return default


@functools.lru_cache(maxsize=1)
def get_engine() -> Engine:
    url = get_database_url()
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    is_serverless = bool(os.getenv("VERCEL") or os.getenv("AWS_LAMBDA_FUNCTION_NAME"))
    engine = create_engine(
        url,
        pool_pre_ping=True,
        pool_size=_env_int("DB_POOL_SIZE", 1 if is_serverless else 10),
        max_overflow=_env_int("DB_MAX_OVERFLOW", 0 if is_serverless else 20),
        pool_recycle=1800,
    )
    logger.info(f"Database engine created (host={engine.url.host}, db={engine.url.database})")
    return engine


@functools.lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker:
    return sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)


def session_scope() -> Generator[Session, None, None]:
    """Yield a session and always close it. Uncommitted work is rolled back."""
    db = get_session_factory()()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

import logging
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, text

from atom_portal.database.connection import get_database_url

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
ADVISORY_LOCK_KEY = 73102024


def alembic_config(sqlalchemy_url: Optional[str] = None) -> Config:
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    cfg.set_main_option("sqlalchemy.url", sqlalchemy_url or get_database_url())
    return cfg


def head_revision(cfg: Config) -> Optional[str]:
    return ScriptDirectory.from_config(cfg).get_current_head()


def upgrade_head(sqlalchemy_url: Optional[str] = None) -> str:
    """Upgrade the database to head and return the resulting revision.

    On PostgreSQL the upgrade runs under an advisory lock so concurrent
    deploys cannot race each other.
    """
    url = sqlalchemy_url or get_database_url()
    cfg = alembic_config(url)
    cfg.attributes["configure_logger"] = False
    engine = create_engine(url)
    is_postgres = engine.dialect.name == "postgresql"
    try:
        with engine.connect() as conn:
            if is_postgres:
                conn.execute(text("SELECT pg_advisory_lock(:k)"), {"k": ADVISORY_LOCK_KEY})
            try:
                cfg.attributes["connection"] = conn
                command.upgrade(cfg, "head")
                conn.commit()
                current = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
            finally:
                if is_postgres:
                    conn.execute(text("SELECT pg_advisory_unlock(:k)"), {"k": ADVISORY_LOCK_KEY})
    finally:
        engine.dispose()

    head = head_revision(cfg)
    if current != head:
        raise RuntimeError(f"alembic_version={current} != head={head}")
    logger.info(f"Database at revision {current}")
    return str(current)


if __name__ == "__main__":
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    upgrade_head()

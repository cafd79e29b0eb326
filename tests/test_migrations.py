import pytest
from sqlalchemy import create_engine, inspect

from atom_portal.database.migration_runner import alembic_config, head_revision, upgrade_head
from atom_portal.database.orm_models import Base

pytestmark = pytest.mark.integration


def test_upgrade_head_builds_schema_and_is_idempotent(tmp_path):
    url = f"sqlite:///{tmp_path / 'atom.db'}"

    first = upgrade_head(url)
    second = upgrade_head(url)

    assert first == second == head_revision(alembic_config(url))
    engine = create_engine(url)
    try:
        tables = set(inspect(engine).get_table_names())
        freeze_indexes = {ix["name"]: ix for ix in inspect(engine).get_indexes("freeze_requests")}
    finally:
        engine.dispose()
    assert set(Base.metadata.tables) <= tables
    assert "alembic_version" in tables
    assert freeze_indexes["uq_freeze_requests_member_pending"]["unique"]

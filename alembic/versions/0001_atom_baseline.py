"""Baseline schema: profiles, subscriptions, attendance, store, notifications, back-office.

Revision ID: 0001_atom_baseline
"""
from alembic import op

from atom_portal.database.orm_models import Base

revision = "0001_atom_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    Base.metadata.create_all(bind=op.get_bind(), checkfirst=True)


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind(), checkfirst=True)

"""initial schema creation

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18 00:00:00

"""
from alembic import op


revision = '20261018_01'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Bootstrap an empty database to the current model schema.
    bind = op.get_bind()
    from ubuntu_api.models import Base
    Base.metadata.create_all(bind)


def downgrade() -> None:
    bind = op.get_bind()
    from ubuntu_api.models import Base
    Base.metadata.drop_all(bind)

"""initial_schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op

from libs.db.base import Base
from services.inventory_service import models as _inventory_models  # noqa: F401
from services.members_service import models as _member_models  # noqa: F401
from services.workshops_service import models as _workshop_models  # noqa: F401


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create every members, workshops and inventory table."""
    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind())

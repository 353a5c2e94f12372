"""add_orders_customer_enrichment

Revision ID: 8a41c6f09e2d
Revises: 5d2e8b7a1c30
Create Date: 2026-10-19 15:40:03.771204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = '8a41c6f09e2d'
down_revision: Union[str, None] = '5d2e8b7a1c30'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('orders', sa.Column('customer_enrichment', postgresql.JSONB(astext_type=sa.Text()), nullable=True))
    # Intake items used to live inside the marketplace snapshot.
    op.execute(
        "UPDATE orders SET customer_enrichment = raw_external_snapshot -> 'customer_enrichment', "
        "raw_external_snapshot = raw_external_snapshot - 'customer_enrichment' "
        "WHERE raw_external_snapshot ? 'customer_enrichment'"
    )


def downgrade() -> None:
    op.drop_column('orders', 'customer_enrichment')

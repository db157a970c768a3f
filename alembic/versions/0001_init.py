
"""Migração inicial: lojas, carrinhos abandonados e conversas."""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("messaging_address", sa.String(40), nullable=False, unique=True),
        sa.Column("alert_address", sa.String(40), nullable=True),
        sa.Column("faq_text", sa.Text(), nullable=True),
        sa.Column("plan", sa.String(32), nullable=False, server_default="basic"),
        sa.Column("api_key", sa.String(64), nullable=False, unique=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=False)),
    )
    op.create_table(
        "abandoned_carts",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("tenant_id", sa.Integer, sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("customer_address", sa.String(40), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("recovery_url", sa.String(2048), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=False), nullable=False),
        sa.Column("recovered", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("recovered_at", sa.TIMESTAMP(timezone=False), nullable=True),
        sa.Column("message_state", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("reminder_sent_at", sa.TIMESTAMP(timezone=False), nullable=True),
        sa.Column("claimed_until", sa.TIMESTAMP(timezone=False), nullable=True),
    )
    op.create_index("ix_carts_tenant_customer", "abandoned_carts", ["tenant_id", "customer_address", "recovered"])
    op.create_index("ix_carts_due", "abandoned_carts", ["message_state", "created_at"])
    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("tenant_id", sa.Integer, sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("customer_address", sa.String(40), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=False), nullable=False),
        sa.UniqueConstraint("tenant_id", "customer_address", name="uq_conversation_customer"),
    )
    op.create_table(
        "conversation_messages",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("conversation_id", sa.Integer, sa.ForeignKey("conversations.id"), nullable=False),
        sa.Column("author", sa.String(16), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=False), nullable=False),
    )

def downgrade() -> None:
    op.drop_table("conversation_messages")
    op.drop_table("conversations")
    op.drop_index("ix_carts_due", table_name="abandoned_carts")
    op.drop_index("ix_carts_tenant_customer", table_name="abandoned_carts")
    op.drop_table("abandoned_carts")
    op.drop_table("tenants")


"""Modelos SQLAlchemy para Lojas/Carrinhos abandonados/Conversas."""
from __future__ import annotations
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, JSON, Text, Boolean, ForeignKey, UniqueConstraint, Index, TIMESTAMP
from datetime import datetime

MESSAGE_STATE_PENDING = "pending"
MESSAGE_STATE_REMINDER_SENT = "reminder_sent"

AUTHOR_CUSTOMER = "customer"
AUTHOR_BOT = "bot"

def utcnow() -> datetime:
    return datetime.utcnow()

class Base(DeclarativeBase):
    """Base declarativa."""
    pass

class Tenant(Base):
    """Loja (tenant). Criada fora do núcleo; somente leitura para ele."""
    __tablename__ = "tenants"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(120))
    messaging_address: Mapped[str] = mapped_column(String(40), unique=True)
    alert_address: Mapped[str | None] = mapped_column(String(40))
    faq_text: Mapped[str | None] = mapped_column(Text)
    plan: Mapped[str] = mapped_column(String(32), default="basic")
    api_key: Mapped[str] = mapped_column(String(64), unique=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), default=utcnow)

class AbandonedCart(Base):
    __tablename__ = "abandoned_carts"
    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"))
    customer_address: Mapped[str] = mapped_column(String(40))
    items: Mapped[list] = mapped_column(JSON)  # [{name, price, quantity}]
    recovery_url: Mapped[str] = mapped_column(String(2048))
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), default=utcnow)
    recovered: Mapped[bool] = mapped_column(Boolean, default=False)
    recovered_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=False))
    message_state: Mapped[str] = mapped_column(String(16), default=MESSAGE_STATE_PENDING)  # pending|reminder_sent
    reminder_sent_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=False))
    claimed_until: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=False))
    __table_args__ = (
        Index("ix_carts_tenant_customer", "tenant_id", "customer_address", "recovered"),
        Index("ix_carts_due", "message_state", "created_at"),
    )

class Conversation(Base):
    __tablename__ = "conversations"
    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"))
    customer_address: Mapped[str] = mapped_column(String(40))
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), default=utcnow)
    __table_args__ = (
        UniqueConstraint("tenant_id", "customer_address", name="uq_conversation_customer"),
    )

class ConversationMessage(Base):
    __tablename__ = "conversation_messages"
    id: Mapped[int] = mapped_column(primary_key=True)
    conversation_id: Mapped[int] = mapped_column(ForeignKey("conversations.id"))
    author: Mapped[str] = mapped_column(String(16))  # customer|bot
    text: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), default=utcnow)


"""Repositório: Lojas, Carrinhos abandonados e Conversas (histórico append-only).

Cada operação lógica abre sua própria sessão e faz no máximo uma transação de
escrita; nenhum estado fica em cache entre requisições.
"""
from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator
from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from ..repo.models import (
    Tenant, AbandonedCart, Conversation, ConversationMessage,
    MESSAGE_STATE_PENDING, MESSAGE_STATE_REMINDER_SENT, utcnow,
)
from ..ports.interfaces import TenantDTO, CartDTO, ConversationDTO, MessageDTO
from ..core.errors import PersistenceError
from ..core.logging import get_logger

log = get_logger()

@contextmanager
def _guard(op: str) -> Iterator[None]:
    """Converte falhas do SQLAlchemy em PersistenceError."""
    try:
        yield
    except SQLAlchemyError as exc:
        log.error("store_error", op=op, error=str(exc))
        raise PersistenceError(f"{op}: {exc.__class__.__name__}") from exc

class Store:
    """Fachada de persistência sobre um sessionmaker."""

    def __init__(self, session_factory):
        self.Session = session_factory

    # ---------- Lojas ----------
    def create_tenant(self, *, name: str, messaging_address: str, api_key: str,
                      alert_address: str | None = None, faq_text: str | None = None,
                      plan: str = "basic") -> TenantDTO:
        with _guard("create_tenant"), self.Session() as s, s.begin():
            t = Tenant(name=name, messaging_address=messaging_address, api_key=api_key,
                       alert_address=alert_address, faq_text=faq_text, plan=plan)
            s.add(t)
            s.flush()
            dto = TenantDTO.model_validate(t)
        log.info("tenant_created", tenant_id=dto.id)
        return dto

    def get_tenant(self, tenant_id: int) -> TenantDTO | None:
        with _guard("get_tenant"), self.Session() as s:
            t = s.get(Tenant, tenant_id)
            return TenantDTO.model_validate(t) if t else None

    def find_tenant_by_api_key(self, api_key: str) -> TenantDTO | None:
        with _guard("find_tenant_by_api_key"), self.Session() as s:
            t = s.execute(select(Tenant).where(Tenant.api_key == api_key).limit(1)).scalars().first()
            return TenantDTO.model_validate(t) if t else None

    def find_tenant_by_messaging_address(self, address: str) -> TenantDTO | None:
        with _guard("find_tenant_by_messaging_address"), self.Session() as s:
            t = s.execute(select(Tenant).where(Tenant.messaging_address == address).limit(1)).scalars().first()
            return TenantDTO.model_validate(t) if t else None

    # ---------- Carrinhos ----------
    def insert_cart(self, *, tenant_id: int, customer_address: str, items: list[dict],
                    recovery_url: str, created_at: datetime | None = None) -> int:
        """Insere carrinho novo (recovered=False, pending)."""
        with _guard("insert_cart"), self.Session() as s, s.begin():
            cart = AbandonedCart(
                tenant_id=tenant_id,
                customer_address=customer_address,
                items=items,
                recovery_url=recovery_url,
                created_at=created_at or utcnow(),
                recovered=False,
                message_state=MESSAGE_STATE_PENDING,
            )
            s.add(cart)
            s.flush()
            cart_id = cart.id
        return cart_id

    def get_cart(self, cart_id: int) -> CartDTO | None:
        with _guard("get_cart"), self.Session() as s:
            c = s.get(AbandonedCart, cart_id)
            return CartDTO.model_validate(c) if c else None

    def list_carts(self, tenant_id: int, customer_address: str | None = None) -> list[CartDTO]:
        with _guard("list_carts"), self.Session() as s:
            q = select(AbandonedCart).where(AbandonedCart.tenant_id == tenant_id)
            if customer_address:
                q = q.where(AbandonedCart.customer_address == customer_address)
            rows = s.execute(q.order_by(AbandonedCart.id.asc())).scalars().all()
            return [CartDTO.model_validate(r) for r in rows]

    def recover_oldest_cart(self, tenant_id: int, customer_address: str, now: datetime | None = None) -> int | None:
        """Marca como recuperado o carrinho não recuperado mais antigo do cliente.

        Retorna o id marcado ou None quando não existe candidato.
        """
        with _guard("recover_oldest_cart"), self.Session() as s, s.begin():
            cart = s.execute(
                select(AbandonedCart)
                .where(
                    AbandonedCart.tenant_id == tenant_id,
                    AbandonedCart.customer_address == customer_address,
                    AbandonedCart.recovered.is_(False),
                )
                .order_by(AbandonedCart.created_at.asc(), AbandonedCart.id.asc())
                .limit(1)
            ).scalars().first()
            if not cart:
                return None
            cart.recovered = True
            cart.recovered_at = now or utcnow()
            return cart.id

    def list_due_carts(self, cutoff: datetime) -> list[CartDTO]:
        """Carrinhos pendentes, não recuperados, criados até ``cutoff``."""
        with _guard("list_due_carts"), self.Session() as s:
            rows = s.execute(
                select(AbandonedCart)
                .where(
                    AbandonedCart.message_state == MESSAGE_STATE_PENDING,
                    AbandonedCart.recovered.is_(False),
                    AbandonedCart.created_at <= cutoff,
                )
                .order_by(AbandonedCart.created_at.asc(), AbandonedCart.id.asc())
            ).scalars().all()
            return [CartDTO.model_validate(r) for r in rows]

    def claim_cart(self, cart_id: int, now: datetime, lease_until: datetime) -> bool:
        """Reserva atômica para envio: só vence quem encontra o carrinho pendente e sem reserva válida."""
        with _guard("claim_cart"), self.Session() as s, s.begin():
            res = s.execute(
                update(AbandonedCart)
                .where(
                    AbandonedCart.id == cart_id,
                    AbandonedCart.message_state == MESSAGE_STATE_PENDING,
                    AbandonedCart.recovered.is_(False),
                    or_(AbandonedCart.claimed_until.is_(None), AbandonedCart.claimed_until < now),
                )
                .values(claimed_until=lease_until)
                .execution_options(synchronize_session=False)
            )
            return res.rowcount == 1

    def release_claim(self, cart_id: int) -> None:
        with _guard("release_claim"), self.Session() as s, s.begin():
            s.execute(
                update(AbandonedCart)
                .where(AbandonedCart.id == cart_id, AbandonedCart.message_state == MESSAGE_STATE_PENDING)
                .values(claimed_until=None)
                .execution_options(synchronize_session=False)
            )

    def mark_reminder_sent(self, cart_id: int, now: datetime | None = None) -> bool:
        """pending → reminder_sent (nunca o contrário)."""
        with _guard("mark_reminder_sent"), self.Session() as s, s.begin():
            res = s.execute(
                update(AbandonedCart)
                .where(AbandonedCart.id == cart_id, AbandonedCart.message_state == MESSAGE_STATE_PENDING)
                .values(message_state=MESSAGE_STATE_REMINDER_SENT, reminder_sent_at=now or utcnow(), claimed_until=None)
                .execution_options(synchronize_session=False)
            )
            return res.rowcount == 1

    # ---------- Conversas ----------
    def append_message(self, tenant_id: int, customer_address: str, author: str, text: str,
                       now: datetime | None = None) -> int:
        """Acrescenta mensagem ao histórico (cria a conversa na primeira vez). Retorna conversation_id."""
        try:
            return self._append_message(tenant_id, customer_address, author, text, now)
        except IntegrityError:
            # outra requisição criou a conversa em paralelo; agora ela existe
            log.info("conversation_create_race", tenant_id=tenant_id)
            with _guard("append_message"):
                return self._append_message(tenant_id, customer_address, author, text, now)
        except SQLAlchemyError as exc:
            log.error("store_error", op="append_message", error=str(exc))
            raise PersistenceError(f"append_message: {exc.__class__.__name__}") from exc

    def _append_message(self, tenant_id, customer_address, author, text, now) -> int:
        ts = now or utcnow()
        with self.Session() as s, s.begin():
            conv = s.execute(
                select(Conversation).where(
                    Conversation.tenant_id == tenant_id,
                    Conversation.customer_address == customer_address,
                )
            ).scalars().first()
            if not conv:
                conv = Conversation(tenant_id=tenant_id, customer_address=customer_address, updated_at=ts)
                s.add(conv)
                s.flush()
            conv.updated_at = ts
            s.add(ConversationMessage(conversation_id=conv.id, author=author, text=text, created_at=ts))
            conv_id = conv.id
        log.info("conversation_appended", conversation_id=conv_id, author=author)
        return conv_id

    def get_conversation(self, conversation_id: int, tenant_id: int | None = None) -> ConversationDTO | None:
        """Conversa com mensagens em ordem de inserção; ``tenant_id`` restringe ao dono."""
        with _guard("get_conversation"), self.Session() as s:
            conv = s.get(Conversation, conversation_id)
            if not conv or (tenant_id is not None and conv.tenant_id != tenant_id):
                return None
            return self._conversation_dto(s, conv)

    def find_conversation(self, tenant_id: int, customer_address: str) -> ConversationDTO | None:
        with _guard("find_conversation"), self.Session() as s:
            conv = s.execute(
                select(Conversation).where(
                    Conversation.tenant_id == tenant_id,
                    Conversation.customer_address == customer_address,
                )
            ).scalars().first()
            return self._conversation_dto(s, conv) if conv else None

    @staticmethod
    def _conversation_dto(s, conv: Conversation) -> ConversationDTO:
        msgs = s.execute(
            select(ConversationMessage)
            .where(ConversationMessage.conversation_id == conv.id)
            .order_by(ConversationMessage.id.asc())
        ).scalars().all()
        return ConversationDTO(
            id=conv.id,
            tenant_id=conv.tenant_id,
            customer_address=conv.customer_address,
            updated_at=conv.updated_at,
            messages=[MessageDTO.model_validate(m) for m in msgs],
        )

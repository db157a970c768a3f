
"""Portas hexagonais (interfaces) e DTOs."""
from __future__ import annotations
from datetime import datetime
from typing import Literal, Protocol, Union
from pydantic import BaseModel, ConfigDict, Field

class MensagemEntradaDTO(BaseModel):
    """Mensagem recebida da Twilio, já normalizada (endereços canônicos)."""
    from_address: str
    to_address: str
    texto: str
    provider_message_id: str | None = None

class EntregaDTO(BaseModel):
    """Resultado padronizado de envio pelo provedor."""
    ok: bool
    provider_message_id: str | None = None
    error_code: str | None = None
    error_detail: str | None = None

class CartItemDTO(BaseModel):
    """Item de carrinho; preço/quantidade só servem para exibição."""
    model_config = ConfigDict(extra="allow")
    name: str = Field(min_length=1)
    price: float | None = None
    quantity: int | None = None

class TenantDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    messaging_address: str
    alert_address: str | None = None
    faq_text: str | None = None
    plan: str = "basic"

class CartDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    tenant_id: int
    customer_address: str
    items: list[dict]
    recovery_url: str
    created_at: datetime
    recovered: bool
    message_state: str
    recovered_at: datetime | None = None
    reminder_sent_at: datetime | None = None

class MessageDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    author: str
    text: str
    created_at: datetime

class ConversationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    tenant_id: int
    customer_address: str
    updated_at: datetime
    messages: list[MessageDTO] = []

# ---------- Resultado do provedor de respostas ----------
class Answered(BaseModel):
    """Resposta gerada a partir das FAQs."""
    kind: Literal["answered"] = "answered"
    text: str

class Escalate(BaseModel):
    """Sem resposta possível: transbordo para humano."""
    kind: Literal["escalate"] = "escalate"
    reason: str = "not_in_faq"

AnswerOutcome = Union[Answered, Escalate]

class EgressPort(Protocol):
    def send(self, from_address: str, to_address: str, body: str) -> EntregaDTO: ...

class AnswerPort(Protocol):
    def answer(self, query: str, faq_corpus: str) -> AnswerOutcome: ...

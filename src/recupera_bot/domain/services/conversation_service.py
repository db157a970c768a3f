
"""Motor de conversa: histórico durável + resposta por FAQ ou transbordo humano.

Ordem fixa por mensagem recebida:
1. grava a mensagem do cliente (sempre, antes de qualquer decisão);
2. decide: sem FAQ → transbordo; com FAQ → LLM (Escalate → transbordo);
3. grava a resposta do bot;
4. envia a resposta ao cliente (falha só é registrada).
O alerta de transbordo é best-effort e nunca afeta a resposta ao cliente.
"""
from __future__ import annotations
from datetime import datetime
from typing import Callable
from pydantic import BaseModel
from ...core.guardrails import display_address
from ...core.logging import get_logger
from ...core.prompting import PromptBuilder
from ...ports.interfaces import AnswerPort, EgressPort, Answered, Escalate, MensagemEntradaDTO
from ...repo.models import AUTHOR_BOT, AUTHOR_CUSTOMER, utcnow
from ...repo.repo import Store

log = get_logger()

class InboundOutcome(BaseModel):
    conversation_id: int
    escalated: bool
    reply: str
    delivered: bool
    alert_sent: bool = False

class ConversationEngine:
    def __init__(
        self,
        store: Store,
        answers: AnswerPort,
        gateway: EgressPort,
        builder: PromptBuilder,
        dashboard_base_url: str,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.answers = answers
        self.gateway = gateway
        self.builder = builder
        self.dashboard_base_url = dashboard_base_url.rstrip("/")
        self.clock = clock

    def conversation_url(self, conversation_id: int) -> str:
        return f"{self.dashboard_base_url}/conversations/{conversation_id}"

    def handle_inbound_webhook(self, entrada: MensagemEntradaDTO) -> InboundOutcome | None:
        """Resolve a loja pelo número de destino e processa; loja desconhecida é descartada."""
        tenant = self.store.find_tenant_by_messaging_address(entrada.to_address)
        if not tenant:
            log.warning("inbound_unknown_tenant", to=entrada.to_address)
            return None
        return self.handle_inbound_message(
            tenant_id=tenant.id,
            tenant_messaging_address=tenant.messaging_address,
            tenant_faq_corpus=tenant.faq_text,
            tenant_alert_address=tenant.alert_address,
            customer_address=entrada.from_address,
            text=entrada.texto,
            tenant_name=tenant.name,
        )

    def handle_inbound_message(
        self,
        tenant_id: int,
        tenant_messaging_address: str,
        tenant_faq_corpus: str | None,
        tenant_alert_address: str | None,
        customer_address: str,
        text: str,
        tenant_name: str | None = None,
    ) -> InboundOutcome:
        conversation_id = self.store.append_message(tenant_id, customer_address, AUTHOR_CUSTOMER, text, now=self.clock())

        escalated = True
        if not tenant_faq_corpus or not tenant_faq_corpus.strip():
            outgoing = self.builder.no_faq_reply
            log.info("inbound_no_faq", tenant_id=tenant_id, conversation_id=conversation_id)
        else:
            try:
                outcome = self.answers.answer(text, tenant_faq_corpus)
            except Exception as exc:
                log.error("answer_provider_failed", tenant_id=tenant_id, conversation_id=conversation_id, error=repr(exc))
                outcome = Escalate(reason="provider_error")
            if isinstance(outcome, Answered):
                outgoing = outcome.text
                escalated = False
            else:
                outgoing = self.builder.handoff_reply
                log.info("inbound_escalated", tenant_id=tenant_id, conversation_id=conversation_id, reason=outcome.reason)

        alert_sent = False
        if escalated:
            alert_sent = self._notify_escalation(
                tenant_name=tenant_name or str(tenant_id),
                tenant_messaging_address=tenant_messaging_address,
                tenant_alert_address=tenant_alert_address,
                customer_address=customer_address,
                last_message=text,
                conversation_id=conversation_id,
            )

        self.store.append_message(tenant_id, customer_address, AUTHOR_BOT, outgoing, now=self.clock())

        res = self.gateway.send(tenant_messaging_address, customer_address, outgoing)
        if res.ok:
            log.info("reply_sent", conversation_id=conversation_id, provider_message_id=res.provider_message_id)
        else:
            log.error("reply_send_failed", conversation_id=conversation_id, error_code=res.error_code, error=res.error_detail)

        return InboundOutcome(
            conversation_id=conversation_id,
            escalated=escalated,
            reply=outgoing,
            delivered=res.ok,
            alert_sent=alert_sent,
        )

    def _notify_escalation(self, *, tenant_name: str, tenant_messaging_address: str, tenant_alert_address: str | None,
                           customer_address: str, last_message: str, conversation_id: int) -> bool:
        """Alerta o humano da loja. Sem contato configurado: só log."""
        if not tenant_alert_address:
            log.info("escalation_no_alert_contact", conversation_id=conversation_id)
            return False
        try:
            body = self.builder.escalation_alert(
                tenant_name=tenant_name,
                customer=display_address(customer_address),
                last_message=last_message,
                conversation_url=self.conversation_url(conversation_id),
            )
            res = self.gateway.send(tenant_messaging_address, tenant_alert_address, body)
        except Exception as exc:
            log.error("escalation_alert_failed", conversation_id=conversation_id, error=repr(exc))
            return False
        if not res.ok:
            log.error("escalation_alert_failed", conversation_id=conversation_id, error_code=res.error_code, error=res.error_detail)
            return False
        log.info("escalation_alert_sent", conversation_id=conversation_id)
        return True

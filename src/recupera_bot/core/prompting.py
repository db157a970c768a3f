
"""PromptBuilder com Jinja2: prompt de FAQ para a LLM e textos enviados por WhatsApp.

- O prompt de FAQ restringe a LLM ao conteúdo das FAQs da loja; fora disso ela
  deve sinalizar transbordo (campo ``escalar`` do JSON).
- Os textos ao cliente estão em espanhol (lojas atendidas), mas podem ser
  sobrescritos por instância.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List
from jinja2 import Environment, BaseLoader, StrictUndefined

# Token legado: algumas versões do prompt pediam este marcador em vez de JSON.
HUMAN_TAKEOVER_TOKEN = "[HUMAN_TAKEOVER]"

# -------- Mensagens fixas ao cliente --------
SEM_FAQ = "Hola, gracias por contactar. Un agente revisará tu mensaje pronto."
TRANSBORDO = (
    "Lo siento, no tengo esa información ahora mismo. "
    "Un agente humano se pondrá en contacto contigo en breve."
)

REMINDER_TEMPLATE = (
    "¡Hola! Vimos que dejaste \"{{ product_name }}\" en tu carrito. "
    "¿Tuviste algún problema? Puedes completar tu compra aquí: {{ recovery_url }}"
)

ALERT_TEMPLATE = (
    "⚠️ Atención humana requerida en {{ tenant_name }}.\n"
    "Cliente: {{ customer }}\n"
    "Último mensaje: \"{{ last_message }}\"\n"
    "Conversación: {{ conversation_url }}"
)

FAQ_SYSTEM_TEMPLATE = """
Eres un asistente de IA para un e-commerce español. Tu objetivo es responder preguntas de clientes
basándote ÚNICAMENTE en la información de las Preguntas Frecuentes (FAQs) de la tienda.
Nunca inventes datos que no estén en las FAQs (precios, plazos, políticas).
Sé breve y directo.

FAQs del e-commerce:
---
{{ faq }}
---

Responde SIEMPRE en JSON con el esquema:
{"texto": "respuesta para el cliente", "escalar": false}
Si la pregunta no se puede responder con las FAQs, devuelve:
{"texto": "", "escalar": true}
"""

@dataclass
class PromptBuilder:
    no_faq_reply: str = SEM_FAQ
    handoff_reply: str = TRANSBORDO
    reminder_template: str = REMINDER_TEMPLATE
    alert_template: str = ALERT_TEMPLATE
    faq_system_template: str = FAQ_SYSTEM_TEMPLATE
    env: Environment = field(default_factory=lambda: Environment(
        loader=BaseLoader(),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        autoescape=False,
    ))

    def _render(self, template: str, **ctx: Any) -> str:
        return self.env.from_string(template).render(**ctx).strip()

    # ---------- LLM ----------
    def faq_system(self, *, faq: str) -> str:
        """Prompt de sistema que limita a resposta às FAQs."""
        return self._render(self.faq_system_template, faq=faq.strip())

    def faq_user(self, *, query: str) -> str:
        return f"Pregunta del cliente: \"{query}\"\nDevuelve solo el JSON acordado."

    # ---------- WhatsApp ----------
    def reminder(self, *, items: List[Dict[str, Any]], recovery_url: str) -> str:
        """Lembrete de carrinho citando o primeiro item."""
        first = items[0] if items else {}
        name = first.get("name") or first.get("nombre") or "tu producto"
        return self._render(self.reminder_template, product_name=name, recovery_url=recovery_url)

    def escalation_alert(self, *, tenant_name: str, customer: str, last_message: str, conversation_url: str) -> str:
        """Alerta para o contato humano da loja."""
        return self._render(
            self.alert_template,
            tenant_name=tenant_name,
            customer=customer,
            last_message=last_message[:200],
            conversation_url=conversation_url,
        )

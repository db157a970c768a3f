
"""Cliente HTTP para LiteLLM, com validação Pydantic e resposta tipada (Answered | Escalate)."""
from __future__ import annotations
import json
from typing import Type
import httpx
from pydantic import BaseModel, ValidationError as PydanticValidationError
from .settings import Settings
from .prompting import PromptBuilder, HUMAN_TAKEOVER_TOKEN
from .errors import ExternalServiceError
from .logging import get_logger
from ..ports.interfaces import AnswerOutcome, Answered, Escalate

log = get_logger()

def _strip_fences(content: str) -> str:
    """Remove cercas ```json ... ``` que alguns modelos insistem em devolver."""
    content = content.strip()
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else ""
        if content.rstrip().endswith("```"):
            content = content.rstrip()[:-3]
    return content.strip()

class RespostaFaq(BaseModel):
    texto: str = ""
    escalar: bool = False

class LLMClient:
    """Cliente do gateway LiteLLM (endpoint /chat/completions no formato OpenAI)."""
    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None):
        self.settings = settings
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.settings.litellm_base_url,
            timeout=self.settings.litellm_timeout_s,
            transport=self.transport,
        )

    def complete_json(self, system: str, user: str, schema: Type[BaseModel]) -> BaseModel:
        """Uma única chamada; qualquer falha vira ExternalServiceError."""
        payload = {
            "model": self.settings.litellm_model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "response_format": {"type": "json_object"},
            "temperature": self.settings.litellm_temperature,
            "max_tokens": self.settings.litellm_max_tokens,
        }
        try:
            with self._client() as cli:
                r = cli.post("/chat/completions", json=payload)
        except httpx.HTTPError as exc:
            raise ExternalServiceError("litellm", f"transport: {exc.__class__.__name__}") from exc
        if r.status_code // 100 != 2:
            raise ExternalServiceError("litellm", f"status {r.status_code}")
        try:
            content = r.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ExternalServiceError("litellm", "payload sem choices") from exc
        if not content or not str(content).strip():
            raise ExternalServiceError("litellm", "conteúdo vazio")
        content = _strip_fences(str(content))
        try:
            data = json.loads(content)
        except ValueError:
            # modelo respondeu texto puro em vez de JSON
            return schema.model_validate({"texto": content})
        try:
            return schema.model_validate(data)
        except PydanticValidationError as exc:
            raise ExternalServiceError("litellm", "JSON fora do schema") from exc

class FaqAnswerProvider:
    """Responde perguntas apenas a partir das FAQs; toda falha vira Escalate."""
    def __init__(self, llm: LLMClient, builder: PromptBuilder):
        self.llm = llm
        self.builder = builder

    def answer(self, query: str, faq_corpus: str) -> AnswerOutcome:
        system = self.builder.faq_system(faq=faq_corpus)
        user = self.builder.faq_user(query=query)
        try:
            out: RespostaFaq = self.llm.complete_json(system, user, RespostaFaq)  # type: ignore[assignment]
        except ExternalServiceError as exc:
            log.warning("answer_provider_failed", error=str(exc))
            return Escalate(reason="provider_error")
        except Exception as exc:
            log.error("answer_provider_unexpected", error=repr(exc))
            return Escalate(reason="provider_error")
        texto = (out.texto or "").strip()
        if out.escalar or HUMAN_TAKEOVER_TOKEN in texto:
            return Escalate(reason="not_in_faq")
        if not texto:
            return Escalate(reason="empty_answer")
        return Answered(text=texto[:1600])

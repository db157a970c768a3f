
"""Adapter da Twilio (WhatsApp) para envio/recebimento."""
from __future__ import annotations
from twilio.base.exceptions import TwilioRestException
from twilio.request_validator import RequestValidator
from twilio.rest import Client
from ...core.settings import Settings
from ...core.guardrails import canonical_address, sanitize_text
from ...core.logging import get_logger
from ...ports.interfaces import MensagemEntradaDTO, EntregaDTO

log = get_logger()

class TwilioMessagingAdapter:
    """Adapter para a API de mensagens da Twilio."""
    def __init__(self, settings: Settings, client: Client | None = None):
        self.s = settings
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(self.s.twilio_account_sid, self.s.twilio_auth_token)
        return self._client

    # --- Ingress helpers ---
    def verify_signature(self, url: str, params: dict, header_signature: str | None) -> bool:
        """Valida X-Twilio-Signature (HMAC-SHA1 da URL + parâmetros do form)."""
        if not header_signature:
            return False
        validator = RequestValidator(self.s.twilio_auth_token)
        return validator.validate(url, params, header_signature)

    def normalize_incoming(self, form: dict) -> MensagemEntradaDTO | None:
        """Normaliza o form do webhook (From/To/Body); None quando falta campo obrigatório."""
        channel = self.s.channel_prefix
        from_address = canonical_address(form.get("From"), channel)
        to_address = canonical_address(form.get("To"), channel)
        texto = sanitize_text(form.get("Body"))
        if not from_address or not to_address or not texto:
            return None
        return MensagemEntradaDTO(
            from_address=from_address,
            to_address=to_address,
            texto=texto,
            provider_message_id=form.get("MessageSid"),
        )

    # --- Egress ---
    def send(self, from_address: str, to_address: str, body: str) -> EntregaDTO:
        """Envia mensagem de texto simples; nunca levanta exceção."""
        try:
            msg = self.client.messages.create(from_=from_address, to=to_address, body=body)
        except TwilioRestException as exc:
            log.warning("twilio_send_failed", to=to_address, status=exc.status, code=exc.code)
            return EntregaDTO(ok=False, error_code=str(exc.code), error_detail=exc.msg)
        except Exception as exc:
            log.warning("twilio_send_failed", to=to_address, error=repr(exc))
            return EntregaDTO(ok=False, error_code="transport", error_detail=str(exc))
        return EntregaDTO(ok=True, provider_message_id=getattr(msg, "sid", None))

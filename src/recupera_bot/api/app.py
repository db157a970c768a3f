
"""API Flask: webhook da Twilio, webhooks de e-commerce (carrinho/pedido) e consulta de conversas.

Os webhooks validam e autenticam de forma síncrona e respondem 200 antes do
trabalho terminar; o efeito colateral roda no BackgroundRunner. O ACK não é
confirmação de persistência.
"""
from __future__ import annotations
import atexit
import secrets
from functools import wraps
import click
from flask import Flask, request, jsonify, g
from kink import di
from ..core.di import bootstrap_di, start_services, shutdown_di
from ..core.errors import AuthError, ValidationError, PersistenceError
from ..core.guardrails import canonical_address
from ..core.logging import set_trace_id, get_logger
from ..core.settings import Settings
from ..connectors.twilio.messaging_adapter import TwilioMessagingAdapter
from ..domain.services.cart_service import CartLifecycle
from ..domain.services.conversation_service import ConversationEngine
from ..repo.repo import Store
from ..tasks.background import BackgroundRunner
from ..tasks.reminder_sweep import ReminderSweeper

log = get_logger()

API_KEY_HEADER = "X-API-Key"

def _field(body: dict, *names):
    """Primeiro campo presente entre os nomes aceitos (inglês + legado em espanhol)."""
    for n in names:
        if body.get(n) not in (None, "", []):
            return body[n]
    return None

def _json_body() -> dict:
    """Corpo JSON da requisição; precisa ser um objeto."""
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("corpo JSON inválido", ["body"])
    return body

def require_api_key(view):
    """Resolve a loja pela X-API-Key: 401 sem cabeçalho, 403 se desconhecida."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        api_key = request.headers.get(API_KEY_HEADER)
        if not api_key:
            raise AuthError("Falta a cabeçalho X-API-Key.", status=401)
        tenant = di[Store].find_tenant_by_api_key(api_key)
        if not tenant:
            raise AuthError("API Key inválida.", status=403)
        g.tenant = tenant
        return view(*args, **kwargs)
    return wrapper

def register_routes(app: Flask) -> None:
    @app.before_request
    def _trace():
        set_trace_id(request.headers.get("X-Trace-Id"))

    @app.errorhandler(AuthError)
    def _auth_error(exc: AuthError):
        log.warning("auth_rejected", path=request.path, status=exc.status)
        return {"error": str(exc)}, exc.status

    @app.errorhandler(ValidationError)
    def _validation_error(exc: ValidationError):
        log.info("request_rejected", path=request.path, fields=exc.fields)
        return {"error": str(exc), "fields": exc.fields}, 400

    @app.errorhandler(PersistenceError)
    def _persistence_error(exc: PersistenceError):
        return {"error": "erro interno"}, 500

    @app.get("/healthz")
    def healthz():
        """Health check básico."""
        return {"ok": True}

    @app.post("/webhook/whatsapp")
    def whatsapp_webhook():
        """Mensagem do cliente via Twilio; a loja é identificada pelo número de destino (To)."""
        s = di[Settings]
        adapter = di[TwilioMessagingAdapter]
        form = request.form.to_dict()
        if s.validate_twilio_signature:
            url = (s.public_base_url.rstrip("/") + request.path) if s.public_base_url else request.url
            if not adapter.verify_signature(url, form, request.headers.get("X-Twilio-Signature")):
                return "bad signature", 403
        entrada = adapter.normalize_incoming(form)
        if entrada is None:
            raise ValidationError("faltam From, Body ou To", ["From", "Body", "To"])
        log.info("webhook_in", customer=entrada.from_address, to=entrada.to_address, provider_id=entrada.provider_message_id)
        di[BackgroundRunner].submit("inbound_message", di[ConversationEngine].handle_inbound_webhook, entrada)
        return "EVENT_RECEIVED", 200

    @app.post("/api/webhooks/abandoned-cart")
    @app.post("/api/webhooks/carrito-abandonado")
    @require_api_key
    def abandoned_cart_webhook():
        """Carrinho abandonado de qualquer plataforma.

        Corpo: { "customer_phone": "34666111222", "recovery_url": "https://...",
                 "items": [{"name": "Produto 1", "price": 9.99, "quantity": 1}] }
        """
        body = _json_body()
        phone = _field(body, "customer_phone", "clienteTelefono")
        url = _field(body, "recovery_url", "urlRecuperacion")
        items = _field(body, "items", "productos")
        lifecycle = di[CartLifecycle]
        lifecycle.validate_cart(phone, url, items)
        di[BackgroundRunner].submit("ingest_cart", lifecycle.ingest_cart, g.tenant.id, phone, url, items)
        return jsonify({"received": True})

    @app.post("/api/webhooks/order-created")
    @app.post("/api/webhooks/pedido-creado")
    @require_api_key
    def order_created_webhook():
        """Pedido criado: marca como recuperado o carrinho pendente do cliente."""
        body = _json_body()
        phone = _field(body, "customer_phone", "clienteTelefono")
        lifecycle = di[CartLifecycle]
        lifecycle.validate_order(phone)
        di[BackgroundRunner].submit("mark_order_recovered", lifecycle.mark_order_recovered, g.tenant.id, phone)
        return jsonify({"received": True})

    @app.get("/api/conversations/<int:conversation_id>")
    @require_api_key
    def get_conversation(conversation_id: int):
        """Histórico da conversa (destino do link enviado no alerta de transbordo)."""
        conv = di[Store].get_conversation(conversation_id, tenant_id=g.tenant.id)
        if not conv:
            return {"error": "not found"}, 404
        return jsonify(conv.model_dump(mode="json"))

def register_cli(app: Flask) -> None:
    @app.cli.command("create-tenant")
    @click.option("--name", required=True)
    @click.option("--whatsapp", "messaging", required=True, help="Número da loja (remetente das mensagens)")
    @click.option("--alert", "alert", default=None, help="Contato humano para alertas de transbordo")
    @click.option("--faq-file", type=click.File("r", encoding="utf-8"), default=None)
    @click.option("--plan", default="basic")
    def create_tenant(name, messaging, alert, faq_file, plan):
        """Cria uma loja e imprime a API Key gerada."""
        channel = di[Settings].channel_prefix
        messaging_address = canonical_address(messaging, channel)
        if not messaging_address:
            raise click.BadParameter("número inválido", param_hint="--whatsapp")
        api_key = secrets.token_hex(24)
        tenant = di[Store].create_tenant(
            name=name,
            messaging_address=messaging_address,
            alert_address=canonical_address(alert, channel) if alert else None,
            faq_text=faq_file.read() if faq_file else None,
            plan=plan,
            api_key=api_key,
        )
        click.echo(f"tenant_id={tenant.id} api_key={api_key}")

    @app.cli.command("sweep-reminders")
    def sweep_reminders():
        """Executa uma varredura de lembretes agora."""
        report = di[ReminderSweeper].sweep_once()
        click.echo(report.model_dump_json())

def create_app(settings: Settings | None = None, **overrides) -> Flask:
    """Cria o app Flask, monta o DI e inicia o agendador (ciclo init/shutdown explícito)."""
    app = Flask(__name__)
    bootstrap_di(settings, **overrides)
    register_routes(app)
    register_cli(app)
    start_services()
    atexit.unregister(shutdown_di)
    atexit.register(shutdown_di)
    return app

def main() -> None:
    app = create_app()
    s = di[Settings]
    app.run(host=s.host, port=s.port, debug=s.flask_debug, use_reloader=False)

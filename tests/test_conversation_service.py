import httpx
import pytest

from conftest import ALERT_ADDRESS, CUSTOMER_ADDRESS, SHOP_ADDRESS, FakeAnswers, FakeGateway
from recupera_bot.core.llm_client import FaqAnswerProvider, LLMClient
from recupera_bot.core.prompting import PromptBuilder
from recupera_bot.domain.services.conversation_service import ConversationEngine
from recupera_bot.ports.interfaces import Answered, Escalate, MensagemEntradaDTO


def _engine(store, answers, gateway, clock=None):
    kwargs = {"clock": clock} if clock else {}
    return ConversationEngine(store, answers, gateway, PromptBuilder(), dashboard_base_url="https://painel.test/", **kwargs)


def _handle(engine, tenant, text, *, faq="__tenant__", alert="__tenant__"):
    return engine.handle_inbound_message(
        tenant_id=tenant.id,
        tenant_messaging_address=tenant.messaging_address,
        tenant_faq_corpus=tenant.faq_text if faq == "__tenant__" else faq,
        tenant_alert_address=tenant.alert_address if alert == "__tenant__" else alert,
        customer_address=CUSTOMER_ADDRESS,
        text=text,
        tenant_name=tenant.name,
    )


def _history(store, outcome):
    conv = store.get_conversation(outcome.conversation_id)
    return [(m.author, m.text) for m in conv.messages]


def test_faq_answer_is_persisted_and_sent_without_alert(store, tenant, gateway):
    answers = FakeAnswers(Answered(text="Orders ship within 3 days."))
    engine = _engine(store, answers, gateway)

    outcome = _handle(engine, tenant, "when does my order ship")

    assert answers.calls == [("when does my order ship", "Shipping takes 3 days")]
    assert outcome.escalated is False
    assert _history(store, outcome) == [
        ("customer", "when does my order ship"),
        ("bot", "Orders ship within 3 days."),
    ]
    assert gateway.sent == [(SHOP_ADDRESS, CUSTOMER_ADDRESS, "Orders ship within 3 days.")]
    assert gateway.sent_to(ALERT_ADDRESS) == []


@pytest.mark.parametrize("faq", [None, "", "   \n"])
def test_without_faq_always_escalates(store, tenant, gateway, faq):
    answers = FakeAnswers()
    builder = PromptBuilder()
    engine = _engine(store, answers, gateway)

    outcome = _handle(engine, tenant, "hola?", faq=faq)

    assert answers.calls == []
    assert outcome.escalated is True
    assert outcome.alert_sent is True
    assert _history(store, outcome) == [("customer", "hola?"), ("bot", builder.no_faq_reply)]
    assert gateway.sent_to(CUSTOMER_ADDRESS) == [builder.no_faq_reply]
    [alert] = gateway.sent_to(ALERT_ADDRESS)
    assert "+34666111222" in alert
    assert "whatsapp:" not in alert
    assert f"https://painel.test/conversations/{outcome.conversation_id}" in alert


def test_escalate_outcome_sends_handoff_reply_and_alert(store, tenant, gateway):
    engine = _engine(store, FakeAnswers(Escalate()), gateway)

    outcome = _handle(engine, tenant, "¿vendéis tarjetas regalo?")

    assert outcome.escalated is True
    assert outcome.reply == PromptBuilder().handoff_reply
    assert _history(store, outcome)[1] == ("bot", PromptBuilder().handoff_reply)
    assert len(gateway.sent_to(ALERT_ADDRESS)) == 1


def _timeout(request):
    raise httpx.ConnectTimeout("timeout", request=request)


@pytest.mark.parametrize(
    "handler",
    [
        _timeout,
        lambda request: httpx.Response(503, text="upstream down"),
        lambda request: httpx.Response(200, json={"choices": []}),
    ],
    ids=["timeout", "http-error", "empty-payload"],
)
def test_provider_failure_behaves_like_escalation(store, tenant, settings, gateway, handler):
    provider = FaqAnswerProvider(LLMClient(settings, transport=httpx.MockTransport(handler)), PromptBuilder())
    engine = _engine(store, provider, gateway)

    outcome = _handle(engine, tenant, "when does my order ship")

    assert outcome.escalated is True
    assert outcome.reply == PromptBuilder().handoff_reply
    assert len(_history(store, outcome)) == 2
    assert len(gateway.sent_to(ALERT_ADDRESS)) == 1


def test_missing_alert_contact_is_not_an_error(store, tenant, gateway):
    engine = _engine(store, FakeAnswers(Escalate()), gateway)

    outcome = _handle(engine, tenant, "necesito ayuda", alert=None)

    assert outcome.escalated is True
    assert outcome.alert_sent is False
    assert gateway.sent == [(SHOP_ADDRESS, CUSTOMER_ADDRESS, PromptBuilder().handoff_reply)]


@pytest.mark.parametrize("gateway", [FakeGateway(fail_to=[ALERT_ADDRESS]), FakeGateway(raise_to=[ALERT_ADDRESS])])
def test_alert_failure_does_not_affect_customer_reply(store, tenant, gateway):
    engine = _engine(store, FakeAnswers(Escalate()), gateway)

    outcome = _handle(engine, tenant, "necesito ayuda")

    assert outcome.alert_sent is False
    assert outcome.delivered is True
    assert gateway.sent_to(CUSTOMER_ADDRESS) == [PromptBuilder().handoff_reply]


def test_reply_send_failure_keeps_history(store, tenant):
    gateway = FakeGateway(fail_to=[CUSTOMER_ADDRESS])
    engine = _engine(store, FakeAnswers(Answered(text="Sí, enviamos a Canarias.")), gateway)

    outcome = _handle(engine, tenant, "¿enviáis a Canarias?")

    assert outcome.delivered is False
    assert _history(store, outcome) == [
        ("customer", "¿enviáis a Canarias?"),
        ("bot", "Sí, enviamos a Canarias."),
    ]


def test_messages_accumulate_in_the_same_conversation(store, tenant, gateway, clock):
    engine = _engine(store, FakeAnswers(Answered(text="3 días.")), gateway, clock=clock)

    first = _handle(engine, tenant, "¿cuánto tarda?")
    clock.advance(minutes=1)
    second = _handle(engine, tenant, "¿y a Portugal?")

    assert first.conversation_id == second.conversation_id
    conv = store.get_conversation(first.conversation_id)
    assert [m.author for m in conv.messages] == ["customer", "bot", "customer", "bot"]
    assert conv.updated_at == clock.now


def test_inbound_webhook_resolves_tenant_by_destination(store, tenant, gateway):
    engine = _engine(store, FakeAnswers(Answered(text="3 días.")), gateway)
    entrada = MensagemEntradaDTO(from_address=CUSTOMER_ADDRESS, to_address=SHOP_ADDRESS, texto="¿plazo?")

    outcome = engine.handle_inbound_webhook(entrada)

    assert outcome.reply == "3 días."
    assert store.find_conversation(tenant.id, CUSTOMER_ADDRESS) is not None


def test_inbound_webhook_for_unknown_number_is_dropped(store, tenant, gateway):
    engine = _engine(store, FakeAnswers(), gateway)
    entrada = MensagemEntradaDTO(from_address=CUSTOMER_ADDRESS, to_address="whatsapp:+10000000000", texto="hola")

    assert engine.handle_inbound_webhook(entrada) is None
    assert store.find_conversation(tenant.id, CUSTOMER_ADDRESS) is None
    assert gateway.sent == []


class _RaisingAnswers:
    def answer(self, query, faq_corpus):
        raise TimeoutError("provider timeout")


def test_raising_answer_provider_escalates(store, tenant, gateway):
    engine = _engine(store, _RaisingAnswers(), gateway)

    outcome = _handle(engine, tenant, "when does my order ship")

    assert outcome.escalated is True
    assert outcome.alert_sent is True
    assert _history(store, outcome) == [
        ("customer", "when does my order ship"),
        ("bot", PromptBuilder().handoff_reply),
    ]
    assert gateway.sent_to(CUSTOMER_ADDRESS) == [PromptBuilder().handoff_reply]
    assert len(gateway.sent_to(ALERT_ADDRESS)) == 1

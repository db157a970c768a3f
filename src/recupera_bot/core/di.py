
"""Bootstrap do container de DI (kink): cria cada dependência uma vez e a injeta nos componentes.

Os componentes recebem colaboradores pelo construtor; o container só guarda
as instâncias montadas para a camada HTTP e para o ``shutdown_di``.
"""
from datetime import timedelta
from kink import di
from .settings import Settings
from .logging import configure_logging, get_logger
from .db import create_session_factory, dispose
from .llm_client import LLMClient, FaqAnswerProvider
from .prompting import PromptBuilder
from ..connectors.twilio.messaging_adapter import TwilioMessagingAdapter
from ..domain.services.cart_service import CartLifecycle
from ..domain.services.conversation_service import ConversationEngine
from ..repo.repo import Store
from ..tasks.background import BackgroundRunner
from ..tasks.reminder_sweep import ReminderSweeper, ReminderScheduler

def bootstrap_di(settings: Settings | None = None, *, gateway=None, answers=None, session_factory=None) -> None:
    """Monta o grafo de dependências. ``gateway``/``answers``/``session_factory`` permitem substituição (testes)."""
    settings = settings or Settings()
    configure_logging(settings.log_level)
    di[Settings] = settings
    di["logger"] = get_logger()
    factory = session_factory or create_session_factory(settings.database_url)
    # sessionmaker é callable: o kink o trataria como factory lazy
    di["session_factory"] = lambda _: factory
    store = Store(factory)
    di[Store] = store
    builder = PromptBuilder()
    di[PromptBuilder] = builder

    adapter = TwilioMessagingAdapter(settings)
    di[TwilioMessagingAdapter] = adapter
    di["gateway"] = gateway or adapter
    di["answers"] = answers or FaqAnswerProvider(LLMClient(settings), builder)

    di[CartLifecycle] = CartLifecycle(store, channel=settings.channel_prefix)
    di[ConversationEngine] = ConversationEngine(
        store, di["answers"], di["gateway"], builder, dashboard_base_url=settings.dashboard_base_url,
    )
    di[ReminderSweeper] = ReminderSweeper(
        store,
        di["gateway"],
        builder,
        threshold=timedelta(minutes=settings.reminder_threshold_minutes),
        claim_ttl=timedelta(seconds=settings.reminder_claim_seconds),
    )
    di[ReminderScheduler] = ReminderScheduler(di[ReminderSweeper], interval_minutes=settings.reminder_interval_minutes)
    di[BackgroundRunner] = BackgroundRunner(max_workers=settings.background_workers)

def start_services() -> None:
    """Inicia o agendador de lembretes (se habilitado)."""
    if di[Settings].scheduler_enabled:
        di[ReminderScheduler].start()

def shutdown_di(wait: bool = True) -> None:
    """Para agendador e jobs em segundo plano e fecha o pool do banco."""
    log = di["logger"]
    di[ReminderScheduler].shutdown(wait=False)
    di[BackgroundRunner].shutdown(wait=wait)
    dispose(di["session_factory"])
    log.info("services_stopped")

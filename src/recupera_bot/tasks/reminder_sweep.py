
"""Varredura periódica de carrinhos abandonados com envio de lembrete.

Cada carrinho é processado isoladamente: falha em um (loja ausente, envio
recusado, erro de banco) nunca interrompe os demais. A reserva
(``claimed_until``) impede que varreduras sobrepostas enviem o mesmo
carrinho ao mesmo tempo; envio recusado libera a reserva e o carrinho
continua ``pending`` para a próxima varredura.
"""
from __future__ import annotations
from datetime import datetime, timedelta
from typing import Callable
from apscheduler.schedulers.background import BackgroundScheduler
from pydantic import BaseModel
from ..core.logging import get_logger, set_trace_id
from ..core.prompting import PromptBuilder
from ..ports.interfaces import CartDTO, EgressPort
from ..repo.models import utcnow
from ..repo.repo import Store

log = get_logger()

class SweepReport(BaseModel):
    found: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0

class ReminderSweeper:
    def __init__(
        self,
        store: Store,
        gateway: EgressPort,
        builder: PromptBuilder,
        threshold: timedelta = timedelta(hours=1),
        claim_ttl: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.gateway = gateway
        self.builder = builder
        self.threshold = threshold
        self.claim_ttl = claim_ttl
        self.clock = clock

    def sweep_once(self, now: datetime | None = None) -> SweepReport:
        """Envia lembrete para carrinhos pendentes com created_at <= now - threshold."""
        now = now or self.clock()
        set_trace_id()
        report = SweepReport()
        try:
            carts = self.store.list_due_carts(now - self.threshold)
        except Exception as exc:
            log.error("sweep_query_failed", error=repr(exc))
            return report
        if not carts:
            return report
        report.found = len(carts)
        log.info("sweep_started", due=len(carts))

        for cart in carts:
            try:
                outcome = self._process(cart, now)
            except Exception as exc:
                log.error("sweep_cart_failed", cart_id=cart.id, error=repr(exc))
                outcome = "failed"
            setattr(report, outcome, getattr(report, outcome) + 1)

        log.info("sweep_done", **report.model_dump())
        return report

    def _process(self, cart: CartDTO, now: datetime) -> str:
        if not self.store.claim_cart(cart.id, now, now + self.claim_ttl):
            log.info("sweep_cart_claimed_elsewhere", cart_id=cart.id)
            return "skipped"

        tenant = self.store.get_tenant(cart.tenant_id)
        if not tenant:
            log.warning("sweep_tenant_missing", cart_id=cart.id, tenant_id=cart.tenant_id)
            self.store.release_claim(cart.id)
            return "skipped"

        body = self.builder.reminder(items=cart.items, recovery_url=cart.recovery_url)
        res = self.gateway.send(tenant.messaging_address, cart.customer_address, body)
        if not res.ok:
            log.warning("reminder_send_failed", cart_id=cart.id, error_code=res.error_code, error=res.error_detail)
            self.store.release_claim(cart.id)
            return "failed"

        self.store.mark_reminder_sent(cart.id, now=now)
        log.info("reminder_sent", cart_id=cart.id, tenant_id=cart.tenant_id, provider_message_id=res.provider_message_id)
        return "sent"

class ReminderScheduler:
    """Agenda ``sweep_once`` em intervalo fixo (APScheduler, thread própria)."""
    JOB_ID = "abandoned_cart_reminders"

    def __init__(self, sweeper: ReminderSweeper, interval_minutes: int = 5):
        self.sweeper = sweeper
        self.interval_minutes = interval_minutes
        self._scheduler = BackgroundScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        self._scheduler.add_job(
            self.sweeper.sweep_once,
            "interval",
            minutes=self.interval_minutes,
            id=self.JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        log.info("reminder_scheduler_started", interval_minutes=self.interval_minutes)

    def shutdown(self, wait: bool = False) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            log.info("reminder_scheduler_stopped")

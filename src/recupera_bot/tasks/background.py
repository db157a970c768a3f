
"""Execução destacada (fire-and-forget) do trabalho disparado pelos webhooks.

O webhook responde 200 antes de o job terminar: o ACK NÃO significa que o
trabalho foi persistido. Cada job roda com o contexto (trace_id) de quem o
submeteu e tem sua própria fronteira de erro.
"""
from __future__ import annotations
import contextvars
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable
from ..core.logging import get_logger

log = get_logger()

class BackgroundRunner:
    def __init__(self, max_workers: int = 4):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="rb-job")
        self._inflight: set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        ctx = contextvars.copy_context()
        fut = self._pool.submit(ctx.run, self._run, name, fn, args, kwargs)
        with self._lock:
            self._inflight.add(fut)
        fut.add_done_callback(self._forget)
        return fut

    def _forget(self, fut: Future) -> None:
        with self._lock:
            self._inflight.discard(fut)

    @staticmethod
    def _run(name: str, fn: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
        try:
            result = fn(*args, **kwargs)
        except Exception as exc:
            log.exception("background_job_failed", job=name, error=repr(exc))
            return None
        log.info("background_job_done", job=name)
        return result

    def join(self, timeout: float | None = None) -> bool:
        """Espera os jobs em andamento; True se todos terminaram dentro do timeout."""
        with self._lock:
            pending = set(self._inflight)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
        log.info("background_runner_stopped")


"""Logs estruturados (structlog, JSON em stdout) com trace_id por requisição/job."""
from __future__ import annotations
import logging
import structlog
import sys
from uuid import uuid4
from contextvars import ContextVar

trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="-")

def set_trace_id(value: str | None = None) -> str:
    """Fixa o trace_id do contexto corrente (gera um uuid4 se ausente)."""
    tid = value or uuid4().hex
    trace_id_ctx.set(tid)
    return tid

def _inject_trace_id(_, __, event_dict: dict) -> dict:
    return {**event_dict, "trace_id": trace_id_ctx.get()}

def configure_logging(level: str = "INFO") -> None:
    """Configura structlog uma única vez no bootstrap (JSON em stdout)."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            _inject_trace_id,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )

def get_logger(**initial) -> structlog.stdlib.BoundLogger:
    """Retorna logger JSON (trace_id injetado automaticamente)."""
    return structlog.get_logger(**initial)

# JSON já na importação; bootstrap_di reaplica com o nível configurado
configure_logging()

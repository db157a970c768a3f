
"""Taxonomia de erros do domínio.

- AuthError: chave de API ausente (401) ou desconhecida (403); rejeitado antes de qualquer lógica.
- ValidationError: campo obrigatório ausente; nada é gravado.
- PersistenceError: falha do banco, registrada no job em segundo plano.
- ExternalServiceError: falha de LLM/Twilio, absorvida nos adapters.
"""
from __future__ import annotations


class RecuperaError(Exception):
    """Base de todos os erros do serviço."""


class AuthError(RecuperaError):
    def __init__(self, message: str, status: int = 401):
        super().__init__(message)
        self.status = status


class ValidationError(RecuperaError):
    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []


class PersistenceError(RecuperaError):
    pass


class ExternalServiceError(RecuperaError):
    def __init__(self, service: str, detail: str | None = None):
        super().__init__(f"{service}: {detail or 'falha'}")
        self.service = service
        self.detail = detail

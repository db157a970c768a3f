
"""Ciclo de vida do carrinho abandonado: ingestão e recuperação por pedido."""
from __future__ import annotations
from datetime import datetime
from typing import Any, Callable
from pydantic import ValidationError as PydanticValidationError
from ...core.errors import ValidationError
from ...core.guardrails import canonical_address
from ...core.logging import get_logger
from ...ports.interfaces import CartItemDTO
from ...repo.models import utcnow
from ...repo.repo import Store

log = get_logger()

# Nomes de campo herdados das integrações em espanhol.
ITEM_ALIASES = {"nombre": "name", "precio": "price", "cantidad": "quantity"}

def normalize_items(items: Any) -> list[dict]:
    """Valida itens (lista não vazia com ``name``) e padroniza as chaves."""
    if not isinstance(items, list) or not items:
        raise ValidationError("items deve ser uma lista não vazia", ["items"])
    out = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("item inválido", ["items"])
        data = {ITEM_ALIASES.get(k, k): v for k, v in raw.items()}
        try:
            out.append(CartItemDTO.model_validate(data).model_dump(exclude_none=True))
        except PydanticValidationError as exc:
            raise ValidationError(f"item inválido: {exc.errors()[0]['msg']}", ["items"]) from exc
    return out

class CartLifecycle:
    """Transições: criado (pending, recovered=False) → recovered=True; o lembrete é do sweeper."""

    def __init__(self, store: Store, channel: str = "whatsapp", clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.channel = channel
        self.clock = clock

    def _address(self, customer_phone_raw: Any) -> str:
        address = canonical_address(customer_phone_raw, self.channel) if customer_phone_raw else None
        if not address:
            raise ValidationError("telefone do cliente ausente ou inválido", ["customer_phone"])
        return address

    def validate_cart(self, customer_phone_raw: Any, recovery_url: Any, items: Any) -> tuple[str, str, list[dict]]:
        """Valida e normaliza a entrada do webhook de carrinho abandonado."""
        missing = [n for n, v in (("customer_phone", customer_phone_raw), ("recovery_url", recovery_url), ("items", items)) if not v]
        if missing:
            raise ValidationError("faltam dados no corpo da requisição", missing)
        if not isinstance(recovery_url, str) or not recovery_url.strip():
            raise ValidationError("recovery_url inválida", ["recovery_url"])
        return self._address(customer_phone_raw), recovery_url.strip(), normalize_items(items)

    def ingest_cart(self, tenant_id: int, customer_phone_raw: Any, recovery_url: Any, items: Any) -> int:
        """Cria um carrinho pendente. Sem deduplicação contra carrinhos anteriores."""
        address, url, norm_items = self.validate_cart(customer_phone_raw, recovery_url, items)
        cart_id = self.store.insert_cart(
            tenant_id=tenant_id,
            customer_address=address,
            items=norm_items,
            recovery_url=url,
            created_at=self.clock(),
        )
        log.info("cart_ingested", cart_id=cart_id, tenant_id=tenant_id, items=len(norm_items))
        return cart_id

    def validate_order(self, customer_phone_raw: Any) -> str:
        return self._address(customer_phone_raw)

    def mark_order_recovered(self, tenant_id: int, customer_phone_raw: Any) -> int | None:
        """Marca o carrinho não recuperado mais antigo do cliente; sem candidato é no-op."""
        address = self._address(customer_phone_raw)
        cart_id = self.store.recover_oldest_cart(tenant_id, address, now=self.clock())
        if cart_id is None:
            log.info("cart_recovery_no_match", tenant_id=tenant_id, customer=address)
            return None
        log.info("cart_recovered", cart_id=cart_id, tenant_id=tenant_id)
        return cart_id

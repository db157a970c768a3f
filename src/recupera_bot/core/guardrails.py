
"""Guardrails de entrada: sanitização de texto e endereço canônico de canal.

Endereço canônico: ``<canal>:+<dígitos>`` (ex.: ``whatsapp:+34666111222``).
É a chave de junção entre carrinhos, conversas e mensagens recebidas, por isso
toda entrada (From/To do webhook, telefone dos webhooks de e-commerce) passa
por ``canonical_address``.
"""
import re

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
NON_DIGITS = re.compile(r"\D")

def sanitize_text(text: str | None) -> str:
    """Normaliza espaços e remove caracteres de controle."""
    text = CONTROL_CHARS.sub("", text or "")
    return " ".join(text.split())

def canonical_address(raw: str | None, channel: str = "whatsapp") -> str | None:
    """Converte telefone/endereço bruto em endereço canônico; None se não houver dígitos."""
    if raw is None:
        return None
    value = str(raw).strip()
    prefix = f"{channel}:"
    if value.lower().startswith(prefix.lower()):
        value = value[len(prefix):]
    digits = NON_DIGITS.sub("", value)
    if not digits:
        return None
    return f"{channel}:+{digits}"

def display_address(address: str) -> str:
    """Remove o prefixo de canal para exibição (``whatsapp:+34...`` → ``+34...``)."""
    _, sep, rest = (address or "").partition(":")
    return rest if sep else address

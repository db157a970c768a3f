
"""Configurações Pydantic Settings para a aplicação."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    """Configurações da aplicação. Carrega de env e .env.

    Todas as credenciais devem vir via env. Nunca hardcode.
    """
    model_config = SettingsConfigDict(env_file=".env", env_prefix="RB_", case_sensitive=False)

    # Flask
    flask_debug: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)
    log_level: str = Field(default="INFO")

    # DB
    database_url: str = Field(..., description="URL do Postgres, ex: postgresql+psycopg://user:pass@db:5432/app")

    # Twilio (WhatsApp)
    twilio_account_sid: str = Field(...)
    twilio_auth_token: str = Field(...)
    validate_twilio_signature: bool = Field(default=False, description="Exige X-Twilio-Signature no webhook de entrada")
    public_base_url: str | None = Field(default=None, description="URL pública usada pela Twilio ao assinar o webhook")
    channel_prefix: str = Field(default="whatsapp")

    # LLM / LiteLLM
    litellm_base_url: str = Field(..., description="URL do gateway LiteLLM")
    litellm_model: str = Field(default="gemini/gemini-2.0-flash")
    litellm_timeout_s: int = Field(default=12)
    litellm_max_tokens: int = Field(default=300)
    litellm_temperature: float = Field(default=0.2)

    # Recordatórios de carrinho
    reminder_interval_minutes: int = Field(default=5, ge=1)
    reminder_threshold_minutes: int = Field(default=60, ge=0)
    reminder_claim_seconds: int = Field(default=300, ge=1, description="Duração da reserva de um carrinho durante o envio")
    scheduler_enabled: bool = Field(default=True)

    # Trabalho em segundo plano
    background_workers: int = Field(default=4, ge=1)

    # Painel (deep link nos alertas de transbordo)
    dashboard_base_url: str = Field(default="https://app.recupera.bot")

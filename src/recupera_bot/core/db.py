
"""Engine/sessões SQLAlchemy 2 e utilidades de schema."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

def create_session_factory(database_url: str):
    """Monta o sessionmaker usado pelo Store.

    :param database_url: URL completa do banco (psycopg3; sqlite em testes).
    :return: sessionmaker configurado.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        # sessões são abertas a partir das threads do BackgroundRunner e do scheduler
        connect_args["check_same_thread"] = False
    engine = create_engine(database_url, pool_pre_ping=True, future=True, connect_args=connect_args)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

def create_schema(session_factory) -> None:
    """Cria as tabelas direto do metadata (dev/testes; produção usa Alembic)."""
    from ..repo.models import Base
    Base.metadata.create_all(session_factory.kw["bind"])

def dispose(session_factory) -> None:
    """Fecha o pool de conexões do engine associado."""
    session_factory.kw["bind"].dispose()

import os
from contextlib import contextmanager
from urllib.parse import quote_plus

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

load_dotenv()

# ============================================
# BANCO DE DADOS
# ============================================

def build_db_url_from_parts() -> str:
    required = ["DB_HOST", "DB_PORT", "DB_USER", "DB_PASSWORD", "DB_NAME"]
    missing = [k for k in required if not os.getenv(k)]
    if missing:
        raise RuntimeError(
            "Variáveis de banco ausentes: "
            + ", ".join(missing)
            + ". Defina DATABASE_URL ou as variáveis DB_*."
        )

    db_host = os.getenv("DB_HOST")
    db_port = int(os.getenv("DB_PORT"))
    db_user = os.getenv("DB_USER")
    db_pass = os.getenv("DB_PASSWORD")
    db_name = os.getenv("DB_NAME")
    db_ssl  = os.getenv("DB_SSL", "false").lower() == "true"

    db_pass_enc = quote_plus(db_pass)

    qs = "charset=utf8mb4"
    if db_ssl or "aivencloud.com" in (db_host or ""):
        qs += "&ssl=true"

    return f"mysql+pymysql://{db_user}:{db_pass_enc}@{db_host}:{db_port}/{db_name}?{qs}"


def get_database_url() -> str:
    return os.getenv("DATABASE_URL") or build_db_url_from_parts()


def build_engine(url: str):
    if url.startswith("sqlite"):
        # banco em memória precisa ser a mesma conexão para todas as sessões
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    use_ssl = "ssl=true" in url or "aivencloud.com" in url or os.getenv("DB_SSL", "false").lower() == "true"
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=280,
        connect_args={'ssl': {}} if use_ssl else {}
    )


DATABASE_URL = get_database_url()
engine = build_engine(DATABASE_URL)

Session = sessionmaker(bind=engine)
Base = declarative_base()


def init_db():
    """Garante as tabelas no boot."""
    import models  # noqa: F401  registra os modelos no metadata
    with engine.begin() as conn:
        Base.metadata.create_all(bind=conn)


@contextmanager
def tx(db):
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise

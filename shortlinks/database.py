import os
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

PROJECT_ROOT = Path(__file__).parent.parent
load_dotenv(PROJECT_ROOT / ".env")

ENVIRONMENT = os.getenv("ENVIRONMENT", "dev")
SQLITE_FALLBACK = f"sqlite:///{PROJECT_ROOT / 'shortlinks_dev.db'}"


def database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if ENVIRONMENT == "prod":
        raise RuntimeError("DATABASE_URL must be set in production")
    return SQLITE_FALLBACK


def engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Request threads share the file; writers wait on its lock instead of failing.
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 1800,
    }


DATABASE_URL = database_url()
engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))

SessionLocal = sessionmaker(bind=engine, autoflush=False)
Base = declarative_base()


def get_db():
    """Request-scoped session for FastAPI's Depends."""
    with SessionLocal() as db:
        yield db

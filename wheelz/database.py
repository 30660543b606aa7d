# wheelz/database.py
import os
import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# =========================================================
# 1) Read the database URL + normalize the Postgres driver
# =========================================================
DB_URL = os.getenv("DATABASE_URL", "sqlite:///./wheelz.db")

# psycopg (v3) is the driver we ship with; rewrite legacy URL forms
if DB_URL.startswith("postgres://"):
    DB_URL = "postgresql+psycopg://" + DB_URL[len("postgres://"):]
elif DB_URL.startswith("postgresql+psycopg2://"):
    DB_URL = DB_URL.replace("postgresql+psycopg2://", "postgresql+psycopg://", 1)
elif DB_URL.startswith("postgresql://") and "+psycopg" not in DB_URL:
    DB_URL = DB_URL.replace("postgresql://", "postgresql+psycopg://", 1)


def make_engine(url: str):
    """Engine with SQLite thread settings; in-memory SQLite shares one connection."""
    kwargs = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


# =========================================================
# 2) Create Engine and Session
# =========================================================
engine = make_engine(DB_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# The only Base used throughout the project
Base = declarative_base()


def get_db():
    """Dependency to inject DB session inside routes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_models() -> None:
    # models must be imported so their tables register on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("database tables ensured on %s", engine.url.get_backend_name())

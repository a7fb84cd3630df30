from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config.settings import DATABASE_URL, DATA_DIR, DEBUG

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, echo=DEBUG, connect_args=connect_args)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def init_db(bind=None):
    """Create all tables (development and tests; no migrations)"""
    from . import models  # noqa: F401  registers the tables on Base.metadata

    if bind is None:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        bind = engine
    Base.metadata.create_all(bind=bind)

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
import os
from contextlib import contextmanager

DATABASE_URL = os.getenv("DATABASE_URL", "mysql+pymysql://dispatch_user:dispatch_pass@db:3306/dispatch_db")

class Base(DeclarativeBase):
    pass

_engine_kwargs = {"connect_args": {"check_same_thread": False}} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    pool_recycle=3600,
    **_engine_kwargs,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_session():
    """Dependencia de FastAPI: commit al final, rollback si algo falla."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

@contextmanager
def session_scope():
    """Misma semántica que get_session, para tareas y scripts."""
    yield from get_session()

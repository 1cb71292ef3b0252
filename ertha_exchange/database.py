# ertha_exchange/database.py: SQLite for local dev, Postgres (Supabase) in production
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from ertha_exchange.config import get_settings

logger = logging.getLogger(__name__)

# -------------------------
# Create engine & session
# -------------------------
_settings = get_settings()
DATABASE_URL = _settings.database_url

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

try:
    engine = create_engine(
        DATABASE_URL,
        echo=_settings.sqlalchemy_echo,
        connect_args=_connect_args,
        pool_pre_ping=True,
        future=True,
    )
except ModuleNotFoundError as e:
    raise ModuleNotFoundError(
        "Database driver not found. If you intended to use Postgres, install psycopg2:\n"
        "    pip install 'ertha-exchange[postgres]'\n"
        f"Original error: {e}"
    ) from e

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
    future=True,
)

Base = declarative_base()


# -------------------------
# FastAPI dependency
# -------------------------
def get_db():
    """Yield a database session for FastAPI dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# -------------------------
# Helpers: init & test
# -------------------------
def init_db(bind=None):
    """Create all tables if they don't exist."""
    # registers every model on Base.metadata
    from ertha_exchange import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def check_connection(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        return False

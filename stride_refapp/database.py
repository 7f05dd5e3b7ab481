import logging
from urllib.parse import urlparse

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from stride_refapp.config import settings

logger = logging.getLogger("app.database")


def _safe_db_url(url: str) -> str:
    """Return URL with password masked for logging."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            return url.replace(parsed.password, "****")
    except ValueError:
        pass
    return url


def _normalize_database_url(url: str) -> str:
    """
    Normalize DB URL for SQLAlchemy:
    - Fail fast if empty.
    - Ensure PostgreSQL uses a known driver (psycopg recommended).
    """
    if not url or not url.strip():
        raise RuntimeError("DATABASE_URL is empty. Set DATABASE_URL in environment variables.")

    url = url.strip()

    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]

    if url.startswith("postgresql://"):
        url = "postgresql+psycopg://" + url[len("postgresql://"):]

    return url


DATABASE_URL = _normalize_database_url(settings.DATABASE_URL)

is_sqlite = DATABASE_URL.startswith("sqlite")

engine_kwargs = {
    "future": True,
    "pool_pre_ping": True,
    "pool_recycle": 300,
}
# Route handlers run in the threadpool; sqlite connections must cross threads
connect_args = {"check_same_thread": False} if is_sqlite else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args, **engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()

logger.info(
    "database_engine_created",
    extra={
        "extra": {
            "url": _safe_db_url(DATABASE_URL),
            "backend": "sqlite" if is_sqlite else "other",
        }
    },
)


def get_db():
    db = SessionLocal()
    logger.debug("db_session_opened")
    try:
        yield db
    finally:
        db.close()
        logger.debug("db_session_closed")


def init_db() -> None:
    # models must be imported so their tables are registered on Base.metadata
    from stride_refapp import models  # noqa: F401

    logger.info("init_db_started")
    Base.metadata.create_all(bind=engine)
    logger.info("init_db_completed")

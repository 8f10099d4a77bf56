import logging
import sqlite3
from contextlib import contextmanager
from decimal import Decimal

from pydantic_settings import BaseSettings
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker, DeclarativeBase
from sqlalchemy.orm.exc import StaleDataError

from errors import ConcurrentModificationError, translate_integrity_error

log = logging.getLogger(__name__)


class Settings(BaseSettings):
    MYSQL_HOST: str = "127.0.0.1"
    MYSQL_PORT: int = 3306
    MYSQL_USER: str = "root"
    MYSQL_PASSWORD: str = ""
    MYSQL_DB: str = "library_management"

    # overrides the MySQL DSN when set, e.g. sqlite:///library.db
    DATABASE_URL: str = ""
    SQL_ECHO: bool = False

    LOAN_PERIOD_DAYS: int = 30
    FINE_PER_DAY: Decimal = Decimal("0.50")

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()


def database_url(s: Settings = settings) -> str:
    if s.DATABASE_URL:
        return s.DATABASE_URL
    return (
        f"mysql+pymysql://{s.MYSQL_USER}:{s.MYSQL_PASSWORD}"
        f"@{s.MYSQL_HOST}:{s.MYSQL_PORT}/{s.MYSQL_DB}"
        "?charset=utf8mb4"
    )


def build_engine(url: str | None = None, **kwargs) -> Engine:
    url = url or database_url()
    kwargs.setdefault("echo", settings.SQL_ECHO)
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, **kwargs)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE rules unless this is set per connection
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = build_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def transaction(db: Session):
    """Commit everything done in the block, or roll all of it back.

    Driver integrity errors come out as ConstraintViolation subclasses and a
    version mismatch on a versioned row as ConcurrentModificationError.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise translate_integrity_error(exc) from exc
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentModificationError(str(exc)) from exc
    except Exception:
        db.rollback()
        raise


def init_db(bind: Engine = engine, drop: bool = False):
    """Create every table; with ``drop`` the existing tables go first."""
    import models  # noqa: F401  registers the mapped classes on Base

    if drop:
        log.info("dropping library tables")
        Base.metadata.drop_all(bind=bind)
    Base.metadata.create_all(bind=bind)
    log.info("library tables ready on %s", bind.url.render_as_string(hide_password=True))

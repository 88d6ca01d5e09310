# pennyekart/database.py
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from flask import g

from pennyekart.config import Config


def _engine_options(database_url):
    options = {
        "echo": Config.SQL_ECHO,
        "future": True,
        "pool_pre_ping": True,
    }
    if database_url.startswith("sqlite"):
        # The flash sale watcher opens sessions from its own thread
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_size"] = Config.DB_POOL_SIZE
        options["max_overflow"] = Config.DB_MAX_OVERFLOW
    return options


engine = create_engine(Config.DATABASE_URL, **_engine_options(Config.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)

Base = declarative_base()


@contextmanager
def session_scope(factory=SessionLocal):
    """Session for work outside a request; rolled back on database errors and always closed."""
    session = factory()
    try:
        yield session
    except SQLAlchemyError:
        session.rollback()
        raise
    finally:
        session.close()


def get_db():
    """Request-scoped session stored on flask.g."""
    if 'db' not in g:
        g.db = SessionLocal()
    return g.db


def close_db(error=None):
    try:
        db = g.pop('db', None)
    except RuntimeError:
        # Outside of an application context (test teardown)
        return
    if db is None:
        return
    if error is not None:
        db.rollback()
    db.close()

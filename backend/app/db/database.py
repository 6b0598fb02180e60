from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

try:
    from backend import config
except ModuleNotFoundError:
    import config

from .schema import metadata


def make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite gets thread sharing and enforced foreign keys."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(url, echo=echo, future=True, connect_args=connect_args)
    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create the projects and tasks tables if they do not exist."""
    metadata.create_all(engine)


engine = make_engine(config.DATABASE_URL, echo=config.DATABASE_ECHO)
SessionLocal = make_session_factory(engine)

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL


def _casefold(value):
    return value.casefold() if value is not None else None


def _register_sqlite_functions(dbapi_conn, connection_record):
    # SQLite-lower() faltet nur ASCII; "Übung"/"Été" brauchen Unicode-Faltung
    dbapi_conn.create_function("casefold", 1, _casefold, deterministic=True)


def _engine_for(url: str):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-Memory-DB: eine Verbindung für alle Sessions (Tests)
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        sqlite_engine = create_engine(url, **kwargs)
        event.listen(sqlite_engine, "connect", _register_sqlite_functions)
        return sqlite_engine
    return create_engine(url, pool_pre_ping=True)


engine = _engine_for(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db():
    # Modelle importieren, damit sie in Base.metadata registriert sind
    import models  # noqa: F401
    import task_models  # noqa: F401
    Base.metadata.create_all(bind=engine)

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from workdesk import config


class Base(DeclarativeBase):
    pass


def make_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url)

    engine = create_engine(url, connect_args={"check_same_thread": False})
    on_disk = engine.url.database not in (None, "", ":memory:")

    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT handling.
    # Let SQLAlchemy emit BEGIN itself.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        if on_disk:
            # Sessions hold a read transaction until they close; in WAL mode
            # those readers do not block other sessions from committing.
            dbapi_connection.execute("PRAGMA journal_mode=WAL")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


engine = make_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(bind=engine)


def init_db(bind=None):
    from workdesk.db import tables  # noqa: F401 - registers table models
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

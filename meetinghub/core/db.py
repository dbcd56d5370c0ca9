from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from meetinghub.core.config import DATABASE_URL, DB_SSL_CA_PATH
from meetinghub.models.user import Base  # Only import Base from user.py


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        # Scheduler threads share the engine with request threads
        return {"check_same_thread": False}
    if DB_SSL_CA_PATH:
        return {"ssl": {"ca": DB_SSL_CA_PATH}}
    return {}


def enable_sqlite_foreign_keys(target_engine):
    """SQLite ignores ON DELETE rules unless each connection opts in."""

    @event.listens_for(target_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# SQLAlchemy engine
engine = create_engine(
    DATABASE_URL,
    connect_args=_connect_args(DATABASE_URL),
    pool_pre_ping=True,  # avoids stale connections
)
if engine.dialect.name == "sqlite":
    enable_sqlite_foreign_keys(engine)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependency for FastAPI routes
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Function to create tables
def init_db():
    # Register every model on Base.metadata before creating tables
    import meetinghub.models.meeting  # noqa: F401

    Base.metadata.create_all(bind=engine)

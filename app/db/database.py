"""
SQLAlchemy engine and session factory for the pipeline queue.
The URL comes from PIPELINE_QUEUE_URL; SQLite is the default backend.
"""
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def create_session_factory(url: str) -> sessionmaker:
    """Create the engine, ensure tables exist, return a session factory."""
    connect_args = {}
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        # Worker threads share the engine
        connect_args["check_same_thread"] = False
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(
        url,
        connect_args=connect_args,
        echo=False,  # No SQL logging (payloads contain prompts)
    )
    init_db(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine) -> None:
    """Initialize database tables."""
    from app.db.models import PipelineJob  # noqa: F401
    Base.metadata.create_all(bind=engine)

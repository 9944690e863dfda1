# database.py

from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker

# Base class for our database models
Base = declarative_base()


def create_session_factory(database_url: str, **engine_kwargs) -> sessionmaker:
    """Create the engine and a session factory bound to it."""
    engine = create_engine(database_url, pool_pre_ping=True, **engine_kwargs)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def ping(session_factory: sessionmaker) -> None:
    """Fail loudly if the database cannot be reached."""
    with session_factory() as db:
        db.execute(text("SELECT 1"))


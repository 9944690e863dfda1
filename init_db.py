#!/usr/bin/env python3
"""
Local database bootstrap.
Creates the Video and Segment tables and both pgmq queues if they don't exist.
"""

import sys

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import models  # noqa: F401  registers the tables on Base
from config import DATABASE_URL, SEGMENT_QUEUE_NAME, VIDEO_QUEUE_NAME
from database import Base, create_session_factory


def init_database(database_url: str = DATABASE_URL) -> None:
    session_factory = create_session_factory(database_url)
    print("Creating database tables...")
    Base.metadata.create_all(bind=session_factory.kw["bind"])
    print("✅ Database tables created successfully!")

    with session_factory() as db:
        db.execute(text("CREATE EXTENSION IF NOT EXISTS pgmq"))
        for queue_name in (VIDEO_QUEUE_NAME, SEGMENT_QUEUE_NAME):
            print(f"Creating queue {queue_name}...")
            db.execute(text("SELECT pgmq.create(:queue_name)"), {"queue_name": queue_name})
        db.commit()
    print("✅ Queues created successfully!")


if __name__ == "__main__":
    if not DATABASE_URL:
        print("❌ DATABASE_URL is not set")
        sys.exit(1)
    try:
        init_database()
    except SQLAlchemyError as e:
        print(f"❌ Error initializing database: {e}")
        sys.exit(1)

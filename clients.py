"""
One place that builds every external client the worker needs.
Called once at startup; a failure here stops the service from starting.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from supabase import Client, create_client

import config
from database import create_session_factory, ping
from exceptions import ClientInitError, ConfigurationError
from message_queue import MessageQueue


@dataclass
class Clients:
    session_factory: sessionmaker
    supabase: Client
    video_queue: MessageQueue
    segment_queue: MessageQueue


def _require(name: str) -> str:
    value = getattr(config, name)
    if not value:
        raise ConfigurationError(f"Missing required environment variable: {name}")
    return value


def init_clients() -> Clients:
    database_url = _require("DATABASE_URL")
    supabase_url = _require("SUPABASE_URL")
    supabase_key = _require("SUPABASE_KEY")
    _require("STORAGE_BUCKET")

    if not supabase_url.startswith("https://"):
        raise ClientInitError(f"Invalid SUPABASE_URL format, expected https://: {supabase_url}")

    try:
        session_factory = create_session_factory(database_url)
        ping(session_factory)
        logging.info("✅ Database connection verified")
    except SQLAlchemyError as e:
        raise ClientInitError(f"Failed to connect to the database: {e}") from e

    try:
        supabase = create_client(supabase_url, supabase_key)
        logging.info("✅ Supabase client initialized")
    except Exception as e:
        raise ClientInitError(f"Failed to initialize Supabase client: {e}") from e

    return Clients(
        session_factory=session_factory,
        supabase=supabase,
        video_queue=MessageQueue(session_factory, config.VIDEO_QUEUE_NAME),
        segment_queue=MessageQueue(session_factory, config.SEGMENT_QUEUE_NAME),
    )

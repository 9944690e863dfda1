"""
Thin adapter over a pgmq queue living in the same Postgres database as the records.
"""

import json
import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from schemas import QueueMessage


class MessageQueue:
    """pop / archive / metrics on one named pgmq queue."""

    def __init__(self, session_factory: sessionmaker, queue_name: str):
        self.session_factory = session_factory
        self.queue_name = queue_name

    def pop(self) -> Optional[QueueMessage]:
        """Remove and return at most one message, or None when the queue is empty."""
        with self.session_factory() as db:
            row = db.execute(
                text("SELECT msg_id, read_ct, message FROM pgmq.pop(:queue_name)"),
                {"queue_name": self.queue_name},
            ).mappings().first()
            db.commit()

        if row is None:
            return None

        payload = row["message"]
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                logging.warning(f"Queue {self.queue_name} message {row['msg_id']} is not valid JSON")
        return QueueMessage(msg_id=row["msg_id"], read_ct=row["read_ct"] or 0, message=payload)

    def archive(self, msg_id: int) -> bool:
        with self.session_factory() as db:
            archived = db.execute(
                text("SELECT pgmq.archive(:queue_name, :msg_id)"),
                {"queue_name": self.queue_name, "msg_id": msg_id},
            ).scalar()
            db.commit()
        return bool(archived)

    def has_messages(self) -> bool:
        with self.session_factory() as db:
            length = db.execute(
                text("SELECT queue_length FROM pgmq.metrics(:queue_name)"),
                {"queue_name": self.queue_name},
            ).scalar()
        return bool(length)

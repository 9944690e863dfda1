# models.py

from sqlalchemy import Column, Integer, String, Text
from database import Base

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class Video(Base):
    """A narrated story assembled from its segments' clips."""

    __tablename__ = "Video"

    id = Column(String, primary_key=True, index=True)
    storyId = Column(String, nullable=True, index=True)
    status = Column(String, default=STATUS_PENDING)  # pending, completed, failed
    videoURL = Column(Text, nullable=True)


class Segment(Base):
    """One narrated unit (image + audio) of a story."""

    __tablename__ = "Segment"

    id = Column(String, primary_key=True, index=True)
    storyId = Column(String, nullable=False, index=True)
    sortedIndex = Column(Integer, nullable=False)
    imageURL = Column(Text, nullable=True)
    audioURL = Column(Text, nullable=True)
    videoURL = Column(Text, nullable=True)
    status = Column(String, default=STATUS_PENDING)  # pending, completed, failed

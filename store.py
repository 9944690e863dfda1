"""
Keyed reads and updates of Video and Segment rows.
Every call opens its own session and commits before returning.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from models import Segment, Video, STATUS_COMPLETED, STATUS_FAILED


class RecordStore:
    """Single-row reads/updates by primary key plus the ordered segment query."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_video(self, video_id: str) -> Optional[Video]:
        with self.session_factory() as db:
            return db.query(Video).filter(Video.id == video_id).first()

    def update_video_status(self, video_id: str, status: str, video_url: Optional[str] = None) -> bool:
        with self.session_factory() as db:
            video = db.query(Video).filter(Video.id == video_id).first()
            if video is None:
                logging.error(f"❌ Cannot set status {status}: video {video_id} not found")
                return False
            video.status = status
            if video_url:
                video.videoURL = video_url
            elif status == STATUS_FAILED:
                video.videoURL = None
            db.commit()
        logging.info(f"Updated video {video_id} status to {status}{' with URL' if video_url else ''}")
        return True

    def get_segment(self, segment_id: str) -> Optional[Segment]:
        with self.session_factory() as db:
            return db.query(Segment).filter(Segment.id == segment_id).first()

    def list_segments(self, story_id: str) -> List[Segment]:
        with self.session_factory() as db:
            return (
                db.query(Segment)
                .filter(Segment.storyId == story_id)
                .order_by(Segment.sortedIndex.asc())
                .all()
            )

    def complete_segment(self, segment_id: str, video_url: str) -> bool:
        with self.session_factory() as db:
            segment = db.query(Segment).filter(Segment.id == segment_id).first()
            if segment is None:
                return False
            segment.videoURL = video_url
            segment.status = STATUS_COMPLETED
            db.commit()
        return True

    def fail_segment(self, segment_id: str) -> bool:
        with self.session_factory() as db:
            segment = db.query(Segment).filter(Segment.id == segment_id).first()
            if segment is None:
                return False
            segment.status = STATUS_FAILED
            segment.videoURL = None
            db.commit()
        return True

    def segment_ids_for_video(self, video_id: str) -> List[str]:
        with self.session_factory() as db:
            video = db.query(Video).filter(Video.id == video_id).first()
            if video is None or not video.storyId:
                return []
            rows = db.query(Segment.id).filter(Segment.storyId == video.storyId).all()
            return [row[0] for row in rows]

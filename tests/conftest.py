# tests/conftest.py

import os
import sys

import pytest
from sqlalchemy.pool import StaticPool

# Add the parent directory to the Python path so we can import from it
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, create_session_factory  # noqa: E402
from exceptions import RenderError  # noqa: E402
from models import Segment, Video  # noqa: E402
from schemas import QueueMessage  # noqa: E402
from store import RecordStore  # noqa: E402
from workspace import WorkspaceManager  # noqa: E402


@pytest.fixture
def session_factory():
    """An in-memory SQLite database shared by every session of one test."""
    factory = create_session_factory(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=factory.kw["bind"])
    return factory


@pytest.fixture
def store(session_factory):
    return RecordStore(session_factory)


@pytest.fixture
def add_rows(session_factory):
    def _add(*rows):
        with session_factory() as db:
            db.add_all(rows)
            db.commit()
    return _add


@pytest.fixture
def workspace(tmp_path):
    return WorkspaceManager(str(tmp_path / "temp"))


class FakeStorage:
    """Records uploads and hands out predictable public URLs."""

    def __init__(self):
        self.uploads = []
        self.failing_keys = set()

    def upload_file(self, local_path, key):
        if key in self.failing_keys or not os.path.exists(local_path):
            return None
        self.uploads.append(key)
        return f"https://cdn.test/{key}"


def _read(path):
    if not path:
        return None
    with open(path, encoding="utf-8") as f:
        return f.read()


class FakeRenderer:
    """Writes placeholder files instead of running ffmpeg."""

    def __init__(self, duration=3.0):
        self.duration = duration
        self.clips = []
        self.merges = []
        self.merge_error = None
        self.failing_segments = set()

    def probe_duration(self, path):
        return self.duration

    def render_clip(self, image_path, audio_path, output_path, duration, subtitles_path=None):
        if os.path.basename(os.path.dirname(output_path)) in self.failing_segments:
            raise RenderError("ffmpeg exited with code 1: Invalid data found when processing input")
        self.clips.append(
            {
                "output_path": output_path,
                "duration": duration,
                "subtitles_path": subtitles_path,
                "subtitles_text": _read(subtitles_path),
            }
        )
        with open(output_path, "wb") as f:
            f.write(b"clip")

    def merge_clips(self, input_paths, output_path, transition_seconds=0.5):
        self.merges.append({"inputs": list(input_paths), "transition": transition_seconds})
        if self.merge_error:
            raise self.merge_error
        with open(output_path, "wb") as f:
            f.write(b"merged")


class FakeQueue:
    def __init__(self, messages=(), queue_name="test_queue"):
        self.queue_name = queue_name
        self.messages = [
            QueueMessage(msg_id=index, message=message) for index, message in enumerate(messages, start=1)
        ]
        self.archived = []
        self.pop_error = None
        self.archive_error = None

    def pop(self):
        if self.pop_error:
            raise self.pop_error
        return self.messages.pop(0) if self.messages else None

    def archive(self, msg_id):
        if self.archive_error:
            raise self.archive_error
        self.archived.append(msg_id)
        return True

    def has_messages(self):
        return bool(self.messages)


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_renderer():
    return FakeRenderer()


@pytest.fixture
def fake_downloads(monkeypatch):
    """
    Replace HTTP downloads in services with local writes.
    URLs added to the .failing set make the download fail.
    """
    import services

    failing = set()
    calls = []

    def _download(url, dest_path, downloads_root, timeout=None):
        calls.append((url, dest_path))
        if url in failing:
            return False
        with open(dest_path, "wb") as f:
            f.write(url.encode("utf-8"))
        return True

    monkeypatch.setattr(services, "download_file", _download)
    _download.failing = failing
    _download.calls = calls
    return _download


def make_segment(segment_id, story_id="story-1", index=0, **overrides):
    fields = {
        "id": segment_id,
        "storyId": story_id,
        "sortedIndex": index,
        "imageURL": f"https://assets.test/{segment_id}.jpg",
        "audioURL": f"https://assets.test/{segment_id}.mp3",
    }
    fields.update(overrides)
    return Segment(**fields)


def make_video(video_id, story_id="story-1", **overrides):
    return Video(id=video_id, storyId=story_id, **overrides)


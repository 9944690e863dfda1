# tests/test_handlers.py

from conftest import FakeQueue, make_segment
from handlers import SegmentQueueHandler, VideoQueueHandler
from models import Segment


class FakeProcessor:
    def __init__(self, result="https://cdn.test/finalized-videos/video-1.mp4", error=None):
        self.result = result
        self.error = error
        self.calls = []

    def process(self, entity_id):
        self.calls.append(entity_id)
        if self.error:
            raise self.error
        return self.result


def test_empty_queue_returns_200_without_dispatch():
    queue = FakeQueue()
    processor = FakeProcessor()

    response = VideoQueueHandler(queue, processor).handle()

    assert response.status_code == 200
    assert response.body == {"message": "No messages in queue"}
    assert processor.calls == []


def test_malformed_message_is_archived_and_never_dispatched():
    """
    A payload without the expected id is acknowledged so it cannot block the queue.
    """
    queue = FakeQueue([{"segmentId": "seg-1"}])
    processor = FakeProcessor()

    response = VideoQueueHandler(queue, processor).handle()

    assert response.status_code == 400
    assert response.body["error"] == "Invalid message format"
    assert queue.archived == [1]
    assert processor.calls == []


def test_non_object_message_is_treated_as_malformed():
    queue = FakeQueue(["video-1"])
    processor = FakeProcessor()

    response = VideoQueueHandler(queue, processor).handle()

    assert response.status_code == 400
    assert queue.archived == [1]


def test_video_success_archives_and_returns_url():
    queue = FakeQueue([{"videoId": "video-1"}])
    processor = FakeProcessor()

    response = VideoQueueHandler(queue, processor).handle()

    assert response.status_code == 200
    assert response.body == {
        "message": "Successfully processed video video-1",
        "videoURL": "https://cdn.test/finalized-videos/video-1.mp4",
    }
    assert processor.calls == ["video-1"]
    assert queue.archived == [1]


def test_video_failure_is_archived_with_422():
    queue = FakeQueue([{"videoId": "video-1"}])

    response = VideoQueueHandler(queue, FakeProcessor(result=None)).handle()

    assert response.status_code == 422
    assert response.body["message"] == "Failed to process video video-1. Message archived."
    assert queue.archived == [1]


def test_processor_exception_is_archived_with_422():
    queue = FakeQueue([{"videoId": "video-1"}])

    response = VideoQueueHandler(queue, FakeProcessor(error=RuntimeError("render farm on fire"))).handle()

    assert response.status_code == 422
    assert response.body["error"] == "render farm on fire"
    assert queue.archived == [1]


def test_queue_error_returns_500_and_leaves_message():
    queue = FakeQueue([{"videoId": "video-1"}])
    queue.pop_error = RuntimeError("connection reset")
    processor = FakeProcessor()

    response = VideoQueueHandler(queue, processor).handle()

    assert response.status_code == 500
    assert response.body == {"error": "connection reset"}
    assert queue.archived == []
    assert processor.calls == []


def test_archive_error_returns_500():
    queue = FakeQueue([{"videoId": "video-1"}])
    queue.archive_error = RuntimeError("archive failed")

    response = VideoQueueHandler(queue, FakeProcessor()).handle()

    assert response.status_code == 500


def test_numeric_ids_are_accepted_as_strings():
    queue = FakeQueue([{"videoId": 42}])
    processor = FakeProcessor()

    VideoQueueHandler(queue, processor).handle()

    assert processor.calls == ["42"]


def test_segment_success_marks_segment_completed(store, add_rows, session_factory):
    add_rows(make_segment("seg-1"))
    queue = FakeQueue([{"segmentId": "seg-1"}])
    processor = FakeProcessor(result="https://cdn.test/story-1/seg-1.mp4")

    response = SegmentQueueHandler(queue, processor, store).handle()

    assert response.status_code == 200
    assert response.body["videoURL"] == "https://cdn.test/story-1/seg-1.mp4"
    with session_factory() as db:
        segment = db.get(Segment, "seg-1")
        assert segment.status == "completed"
        assert segment.videoURL == "https://cdn.test/story-1/seg-1.mp4"


def test_segment_failure_marks_segment_failed(store, add_rows, session_factory):
    add_rows(make_segment("seg-1"))
    queue = FakeQueue([{"segmentId": "seg-1"}])

    response = SegmentQueueHandler(queue, FakeProcessor(result=None), store).handle()

    assert response.status_code == 422
    assert queue.archived == [1]
    with session_factory() as db:
        segment = db.get(Segment, "seg-1")
        assert segment.status == "failed"
        assert segment.videoURL is None


def test_segment_redrive_failure_clears_earlier_url(store, add_rows, session_factory):
    add_rows(make_segment("seg-1", status="completed", videoURL="https://cdn.test/story-1/seg-1.mp4"))
    queue = FakeQueue([{"segmentId": "seg-1"}])

    response = SegmentQueueHandler(queue, FakeProcessor(result=None), store).handle()

    assert response.status_code == 422
    with session_factory() as db:
        segment = db.get(Segment, "seg-1")
        assert (segment.status, segment.videoURL) == ("failed", None)


def test_segment_rendered_but_row_missing_is_a_failure(store):
    queue = FakeQueue([{"segmentId": "ghost"}])

    response = SegmentQueueHandler(queue, FakeProcessor(result="https://cdn.test/x.mp4"), store).handle()

    assert response.status_code == 422
    assert queue.archived == [1]
